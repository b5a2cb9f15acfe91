import threading

import pytest

from mockpay.services.control import (
    NEXT_ERROR_KEY,
    NEXT_PAYMENT_KEY,
    parse_fault,
    parse_outcome,
)
from mockpay.shared.models import Fault, PaymentOutcome, Webhook, WebhookPolicyUpdate


def test_outcome_defaults_to_success(services):
    assert services.control.take_next_outcome() == PaymentOutcome.SUCCESS


def test_outcome_is_consumed_once(services):
    """
    A queued outcome applies to exactly one take, then the default returns.
    """
    services.control.set_next_outcome(PaymentOutcome.FAILED)

    assert services.control.take_next_outcome() == PaymentOutcome.FAILED
    assert services.control.take_next_outcome() == PaymentOutcome.SUCCESS


def test_fault_is_consumed_once(services):
    services.control.set_next_fault("timeout")

    assert services.control.take_next_fault() == Fault.TIMEOUT
    assert services.control.take_next_fault() == Fault.NONE


def test_concurrent_takers_see_queued_outcome_once(services):
    services.control.set_next_outcome(PaymentOutcome.FAILED)
    workers = 8
    barrier = threading.Barrier(workers)
    taken = []

    def take():
        barrier.wait()
        taken.append(services.control.take_next_outcome())

    threads = [threading.Thread(target=take) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(taken) == workers
    assert taken.count(PaymentOutcome.FAILED) == 1
    assert taken.count(PaymentOutcome.SUCCESS) == workers - 1


def test_set_replaces_pending_value(services):
    services.control.set_next_outcome("failed")
    services.control.set_next_outcome("cancelled")

    assert services.control.take_next_outcome() == PaymentOutcome.CANCELLED


def test_peek_does_not_consume(services):
    services.control.set_next_fault(Fault.SERVER_ERROR)

    assert services.control.fault.peek() == Fault.SERVER_ERROR
    assert services.control.take_next_fault() == Fault.SERVER_ERROR


def test_unreadable_store_falls_back_to_defaults(services):
    with open(services.store.settings.path, "w") as f:
        f.write("garbage")

    assert services.control.take_next_outcome() == PaymentOutcome.SUCCESS
    assert services.control.take_next_fault() == Fault.NONE
    assert services.control.get_webhook_config() == services.control.default_webhook_policy()


def test_unknown_stored_value_falls_back(services):
    services.control.settings.set(NEXT_PAYMENT_KEY, "refunded")
    services.control.settings.set(NEXT_ERROR_KEY, "meltdown")

    assert services.control.take_next_outcome() == PaymentOutcome.SUCCESS
    assert services.control.take_next_fault() == Fault.NONE


@pytest.mark.parametrize("raw,expected", [
    ("success", PaymentOutcome.SUCCESS),
    ("fail", PaymentOutcome.FAILED),
    ("failed", PaymentOutcome.FAILED),
    ("cancel", PaymentOutcome.CANCELLED),
    (" Cancelled ", PaymentOutcome.CANCELLED),
])
def test_parse_outcome(raw, expected):
    assert parse_outcome(raw) == expected


@pytest.mark.parametrize("raw,expected", [
    ("500", Fault.SERVER_ERROR),
    ("server_error", Fault.SERVER_ERROR),
    ("timeout", Fault.TIMEOUT),
    ("network", Fault.NETWORK_DROP),
    ("none", Fault.NONE),
])
def test_parse_fault(raw, expected):
    assert parse_fault(raw) == expected


def test_parse_rejects_unknown_values():
    with pytest.raises(ValueError):
        parse_outcome("refund")
    with pytest.raises(ValueError):
        parse_fault("404")


def test_webhook_config_defaults_come_from_config(services, config):
    policy = services.control.get_webhook_config()

    assert policy.delay_ms == config.webhook_delay_ms
    assert policy.retry_count == 0
    assert policy.duplicate is False
    assert policy.drop is False


def test_webhook_config_partial_update_merges(services):
    services.control.set_webhook_config({"retry_count": 3, "duplicate": True})
    policy = services.control.set_webhook_config(WebhookPolicyUpdate(retry_delay_ms=250))

    assert policy.retry_count == 3
    assert policy.duplicate is True
    assert policy.retry_delay_ms == 250
    assert services.control.get_webhook_config() == policy


def test_webhook_config_rejects_negative_numbers(services):
    with pytest.raises(ValueError):
        services.control.set_webhook_config({"delay_ms": -5})


def test_last_webhook_round_trip(services):
    assert services.control.get_last_webhook() is None

    webhook = Webhook(
        provider="paystack",
        event="charge.success",
        url="http://merchant.test/hook",
        payload={"event": "charge.success", "data": {"reference": "PSK_1"}},
    )
    services.control.set_last_webhook(webhook)

    assert services.control.get_last_webhook() == webhook


def test_reset_all_clears_every_collection(services):
    services.control.set_next_outcome("failed")
    services.ledger.create_transaction("paystack", 1000, "a@example.com")
    services.ledger.create_transfer("flutterwave", 500)

    services.control.reset_all()

    for collection in services.store.all():
        assert collection.find() == []
    assert services.control.take_next_outcome() == PaymentOutcome.SUCCESS
