import threading

import pytest

from mockpay.services.ledger import DuplicateReferenceError, TransactionNotFoundError
from mockpay.services.state_machine import (
    InvalidTransitionError,
    is_terminal,
    status_for_outcome,
    validate_transaction_transition,
)
from mockpay.shared.models import TransactionStatus


@pytest.mark.parametrize("provider,outcome,expected", [
    ("paystack", "success", TransactionStatus.SUCCESS),
    ("paystack", "failed", TransactionStatus.FAILED),
    ("paystack", "cancelled", TransactionStatus.ABANDONED),
    ("flutterwave", "success", TransactionStatus.SUCCESSFUL),
    ("flutterwave", "failed", TransactionStatus.FAILED),
    ("flutterwave", "cancelled", TransactionStatus.CANCELLED),
])
def test_status_for_outcome(provider, outcome, expected):
    assert status_for_outcome(provider, outcome) == expected


def test_only_pending_is_open():
    assert not is_terminal("pending")
    for status in ("success", "successful", "failed", "abandoned", "cancelled"):
        assert is_terminal(status)


def test_terminal_transition_rejected():
    assert validate_transaction_transition("pending", "failed")
    with pytest.raises(InvalidTransitionError):
        validate_transaction_transition("success", "failed")


def test_resolve_consumes_outcome_once(services):
    services.control.set_next_outcome("failed")
    first = services.ledger.create_transaction("paystack", 100, "a@b.co")
    second = services.ledger.create_transaction("paystack", 100, "a@b.co")

    r1 = services.ledger.resolve(first)
    r2 = services.ledger.resolve(second)

    assert r1.resolved and r1.transaction.status == TransactionStatus.FAILED
    assert r2.resolved and r2.transaction.status == TransactionStatus.SUCCESS


def test_resolve_terminal_is_noop(services):
    txn = services.ledger.resolve(services.ledger.create_transaction("flutterwave", 100, "a@b.co")).transaction
    services.control.set_next_outcome("failed")

    again = services.ledger.resolve(txn)

    assert again.resolved is False
    assert again.transaction.status == TransactionStatus.SUCCESSFUL
    assert services.control.outcome.peek().value == "failed"


def test_lookup_errors(services):
    services.ledger.create_transaction("paystack", 100, "a@b.co", reference="ref-1")

    with pytest.raises(DuplicateReferenceError):
        services.ledger.create_transaction("paystack", 100, "a@b.co", reference="ref-1")
    with pytest.raises(TransactionNotFoundError):
        services.ledger.get_transaction("flutterwave", "ref-1")
    with pytest.raises(TransactionNotFoundError):
        services.ledger.get_transaction_by_id("paystack", "missing")

    # Same reference is free on the other provider
    assert services.ledger.create_transaction("flutterwave", 100, "a@b.co", reference="ref-1").reference == "ref-1"


def test_stale_snapshot_cannot_resolve_twice(services):
    """
    Resolving the same in-memory (now stale) pending object twice moves the
    transaction once and leaves the next queued outcome in place.
    """
    txn = services.ledger.create_transaction("paystack", 100, "a@b.co")

    first = services.ledger.resolve(txn)
    services.control.set_next_outcome("cancelled")
    second = services.ledger.resolve(txn)

    assert first.resolved is True
    assert second.resolved is False
    assert second.transaction.status == TransactionStatus.SUCCESS
    assert services.ledger.get_transaction("paystack", txn.reference).status == TransactionStatus.SUCCESS
    assert services.control.outcome.peek().value == "cancelled"


def test_concurrent_resolves_pick_one_winner(services):
    services.control.set_next_outcome("failed")
    txn = services.ledger.create_transaction("paystack", 100, "a@b.co")
    workers = 4
    barrier = threading.Barrier(workers)
    results = []

    def resolve():
        barrier.wait()
        results.append(services.ledger.resolve(txn))

    threads = [threading.Thread(target=resolve) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(results) == workers
    assert sum(r.resolved for r in results) == 1
    assert {r.transaction.status for r in results} == {TransactionStatus.FAILED}
    # Only the winner consumed a queued outcome
    assert services.control.outcome.peek().value == "success"
