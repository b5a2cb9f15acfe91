from tests.conftest import WEBHOOK_URL


def test_health_endpoints(paystack, flutterwave):
    assert paystack.get("/").json() == {"status": "ok", "provider": "paystack"}
    assert paystack.get("/__health").json() == {"status": "healthy", "service": "mockpay-paystack"}
    assert flutterwave.get("/__health").json()["service"] == "mockpay-flutterwave"


def test_request_id_is_generated(paystack):
    resp = paystack.get("/__health")
    assert resp.headers["X-Request-Id"].startswith("req_")


def test_set_outcome_via_api(paystack, services):
    resp = paystack.post("/__control/outcome", json={"outcome": "fail"})

    assert resp.status_code == 200
    assert resp.json() == {"status": True, "next_outcome": "failed"}
    assert services.control.take_next_outcome().value == "failed"


def test_set_outcome_rejects_unknown_value(paystack, services):
    resp = paystack.post("/__control/outcome", json={"outcome": "refunded"})

    assert resp.status_code == 400
    assert services.control.outcome.peek().value == "success"


def test_set_fault_via_api(flutterwave):
    assert flutterwave.post("/__control/fault", json={"fault": "timeout"}).json()["next_fault"] == "timeout"
    assert flutterwave.post("/__control/fault", json={"fault": "teapot"}).status_code == 400


def test_state_snapshot(paystack, services):
    services.control.set_next_outcome("cancelled")

    state = paystack.get("/__control/state").json()

    assert state["next_outcome"] == "cancelled"
    assert state["next_fault"] == "none"
    assert state["webhook_config"]["delay_ms"] == 0


def test_webhook_config_patch_merges(paystack):
    resp = paystack.patch("/__control/webhook-config", json={"retry_count": 2, "drop": True})

    assert resp.status_code == 200
    assert resp.json()["retry_count"] == 2
    assert resp.json()["drop"] is True
    assert resp.json()["delay_ms"] == 0

    current = paystack.get("/__control/webhook-config").json()
    assert current == resp.json()


def test_webhook_config_patch_validates(paystack):
    resp = paystack.patch("/__control/webhook-config", json={"delay_ms": -1})
    assert resp.status_code == 422


def test_resend_endpoint(paystack, sink):
    assert paystack.post("/__control/webhooks/resend").json()["resent"] is False

    ref = paystack.post(
        "/transaction/initialize",
        json={"amount": 100, "email": "a@b.co", "callback_url": WEBHOOK_URL},
    ).json()["data"]["reference"]
    paystack.get(f"/transaction/verify/{ref}")

    resp = paystack.post("/__control/webhooks/resend")

    assert resp.json()["resent"] is True
    assert resp.json()["event"] == "charge.success"
    assert len(sink.requests) == 2


def test_webhook_deliveries_listing(paystack, services, sink):
    sink.statuses = [500]
    for _ in range(2):
        ref = paystack.post(
            "/transaction/initialize",
            json={"amount": 100, "email": "a@b.co", "callback_url": WEBHOOK_URL},
        ).json()["data"]["reference"]
        paystack.get(f"/transaction/verify/{ref}")

    listing = paystack.get("/__control/webhooks").json()
    failed = paystack.get("/__control/webhooks", params={"status": "failed"}).json()

    assert listing["total"] == 2
    assert listing["items"][0]["status"] == "sent"
    assert failed["total"] == 1


def test_reset_endpoint(paystack, services):
    paystack.post("/transaction/initialize", json={"amount": 100, "email": "a@b.co"})
    services.control.set_next_fault("timeout")
    assert services.store.transactions.find() != []

    resp = paystack.post("/__control/reset")

    assert resp.json() == {"status": True, "message": "Database cleared"}
    assert services.store.transactions.find() == []
    assert services.store.settings.find() == []
    assert services.control.take_next_fault().value == "none"


def test_request_lines_are_persisted_to_logs(paystack, services):
    paystack.get("/banks")

    messages = [e["message"] for e in services.store.logs.find(level="http")]

    assert any(m.startswith("GET /banks -> 200") for m in messages)


# === Hosted checkout completion ===

def test_complete_requires_reference(paystack):
    resp = paystack.post("/mock/complete", json={})
    assert resp.status_code == 400


def test_complete_unknown_reference(flutterwave):
    resp = flutterwave.post("/mock/complete", json={"reference": "FLW_nope"})
    assert resp.status_code == 404
    assert resp.json()["status"] == "error"


def test_complete_resolves_once(paystack, services, sink):
    services.control.set_next_outcome("failed")
    ref = paystack.post(
        "/transaction/initialize",
        json={"amount": 100, "email": "a@b.co", "callback_url": WEBHOOK_URL},
    ).json()["data"]["reference"]

    first = paystack.post("/mock/complete", json={"reference": ref}).json()
    second = paystack.post("/mock/complete", json={"reference": ref}).json()

    assert first["data"] == {"reference": ref, "status": "failed", "provider": "paystack"}
    assert second["data"]["status"] == "failed"
    assert second["message"] == "Transaction already resolved"
    assert [p["event"] for p in sink.payloads] == ["charge.failed"]


def test_complete_flutterwave_does_not_refire(flutterwave, sink):
    tx_ref = flutterwave.post(
        "/payments", json={"amount": 100, "redirect_url": WEBHOOK_URL}
    ).json()["data"]["tx_ref"]

    flutterwave.post("/mock/complete", json={"reference": tx_ref})
    flutterwave.post("/mock/complete", json={"reference": tx_ref})

    assert [p["event"] for p in sink.payloads] == ["charge.completed"]
