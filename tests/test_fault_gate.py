import pytest

from mockpay.fault_gate import (
    ABORT_STATE_KEY,
    FaultInjectionGate,
    SimulatedNetworkDrop,
    should_simulate,
)
from mockpay.shared.models import Fault, Provider


@pytest.mark.parametrize("path,expected", [
    ("/transaction/initialize", True),
    ("/transaction/verify/PSK_1", True),
    ("/transactions/12/verify", True),
    ("/payments", True),
    ("/transfer", True),
    ("/transfers", True),
    ("/banks", True),
    ("/mock/complete", True),
    ("/", False),
    ("/__health", False),
    ("/__control/fault", False),
    ("/__logs", False),
])
def test_should_simulate(path, expected):
    assert should_simulate(path) is expected


def test_server_error_hits_exactly_one_request(paystack, services):
    services.control.set_next_fault("server_error")

    first = paystack.get("/banks")
    second = paystack.get("/banks")

    assert first.status_code == 500
    assert first.json() == {"status": False, "message": "Mockpay simulated 500 error"}
    assert second.status_code == 200
    assert second.json()["status"] is True


def test_server_error_uses_flutterwave_body(flutterwave, services):
    services.control.set_next_fault(Fault.SERVER_ERROR)

    resp = flutterwave.post("/payments", json={"amount": 5000, "customer": {"email": "a@b.co"}})

    assert resp.status_code == 500
    assert resp.json() == {"status": "error", "message": "Mockpay simulated 500 error", "data": None}
    assert services.store.transactions.find() == []


def test_exempt_paths_do_not_consume_fault(paystack, services):
    services.control.set_next_fault("server_error")

    assert paystack.get("/__health").status_code == 200
    assert paystack.get("/__control/state").json()["next_fault"] == "server_error"
    assert paystack.get("/").status_code == 200

    assert paystack.get("/banks").status_code == 500


def test_fault_skips_handler(paystack, services):
    services.control.set_next_fault("server_error")

    resp = paystack.post("/transaction/initialize", json={"amount": 1000, "email": "a@b.co"})

    assert resp.status_code == 500
    assert services.store.transactions.find() == []


def test_timeout_returns_504_after_delay(paystack, services):
    services.control.set_next_fault("timeout")

    resp = paystack.get("/banks")

    assert resp.status_code == 504
    assert resp.json()["message"] == "Mockpay simulated timeout"
    assert paystack.get("/banks").status_code == 200


def test_network_drop_without_abort_hook_raises(paystack, services):
    services.control.set_next_fault("network_drop")

    with pytest.raises(SimulatedNetworkDrop):
        paystack.get("/banks")

    assert paystack.get("/banks").status_code == 200


@pytest.mark.asyncio
async def test_network_drop_aborts_connection(services):
    """
    With a server-provided abort hook the gate severs the connection and
    sends nothing at all.
    """
    handled, aborted, sent = [], [], []

    async def app(scope, receive, send):
        handled.append(scope["path"])

    async def receive():
        return {"type": "http.request", "body": b"", "more_body": False}

    async def send(message):
        sent.append(message)

    gate = FaultInjectionGate(app, services.control, Provider.PAYSTACK, drop_delay_s=0)
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/banks",
        "headers": [],
        "state": {ABORT_STATE_KEY: lambda: aborted.append(True)},
    }
    services.control.set_next_fault("network_drop")

    await gate(scope, receive, send)

    assert aborted == [True]
    assert sent == []
    assert handled == []


@pytest.mark.asyncio
async def test_gate_passes_through_without_fault(services):
    handled = []

    async def app(scope, receive, send):
        handled.append(scope.get("path", scope["type"]))

    gate = FaultInjectionGate(app, services.control, Provider.PAYSTACK)

    await gate({"type": "http", "method": "GET", "path": "/banks", "headers": []}, None, None)
    await gate({"type": "lifespan"}, None, None)

    assert handled == ["/banks", "lifespan"]
