import json

import httpx
import pytest
from fastapi.testclient import TestClient

from mockpay.main import create_app
from mockpay.services import Services
from mockpay.shared.config import MockpayConfig
from mockpay.shared.models import Provider

WEBHOOK_URL = "http://merchant.test/webhooks/payments"


class WebhookSink:
    """Stands in for the merchant's webhook endpoint.

    Answers 200 unless ``statuses`` holds scripted codes, consumed in order.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.statuses: list[int] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, json={"received": True})

    @property
    def payloads(self) -> list[dict]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def config(tmp_path):
    (tmp_path / "data").mkdir(exist_ok=True)
    return MockpayConfig(
        data_dir=str(tmp_path / "data"),
        webhook_delay_ms=0,
        webhook_retry_delay_ms=0,
        timeout_fault_s=0.01,
        network_drop_delay_s=0,
        store_lock_timeout_s=2,
    )


@pytest.fixture
def sink():
    return WebhookSink()


@pytest.fixture
def services(config, sink):
    return Services(config, transport=httpx.MockTransport(sink.handler))


@pytest.fixture
def paystack(services):
    with TestClient(create_app(Provider.PAYSTACK, services)) as client:
        yield client


@pytest.fixture
def flutterwave(services):
    with TestClient(create_app(Provider.FLUTTERWAVE, services)) as client:
        yield client
