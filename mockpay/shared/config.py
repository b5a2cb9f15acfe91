"""Environment-driven configuration for the mock servers."""

import os
from typing import Optional

from pydantic import BaseModel


def _to_bool(value: Optional[str], fallback: bool) -> bool:
    if value is None:
        return fallback
    return value.lower() == "true"


def _to_num(value: Optional[str], fallback: float) -> float:
    if value is None or value == "":
        return fallback
    try:
        return float(value)
    except ValueError:
        return fallback


def _to_int(value: Optional[str], fallback: int) -> int:
    return int(_to_num(value, fallback))


class MockpayConfig(BaseModel):
    host: str = "127.0.0.1"
    paystack_port: int = 4010
    flutterwave_port: int = 4020
    data_dir: str = os.path.join(".mockpay", "data")
    frontend_url: str = "http://localhost:5173"
    default_webhook_url: Optional[str] = None

    # Default webhook policy, used until someone changes it at runtime
    webhook_delay_ms: int = 1500
    webhook_retry_count: int = 0
    webhook_retry_delay_ms: int = 2000
    webhook_duplicate: bool = False
    webhook_drop: bool = False

    webhook_timeout_s: float = 10.0
    timeout_fault_s: float = 15.0
    network_drop_delay_s: float = 0.05
    store_lock_timeout_s: float = 5.0
    log_level: str = "INFO"


def load_config(env: Optional[dict] = None) -> MockpayConfig:
    env = os.environ if env is None else env
    data_dir = env.get("MOCKPAY_DATA_DIR") or os.path.join(".mockpay", "data")

    return MockpayConfig(
        host=env.get("MOCKPAY_HOST", "127.0.0.1"),
        paystack_port=_to_int(env.get("MOCKPAY_PAYSTACK_PORT"), 4010),
        flutterwave_port=_to_int(env.get("MOCKPAY_FLUTTERWAVE_PORT"), 4020),
        data_dir=os.path.abspath(data_dir),
        frontend_url=env.get("MOCKPAY_FRONTEND_URL") or "http://localhost:5173",
        default_webhook_url=env.get("MOCKPAY_DEFAULT_WEBHOOK_URL") or None,
        webhook_delay_ms=_to_int(env.get("MOCKPAY_WEBHOOK_DELAY_MS"), 1500),
        webhook_retry_count=_to_int(env.get("MOCKPAY_WEBHOOK_RETRY_COUNT"), 0),
        webhook_retry_delay_ms=_to_int(env.get("MOCKPAY_WEBHOOK_RETRY_DELAY_MS"), 2000),
        webhook_duplicate=_to_bool(env.get("MOCKPAY_WEBHOOK_DUPLICATE"), False),
        webhook_drop=_to_bool(env.get("MOCKPAY_WEBHOOK_DROP"), False),
        webhook_timeout_s=_to_num(env.get("MOCKPAY_WEBHOOK_TIMEOUT_S"), 10.0),
        timeout_fault_s=_to_num(env.get("MOCKPAY_TIMEOUT_FAULT_S"), 15.0),
        network_drop_delay_s=_to_num(env.get("MOCKPAY_NETWORK_DROP_DELAY_S"), 0.05),
        store_lock_timeout_s=_to_num(env.get("MOCKPAY_STORE_LOCK_TIMEOUT_S"), 5.0),
        log_level=env.get("LOG_LEVEL", "INFO"),
    )
