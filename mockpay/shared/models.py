"""Domain models, state machines, and enums shared across both mock providers."""

import secrets
import time
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


# === Enums ===

class Provider(str, Enum):
    PAYSTACK = "paystack"
    FLUTTERWAVE = "flutterwave"


class PaymentOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Fault(str, Enum):
    NONE = "none"
    SERVER_ERROR = "server_error"
    TIMEOUT = "timeout"
    NETWORK_DROP = "network_drop"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    SUCCESSFUL = "successful"
    FAILED = "failed"
    ABANDONED = "abandoned"
    CANCELLED = "cancelled"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    DROPPED = "dropped"


DEFAULT_OUTCOME = PaymentOutcome.SUCCESS
DEFAULT_FAULT = Fault.NONE


# === State Machine Transitions ===

TRANSACTION_TRANSITIONS: dict[TransactionStatus, list[TransactionStatus]] = {
    TransactionStatus.PENDING: [
        TransactionStatus.SUCCESS,
        TransactionStatus.SUCCESSFUL,
        TransactionStatus.FAILED,
        TransactionStatus.ABANDONED,
        TransactionStatus.CANCELLED,
    ],
    TransactionStatus.SUCCESS: [],
    TransactionStatus.SUCCESSFUL: [],
    TransactionStatus.FAILED: [],
    TransactionStatus.ABANDONED: [],
    TransactionStatus.CANCELLED: [],
}

# How each provider names the terminal state for a generic outcome
PROVIDER_STATUS_MAP: dict[Provider, dict[PaymentOutcome, TransactionStatus]] = {
    Provider.PAYSTACK: {
        PaymentOutcome.SUCCESS: TransactionStatus.SUCCESS,
        PaymentOutcome.FAILED: TransactionStatus.FAILED,
        PaymentOutcome.CANCELLED: TransactionStatus.ABANDONED,
    },
    Provider.FLUTTERWAVE: {
        PaymentOutcome.SUCCESS: TransactionStatus.SUCCESSFUL,
        PaymentOutcome.FAILED: TransactionStatus.FAILED,
        PaymentOutcome.CANCELLED: TransactionStatus.CANCELLED,
    },
}

REFERENCE_PREFIXES: dict[Provider, str] = {
    Provider.PAYSTACK: "PSK",
    Provider.FLUTTERWAVE: "FLW",
}

TRANSFER_PREFIXES: dict[Provider, str] = {
    Provider.PAYSTACK: "PST",
    Provider.FLUTTERWAVE: "FLT",
}


def generate_reference(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


def provider_error_body(provider: Provider, message: str) -> dict:
    if provider == Provider.FLUTTERWAVE:
        return {"status": "error", "message": message, "data": None}
    return {"status": False, "message": message}


# === Domain Models ===

class WebhookPolicy(BaseModel):
    delay_ms: int = Field(1500, ge=0)
    retry_count: int = Field(0, ge=0)
    retry_delay_ms: int = Field(2000, ge=0)
    duplicate: bool = False
    drop: bool = False


class WebhookPolicyUpdate(BaseModel):
    delay_ms: Optional[int] = Field(None, ge=0)
    retry_count: Optional[int] = Field(None, ge=0)
    retry_delay_ms: Optional[int] = Field(None, ge=0)
    duplicate: Optional[bool] = None
    drop: Optional[bool] = None


class WebhookPayload(BaseModel):
    event: str
    data: dict[str, Any]


class Webhook(BaseModel):
    """One notification handed to the delivery engine; also what gets
    remembered as the last webhook for resends."""

    provider: Provider
    event: str
    url: str = ""
    payload: dict[str, Any]


class Transaction(BaseModel):
    id: str
    provider: Provider
    reference: str
    status: TransactionStatus = TransactionStatus.PENDING
    amount: float
    currency: str = "NGN"
    customer_email: str
    customer_name: Optional[str] = None
    callback_url: Optional[str] = None
    metadata: Optional[Any] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Transfer(BaseModel):
    id: str
    provider: Provider
    reference: str
    status: str = "pending"
    amount: float
    currency: str = "NGN"
    bank_code: Optional[str] = None
    account_number: Optional[str] = None
    narration: Optional[str] = None
    metadata: Optional[Any] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class WebhookDelivery(BaseModel):
    id: str
    provider: Provider
    event: str
    url: str
    status: DeliveryStatus
    attempts: int = 0
    payload: str
    last_attempt_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
