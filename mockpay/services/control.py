"""Control plane: one-shot outcome/fault flags, webhook policy, and resets.

Testers script a scenario by telling the mock what happens next and then
performing exactly one triggering request. Both flags are therefore
take-and-reset: reading the value puts the default back in the same locked
swap, so state never leaks from one test case into the next.
"""

import logging
from enum import Enum
from typing import Optional, Union

from pydantic import ValidationError

from mockpay.services.settings_store import SettingsStore
from mockpay.shared.config import MockpayConfig
from mockpay.shared.file_store import CollectionStore, StoreUnavailableError
from mockpay.shared.models import (
    DEFAULT_FAULT,
    DEFAULT_OUTCOME,
    Fault,
    PaymentOutcome,
    Webhook,
    WebhookPolicy,
    WebhookPolicyUpdate,
)

logger = logging.getLogger("mockpay.control")

NEXT_PAYMENT_KEY = "next_payment_result"
NEXT_ERROR_KEY = "next_error"
WEBHOOK_CONFIG_KEY = "webhook_config"
LAST_WEBHOOK_KEY = "last_webhook"

# Short spellings accepted from the CLI and the control endpoints
OUTCOME_ALIASES = {
    "fail": PaymentOutcome.FAILED,
    "cancel": PaymentOutcome.CANCELLED,
}

FAULT_ALIASES = {
    "500": Fault.SERVER_ERROR,
    "network": Fault.NETWORK_DROP,
}


def parse_outcome(value: str) -> PaymentOutcome:
    value = value.strip().lower()
    return OUTCOME_ALIASES.get(value) or PaymentOutcome(value)


def parse_fault(value: str) -> Fault:
    value = value.strip().lower()
    return FAULT_ALIASES.get(value) or Fault(value)


class OneShotFlag:

    def __init__(self, settings: SettingsStore, key: str, kind: type[Enum], default: Enum):
        self.settings = settings
        self.key = key
        self.kind = kind
        self.default = default

    def take(self) -> Enum:
        try:
            raw = self.settings.take(self.key, self.default.value)
        except StoreUnavailableError as e:
            logger.warning(f"Could not take {self.key}, using {self.default.value}: {e}")
            return self.default
        try:
            return self.kind(raw)
        except ValueError:
            logger.warning(f"Ignoring unknown {self.key} value {raw!r}")
            return self.default

    def peek(self) -> Enum:
        try:
            return self.kind(self.settings.get(self.key, self.default.value))
        except (StoreUnavailableError, ValueError):
            return self.default

    def set(self, value: Union[Enum, str]) -> Enum:
        member = self.kind(value)
        self.settings.set(self.key, member.value)
        return member


class ControlPlane:

    def __init__(self, store: CollectionStore, config: MockpayConfig):
        self.store = store
        self.config = config
        self.settings = SettingsStore(store.settings)
        self.outcome = OneShotFlag(self.settings, NEXT_PAYMENT_KEY, PaymentOutcome, DEFAULT_OUTCOME)
        self.fault = OneShotFlag(self.settings, NEXT_ERROR_KEY, Fault, DEFAULT_FAULT)

    # === One-shot flags ===

    def take_next_outcome(self) -> PaymentOutcome:
        return self.outcome.take()

    def set_next_outcome(self, outcome: Union[PaymentOutcome, str]) -> PaymentOutcome:
        member = self.outcome.set(outcome)
        logger.info(f"Next payment result set to {member.value}")
        return member

    def take_next_fault(self) -> Fault:
        return self.fault.take()

    def set_next_fault(self, fault: Union[Fault, str]) -> Fault:
        member = self.fault.set(fault)
        logger.info(f"Next error set to {member.value}")
        return member

    # === Webhook policy ===

    def default_webhook_policy(self) -> WebhookPolicy:
        return WebhookPolicy(
            delay_ms=max(self.config.webhook_delay_ms, 0),
            retry_count=max(self.config.webhook_retry_count, 0),
            retry_delay_ms=max(self.config.webhook_retry_delay_ms, 0),
            duplicate=self.config.webhook_duplicate,
            drop=self.config.webhook_drop,
        )

    def get_webhook_config(self) -> WebhookPolicy:
        fallback = self.default_webhook_policy()
        try:
            stored = self.settings.get(WEBHOOK_CONFIG_KEY)
        except StoreUnavailableError as e:
            logger.warning(f"Webhook config unavailable, using defaults: {e}")
            return fallback
        if not isinstance(stored, dict):
            return fallback
        try:
            return WebhookPolicy(**{**fallback.model_dump(), **stored})
        except ValidationError:
            logger.warning("Stored webhook config is invalid, using defaults")
            return fallback

    def set_webhook_config(self, update: Union[WebhookPolicyUpdate, dict]) -> WebhookPolicy:
        if isinstance(update, dict):
            update = WebhookPolicyUpdate(**update)
        current = self.get_webhook_config()
        new_policy = current.model_copy(update=update.model_dump(exclude_none=True))
        self.settings.set(WEBHOOK_CONFIG_KEY, new_policy.model_dump())
        logger.info(f"Updated webhook config: {new_policy.model_dump()}")
        return new_policy

    # === Last webhook ===

    def set_last_webhook(self, webhook: Webhook) -> None:
        self.settings.set(LAST_WEBHOOK_KEY, webhook.model_dump(mode="json"))

    def get_last_webhook(self) -> Optional[Webhook]:
        stored = self.settings.get(LAST_WEBHOOK_KEY)
        if not stored:
            return None
        try:
            return Webhook(**stored)
        except ValidationError:
            logger.warning("Stored last webhook is invalid, ignoring it")
            return None

    # === Resets ===

    def reset_flags(self) -> None:
        self.settings.set(NEXT_PAYMENT_KEY, DEFAULT_OUTCOME.value)
        self.settings.set(NEXT_ERROR_KEY, DEFAULT_FAULT.value)

    def reset_all(self) -> None:
        logger.info("Clearing all mock data")
        # Each collection is cleared on its own; a failure part way leaves
        # the earlier ones cleared.
        for collection in self.store.all():
            collection.delete_all()
