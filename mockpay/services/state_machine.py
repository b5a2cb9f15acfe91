"""State machine validation and outcome mapping for mock transactions."""

from mockpay.shared.models import (
    PROVIDER_STATUS_MAP,
    TRANSACTION_TRANSITIONS,
    PaymentOutcome,
    Provider,
    TransactionStatus,
)


class InvalidTransitionError(Exception):
    def __init__(self, entity_type: str, current: str, target: str):
        self.entity_type = entity_type
        self.current = current
        self.target = target
        super().__init__(
            f"Invalid {entity_type} transition: {current} -> {target}"
        )


def is_terminal(status: str) -> bool:
    return not TRANSACTION_TRANSITIONS.get(TransactionStatus(status), [])


def status_for_outcome(provider: str, outcome: str) -> TransactionStatus:
    return PROVIDER_STATUS_MAP[Provider(provider)][PaymentOutcome(outcome)]


def validate_transaction_transition(current: str, target: str) -> bool:
    current_state = TransactionStatus(current)
    target_state = TransactionStatus(target)
    allowed = TRANSACTION_TRANSITIONS.get(current_state, [])
    if target_state not in allowed:
        raise InvalidTransitionError("transaction", current, target)
    return True
