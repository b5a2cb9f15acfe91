"""Transaction ledger - mock transactions and transfers keyed by provider + reference."""

import logging
from typing import Any, Optional

from mockpay.services.control import ControlPlane
from mockpay.services.state_machine import (
    is_terminal,
    status_for_outcome,
    validate_transaction_transition,
)
from mockpay.shared.file_store import CollectionStore
from mockpay.shared.models import (
    REFERENCE_PREFIXES,
    TRANSFER_PREFIXES,
    Provider,
    Transaction,
    TransactionStatus,
    Transfer,
    generate_reference,
)

logger = logging.getLogger("mockpay.ledger")


class TransactionNotFoundError(Exception):
    def __init__(self, provider: str, reference: str):
        self.provider = provider
        self.reference = reference
        super().__init__(f"Transaction {reference} not found")


class DuplicateReferenceError(Exception):
    def __init__(self, provider: str, reference: str):
        self.provider = provider
        self.reference = reference
        super().__init__(f"Transaction reference {reference} already exists")


class Resolution:
    def __init__(self, transaction: Transaction, resolved: bool):
        self.transaction = transaction
        # True only for the call that moved the transaction out of pending
        self.resolved = resolved


class TransactionLedger:

    def __init__(self, store: CollectionStore, control: ControlPlane):
        self.transactions = store.transactions
        self.transfers = store.transfers
        self.control = control

    def create_transaction(
        self,
        provider: Provider,
        amount: float,
        customer_email: str,
        currency: str = "NGN",
        customer_name: Optional[str] = None,
        callback_url: Optional[str] = None,
        metadata: Any = None,
        reference: Optional[str] = None,
    ) -> Transaction:
        provider = Provider(provider)
        if reference:
            if self.transactions.get_one(provider=provider.value, reference=reference):
                raise DuplicateReferenceError(provider.value, reference)
        else:
            reference = generate_reference(REFERENCE_PREFIXES[provider])

        saved = self.transactions.add({
            "provider": provider.value,
            "reference": reference,
            "status": TransactionStatus.PENDING.value,
            "amount": amount,
            "currency": currency,
            "customer_email": customer_email,
            "customer_name": customer_name,
            "callback_url": callback_url,
            "metadata": metadata,
        })
        logger.info(f"Created {provider.value} transaction {reference}")
        return Transaction(**saved)

    def get_transaction(self, provider: Provider, reference: str) -> Transaction:
        record = self.transactions.get_one(provider=Provider(provider).value, reference=reference)
        if not record:
            raise TransactionNotFoundError(Provider(provider).value, reference)
        return Transaction(**record)

    def get_transaction_by_id(self, provider: Provider, transaction_id: str) -> Transaction:
        record = self.transactions.get_one(provider=Provider(provider).value, id=transaction_id)
        if not record:
            raise TransactionNotFoundError(Provider(provider).value, transaction_id)
        return Transaction(**record)

    def resolve(self, transaction: Transaction) -> Resolution:
        """Move a pending transaction to the outcome queued for it.

        The pending check and the write happen under the transactions lock, and
        the queued outcome is taken only inside it. Of several concurrent (or
        stale) calls for one transaction exactly one resolves it; the rest get
        the stored record back untouched and leave the queued outcome alone.
        """
        if is_terminal(transaction.status.value):
            return Resolution(transaction, resolved=False)

        taken = {}

        def settle(record: dict) -> dict:
            outcome = self.control.take_next_outcome()
            status = status_for_outcome(record["provider"], outcome.value)
            validate_transaction_transition(record["status"], status.value)
            taken["outcome"] = outcome
            return {"status": status.value}

        updated = self.transactions.update_where(
            transaction.id, {"status": TransactionStatus.PENDING.value}, settle
        )
        if updated is None:
            current = self.transactions.get_by_id(transaction.id)
            if current is None:
                raise TransactionNotFoundError(transaction.provider.value, transaction.reference)
            return Resolution(Transaction(**current), resolved=False)

        logger.info(
            f"Transaction {transaction.reference} -> {updated['status']} "
            f"(outcome {taken['outcome'].value})"
        )
        return Resolution(Transaction(**updated), resolved=True)

    def create_transfer(
        self,
        provider: Provider,
        amount: float,
        currency: str = "NGN",
        bank_code: Optional[str] = None,
        account_number: Optional[str] = None,
        narration: Optional[str] = None,
        metadata: Any = None,
    ) -> Transfer:
        provider = Provider(provider)
        reference = generate_reference(TRANSFER_PREFIXES[provider])
        saved = self.transfers.add({
            "provider": provider.value,
            "reference": reference,
            "status": "pending",
            "amount": amount,
            "currency": currency,
            "bank_code": bank_code,
            "account_number": account_number,
            "narration": narration,
            "metadata": metadata,
        })
        logger.info(f"Queued {provider.value} transfer {reference}")
        return Transfer(**saved)
