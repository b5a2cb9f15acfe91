"""Provider-specific routes and webhook payload variants."""

from typing import Union

from mockpay.providers.flutterwave import FlutterwaveTransaction
from mockpay.providers.paystack import PaystackTransaction
from mockpay.shared.models import Provider, Transaction

ProviderTransaction = Union[PaystackTransaction, FlutterwaveTransaction]

PROVIDER_VARIANTS = {
    Provider.PAYSTACK: PaystackTransaction,
    Provider.FLUTTERWAVE: FlutterwaveTransaction,
}


def variant_for(txn: Transaction) -> ProviderTransaction:
    return PROVIDER_VARIANTS[txn.provider].from_transaction(txn)
