"""Mockpay - local Paystack and Flutterwave mock servers."""

__version__ = "0.1.0"
