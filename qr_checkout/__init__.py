"""Checkout backend for BNB QR Simple payments."""

__version__ = "0.1.0"
