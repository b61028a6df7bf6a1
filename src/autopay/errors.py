"""
Autopay error types.

Policy denials are returned as values, not raised. The exceptions below
cover the failure modes callers handle separately (abort startup, fail a
single payment, fall back to deterministic policy).
"""

from __future__ import annotations


class AutopayError(Exception):
    """Base error for all Autopay operations."""
    pass


class ConfigurationError(AutopayError):
    """Missing or malformed configuration (fatal at startup)."""
    pass


class SigningError(AutopayError):
    """Transfer authorization could not be built or signed."""
    pass


class AdvisoryError(AutopayError):
    """Completion service call failed or returned an unusable payload."""
    pass


class ChainError(AutopayError):
    """RPC request to the chain failed."""
    def __init__(self, message: str, code: int | None = None):
        self.code = code
        super().__init__(message)


class InvoiceError(AutopayError):
    """Invoice lookup or payment bookkeeping failure."""
    pass


class InvoiceNotFoundError(InvoiceError):
    """No invoice with the given ID."""
    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")
