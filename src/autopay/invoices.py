"""
Invoices and payment records for the pay-for-access flow.

State is process memory only. A requester counts as paid once any payment
record exists for their (lower-cased) address. A client token is only
accepted against an outstanding invoice of that requester that has not
expired and has not been paid yet. Expired and paid invoices are dropped
whenever an invoice is issued or a token is checked.
"""

from __future__ import annotations

import base64
import binascii
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from .config import InvoiceConfig, TokenConfig
from .errors import InvoiceNotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Invoice:
    """An amount a requester owes before a paid action is granted."""

    id: str
    address: str
    amount: str  # base units
    currency: str
    network: str
    description: str
    pay_to: str
    timestamp: int  # ms since epoch
    expires_at: int  # ms since epoch

    def is_expired(self, now_ms: Optional[int] = None) -> bool:
        now_ms = _now_ms() if now_ms is None else now_ms
        return now_ms >= self.expires_at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "address": self.address,
            "amount": self.amount,
            "currency": self.currency,
            "network": self.network,
            "description": self.description,
            "timestamp": self.timestamp,
            "expiresAt": self.expires_at,
            "X-Payment-Amount": self.amount,
            "X-Payment-Currency": self.currency,
            "X-Payment-To": self.pay_to,
        }


@dataclass(frozen=True)
class PaymentRecord:
    """A completed payment."""

    address: str
    amount: str
    tx_hash: str
    timestamp: int
    invoice_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "amount": self.amount,
            "txHash": self.tx_hash,
            "timestamp": self.timestamp,
            "invoiceId": self.invoice_id,
        }


# (address, decoded token, invoice) -> accept?
TokenVerifier = Callable[[str, str, Invoice], bool]


def accept_decoded_token(address: str, decoded: str, invoice: Invoice) -> bool:
    """Default verifier: any non-empty decoded token is accepted.

    Recovering the EIP-3009 signer and checking settlement on-chain is left
    to a verifier supplied by the deployment.
    """
    return bool(decoded)


class InvoiceLedger:
    """Issues invoices and records payments, keyed by requester address."""

    def __init__(
        self,
        config: Optional[InvoiceConfig] = None,
        token: Optional[TokenConfig] = None,
        verifier: TokenVerifier = accept_decoded_token,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or InvoiceConfig()
        self.token = token or TokenConfig()
        self._verifier = verifier
        self._clock = clock
        self._lock = threading.Lock()
        self._invoices: dict[str, Invoice] = {}
        self._paid_invoices: set[str] = set()
        self._payments: dict[str, list[PaymentRecord]] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def payment_requirements(self) -> dict:
        """x402 "exact" scheme requirements for the premium-play fee."""
        return {
            "scheme": "exact",
            "network": self.config.network,
            "payTo": self.config.pay_to,
            "asset": self.token.verifying_contract,
            "maxAmountRequired": self.config.fee_amount,
            "maxTimeoutSeconds": self.token.validity_seconds,
        }

    def create_invoice(self, address: str) -> Invoice:
        now_ms = self._now_ms()
        invoice = Invoice(
            id=str(uuid.uuid4()),
            address=address.lower(),
            amount=self.config.fee_amount,
            currency=self.config.currency,
            network=self.config.network,
            description=self.config.description,
            pay_to=self.config.pay_to,
            timestamp=now_ms,
            expires_at=now_ms + self.config.expiry_seconds * 1000,
        )
        with self._lock:
            self._drop_settled(now_ms)
            self._invoices[invoice.id] = invoice
        logger.info("Invoice %s issued to %s (%s %s)", invoice.id, invoice.address,
                    invoice.amount, invoice.currency)
        return invoice

    def get_invoice(self, invoice_id: str) -> Invoice:
        with self._lock:
            invoice = self._invoices.get(invoice_id)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def has_paid(self, address: str) -> bool:
        with self._lock:
            return bool(self._payments.get(address.lower()))

    def verify_payment(
        self,
        address: str,
        payment_token: Optional[str] = None,
        invoice_id: Optional[str] = None,
    ) -> bool:
        key = address.lower()
        if self.has_paid(key):
            return True

        if not payment_token:
            return False

        decoded = _decode_token(payment_token)
        if not decoded:
            logger.warning("Invalid payment token from %s", key)
            return False

        with self._lock:
            self._drop_settled(self._now_ms())
            invoice = self._outstanding_invoice(key, invoice_id)
            if invoice is None:
                logger.warning("No outstanding invoice for %s", key)
                return False
            if not self._verifier(key, decoded, invoice):
                logger.warning("Payment token rejected for %s (invoice %s)", key, invoice.id)
                return False

            record = PaymentRecord(
                address=key,
                amount=invoice.amount,
                tx_hash=payment_token[:66] or "x402-payment",
                timestamp=self._now_ms(),
                invoice_id=invoice.id,
            )
            self._store(record)

        logger.info("Payment verified for %s (invoice %s)", key, invoice.id)
        return True

    def record_payment(
        self,
        address: str,
        settlement_reference: str,
        invoice_id: Optional[str] = None,
    ) -> PaymentRecord:
        record = PaymentRecord(
            address=address.lower(),
            amount=self.config.fee_amount,
            tx_hash=settlement_reference,
            timestamp=self._now_ms(),
            invoice_id=invoice_id,
        )
        with self._lock:
            self._store(record)
        return record

    def get_payment_history(self, address: str) -> list[PaymentRecord]:
        with self._lock:
            return list(self._payments.get(address.lower(), []))

    def cleanup_expired(self) -> int:
        """Drop expired and already-paid invoices; returns how many were removed."""
        with self._lock:
            return self._drop_settled(self._now_ms())

    def _drop_settled(self, now_ms: int) -> int:
        stale = [
            inv_id for inv_id, inv in self._invoices.items()
            if inv_id in self._paid_invoices or inv.is_expired(now_ms)
        ]
        for inv_id in stale:
            del self._invoices[inv_id]
        self._paid_invoices.clear()
        if stale:
            logger.debug("Dropped %d settled or expired invoices", len(stale))
        return len(stale)

    def _store(self, record: PaymentRecord) -> None:
        self._payments.setdefault(record.address, []).append(record)
        if record.invoice_id:
            self._paid_invoices.add(record.invoice_id)

    def _outstanding_invoice(self, address: str, invoice_id: Optional[str]) -> Optional[Invoice]:
        now_ms = self._now_ms()

        def redeemable(inv: Invoice) -> bool:
            return (
                inv.address == address
                and inv.id not in self._paid_invoices
                and not inv.is_expired(now_ms)
            )

        if invoice_id is not None:
            invoice = self._invoices.get(invoice_id)
            return invoice if invoice is not None and redeemable(invoice) else None

        candidates = [inv for inv in self._invoices.values() if redeemable(inv)]
        if not candidates:
            return None
        return max(candidates, key=lambda inv: inv.timestamp)


def _decode_token(token: str) -> Optional[str]:
    try:
        return base64.b64decode(token, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None


def _now_ms() -> int:
    return int(time.time() * 1000)
