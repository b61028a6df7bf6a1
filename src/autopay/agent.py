"""
Auto-pay agent orchestration.

Flow for an agent-initiated payment:
1. Parse the invoice amount (base units) and scale it for the policy check
2. Deterministic policy (resets the daily ledger lazily)
3. Optional advisory review, which can only deny
4. Sign an EIP-3009 transfer authorization
5. Debit the daily ledger

Steps 2-5 run under one lock so concurrent requests cannot both pass the
daily limit check before either debits.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from .advisory import AdvisoryGate, GroqCompletionClient
from .chain import BalancePoller, ChainClient, RpcChainClient, format_ether
from .config import AdvisoryMode, AgentConfig, PolicyConfig
from .errors import ChainError, SigningError
from .invoices import Invoice
from .ledger import SpendLedger
from .money import base_units_to_decimal, parse_base_units
from .policy import ALLOW, PolicyDecision, PolicyEvaluator
from .signer import AuthorizationSigner

logger = logging.getLogger(__name__)


@dataclass
class PaymentResult:
    """Result of an agent payment attempt."""

    success: bool
    signature: Optional[str] = None
    reference: Optional[str] = None
    error: Optional[str] = None
    amount: float = 0.0

    def to_dict(self) -> dict:
        d: dict = {"success": self.success}
        if self.success:
            d["signature"] = self.signature
            d["txHash"] = self.reference
        else:
            d["error"] = self.error
        d["amount"] = self.amount
        return d


class AutoPayAgent:
    """Decides on, signs and accounts for payments made by the agent wallet."""

    def __init__(
        self,
        signer: AuthorizationSigner,
        policy_config: Optional[PolicyConfig] = None,
        ledger: Optional[SpendLedger] = None,
        advisory: Optional[AdvisoryGate] = None,
        advisory_mode: AdvisoryMode = AdvisoryMode.DISABLED,
        chain: Optional[ChainClient] = None,
        balance_poll_interval: float = 30.0,
    ):
        self.signer = signer
        self.ledger = ledger or SpendLedger()
        self.policy = PolicyEvaluator(policy_config or PolicyConfig(), self.ledger)
        self.advisory = advisory
        self.advisory_mode = advisory_mode if advisory is not None else AdvisoryMode.DISABLED
        self.chain = chain
        self._lock = threading.RLock()
        self._poller: Optional[BalancePoller] = None
        self._balance_poll_interval = balance_poll_interval

    @classmethod
    def from_config(cls, config: AgentConfig) -> "AutoPayAgent":
        signer = AuthorizationSigner.from_private_key(config.private_key, token=config.token)
        agent = cls(
            signer=signer,
            policy_config=config.policy,
            chain=RpcChainClient(config.rpc_url),
            balance_poll_interval=config.balance_poll_interval,
        )
        if config.advisory.enabled:
            agent.advisory = AdvisoryGate(
                GroqCompletionClient.from_config(config.advisory),
                agent.policy,
                currency=config.invoice.currency,
            )
            agent.advisory_mode = config.advisory.mode
            logger.info("Agent advisory review initialized (mode: %s)", config.advisory.mode.value)
        return agent

    @property
    def address(self) -> str:
        return self.signer.address

    @property
    def advisory_active(self) -> bool:
        return self.advisory is not None and self.advisory_mode is not AdvisoryMode.DISABLED

    def can_pay(
        self,
        amount: Decimal | float | int | str,
        invoice: Optional[Invoice] = None,
    ) -> PolicyDecision:
        with self._lock:
            decision = self.policy.evaluate(amount)
            if not decision.allowed:
                return decision

            if not self.advisory_active or invoice is None:
                return ALLOW

            ai_decision = self.advisory.review(invoice, amount)
            if self.advisory_mode is AdvisoryMode.ADVISORY:
                return ai_decision
            if self.advisory_mode is AdvisoryMode.HYBRID:
                return ai_decision if not ai_decision.allowed else ALLOW
            return ALLOW

    def process_payment(self, invoice: Invoice) -> PaymentResult:
        try:
            amount_base = parse_base_units(invoice.amount)
        except ValueError as e:
            return PaymentResult(success=False, error=f"Invalid payment amount: {e}")
        amount = base_units_to_decimal(amount_base)

        logger.info(
            "Processing payment for invoice %s: %s %s (%s)",
            invoice.id, amount, invoice.currency, invoice.description,
        )

        with self._lock:
            decision = self.can_pay(amount, invoice)
            if not decision.allowed:
                logger.warning("Payment denied for invoice %s: %s", invoice.id, decision.reason)
                return PaymentResult(success=False, error=decision.reason, amount=float(amount))

            try:
                signature = self.signer.authorize(invoice.pay_to, amount_base)
            except SigningError as e:
                logger.error("Payment failed for invoice %s: %s", invoice.id, e)
                return PaymentResult(success=False, error=str(e), amount=float(amount))

            self.ledger.debit(amount_base)

        reference = f"0x{int(time.time() * 1000):x}"
        logger.info("Payment authorized for invoice %s (reference %s)", invoice.id, reference)
        return PaymentResult(
            success=True,
            signature=signature,
            reference=reference,
            amount=float(amount),
        )

    def get_status(self) -> dict:
        return {
            "address": self.address,
            "aiType": self.advisory_mode.value,
            "advisoryActive": self.advisory_active,
            "rules": self.policy.config.to_dict(),
            "dailySpending": self.ledger.daily_spent_float,
        }

    def initialize(self) -> int:
        """Read and log the agent balance; failure blocks startup."""
        if self.chain is None:
            raise ChainError("No chain client configured")
        balance = self.chain.get_balance(self.address)
        logger.info("Agent initialized: %s", self.address)
        logger.info("Agent balance: %s", format_ether(balance))
        logger.info("Auto-pay rules: %s", self.policy.config.to_dict())
        logger.info("Advisory mode: %s", self.advisory_mode.value)
        if balance == 0:
            logger.warning("Agent balance is 0. The agent won't be able to pay invoices.")
        return balance

    def start(self) -> None:
        if self.chain is None or self._poller is not None:
            return
        self._poller = BalancePoller(self.chain, self.address, self._balance_poll_interval)
        self._poller.start()
        logger.info("Agent listening for x402 invoices")

    def stop(self) -> None:
        if self._poller is None:
            return
        self._poller.stop()
        self._poller = None
        logger.info("Agent stopped")

    def close(self) -> None:
        """Stop polling and release the HTTP clients of the chain and advisory backends."""
        self.stop()
        if self.advisory is not None:
            self.advisory.close()
        close_chain = getattr(self.chain, "close", None)
        if close_chain is not None:
            close_chain()
