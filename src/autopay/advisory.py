"""
AI advisory review of payments the deterministic policy already allowed.

The gate can only turn an allow into a deny. A transport failure falls
back to the deterministic policy; an unparseable reply is a deny.
"""

from __future__ import annotations

import json
import logging
from decimal import Decimal
from typing import Any, Optional, Protocol

import httpx

from .config import AdvisoryConfig
from .errors import AdvisoryError
from .invoices import Invoice
from .money import amount_to_base_units, format_amount
from .policy import PolicyDecision, PolicyEvaluator

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = "You are a payment security agent. Always respond with valid JSON only."

PROMPT_TEMPLATE = """You are an AI payment agent for a blockchain gaming platform. Evaluate whether to approve this payment request.

Payment Details:
- Amount: {amount} {currency}
- Invoice ID: {invoice_id}
- Description: {description}
- Recipient: {recipient}
- Network: {network}
- Daily spending so far: {daily_spent} {currency}
- Daily limit: {daily_limit} {currency}
- Max per transaction: {max_per_tx} {currency}

Rules:
1. Amount must be reasonable for gaming (typically 0.01-0.05 {currency})
2. Daily spending should not exceed limits
3. Only approve legitimate gaming payments
4. Reject suspicious or unusually large amounts

Respond with ONLY a JSON object in this exact format:
{{
  "allowed": true or false,
  "reason": "brief explanation"
}}"""

UNPARSEABLE_REASON = "Advisory response could not be parsed"


class CompletionClient(Protocol):
    def complete(self, prompt: str) -> str: ...


class GroqCompletionClient:
    """Chat-completions client for Groq (or any OpenAI-compatible endpoint)."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not api_key:
            raise ValueError("Completion API key is required")
        self.model = model
        self._http = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: AdvisoryConfig) -> "GroqCompletionClient":
        return cls(
            api_key=config.api_key or "",
            model=config.model,
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
        )

    def complete(self, prompt: str) -> str:
        response = self._http.post(
            "/chat/completions",
            json={
                "model": self.model,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                "temperature": 0.3,
                "max_tokens": 200,
            },
        )
        if response.status_code != 200:
            raise AdvisoryError(
                f"Completion request failed ({response.status_code}): {response.text[:200]}"
            )
        try:
            return response.json()["choices"][0]["message"]["content"] or ""
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise AdvisoryError(f"Malformed completion response: {type(e).__name__}: {e}") from e

    def close(self):
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class AdvisoryGate:
    """Second-opinion reviewer over an external completion service."""

    def __init__(self, client: CompletionClient, policy: PolicyEvaluator, currency: str = "USDC"):
        self.client = client
        self.policy = policy
        self.currency = currency

    def build_prompt(self, invoice: Invoice, amount: Decimal | float | str) -> str:
        return PROMPT_TEMPLATE.format(
            amount=format_amount(amount_to_base_units(amount)),
            currency=self.currency,
            invoice_id=invoice.id,
            description=invoice.description,
            recipient=invoice.pay_to or "Unknown",
            network=invoice.network,
            daily_spent=f"{self.policy.ledger.daily_spent_float:.4f}",
            daily_limit=format_amount(self.policy.daily_limit),
            max_per_tx=format_amount(self.policy.max_per_tx),
        )

    def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            close()

    def review(self, invoice: Invoice, amount: Decimal | float | str) -> PolicyDecision:
        prompt = self.build_prompt(invoice, amount)
        try:
            reply = self.client.complete(prompt)
        except Exception as e:
            logger.warning(
                "Advisory call failed (%s: %s); using deterministic policy",
                type(e).__name__,
                e,
            )
            return self.policy.evaluate(amount)

        decision = parse_decision(reply)
        if decision is None:
            logger.error("Failed to parse advisory response: %r", reply[:200])
            return PolicyDecision(allowed=False, reason=UNPARSEABLE_REASON)

        logger.info(
            "Advisory decision for invoice %s: %s - %s",
            invoice.id,
            "approved" if decision.allowed else "denied",
            decision.reason,
        )
        return decision


def parse_decision(text: str) -> Optional[PolicyDecision]:
    """Parse the first balanced JSON object carrying a boolean ``allowed``."""
    obj = _first_json_object(text or "")
    if obj is None:
        return None
    allowed = obj.get("allowed")
    if not isinstance(allowed, bool):
        return None
    reason = obj.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        reason = "AI evaluation"
    return PolicyDecision(allowed=allowed, reason=reason)


def _first_json_object(text: str) -> Optional[dict[str, Any]]:
    start = text.find("{")
    while start != -1:
        end = _balanced_end(text, start)
        if end is None:
            return None
        try:
            value = json.loads(text[start:end + 1])
        except ValueError:
            value = None
        if isinstance(value, dict):
            return value
        start = text.find("{", start + 1)
    return None


def _balanced_end(text: str, start: int) -> Optional[int]:
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return None
