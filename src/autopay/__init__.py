"""
Autopay: gasless payment authorization agent.

A server-side agent wallet decides whether to cover a player's paid action,
signs an EIP-3009 transfer authorization on their behalf and tracks spend
against per-transaction and daily limits.
"""

__version__ = "0.1.0"

from .config import AdvisoryMode, AgentConfig, PolicyConfig
from .ledger import SpendLedger
from .policy import PolicyDecision, PolicyEvaluator
from .advisory import AdvisoryGate, GroqCompletionClient
from .signer import AuthorizationSigner, SignedAuthorization, TransferAuthorization
from .invoices import Invoice, InvoiceLedger, PaymentRecord
from .agent import AutoPayAgent, PaymentResult

__all__ = [
    "AdvisoryMode", "AgentConfig", "PolicyConfig",
    "SpendLedger", "PolicyDecision", "PolicyEvaluator",
    "AdvisoryGate", "GroqCompletionClient",
    "AuthorizationSigner", "SignedAuthorization", "TransferAuthorization",
    "Invoice", "InvoiceLedger", "PaymentRecord",
    "AutoPayAgent", "PaymentResult",
]
