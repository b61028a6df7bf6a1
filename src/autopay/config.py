"""
Agent configuration loaded from environment variables.

Every section is an immutable dataclass built once at startup. The signing
key is validated here so the process never starts with unusable key
material.
"""

from __future__ import annotations

import logging
import math
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


AGENT_PRIVATE_KEY_ENV = "AGENT_PRIVATE_KEY"
REWARD_WALLET_PRIVATE_KEY_ENV = "REWARD_WALLET_PRIVATE_KEY"
RPC_URL_ENVS = ("MONAD_TESTNET_RPC", "MONAD_RPC")

DEFAULT_RPC_URL = "https://testnet-rpc.monad.xyz"
DEFAULT_NETWORK = "monad-testnet"
DEFAULT_CHAIN_ID = 10143
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

DEFAULT_GROQ_BASE_URL = "https://api.groq.com/openai/v1"
DEFAULT_GROQ_MODEL = "llama-3.1-70b-versatile"

PLACEHOLDER_KEY_MARKER = "your_private_key_here"
_HEX_KEY_RE = re.compile(r"[0-9a-fA-F]{64}")


class AdvisoryMode(str, Enum):
    DISABLED = "off"
    ADVISORY = "advisory"
    HYBRID = "hybrid"

    @classmethod
    def parse(cls, value: Optional[str]) -> "AdvisoryMode":
        raw = (value or "").strip().lower()
        aliases = {
            "": cls.DISABLED,
            "off": cls.DISABLED,
            "disabled": cls.DISABLED,
            "monad": cls.DISABLED,
            "advisory": cls.ADVISORY,
            "groq": cls.ADVISORY,
            "hybrid": cls.HYBRID,
            "both": cls.HYBRID,
        }
        if raw not in aliases:
            raise ConfigurationError(
                f"Unknown AI_TYPE {value!r} (expected off, advisory or hybrid)"
            )
        return aliases[raw]


@dataclass(frozen=True)
class PolicyConfig:
    """Spending rules, in display units."""

    max_payment_per_tx: float = 0.05
    daily_spending_limit: float = 0.50
    auto_pay_enabled: bool = True

    def to_dict(self) -> dict:
        return {
            "maxPaymentPerTx": self.max_payment_per_tx,
            "dailySpendingLimit": self.daily_spending_limit,
            "autoPayEnabled": self.auto_pay_enabled,
        }


@dataclass(frozen=True)
class AdvisoryConfig:
    mode: AdvisoryMode = AdvisoryMode.DISABLED
    api_key: Optional[str] = field(default=None, repr=False)
    model: str = DEFAULT_GROQ_MODEL
    base_url: str = DEFAULT_GROQ_BASE_URL
    timeout_seconds: float = 10.0

    @property
    def enabled(self) -> bool:
        return self.mode is not AdvisoryMode.DISABLED and bool(self.api_key)


@dataclass(frozen=True)
class TokenConfig:
    """EIP-712 domain of the token the authorization is redeemable against."""

    name: str = "USD Coin"
    version: str = "2"
    chain_id: int = DEFAULT_CHAIN_ID
    verifying_contract: str = ZERO_ADDRESS
    validity_seconds: int = 300


@dataclass(frozen=True)
class InvoiceConfig:
    fee_amount: str = "10000000"
    currency: str = "USDC"
    network: str = DEFAULT_NETWORK
    description: str = "Gasless Arcade Premium Play"
    pay_to: str = ""
    expiry_seconds: int = 300


@dataclass(frozen=True)
class AgentConfig:
    private_key: str = field(repr=False)
    rpc_url: str = DEFAULT_RPC_URL
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    advisory: AdvisoryConfig = field(default_factory=AdvisoryConfig)
    token: TokenConfig = field(default_factory=TokenConfig)
    invoice: InvoiceConfig = field(default_factory=InvoiceConfig)
    balance_poll_interval: float = 30.0

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AgentConfig":
        env = os.environ if environ is None else environ

        private_key = validate_private_key(
            env.get(AGENT_PRIVATE_KEY_ENV) or env.get(REWARD_WALLET_PRIVATE_KEY_ENV)
        )
        rpc_url = next((env[name] for name in RPC_URL_ENVS if env.get(name)), DEFAULT_RPC_URL)

        policy = PolicyConfig(
            max_payment_per_tx=_float(env, "MAX_PAYMENT_PER_TX", 0.05),
            daily_spending_limit=_float(env, "DAILY_SPENDING_LIMIT", 0.50),
            auto_pay_enabled=env.get("AUTO_PAY_ENABLED", "true").strip().lower() != "false",
        )

        mode = AdvisoryMode.parse(env.get("AI_TYPE"))
        api_key = env.get("GROQ_API_KEY") or None
        if mode is not AdvisoryMode.DISABLED and not api_key:
            logger.warning("GROQ_API_KEY not set. Agent AI features will be disabled.")
            mode = AdvisoryMode.DISABLED
        advisory = AdvisoryConfig(
            mode=mode,
            api_key=api_key,
            model=env.get("GROQ_MODEL") or DEFAULT_GROQ_MODEL,
            base_url=env.get("GROQ_BASE_URL") or DEFAULT_GROQ_BASE_URL,
            timeout_seconds=_float(env, "ADVISORY_TIMEOUT_SECONDS", 10.0),
        )

        validity_seconds = _int(env, "GAME_MAX_TIMEOUT", 300)
        token = TokenConfig(
            chain_id=_int(env, "CHAIN_ID", DEFAULT_CHAIN_ID),
            verifying_contract=env.get("USDC_ADDRESS") or ZERO_ADDRESS,
            validity_seconds=validity_seconds,
        )
        invoice = InvoiceConfig(
            fee_amount=env.get("GAME_FEE_AMOUNT") or "10000000",
            currency=env.get("GAME_FEE_CURRENCY") or "USDC",
            pay_to=env.get("GAME_PAYTO", ""),
        )
        if not invoice.fee_amount.isdigit():
            raise ConfigurationError(
                f"GAME_FEE_AMOUNT must be an integer amount in base units, got {invoice.fee_amount!r}"
            )

        return cls(
            private_key=private_key,
            rpc_url=rpc_url,
            policy=policy,
            advisory=advisory,
            token=token,
            invoice=invoice,
            balance_poll_interval=_float(env, "BALANCE_POLL_INTERVAL", 30.0),
        )


def validate_private_key(value: Optional[str]) -> str:
    """Return the key as ``0x``-prefixed hex, or raise ConfigurationError."""
    if not value:
        raise ConfigurationError(
            f"{AGENT_PRIVATE_KEY_ENV} (or {REWARD_WALLET_PRIVATE_KEY_ENV}) not set"
        )
    candidate = value.strip()
    if PLACEHOLDER_KEY_MARKER in candidate or len(candidate) < 64:
        raise ConfigurationError(
            f"{AGENT_PRIVATE_KEY_ENV} is not set correctly; provide a real 32-byte hex key"
        )
    if candidate.startswith("0x"):
        candidate = candidate[2:]
    if not _HEX_KEY_RE.fullmatch(candidate):
        raise ConfigurationError(
            f"Invalid {AGENT_PRIVATE_KEY_ENV} format: expected 64 hex characters (with or without 0x)"
        )
    return "0x" + candidate


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if not math.isfinite(value):
        raise ConfigurationError(f"{name} must be a finite number, got {raw!r}")
    return value


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None
