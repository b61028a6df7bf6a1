"""
EIP-3009 transfer authorizations signed by the agent identity.

The agent never submits a transaction. It signs an off-chain
``TransferWithAuthorization`` message that a relayer can redeem against
the token contract before ``validBefore``.
"""

from __future__ import annotations

import base64
import logging
import re
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from eth_account import Account
from eth_account.signers.local import LocalAccount

from .config import TokenConfig, validate_private_key
from .errors import ConfigurationError, SigningError
from .money import parse_base_units

logger = logging.getLogger(__name__)


PRIMARY_TYPE = "TransferWithAuthorization"

TRANSFER_WITH_AUTHORIZATION_TYPES = [
    {"name": "from", "type": "address"},
    {"name": "to", "type": "address"},
    {"name": "value", "type": "uint256"},
    {"name": "validAfter", "type": "uint256"},
    {"name": "validBefore", "type": "uint256"},
    {"name": "nonce", "type": "bytes32"},
]

EIP712_DOMAIN_TYPES = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

NONCE_BYTES = 32

_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")


def load_agent_account(private_key: Optional[str]) -> LocalAccount:
    """Build the agent's account; raises ConfigurationError on bad key material."""
    key = validate_private_key(private_key)
    try:
        return Account.from_key(key)
    except ValueError as e:
        raise ConfigurationError(f"Invalid agent private key: {e}") from e


@dataclass(frozen=True)
class TransferAuthorization:
    """Domain-bound ``TransferWithAuthorization`` payload."""

    domain: dict[str, Any]
    from_address: str
    to: str
    value: int
    valid_after: int
    valid_before: int
    nonce: bytes

    @property
    def message(self) -> dict[str, Any]:
        return {
            "from": self.from_address,
            "to": self.to,
            "value": self.value,
            "validAfter": self.valid_after,
            "validBefore": self.valid_before,
            "nonce": "0x" + self.nonce.hex(),
        }

    def typed_data(self) -> dict[str, Any]:
        return {
            "types": {
                "EIP712Domain": EIP712_DOMAIN_TYPES,
                PRIMARY_TYPE: TRANSFER_WITH_AUTHORIZATION_TYPES,
            },
            "primaryType": PRIMARY_TYPE,
            "domain": self.domain,
            "message": self.message,
        }


@dataclass(frozen=True)
class SignedAuthorization:
    authorization: TransferAuthorization
    signature: bytes

    @property
    def encoded_signature(self) -> str:
        return base64.b64encode(self.signature).decode("ascii")


class AuthorizationSigner:
    """Holds the agent key and signs transfer authorizations with it."""

    def __init__(
        self,
        account: LocalAccount,
        token: Optional[TokenConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._account = account
        self.token = token or TokenConfig()
        self._clock = clock

    @classmethod
    def from_private_key(
        cls,
        private_key: Optional[str],
        token: Optional[TokenConfig] = None,
    ) -> "AuthorizationSigner":
        return cls(load_agent_account(private_key), token=token)

    @property
    def address(self) -> str:
        return self._account.address

    def domain(self) -> dict[str, Any]:
        return {
            "name": self.token.name,
            "version": self.token.version,
            "chainId": self.token.chain_id,
            "verifyingContract": self.token.verifying_contract,
        }

    def build(self, to: str, amount_base_units: str | int) -> TransferAuthorization:
        if not to:
            raise SigningError("Recipient address is required")
        if not _ADDRESS_RE.fullmatch(to):
            raise SigningError(f"Invalid recipient address: {to}")
        try:
            value = parse_base_units(amount_base_units)
        except ValueError as e:
            raise SigningError(str(e)) from e
        if value < 0:
            raise SigningError(f"Amount must not be negative: {amount_base_units}")

        return TransferAuthorization(
            domain=self.domain(),
            from_address=self.address,
            to=to,
            value=value,
            valid_after=0,
            valid_before=int(self._clock()) + self.token.validity_seconds,
            nonce=secrets.token_bytes(NONCE_BYTES),
        )

    def sign(self, to: str, amount_base_units: str | int) -> SignedAuthorization:
        authorization = self.build(to, amount_base_units)
        try:
            signed = self._account.sign_typed_data(full_message=authorization.typed_data())
        except Exception as e:
            logger.error("EIP-3009 signing failed: %s: %s", type(e).__name__, e)
            raise SigningError(f"Failed to sign transfer authorization: {e}") from e
        return SignedAuthorization(authorization=authorization, signature=bytes(signed.signature))

    def authorize(self, to: str, amount_base_units: str | int) -> str:
        """Sign and return the raw signature as base64."""
        return self.sign(to, amount_base_units).encoded_signature
