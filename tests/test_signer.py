"""Tests for EIP-3009 transfer authorization signing."""

import base64

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from autopay.config import TokenConfig
from autopay.errors import ConfigurationError, SigningError
from autopay.signer import AuthorizationSigner, load_agent_account


AGENT = Account.create()
RECIPIENT = Account.create().address
USDC = "0x2222222222222222222222222222222222222222"


@pytest.fixture
def token():
    return TokenConfig(chain_id=10143, verifying_contract=USDC, validity_seconds=300)


@pytest.fixture
def signer(token):
    return AuthorizationSigner(AGENT, token=token, clock=lambda: 1_700_000_000.5)


class BrokenAccount:
    address = AGENT.address

    def sign_typed_data(self, **kwargs):
        raise RuntimeError("hsm unavailable")


class TestAuthorizationSigner:
    def test_address(self, signer):
        assert signer.address == AGENT.address

    def test_domain_binding(self, signer):
        auth = signer.build(RECIPIENT, "40000")
        assert auth.domain == {
            "name": "USD Coin",
            "version": "2",
            "chainId": 10143,
            "verifyingContract": USDC,
        }
        data = auth.typed_data()
        assert data["primaryType"] == "TransferWithAuthorization"
        assert [f["name"] for f in data["types"]["TransferWithAuthorization"]] == [
            "from", "to", "value", "validAfter", "validBefore", "nonce",
        ]

    def test_validity_window(self, signer, token):
        auth = signer.build(RECIPIENT, "40000")
        assert auth.valid_after == 0
        assert auth.valid_before == 1_700_000_000 + token.validity_seconds
        assert auth.valid_before - auth.valid_after == 1_700_000_000 + 300

    def test_value_is_raw_base_units(self, signer):
        auth = signer.build(RECIPIENT, "10000000")
        assert auth.value == 10_000_000
        assert auth.message["from"] == AGENT.address
        assert auth.message["to"] == RECIPIENT

    def test_nonces_are_fresh(self, signer):
        nonces = {signer.build(RECIPIENT, "40000").nonce for _ in range(500)}
        assert len(nonces) == 500
        assert all(len(n) == 32 for n in nonces)

    def test_signature_recovers_agent(self, signer):
        signed = signer.sign(RECIPIENT, "40000")
        message = encode_typed_data(full_message=signed.authorization.typed_data())
        assert Account.recover_message(message, signature=signed.signature) == AGENT.address

    def test_authorize_returns_base64_raw_signature(self, signer):
        encoded = signer.authorize(RECIPIENT, "40000")
        raw = base64.b64decode(encoded, validate=True)
        assert len(raw) == 65
        assert not encoded.startswith("0x")

    def test_two_authorizations_differ(self, signer):
        assert signer.authorize(RECIPIENT, "40000") != signer.authorize(RECIPIENT, "40000")

    @pytest.mark.parametrize("to", ["", "0x123", "not-an-address"])
    def test_invalid_recipient_rejected(self, signer, to):
        with pytest.raises(SigningError):
            signer.sign(to, "40000")

    @pytest.mark.parametrize("amount", ["0.04", "abc", "-1"])
    def test_invalid_amount_rejected(self, signer, amount):
        with pytest.raises(SigningError):
            signer.sign(RECIPIENT, amount)

    def test_backend_failure_raises_signing_error(self, token):
        signer = AuthorizationSigner(BrokenAccount(), token=token)
        with pytest.raises(SigningError, match="hsm unavailable"):
            signer.authorize(RECIPIENT, "40000")


class TestLoadAgentAccount:
    def test_accepts_prefixed_and_bare_hex(self):
        key = AGENT.key.hex()
        bare = key[2:] if key.startswith("0x") else key
        assert load_agent_account(bare).address == AGENT.address
        assert load_agent_account("0x" + bare).address == AGENT.address

    @pytest.mark.parametrize(
        "value",
        [
            None,
            "",
            "your_private_key_here",
            "abc123",
            "zz" * 32,
            "0x" + "ab" * 31,
            "0x" + "0" * 64,
            "0x" + "f" * 64,
        ],
    )
    def test_rejects_bad_key_material(self, value):
        with pytest.raises(ConfigurationError):
            load_agent_account(value)

    def test_from_private_key(self, token):
        signer = AuthorizationSigner.from_private_key(AGENT.key.hex(), token=token)
        assert signer.address == AGENT.address
