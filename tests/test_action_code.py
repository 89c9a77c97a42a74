"""
Tests for the ActionCode entity.

Tests cover:
- Payload parsing and required fields
- Transport encoding
- Expiry and remaining time
- Full validity check against a protocol instance
- Display helpers
"""
from __future__ import annotations

import base64
import json

import pytest

from actioncodes import ActionCodesProtocol
from actioncodes.action_code import (
    ActionCode,
    ActionCodeIntent,
    ActionCodeMetadata,
    ActionCodeStatus,
    ActionCodeTransaction,
)
from actioncodes.codegen import current_timestamp_ms, derive_correlation_hash
from actioncodes.exceptions import MissingFieldError, UnsupportedChainError, ValidationError

from solana_helpers import make_action_code


def _payload(**overrides) -> dict:
    now = current_timestamp_ms()
    payload = {
        "code": "12345678",
        "prefix": "TEST",
        "pubkey": "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM",
        "timestamp": now,
        "signature": "sig",
        "chain": "solana",
        "expiresAt": now + 120000,
        "status": "pending",
    }
    payload.update(overrides)
    return payload


class TestFromPayload:
    """Tests for ActionCode.from_payload."""

    def test_parses_camel_case_fields(self):
        action_code = ActionCode.from_payload(_payload())
        assert action_code.code == "12345678"
        assert action_code.prefix == "TEST"
        assert action_code.status == ActionCodeStatus.PENDING
        assert action_code.transaction is None

    def test_missing_fields_listed(self):
        payload = _payload()
        del payload["signature"]
        del payload["chain"]

        with pytest.raises(MissingFieldError) as exc_info:
            ActionCode.from_payload(payload)

        message = str(exc_info.value)
        assert message.startswith("Missing required fields in ActionCode payload")
        assert "signature" in message
        assert "chain" in message
        assert exc_info.value.error_code == "MISSING_FIELD"

    def test_empty_string_counts_as_missing(self):
        with pytest.raises(MissingFieldError):
            ActionCode.from_payload(_payload(pubkey=""))

    def test_zero_timestamp_is_allowed(self):
        action_code = ActionCode.from_payload(_payload(timestamp=0, expiresAt=0))
        assert action_code.timestamp == 0
        assert action_code.expired is True

    def test_prefix_defaults(self):
        payload = _payload()
        del payload["prefix"]
        assert ActionCode.from_payload(payload).prefix == "DEFAULT"

    def test_unknown_status(self):
        with pytest.raises(ValidationError):
            ActionCode.from_payload(_payload(status="lost"))

    def test_not_a_mapping(self):
        with pytest.raises(ValidationError):
            ActionCode.from_payload(["code"])

    def test_nested_transaction_and_metadata(self):
        action_code = ActionCode.from_payload(
            _payload(
                status="resolved",
                transaction={"transaction": "AAAA", "txType": "solana", "intentType": "transaction"},
                metadata={"description": "Pay invoice", "params": {"amount": 5}},
            )
        )
        assert action_code.transaction.transaction == "AAAA"
        assert action_code.intent_type == ActionCodeIntent.TRANSACTION
        assert action_code.description == "Pay invoice"
        assert action_code.params == {"amount": 5}


class TestEncoding:
    """Tests for to_dict, encoded and from_encoded."""

    def test_to_dict_omits_empty_sections(self):
        data = ActionCode.from_payload(_payload()).to_dict()
        assert "transaction" not in data
        assert "metadata" not in data
        assert data["expiresAt"] == data["timestamp"] + 120000

    def test_encoded_is_base64_json(self):
        action_code = ActionCode.from_payload(_payload())
        decoded = json.loads(base64.b64decode(action_code.encoded))
        assert decoded == action_code.to_dict()

    def test_from_encoded_round_trip(self):
        action_code = ActionCode.from_payload(_payload()).with_updates(
            transaction=ActionCodeTransaction(
                message="hello", intent_type=ActionCodeIntent.SIGN_ONLY, signed_message="abc"
            ),
            metadata=ActionCodeMetadata(params={"k": "v"}),
        )
        assert ActionCode.from_encoded(action_code.encoded) == action_code

    def test_from_encoded_garbage(self):
        with pytest.raises(ValidationError):
            ActionCode.from_encoded("%%%")
        with pytest.raises(ValidationError):
            ActionCode.from_encoded(base64.b64encode(b"not json").decode())


class TestExpiry:
    def test_expired_code(self):
        now = current_timestamp_ms()
        action_code = ActionCode.from_payload(_payload(timestamp=now - 121000, expiresAt=now - 1000))
        assert action_code.expired is True
        assert action_code.remaining_time == 0
        assert action_code.remaining_time_string == "Expired"
        # Stored status is not rewritten
        assert action_code.status == ActionCodeStatus.PENDING

    def test_live_code(self):
        action_code = ActionCode.from_payload(_payload())
        assert action_code.expired is False
        assert 0 < action_code.remaining_time <= 120000
        assert action_code.remaining_time_string.endswith("remaining")

    def test_remaining_time_string_seconds(self):
        now = current_timestamp_ms()
        action_code = ActionCode.from_payload(_payload(expiresAt=now + 30500))
        assert action_code.remaining_time_string.endswith("s remaining")
        assert "m " not in action_code.remaining_time_string


class TestIsValid:
    """Tests for ActionCode.is_valid."""

    def test_valid_code(self, protocol, user_key):
        assert make_action_code(user_key).is_valid(protocol) is True

    def test_valid_prefixed_code(self, protocol, user_key):
        assert make_action_code(user_key, prefix="TEST").is_valid(protocol) is True

    def test_tampered_code(self, protocol, user_key):
        action_code = make_action_code(user_key)
        assert action_code.with_updates(code="00000000").is_valid(protocol) is False

    def test_expired_code(self, protocol, user_key):
        action_code = make_action_code(user_key, timestamp=current_timestamp_ms() - 200000)
        assert action_code.is_valid(protocol) is False

    def test_unregistered_chain(self, user_key):
        action_code = make_action_code(user_key, chain="ethereum")
        with pytest.raises(UnsupportedChainError):
            action_code.is_valid(ActionCodesProtocol())


class TestViews:
    def test_display_string(self):
        action_code = ActionCode.from_payload(_payload())
        assert action_code.display_string == "TEST-12345678 (solana, pending)"

    def test_display_string_default_prefix(self):
        action_code = ActionCode.from_payload(_payload(prefix="DEFAULT", status="finalized"))
        assert action_code.display_string == "12345678 (solana, finalized)"

    def test_code_hash(self):
        action_code = ActionCode.from_payload(_payload())
        assert action_code.code_hash == derive_correlation_hash(
            action_code.pubkey, "TEST", action_code.timestamp
        )

    def test_intent_defaults_to_transaction(self):
        assert ActionCode.from_payload(_payload()).intent_type == ActionCodeIntent.TRANSACTION

    def test_set_status(self):
        action_code = ActionCode.from_payload(_payload())
        action_code.set_status("error")
        assert action_code.status == ActionCodeStatus.ERROR

    def test_with_updates_leaves_original(self):
        action_code = ActionCode.from_payload(_payload())
        updated = action_code.with_updates(status=ActionCodeStatus.RESOLVED)
        assert action_code.status == ActionCodeStatus.PENDING
        assert updated.status == ActionCodeStatus.RESOLVED
