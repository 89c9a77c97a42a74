"""Action code entity and its transport encoding."""
from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional

from .codegen import current_timestamp_ms, derive_correlation_hash, validate_code
from .constants import PROTOCOL_CODE_PREFIX
from .exceptions import (
    InvalidPrefixError,
    MissingFieldError,
    UnsupportedChainError,
    ValidationError,
)

if TYPE_CHECKING:
    from .protocol import ActionCodesProtocol


class ActionCodeStatus(str, Enum):
    """Lifecycle status. Moves forward pending -> resolved -> finalized."""
    PENDING = "pending"
    RESOLVED = "resolved"
    FINALIZED = "finalized"
    EXPIRED = "expired"
    ERROR = "error"


class ActionCodeIntent(str, Enum):
    """What the relying party will ask the user to sign once the code resolves."""
    TRANSACTION = "transaction"
    SIGN_ONLY = "sign-only"


# Code derivation in the lifecycle happens before the user signs, so the
# signature slot of the derivation is always empty.
UNSIGNED_CODE_SIGNATURE = ""

_REQUIRED_FIELDS = ("code", "pubkey", "signature", "timestamp", "expiresAt", "chain", "status")


@dataclass(frozen=True, slots=True)
class ActionCodeTransaction:
    """Chain transaction (or sign-only message) attached to a resolved code."""
    transaction: Optional[str] = None  # base64 for solana
    tx_signature: Optional[str] = None
    tx_type: Optional[str] = None
    message: Optional[str] = None
    signed_message: Optional[str] = None
    intent_type: Optional[ActionCodeIntent] = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "transaction": self.transaction,
            "txSignature": self.tx_signature,
            "txType": self.tx_type,
            "message": self.message,
            "signedMessage": self.signed_message,
            "intentType": self.intent_type.value if self.intent_type else None,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActionCodeTransaction":
        intent = data.get("intentType", data.get("intent_type"))
        return cls(
            transaction=data.get("transaction"),
            tx_signature=data.get("txSignature", data.get("tx_signature")),
            tx_type=data.get("txType", data.get("tx_type")),
            message=data.get("message"),
            signed_message=data.get("signedMessage", data.get("signed_message")),
            intent_type=ActionCodeIntent(intent) if intent else None,
        )


@dataclass(frozen=True, slots=True)
class ActionCodeMetadata:
    description: Optional[str] = None
    params: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        data = {"description": self.description, "params": self.params}
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ActionCodeMetadata":
        return cls(description=data.get("description"), params=data.get("params"))


def _is_missing(value: Any) -> bool:
    # Zero is a legitimate epoch timestamp; only absent or empty values count.
    return value is None or value == ""


@dataclass(slots=True)
class ActionCode:
    """A short-lived code binding a public key and its signature to an action.

    Treat instances as snapshots: lifecycle updates go through
    :meth:`with_updates`, which returns a new instance. :meth:`set_status`
    is the only in-place mutator.

    ``expired`` is computed from ``expires_at`` and the wall clock and may
    disagree with the stored ``status``.
    """
    code: str
    pubkey: str
    signature: str
    timestamp: int
    expires_at: int
    chain: str
    status: ActionCodeStatus = ActionCodeStatus.PENDING
    prefix: str = PROTOCOL_CODE_PREFIX
    transaction: Optional[ActionCodeTransaction] = None
    metadata: Optional[ActionCodeMetadata] = field(default=None)

    # ------------------------------------------------------------------
    # Construction and transport
    # ------------------------------------------------------------------

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ActionCode":
        """Build from a camelCase field mapping (the transport JSON shape).

        Raises:
            MissingFieldError: If a mandatory field is absent or empty
            ValidationError: If status or intent is not a known value
        """
        if not isinstance(payload, Mapping):
            raise ValidationError("ActionCode payload must be a mapping")

        data = dict(payload)
        if "expiresAt" not in data and "expires_at" in data:
            data["expiresAt"] = data["expires_at"]

        missing = [name for name in _REQUIRED_FIELDS if _is_missing(data.get(name))]
        if missing:
            raise MissingFieldError(missing)

        try:
            status = ActionCodeStatus(data["status"])
            transaction = data.get("transaction")
            metadata = data.get("metadata")
            return cls(
                code=str(data["code"]),
                pubkey=data["pubkey"],
                signature=data["signature"],
                timestamp=int(data["timestamp"]),
                expires_at=int(data["expiresAt"]),
                chain=data["chain"],
                status=status,
                prefix=data.get("prefix") or PROTOCOL_CODE_PREFIX,
                transaction=(
                    ActionCodeTransaction.from_dict(transaction)
                    if isinstance(transaction, Mapping)
                    else transaction
                ),
                metadata=(
                    ActionCodeMetadata.from_dict(metadata)
                    if isinstance(metadata, Mapping)
                    else metadata
                ),
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid ActionCode payload: {exc}") from exc

    @classmethod
    def from_encoded(cls, encoded: str) -> "ActionCode":
        """Reverse :attr:`encoded`: base64, then UTF-8, then JSON."""
        try:
            payload = json.loads(base64.b64decode(encoded, validate=True).decode("utf-8"))
        except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ValidationError(f"Invalid encoded ActionCode: {exc}") from exc
        return cls.from_payload(payload)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "code": self.code,
            "prefix": self.prefix,
            "pubkey": self.pubkey,
            "timestamp": self.timestamp,
            "signature": self.signature,
            "chain": self.chain,
            "expiresAt": self.expires_at,
            "status": self.status.value,
        }
        if self.transaction is not None:
            data["transaction"] = self.transaction.to_dict()
        if self.metadata is not None:
            data["metadata"] = self.metadata.to_dict()
        return data

    @property
    def encoded(self) -> str:
        """Opaque transport string; carries no integrity of its own."""
        raw = json.dumps(self.to_dict(), separators=(",", ":")).encode("utf-8")
        return base64.b64encode(raw).decode("ascii")

    def with_updates(self, **changes: Any) -> "ActionCode":
        return replace(self, **changes)

    def set_status(self, status: ActionCodeStatus | str) -> None:
        self.status = ActionCodeStatus(status)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def is_valid(self, protocol: "ActionCodesProtocol") -> bool:
        """Full check: unexpired, adapter signature check AND code derivation check.

        The protocol's code width, TTL and prefix bounds apply. A prefix
        outside those bounds makes the code invalid.

        Raises:
            UnsupportedChainError: If the protocol has no adapter for the chain
        """
        if self.expired:
            return False

        adapter = protocol.get_chain_adapter(self.chain)
        if adapter is None:
            raise UnsupportedChainError(self.chain, protocol.get_registered_chains())

        config = protocol.get_config()
        if not adapter.verify_code_signature(self):
            return False
        try:
            return validate_code(
                self.code,
                self.pubkey,
                self.timestamp,
                UNSIGNED_CODE_SIGNATURE,
                self.prefix,
                digits=config.code_length,
                ttl_ms=config.code_ttl,
                min_length=config.min_prefix_length,
                max_length=config.max_prefix_length,
            )
        except InvalidPrefixError:
            return False

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def remaining_time(self) -> int:
        """Milliseconds until expiry, or 0 once expired."""
        return max(0, self.expires_at - current_timestamp_ms())

    @property
    def expired(self) -> bool:
        return self.remaining_time == 0

    @property
    def intent_type(self) -> ActionCodeIntent:
        if self.transaction is not None and self.transaction.intent_type:
            return self.transaction.intent_type
        return ActionCodeIntent.TRANSACTION

    @property
    def description(self) -> Optional[str]:
        return self.metadata.description if self.metadata else None

    @property
    def params(self) -> Optional[dict[str, Any]]:
        return self.metadata.params if self.metadata else None

    @property
    def code_hash(self) -> str:
        """Correlation hash; also the ``id`` of the protocol meta for this code.

        The prefix was checked against the issuing protocol's bounds, so it is
        hashed as stored.
        """
        return derive_correlation_hash(
            self.pubkey, self.prefix, self.timestamp, check_prefix=False
        )

    @property
    def display_string(self) -> str:
        prefix = "" if self.prefix == PROTOCOL_CODE_PREFIX else f"{self.prefix}-"
        return f"{prefix}{self.code} ({self.chain}, {self.status.value})"

    @property
    def remaining_time_string(self) -> str:
        remaining = self.remaining_time
        if remaining == 0:
            return "Expired"

        minutes = remaining // 60000
        seconds = (remaining % 60000) // 1000
        if minutes > 0:
            return f"{minutes}m {seconds}s remaining"
        return f"{seconds}s remaining"


__all__ = [
    "ActionCode",
    "ActionCodeStatus",
    "ActionCodeIntent",
    "ActionCodeTransaction",
    "ActionCodeMetadata",
    "UNSIGNED_CODE_SIGNATURE",
]
