"""Chain adapter contract and the shared tamper-detection algorithm."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, Optional, Sequence, TypeVar

from ..codegen import generate_signature_message
from ..constants import PROTOCOL_CODE_PREFIX, PROTOCOL_VERSION
from ..meta import ProtocolMetaV1

if TYPE_CHECKING:
    from ..action_code import ActionCode

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseChainAdapter(ABC, Generic[T]):
    """
    Capability interface every supported chain implements.

    ``T`` is the chain's native transaction type. Implementers supply
    encode/decode, issuer presence, integrity checks and code signature
    verification; :meth:`detect_tampering` is shared by all chains.

    Verification methods are total: they return ``False`` on malformed input
    and never raise.
    """

    chain: str

    @abstractmethod
    def encode(self, meta: ProtocolMetaV1) -> Any:
        """Encode protocol meta as a chain-native transaction fragment."""

    @abstractmethod
    def decode(self, tx: T) -> Optional[ProtocolMetaV1]:
        """Return the version-1 protocol meta carried by ``tx``, if any."""

    @abstractmethod
    def inject_meta(self, tx: T, meta: ProtocolMetaV1) -> T:
        """Return a copy of ``tx`` carrying ``meta``."""

    @abstractmethod
    def has_issuer_signature(self, tx: T, issuer: str) -> bool:
        """Check the issuer's proof of authorization on ``tx``."""

    @abstractmethod
    def validate_transaction_integrity(self, tx: T, meta: ProtocolMetaV1) -> bool:
        """Chain-specific checks run after the shared tamper checks pass."""

    @abstractmethod
    def verify_code_signature(self, action_code: "ActionCode") -> bool:
        """Verify the user's signature over the canonical signing message."""

    def validate(
        self,
        tx: T,
        authorities: Sequence[str],
        expected_prefix: str = PROTOCOL_CODE_PREFIX,
    ) -> bool:
        return self.detect_tampering(tx, authorities, expected_prefix)

    def validate_signed_message(self, message: str, signed_message: str, pubkey: str) -> bool:
        """Verify a sign-only intent's signed message. Chains without support reject."""
        return False

    def get_code_signature_message(self, code: str, timestamp: int) -> str:
        """The exact string the user signs when a code is issued."""
        return generate_signature_message(code, timestamp)

    def detect_tampering(
        self,
        tx: T,
        authorities: Sequence[str],
        expected_prefix: str = PROTOCOL_CODE_PREFIX,
    ) -> bool:
        """Cross-check decoded meta against an authority allow-list and issuer proof.

        Returns True only if the meta decodes, is version 1, carries the
        expected prefix, names an issuer from ``authorities``, the issuer has
        authorized the transaction and the chain integrity check passes.
        """
        try:
            meta = self.decode(tx)
            if meta is None:
                logger.debug("Tamper check on %s: no protocol meta", self.chain)
                return False

            if meta.version != PROTOCOL_VERSION:
                logger.debug("Tamper check on %s: version %s", self.chain, meta.version)
                return False

            if meta.prefix != expected_prefix:
                logger.debug(
                    "Tamper check on %s: prefix %s != %s", self.chain, meta.prefix, expected_prefix
                )
                return False

            if not meta.iss or meta.iss not in authorities:
                logger.debug("Tamper check on %s: issuer not an authority", self.chain)
                return False

            if not self.has_issuer_signature(tx, meta.iss):
                logger.debug("Tamper check on %s: issuer has not authorized tx", self.chain)
                return False

            return self.validate_transaction_integrity(tx, meta)
        except Exception:  # noqa: BLE001
            logger.debug("Tamper check on %s raised", self.chain, exc_info=True)
            return False


__all__ = ["BaseChainAdapter"]
