"""Solana chain adapter for action code protocol meta.

Protocol meta travels in an SPL memo instruction. Both legacy and v0
transactions are supported, either as objects or as base64 strings.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import TYPE_CHECKING, Optional, Union

import base58
from nacl.signing import SigningKey, VerifyKey

from ...constants import PROTOCOL_VERSION
from ...exceptions import TransactionError
from ...logging import mask_value
from ...meta import ProtocolMetaV1, parse, serialize
from ..base import BaseChainAdapter
from .transaction import (
    MEMO_PROGRAM_ID,
    LegacyTransaction,
    MessageV0,
    SolanaTransaction,
    TransactionInstruction,
    VersionedTransaction,
    create_memo_instruction,
    is_valid_public_key,
    public_key_bytes,
    transaction_from_base64,
    transaction_to_base64,
)

if TYPE_CHECKING:
    from ...action_code import ActionCode

logger = logging.getLogger(__name__)

TransactionInput = Union[SolanaTransaction, str]


def _meta_from_memo(data: bytes) -> Optional[ProtocolMetaV1]:
    if not data:
        return None
    try:
        meta = parse(data.decode("utf-8"))
    except UnicodeDecodeError:
        return None
    if meta is not None and meta.version == PROTOCOL_VERSION:
        return meta
    return None


class SolanaAdapter(BaseChainAdapter[TransactionInput]):
    """Reference adapter for Solana legacy and v0 transactions."""

    chain = "solana"
    MEMO_PROGRAM_ID = MEMO_PROGRAM_ID

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def encode(self, meta: ProtocolMetaV1) -> TransactionInstruction:
        """Memo instruction carrying the serialized meta.

        A valid base58 issuer is listed as a signer of the memo.
        """
        signers = [meta.iss] if is_valid_public_key(meta.iss) else []
        return create_memo_instruction(serialize(meta), signers)

    encode_meta = encode

    def deserialize_transaction(self, encoded: str) -> SolanaTransaction:
        """Decode base64, trying the legacy encoding first, then v0.

        Raises:
            TransactionError: If the payload is neither encoding
        """
        return transaction_from_base64(encoded)

    def _resolve(self, tx: TransactionInput) -> Optional[SolanaTransaction]:
        if isinstance(tx, str):
            try:
                return self.deserialize_transaction(tx)
            except TransactionError:
                logger.debug("Could not deserialize transaction %s", mask_value(tx))
                return None
        if isinstance(tx, (LegacyTransaction, VersionedTransaction)):
            return tx
        return None

    def decode(self, tx: TransactionInput) -> Optional[ProtocolMetaV1]:
        """First version-1 meta found in a memo instruction, or None."""
        resolved = self._resolve(tx)
        if isinstance(resolved, VersionedTransaction):
            return self._decode_message_v0(resolved.message)
        if isinstance(resolved, LegacyTransaction):
            return self._decode_legacy(resolved)
        return None

    decode_meta = decode

    def decode_from_base64(self, encoded: str) -> Optional[ProtocolMetaV1]:
        return self.decode(encoded)

    def _decode_legacy(self, tx: LegacyTransaction) -> Optional[ProtocolMetaV1]:
        for instruction in tx.instructions:
            if instruction.program_id != MEMO_PROGRAM_ID:
                continue
            meta = _meta_from_memo(instruction.data)
            if meta is not None:
                return meta
        return None

    def _decode_message_v0(self, message: MessageV0) -> Optional[ProtocolMetaV1]:
        keys = message.static_account_keys
        for instruction in message.compiled_instructions:
            if instruction.program_id_index >= len(keys):
                continue
            if keys[instruction.program_id_index] != MEMO_PROGRAM_ID:
                continue
            meta = _meta_from_memo(instruction.data)
            if meta is not None:
                return meta
        return None

    def inject_meta(self, tx: TransactionInput, meta: ProtocolMetaV1) -> TransactionInput:
        """Append the meta memo, returning a new transaction.

        A base64 string comes back as a base64 string. Legacy signatures are
        cleared because the message changed.

        Raises:
            TransactionError: If ``tx`` is not a Solana transaction
        """
        if isinstance(tx, str):
            injected = self.inject_meta(self.deserialize_transaction(tx), meta)
            return transaction_to_base64(injected, require_all_signatures=False)

        memo = self.encode(meta)
        if isinstance(tx, VersionedTransaction):
            return VersionedTransaction(message=tx.message.with_instruction(memo))
        if isinstance(tx, LegacyTransaction):
            updated = tx.copy()
            updated.fee_payer = tx.payer
            updated.instructions.append(memo)
            updated.signatures = []
            updated.message = None
            return updated
        raise TransactionError("Invalid transaction type")

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def has_issuer_signature(self, tx: TransactionInput, issuer: str) -> bool:
        """Presence check: v0 static key table, or legacy signature entries."""
        resolved = self._resolve(tx)
        if isinstance(resolved, VersionedTransaction):
            return issuer in resolved.message.static_account_keys
        if isinstance(resolved, LegacyTransaction):
            return any(pair.pubkey == issuer for pair in resolved.signatures)
        return False

    def validate_transaction_integrity(self, tx: TransactionInput, meta: ProtocolMetaV1) -> bool:
        decoded = self.decode(tx)
        if decoded is None:
            return False
        if not meta.iss:
            return False
        if not self.has_issuer_signature(tx, meta.iss):
            return False
        return (
            decoded.version == meta.version
            and decoded.prefix == meta.prefix
            and decoded.initiator == meta.initiator
            and decoded.id == meta.id
            and decoded.iss == meta.iss
            and decoded.params == meta.params
        )

    def verify_code_signature(self, action_code: "ActionCode") -> bool:
        """ed25519 check of the base58 signature over the canonical message."""
        try:
            message = self.get_code_signature_message(action_code.code, action_code.timestamp)
            verify_key = VerifyKey(public_key_bytes(action_code.pubkey))
            verify_key.verify(message.encode("utf-8"), base58.b58decode(action_code.signature))
            return True
        except Exception:  # noqa: BLE001
            logger.debug("Code signature rejected for %s", mask_value(action_code.pubkey))
            return False

    def validate_signed_message(self, message: str, signed_message: str, pubkey: str) -> bool:
        try:
            verify_key = VerifyKey(public_key_bytes(pubkey))
            verify_key.verify(message.encode("utf-8"), base58.b58decode(signed_message))
            return True
        except Exception:  # noqa: BLE001
            return False

    def verify_finalized_transaction(self, tx: TransactionInput, action_code: "ActionCode") -> bool:
        """Check a landed transaction against the action code that authorized it.

        The meta must carry the code's correlation hash, prefix and initiator;
        the user must be a required signer of the message; the issuer must be
        present.
        """
        try:
            resolved = self._resolve(tx)
            if resolved is None:
                return False

            meta = self.decode(resolved)
            if meta is None or not meta.iss:
                return False
            if meta.id != action_code.code_hash:
                return False
            if meta.prefix != action_code.prefix or meta.initiator != action_code.pubkey:
                return False
            if not is_valid_public_key(action_code.pubkey):
                return False

            if isinstance(resolved, VersionedTransaction):
                keys = resolved.message.static_account_keys
                num_signers = resolved.message.header.num_required_signatures
            else:
                compiled = resolved.compile_message()
                keys = compiled.account_keys
                num_signers = compiled.header.num_required_signatures

            if action_code.pubkey not in keys[:num_signers]:
                logger.debug("User %s did not sign transaction", mask_value(action_code.pubkey))
                return False

            return self.has_issuer_signature(resolved, meta.iss)
        except Exception:  # noqa: BLE001
            logger.debug("Finalized transaction check raised", exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Authority signing
    # ------------------------------------------------------------------

    def sign_with_protocol_key(self, action_code: "ActionCode", signing_key: SigningKey) -> "ActionCode":
        """Add the protocol authority's signature to the attached transaction.

        Raises:
            TransactionError: If there is no transaction, it carries no valid
                meta, or the key cannot sign it
        """
        attached = action_code.transaction
        if attached is None or not attached.transaction:
            raise TransactionError("No transaction found")

        tx = self.deserialize_transaction(attached.transaction)
        meta = self.decode(tx)
        if meta is None:
            raise TransactionError("Invalid transaction, protocol meta not found")
        if not self.validate_transaction_integrity(tx, meta):
            raise TransactionError("Invalid transaction, transaction integrity not valid")

        if isinstance(tx, LegacyTransaction):
            tx.partial_sign(signing_key)
        else:
            tx.sign(signing_key)

        logger.info("Protocol key signed transaction for code %s", action_code.code)
        return action_code.with_updates(
            transaction=replace(attached, transaction=transaction_to_base64(tx))
        )


__all__ = ["SolanaAdapter", "TransactionInput"]
