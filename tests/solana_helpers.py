"""Shared helpers for building signed codes and Solana transactions offline."""
from __future__ import annotations

from typing import Optional

import base58
from nacl.signing import SigningKey

from actioncodes.action_code import ActionCode
from actioncodes.adapters.solana.transaction import (
    DEFAULT_SIGNATURE,
    SYSTEM_PROGRAM_ID,
    AccountMeta,
    LegacyMessage,
    TransactionInstruction,
    encode_length,
    public_key_of,
)
from actioncodes.codegen import current_timestamp_ms, generate_code, generate_signature_message
from actioncodes.constants import PROTOCOL_CODE_PREFIX

# Any 32 bytes work as a blockhash for offline transactions
RECENT_BLOCKHASH = base58.b58encode(bytes(range(32))).decode()


def b58_sign(signing_key: SigningKey, message: str) -> str:
    """Detached ed25519 signature, base58 encoded the way wallets return it."""
    return base58.b58encode(signing_key.sign(message.encode()).signature).decode()


def transfer_instruction(sender: str, recipient: str) -> TransactionInstruction:
    """A system-program style transfer; the payload is irrelevant offline."""
    return TransactionInstruction(
        program_id=SYSTEM_PROGRAM_ID,
        keys=(
            AccountMeta(sender, True, True),
            AccountMeta(recipient, False, True),
        ),
        data=bytes([2, 0, 0, 0]) + (1000).to_bytes(8, "little"),
    )


def make_action_code(
    signing_key: SigningKey,
    prefix: str = PROTOCOL_CODE_PREFIX,
    timestamp: Optional[int] = None,
    chain: str = "solana",
) -> ActionCode:
    """Pending code signed by ``signing_key``, built without a protocol instance."""
    pubkey = public_key_of(signing_key)
    ts = current_timestamp_ms() if timestamp is None else timestamp
    generated = generate_code(pubkey, "", prefix, ts)
    return ActionCode(
        code=generated.code,
        pubkey=pubkey,
        signature=b58_sign(signing_key, generate_signature_message(generated.code, ts)),
        timestamp=ts,
        expires_at=generated.expires_at,
        chain=chain,
        prefix=prefix,
    )


def legacy_wire(message: LegacyMessage, *signing_keys: SigningKey) -> bytes:
    """Wire bytes for an already compiled message, the way another client would send it.

    Required signers without a key in ``signing_keys`` get an empty slot.
    """
    body = message.serialize()
    collected = {public_key_of(key): key.sign(body).signature for key in signing_keys}
    signers = message.account_keys[:message.header.num_required_signatures]
    return (
        encode_length(len(signers))
        + b"".join(collected.get(pubkey, DEFAULT_SIGNATURE) for pubkey in signers)
        + body
    )
