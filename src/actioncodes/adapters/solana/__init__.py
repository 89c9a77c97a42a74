"""Solana reference adapter and transaction model."""
from .adapter import SolanaAdapter, TransactionInput
from .transaction import (
    MEMO_PROGRAM_ID,
    AccountMeta,
    LegacyTransaction,
    MessageV0,
    SolanaTransaction,
    TransactionInstruction,
    VersionedTransaction,
    create_memo_instruction,
    deserialize_transaction,
)

__all__ = [
    "SolanaAdapter",
    "TransactionInput",
    "MEMO_PROGRAM_ID",
    "AccountMeta",
    "LegacyTransaction",
    "MessageV0",
    "SolanaTransaction",
    "TransactionInstruction",
    "VersionedTransaction",
    "create_memo_instruction",
    "deserialize_transaction",
]
