"""Chain adapters for action code protocol meta."""
from .base import BaseChainAdapter
from .solana import SolanaAdapter, SolanaTransaction

__all__ = [
    "BaseChainAdapter",
    "SolanaAdapter",
    "SolanaTransaction",
]
