"""Protocol constants shared by every action-code component."""
from __future__ import annotations

PROTOCOL_VERSION = "1"
PROTOCOL_PREFIX = "actioncodes"

# Sentinel prefix, normalized to the empty string for hashing
PROTOCOL_CODE_PREFIX = "DEFAULT"

CODE_LENGTH = 8
CODE_TTL = 1000 * 60 * 2  # 2 minutes, in milliseconds

MIN_PREFIX_LENGTH = 3
MAX_PREFIX_LENGTH = 12

SUPPORTED_CHAINS: tuple[str, ...] = ("solana",)
