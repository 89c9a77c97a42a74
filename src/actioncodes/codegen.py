"""Deterministic action code derivation and time-window checks.

Every function here is pure apart from reading the wall clock when no
timestamp is supplied. Timestamps are integer milliseconds since the epoch.
"""
from __future__ import annotations

import hashlib
import re
import time
from dataclasses import dataclass
from typing import Optional

from .constants import (
    CODE_LENGTH,
    CODE_TTL,
    MAX_PREFIX_LENGTH,
    MIN_PREFIX_LENGTH,
    PROTOCOL_CODE_PREFIX,
    PROTOCOL_PREFIX,
)
from .exceptions import InvalidPrefixError

_LETTERS = re.compile(r"^[A-Za-z]+$")


@dataclass(frozen=True, slots=True)
class GeneratedCode:
    """Output of :func:`generate_code`."""
    code: str
    issued_at: int
    expires_at: int


def current_timestamp_ms() -> int:
    """Wall clock in integer milliseconds."""
    return int(time.time() * 1000)


def validate_prefix(
    prefix: str,
    *,
    min_length: int = MIN_PREFIX_LENGTH,
    max_length: int = MAX_PREFIX_LENGTH,
) -> bool:
    """True for the DEFAULT sentinel or a 3-12 character ASCII letter prefix."""
    if prefix == PROTOCOL_CODE_PREFIX:
        return True
    if not isinstance(prefix, str):
        return False
    if len(prefix) < min_length or len(prefix) > max_length:
        return False
    return bool(_LETTERS.match(prefix))


def normalize_prefix(
    prefix: str,
    *,
    min_length: int = MIN_PREFIX_LENGTH,
    max_length: int = MAX_PREFIX_LENGTH,
) -> str:
    """Map DEFAULT to the empty string and uppercase anything else.

    Raises:
        InvalidPrefixError: If the prefix fails :func:`validate_prefix`
    """
    if prefix == PROTOCOL_CODE_PREFIX:
        return ""
    if not validate_prefix(prefix, min_length=min_length, max_length=max_length):
        raise InvalidPrefixError(prefix, min_length, max_length)
    return hash_prefix(prefix)


def hash_prefix(prefix: str) -> str:
    """Hash-time form of a prefix that was validated when it was issued."""
    return "" if prefix == PROTOCOL_CODE_PREFIX else prefix.upper()


def _valid_prefix_part(part: str) -> bool:
    if not part:
        return True
    normalized = part.upper()
    if normalized == PROTOCOL_CODE_PREFIX:
        return True
    return validate_prefix(normalized)


def validate_code_format(code: str, digits: int = CODE_LENGTH) -> bool:
    """Check that ``code`` is an optional letter prefix followed by ``digits`` digits."""
    if not code or not isinstance(code, str):
        return False
    if len(code) < digits:
        return False
    numeric, prefix_part = code[-digits:], code[:-digits]
    if not re.fullmatch(r"[0-9]{%d}" % digits, numeric):
        return False
    return _valid_prefix_part(prefix_part)


def validate_code_digits(code: str, digits: int = CODE_LENGTH) -> bool:
    """Check the trailing numeric part of ``code``; a bare code must be all digits."""
    if not code or not isinstance(code, str):
        return False
    if len(code) < digits:
        return False
    if len(code) == digits:
        return code.isascii() and code.isdigit()
    if not re.fullmatch(r"[0-9]{%d}" % digits, code[-digits:]):
        return False
    return _valid_prefix_part(code[:-digits])


def generate_code(
    pubkey: str,
    signature: str,
    prefix: str = PROTOCOL_CODE_PREFIX,
    timestamp: Optional[int] = None,
    *,
    digits: int = CODE_LENGTH,
    ttl_ms: int = CODE_TTL,
    min_length: int = MIN_PREFIX_LENGTH,
    max_length: int = MAX_PREFIX_LENGTH,
) -> GeneratedCode:
    """Derive the ``digits``-wide numeric code for a key, signature, prefix and time.

    The first 16 hex characters of
    ``SHA256(PREFIX:pubkey:timestamp:signature)`` are read as an unsigned
    64-bit integer and reduced modulo ``10**digits``.

    Args:
        pubkey: User public key
        signature: Signature bound into the code (may be empty)
        prefix: DEFAULT or a 3-12 letter namespace
        timestamp: Issuance time in ms; defaults to now
        digits: Code width
        ttl_ms: Validity window added to the issuance time

    Returns:
        GeneratedCode with the zero-padded code and its validity window

    Raises:
        InvalidPrefixError: If the prefix is invalid
    """
    normalized = normalize_prefix(prefix, min_length=min_length, max_length=max_length)
    ts = current_timestamp_ms() if timestamp is None else int(timestamp)

    digest = hashlib.sha256(f"{normalized}:{pubkey}:{ts}:{signature}".encode()).hexdigest()
    raw = int(digest[:16], 16)
    code = str(raw % (10 ** digits)).zfill(digits)

    return GeneratedCode(code=code, issued_at=ts, expires_at=ts + ttl_ms)


def get_expected_code(
    pubkey: str,
    timestamp: int,
    signature: str = "",
    prefix: str = PROTOCOL_CODE_PREFIX,
    *,
    digits: int = CODE_LENGTH,
) -> str:
    """Shorthand for the code string :func:`generate_code` yields."""
    return generate_code(pubkey, signature, prefix, timestamp, digits=digits).code


def derive_correlation_hash(
    pubkey: str,
    prefix: str = PROTOCOL_CODE_PREFIX,
    timestamp: Optional[int] = None,
    *,
    min_length: int = MIN_PREFIX_LENGTH,
    max_length: int = MAX_PREFIX_LENGTH,
    check_prefix: bool = True,
) -> str:
    """Signature-independent SHA-256 of ``PREFIX:pubkey:timestamp`` as 64 hex chars.

    Used as the ``id`` of protocol metadata. Not a substitute for the code.
    ``check_prefix=False`` skips the bounds check for a prefix that was
    already validated against another configuration.
    """
    if check_prefix:
        normalized = normalize_prefix(prefix, min_length=min_length, max_length=max_length)
    else:
        normalized = hash_prefix(prefix)
    ts = current_timestamp_ms() if timestamp is None else int(timestamp)
    return hashlib.sha256(f"{normalized}:{pubkey}:{ts}".encode()).hexdigest()


def generate_signature_message(code: str, timestamp: int) -> str:
    """Canonical ``actioncodes:<code>:<timestamp>`` string the user signs."""
    return f"{PROTOCOL_PREFIX}:{code}:{int(timestamp)}"


def validate_code(
    code: str,
    pubkey: str,
    timestamp: int,
    signature: str,
    prefix: str = PROTOCOL_CODE_PREFIX,
    *,
    digits: int = CODE_LENGTH,
    ttl_ms: int = CODE_TTL,
    now: Optional[int] = None,
    min_length: int = MIN_PREFIX_LENGTH,
    max_length: int = MAX_PREFIX_LENGTH,
) -> bool:
    """Recompute the code and require ``0 <= timestamp <= now <= timestamp + ttl``.

    A timestamp in the future is rejected even when inside the TTL.

    Raises:
        InvalidPrefixError: If the prefix is outside the given bounds
    """
    if not validate_code_digits(code, digits):
        return False

    expected = generate_code(
        pubkey,
        signature,
        prefix,
        timestamp,
        digits=digits,
        ttl_ms=ttl_ms,
        min_length=min_length,
        max_length=max_length,
    )
    current = current_timestamp_ms() if now is None else now
    in_window = 0 <= timestamp <= current <= timestamp + ttl_ms
    return code == expected.code and in_window


def is_valid_timestamp(
    timestamp: int,
    *,
    ttl_ms: int = CODE_TTL,
    now: Optional[int] = None,
) -> bool:
    """One-sided check: ``0 <= timestamp <= now + ttl``.

    Looser than :func:`validate_code`; future timestamps up to one TTL pass.
    """
    current = current_timestamp_ms() if now is None else now
    return 0 <= timestamp <= current + ttl_ms


class CodeGenerator:
    """Namespace over the module functions, for callers that inject a generator."""

    TIME_WINDOW_MS = CODE_TTL
    CODE_DIGITS = CODE_LENGTH
    MIN_PREFIX_LENGTH = MIN_PREFIX_LENGTH
    MAX_PREFIX_LENGTH = MAX_PREFIX_LENGTH

    validate_prefix = staticmethod(validate_prefix)
    normalize_prefix = staticmethod(normalize_prefix)
    hash_prefix = staticmethod(hash_prefix)
    validate_code_format = staticmethod(validate_code_format)
    validate_code_digits = staticmethod(validate_code_digits)
    generate_code = staticmethod(generate_code)
    get_expected_code = staticmethod(get_expected_code)
    derive_correlation_hash = staticmethod(derive_correlation_hash)
    generate_signature_message = staticmethod(generate_signature_message)
    validate_code = staticmethod(validate_code)
    is_valid_timestamp = staticmethod(is_valid_timestamp)


__all__ = [
    "GeneratedCode",
    "CodeGenerator",
    "current_timestamp_ms",
    "validate_prefix",
    "normalize_prefix",
    "hash_prefix",
    "validate_code_format",
    "validate_code_digits",
    "generate_code",
    "get_expected_code",
    "derive_correlation_hash",
    "generate_signature_message",
    "validate_code",
    "is_valid_timestamp",
]
