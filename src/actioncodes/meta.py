"""Protocol metadata wire format.

    actioncodes:v=<version>&pre=<prefix>&ini=<initiator>&id=<id>&iss=<issuer>[&p=<params>]

Fields are positional and order-fixed. This is not a query-string parser:
values are carried verbatim and no escaping is performed.
"""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Optional

from .codegen import derive_correlation_hash
from .constants import (
    MAX_PREFIX_LENGTH,
    MIN_PREFIX_LENGTH,
    PROTOCOL_CODE_PREFIX,
    PROTOCOL_PREFIX,
    PROTOCOL_VERSION,
)
from .exceptions import InvalidPrefixError

logger = logging.getLogger(__name__)

PROTOCOL_REGEX = re.compile(
    r"([^:]+):v=(\d+)&pre=([^&]*)&ini=([^&]*)&id=([^&]*)&iss=([^&]+)(?:&p=([^&]+))?"
)


@dataclass(frozen=True, slots=True)
class ProtocolMetaV1:
    """Metadata embedded in a transaction to prove which action code authorized it."""
    version: str
    prefix: str
    initiator: str
    id: str
    iss: str
    params: Optional[str] = None

    def __post_init__(self) -> None:
        # The wire has no way to carry an empty params value
        if self.params == "":
            object.__setattr__(self, "params", None)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def parse(meta_string: str) -> Optional[ProtocolMetaV1]:
    """Parse a metadata string, or return None if it does not fit the grammar."""
    if not isinstance(meta_string, str):
        return None

    match = PROTOCOL_REGEX.fullmatch(meta_string)
    if not match:
        return None

    protocol_prefix, version, prefix, initiator, id_, iss, params = match.groups()
    if protocol_prefix != PROTOCOL_PREFIX:
        return None

    return ProtocolMetaV1(
        version=version,
        prefix=prefix,
        initiator=initiator,
        id=id_,
        iss=iss,
        params=params or None,
    )


def serialize(meta: ProtocolMetaV1) -> str:
    """Build the wire string; the exact inverse of :func:`parse`."""
    result = (
        f"{PROTOCOL_PREFIX}:v={meta.version}&pre={meta.prefix}"
        f"&ini={meta.initiator}&id={meta.id}&iss={meta.iss}"
    )
    if meta.params:
        result += f"&p={meta.params}"
    return result


def from_initiator(
    initiator: str,
    iss: str,
    prefix: str = PROTOCOL_CODE_PREFIX,
    params: Optional[str] = None,
    timestamp: Optional[int] = None,
    *,
    min_length: int = MIN_PREFIX_LENGTH,
    max_length: int = MAX_PREFIX_LENGTH,
) -> ProtocolMetaV1:
    """Build version-1 metadata whose id is the initiator's correlation hash."""
    return ProtocolMetaV1(
        version=PROTOCOL_VERSION,
        prefix=prefix,
        initiator=initiator,
        id=derive_correlation_hash(
            initiator, prefix, timestamp, min_length=min_length, max_length=max_length
        ),
        iss=iss,
        params=params,
    )


def validate_code(
    meta: ProtocolMetaV1,
    timestamp: Optional[int] = None,
    *,
    min_length: int = MIN_PREFIX_LENGTH,
    max_length: int = MAX_PREFIX_LENGTH,
) -> bool:
    """Recompute the correlation hash at ``timestamp`` and compare it to ``meta.id``.

    No timestamp travels on the wire, so the caller must know which one the
    metadata was built against (usually the action code's own).
    """
    expected = derive_correlation_hash(
        meta.initiator, meta.prefix, timestamp, min_length=min_length, max_length=max_length
    )
    return meta.id == expected


def validate_meta_from_string(
    meta_string: str,
    timestamp: Optional[int] = None,
    *,
    min_length: int = MIN_PREFIX_LENGTH,
    max_length: int = MAX_PREFIX_LENGTH,
) -> bool:
    meta = parse(meta_string)
    if meta is None:
        logger.debug("Rejected unparsable protocol meta")
        return False
    try:
        return validate_code(meta, timestamp, min_length=min_length, max_length=max_length)
    except InvalidPrefixError:
        return False


class ProtocolMetaParser:
    """Namespace over the codec functions."""

    parse = staticmethod(parse)
    serialize = staticmethod(serialize)
    from_initiator = staticmethod(from_initiator)
    validate_code = staticmethod(validate_code)
    validate_meta_from_string = staticmethod(validate_meta_from_string)


__all__ = [
    "PROTOCOL_REGEX",
    "ProtocolMetaV1",
    "ProtocolMetaParser",
    "parse",
    "serialize",
    "from_initiator",
    "validate_code",
    "validate_meta_from_string",
]
