"""Configuration surface for the action codes protocol."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings

from .constants import (
    CODE_LENGTH,
    CODE_TTL,
    MAX_PREFIX_LENGTH,
    MIN_PREFIX_LENGTH,
    PROTOCOL_CODE_PREFIX,
    PROTOCOL_VERSION,
)


class ProtocolSettings(BaseSettings):
    """Protocol parameters, overridable per orchestrator instance or via env."""

    version: str = PROTOCOL_VERSION
    default_prefix: str = PROTOCOL_CODE_PREFIX

    # Milliseconds a code stays valid after issuance
    code_ttl: int = CODE_TTL
    code_length: int = CODE_LENGTH

    min_prefix_length: int = MIN_PREFIX_LENGTH
    max_prefix_length: int = MAX_PREFIX_LENGTH

    class Config:
        env_prefix = "ACTIONCODES_"
        env_file = ".env"
        extra = "ignore"

    @field_validator("code_ttl", "code_length", "min_prefix_length")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive")
        return v

    @field_validator("max_prefix_length")
    @classmethod
    def validate_prefix_bounds(cls, v: int, info) -> int:
        minimum = info.data.get("min_prefix_length", MIN_PREFIX_LENGTH)
        if v < minimum:
            raise ValueError("max_prefix_length must not be below min_prefix_length")
        return v

    def merged(self, **changes: Any) -> "ProtocolSettings":
        """Return a validated copy with ``changes`` applied on top."""
        unknown = set(changes) - set(type(self).model_fields)
        if unknown:
            raise ValueError(f"Unknown protocol settings: {', '.join(sorted(unknown))}")
        return type(self)(**{**self.model_dump(), **changes})


@lru_cache
def load_settings(env_file: str | None = None) -> ProtocolSettings:
    """Load ProtocolSettings once per process."""
    env_path = Path(env_file) if env_file else None
    return ProtocolSettings(_env_file=env_path)


__all__ = ["ProtocolSettings", "load_settings"]
