"""Exception hierarchy for the action codes protocol.

Constructors and orchestration entry points raise these. Cryptographic and
structural verification never raises: it returns ``False``.

All exceptions have:
- error_code: Machine-readable error code (e.g., "INVALID_PREFIX")
- message: Human-readable error message
- details: Optional additional context dictionary
- to_dict(): Convert to a serializable error payload
"""
from __future__ import annotations

from typing import Any, Iterable, Optional


class ActionCodesError(Exception):
    """Base exception for all action code errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Optional additional context
    """

    error_code: str = "ACTIONCODES_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to an error payload."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(ActionCodesError):
    """Invalid input data or parameters."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        details = details or {}
        if field:
            details["field"] = field
        super().__init__(message, details=details)


class InvalidPrefixError(ValidationError):
    """Prefix is neither the DEFAULT sentinel nor a valid letter prefix."""

    error_code = "INVALID_PREFIX"

    def __init__(self, prefix: str, min_length: int, max_length: int) -> None:
        super().__init__(
            f'Invalid prefix: {prefix}. Must be {min_length}-{max_length} letters or "DEFAULT"',
            field="prefix",
            details={"prefix": prefix},
        )
        self.prefix = prefix


class MissingFieldError(ValidationError):
    """An action code payload lacks one or more mandatory fields."""

    error_code = "MISSING_FIELD"

    def __init__(self, missing: Iterable[str]) -> None:
        missing = list(missing)
        super().__init__(
            f"Missing required fields in ActionCode payload: {', '.join(missing)}",
            details={"fields": missing},
        )
        self.missing = missing


class UnsupportedChainError(ActionCodesError):
    """No adapter is registered for the requested chain."""

    error_code = "UNSUPPORTED_CHAIN"

    def __init__(self, chain: str, registered: Iterable[str]) -> None:
        registered = list(registered)
        super().__init__(
            f"Chain '{chain}' is not supported. Registered chains: {', '.join(registered)}",
            details={"chain": chain, "registered_chains": registered},
        )
        self.chain = chain
        self.registered_chains = registered


class StateError(ActionCodesError):
    """Lifecycle operation called in a state that does not allow it."""

    error_code = "INVALID_STATE"


class InvalidActionCodeError(ActionCodesError):
    """A freshly created action code failed its own validation."""

    error_code = "INVALID_ACTION_CODE"


class TransactionError(ActionCodesError):
    """A chain transaction could not be deserialized, built or signed."""

    error_code = "TRANSACTION_ERROR"


__all__ = [
    "ActionCodesError",
    "ValidationError",
    "InvalidPrefixError",
    "MissingFieldError",
    "UnsupportedChainError",
    "StateError",
    "InvalidActionCodeError",
    "TransactionError",
]
