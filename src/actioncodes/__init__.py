"""Action codes: short-lived codes that bind a wallet key to an on-chain action.

Usage:
    from actioncodes import ActionCodesProtocol, SolanaAdapter

    protocol = ActionCodesProtocol()
    protocol.register_adapter(SolanaAdapter())

    code = await protocol.create_action_code(pubkey, wallet.sign_message, "solana")
    resolved = protocol.attach_transaction(code, tx_base64, issuer=authority)
    assert protocol.detect_tampering(resolved.transaction.transaction, "solana", [authority])
"""
from .action_code import (
    ActionCode,
    ActionCodeIntent,
    ActionCodeMetadata,
    ActionCodeStatus,
    ActionCodeTransaction,
)
from .adapters import BaseChainAdapter, SolanaAdapter, SolanaTransaction
from .codegen import (
    CodeGenerator,
    GeneratedCode,
    derive_correlation_hash,
    generate_code,
    generate_signature_message,
    is_valid_timestamp,
    normalize_prefix,
    validate_code,
    validate_prefix,
)
from .config import ProtocolSettings, load_settings
from .constants import (
    CODE_LENGTH,
    CODE_TTL,
    MAX_PREFIX_LENGTH,
    MIN_PREFIX_LENGTH,
    PROTOCOL_CODE_PREFIX,
    PROTOCOL_PREFIX,
    PROTOCOL_VERSION,
    SUPPORTED_CHAINS,
)
from .exceptions import (
    ActionCodesError,
    InvalidActionCodeError,
    InvalidPrefixError,
    MissingFieldError,
    StateError,
    TransactionError,
    UnsupportedChainError,
    ValidationError,
)
from .meta import ProtocolMetaParser, ProtocolMetaV1
from .protocol import ActionCodesProtocol

__version__ = "0.1.0"

__all__ = [
    # Entity
    "ActionCode",
    "ActionCodeIntent",
    "ActionCodeMetadata",
    "ActionCodeStatus",
    "ActionCodeTransaction",
    # Adapters
    "BaseChainAdapter",
    "SolanaAdapter",
    "SolanaTransaction",
    # Code generation
    "CodeGenerator",
    "GeneratedCode",
    "derive_correlation_hash",
    "generate_code",
    "generate_signature_message",
    "is_valid_timestamp",
    "normalize_prefix",
    "validate_code",
    "validate_prefix",
    # Config
    "ProtocolSettings",
    "load_settings",
    # Constants
    "CODE_LENGTH",
    "CODE_TTL",
    "MAX_PREFIX_LENGTH",
    "MIN_PREFIX_LENGTH",
    "PROTOCOL_CODE_PREFIX",
    "PROTOCOL_PREFIX",
    "PROTOCOL_VERSION",
    "SUPPORTED_CHAINS",
    # Errors
    "ActionCodesError",
    "InvalidActionCodeError",
    "InvalidPrefixError",
    "MissingFieldError",
    "StateError",
    "TransactionError",
    "UnsupportedChainError",
    "ValidationError",
    # Meta
    "ProtocolMetaParser",
    "ProtocolMetaV1",
    # Orchestrator
    "ActionCodesProtocol",
]
