"""Action codes protocol orchestrator.

Composes chain adapters, code derivation and protocol meta into the code
lifecycle: issue (pending) -> attach transaction or message (resolved) ->
finalize (finalized).

Status transitions are not guarded here: re-attaching, attaching after
finalization and replay prevention belong to the storage layer.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence, Union

from .action_code import (
    UNSIGNED_CODE_SIGNATURE,
    ActionCode,
    ActionCodeIntent,
    ActionCodeMetadata,
    ActionCodeStatus,
    ActionCodeTransaction,
)
from .adapters.base import BaseChainAdapter
from .codegen import current_timestamp_ms, generate_code
from .config import ProtocolSettings, load_settings
from .exceptions import (
    InvalidActionCodeError,
    StateError,
    UnsupportedChainError,
    ValidationError,
)
from .logging import mask_value
from .meta import ProtocolMetaV1, from_initiator

logger = logging.getLogger(__name__)

SignFn = Callable[[str], Awaitable[str]]


class ActionCodesProtocol:
    """
    Main entry point for issuing and resolving action codes.

    Owns a per-instance configuration and a chain -> adapter registry. The
    registry is meant to be filled during setup and only read afterwards.
    """

    def __init__(
        self,
        config: Optional[Union[ProtocolSettings, Mapping[str, Any]]] = None,
        **overrides: Any,
    ) -> None:
        if isinstance(config, Mapping):
            overrides = {**config, **overrides}
            config = None
        base = config if config is not None else load_settings()
        self._config = base.merged(**overrides)
        self._adapters: dict[str, BaseChainAdapter[Any]] = {}

    @classmethod
    def create(cls) -> "ActionCodesProtocol":
        return cls()

    @classmethod
    def create_with_config(cls, **overrides: Any) -> "ActionCodesProtocol":
        return cls(**overrides)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> ProtocolSettings:
        return self._config.model_copy()

    def update_config(self, **changes: Any) -> None:
        self._config = self._config.merged(**changes)

    # ------------------------------------------------------------------
    # Adapter registry
    # ------------------------------------------------------------------

    def register_adapter(self, adapter: BaseChainAdapter[Any]) -> None:
        self._adapters[adapter.chain] = adapter
        logger.info("Registered %s adapter", adapter.chain)

    def get_registered_chains(self) -> list[str]:
        return list(self._adapters)

    def is_chain_supported(self, chain: str) -> bool:
        return chain in self._adapters

    def get_chain_adapter(self, chain: str) -> Optional[BaseChainAdapter[Any]]:
        return self._adapters.get(chain)

    def _require_adapter(self, chain: str) -> BaseChainAdapter[Any]:
        adapter = self._adapters.get(chain)
        if adapter is None:
            raise UnsupportedChainError(chain, self.get_registered_chains())
        return adapter

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def validate_action_code(self, action_code: ActionCode) -> bool:
        """Shallow check: supported chain and not expired.

        When an intent is set explicitly, resolved and finalized codes must
        also carry what that intent needs.
        """
        if not self.is_chain_supported(action_code.chain):
            return False
        if action_code.expired:
            return False

        tx = action_code.transaction
        if tx is None or tx.intent_type is None:
            return True

        settled = action_code.status in (ActionCodeStatus.RESOLVED, ActionCodeStatus.FINALIZED)
        if tx.intent_type == ActionCodeIntent.TRANSACTION:
            return not settled or bool(tx.transaction)

        if settled and not tx.message:
            return False
        if action_code.status == ActionCodeStatus.FINALIZED:
            adapter = self._adapters[action_code.chain]
            return bool(tx.signed_message) and adapter.validate_signed_message(
                tx.message, tx.signed_message, action_code.pubkey
            )
        return True

    async def create_action_code(
        self,
        pubkey: str,
        sign_fn: SignFn,
        chain: str,
        prefix: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> ActionCode:
        """Issue a pending action code signed by the user.

        Args:
            pubkey: User public key
            sign_fn: Async signer over the canonical message (e.g. a wallet prompt)
            chain: Target chain; must have a registered adapter
            prefix: Code namespace; defaults to the configured prefix
            timestamp: Issuance time in ms; defaults to now

        Raises:
            UnsupportedChainError: If no adapter is registered for ``chain``
            InvalidPrefixError: If the prefix is invalid
            InvalidActionCodeError: If the signed code fails its own checks
        """
        adapter = self._require_adapter(chain)
        config = self._config
        prefix = config.default_prefix if prefix is None else prefix
        ts = current_timestamp_ms() if timestamp is None else timestamp

        generated = generate_code(
            pubkey,
            UNSIGNED_CODE_SIGNATURE,
            prefix,
            ts,
            digits=config.code_length,
            ttl_ms=config.code_ttl,
            min_length=config.min_prefix_length,
            max_length=config.max_prefix_length,
        )
        message = adapter.get_code_signature_message(generated.code, ts)
        signature = await sign_fn(message)

        action_code = ActionCode(
            code=generated.code,
            pubkey=pubkey,
            signature=signature,
            timestamp=ts,
            expires_at=generated.expires_at,
            chain=chain,
            status=ActionCodeStatus.PENDING,
            prefix=prefix,
        )

        if not self.validate_action_code(action_code):
            raise InvalidActionCodeError(
                "Invalid action code",
                details={"chain": chain, "expires_at": action_code.expires_at},
            )
        if not adapter.verify_code_signature(action_code):
            raise InvalidActionCodeError("Invalid signature for generated code")

        logger.info("Issued action code for %s on %s", mask_value(pubkey), chain)
        return action_code

    def create_protocol_meta(
        self,
        action_code: ActionCode,
        issuer: Optional[str] = None,
        params: Optional[str] = None,
        timestamp: Optional[int] = None,
    ) -> ProtocolMetaV1:
        """Meta for ``action_code``; issuer defaults to the user, time to the code's.

        Raises:
            InvalidPrefixError: If the prefix is outside the configured bounds
        """
        config = self._config
        return from_initiator(
            action_code.pubkey,
            issuer or action_code.pubkey,
            action_code.prefix,
            params,
            timestamp if timestamp is not None else action_code.timestamp,
            min_length=config.min_prefix_length,
            max_length=config.max_prefix_length,
        )

    def attach_transaction(
        self,
        action_code: ActionCode,
        transaction: Any,
        issuer: str,
        params: Optional[str] = None,
        tx_type: Optional[str] = None,
    ) -> ActionCode:
        """Embed protocol meta in ``transaction`` and resolve the code.

        A transaction that already carries meta with this code's id is kept
        as-is. Any previously attached transaction is overwritten.

        Raises:
            UnsupportedChainError: If no adapter is registered for the code's chain
        """
        adapter = self._require_adapter(action_code.chain)
        meta = self.create_protocol_meta(action_code, issuer, params)

        existing = adapter.decode(transaction)
        if existing is not None and existing.id == meta.id:
            final_transaction = transaction
        else:
            final_transaction = adapter.inject_meta(transaction, meta)

        attached = ActionCodeTransaction(
            transaction=final_transaction,
            tx_type=tx_type or action_code.chain,
            intent_type=ActionCodeIntent.TRANSACTION,
        )
        logger.info("Resolved action code %s with transaction", action_code.code)
        return action_code.with_updates(transaction=attached, status=ActionCodeStatus.RESOLVED)

    def attach_message(
        self,
        action_code: ActionCode,
        message: str,
        params: Optional[str] = None,
        message_type: Optional[str] = None,
    ) -> ActionCode:
        """Resolve the code with a message the user will sign (sign-only intent).

        Raises:
            UnsupportedChainError: If no adapter is registered for the code's chain
            ValidationError: If ``params`` is not a JSON object string
            InvalidActionCodeError: If the resolved code fails validation
        """
        self._require_adapter(action_code.chain)

        metadata = action_code.metadata
        if params:
            try:
                parsed = json.loads(params)
            except json.JSONDecodeError as exc:
                raise ValidationError("params must be a JSON object", field="params") from exc
            if not isinstance(parsed, dict):
                raise ValidationError("params must be a JSON object", field="params")
            metadata = ActionCodeMetadata(
                description=metadata.description if metadata else None,
                params=parsed,
            )

        previous = action_code.transaction or ActionCodeTransaction()
        attached = ActionCodeTransaction(
            transaction=previous.transaction,
            tx_signature=previous.tx_signature,
            tx_type=message_type,
            message=message,
            signed_message=previous.signed_message,
            intent_type=ActionCodeIntent.SIGN_ONLY,
        )
        updated = action_code.with_updates(
            transaction=attached,
            status=ActionCodeStatus.RESOLVED,
            metadata=metadata,
        )
        if not self.validate_action_code(updated):
            raise InvalidActionCodeError("Invalid action code after attaching message")

        logger.info("Resolved action code %s with sign-only message", action_code.code)
        return updated

    def finalize_action_code(self, action_code: ActionCode, signature: str) -> ActionCode:
        """Record the transaction signature (or signed message) and finalize.

        Raises:
            StateError: If nothing is attached yet
        """
        current = action_code.transaction
        if current is None:
            raise StateError("Cannot finalize ActionCode without attached transaction")

        if action_code.intent_type == ActionCodeIntent.SIGN_ONLY:
            if not signature and not current.signed_message:
                raise StateError("Cannot finalize sign-only ActionCode without signed message")
            updated = ActionCodeTransaction(
                transaction=current.transaction,
                tx_signature=current.tx_signature,
                tx_type=current.tx_type,
                message=current.message,
                signed_message=signature,
                intent_type=ActionCodeIntent.SIGN_ONLY,
            )
        else:
            updated = ActionCodeTransaction(
                transaction=current.transaction,
                tx_signature=signature,
                tx_type=current.tx_type,
                message=current.message,
                signed_message=current.signed_message,
                intent_type=ActionCodeIntent.TRANSACTION,
            )

        logger.info("Finalized action code %s", action_code.code)
        return action_code.with_updates(transaction=updated, status=ActionCodeStatus.FINALIZED)

    # ------------------------------------------------------------------
    # Adapter facades
    # ------------------------------------------------------------------

    def encode_protocol_meta(self, meta: ProtocolMetaV1, chain: str) -> Any:
        """Raises UnsupportedChainError for unregistered chains."""
        return self._require_adapter(chain).encode(meta)

    def decode_protocol_meta(self, transaction: Any, chain: str) -> Optional[ProtocolMetaV1]:
        adapter = self._adapters.get(chain)
        if adapter is None:
            return None
        return adapter.decode(transaction)

    def validate_transaction(
        self,
        transaction: Any,
        chain: str,
        authorities: Sequence[str],
        expected_prefix: Optional[str] = None,
    ) -> bool:
        adapter = self._adapters.get(chain)
        if adapter is None:
            return False
        return adapter.validate(transaction, authorities, expected_prefix or self._config.default_prefix)

    def detect_tampering(
        self,
        transaction: Any,
        chain: str,
        authorities: Sequence[str],
        expected_prefix: Optional[str] = None,
    ) -> bool:
        adapter = self._adapters.get(chain)
        if adapter is None:
            return False
        return adapter.detect_tampering(
            transaction, authorities, expected_prefix or self._config.default_prefix
        )


__all__ = ["ActionCodesProtocol", "SignFn"]
