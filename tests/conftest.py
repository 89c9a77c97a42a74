"""
Pytest configuration for actioncodes tests.
"""
from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest
from nacl.signing import SigningKey

# Add package source to path
package_src = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(package_src))

from actioncodes import ActionCodesProtocol, SolanaAdapter  # noqa: E402
from actioncodes.adapters.solana.transaction import (  # noqa: E402
    LegacyTransaction,
    MessageV0,
    VersionedTransaction,
    public_key_of,
)
from solana_helpers import RECENT_BLOCKHASH, b58_sign, transfer_instruction  # noqa: E402


@pytest.fixture
def user_key() -> SigningKey:
    return SigningKey.generate()


@pytest.fixture
def user_pubkey(user_key: SigningKey) -> str:
    return public_key_of(user_key)


@pytest.fixture
def authority_key() -> SigningKey:
    return SigningKey.generate()


@pytest.fixture
def authority_pubkey(authority_key: SigningKey) -> str:
    return public_key_of(authority_key)


@pytest.fixture
def recipient_pubkey() -> str:
    return public_key_of(SigningKey.generate())


@pytest.fixture
def sign_fn(user_key: SigningKey):
    """Async wallet-style signer for the user key."""

    async def _sign(message: str) -> str:
        await asyncio.sleep(0)
        return b58_sign(user_key, message)

    return _sign


@pytest.fixture
def adapter() -> SolanaAdapter:
    return SolanaAdapter()


@pytest.fixture
def protocol(adapter: SolanaAdapter) -> ActionCodesProtocol:
    instance = ActionCodesProtocol()
    instance.register_adapter(adapter)
    return instance


@pytest.fixture
def legacy_tx(user_pubkey: str, recipient_pubkey: str) -> LegacyTransaction:
    return LegacyTransaction(
        instructions=[transfer_instruction(user_pubkey, recipient_pubkey)],
        recent_blockhash=RECENT_BLOCKHASH,
        fee_payer=user_pubkey,
    )


@pytest.fixture
def versioned_tx(user_pubkey: str, recipient_pubkey: str) -> VersionedTransaction:
    message = MessageV0.compile(
        payer=user_pubkey,
        instructions=[transfer_instruction(user_pubkey, recipient_pubkey)],
        recent_blockhash=RECENT_BLOCKHASH,
    )
    return VersionedTransaction(message=message)
