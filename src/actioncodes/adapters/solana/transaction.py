"""Solana transaction model and wire codec.

Covers the two encodings the adapter needs:

- legacy transactions: an explicit instruction list, a fee payer and
  signature entries, compiled into a ``LegacyMessage`` on serialization;
- versioned (v0) transactions: a ``MessageV0`` with a static account key
  table and compiled instructions that reference it by index.

Wire layout follows the Solana runtime: shortvec (compact-u16) lengths,
32-byte keys, 64-byte ed25519 signatures. Keys and blockhashes are carried as
base58 strings. Built directly on base58 and PyNaCl rather than solana-py.
"""
from __future__ import annotations

import base64
import binascii
import struct
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Union

import base58
from nacl.signing import SigningKey

from ...exceptions import TransactionError

PUBLIC_KEY_LENGTH = 32
SIGNATURE_LENGTH = 64
DEFAULT_SIGNATURE = bytes(SIGNATURE_LENGTH)

# High bit of the first message byte marks a versioned message
VERSION_PREFIX_MASK = 0x7F

MEMO_PROGRAM_ID = "MemoSq4gqABAXKb96qnH8TysNcWxMyWCqXgDLGmfcHr"
SYSTEM_PROGRAM_ID = "11111111111111111111111111111111"


# =============================================================================
# Keys
# =============================================================================

def public_key_bytes(key: str) -> bytes:
    """Decode a base58 public key.

    Raises:
        ValueError: If the key is not 32 bytes of base58
    """
    decoded = base58.b58decode(key)
    if len(decoded) != PUBLIC_KEY_LENGTH:
        raise ValueError(f"Invalid public key length: {len(decoded)}")
    return decoded


def is_valid_public_key(key: object) -> bool:
    if not isinstance(key, str) or not key:
        return False
    try:
        public_key_bytes(key)
        return True
    except ValueError:
        return False


def public_key_of(signing_key: SigningKey) -> str:
    return base58.b58encode(bytes(signing_key.verify_key)).decode()


# =============================================================================
# Shortvec codec
# =============================================================================

def encode_length(length: int) -> bytes:
    """Encode a compact-u16 length prefix."""
    out = bytearray()
    remaining = length
    while True:
        elem = remaining & 0x7F
        remaining >>= 7
        if remaining == 0:
            out.append(elem)
            return bytes(out)
        out.append(elem | 0x80)


class _Reader:
    """Bounds-checked cursor over untrusted transaction bytes."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def read(self, size: int) -> bytes:
        if size < 0 or self._pos + size > len(self._data):
            raise TransactionError("Unexpected end of transaction data")
        chunk = self._data[self._pos:self._pos + size]
        self._pos += size
        return chunk

    def peek_u8(self) -> int:
        if self.remaining < 1:
            raise TransactionError("Unexpected end of transaction data")
        return self._data[self._pos]

    def read_u8(self) -> int:
        return struct.unpack("<B", self.read(1))[0]

    def read_length(self) -> int:
        length = 0
        for shift in (0, 7, 14):
            elem = self.read_u8()
            length |= (elem & 0x7F) << shift
            if not elem & 0x80:
                return length
        raise TransactionError("Invalid compact-u16 length")

    def read_pubkey(self) -> str:
        return base58.b58encode(self.read(PUBLIC_KEY_LENGTH)).decode()


def _encode_key(key: str) -> bytes:
    try:
        return public_key_bytes(key)
    except ValueError as exc:
        raise TransactionError(f"Invalid account key {key}: {exc}") from exc


# =============================================================================
# Instructions and headers
# =============================================================================

@dataclass(frozen=True, slots=True)
class AccountMeta:
    pubkey: str
    is_signer: bool
    is_writable: bool


@dataclass(frozen=True, slots=True)
class TransactionInstruction:
    """An uncompiled instruction with explicit account metas."""
    program_id: str
    keys: tuple[AccountMeta, ...] = ()
    data: bytes = b""


@dataclass(frozen=True, slots=True)
class MessageHeader:
    num_required_signatures: int
    num_readonly_signed_accounts: int
    num_readonly_unsigned_accounts: int

    def serialize(self) -> bytes:
        return struct.pack(
            "<BBB",
            self.num_required_signatures,
            self.num_readonly_signed_accounts,
            self.num_readonly_unsigned_accounts,
        )


@dataclass(frozen=True, slots=True)
class CompiledInstruction:
    """An instruction whose program and accounts are indices into a key table."""
    program_id_index: int
    account_key_indexes: tuple[int, ...]
    data: bytes

    def serialize(self) -> bytes:
        return (
            struct.pack("<B", self.program_id_index)
            + encode_length(len(self.account_key_indexes))
            + bytes(self.account_key_indexes)
            + encode_length(len(self.data))
            + self.data
        )

    @classmethod
    def from_reader(cls, reader: _Reader) -> "CompiledInstruction":
        program_id_index = reader.read_u8()
        accounts = tuple(reader.read(reader.read_length()))
        data = reader.read(reader.read_length())
        return cls(program_id_index, accounts, data)


@dataclass(frozen=True, slots=True)
class MessageAddressTableLookup:
    account_key: str
    writable_indexes: tuple[int, ...]
    readonly_indexes: tuple[int, ...]

    def serialize(self) -> bytes:
        return (
            _encode_key(self.account_key)
            + encode_length(len(self.writable_indexes))
            + bytes(self.writable_indexes)
            + encode_length(len(self.readonly_indexes))
            + bytes(self.readonly_indexes)
        )

    @classmethod
    def from_reader(cls, reader: _Reader) -> "MessageAddressTableLookup":
        account_key = reader.read_pubkey()
        writable = tuple(reader.read(reader.read_length()))
        readonly = tuple(reader.read(reader.read_length()))
        return cls(account_key, writable, readonly)


def create_memo_instruction(memo: str, signer_pubkeys: Sequence[str] = ()) -> TransactionInstruction:
    """SPL memo instruction; listed signers must sign the transaction on chain."""
    return TransactionInstruction(
        program_id=MEMO_PROGRAM_ID,
        keys=tuple(AccountMeta(pubkey, True, True) for pubkey in signer_pubkeys),
        data=memo.encode("utf-8"),
    )


def _compile_keys(
    payer: str,
    instructions: Sequence[TransactionInstruction],
) -> tuple[MessageHeader, tuple[str, ...]]:
    """Order accounts as payer, signer-writable, signer-readonly, writable, readonly."""
    roles: dict[str, list[bool]] = {payer: [True, True]}

    def merge(pubkey: str, is_signer: bool, is_writable: bool) -> None:
        role = roles.setdefault(pubkey, [False, False])
        role[0] = role[0] or is_signer
        role[1] = role[1] or is_writable

    for ix in instructions:
        for meta in ix.keys:
            merge(meta.pubkey, meta.is_signer, meta.is_writable)
    for ix in instructions:
        merge(ix.program_id, False, False)

    others = [key for key in roles if key != payer]
    ordered = [payer] + sorted(others, key=lambda k: (not roles[k][0], not roles[k][1]))

    signers = [k for k in ordered if roles[k][0]]
    header = MessageHeader(
        num_required_signatures=len(signers),
        num_readonly_signed_accounts=sum(1 for k in signers if not roles[k][1]),
        num_readonly_unsigned_accounts=sum(
            1 for k in ordered if not roles[k][0] and not roles[k][1]
        ),
    )
    return header, tuple(ordered)


def _compile_instructions(
    account_keys: Sequence[str],
    instructions: Sequence[TransactionInstruction],
) -> tuple[CompiledInstruction, ...]:
    index = {key: i for i, key in enumerate(account_keys)}
    try:
        return tuple(
            CompiledInstruction(
                program_id_index=index[ix.program_id],
                account_key_indexes=tuple(index[meta.pubkey] for meta in ix.keys),
                data=ix.data,
            )
            for ix in instructions
        )
    except KeyError as exc:
        raise TransactionError(f"Account key {exc.args[0]} not found in account keys") from exc


def _is_writable(header: MessageHeader, num_keys: int, index: int) -> bool:
    required = header.num_required_signatures
    if index < required:
        return index < required - header.num_readonly_signed_accounts
    return index - required < num_keys - required - header.num_readonly_unsigned_accounts


def _read_signatures(reader: _Reader) -> list[bytes]:
    return [reader.read(SIGNATURE_LENGTH) for _ in range(reader.read_length())]


def _encode_signatures(signatures: Sequence[bytes]) -> bytes:
    return encode_length(len(signatures)) + b"".join(signatures)


# =============================================================================
# Legacy encoding
# =============================================================================

@dataclass(frozen=True, slots=True)
class LegacyMessage:
    header: MessageHeader
    account_keys: tuple[str, ...]
    recent_blockhash: str
    instructions: tuple[CompiledInstruction, ...]

    def is_account_signer(self, index: int) -> bool:
        return index < self.header.num_required_signatures

    def is_account_writable(self, index: int) -> bool:
        return _is_writable(self.header, len(self.account_keys), index)

    def serialize(self) -> bytes:
        return (
            self.header.serialize()
            + encode_length(len(self.account_keys))
            + b"".join(_encode_key(key) for key in self.account_keys)
            + _encode_key(self.recent_blockhash)
            + encode_length(len(self.instructions))
            + b"".join(ix.serialize() for ix in self.instructions)
        )

    @classmethod
    def from_reader(cls, reader: _Reader) -> "LegacyMessage":
        if reader.peek_u8() & ~VERSION_PREFIX_MASK:
            raise TransactionError(
                "Versioned messages must be deserialized with MessageV0.from_reader()"
            )
        header = MessageHeader(reader.read_u8(), reader.read_u8(), reader.read_u8())
        account_keys = tuple(reader.read_pubkey() for _ in range(reader.read_length()))
        recent_blockhash = reader.read_pubkey()
        instructions = tuple(
            CompiledInstruction.from_reader(reader) for _ in range(reader.read_length())
        )
        return cls(header, account_keys, recent_blockhash, instructions)


def _decode_instructions(message: LegacyMessage) -> list[TransactionInstruction]:
    keys = message.account_keys
    try:
        return [
            TransactionInstruction(
                program_id=keys[compiled.program_id_index],
                keys=tuple(
                    AccountMeta(keys[i], message.is_account_signer(i), message.is_account_writable(i))
                    for i in compiled.account_key_indexes
                ),
                data=compiled.data,
            )
            for compiled in message.instructions
        ]
    except IndexError as exc:
        raise TransactionError("Instruction references missing account key") from exc


@dataclass(slots=True)
class SignaturePair:
    pubkey: str
    signature: Optional[bytes] = None


@dataclass(slots=True)
class LegacyTransaction:
    """Legacy transaction: explicit instruction list plus signature entries.

    ``signatures`` records every signer of the transaction, with ``None`` for
    signatures not collected yet.

    ``message`` holds the message a transaction was parsed from. It is reused
    verbatim while the instructions, fee payer and blockhash still describe
    it, so account order chosen by another encoder and the signatures over it
    survive a decode and re-encode.
    """
    instructions: list[TransactionInstruction] = field(default_factory=list)
    recent_blockhash: Optional[str] = None
    fee_payer: Optional[str] = None
    signatures: list[SignaturePair] = field(default_factory=list)
    message: Optional[LegacyMessage] = field(default=None, repr=False, compare=False)

    def add(self, *instructions: TransactionInstruction) -> "LegacyTransaction":
        self.instructions.extend(instructions)
        return self

    def copy(self) -> "LegacyTransaction":
        return replace(
            self,
            instructions=list(self.instructions),
            signatures=[SignaturePair(s.pubkey, s.signature) for s in self.signatures],
        )

    @property
    def payer(self) -> Optional[str]:
        if self.fee_payer:
            return self.fee_payer
        return self.signatures[0].pubkey if self.signatures else None

    def compile_message(self) -> LegacyMessage:
        """Compile to a wire message.

        Raises:
            TransactionError: If the blockhash or fee payer is missing
        """
        if not self.recent_blockhash:
            raise TransactionError("Transaction recent_blockhash required")
        payer = self.payer
        if not payer:
            raise TransactionError("Transaction fee payer required")

        if self._parsed_message_matches(payer):
            message = self.message
        else:
            header, account_keys = _compile_keys(payer, self.instructions)
            message = LegacyMessage(
                header=header,
                account_keys=account_keys,
                recent_blockhash=self.recent_blockhash,
                instructions=_compile_instructions(account_keys, self.instructions),
            )

        signer_keys = message.account_keys[:message.header.num_required_signatures]
        for pair in self.signatures:
            if pair.pubkey not in signer_keys:
                raise TransactionError(f"Unknown signer: {pair.pubkey}")
        return message

    def _parsed_message_matches(self, payer: str) -> bool:
        message = self.message
        if message is None or not message.account_keys:
            return False
        if message.account_keys[0] != payer or message.recent_blockhash != self.recent_blockhash:
            return False
        try:
            return _decode_instructions(message) == self.instructions
        except TransactionError:
            return False

    def serialize_message(self) -> bytes:
        return self.compile_message().serialize()

    def _signer_entries(self, message: LegacyMessage) -> list[SignaturePair]:
        known = {pair.pubkey: pair.signature for pair in self.signatures}
        return [
            SignaturePair(key, known.get(key))
            for key in message.account_keys[:message.header.num_required_signatures]
        ]

    def partial_sign(self, *signing_keys: SigningKey) -> None:
        """Add signatures for ``signing_keys``, keeping any already collected."""
        message = self.compile_message()
        message_bytes = message.serialize()
        entries = self._signer_entries(message)
        by_key = {entry.pubkey: entry for entry in entries}

        for signing_key in signing_keys:
            pubkey = public_key_of(signing_key)
            if pubkey not in by_key:
                raise TransactionError(f"Unknown signer: {pubkey}")
            by_key[pubkey].signature = signing_key.sign(message_bytes).signature

        self.signatures = entries

    def sign(self, *signing_keys: SigningKey) -> None:
        """Reset signatures to ``signing_keys`` (first one pays fees) and sign."""
        if not signing_keys:
            raise TransactionError("No signers")
        if not self.fee_payer:
            self.fee_payer = public_key_of(signing_keys[0])
        self.signatures = []
        self.partial_sign(*signing_keys)

    def serialize(self, require_all_signatures: bool = True) -> bytes:
        message = self.compile_message()
        signatures = []
        for entry in self._signer_entries(message):
            if entry.signature is None:
                if require_all_signatures:
                    raise TransactionError(f"Missing signature for public key {entry.pubkey}")
                signatures.append(DEFAULT_SIGNATURE)
            else:
                signatures.append(entry.signature)
        return _encode_signatures(signatures) + message.serialize()

    @classmethod
    def populate(cls, message: LegacyMessage, signatures: Sequence[bytes] = ()) -> "LegacyTransaction":
        """Rebuild the explicit instruction list from a compiled message."""
        keys = message.account_keys
        pairs = [
            SignaturePair(pubkey, None if signature == DEFAULT_SIGNATURE else signature)
            for pubkey, signature in zip(keys[:message.header.num_required_signatures], signatures)
        ]
        return cls(
            instructions=_decode_instructions(message),
            recent_blockhash=message.recent_blockhash,
            fee_payer=keys[0] if keys else None,
            signatures=pairs,
            message=message,
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "LegacyTransaction":
        reader = _Reader(data)
        signatures = _read_signatures(reader)
        message = LegacyMessage.from_reader(reader)
        if reader.remaining:
            raise TransactionError("Trailing bytes after legacy transaction")
        return cls.populate(message, signatures)


# =============================================================================
# Versioned (v0) encoding
# =============================================================================

@dataclass(frozen=True, slots=True)
class MessageV0:
    header: MessageHeader
    static_account_keys: tuple[str, ...]
    recent_blockhash: str
    compiled_instructions: tuple[CompiledInstruction, ...]
    address_table_lookups: tuple[MessageAddressTableLookup, ...] = ()

    version = 0

    @classmethod
    def compile(
        cls,
        payer: str,
        instructions: Sequence[TransactionInstruction],
        recent_blockhash: str,
    ) -> "MessageV0":
        """Compile instructions into a v0 message without lookup tables."""
        header, keys = _compile_keys(payer, instructions)
        return cls(
            header=header,
            static_account_keys=keys,
            recent_blockhash=recent_blockhash,
            compiled_instructions=_compile_instructions(keys, instructions),
        )

    def with_instruction(self, instruction: TransactionInstruction) -> "MessageV0":
        """Return a new message with ``instruction`` appended.

        Every account the instruction references, program id included, is
        added to the static key table first; indices are resolved against
        the extended table afterwards. Added keys join the read-only unsigned
        tail so existing accounts keep their roles.
        """
        keys = list(self.static_account_keys)
        for pubkey in [meta.pubkey for meta in instruction.keys] + [instruction.program_id]:
            if pubkey not in keys:
                keys.append(pubkey)
        added = len(keys) - len(self.static_account_keys)

        compiled = _compile_instructions(keys, [instruction])[0]
        header = replace(
            self.header,
            num_readonly_unsigned_accounts=self.header.num_readonly_unsigned_accounts + added,
        )
        return replace(
            self,
            header=header,
            static_account_keys=tuple(keys),
            compiled_instructions=self.compiled_instructions + (compiled,),
        )

    def is_account_signer(self, index: int) -> bool:
        return index < self.header.num_required_signatures

    def serialize(self) -> bytes:
        return (
            struct.pack("<B", 0x80 | self.version)
            + self.header.serialize()
            + encode_length(len(self.static_account_keys))
            + b"".join(_encode_key(key) for key in self.static_account_keys)
            + _encode_key(self.recent_blockhash)
            + encode_length(len(self.compiled_instructions))
            + b"".join(ix.serialize() for ix in self.compiled_instructions)
            + encode_length(len(self.address_table_lookups))
            + b"".join(lookup.serialize() for lookup in self.address_table_lookups)
        )

    @classmethod
    def from_reader(cls, reader: _Reader) -> "MessageV0":
        prefix = reader.read_u8()
        if not prefix & ~VERSION_PREFIX_MASK:
            raise TransactionError("Expected versioned message but received legacy message")
        version = prefix & VERSION_PREFIX_MASK
        if version != 0:
            raise TransactionError(f"Unsupported message version: {version}")

        header = MessageHeader(reader.read_u8(), reader.read_u8(), reader.read_u8())
        keys = tuple(reader.read_pubkey() for _ in range(reader.read_length()))
        recent_blockhash = reader.read_pubkey()
        instructions = tuple(
            CompiledInstruction.from_reader(reader) for _ in range(reader.read_length())
        )
        lookups = tuple(
            MessageAddressTableLookup.from_reader(reader) for _ in range(reader.read_length())
        )
        return cls(header, keys, recent_blockhash, instructions, lookups)


@dataclass(slots=True)
class VersionedTransaction:
    message: MessageV0
    signatures: list[bytes] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.signatures:
            self.signatures = [DEFAULT_SIGNATURE] * self.message.header.num_required_signatures

    def sign(self, *signing_keys: SigningKey) -> None:
        message_bytes = self.message.serialize()
        signer_keys = self.message.static_account_keys[:self.message.header.num_required_signatures]
        for signing_key in signing_keys:
            pubkey = public_key_of(signing_key)
            if pubkey not in signer_keys:
                raise TransactionError(f"Cannot sign with non signer key {pubkey}")
            self.signatures[signer_keys.index(pubkey)] = signing_key.sign(message_bytes).signature

    def serialize(self) -> bytes:
        return _encode_signatures(self.signatures) + self.message.serialize()

    @classmethod
    def from_bytes(cls, data: bytes) -> "VersionedTransaction":
        reader = _Reader(data)
        signatures = _read_signatures(reader)
        message = MessageV0.from_reader(reader)
        if reader.remaining:
            raise TransactionError("Trailing bytes after versioned transaction")
        return cls(message=message, signatures=signatures)


SolanaTransaction = Union[LegacyTransaction, VersionedTransaction]


def deserialize_transaction(data: bytes) -> SolanaTransaction:
    """Parse wire bytes, trying the legacy encoding first, then v0.

    Raises:
        TransactionError: If neither encoding fits
    """
    try:
        return LegacyTransaction.from_bytes(data)
    except TransactionError:
        pass
    try:
        return VersionedTransaction.from_bytes(data)
    except TransactionError as exc:
        raise TransactionError("Failed to deserialize Solana transaction") from exc


def transaction_from_base64(encoded: str) -> SolanaTransaction:
    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise TransactionError("Failed to deserialize Solana transaction") from exc
    return deserialize_transaction(data)


def transaction_to_base64(tx: SolanaTransaction, require_all_signatures: bool = False) -> str:
    if isinstance(tx, LegacyTransaction):
        raw = tx.serialize(require_all_signatures=require_all_signatures)
    else:
        raw = tx.serialize()
    return base64.b64encode(raw).decode("ascii")


__all__ = [
    "MEMO_PROGRAM_ID",
    "SYSTEM_PROGRAM_ID",
    "DEFAULT_SIGNATURE",
    "AccountMeta",
    "TransactionInstruction",
    "MessageHeader",
    "CompiledInstruction",
    "MessageAddressTableLookup",
    "LegacyMessage",
    "SignaturePair",
    "LegacyTransaction",
    "MessageV0",
    "VersionedTransaction",
    "SolanaTransaction",
    "create_memo_instruction",
    "deserialize_transaction",
    "transaction_from_base64",
    "transaction_to_base64",
    "encode_length",
    "is_valid_public_key",
    "public_key_bytes",
    "public_key_of",
]
