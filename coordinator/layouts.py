"""
coordinator/layouts.py

Coordinator program account layout definitions.

Two account kinds are decoded: the CoordinatorState singleton and Batch.
Both are Borsh-serialized by the program behind an 8-byte Anchor
discriminator which is skipped, not checked.
"""
import hashlib
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

import base58

from .errors import DecodeError


# Solana pubkey (32 bytes, base58 encoded)
PUBKEY_LENGTH = 32
HASH_LENGTH = 32
DISCRIMINATOR_LENGTH = 8

U8 = struct.Struct('<B')
U32 = struct.Struct('<I')
U64 = struct.Struct('<Q')
I64 = struct.Struct('<q')

OPTION_NONE = 0
OPTION_SOME = 1


class BatchStatus(IntEnum):
    """On-chain batch status byte."""
    PENDING = 0
    FINALIZED = 1
    EXECUTED = 2

    def __str__(self) -> str:
        return self.name.lower()

    def __format__(self, spec: str) -> str:
        return format(str(self), spec)


def account_discriminator(name: str) -> bytes:
    """Anchor account discriminator: first 8 bytes of sha256("account:<Name>")."""
    return hashlib.sha256(f"account:{name}".encode('utf-8')).digest()[:DISCRIMINATOR_LENGTH]


COORDINATOR_STATE_DISCRIMINATOR = account_discriminator("CoordinatorState")
BATCH_DISCRIMINATOR = account_discriminator("Batch")


def pubkey_to_string(data: bytes) -> str:
    """Convert 32-byte pubkey to base58 string."""
    return base58.b58encode(data).decode('utf-8')


def pubkey_to_bytes(value: str) -> bytes:
    """Convert base58 pubkey string back to its 32 raw bytes."""
    raw = base58.b58decode(value)
    if len(raw) != PUBKEY_LENGTH:
        raise ValueError(f"Pubkey must be {PUBKEY_LENGTH} bytes, got {len(raw)}")
    return raw


class ByteCursor:
    """
    Bounds-checked forward reader over an account buffer.

    Every read checks the remaining length first and raises DecodeError
    instead of returning a short slice.
    """

    def __init__(self, data: bytes, offset: int = 0):
        self._data = bytes(data)
        self._offset = offset

    @property
    def offset(self) -> int:
        return self._offset

    @property
    def remaining(self) -> int:
        return len(self._data) - self._offset

    def read_bytes(self, size: int) -> bytes:
        if size < 0 or self.remaining < size:
            raise DecodeError(
                f"Need {size} bytes at offset {self._offset}, have {max(self.remaining, 0)}"
            )
        chunk = self._data[self._offset:self._offset + size]
        self._offset += size
        return chunk

    def skip(self, size: int) -> None:
        self.read_bytes(size)

    def _unpack(self, layout: struct.Struct) -> int:
        return layout.unpack(self.read_bytes(layout.size))[0]

    def read_u8(self) -> int:
        return self._unpack(U8)

    def read_u32(self) -> int:
        return self._unpack(U32)

    def read_u64(self) -> int:
        return self._unpack(U64)

    def read_i64(self) -> int:
        return self._unpack(I64)

    def read_fixed_vec(self, item_size: int) -> List[bytes]:
        """Borsh Vec<[u8; item_size]>: u32 length prefix, then fixed items."""
        length = self.read_u32()
        # Reject impossible lengths before looping.
        if length * item_size > self.remaining:
            raise DecodeError(
                f"Vec of {length} x {item_size}B overruns buffer at offset {self._offset}"
            )
        return [self.read_bytes(item_size) for _ in range(length)]

    def read_option_flag(self) -> bool:
        flag = self.read_u8()
        if flag == OPTION_NONE:
            return False
        if flag == OPTION_SOME:
            return True
        raise DecodeError(f"Invalid option flag {flag} at offset {self._offset - 1}")


@dataclass
class CoordinatorConfig:
    """
    Decoded CoordinatorState singleton.

    min_batch_size is the ledger's k-anonymity floor.
    """
    authority: str               # Pubkey
    min_batch_size: int          # u8
    max_batch_size: int          # u8
    batch_counter: int           # u64: next batch id to be created
    bump: int = 0                # u8: PDA bump seed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": self.authority,
            "min_batch_size": self.min_batch_size,
            "max_batch_size": self.max_batch_size,
            "batch_counter": self.batch_counter,
            "bump": self.bump,
        }


@dataclass
class OnChainBatch:
    """Decoded Batch account."""
    id: int                                  # u64
    status: BatchStatus                      # u8
    query_count: int                         # u8
    query_hashes: List[bytes] = field(default_factory=list)   # Vec<[u8; 32]>
    submitters: List[str] = field(default_factory=list)       # Vec<Pubkey>
    created_at: int = 0                      # i64 unix timestamp
    finalized_at: Optional[int] = None       # Option<i64>
    results_hash: Optional[bytes] = None     # Option<[u8; 32]>
    bump: int = 0                            # u8

    @property
    def is_finalized(self) -> bool:
        return self.status == BatchStatus.FINALIZED

    @property
    def is_executed(self) -> bool:
        return self.status == BatchStatus.EXECUTED

    def invariant_violations(self, config: Optional[CoordinatorConfig] = None) -> List[str]:
        """
        List the ledger invariants this record breaks.

        The program enforces these on write; a non-empty result means the
        bytes did not come from a well-behaved program.
        """
        problems = []
        if len(self.query_hashes) != self.query_count:
            problems.append(
                f"query_hashes has {len(self.query_hashes)} entries, query_count is {self.query_count}"
            )
        if len(self.submitters) != self.query_count:
            problems.append(
                f"submitters has {len(self.submitters)} entries, query_count is {self.query_count}"
            )
        if len(set(self.query_hashes)) != len(self.query_hashes):
            problems.append("duplicate query hash")
        if (self.finalized_at is not None) != (self.status >= BatchStatus.FINALIZED):
            problems.append(f"finalized_at does not match status {self.status}")
        if (self.results_hash is not None) != (self.status == BatchStatus.EXECUTED):
            problems.append(f"results_hash does not match status {self.status}")
        if config is not None:
            if self.query_count > config.max_batch_size:
                problems.append(
                    f"query_count {self.query_count} above max_batch_size {config.max_batch_size}"
                )
            if self.status >= BatchStatus.FINALIZED and self.query_count < config.min_batch_size:
                problems.append(
                    f"query_count {self.query_count} below min_batch_size {config.min_batch_size}"
                )
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": str(self.status),
            "query_count": self.query_count,
            "query_hashes": [h.hex() for h in self.query_hashes],
            "submitters": list(self.submitters),
            "created_at": self.created_at,
            "finalized_at": self.finalized_at,
            "results_hash": self.results_hash.hex() if self.results_hash is not None else None,
            "bump": self.bump,
        }


def read_coordinator_config(data: bytes) -> CoordinatorConfig:
    """
    Decode CoordinatorState from raw account bytes.

    Raises:
        DecodeError: If data is truncated
    """
    cursor = ByteCursor(data)
    cursor.skip(DISCRIMINATOR_LENGTH)

    authority = pubkey_to_string(cursor.read_bytes(PUBKEY_LENGTH))
    min_batch_size = cursor.read_u8()
    max_batch_size = cursor.read_u8()
    batch_counter = cursor.read_u64()
    bump = cursor.read_u8()

    return CoordinatorConfig(
        authority=authority,
        min_batch_size=min_batch_size,
        max_batch_size=max_batch_size,
        batch_counter=batch_counter,
        bump=bump,
    )


def read_batch(data: bytes) -> OnChainBatch:
    """
    Decode Batch from raw account bytes.

    Raises:
        DecodeError: If data is truncated or the status byte is unknown
    """
    cursor = ByteCursor(data)
    cursor.skip(DISCRIMINATOR_LENGTH)

    batch_id = cursor.read_u64()

    status_byte = cursor.read_u8()
    try:
        status = BatchStatus(status_byte)
    except ValueError:
        raise DecodeError(f"Unknown batch status byte {status_byte}")

    query_count = cursor.read_u8()
    query_hashes = cursor.read_fixed_vec(HASH_LENGTH)
    submitters = [pubkey_to_string(raw) for raw in cursor.read_fixed_vec(PUBKEY_LENGTH)]
    created_at = cursor.read_i64()

    finalized_at = cursor.read_i64() if cursor.read_option_flag() else None
    results_hash = cursor.read_bytes(HASH_LENGTH) if cursor.read_option_flag() else None

    bump = cursor.read_u8()

    return OnChainBatch(
        id=batch_id,
        status=status,
        query_count=query_count,
        query_hashes=query_hashes,
        submitters=submitters,
        created_at=created_at,
        finalized_at=finalized_at,
        results_hash=results_hash,
        bump=bump,
    )


def decode_coordinator_config(data: Optional[bytes]) -> Optional[CoordinatorConfig]:
    """Decode CoordinatorState, returning None on malformed or missing data."""
    if data is None:
        return None
    try:
        return read_coordinator_config(data)
    except DecodeError:
        return None


def decode_batch(data: Optional[bytes]) -> Optional[OnChainBatch]:
    """Decode Batch, returning None on malformed or missing data."""
    if data is None:
        return None
    try:
        return read_batch(data)
    except DecodeError:
        return None


def _encode_option(value: Optional[bytes]) -> bytes:
    if value is None:
        return U8.pack(OPTION_NONE)
    return U8.pack(OPTION_SOME) + value


def encode_coordinator_config(
    config: CoordinatorConfig,
    discriminator: bytes = COORDINATOR_STATE_DISCRIMINATOR,
) -> bytes:
    """Serialize CoordinatorState in the program's account layout."""
    return b''.join([
        discriminator,
        pubkey_to_bytes(config.authority),
        U8.pack(config.min_batch_size),
        U8.pack(config.max_batch_size),
        U64.pack(config.batch_counter),
        U8.pack(config.bump),
    ])


def encode_batch(
    batch: OnChainBatch,
    discriminator: bytes = BATCH_DISCRIMINATOR,
) -> bytes:
    """Serialize Batch in the program's account layout."""
    for h in batch.query_hashes:
        if len(h) != HASH_LENGTH:
            raise ValueError(f"Query hash must be {HASH_LENGTH} bytes, got {len(h)}")
    if batch.results_hash is not None and len(batch.results_hash) != HASH_LENGTH:
        raise ValueError(f"Results hash must be {HASH_LENGTH} bytes")

    parts = [
        discriminator,
        U64.pack(batch.id),
        U8.pack(int(batch.status)),
        U8.pack(batch.query_count),
        U32.pack(len(batch.query_hashes)),
        *batch.query_hashes,
        U32.pack(len(batch.submitters)),
        *(pubkey_to_bytes(s) for s in batch.submitters),
        I64.pack(batch.created_at),
        _encode_option(I64.pack(batch.finalized_at) if batch.finalized_at is not None else None),
        _encode_option(batch.results_hash),
        U8.pack(batch.bump),
    ]
    return b''.join(parts)
