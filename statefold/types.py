"""Block, state and query value types shared across the package."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

_HASH_SIZE = 32
_BLOOM_SIZE = 256

State = TypeVar("State")


@dataclass(frozen=True, eq=False)
class Block:
    """A block header. Two blocks are the same block when their hashes match."""

    hash: bytes
    number: int
    parent_hash: bytes
    timestamp: int = 0
    logs_bloom: bytes = bytes(_BLOOM_SIZE)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Block):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)


@dataclass(frozen=True)
class BlockState(Generic[State]):
    """A folded state together with the block it was computed at."""

    block: Block
    state: State


class SinceKind(enum.Enum):
    """Whether a list of blocks extends the chain or replaces part of it."""

    NORMAL = "normal"
    REORG = "reorg"


@dataclass(frozen=True)
class BlocksSince:
    """Blocks that appeared since a previous block."""

    kind: SinceKind
    blocks: tuple[Block, ...]

    @classmethod
    def normal(cls, blocks: Iterable[Block]) -> BlocksSince:
        return cls(SinceKind.NORMAL, tuple(blocks))

    @classmethod
    def reorg(cls, blocks: Iterable[Block]) -> BlocksSince:
        return cls(SinceKind.REORG, tuple(blocks))

    @property
    def is_reorg(self) -> bool:
        return self.kind is SinceKind.REORG


@dataclass(frozen=True)
class StatesSince(Generic[State]):
    """States computed for the blocks that appeared since a previous block."""

    kind: SinceKind
    states: tuple[BlockState[State], ...]

    @classmethod
    def normal(cls, states: Iterable[BlockState[State]]) -> StatesSince[State]:
        return cls(SinceKind.NORMAL, tuple(states))

    @classmethod
    def reorg(cls, states: Iterable[BlockState[State]]) -> StatesSince[State]:
        return cls(SinceKind.REORG, tuple(states))

    @property
    def is_reorg(self) -> bool:
        return self.kind is SinceKind.REORG


@dataclass(frozen=True)
class NewBlock:
    """Block stream item: one new block on the chain."""

    block: Block


@dataclass(frozen=True)
class BlockReorg:
    """Block stream item: the chain was reorganised onto these blocks."""

    blocks: tuple[Block, ...]


@dataclass(frozen=True)
class NewState(Generic[State]):
    """State stream item: the state at one new block."""

    state: BlockState[State]


@dataclass(frozen=True)
class StateReorg(Generic[State]):
    """State stream item: states along a reorganised chain."""

    states: tuple[BlockState[State], ...]


class QueryKind(enum.Enum):
    """The ways a block can be asked for."""

    LATEST = "latest"
    BLOCK_HASH = "block_hash"
    BLOCK_NUMBER = "block_number"
    BLOCK_DEPTH = "block_depth"
    BLOCK = "block"


@dataclass(frozen=True)
class QueryBlock:
    """A request for a block: latest, by hash, by number, by depth, or a given block."""

    kind: QueryKind
    value: Any = None

    @classmethod
    def latest(cls) -> QueryBlock:
        return cls(QueryKind.LATEST)

    @classmethod
    def by_hash(cls, block_hash: bytes) -> QueryBlock:
        block_hash = bytes(block_hash)
        if len(block_hash) != _HASH_SIZE:
            raise ValueError(f"block hash must be {_HASH_SIZE} bytes, got {len(block_hash)}")
        return cls(QueryKind.BLOCK_HASH, block_hash)

    @classmethod
    def by_number(cls, number: int) -> QueryBlock:
        if number < 0:
            raise ValueError(f"block number must not be negative, got {number}")
        return cls(QueryKind.BLOCK_NUMBER, number)

    @classmethod
    def by_depth(cls, depth: int) -> QueryBlock:
        if depth < 0:
            raise ValueError(f"depth must not be negative, got {depth}")
        return cls(QueryKind.BLOCK_DEPTH, depth)

    @classmethod
    def of_block(cls, block: Block) -> QueryBlock:
        return cls(QueryKind.BLOCK, block)

    @classmethod
    def from_value(cls, value: Any) -> QueryBlock:
        """Build a query from a hash, a block number, a block, or a query."""
        if isinstance(value, QueryBlock):
            return value
        if isinstance(value, Block):
            return cls.of_block(value)
        if isinstance(value, (bytes, bytearray, memoryview)):
            return cls.by_hash(bytes(value))
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.by_number(value)
        raise TypeError(f"cannot build a block query from {type(value).__name__}")


_MISSING_LABELS = {
    "hash": "hash",
    "number": "number",
    "logs_bloom": "logs bloom",
}


class BlockError(ValueError):
    """A raw block lacks a field that a Block needs."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Block has no {_MISSING_LABELS.get(field, field)}")


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, str):
        return bytes.fromhex(value.removeprefix("0x"))
    return bytes(value)


def _as_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def block_from_raw(raw: Mapping[str, Any]) -> Block:
    """Build a Block from a node's block record; hex strings are accepted."""
    block_hash = raw.get("hash")
    if block_hash is None:
        raise BlockError("hash")
    number = raw.get("number")
    if number is None:
        raise BlockError("number")
    parent_hash = raw["parent_hash"]
    timestamp = raw.get("timestamp", 0)
    logs_bloom = raw.get("logs_bloom")
    if logs_bloom is None:
        raise BlockError("logs_bloom")
    return Block(
        hash=_as_bytes(block_hash),
        number=_as_int(number),
        parent_hash=_as_bytes(parent_hash),
        timestamp=_as_int(timestamp),
        logs_bloom=_as_bytes(logs_bloom),
    )