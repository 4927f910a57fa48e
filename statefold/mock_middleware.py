"""An in-memory chain that answers block queries, for tests and experiments."""

from __future__ import annotations

from typing import Any

from statefold.types import Block

_HASH_SIZE = 32
_BLOOM_SIZE = 256


class MockError(Exception):
    """Error raised by the in-memory chain."""

    def __str__(self) -> str:
        if self.args:
            return f"MockError: {self.args[0]}"
        return "MockError"


def _hash_from_low(value: int) -> bytes:
    return value.to_bytes(_HASH_SIZE, "big")


class MockMiddleware:
    """A block tree rooted at a zero-hash genesis block; new blocks get counter hashes."""

    def __init__(self) -> None:
        genesis_hash = bytes(_HASH_SIZE)
        self._chain: dict[bytes, Block] = {
            genesis_hash: Block(
                hash=genesis_hash,
                number=0,
                parent_hash=genesis_hash,
                timestamp=0,
                logs_bloom=bytes(_BLOOM_SIZE),
            )
        }
        self._block_count = 0
        self._latest = genesis_hash
        self.deepest_block = 0

    @classmethod
    async def create(cls, initial_block_count: int) -> MockMiddleware:
        """A chain with ``initial_block_count`` blocks on top of genesis."""
        if initial_block_count <= 0:
            raise ValueError("initial_block_count must be positive")
        middleware = cls()
        previous = middleware._latest
        for _ in range(initial_block_count):
            previous = await middleware.add_block(previous)
        return middleware

    def _new_hash(self) -> bytes:
        self._block_count += 1
        return _hash_from_low(self._block_count)

    async def add_block(self, parent_hash: bytes) -> bytes | None:
        """Add a child of ``parent_hash`` and make it latest; None if the parent is unknown."""
        parent = self._chain.get(parent_hash)
        if parent is None:
            return None
        new_number = parent.number + 1
        new_hash = self._new_hash()
        self._chain[new_hash] = Block(
            hash=new_hash,
            number=new_number,
            parent_hash=parent_hash,
            timestamp=0,
            logs_bloom=bytes(_BLOOM_SIZE),
        )
        self._latest = new_hash
        self.deepest_block = max(self.deepest_block, new_number)
        return new_hash

    async def block_by_hash(self, block_hash: bytes) -> Block | None:
        return self._chain.get(block_hash)

    async def block_with_number(self, number: int) -> Block | None:
        return await self.block_with_number_from(number, self._latest)

    async def block_with_number_from(self, number: int, tip: bytes) -> Block | None:
        """The ancestor of ``tip`` (or ``tip`` itself) with the given number."""
        current = self._chain.get(tip)
        while current is not None:
            if current.number == number:
                return current
            if current.number == 0:
                return None
            current = self._chain.get(current.parent_hash)
        return None

    async def latest_block(self) -> Block | None:
        return self._chain.get(self._latest)

    async def get_block_number(self) -> int:
        latest = await self.latest_block()
        if latest is None:
            raise MockError("no latest block")
        return latest.number

    async def get_block(self, block_id: Any) -> dict[str, Any]:
        """A raw block record for a 32-byte hash, a block number, or ``"latest"``."""
        if isinstance(block_id, (bytes, bytearray)):
            block = await self.block_by_hash(bytes(block_id))
        elif block_id == "latest":
            block = await self.latest_block()
        elif isinstance(block_id, int) and not isinstance(block_id, bool):
            block = await self.block_with_number(block_id)
        else:
            raise ValueError(f"get_block not number {block_id!r}")

        if block is None:
            raise MockError(f"block {block_id!r} not found")

        return {
            "hash": block.hash,
            "number": block.number,
            "parent_hash": block.parent_hash,
            "timestamp": 0,
            "logs_bloom": bytes(_BLOOM_SIZE),
        }