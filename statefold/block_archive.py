"""A cache of chain blocks that tracks the latest block and detects reorganisations."""

from __future__ import annotations

import asyncio
from typing import Any

from statefold.block_tree import BlockTree
from statefold.errors import (
    BlockIncompleteError,
    BlockOutOfRangeError,
    BlockUnavailableError,
    DepthTooHighError,
    PreviousAheadOfLatestError,
    ProviderError,
)
from statefold.types import Block, BlockError, BlocksSince, block_from_raw

LATEST = "latest"


async def fetch_block(middleware: Any, block_id: Any) -> Block:
    """Fetch a block by hash, number or ``"latest"`` from ``middleware``."""
    try:
        raw = await middleware.get_block(block_id)
    except Exception as err:
        raise ProviderError(err) from err
    if raw is None:
        raise BlockUnavailableError()
    try:
        return block_from_raw(raw)
    except (BlockError, KeyError) as err:
        raise BlockIncompleteError() from err


async def current_block_number(middleware: Any) -> int:
    """The number of the latest block known to ``middleware``."""
    try:
        return await middleware.get_block_number()
    except Exception as err:
        raise ProviderError(err) from err


async def fetch_block_at_depth(middleware: Any, current: int, depth: int) -> Block:
    """Fetch the block ``depth`` blocks below ``current``."""
    if not current > depth:
        raise DepthTooHighError(depth, current)
    return await fetch_block(middleware, current - depth)


class BlockArchive:
    """Known blocks of the chain, filled lazily from a middleware."""

    def __init__(self, middleware: Any, latest_block: Block, max_depth: int) -> None:
        self._middleware = middleware
        self._tree = BlockTree(latest_block)
        self._lock = asyncio.Lock()
        self.max_depth = max_depth

    @classmethod
    async def create(cls, middleware: Any, max_depth: int) -> BlockArchive:
        latest = await fetch_block(middleware, LATEST)
        return cls(middleware, latest, max_depth)

    async def update_latest_block(self, block: Block) -> None:
        """Make ``block`` the latest and fetch ancestors until the known chain is reached."""
        async with self._lock:
            parent_number = block.number - 1
            parent_hash = block.parent_hash
            self._tree.update_latest_block(block)

            while (known := self._tree.block_with_number(parent_number)) is not None:
                if known.hash == parent_hash:
                    break
                new_block = await fetch_block(self._middleware, parent_hash)
                parent_number = new_block.number - 1
                parent_hash = new_block.parent_hash
                self._tree.insert_block(new_block)

    async def latest_block(self) -> Block:
        async with self._lock:
            return self._tree.latest_block()

    async def block_at_depth(self, depth: int) -> Block:
        latest = await self.latest_block()
        if depth > latest.number:
            raise DepthTooHighError(depth, latest.number)
        return await self.block_with_number(latest.number - depth)

    async def block_with_number(self, number: int) -> Block:
        async with self._lock:
            block = self._tree.block_with_number(number)
        if block is not None:
            return block
        block = await fetch_block(self._middleware, number)
        await self._insert_block(block)
        return block

    async def block_with_hash(self, block_hash: bytes) -> Block:
        async with self._lock:
            block = self._tree.block_with_hash(block_hash)
        if block is not None:
            return block
        block = await fetch_block(self._middleware, block_hash)
        await self._insert_block(block)
        return block

    async def blocks_since(self, depth: int, previous: Block) -> BlocksSince:
        """Blocks at least ``depth`` deep that came after ``previous``, oldest first."""
        latest = await self.latest_block()

        if depth > self.max_depth:
            raise BlockOutOfRangeError(depth, self.max_depth)
        if previous.number > latest.number:
            raise PreviousAheadOfLatestError(previous.number, latest.number)

        diff = latest.number - previous.number
        if diff <= depth:
            return BlocksSince.normal([])
        number_of_new_blocks = diff - depth

        return await self._build_ancestral_stack(previous, latest, number_of_new_blocks)

    async def _insert_block(self, block: Block) -> None:
        async with self._lock:
            self._tree.insert_block(block)

    async def _build_ancestral_stack(
        self, previous: Block, leaf: Block, number_of_new_blocks: int
    ) -> BlocksSince:
        stack = await self._build_stack_from_leaf(previous.number, leaf)
        if not stack:
            return BlocksSince.normal([])

        if stack[-1].hash == previous.hash:
            stack.pop()
            stack.reverse()
            return BlocksSince.normal(stack[:number_of_new_blocks])

        length = len(stack)
        await self._extend_stack_to_ancestor(stack, previous)
        stack.reverse()
        spillover = len(stack) - length
        return BlocksSince.reorg(stack[: number_of_new_blocks + spillover])

    async def _build_stack_from_leaf(self, ancestor_number: int, leaf: Block) -> list[Block]:
        stack: list[Block] = []
        current = leaf
        while current.number != ancestor_number:
            parent = await self.block_with_hash(current.parent_hash)
            stack.append(current)
            current = parent
        stack.append(current)
        return stack

    async def _extend_stack_to_ancestor(self, stack: list[Block], uncle: Block) -> None:
        last = stack[-1]
        assert uncle.number == last.number
        assert uncle.hash != last.hash

        uncle_parent = uncle.parent_hash
        current_parent = last.parent_hash
        while current_parent != uncle_parent:
            current = await self.block_with_hash(current_parent)
            current_parent = current.parent_hash

            current_uncle = await self.block_with_hash(uncle_parent)
            uncle_parent = current_uncle.parent_hash

            stack.append(current)