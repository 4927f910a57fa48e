"""The environment in which foldable states are computed and cached."""

from __future__ import annotations

import sys
from typing import Any

from statefold.access import FoldMiddleware, SyncMiddleware
from statefold.archives import GlobalArchive
from statefold.block_archive import (
    LATEST,
    BlockArchive,
    current_block_number,
    fetch_block,
    fetch_block_at_depth,
)
from statefold.types import Block, BlockState, QueryBlock, QueryKind


class StateFoldEnvironment:
    """A middleware, an optional block archive, and the cache of folded states.

    ``query_limit_error_codes`` are node error codes meaning a log query was too
    large; on a match the query is partitioned. An empty list never partitions.
    Partitioned fetches run at most ``concurrent_events_fetch + 1`` at a time, and
    a response with more than ``maximum_events_per_response`` events is split too.
    """

    def __init__(
        self,
        inner_middleware: Any,
        block_archive: BlockArchive | None,
        safety_margin: int,
        genesis_block: int,
        query_limit_error_codes: tuple[int, ...] | list[int] = (),
        concurrent_events_fetch: int = 1,
        maximum_events_per_response: int = sys.maxsize,
        user_data: Any = None,
    ) -> None:
        self._inner_middleware = inner_middleware
        self.block_archive = block_archive
        self.safety_margin = safety_margin
        self.genesis_block = genesis_block
        self.query_limit_error_codes = tuple(query_limit_error_codes)
        self.concurrent_events_fetch = concurrent_events_fetch
        self.maximum_events_per_response = maximum_events_per_response
        self._global_archive = GlobalArchive(safety_margin)
        self._user_data = user_data

    @property
    def user_data(self) -> Any:
        return self._user_data

    @property
    def inner_middleware(self) -> Any:
        return self._inner_middleware

    async def get_state_for_block(
        self, foldable: Any, initial_state: Any, fold_block: Any
    ) -> BlockState:
        """The state of ``foldable`` for ``initial_state`` at the queried block."""
        archive = await self._global_archive.get_archive(foldable)
        train = await archive.get_train(initial_state)

        query = QueryBlock.from_value(fold_block)
        if query.kind is QueryKind.LATEST:
            block = await self.current_block()
        elif query.kind is QueryKind.BLOCK_HASH:
            block = await self.block_with_hash(query.value)
        elif query.kind is QueryKind.BLOCK_NUMBER:
            block = await self.block_with_number(query.value)
        elif query.kind is QueryKind.BLOCK_DEPTH:
            block = await self.block_at_depth(query.value)
        else:
            block = query.value

        cached = await train.get_block_state(block)
        if cached is not None:
            return cached
        return await train.fetch_block_state(self, block)

    def sync_access(self, block: Block) -> SyncMiddleware:
        """A middleware pinned to ``block``'s number, with logs from genesis."""
        return SyncMiddleware(
            self._inner_middleware,
            self.genesis_block,
            block.number,
            self.query_limit_error_codes,
            self.concurrent_events_fetch,
            self.maximum_events_per_response,
        )

    def fold_access(self, block: Block) -> FoldMiddleware:
        """A middleware pinned to ``block``'s hash."""
        return FoldMiddleware(self._inner_middleware, block.hash)

    async def current_block_number(self) -> int:
        if self.block_archive is not None:
            return (await self.block_archive.latest_block()).number
        return await current_block_number(self._inner_middleware)

    async def current_block(self) -> Block:
        if self.block_archive is not None:
            return await self.block_archive.latest_block()
        return await fetch_block(self._inner_middleware, LATEST)

    async def block_with_hash(self, block_hash: bytes) -> Block:
        if self.block_archive is not None:
            return await self.block_archive.block_with_hash(block_hash)
        return await fetch_block(self._inner_middleware, block_hash)

    async def block_with_number(self, number: int) -> Block:
        if self.block_archive is not None:
            return await self.block_archive.block_with_number(number)
        return await fetch_block(self._inner_middleware, number)

    async def block_at_depth(self, depth: int) -> Block:
        if self.block_archive is not None:
            return await self.block_archive.block_at_depth(depth)
        current = await self.current_block_number()
        return await fetch_block_at_depth(self._inner_middleware, current, depth)