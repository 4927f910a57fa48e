"""Per-initial-state cache of folded states, filled by syncing and folding along the chain."""

from __future__ import annotations

import asyncio
from typing import Any

from statefold.errors import BlockUnavailableError, InnerError, StateFoldError
from statefold.types import Block, BlockState


class Train:
    """States of one foldable for one initial state, keyed by block.

    The first request syncs a state ``safety_margin`` blocks below the current
    block (or at the requested block, if it is older), and later requests fold
    forward from the nearest ancestor that already has a state.
    """

    def __init__(self, foldable: Any, initial_state: Any, safety_margin: int) -> None:
        self.foldable = foldable
        self.initial_state = initial_state
        self.safety_margin = safety_margin
        self._state_tree: dict[Block, Any] = {}
        self._earliest_block: int | None = None
        self._fetch_lock = asyncio.Lock()

    @property
    def earliest_block(self) -> int | None:
        """Number of the oldest synced block, or None before the first sync."""
        return self._earliest_block

    async def get_block_state(self, block: Block) -> BlockState | None:
        """The cached state at ``block``, or None if it has not been computed."""
        state = self._state_tree.get(block)
        if state is None:
            return None
        return BlockState(block=block, state=state)

    async def fetch_block_state(self, env: Any, block: Block) -> BlockState:
        """The state at ``block``, computing it if needed.

        Concurrent fetches are serialised, so that requests near the chain head
        share the work of the first one.
        """
        async with self._fetch_lock:
            cached = await self.get_block_state(block)
            if cached is not None:
                return cached
            return await self._fold_to_leaf(env, block)

    def _before_earliest(self, block: Block) -> bool:
        return self._earliest_block is None or block.number < self._earliest_block

    async def _fold_to_leaf(self, env: Any, leaf_block: Block) -> BlockState:
        # Walk from the leaf towards an ancestor with a known state, stacking
        # the lineage; sync once if the walk crosses the earliest known block.
        stack: list[Block] = []
        ancestor = leaf_block
        has_synced = False

        while True:
            if self._before_earliest(ancestor):
                if has_synced:
                    raise BlockUnavailableError()
                has_synced = True

                sync_block = await self._sync_to_margin(env, leaf_block)
                if ancestor.number <= sync_block.number:
                    margin = leaf_block.number - sync_block.number
                    del stack[margin:]
                    break

            if ancestor in self._state_tree:
                break
            stack.append(ancestor)
            ancestor = await env.block_with_hash(ancestor.parent_hash)

        for block in reversed(stack):
            previous_state = self._state_tree.get(ancestor)
            if previous_state is None:
                raise BlockUnavailableError()
            self._state_tree[block] = await self._call_inner(
                self.foldable.fold(previous_state, block, env, env.fold_access(block))
            )
            ancestor = block

        state = self._state_tree.get(leaf_block)
        if state is None:
            raise BlockUnavailableError()
        return BlockState(block=leaf_block, state=state)

    async def _sync_to_margin(self, env: Any, leaf_block: Block) -> Block:
        current = await env.current_block_number()
        if not current > self.safety_margin:
            raise ValueError("Safety margin greater than blocks in blockchain")
        minimum_sync_block = current - self.safety_margin

        if leaf_block.number <= minimum_sync_block:
            sync_block = leaf_block
        else:
            # Assumes the leaf is on the main chain.
            sync_block = await env.block_with_number(minimum_sync_block)

        self._state_tree[sync_block] = await self._call_inner(
            self.foldable.sync(
                self.initial_state, sync_block, env, env.sync_access(sync_block)
            )
        )

        if self._earliest_block is None:
            self._earliest_block = sync_block.number
        else:
            self._earliest_block = min(self._earliest_block, sync_block.number)
        return sync_block

    @staticmethod
    async def _call_inner(awaitable: Any) -> Any:
        try:
            return await awaitable
        except StateFoldError:
            raise
        except Exception as err:
            raise InnerError(err) from err