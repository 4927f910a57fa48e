"""The interface of a state that is built by syncing once and folding block by block."""

from __future__ import annotations

import abc
from typing import Any

from statefold.types import QueryBlock


class Foldable(abc.ABC):
    """A state computed from the chain.

    ``sync`` builds the state at a block from scratch, given a hashable initial
    state; ``fold`` builds the state at a block from the state at its parent.
    Errors raised by either are reported as ``InnerError`` by the environment.
    """

    @classmethod
    @abc.abstractmethod
    async def sync(cls, initial_state: Any, block: Any, env: Any, access: Any) -> Foldable:
        """The state at ``block``, built with a SyncMiddleware pinned to it."""

    @classmethod
    @abc.abstractmethod
    async def fold(cls, previous_state: Foldable, block: Any, env: Any, access: Any) -> Foldable:
        """The state at ``block`` from its parent's state, with a FoldMiddleware."""

    @classmethod
    async def get_state_for_block(cls, initial_state: Any, fold_block: Any, env: Any) -> Any:
        """The BlockState of this foldable at ``fold_block`` (a query, hash, number or block)."""
        query = QueryBlock.from_value(fold_block)
        return await env.get_state_for_block(cls, initial_state, query)