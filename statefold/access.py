"""Middleware wrappers that pin node queries to the block being synced or folded."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from statefold.errors import BlockIncompleteError, BlockUnavailableError, ProviderError
from statefold.logs import Filter, Log, sort_logs
from statefold.partition_events import PartitionEvents, PartitionProvider


def _block_number_of(raw: Any) -> int:
    if raw is None:
        raise BlockUnavailableError()
    number = raw.get("number") if isinstance(raw, Mapping) else getattr(raw, "number", None)
    if number is None:
        raise BlockIncompleteError()
    if isinstance(number, str):
        return int(number, 16) if number.startswith("0x") else int(number)
    return int(number)


class _Delegating:
    """Forwards attributes it does not define to the inner middleware."""

    _inner: Any

    @property
    def inner(self) -> Any:
        return self._inner

    def __getattr__(self, name: str) -> Any:
        if name == "_inner":
            raise AttributeError(name)
        return getattr(self._inner, name)


class SyncMiddleware(_Delegating, PartitionProvider[Log]):
    """Queries as of a given block number; log queries span from genesis to that block.

    Log queries too large for the node are split into sub-ranges when the node's
    error mentions one of ``query_limit_error_codes``, or when a response holds
    more than ``maximum_events_per_response`` events.
    """

    def __init__(
        self,
        inner: Any,
        genesis: int,
        block_number: int,
        query_limit_error_codes: tuple[int, ...] | list[int] = (),
        concurrent_events_fetch: int = 1,
        maximum_events_per_response: int | None = None,
    ) -> None:
        self._inner = inner
        self.genesis = genesis
        self.block_number = block_number
        self.query_limit_error_codes = tuple(query_limit_error_codes)
        self.concurrent_events_fetch = concurrent_events_fetch
        self._maximum_events_per_response = maximum_events_per_response

    async def call(self, tx: Any, block: Any = None) -> Any:
        """Run a call at ``block``, or at this middleware's block number if none is given."""
        if block is None:
            block = self.block_number
        try:
            return await self._inner.call(tx, block)
        except Exception as err:
            raise ProviderError(err) from err

    async def _block_range(self, log_filter: Filter) -> tuple[int, int]:
        if log_filter.block_hash is not None:
            try:
                raw = await self._inner.get_block(log_filter.block_hash)
            except Exception as err:
                raise ProviderError(err) from err
            number = _block_number_of(raw)
            return number, number
        start = self.genesis if log_filter.from_block is None else log_filter.from_block
        end = self.block_number if log_filter.to_block is None else log_filter.to_block
        return start, end

    async def get_logs(self, log_filter: Filter) -> list[Log]:
        """Logs matching the filter, ordered by block number and log index."""
        start, end = await self._block_range(log_filter)
        partition = PartitionEvents(self.concurrent_events_fetch, self, log_filter)
        logs = await partition.get_events(start, end)
        return sort_logs(logs)

    async def fetch_events_with_range_inner(
        self, data: Filter, from_block: int, to_block: int
    ) -> list[Log]:
        return list(await self._inner.get_logs(data.with_range(from_block, to_block)))

    def should_retry_with_partition(self, err: Exception) -> bool:
        text = repr(err)
        return any(str(code) in text for code in self.query_limit_error_codes)

    def maximum_events_per_response(self) -> int:
        if self._maximum_events_per_response is None:
            return super().maximum_events_per_response()
        return self._maximum_events_per_response


class FoldMiddleware(_Delegating):
    """Queries as of a given block hash; log queries cover that single block only."""

    def __init__(self, inner: Any, block_hash: bytes) -> None:
        self._inner = inner
        self.block_hash = bytes(block_hash)

    async def call(self, tx: Any, block: Any = None) -> Any:
        """Run a call at ``block``, or at this middleware's block hash if none is given."""
        if block is None:
            block = self.block_hash
        try:
            return await self._inner.call(tx, block)
        except Exception as err:
            raise ProviderError(err) from err

    async def get_logs(self, log_filter: Filter) -> list[Log]:
        """Logs matching the filter in this block; any range in the filter is replaced."""
        pinned = log_filter.at_block_hash(self.block_hash)
        try:
            logs = await self._inner.get_logs(pinned)
        except Exception as err:
            raise ProviderError(err) from err
        return sort_logs(logs)