"""Fetching events over a block range, splitting the range when it is too large."""

from __future__ import annotations

import abc
import asyncio
import sys
from collections.abc import Sequence
from typing import Any, Generic, TypeVar

from statefold.errors import PartitionError

Event = TypeVar("Event")


class RangeTooLarge(Exception):
    """The block range asked for is too large; split it and retry each part."""

    def __init__(self) -> None:
        super().__init__("requested block range is too large")


class PartitionProvider(abc.ABC, Generic[Event]):
    """A source of events over inclusive block ranges."""

    async def fetch_events_with_range(
        self, data: Any, from_block: int, to_block: int
    ) -> list[Event]:
        """Events in the range, or RangeTooLarge when the range should be split."""
        try:
            events = await self.fetch_events_with_range_inner(data, from_block, to_block)
        except RangeTooLarge:
            raise
        except Exception as err:
            if self.should_retry_with_partition(err) and from_block < to_block:
                raise RangeTooLarge() from err
            raise

        events = list(events)
        if len(events) > self.maximum_events_per_response():
            raise RangeTooLarge()
        return events

    @abc.abstractmethod
    async def fetch_events_with_range_inner(
        self, data: Any, from_block: int, to_block: int
    ) -> Sequence[Event]:
        """Fetch the events in the inclusive range from the underlying source."""

    @abc.abstractmethod
    def should_retry_with_partition(self, err: Exception) -> bool:
        """Whether ``err`` means the range was too large for one request."""

    def maximum_events_per_response(self) -> int:
        return sys.maxsize


class PartitionEvents(Generic[Event]):
    """Fetches events over a range, bisecting ranges that are too large."""

    def __init__(
        self, concurrent_workers: int, provider: PartitionProvider[Event], partition_data: Any
    ) -> None:
        self._semaphore = asyncio.Semaphore(concurrent_workers + 1)
        self._provider = provider
        self._partition_data = partition_data

    async def get_events(self, start_block: int, end_block: int) -> list[Event]:
        """All events from ``start_block`` to ``end_block`` inclusive, in block order."""
        events, errors = await self._collect(start_block, end_block)
        if errors:
            raise PartitionError(errors)
        return events

    async def _collect(
        self, start_block: int, end_block: int
    ) -> tuple[list[Event], list[Exception]]:
        async with self._semaphore:
            try:
                events = await self._provider.fetch_events_with_range(
                    self._partition_data, start_block, end_block
                )
            except RangeTooLarge as err:
                too_large: RangeTooLarge | None = err
            except Exception as err:
                return [], [err]
            else:
                return events, []

        if start_block >= end_block:
            return [], [too_large]

        middle = start_block + (1 + end_block - start_block) // 2 - 1
        (first, first_errors), (second, second_errors) = await asyncio.gather(
            self._collect(start_block, middle),
            self._collect(middle + 1, end_block),
        )

        if first_errors or second_errors:
            return [], first_errors + second_errors
        return first + second, []