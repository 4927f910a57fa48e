"""Event logs, log filters, and ordering of logs as a node returns them."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass

from statefold.errors import LogUnavailableError


@dataclass(frozen=True)
class Log:
    """An event log emitted by a contract."""

    address: bytes = b""
    topics: tuple[bytes, ...] = ()
    data: bytes = b""
    block_hash: bytes | None = None
    block_number: int | None = None
    transaction_hash: bytes | None = None
    log_index: int | None = None


@dataclass(frozen=True)
class Filter:
    """A log query: addresses, topics, and either a block range or a single block hash."""

    address: tuple[bytes, ...] | None = None
    topics: tuple[bytes | None, ...] = ()
    from_block: int | None = None
    to_block: int | None = None
    block_hash: bytes | None = None

    def at_block_hash(self, block_hash: bytes) -> Filter:
        """A copy restricted to the single block ``block_hash``; any range is dropped."""
        return dataclasses.replace(
            self, block_hash=bytes(block_hash), from_block=None, to_block=None
        )

    def with_range(self, from_block: int | None, to_block: int | None) -> Filter:
        """A copy restricted to the inclusive block range; any block hash is dropped."""
        return dataclasses.replace(
            self, from_block=from_block, to_block=to_block, block_hash=None
        )


def sort_logs(logs: Iterable[Log]) -> list[Log]:
    """Logs ordered by block number, then log index; every log must carry both."""
    logs = list(logs)
    if any(log.block_number is None or log.log_index is None for log in logs):
        raise LogUnavailableError()
    return sorted(logs, key=lambda log: (log.block_number, log.log_index))