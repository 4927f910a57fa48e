"""Errors raised while reading blocks, logs and folded states."""

from __future__ import annotations

from collections.abc import Iterable


class StateFoldError(Exception):
    """Base class for errors raised by this package."""


class ProviderError(StateFoldError):
    """The underlying node provider or middleware failed."""

    def __init__(self, source: BaseException) -> None:
        self.source = source
        super().__init__(f"Provider error: {source}")


class BlockIncompleteError(StateFoldError):
    """The requested block lacks fields it should have."""

    def __init__(self) -> None:
        super().__init__("Requested block incomplete")


class BlockUnavailableError(StateFoldError):
    """The requested block could not be found."""

    def __init__(self) -> None:
        super().__init__("Requested block unavailable")


class PreviousAheadOfLatestError(StateFoldError):
    """A previous block is numbered after the latest block."""

    def __init__(self, previous_number: int, latest_number: int) -> None:
        self.previous_number = previous_number
        self.latest_number = latest_number
        super().__init__(
            f"Previous block `{previous_number}` ahead of latest block `{latest_number}`"
        )


class BlockOutOfRangeError(StateFoldError):
    """A depth larger than the archive's maximum depth was requested."""

    def __init__(self, depth: int, max_depth: int) -> None:
        self.depth = depth
        self.max_depth = max_depth
        super().__init__(f"The depth `{depth}` is over the `{max_depth}` maximum")


class DepthTooHighError(StateFoldError):
    """A depth reaching past the first block of the chain was requested."""

    def __init__(self, depth: int, latest: int) -> None:
        self.depth = depth
        self.latest = latest
        super().__init__(f"Depth of `{depth}` higher than latest block `{latest}`")


class LogUnavailableError(StateFoldError):
    """A log lacks its block number or log index."""

    def __init__(self) -> None:
        super().__init__("Requested log unavailable")


class PartitionError(StateFoldError):
    """Fetching events over a partitioned block range failed."""

    def __init__(self, sources: Iterable[BaseException]) -> None:
        self.sources = list(sources)
        super().__init__(f"Partition error: {self.sources!r}")


class InnerError(StateFoldError):
    """A foldable's own sync or fold step failed."""

    def __init__(self, source: BaseException) -> None:
        self.source = source
        super().__init__(f"Inner error: {source}")