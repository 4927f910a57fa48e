import pytest

from statefold.errors import PartitionError
from statefold.partition_events import PartitionEvents, PartitionProvider, RangeTooLarge


class MockProviderData:
    pass


class MockProvider1(PartitionProvider):
    async def fetch_events_with_range_inner(self, data, from_block, to_block):
        if from_block == to_block:
            return [from_block]
        raise OSError("oh no!")

    def should_retry_with_partition(self, err):
        return True


class MockProvider2(PartitionProvider):
    async def fetch_events_with_range_inner(self, data, from_block, to_block):
        if to_block - from_block <= 4:
            return list(range(from_block, to_block + 1))
        raise OSError("oh no!")

    def should_retry_with_partition(self, err):
        return True


class AlwaysFails(MockProvider1):
    async def fetch_events_with_range_inner(self, data, from_block, to_block):
        raise OSError("oh no!")


class TooManyEventsProvider(PartitionProvider):
    async def fetch_events_with_range_inner(self, data, from_block, to_block):
        return [0] * 10

    def should_retry_with_partition(self, err):
        return False

    def maximum_events_per_response(self):
        return 5


class RangeLimitedError(Exception):
    pass


class FailingBlocksProvider(PartitionProvider):
    def __init__(self, bad_blocks):
        self.bad_blocks = set(bad_blocks)

    async def fetch_events_with_range_inner(self, data, from_block, to_block):
        if from_block != to_block:
            raise RangeLimitedError("range")
        if from_block in self.bad_blocks:
            raise ValueError(from_block)
        return [from_block]

    def should_retry_with_partition(self, err):
        return isinstance(err, RangeLimitedError)


class NeverRetryProvider(PartitionProvider):
    async def fetch_events_with_range_inner(self, data, from_block, to_block):
        raise OSError("fatal")

    def should_retry_with_partition(self, err):
        return False


@pytest.mark.asyncio
async def test_partition_simple1():
    partition = PartitionEvents(1, MockProvider1(), MockProviderData())
    assert await partition.get_events(0, 10000) == list(range(0, 10001))


@pytest.mark.asyncio
async def test_partition_simple2():
    partition = PartitionEvents(16, MockProvider1(), MockProviderData())
    assert await partition.get_events(0, 10000) == list(range(0, 10001))


@pytest.mark.asyncio
async def test_partition_simple3():
    partition = PartitionEvents(16, MockProvider2(), MockProviderData())
    assert await partition.get_events(0, 10000) == list(range(0, 10001))


@pytest.mark.asyncio
async def test_partition_provider_fails_due_to_block_range():
    with pytest.raises(RangeTooLarge):
        await PartitionProvider.fetch_events_with_range(
            MockProvider2(), MockProviderData(), 0, 10000
        )


@pytest.mark.asyncio
async def test_partition_provider_has_too_large_response():
    with pytest.raises(RangeTooLarge):
        await PartitionProvider.fetch_events_with_range(
            TooManyEventsProvider(), MockProviderData(), 0, 10000
        )


@pytest.mark.asyncio
async def test_provider_small_range_returns_events():
    events = await PartitionProvider.fetch_events_with_range(
        MockProvider2(), MockProviderData(), 3, 6
    )
    assert events == [3, 4, 5, 6]


@pytest.mark.asyncio
async def test_retryable_error_on_single_block_is_terminal():
    with pytest.raises(OSError, match="oh no!"):
        await PartitionProvider.fetch_events_with_range(
            AlwaysFails(), MockProviderData(), 7, 7
        )


@pytest.mark.asyncio
async def test_non_retryable_error_becomes_partition_error():
    partition = PartitionEvents(4, NeverRetryProvider(), MockProviderData())
    with pytest.raises(PartitionError) as info:
        await partition.get_events(0, 100)
    assert len(info.value.sources) == 1
    assert str(info.value.sources[0]) == "fatal"


@pytest.mark.asyncio
async def test_errors_from_both_halves_are_collected_in_order():
    partition = PartitionEvents(4, FailingBlocksProvider({1, 3}), MockProviderData())
    with pytest.raises(PartitionError) as info:
        await partition.get_events(0, 3)
    assert [err.args[0] for err in info.value.sources] == [1, 3]


@pytest.mark.asyncio
async def test_error_in_one_half_only():
    partition = PartitionEvents(4, FailingBlocksProvider({2}), MockProviderData())
    with pytest.raises(PartitionError) as info:
        await partition.get_events(0, 3)
    assert [err.args[0] for err in info.value.sources] == [2]


@pytest.mark.asyncio
async def test_too_many_events_in_single_block_is_error():
    partition = PartitionEvents(2, TooManyEventsProvider(), MockProviderData())
    with pytest.raises(PartitionError) as info:
        await partition.get_events(0, 3)
    assert len(info.value.sources) == 4
    assert all(isinstance(err, RangeTooLarge) for err in info.value.sources)