import pytest

from statefold.access import FoldMiddleware, SyncMiddleware
from statefold.errors import (
    BlockIncompleteError,
    BlockUnavailableError,
    LogUnavailableError,
    PartitionError,
    ProviderError,
)
from statefold.logs import Filter, Log


def _hash(n: int) -> bytes:
    return n.to_bytes(32, "big")


def _logs(first: int, last: int) -> list[Log]:
    out = []
    for number in range(first, last + 1):
        for index in range(2):
            out.append(Log(block_number=number, log_index=index, block_hash=_hash(number)))
    return out


class FakeInner:
    def __init__(self, logs=(), blocks=None, span_limit=None, fail=None):
        self.logs = list(logs)
        self.blocks = blocks or {}
        self.span_limit = span_limit
        self.fail = fail
        self.calls = []
        self.filters = []
        self.chain_id = 31337

    async def call(self, tx, block):
        if self.fail is not None:
            raise self.fail
        self.calls.append((tx, block))
        return b"result"

    async def get_logs(self, log_filter):
        self.filters.append(log_filter)
        if self.fail is not None:
            raise self.fail
        if log_filter.block_hash is not None:
            found = [log for log in self.logs if log.block_hash == log_filter.block_hash]
        else:
            low, high = log_filter.from_block, log_filter.to_block
            if self.span_limit is not None and high - low > self.span_limit:
                raise RuntimeError("query returned more than allowed (code -32005)")
            found = [log for log in self.logs if low <= log.block_number <= high]
        return list(reversed(found))

    async def get_block(self, block_id):
        if isinstance(self.fail, LookupError):
            raise self.fail
        return self.blocks.get(block_id)


def _sync(inner, **kwargs):
    params = dict(
        genesis=0,
        block_number=20,
        query_limit_error_codes=(),
        concurrent_events_fetch=4,
        maximum_events_per_response=None,
    )
    params.update(kwargs)
    return SyncMiddleware(inner, **params)


@pytest.mark.asyncio
async def test_sync_call_defaults_to_block_number():
    inner = FakeInner()
    result = await _sync(inner, block_number=12).call("tx")
    assert result == b"result"
    assert inner.calls == [("tx", 12)]


@pytest.mark.asyncio
async def test_sync_call_uses_given_block():
    inner = FakeInner()
    await _sync(inner).call("tx", _hash(3))
    assert inner.calls == [("tx", _hash(3))]


@pytest.mark.asyncio
async def test_sync_call_wraps_provider_errors():
    failure = RuntimeError("boom")
    with pytest.raises(ProviderError) as info:
        await _sync(FakeInner(fail=failure)).call("tx")
    assert info.value.source is failure


@pytest.mark.asyncio
async def test_sync_get_logs_default_range_is_genesis_to_block():
    inner = FakeInner(logs=_logs(0, 30))
    logs = await _sync(inner, genesis=5, block_number=9).get_logs(Filter())
    assert logs == _logs(5, 9)
    assert (inner.filters[0].from_block, inner.filters[0].to_block) == (5, 9)


@pytest.mark.asyncio
async def test_sync_get_logs_from_only():
    inner = FakeInner(logs=_logs(0, 30))
    logs = await _sync(inner, block_number=15).get_logs(Filter(from_block=12))
    assert logs == _logs(12, 15)


@pytest.mark.asyncio
async def test_sync_get_logs_to_only():
    inner = FakeInner(logs=_logs(0, 30))
    logs = await _sync(inner, genesis=2).get_logs(Filter(to_block=4))
    assert logs == _logs(2, 4)


@pytest.mark.asyncio
async def test_sync_get_logs_explicit_range():
    inner = FakeInner(logs=_logs(0, 30))
    logs = await _sync(inner, block_number=10).get_logs(Filter(from_block=6, to_block=25))
    assert logs == _logs(6, 25)


@pytest.mark.asyncio
async def test_sync_get_logs_at_block_hash_resolves_number():
    inner = FakeInner(logs=_logs(0, 30), blocks={_hash(7): {"number": 7, "hash": _hash(7)}})
    logs = await _sync(inner).get_logs(Filter().at_block_hash(_hash(7)))
    assert logs == _logs(7, 7)
    assert (inner.filters[0].from_block, inner.filters[0].to_block) == (7, 7)


@pytest.mark.asyncio
async def test_sync_get_logs_unknown_block_hash():
    inner = FakeInner(logs=_logs(0, 3))
    with pytest.raises(BlockUnavailableError):
        await _sync(inner).get_logs(Filter().at_block_hash(_hash(99)))


@pytest.mark.asyncio
async def test_sync_get_logs_block_without_number():
    inner = FakeInner(blocks={_hash(1): {"hash": _hash(1)}})
    with pytest.raises(BlockIncompleteError):
        await _sync(inner).get_logs(Filter().at_block_hash(_hash(1)))


@pytest.mark.asyncio
async def test_sync_get_logs_block_lookup_failure():
    inner = FakeInner(fail=LookupError("down"))
    with pytest.raises(ProviderError):
        await _sync(inner).get_logs(Filter().at_block_hash(_hash(1)))


@pytest.mark.asyncio
async def test_sync_get_logs_partitions_on_listed_error_code():
    inner = FakeInner(logs=_logs(0, 40), span_limit=3)
    middleware = _sync(inner, block_number=40, query_limit_error_codes=(-32005,))
    logs = await middleware.get_logs(Filter())
    assert logs == _logs(0, 40)
    assert len(inner.filters) > 1


@pytest.mark.asyncio
async def test_sync_get_logs_without_codes_fails_with_partition_error():
    inner = FakeInner(logs=_logs(0, 40), span_limit=3)
    with pytest.raises(PartitionError) as info:
        await _sync(inner, block_number=40).get_logs(Filter())
    assert len(info.value.sources) == 1
    assert isinstance(info.value.sources[0], RuntimeError)


@pytest.mark.asyncio
async def test_sync_get_logs_splits_large_responses():
    inner = FakeInner(logs=_logs(0, 20))
    middleware = _sync(inner, block_number=20, maximum_events_per_response=4)
    logs = await middleware.get_logs(Filter())
    assert logs == _logs(0, 20)
    assert len(inner.filters) > 1


@pytest.mark.asyncio
async def test_sync_get_logs_requires_block_number_and_index():
    inner = FakeInner(logs=[Log(block_number=1, log_index=None, block_hash=_hash(1))])
    with pytest.raises(LogUnavailableError):
        await _sync(inner).get_logs(Filter())


def test_should_retry_with_partition_matches_codes():
    middleware = _sync(FakeInner(), query_limit_error_codes=(-32005,))
    assert middleware.should_retry_with_partition(RuntimeError("code -32005"))
    assert not middleware.should_retry_with_partition(RuntimeError("code -32000"))


def test_maximum_events_per_response_setting():
    assert _sync(FakeInner(), maximum_events_per_response=7).maximum_events_per_response() == 7


def test_sync_forwards_unknown_attributes_to_inner():
    inner = FakeInner()
    middleware = _sync(inner)
    assert middleware.chain_id == inner.chain_id
    assert middleware.inner is inner


@pytest.mark.asyncio
async def test_fold_call_defaults_to_block_hash():
    inner = FakeInner()
    await FoldMiddleware(inner, _hash(4)).call("tx")
    assert inner.calls == [("tx", _hash(4))]


@pytest.mark.asyncio
async def test_fold_call_uses_given_block():
    inner = FakeInner()
    await FoldMiddleware(inner, _hash(4)).call("tx", 2)
    assert inner.calls == [("tx", 2)]


@pytest.mark.asyncio
async def test_fold_get_logs_overrides_range():
    inner = FakeInner(logs=_logs(0, 10))
    middleware = FoldMiddleware(inner, _hash(3))
    logs = await middleware.get_logs(Filter(from_block=0, to_block=10))
    assert logs == _logs(3, 3)
    sent = inner.filters[0]
    assert sent.block_hash == _hash(3)
    assert sent.from_block is None and sent.to_block is None


@pytest.mark.asyncio
async def test_fold_get_logs_wraps_provider_errors():
    failure = RuntimeError("down")
    with pytest.raises(ProviderError) as info:
        await FoldMiddleware(FakeInner(fail=failure), _hash(1)).get_logs(Filter())
    assert info.value.source is failure


@pytest.mark.asyncio
async def test_fold_get_logs_requires_log_index():
    inner = FakeInner(logs=[Log(block_number=None, log_index=0, block_hash=_hash(2))])
    with pytest.raises(LogUnavailableError):
        await FoldMiddleware(inner, _hash(2)).get_logs(Filter())