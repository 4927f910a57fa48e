"""Following new chain heads and streaming confirmed blocks to subscribers."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from statefold.block_archive import BlockArchive
from statefold.errors import StateFoldError
from statefold.types import Block, BlockError, BlockReorg, NewBlock, block_from_raw

logger = logging.getLogger(__name__)

Connect = Callable[[], Awaitable[Any]]

_END = object()


class BlockSubscriberError(StateFoldError):
    """The block subscription failed: timeout, bad block, dropped stream or no connection."""


class SubscriptionError(StateFoldError):
    """A stream of confirmed blocks could not continue."""


class _AlarmClosed(Exception):
    """The alarm will not ring again."""


class _Alarm:
    """A versioned notification: waiters wake on any change since the version they saw."""

    def __init__(self) -> None:
        self._version = 0
        self._closed = False
        self._event = asyncio.Event()

    def notify(self) -> None:
        self._version += 1
        self._wake()

    def close(self) -> None:
        self._closed = True
        self._wake()

    def _wake(self) -> None:
        event, self._event = self._event, asyncio.Event()
        event.set()

    async def changed(self, seen: int) -> int:
        while self._version == seen:
            if self._closed:
                raise _AlarmClosed("new block notifications have stopped")
            await self._event.wait()
        return self._version


def _as_block(item: Any) -> Block:
    if isinstance(item, Block):
        return item
    try:
        return block_from_raw(item)
    except (BlockError, KeyError, AttributeError, TypeError, ValueError) as err:
        raise BlockSubscriberError("Got incomplete block") from err


async def _next_item(iterator: AsyncIterator[Any]) -> Any:
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return _END


async def _close_subscription(subscription: Any) -> None:
    aclose = getattr(subscription, "aclose", None)
    if callable(aclose):
        with contextlib.suppress(Exception):
            await aclose()


async def _listen_and_broadcast(
    archive: BlockArchive, alarm: _Alarm, subscription: Any, timeout: float
) -> None:
    iterator = aiter(subscription)
    while True:
        try:
            item = await asyncio.wait_for(_next_item(iterator), timeout)
        except TimeoutError as err:
            raise BlockSubscriberError(f"New block subscriber timeout: {timeout}s") from err
        except Exception as err:
            raise BlockSubscriberError(f"Provider error: {err}") from err
        if item is _END:
            raise BlockSubscriberError("Block subscription dropped")

        block = _as_block(item)
        logger.debug(
            "Subscriber received block with number `%d` and hash `%s`",
            block.number,
            block.hash.hex(),
        )

        try:
            await archive.update_latest_block(block)
        except Exception as err:
            logger.debug("could not update block archive: %s", err)

        alarm.notify()


async def _background_process(
    connect: Connect, archive: BlockArchive, alarm: _Alarm, timeout: float
) -> None:
    while True:
        logger.debug("Starting block subscription")
        try:
            subscription = await connect()
        except Exception as err:
            raise BlockSubscriberError(f"Failed to establish connection: {err}") from err

        try:
            await _listen_and_broadcast(archive, alarm, subscription, timeout)
        except BlockSubscriberError as err:
            logger.warning("`listen_and_broadcast` error `%s`, retrying subscription", err)
        finally:
            await _close_subscription(subscription)


def _consume_exception(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


class BlockSubscriber:
    """Follows new chain heads in the background and streams blocks at a given depth."""

    def __init__(self, block_archive: BlockArchive, alarm: _Alarm) -> None:
        self.block_archive = block_archive
        self._alarm = alarm
        self._completion: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._completion.add_done_callback(_consume_exception)
        self.task: asyncio.Task[None] | None = None

    @classmethod
    async def start(
        cls,
        middleware: Any,
        connect: Connect,
        subscriber_timeout: float,
        max_depth: int,
    ) -> BlockSubscriber:
        """Build the archive and start following heads.

        ``connect`` is awaited to open a subscription: an async iterable of new
        block headers, as Blocks or raw block records. A failure to connect ends
        the subscriber; a failing subscription is reopened.
        """
        archive = await BlockArchive.create(middleware, max_depth)
        subscriber = cls(archive, _Alarm())
        subscriber.task = asyncio.create_task(
            subscriber._run(connect, float(subscriber_timeout))
        )
        return subscriber

    async def _run(self, connect: Connect, timeout: float) -> None:
        try:
            await _background_process(connect, self.block_archive, self._alarm, timeout)
        except asyncio.CancelledError:
            self._finish(None)
            raise
        except Exception as err:
            logger.error("subscriber background process exited with error: %r", err)
            self._finish(err)
        else:
            self._finish(None)
        finally:
            self._alarm.close()

    def _finish(self, error: BaseException | None) -> None:
        if self._completion.done():
            return
        if error is None:
            self._completion.set_result(None)
        else:
            self._completion.set_exception(error)

    async def wait_for_completion(self) -> None:
        """Wait until the background process stops; raise the error it stopped with."""
        await asyncio.shield(self._completion)

    async def subscribe_new_blocks_at_depth(self, depth: int) -> AsyncIterator[NewBlock | BlockReorg]:
        """A stream of blocks confirmed by ``depth`` blocks, starting after the current one."""
        previous = await self.block_archive.block_at_depth(depth)
        return self._stream(depth, previous)

    async def _stream(
        self, depth: int, previous: Block
    ) -> AsyncIterator[NewBlock | BlockReorg]:
        seen = 0
        while True:
            try:
                seen = await self._alarm.changed(seen)
            except _AlarmClosed as err:
                raise SubscriptionError(f"Subscriber dropped: {err}") from err

            try:
                diff = await self.block_archive.blocks_since(depth, previous)
            except StateFoldError as err:
                raise SubscriptionError(
                    f"Error while accessing block archive: {err}"
                ) from err

            if diff.is_reorg:
                if diff.blocks:
                    previous = diff.blocks[-1]
                yield BlockReorg(diff.blocks)
            elif diff.blocks:
                previous = diff.blocks[-1]
                for block in diff.blocks:
                    yield NewBlock(block)

    async def close(self) -> None:
        """Stop the background process; open streams end with SubscriptionError."""
        task = self.task
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._alarm.close()
        self._finish(None)

    async def __aenter__(self) -> BlockSubscriber:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()