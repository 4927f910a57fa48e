# statefold

`statefold` keeps a reorg-aware history of recent blocks from an
Ethereum-style chain, and computes user-defined states over that chain
by *folding*: each state is built from the state at the parent block
and the new block. When the chain reorganises, states on the new branch
are folded forward from the nearest ancestor whose state is already
known, so work is not repeated.

Everything that talks to a node is `async` and is built on `asyncio`.

## Installing

```
pip install .
pip install ".[test]"   # with pytest and pytest-asyncio
```

## Modules

- `statefold.types` – `Block` (equal and hashed by its hash),
  `BlockState`, `BlocksSince` and `StatesSince` (a normal advance or a
  reorg, told apart by `SinceKind` and the `is_reorg` property), the
  stream items `NewBlock`, `BlockReorg`, `NewState` and `StateReorg`,
  and `QueryBlock`, which names a block as `latest()`, `by_hash(...)`,
  `by_number(...)`, `by_depth(...)` or `of_block(...)`.
  `QueryBlock.from_value` accepts a query, a `Block`, a 32-byte hash or
  a block number. `block_from_raw` turns a node's block record (a
  mapping with `hash`, `number`, `parent_hash`, `timestamp`,
  `logs_bloom`; hex strings accepted) into a `Block`, raising
  `BlockError` when the hash, number or logs bloom is missing.
- `statefold.block_tree` – `BlockTree`, an in-memory index of blocks by
  hash and by number.
- `statefold.block_archive` – `BlockArchive` caches blocks fetched from
  a middleware. `blocks_since(depth, previous)` returns the blocks at
  least `depth` deep that came after `previous`, oldest first, as a
  reorg when the chain has switched branches. Also the helpers
  `fetch_block`, `current_block_number` and `fetch_block_at_depth`.
- `statefold.block_subscriber` – `BlockSubscriber` follows new heads in
  a background task and hands each caller of
  `subscribe_new_blocks_at_depth(depth)` an async stream of `NewBlock`
  and `BlockReorg` items.
- `statefold.foldable` – `Foldable`, the base class for folded states.
- `statefold.environment` – `StateFoldEnvironment`, which resolves block
  queries and caches states per foldable type and initial state (using
  `statefold.archives` and `statefold.train`).
- `statefold.access` – `SyncMiddleware` and `FoldMiddleware`, which pin
  a middleware's `call` and `get_logs` to one block.
- `statefold.partition_events` – `PartitionEvents` and
  `PartitionProvider`: fetch events over a block range, bisecting the
  range whenever a provider reports `RangeTooLarge`.
- `statefold.logs` – `Log`, `Filter` (with `at_block_hash` and
  `with_range`) and `sort_logs`.
- `statefold.bloom` – `contains_address`, `contains_topic`,
  `contains_input`, `accrue` and `topic_input` for 256-byte logs blooms.
- `statefold.mock_middleware` – `MockMiddleware`, an in-memory chain
  with branching, for exercising the archive and the fold machinery
  without a node.
- `statefold.config`, `statefold.config_utils` – configuration (below).
- `statefold.errors` – the exceptions (below).

## The middleware

The package does not connect to a node itself; you pass in a
*middleware* object. It is duck-typed and needs these coroutines:

- `get_block(block_id)` – `block_id` is a 32-byte hash, a block number
  or the string `"latest"`; returns a raw block record as accepted by
  `block_from_raw`, or `None`.
- `get_block_number()` – the latest block number.
- `call(tx, block)` and `get_logs(filter)` – used only through
  `SyncMiddleware` and `FoldMiddleware`; `get_logs` receives a
  `statefold.logs.Filter` and returns `Log` objects.

`MockMiddleware` provides `get_block` and `get_block_number`.

## Block history example

```python
import asyncio

from statefold.block_archive import BlockArchive
from statefold.mock_middleware import MockMiddleware


async def demo():
    chain = await MockMiddleware.create(128)
    archive = await BlockArchive.create(chain, 100)

    previous = await archive.block_at_depth(8)      # block 120
    tip = (await chain.latest_block()).hash

    await chain.add_block(tip)                      # block 129
    await archive.update_latest_block(await chain.latest_block())

    since = await archive.blocks_since(8, previous)
    print(since.kind, [block.number for block in since.blocks])  # NORMAL [121]


asyncio.run(demo())
```

## Folding states

Subclass `Foldable` and implement two class methods:

- `sync(initial_state, block, env, access)` builds the state at a block
  from scratch; `access` is a `SyncMiddleware` whose log queries run
  from the environment's genesis block to that block.
- `fold(previous_state, block, env, access)` builds the state at a block
  from the state at its parent; `access` is a `FoldMiddleware` pinned to
  that block's hash.

The initial state must be hashable. An exception raised by `sync` or
`fold` reaches the caller as `InnerError`.

```python
import asyncio
from dataclasses import dataclass

from statefold.environment import StateFoldEnvironment
from statefold.foldable import Foldable
from statefold.mock_middleware import MockMiddleware
from statefold.types import QueryBlock


@dataclass(frozen=True)
class Counter(Foldable):
    n: int

    @classmethod
    async def sync(cls, initial_state, block, env, access):
        return cls(block.number + initial_state)

    @classmethod
    async def fold(cls, previous_state, block, env, access):
        return cls(previous_state.n + 1)


async def demo():
    chain = await MockMiddleware.create(128)
    env = StateFoldEnvironment(chain, None, safety_margin=8, genesis_block=0)

    block_state = await Counter.get_state_for_block(0, QueryBlock.latest(), env)
    print(block_state.block.number, block_state.state.n)  # 128 128


asyncio.run(demo())
```

On the first request a train syncs at `safety_margin` blocks below the
current block (or at the requested block, if older) and folds forward;
later requests fold from the nearest ancestor already computed.
`StateFoldEnvironment` takes an optional `BlockArchive`; without one,
blocks are fetched from the middleware each time.

## Following new heads

`BlockSubscriber.start(middleware, connect, subscriber_timeout, max_depth)`
builds a `BlockArchive` and starts a background task. `connect` is a
coroutine function returning an async iterable of new block headers
(`Block` objects or raw block records). If no header arrives within
`subscriber_timeout` seconds, or the iterable ends or fails, the
subscription is reopened with `connect`; if `connect` itself fails, the
subscriber stops and `wait_for_completion()` raises the error.
`close()` (or leaving `async with`) stops it; open streams then end with
`SubscriptionError`.

## Configuration

The classes in `statefold.config` read command-line options, falling
back to environment variables, and then to defaults. Each option is the
variable's name in lower case with dashes, for example
`--bh-ws-endpoint` for `BH_WS_ENDPOINT`.

| Class                 | Variable                           | Default                 |
|-----------------------|------------------------------------|-------------------------|
| `BlockHistoryConfig`  | `BH_WS_ENDPOINT`                   | `ws://localhost:8545`   |
|                       | `BH_HTTP_ENDPOINT`                 | `http://localhost:8545` |
|                       | `BH_BLOCK_TIMEOUT` (seconds)       | `60`                    |
|                       | `BH_MAX_DEPTH`                     | `1000`                  |
| `StateFoldConfig`     | `SF_CONCURRENT_EVENTS_FETCH`       | `15`                    |
|                       | `SF_GENESIS_BLOCK`                 | `0`                     |
|                       | `SF_QUERY_LIMIT_ERROR_CODES`       | none                    |
|                       | `SF_SAFETY_MARGIN`                 | `20`                    |
| `StateClientConfig`   | `SC_GRPC_ENDPOINT`                 | required                |
|                       | `SC_DEFAULT_CONFIRMATIONS`         | `7`                     |
|                       | `SS_MAX_DECODING_MESSAGE_SIZE`     | 100 MiB                 |
| `StateServerConfig`   | `SS_SERVER_ADDRESS`                | `0.0.0.0:50051`         |
|                       | `SS_MAX_DECODING_MESSAGE_SIZE`     | 100 MiB                 |

`StateServerConfig` also takes all the `StateFoldConfig` and
`BlockHistoryConfig` options. `--sf-query-limit-error-codes` may be
given more than once. Each class offers `from_args(argv, environ)`, and
`add_arguments` / `from_namespace` for use inside a larger `argparse`
parser. A missing `SC_GRPC_ENDPOINT`, a malformed server address or a
non-integer `SF_QUERY_LIMIT_ERROR_CODES` raises `ConfigError`.

`statefold.config_utils.load_config_file(config_file, factory)` reads a
TOML file and passes its top-level keys to `factory`; with no file it
calls `factory()`. It raises `ConfigFileError` when the file cannot be
read or parsed, or `factory` rejects its contents.

## Errors

Failures are raised as subclasses of `statefold.errors.StateFoldError`:
`ProviderError`, `BlockIncompleteError`, `BlockUnavailableError`,
`PreviousAheadOfLatestError`, `BlockOutOfRangeError`,
`DepthTooHighError`, `LogUnavailableError`, `PartitionError`,
`InnerError`, and in `statefold.block_subscriber`,
`BlockSubscriberError` and `SubscriptionError`.

## What the package does not do

- It has no network server or client: the configuration classes hold
  endpoint, server address and message-size settings, but nothing in
  the package serves states or blocks over the network or queries such
  a server.
- It has no connection to a node of its own; middleware objects and
  the `connect` function for `BlockSubscriber` are supplied by you.
- It has no command-line program.