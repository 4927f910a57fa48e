"""In-memory index of known blocks by hash and by number."""

from __future__ import annotations

from statefold.types import Block


class BlockTree:
    """Blocks indexed by hash, with a number index that follows the latest insert."""

    def __init__(self, start_block: Block) -> None:
        self._tree: dict[bytes, Block] = {start_block.hash: start_block}
        self._number_map: dict[int, bytes] = {start_block.number: start_block.hash}
        self._latest = start_block

    def block_with_hash(self, block_hash: bytes) -> Block | None:
        return self._tree.get(block_hash)

    def block_with_number(self, number: int) -> Block | None:
        block_hash = self._number_map.get(number)
        if block_hash is None:
            return None
        return self.block_with_hash(block_hash)

    def insert_block(self, block: Block) -> None:
        self._number_map[block.number] = block.hash
        self._tree[block.hash] = block

    def latest_block(self) -> Block:
        return self._latest

    def update_latest_block(self, block: Block) -> None:
        self._latest = block
        self.insert_block(block)