from statefold.block_tree import BlockTree
from statefold.types import Block


def _block(tag: int, number: int, parent: int = 0) -> Block:
    return Block(hash=bytes([tag]) * 32, number=number, parent_hash=bytes([parent]) * 32)


def test_new_tree_holds_start_block():
    start = _block(1, 10)
    tree = BlockTree(start)
    assert tree.latest_block() == start
    assert tree.block_with_hash(start.hash) == start
    assert tree.block_with_number(10) == start


def test_unknown_lookups_return_none():
    tree = BlockTree(_block(1, 10))
    assert tree.block_with_hash(b"\x09" * 32) is None
    assert tree.block_with_number(11) is None


def test_insert_does_not_move_latest():
    start = _block(1, 10)
    tree = BlockTree(start)
    older = _block(2, 9)
    tree.insert_block(older)
    assert tree.latest_block() == start
    assert tree.block_with_number(9) == older


def test_number_index_follows_last_insert():
    tree = BlockTree(_block(1, 10))
    first = _block(2, 11, parent=1)
    second = _block(3, 11, parent=1)
    tree.insert_block(first)
    tree.insert_block(second)
    assert tree.block_with_number(11) == second
    assert tree.block_with_hash(first.hash) == first


def test_update_latest_block():
    tree = BlockTree(_block(1, 10))
    newer = _block(2, 11, parent=1)
    tree.update_latest_block(newer)
    assert tree.latest_block() == newer
    assert tree.block_with_number(11) == newer
    assert tree.block_with_hash(newer.hash) == newer