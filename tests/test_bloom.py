import pytest

from statefold.bloom import (
    accrue,
    contains_address,
    contains_input,
    contains_topic,
    topic_input,
)

EMPTY = bytes(256)
ADDRESS = bytes(range(1, 21))


def test_empty_bloom_contains_nothing():
    assert not contains_input(EMPTY, b"anything")
    assert not contains_address(EMPTY, ADDRESS)


def test_accrue_then_contains():
    bloom = accrue(EMPTY, b"abc")
    assert contains_input(bloom, b"abc")
    assert bloom != EMPTY


def test_accrue_sets_at_most_three_bits():
    bloom = accrue(EMPTY, b"xyz")
    bits = sum(bin(byte).count("1") for byte in bloom)
    assert 1 <= bits <= 3


def test_accrue_is_idempotent_and_keeps_length():
    once = accrue(EMPTY, b"abc")
    assert accrue(once, b"abc") == once
    assert len(once) == 256


def test_contains_address():
    bloom = accrue(EMPTY, ADDRESS)
    assert contains_address(bloom, ADDRESS)


def test_contains_topic_for_address_uses_padding():
    bloom = accrue(EMPTY, topic_input(ADDRESS))
    assert contains_topic(bloom, ADDRESS)


def test_contains_topic_for_integer():
    bloom = accrue(EMPTY, topic_input(3))
    assert contains_topic(bloom, 3)


def test_topic_input_integer_round_trip():
    encoded = topic_input(7)
    assert len(encoded) == 32
    assert int.from_bytes(encoded, "big") == 7


def test_topic_input_address_is_left_padded():
    encoded = topic_input(ADDRESS)
    assert encoded[12:] == ADDRESS
    assert encoded[:12] == bytes(12)


def test_topic_input_hash_unchanged():
    h = b"\x42" * 32
    assert topic_input(h) == h


def test_topic_input_errors():
    with pytest.raises(ValueError):
        topic_input(b"\x01" * 7)
    with pytest.raises(ValueError):
        topic_input(-1)
    with pytest.raises(ValueError):
        topic_input(1 << 256)


def test_bloom_size_checked():
    with pytest.raises(ValueError):
        accrue(bytes(10), b"abc")
    with pytest.raises(ValueError):
        contains_input(bytes(10), b"abc")