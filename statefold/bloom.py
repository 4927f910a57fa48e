"""Ethereum log bloom filters: adding and testing addresses and topics."""

from __future__ import annotations

from collections.abc import Iterator

from Crypto.Hash import keccak

_BLOOM_SIZE = 256
_BIT_MASK = _BLOOM_SIZE * 8 - 1
_TOPIC_SIZE = 32
_ADDRESS_SIZE = 20


def _positions(data: bytes) -> Iterator[tuple[int, int]]:
    digest = keccak.new(digest_bits=256, data=bytes(data)).digest()
    for high, low in zip(digest[0:6:2], digest[1:6:2]):
        index = ((high << 8) | low) & _BIT_MASK
        yield _BLOOM_SIZE - 1 - index // 8, 1 << (index % 8)


def _check_bloom(bloom: bytes) -> None:
    if len(bloom) != _BLOOM_SIZE:
        raise ValueError(f"bloom must be {_BLOOM_SIZE} bytes, got {len(bloom)}")


def topic_input(value: int | bytes) -> bytes:
    """The 32-byte topic for an integer, a 32-byte hash or a 20-byte address."""
    if isinstance(value, bool):
        raise TypeError("a bool is not a topic")
    if isinstance(value, int):
        if not 0 <= value < 1 << 256:
            raise ValueError(f"topic integer out of range: {value}")
        return value.to_bytes(_TOPIC_SIZE, "big")
    data = bytes(value)
    if len(data) == _TOPIC_SIZE:
        return data
    if len(data) == _ADDRESS_SIZE:
        return bytes(_TOPIC_SIZE - _ADDRESS_SIZE) + data
    raise ValueError(f"topic must be {_TOPIC_SIZE} or {_ADDRESS_SIZE} bytes, got {len(data)}")


def accrue(bloom: bytes, data: bytes) -> bytes:
    """Return a copy of ``bloom`` with the bits for ``data`` set."""
    _check_bloom(bloom)
    out = bytearray(bloom)
    for position, mask in _positions(data):
        out[position] |= mask
    return bytes(out)


def contains_input(bloom: bytes, data: bytes) -> bool:
    """Whether every bit for ``data`` is set in ``bloom``."""
    _check_bloom(bloom)
    return all(bloom[position] & mask for position, mask in _positions(data))


def contains_address(bloom: bytes, address: bytes) -> bool:
    return contains_input(bloom, bytes(address))


def contains_topic(bloom: bytes, topic: int | bytes) -> bool:
    return contains_input(bloom, topic_input(topic))