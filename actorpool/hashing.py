"""Stable key hashing for routing jobs onto a bounded set of workers.

Keys are encoded to a byte stream and hashed with SipHash-1-3 under a zero
key, so a given key always lands on the same slot across runs.
"""

from __future__ import annotations

import dataclasses
from typing import Any, Iterator

__all__ = ["hash_key", "hash_with_max"]

_MASK = 0xFFFFFFFFFFFFFFFF


def _rotl(x: int, bits: int) -> int:
    return ((x << bits) | (x >> (64 - bits))) & _MASK


class _SipHash13:
    def __init__(self, k0: int = 0, k1: int = 0) -> None:
        self.v0 = k0 ^ 0x736F6D6570736575
        self.v1 = k1 ^ 0x646F72616E646F6D
        self.v2 = k0 ^ 0x6C7967656E657261
        self.v3 = k1 ^ 0x7465646279746573

    def _round(self) -> None:
        v0, v1, v2, v3 = self.v0, self.v1, self.v2, self.v3
        v0 = (v0 + v1) & _MASK
        v1 = _rotl(v1, 13) ^ v0
        v0 = _rotl(v0, 32)
        v2 = (v2 + v3) & _MASK
        v3 = _rotl(v3, 16) ^ v2
        v0 = (v0 + v3) & _MASK
        v3 = _rotl(v3, 21) ^ v0
        v2 = (v2 + v1) & _MASK
        v1 = _rotl(v1, 17) ^ v2
        v2 = _rotl(v2, 32)
        self.v0, self.v1, self.v2, self.v3 = v0, v1, v2, v3

    def digest(self, data: bytes) -> int:
        full = len(data) - len(data) % 8
        for start in range(0, full, 8):
            m = int.from_bytes(data[start:start + 8], "little")
            self.v3 ^= m
            self._round()
            self.v0 ^= m
        b = ((len(data) & 0xFF) << 56) | int.from_bytes(data[full:], "little")
        self.v3 ^= b
        self._round()
        self.v0 ^= b
        self.v2 ^= 0xFF
        for _ in range(3):
            self._round()
        return self.v0 ^ self.v1 ^ self.v2 ^ self.v3


def _encode(key: Any) -> Iterator[bytes]:
    if isinstance(key, bool):
        yield bytes([int(key)])
    elif isinstance(key, int):
        if not -(1 << 127) <= key < (1 << 128):
            raise ValueError(f"integer key out of 128-bit range: {key}")
        yield (key & ((1 << 128) - 1)).to_bytes(16, "little")
    elif isinstance(key, str):
        yield key.encode("utf-8")
        yield b"\xff"
    elif isinstance(key, (bytes, bytearray)):
        yield len(key).to_bytes(8, "little")
        yield bytes(key)
    elif isinstance(key, tuple):
        for item in key:
            yield from _encode(item)
    elif isinstance(key, list):
        yield len(key).to_bytes(8, "little")
        for item in key:
            yield from _encode(item)
    elif dataclasses.is_dataclass(key) and not isinstance(key, type):
        for f in dataclasses.fields(key):
            yield from _encode(getattr(key, f.name))
    else:
        raise TypeError(f"unhashable key type: {type(key).__name__}")


def hash_key(key: Any) -> int:
    """Return the stable 64-bit hash of ``key``.

    Integers are hashed as 128-bit values, strings as UTF-8 followed by a
    terminator byte, byte strings and lists with a length prefix, and tuples
    and dataclass instances field by field.
    """
    return _SipHash13().digest(b"".join(_encode(key)))


def hash_with_max(key: Any, excluded_max: int) -> int:
    """Hash ``key`` into the range ``0 .. excluded_max - 1``."""
    if excluded_max <= 0:
        raise ValueError("excluded_max must be positive")
    return hash_key(key) % excluded_max