"""Cryptographic and fast non-cryptographic string hashing."""

from __future__ import annotations

import hashlib
import struct

_MASK = 0xFFFFFFFFFFFFFFFF

_P1 = 0x9E3779B185EBCA87
_P2 = 0xC2B2AE3D27D4EB4F
_P3 = 0x165667B19E3779F9
_P4 = 0x85EBCA77C2B2AE63
_P5 = 0x27D4EB2F165667C5


def sha256sum(text: str) -> str:
    """Return the hex SHA-256 digest of ``text`` encoded as UTF-8."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _rotl(value: int, bits: int) -> int:
    return ((value << bits) | (value >> (64 - bits))) & _MASK


def _round(acc: int, lane: int) -> int:
    acc = (acc + lane * _P2) & _MASK
    acc = _rotl(acc, 31)
    return (acc * _P1) & _MASK


def _merge(acc: int, value: int) -> int:
    acc ^= _round(0, value)
    return (acc * _P1 + _P4) & _MASK


def xxh64(data: bytes | bytearray | memoryview | str, seed: int = 0) -> int:
    """Compute the 64-bit xxHash of ``data`` with the given seed."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    data = bytes(data)
    length = len(data)
    seed &= _MASK
    offset = 0

    if length >= 32:
        accs = [
            (seed + _P1 + _P2) & _MASK,
            (seed + _P2) & _MASK,
            seed,
            (seed - _P1) & _MASK,
        ]
        limit = length - length % 32
        for stripe in range(0, limit, 32):
            lanes = struct.unpack_from("<4Q", data, stripe)
            accs = [_round(acc, lane) for acc, lane in zip(accs, lanes)]
        offset = limit
        h = (
            _rotl(accs[0], 1)
            + _rotl(accs[1], 7)
            + _rotl(accs[2], 12)
            + _rotl(accs[3], 18)
        ) & _MASK
        for acc in accs:
            h = _merge(h, acc)
    else:
        h = (seed + _P5) & _MASK

    h = (h + length) & _MASK

    words_end = offset + (length - offset) // 8 * 8
    for (lane,) in struct.iter_unpack("<Q", data[offset:words_end]):
        h ^= _round(0, lane)
        h = (_rotl(h, 27) * _P1 + _P4) & _MASK
    offset = words_end

    if length - offset >= 4:
        (word,) = struct.unpack_from("<I", data, offset)
        h ^= (word * _P1) & _MASK
        h = (_rotl(h, 23) * _P2 + _P3) & _MASK
        offset += 4

    for byte in data[offset:]:
        h ^= (byte * _P5) & _MASK
        h = (_rotl(h, 11) * _P1) & _MASK

    h ^= h >> 33
    h = (h * _P2) & _MASK
    h ^= h >> 29
    h = (h * _P3) & _MASK
    h ^= h >> 32
    return h


def fast_hash(text: str) -> str:
    """Return a fast non-cryptographic hash of ``text`` as lowercase hex."""
    return format(xxh64(text.encode("utf-8")), "x")