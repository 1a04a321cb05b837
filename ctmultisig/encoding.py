"""
Byte-stable encoding for ceremony messages.

Fixed-width big-endian integers, 33-byte compressed points, 32-byte
scalars and length-prefixed byte strings, written and read in field
order.  Decoding is strict: a truncated or over-long buffer raises
``ValueError``.
"""

from __future__ import annotations

from typing import List

from .curve import Scalar, Point, SCALAR_BYTES, COMPRESSED_BYTES


class Writer:
    def __init__(self) -> None:
        self._parts: List[bytes] = []

    def u8(self, v: int) -> Writer:
        self._parts.append(v.to_bytes(1, "big"))
        return self

    def u32(self, v: int) -> Writer:
        self._parts.append(v.to_bytes(4, "big"))
        return self

    def uvar(self, v: int) -> Writer:
        """Unsigned int of any size (filters): u16 byte count + value."""
        n = max(1, (v.bit_length() + 7) // 8)
        self._parts.append(n.to_bytes(2, "big") + v.to_bytes(n, "big"))
        return self

    def blob(self, data: bytes) -> Writer:
        self._parts.append(len(data).to_bytes(4, "big") + data)
        return self

    def point(self, p: Point) -> Writer:
        self._parts.append(p.to_bytes())
        return self

    def scalar(self, s: Scalar) -> Writer:
        self._parts.append(s.to_bytes())
        return self

    def raw(self, data: bytes) -> Writer:
        self._parts.append(data)
        return self

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


class Reader:
    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def _take(self, n: int) -> bytes:
        end = self._pos + n
        if end > len(self._data):
            raise ValueError("truncated message")
        out = self._data[self._pos:end]
        self._pos = end
        return out

    def u8(self) -> int:
        return self._take(1)[0]

    def u32(self) -> int:
        return int.from_bytes(self._take(4), "big")

    def uvar(self) -> int:
        n = int.from_bytes(self._take(2), "big")
        return int.from_bytes(self._take(n), "big")

    def blob(self) -> bytes:
        return self._take(self.u32())

    def point(self) -> Point:
        return Point.from_bytes(self._take(COMPRESSED_BYTES))

    def scalar(self) -> Scalar:
        return Scalar.from_bytes(self._take(SCALAR_BYTES))

    def raw(self, n: int) -> bytes:
        return self._take(n)

    def finish(self) -> None:
        if self._pos != len(self._data):
            raise ValueError(
                f"{len(self._data) - self._pos} trailing bytes in message"
            )
