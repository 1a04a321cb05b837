"""
Group arithmetic on secp256k1 via libsecp256k1.

Scalar multiplication and point addition are delegated to ``coincurve``
(Bitcoin Core's libsecp256k1); only Z_q arithmetic runs in Python.

Generators
----------
The proofs in this package need several independent base points:

- ``G``: the standard secp256k1 generator.
- ``H``: Pedersen value generator (amount commitments).
- ``X``, ``U``: the extra generators of the composition proof
  ``K = x·G + y·X + z·U``.

``H``, ``X`` and ``U`` are NUMS points derived by try-and-increment
hash-to-curve, so no discrete-log relation between any two of them is
known.  :func:`hash_to_point` uses the same construction to derive the
per-key base ``Hp(K)`` used by ring signatures and key images.

Install
-------
    pip install coincurve>=18.0.0
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Iterable, Optional

from coincurve import PrivateKey as _SK, PublicKey as _PK

# ── secp256k1 constants ─────────────────────────────────────────────────
ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
FIELD_PRIME = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
SCALAR_BYTES = 32
COMPRESSED_BYTES = 33

_NUMS_PREFIX = b"ctmultisig/NUMS/secp256k1/v1/"


# ── Scalar  (Z_q) ───────────────────────────────────────────────────────
class Scalar:
    """Element of Z_q, q = ``ORDER``."""

    __slots__ = ("_v",)

    def __init__(self, value: int) -> None:
        self._v = value % ORDER

    @classmethod
    def zero(cls) -> Scalar:
        return cls(0)

    @classmethod
    def one(cls) -> Scalar:
        return cls(1)

    @classmethod
    def random(cls) -> Scalar:
        """Uniform in [1, q-1] (rejection sampling over ``secrets``)."""
        while True:
            c = int.from_bytes(secrets.token_bytes(SCALAR_BYTES), "big")
            if 0 < c < ORDER:
                return cls(c)

    @classmethod
    def from_bytes(cls, data: bytes) -> Scalar:
        """Strict decoding: exactly 32 bytes, canonical (< q)."""
        if len(data) != SCALAR_BYTES:
            raise ValueError(f"need {SCALAR_BYTES} bytes, got {len(data)}")
        v = int.from_bytes(data, "big")
        if v >= ORDER:
            raise ValueError("scalar out of range")
        return cls(v)

    @classmethod
    def from_bytes_reduce(cls, data: bytes) -> Scalar:
        """Reduce an arbitrary-length digest modulo q."""
        return cls(int.from_bytes(data, "big"))

    def to_bytes(self) -> bytes:
        return self._v.to_bytes(SCALAR_BYTES, "big")

    @property
    def value(self) -> int:
        return self._v

    def is_zero(self) -> bool:
        return self._v == 0

    # arithmetic -------------------------------------------------------------
    def __add__(self, o: Scalar) -> Scalar:
        if not isinstance(o, Scalar):
            return NotImplemented
        return Scalar(self._v + o._v)

    def __radd__(self, o):
        if isinstance(o, int) and o == 0:
            return self                       # sum()
        return NotImplemented

    def __sub__(self, o: Scalar) -> Scalar:
        if not isinstance(o, Scalar):
            return NotImplemented
        return Scalar(self._v - o._v)

    def __mul__(self, o):
        if isinstance(o, Scalar):
            return Scalar(self._v * o._v)
        if isinstance(o, Point):
            return o._smul(self)
        return NotImplemented

    def __rmul__(self, o):
        if isinstance(o, int):
            return Scalar(o * self._v)
        return NotImplemented

    def __neg__(self) -> Scalar:
        return Scalar(-self._v)

    def __truediv__(self, o: Scalar) -> Scalar:
        if not isinstance(o, Scalar):
            return NotImplemented
        return self * o.inv()

    def __pow__(self, e: int) -> Scalar:
        if e < 0:
            return self.inv() ** (-e)
        return Scalar(pow(self._v, e, ORDER))

    def inv(self) -> Scalar:
        if self._v == 0:
            raise ZeroDivisionError("cannot invert zero scalar")
        return Scalar(pow(self._v, ORDER - 2, ORDER))

    def __eq__(self, o: object) -> bool:
        if isinstance(o, Scalar):
            return self._v == o._v
        if isinstance(o, int):
            return self._v == o % ORDER
        return False

    def __hash__(self) -> int:
        return hash(self._v)

    def __bool__(self) -> bool:
        return self._v != 0

    def __repr__(self) -> str:
        # never print secret material in full
        return "Scalar(…)"


# ── Point  (secp256k1 group element) ────────────────────────────────────
class Point:
    """
    Point on secp256k1.

    The identity is a flag rather than a ``coincurve.PublicKey`` (the
    library cannot represent it); it serialises as 33 zero bytes.
    """

    __slots__ = ("_pk", "_inf")

    def __init__(self, *, pk: Optional[_PK] = None, infinity: bool = False):
        self._pk: Optional[_PK] = pk
        self._inf: bool = infinity

    @classmethod
    def generator(cls) -> Point:
        return cls(pk=_SK(b"\x00" * 31 + b"\x01").public_key)

    @classmethod
    def identity(cls) -> Point:
        return cls(infinity=True)

    @classmethod
    def from_scalar(cls, s: Scalar) -> Point:
        """``s·G`` (fixed-base path in libsecp256k1)."""
        if s.is_zero():
            return cls.identity()
        return cls(pk=_SK(s.to_bytes()).public_key)

    @classmethod
    def from_bytes(cls, data: bytes) -> Point:
        """Decode SEC 1 compressed (33 B); 33 zero bytes is the identity."""
        if len(data) != COMPRESSED_BYTES:
            raise ValueError(
                f"need {COMPRESSED_BYTES} bytes, got {len(data)}"
            )
        if not any(data):
            return cls.identity()
        return cls(pk=_PK(data))

    @classmethod
    def hash_to_point(cls, domain: bytes, data: bytes = b"") -> Point:
        """
        Try-and-increment hash-to-curve (NUMS).

        Hash a counter-extended input to a candidate x-coordinate, keep
        the first one for which x³ + 7 is a square mod p, and take the
        even-y point.  Nobody learns the discrete log of the output with
        respect to any other point.
        """
        for counter in range(1 << 16):
            digest = hashlib.sha256(
                _NUMS_PREFIX + domain + b"/" + data
                + counter.to_bytes(4, "big")
            ).digest()
            x_int = int.from_bytes(digest, "big")
            if x_int == 0 or x_int >= FIELD_PRIME:
                continue
            y_sq = (pow(x_int, 3, FIELD_PRIME) + 7) % FIELD_PRIME
            # Euler criterion
            if pow(y_sq, (FIELD_PRIME - 1) // 2, FIELD_PRIME) != 1:
                continue
            return cls(pk=_PK(b"\x02" + x_int.to_bytes(32, "big")))
        raise RuntimeError(f"hash-to-curve failed for domain {domain!r}")

    def to_bytes(self) -> bytes:
        if self._inf:
            return b"\x00" * COMPRESSED_BYTES
        return self._pk.format(compressed=True)  # type: ignore[union-attr]

    def hex(self) -> str:
        return self.to_bytes().hex()

    def is_inf(self) -> bool:
        return self._inf

    # group operations -------------------------------------------------------
    def _smul(self, s: Scalar) -> Point:
        if self._inf or s.is_zero():
            return Point.identity()
        copy = _PK(self._pk.format())  # type: ignore[union-attr]
        return Point(pk=copy.multiply(s.to_bytes()))

    def __neg__(self) -> Point:
        if self._inf:
            return self
        raw = bytearray(self._pk.format(compressed=True))  # type: ignore
        raw[0] ^= 0x01            # 0x02 <-> 0x03
        return Point(pk=_PK(bytes(raw)))

    def __add__(self, o: Point) -> Point:
        if not isinstance(o, Point):
            return NotImplemented
        if self._inf:
            return o
        if o._inf:
            return self
        if self._pk.format() == (-o)._pk.format():  # type: ignore
            return Point.identity()
        return Point(pk=_PK.combine_keys(
            [self._pk, o._pk]))  # type: ignore[list-item]

    def __sub__(self, o: Point) -> Point:
        return self + (-o)

    def __rmul__(self, s) -> Point:
        if isinstance(s, Scalar):
            return self._smul(s)
        if isinstance(s, int):
            return self._smul(Scalar(s))
        return NotImplemented

    def __eq__(self, o: object) -> bool:
        if not isinstance(o, Point):
            return False
        if self._inf or o._inf:
            return self._inf and o._inf
        return self._pk.format() == o._pk.format()  # type: ignore

    def __lt__(self, o: Point) -> bool:
        return self.to_bytes() < o.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())

    def __repr__(self) -> str:
        if self._inf:
            return "Point(∞)"
        return f"Point({self.hex()[:16]}…)"

    @staticmethod
    def sum_points(points: Iterable[Point]) -> Point:
        """Multi-point addition in a single libsecp256k1 call."""
        real = [p for p in points if not p._inf]
        if not real:
            return Point.identity()
        if len(real) == 1:
            return real[0]
        try:
            return Point(pk=_PK.combine_keys(
                [p._pk for p in real]))  # type: ignore[list-item]
        except ValueError:
            # combined to the identity
            return Point.identity()


def hash_to_point(key: Point) -> Point:
    """Per-key base point ``Hp(K)`` for key images and ring signatures."""
    return Point.hash_to_point(b"key_image_base", key.to_bytes())


# ── module-level generators ─────────────────────────────────────────────
G = Point.generator()
H = Point.hash_to_point(b"generator_H")
X = Point.hash_to_point(b"generator_X")
U = Point.hash_to_point(b"generator_U")
