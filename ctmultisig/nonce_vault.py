"""
Per-signer store of MuSig2-style signing nonces.

For every signing attempt, i.e. a (message, proof key, signer group) triple,
the local signer holds one nonce pair ``(d, e)``.  Commitments
``(d·B, e·B)`` may be projected onto any base point ``B`` the proof
family needs, so a ring signature signing across both ``G`` and
``Hp(K)`` uses one underlying pair.

Rules
-----
- ``ensure`` creates a record once and returns its commitments on the
  requested bases; repeated calls before consumption return the same
  commitments, so a round-1 broadcast can be rebuilt unchanged.
- ``consume`` is the only way to read the secret pair, and it deletes the
  record in the same step.  A second ``consume`` raises ``NotFound``.
  Reusing a nonce under a Schnorr-family scheme leaks the signing key.
- ``remove`` discards a record without use (abort paths).

All operations hold the vault lock, so several ceremonies may share one
vault across threads.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, List, Sequence

from .curve import G, Scalar, Point
from .errors import NotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NonceKey:
    """Flat composite key  (message, proof key, signer filter)."""

    message: bytes
    proof_key: Point
    signer_filter: int


@dataclass(frozen=True)
class PubNonces:
    """Public nonce commitments  (D = d·B,  E = e·B)  on one base point."""

    D: Point
    E: Point

    def to_bytes(self) -> bytes:
        return self.D.to_bytes() + self.E.to_bytes()

    @classmethod
    def from_bytes(cls, data: bytes) -> PubNonces:
        if len(data) != 66:
            raise ValueError(f"expected 66 bytes, got {len(data)}")
        return cls(D=Point.from_bytes(data[:33]), E=Point.from_bytes(data[33:]))

    def sort_key(self) -> bytes:
        return self.to_bytes()


class NoncePair:
    """Secret nonce pair.  Obtainable only from :meth:`NonceVault.consume`."""

    __slots__ = ("d", "e")

    def __init__(self, d: Scalar, e: Scalar) -> None:
        self.d = d
        self.e = e

    def commitments_for_base(self, base: Point) -> PubNonces:
        return PubNonces(D=self.d * base, E=self.e * base)

    def merged(self, rho: Scalar) -> Scalar:
        """Effective nonce  d + ρ·e  for merge factor ρ."""
        return self.d + rho * self.e

    def clear(self) -> None:
        """Overwrite secrets (best-effort in Python)."""
        self.d = Scalar.zero()
        self.e = Scalar.zero()

    def __repr__(self) -> str:
        return "NoncePair(…)"


class NonceVault:
    """Thread-safe single-use nonce store for one local signer."""

    def __init__(self) -> None:
        self._records: Dict[NonceKey, NoncePair] = {}
        self._lock = threading.Lock()

    def has_record(
        self, message: bytes, proof_key: Point, signer_filter: int,
    ) -> bool:
        with self._lock:
            return NonceKey(message, proof_key, signer_filter) in self._records

    def ensure(
        self,
        message: bytes,
        proof_key: Point,
        signer_filter: int,
        bases: Sequence[Point] = (G,),
    ) -> List[PubNonces]:
        """
        Create a fresh nonce pair for the triple unless one exists.

        Returns the pair's commitments on each of ``bases``, in order.
        """
        key = NonceKey(message, proof_key, signer_filter)
        with self._lock:
            pair = self._records.get(key)
            created = pair is None
            if created:
                pair = NoncePair(d=Scalar.random(), e=Scalar.random())
                self._records[key] = pair
            commitments = [pair.commitments_for_base(base) for base in bases]
        if created:
            logger.debug(
                f"nonce record created: message={message.hex()[:16]} "
                f"proof_key={proof_key.hex()[:16]} filter={signer_filter}"
            )
        return commitments

    def public_commitments_for_base(
        self,
        message: bytes,
        proof_key: Point,
        signer_filter: int,
        base: Point,
    ) -> PubNonces:
        """Project the stored pair onto ``base``; ``NotFound`` if absent."""
        key = NonceKey(message, proof_key, signer_filter)
        with self._lock:
            pair = self._records.get(key)
            if pair is None:
                raise NotFound(message, proof_key, signer_filter)
            return pair.commitments_for_base(base)

    def consume(
        self, message: bytes, proof_key: Point, signer_filter: int,
    ) -> NoncePair:
        """Move the secret pair out of the vault (single use)."""
        key = NonceKey(message, proof_key, signer_filter)
        with self._lock:
            pair = self._records.pop(key, None)
        if pair is None:
            raise NotFound(message, proof_key, signer_filter)
        logger.debug(
            f"nonce record consumed: message={message.hex()[:16]} "
            f"proof_key={proof_key.hex()[:16]} filter={signer_filter}"
        )
        return pair

    def remove(
        self, message: bytes, proof_key: Point, signer_filter: int,
    ) -> bool:
        """Discard a record without use.  True if one was removed."""
        key = NonceKey(message, proof_key, signer_filter)
        with self._lock:
            pair = self._records.pop(key, None)
        if pair is None:
            return False
        pair.clear()
        return True

    def remove_message(self, message: bytes) -> int:
        """Discard every record for ``message``; returns how many."""
        with self._lock:
            keys = [k for k in self._records if k.message == message]
            pairs = [self._records.pop(k) for k in keys]
        for pair in pairs:
            pair.clear()
        if pairs:
            logger.info(
                f"discarded {len(pairs)} nonce records for message "
                f"{message.hex()[:16]}"
            )
        return len(pairs)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
