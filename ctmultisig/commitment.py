"""
Pedersen commitments.

A Pedersen commitment to amount *a* with blinding factor *x* is

    C = x·G + a·H

where H is a NUMS generator (see curve.py).  Ring members of a CLSAG
carry such amount commitments; the signer proves that  C_l - C'  is a
commitment to zero, i.e. a multiple of G.

Key generation commits to the dealer's secret polynomial the same way,
with a second blinding polynomial:

    C_j = a_j·G + r_j·H

References
----------
- Pedersen (1991). "Non-Interactive and Information-Theoretic Secure
  Verifiable Secret Sharing."  CRYPTO 1991.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .curve import Scalar, Point, G, H
from .encoding import Reader, Writer


@dataclass(frozen=True)
class PedersenCommitment:
    """A single Pedersen commitment  C = x·G + a·H."""

    point: Point

    @staticmethod
    def commit(blinding: Scalar, amount: Scalar) -> PedersenCommitment:
        return PedersenCommitment(point=(blinding * G) + (amount * H))


def commit_amount(blinding: Scalar, amount: int) -> Point:
    """x·G + a·H  for an integer amount."""
    return PedersenCommitment.commit(blinding, Scalar(amount)).point


def mask_commitment(
    commitment: Point, blinding: Scalar, new_blinding: Scalar,
) -> Point:
    """
    Re-blind ``commitment`` to the same amount.

    The result  C'  satisfies  C - C' = (blinding - new_blinding)·G.
    """
    return commitment - (blinding - new_blinding) * G


@dataclass
class PolynomialCommitment:
    """
    Pedersen commitment to an entire polynomial.

    For  f(x) = a_0 + … + a_d x^d  with blinding polynomial
    f̃(x) = r_0 + … + r_d x^d:

        C_j = a_j·G + r_j·H

    A share  (s, s̃) = (f(α), f̃(α))  verifies if
    s·G + s̃·H  ==  Σ_j C_j · α^j.
    """

    commitments: List[PedersenCommitment]

    @staticmethod
    def commit_polynomial(
        coeffs: List[Scalar],
        blinding_coeffs: List[Scalar],
    ) -> PolynomialCommitment:
        if len(coeffs) != len(blinding_coeffs):
            raise ValueError("coefficient lists must have equal length")
        comms = [
            PedersenCommitment.commit(a, r)
            for a, r in zip(coeffs, blinding_coeffs)
        ]
        return PolynomialCommitment(commitments=comms)

    def verify_share(
        self,
        eval_point: int,
        share_value: Scalar,
        blinding_value: Scalar,
    ) -> bool:
        lhs = (share_value * G) + (blinding_value * H)

        alpha = Scalar(eval_point)
        rhs = Point.identity()
        alpha_pow = Scalar.one()
        for c in self.commitments:
            rhs = rhs + (alpha_pow * c.point)
            alpha_pow = alpha_pow * alpha

        return lhs == rhs

    @property
    def degree(self) -> int:
        return len(self.commitments) - 1

    def to_bytes(self) -> bytes:
        w = Writer().u32(len(self.commitments))
        for c in self.commitments:
            w.point(c.point)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> PolynomialCommitment:
        r = Reader(data)
        comms = [PedersenCommitment(point=r.point()) for _ in range(r.u32())]
        r.finish()
        return cls(commitments=comms)
