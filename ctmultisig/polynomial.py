"""
Polynomial arithmetic and Lagrange interpolation over Z_q.

Shamir sharing of the group key: participant *i* (0-based position in
the account's signer list) holds  f(i + 1).  Any T of them reconstruct
f(0) as  Σ λ_i · f(i + 1)  with the Lagrange coefficients of their
evaluation points; the signer-set filter of the T signers determines
those coefficients.

References
----------
- Shamir (1979). "How to Share a Secret."  CACM 22(11).
"""

from __future__ import annotations

from typing import List, Optional

from .curve import Scalar, Point, G
from .filters import SignerSetFilter, filter_bits


def sample_polynomial(
    degree: int,
    constant: Optional[Scalar] = None,
) -> List[Scalar]:
    """
    Sample a uniformly random polynomial of the given degree.

    Parameters
    ----------
    degree : int  (≥ 0)
        Polynomial degree  d;  result has  d+1  coefficients.
    constant : Scalar or None
        If given, force a_0 = constant (used to share a secret).
    """
    if degree < 0:
        raise ValueError("degree must be ≥ 0")
    a0 = constant if constant is not None else Scalar.random()
    return [a0] + [Scalar.random() for _ in range(degree)]


def evaluate(coeffs: List[Scalar], x: Scalar) -> Scalar:
    """Evaluate f(x) via Horner's method."""
    if not coeffs:
        return Scalar.zero()
    result = coeffs[-1]
    for c in reversed(coeffs[:-1]):
        result = result * x + c
    return result


def eval_point(signer_index: int) -> int:
    """Shamir evaluation point of the signer at ``signer_index``."""
    return signer_index + 1


# ── Lagrange coefficients ───────────────────────────────────────────────

def lagrange_coefficient(
    target_id: int,
    signer_ids: List[int],
) -> Scalar:
    r"""
    Lagrange coefficient at zero for evaluation point *target_id*:

    .. math::
        \lambda_i = \prod_{j \in S,\; j \ne i} \frac{j}{j - i}
    """
    if target_id not in signer_ids:
        raise ValueError(f"target_id {target_id} not in signer_ids")
    if len(set(signer_ids)) != len(signer_ids):
        raise ValueError("duplicate evaluation points")
    xi = Scalar(target_id)
    num = Scalar.one()
    den = Scalar.one()
    for sid in signer_ids:
        if sid == target_id:
            continue
        xj = Scalar(sid)
        num = num * xj
        den = den * (xj - xi)
    return num / den


def filter_lagrange_coefficient(
    signer_index: int, signer_filter: SignerSetFilter,
) -> Scalar:
    """λ for the signer at ``signer_index`` within the filter's signer group."""
    points = [eval_point(i) for i in filter_bits(signer_filter)]
    return lagrange_coefficient(eval_point(signer_index), points)


# ── Feldman commitments ─────────────────────────────────────────────────

def commit_polynomial(coeffs: List[Scalar]) -> List[Point]:
    """Feldman commitment:  C_j = a_j · G  for each coefficient."""
    return [c * G for c in coeffs]


def evaluate_commitments(commitments: List[Point], x: int) -> Point:
    """Σ_j  C_j · x^j,  the public image of  f(x)."""
    xs = Scalar(x)
    out = Point.identity()
    x_pow = Scalar.one()
    for C_j in commitments:
        out = out + (x_pow * C_j)
        x_pow = x_pow * xs
    return out


def verify_share_feldman(
    share: Scalar,
    x: int,
    commitments: List[Point],
) -> bool:
    """Check  share · G  ==  Σ_j  C_j · x^j."""
    return share * G == evaluate_commitments(commitments, x)
