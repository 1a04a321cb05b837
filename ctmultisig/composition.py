"""
Composition proof, single-party and multisig.

Proves knowledge of  x, y, z  such that  K = x·G + y·X + z·U  and that
the key image is  KI = (z/y)·U.

Keys
----
::

    K    = x·G + y·X + z·U
    K_t1 = (1/y)·K  = (x/y)·G + X + (z/y)·U
    K_t2 = K_t1 - X - KI = (x/y)·G
    KI   = (z/y)·U

Proof
-----
::

    cm   = H(X, U, m, K, KI, K_t1)
    c    = H_n(cm, [a_t1·K], [a_t2·G], [a_ki·U])
    r_t1 = a_t1 - c·(1/y)
    r_t2 = a_t2 - c·(x/y)
    r_ki = a_ki - c·(z/y)

Verification recomputes  c' = H_n(cm, [r_t1·K + c·K_t1],
[r_t2·G + c·K_t2], [r_ki·U + c·KI])  and checks  c' = c.

Multisig
--------
Only the ``z`` component is split among signers (``z = Σ z_e``).  The
proposer picks the shared nonces ``a_t1``, ``a_t2``; every signer
contributes a MuSig2 nonce pair on ``U`` and the group merges them:

    ρ    = H(m, K, {D_e, E_e})
    A_ki = Σ D_e + ρ·Σ E_e
    r_ki_e = (d_e + ρ·e_e) - c·(z_e/y)

so that  Σ r_ki_e  is the single-party response for ``z``.

References
----------
- Nick, Ruffing, Seurin (2020). "MuSig2: Simple Two-Round Schnorr
  Multi-Signatures."  https://eprint.iacr.org/2020/1261
- Komlo, Goldberg (2020). "FROST."  https://eprint.iacr.org/2020/852
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

from .curve import Scalar, Point, G, X, U
from .encoding import Reader, Writer
from .hash import (
    hash_binonce_merge,
    hash_composition_challenge,
    hash_composition_message,
)
from .nonce_vault import NoncePair, PubNonces


# ── single-party proof ──────────────────────────────────────────────────

@dataclass(frozen=True)
class CompositionProof:
    c: Scalar
    r_t1: Scalar
    r_t2: Scalar
    r_ki: Scalar
    K_t1: Point
    KI: Point

    def to_bytes(self) -> bytes:
        return (
            Writer().scalar(self.c).scalar(self.r_t1).scalar(self.r_t2)
            .scalar(self.r_ki).point(self.K_t1).point(self.KI).getvalue()
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> CompositionProof:
        r = Reader(data)
        proof = cls(
            c=r.scalar(), r_t1=r.scalar(), r_t2=r.scalar(), r_ki=r.scalar(),
            K_t1=r.point(), KI=r.point(),
        )
        r.finish()
        return proof


def make_composition_key_image(y: Scalar, z: Scalar) -> Point:
    """KI = (z/y)·U."""
    if y.is_zero() or z.is_zero():
        raise ValueError("y and z must be non-zero")
    return (z / y) * U


def make_composition_proof(
    message: bytes, K: Point, x: Scalar, y: Scalar, z: Scalar,
) -> CompositionProof:
    """Single-party composition proof for  K = x·G + y·X + z·U."""
    if y.is_zero() or z.is_zero():
        raise ValueError("y and z must be non-zero")
    if x * G + y * X + z * U != K:
        raise ValueError("secret keys do not open the proof key")

    inv_y = y.inv()
    KI = (z * inv_y) * U
    K_t1 = inv_y * K
    cm = hash_composition_message(message, K, KI, K_t1)

    a_t1 = Scalar.random()
    a_t2 = Scalar.random()
    a_ki = Scalar.random()
    c = hash_composition_challenge(cm, a_t1 * K, a_t2 * G, a_ki * U)

    return CompositionProof(
        c=c,
        r_t1=a_t1 - c * inv_y,
        r_t2=a_t2 - c * x * inv_y,
        r_ki=a_ki - c * z * inv_y,
        K_t1=K_t1,
        KI=KI,
    )


def verify_composition_proof(
    proof: CompositionProof, message: bytes, K: Point, KI: Point,
) -> bool:
    if K.is_inf() or KI.is_inf() or proof.KI != KI:
        return False
    K_t2 = proof.K_t1 - X - KI
    cm = hash_composition_message(message, K, KI, proof.K_t1)
    c = hash_composition_challenge(
        cm,
        proof.r_t1 * K + proof.c * proof.K_t1,
        proof.r_t2 * G + proof.c * K_t2,
        proof.r_ki * U + proof.c * KI,
    )
    return c == proof.c


# ── multisig ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class CompositionProposal:
    """
    Proposal to co-sign one composition proof.

    ``alpha_t1``/``alpha_t2`` are shared by the whole group and must only
    be used for one signing attempt.
    """

    message: bytes
    K: Point
    KI: Point
    alpha_t1: Scalar
    alpha_t2: Scalar

    @property
    def proof_key(self) -> Point:
        return self.K


@dataclass(frozen=True)
class CompositionPartial:
    """One signer's partial composition proof (response for ``z`` only)."""

    message: bytes
    K: Point
    KI: Point
    c: Scalar
    r_t1: Scalar
    r_t2: Scalar
    K_t1: Point
    r_ki_partial: Scalar

    @property
    def proof_key(self) -> Point:
        return self.K

    def write(self, w: Writer) -> None:
        (w.blob(self.message).point(self.K).point(self.KI).scalar(self.c)
         .scalar(self.r_t1).scalar(self.r_t2).point(self.K_t1)
         .scalar(self.r_ki_partial))

    @classmethod
    def read(cls, r: Reader) -> CompositionPartial:
        return cls(
            message=r.blob(), K=r.point(), KI=r.point(), c=r.scalar(),
            r_t1=r.scalar(), r_t2=r.scalar(), K_t1=r.point(),
            r_ki_partial=r.scalar(),
        )


def make_composition_proposal(
    message: bytes, K: Point, KI: Point,
) -> CompositionProposal:
    return CompositionProposal(
        message=message,
        K=K,
        KI=KI,
        alpha_t1=Scalar.random(),
        alpha_t2=Scalar.random(),
    )


def merge_pub_nonces(
    message: bytes, proof_key: Point, signer_pub_nonces: Sequence[PubNonces],
):
    """Return  (ρ, Σ D_e + ρ·Σ E_e)  with nonces in canonical order."""
    ordered = sorted(signer_pub_nonces, key=PubNonces.sort_key)
    rho = hash_binonce_merge(
        message, proof_key, [(n.D, n.E) for n in ordered],
    )
    merged = (
        Point.sum_points(n.D for n in ordered)
        + rho * Point.sum_points(n.E for n in ordered)
    )
    return rho, merged


def make_composition_partial_sig(
    proposal: CompositionProposal,
    x: Scalar,
    y: Scalar,
    z_e: Scalar,
    signer_pub_nonces: Sequence[PubNonces],
    local_nonces: NoncePair,
) -> CompositionPartial:
    """
    Local signer's partial signature.

    The caller validates the proposal (key image, proof key, message).
    ``signer_pub_nonces`` holds every group member's commitments on
    ``U``, the local signer's included.
    """
    if y.is_zero():
        raise ValueError("y must be non-zero")
    if not signer_pub_nonces:
        raise ValueError("no signer nonces")
    if local_nonces.commitments_for_base(U) not in signer_pub_nonces:
        raise ValueError("local signer's nonces are missing from the group")

    inv_y = y.inv()
    K_t1 = inv_y * proposal.K
    rho, A_ki = merge_pub_nonces(
        proposal.message, proposal.K, signer_pub_nonces,
    )

    cm = hash_composition_message(
        proposal.message, proposal.K, proposal.KI, K_t1,
    )
    c = hash_composition_challenge(
        cm, proposal.alpha_t1 * proposal.K, proposal.alpha_t2 * G, A_ki,
    )

    return CompositionPartial(
        message=proposal.message,
        K=proposal.K,
        KI=proposal.KI,
        c=c,
        r_t1=proposal.alpha_t1 - c * inv_y,
        r_t2=proposal.alpha_t2 - c * x * inv_y,
        K_t1=K_t1,
        r_ki_partial=local_nonces.merged(rho) - c * z_e * inv_y,
    )


def finalize_composition_proof(
    partials: List[CompositionPartial],
) -> CompositionProof:
    """Sum the partial ``r_ki`` responses into a full proof."""
    if not partials:
        raise ValueError("no partial signatures to combine")
    first = partials[0]
    for p in partials[1:]:
        if (p.message, p.K, p.KI, p.c, p.r_t1, p.r_t2, p.K_t1) != (
            first.message, first.K, first.KI, first.c,
            first.r_t1, first.r_t2, first.K_t1,
        ):
            raise ValueError("partial signatures are not combinable")

    return CompositionProof(
        c=first.c,
        r_t1=first.r_t1,
        r_t2=first.r_t2,
        r_ki=sum(p.r_ki_partial for p in partials),
        K_t1=first.K_t1,
        KI=first.KI,
    )
