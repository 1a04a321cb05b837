"""
CLSAG ring signatures, single-party and multisig.

Signs with a proof key  K_l = p·G  hidden in a ring of (proof key,
commitment) pairs, plus a commitment-to-zero  C_l - C' = z·G  against a
masked commitment  C'.

::

    KI     = p·Hp(K_l)                   key image
    D      = z·Hp(K_l)                   auxiliary key image
    mu_P, mu_C = H_agg(ring, KI, D, C')
    W_i    = mu_P·K_i + mu_C·(C_i - C')
    W~     = mu_P·KI + mu_C·D
    c_{l+1} = H(ring, C', m, a·G, a·Hp(K_l))
    c_{i+1} = H(ring, C', m, s_i·G + c_i·W_i, s_i·Hp(K_i) + c_i·W~)
    s_l    = a - c_l·(mu_P·p + mu_C·z)

The proof is  (s_0 … s_{n-1}, c_0, KI, D).

Multisig: decoy responses are fixed by the proposer; only the real
response ``s_l`` is co-signed.  Signers merge MuSig2 nonce pairs on two
bases at once (``G`` and ``Hp(K_l)``) with one merge factor, and each
contributes  s_l_e = (d_e + ρ·e_e) - c_l·(mu_P·k_e + mu_C·z_e).

References
----------
- Goodell, Noether, RandomRun (2019). "Concise Linkable Ring
  Signatures and Forgery Against Adversarial Keys."
  https://eprint.iacr.org/2019/654
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .curve import Scalar, Point, G, hash_to_point
from .encoding import Reader, Writer
from .hash import hash_binonce_merge, hash_clsag_aggregation, hash_clsag_round
from .nonce_vault import NoncePair, PubNonces


@dataclass(frozen=True)
class ClsagProof:
    s: Tuple[Scalar, ...]
    c_0: Scalar
    KI: Point
    D: Point

    def to_bytes(self) -> bytes:
        w = Writer().u32(len(self.s))
        for s_i in self.s:
            w.scalar(s_i)
        return w.scalar(self.c_0).point(self.KI).point(self.D).getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> ClsagProof:
        r = Reader(data)
        s = tuple(r.scalar() for _ in range(r.u32()))
        proof = cls(s=s, c_0=r.scalar(), KI=r.point(), D=r.point())
        r.finish()
        return proof


def _check_ring(
    ring_keys: Sequence[Point], ring_commitments: Sequence[Point], l: int,
) -> None:
    if not ring_keys:
        raise ValueError("empty ring")
    if len(ring_keys) != len(ring_commitments):
        raise ValueError("ring keys and commitments must have equal length")
    if not 0 <= l < len(ring_keys):
        raise ValueError(f"real index {l} outside ring of {len(ring_keys)}")


def _ring_challenges(
    message: bytes,
    ring_keys: Sequence[Point],
    ring_commitments: Sequence[Point],
    masked_commitment: Point,
    KI: Point,
    D: Point,
    l: int,
    L_l: Point,
    R_l: Point,
    responses: Sequence[Scalar],
) -> Tuple[Scalar, Scalar, Scalar, Scalar]:
    """
    Walk the ring from  l+1  back round to  l.

    Returns  (c_0, c_l, mu_P, mu_C).
    """
    n = len(ring_keys)
    mu_P, mu_C = hash_clsag_aggregation(
        ring_keys, ring_commitments, KI, D, masked_commitment,
    )
    W_tilde = mu_P * KI + mu_C * D

    c = hash_clsag_round(
        ring_keys, ring_commitments, masked_commitment, message, L_l, R_l,
    )
    i = (l + 1) % n
    c_0: Optional[Scalar] = c if i == 0 else None
    while i != l:
        W_i = mu_P * ring_keys[i] + mu_C * (ring_commitments[i] - masked_commitment)
        L = responses[i] * G + c * W_i
        R = responses[i] * hash_to_point(ring_keys[i]) + c * W_tilde
        c = hash_clsag_round(
            ring_keys, ring_commitments, masked_commitment, message, L, R,
        )
        i = (i + 1) % n
        if i == 0:
            c_0 = c
    if c_0 is None:
        raise RuntimeError("ring walk never reached index 0")
    return c_0, c, mu_P, mu_C


def make_clsag_proof(
    message: bytes,
    ring_keys: Sequence[Point],
    ring_commitments: Sequence[Point],
    masked_commitment: Point,
    p: Scalar,
    z: Scalar,
    l: int,
) -> ClsagProof:
    """Single-party CLSAG with the real signer at index ``l``."""
    _check_ring(ring_keys, ring_commitments, l)
    if p * G != ring_keys[l]:
        raise ValueError("p does not open the real proof key")
    if z * G != ring_commitments[l] - masked_commitment:
        raise ValueError("z does not open the commitment to zero")

    base = hash_to_point(ring_keys[l])
    KI = p * base
    D = z * base

    alpha = Scalar.random()
    responses = [Scalar.random() for _ in ring_keys]
    c_0, c_l, mu_P, mu_C = _ring_challenges(
        message, ring_keys, ring_commitments, masked_commitment, KI, D, l,
        alpha * G, alpha * base, responses,
    )
    responses[l] = alpha - c_l * (mu_P * p + mu_C * z)
    return ClsagProof(s=tuple(responses), c_0=c_0, KI=KI, D=D)


def verify_clsag_proof(
    proof: ClsagProof,
    message: bytes,
    ring_keys: Sequence[Point],
    ring_commitments: Sequence[Point],
    masked_commitment: Point,
) -> bool:
    n = len(ring_keys)
    if n == 0 or len(ring_commitments) != n or len(proof.s) != n:
        return False
    if proof.KI.is_inf():
        return False

    mu_P, mu_C = hash_clsag_aggregation(
        ring_keys, ring_commitments, proof.KI, proof.D, masked_commitment,
    )
    W_tilde = mu_P * proof.KI + mu_C * proof.D

    c = proof.c_0
    for i in range(n):
        W_i = mu_P * ring_keys[i] + mu_C * (ring_commitments[i] - masked_commitment)
        L = proof.s[i] * G + c * W_i
        R = proof.s[i] * hash_to_point(ring_keys[i]) + c * W_tilde
        c = hash_clsag_round(
            ring_keys, ring_commitments, masked_commitment, message, L, R,
        )
    return c == proof.c_0


# ── multisig ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClsagProposal:
    """
    Proposal to co-sign one CLSAG.

    ``decoy_responses`` fill every ring position; the entry at ``l`` is
    replaced by the aggregate multisig response in the final proof.
    """

    message: bytes
    ring_keys: Tuple[Point, ...]
    ring_commitments: Tuple[Point, ...]
    masked_commitment: Point
    KI: Point
    D: Point
    decoy_responses: Tuple[Scalar, ...]
    l: int

    @property
    def proof_key(self) -> Point:
        return self.ring_keys[self.l]

    @property
    def key_image_base(self) -> Point:
        return hash_to_point(self.proof_key)


@dataclass(frozen=True)
class ClsagPartial:
    """
    One signer's partial CLSAG.

    Ring members are not stored; they are hashed into ``c_0``, so equal
    ``c_0`` across partials implies they are combinable.
    """

    message: bytes
    proof_key: Point
    l: int
    responses: Tuple[Scalar, ...]
    c_0: Scalar
    KI: Point
    D: Point

    def write(self, w: Writer) -> None:
        w.blob(self.message).point(self.proof_key).u32(self.l)
        w.u32(len(self.responses))
        for s in self.responses:
            w.scalar(s)
        w.scalar(self.c_0).point(self.KI).point(self.D)

    @classmethod
    def read(cls, r: Reader) -> ClsagPartial:
        message = r.blob()
        proof_key = r.point()
        l = r.u32()
        responses = tuple(r.scalar() for _ in range(r.u32()))
        return cls(
            message=message, proof_key=proof_key, l=l, responses=responses,
            c_0=r.scalar(), KI=r.point(), D=r.point(),
        )


def make_clsag_proposal(
    message: bytes,
    ring_keys: Sequence[Point],
    ring_commitments: Sequence[Point],
    masked_commitment: Point,
    KI: Point,
    D: Point,
    l: int,
) -> ClsagProposal:
    _check_ring(ring_keys, ring_commitments, l)
    return ClsagProposal(
        message=message,
        ring_keys=tuple(ring_keys),
        ring_commitments=tuple(ring_commitments),
        masked_commitment=masked_commitment,
        KI=KI,
        D=D,
        decoy_responses=tuple(Scalar.random() for _ in ring_keys),
        l=l,
    )


def make_clsag_partial_sig(
    proposal: ClsagProposal,
    k_e: Scalar,
    z_e: Scalar,
    signer_pub_nonces_G: Sequence[PubNonces],
    signer_pub_nonces_Hp: Sequence[PubNonces],
    local_nonces: NoncePair,
) -> ClsagPartial:
    """
    Local signer's partial CLSAG.

    ``signer_pub_nonces_G[i]`` and ``signer_pub_nonces_Hp[i]`` are signer
    *i*'s commitments on ``G`` and ``Hp(K_l)``; the local signer must be
    one of them.  The caller validates the proposal.
    """
    _check_ring(proposal.ring_keys, proposal.ring_commitments, proposal.l)
    if len(proposal.decoy_responses) != len(proposal.ring_keys):
        raise ValueError("decoy responses don't line up with the ring")
    if len(signer_pub_nonces_G) != len(signer_pub_nonces_Hp):
        raise ValueError("nonce sets for G and Hp(K) have different sizes")
    if not signer_pub_nonces_G:
        raise ValueError("no signer nonces")

    base = proposal.key_image_base
    pairs = list(zip(signer_pub_nonces_G, signer_pub_nonces_Hp))
    local_pair = (
        local_nonces.commitments_for_base(G),
        local_nonces.commitments_for_base(base),
    )
    if local_pair not in pairs:
        raise ValueError("local signer's nonces are missing from the group")

    ordered = sorted(pairs, key=lambda p: p[0].sort_key() + p[1].sort_key())
    rho = hash_binonce_merge(
        proposal.message,
        proposal.proof_key,
        [(g.D, g.E, h.D, h.E) for g, h in ordered],
    )
    L_l = (
        Point.sum_points(g.D for g, _ in ordered)
        + rho * Point.sum_points(g.E for g, _ in ordered)
    )
    R_l = (
        Point.sum_points(h.D for _, h in ordered)
        + rho * Point.sum_points(h.E for _, h in ordered)
    )

    c_0, c_l, mu_P, mu_C = _ring_challenges(
        proposal.message,
        proposal.ring_keys,
        proposal.ring_commitments,
        proposal.masked_commitment,
        proposal.KI,
        proposal.D,
        proposal.l,
        L_l,
        R_l,
        proposal.decoy_responses,
    )

    responses = list(proposal.decoy_responses)
    responses[proposal.l] = (
        local_nonces.merged(rho) - c_l * (mu_P * k_e + mu_C * z_e)
    )
    return ClsagPartial(
        message=proposal.message,
        proof_key=proposal.proof_key,
        l=proposal.l,
        responses=tuple(responses),
        c_0=c_0,
        KI=proposal.KI,
        D=proposal.D,
    )


def finalize_clsag_proof(partials: List[ClsagPartial]) -> ClsagProof:
    """Sum the partial real-index responses into a full CLSAG."""
    if not partials:
        raise ValueError("no partial signatures to combine")
    first = partials[0]
    l = first.l
    if not 0 <= l < len(first.responses):
        raise ValueError("real index outside the response vector")

    def _decoys(p: ClsagPartial):
        return p.responses[:l] + p.responses[l + 1:]

    for p in partials[1:]:
        if (p.message, p.proof_key, p.l, p.c_0, p.KI, p.D) != (
            first.message, first.proof_key, l, first.c_0, first.KI, first.D,
        ):
            raise ValueError("partial signatures are not combinable")
        if len(p.responses) != len(first.responses) or _decoys(p) != _decoys(first):
            raise ValueError("partial signatures disagree on decoy responses")

    responses = list(first.responses)
    responses[l] = sum(p.responses[l] for p in partials)
    return ClsagProof(s=tuple(responses), c_0=first.c_0, KI=first.KI, D=first.D)
