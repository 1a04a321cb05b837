"""
Domain-separated hash functions.

Every protocol role (composition challenge, ring round hash, nonce
merge factor, DLEQ, key generation, ...) hashes under its own tag so
outputs are independent even when fed identical data.

Convention follows BIP-340 tagged hashes:

    H_tag(x) = SHA-256( SHA-256(tag) ‖ SHA-256(tag) ‖ x )
"""

from __future__ import annotations

import hashlib
from typing import Any

from .curve import Scalar, Point, SCALAR_BYTES, X, U


# ── domain tags ─────────────────────────────────────────────────────────
_TAG_COMP_MESSAGE  = b"ctmultisig/v1/composition_message"
_TAG_COMP_CHAL     = b"ctmultisig/v1/composition_challenge"
_TAG_CLSAG_AGG_0   = b"ctmultisig/v1/clsag_agg_0"
_TAG_CLSAG_AGG_1   = b"ctmultisig/v1/clsag_agg_1"
_TAG_CLSAG_ROUND   = b"ctmultisig/v1/clsag_round"
_TAG_BINONCE       = b"ctmultisig/v1/binonce_merge"
_TAG_SCHNORR       = b"ctmultisig/v1/schnorr_proof"
_TAG_DLEQ          = b"ctmultisig/v1/dleq_proof"
_TAG_DKG           = b"ctmultisig/v1/dkg"
_TAG_KEY_IMAGE     = b"ctmultisig/v1/partial_key_image"


def _tagged_hasher(tag: bytes):
    """SHA-256 context pre-loaded with the BIP-340 tag prefix."""
    tag_hash = hashlib.sha256(tag).digest()
    h = hashlib.sha256()
    h.update(tag_hash)
    h.update(tag_hash)
    return h


def _encode_item(item: Any) -> bytes:
    """
    Canonical encoding of a protocol element for hashing.

    Variable-length items (bytes, sequences) are length-prefixed so the
    concatenation parses unambiguously.
    """
    if isinstance(item, bytes):
        return len(item).to_bytes(4, "big") + item
    if isinstance(item, bool):
        return b"\x01" if item else b"\x00"
    if isinstance(item, int):
        return item.to_bytes(SCALAR_BYTES, "big")
    if isinstance(item, Scalar):
        return item.to_bytes()
    if isinstance(item, Point):
        return item.to_bytes()
    if isinstance(item, (list, tuple)):
        parts = b"".join(_encode_item(x) for x in item)
        return len(item).to_bytes(4, "big") + parts
    raise TypeError(f"cannot hash item of type {type(item).__name__}")


def _tagged_hash(tag: bytes, *args: Any) -> bytes:
    h = _tagged_hasher(tag)
    for a in args:
        h.update(_encode_item(a))
    return h.digest()


def _tagged_scalar(tag: bytes, *args: Any) -> Scalar:
    return Scalar.from_bytes_reduce(_tagged_hash(tag, *args))


# ── public hash functions ───────────────────────────────────────────────

def hash_composition_message(
    message: bytes, K: Point, KI: Point, K_t1: Point,
) -> bytes:
    """Composition proof challenge message  cm = H(X, U, m, K, KI, K_t1)."""
    return _tagged_hash(_TAG_COMP_MESSAGE, X, U, message, K, KI, K_t1)


def hash_composition_challenge(
    challenge_message: bytes, A_t1: Point, A_t2: Point, A_ki: Point,
) -> Scalar:
    """Composition proof challenge  c = H_n(cm, [A_t1], [A_t2], [A_ki])."""
    return _tagged_scalar(_TAG_COMP_CHAL, challenge_message, A_t1, A_t2, A_ki)


def hash_clsag_aggregation(
    ring_keys, ring_commitments, KI: Point, D: Point, masked_commitment: Point,
):
    """CLSAG aggregation coefficients  (mu_P, mu_C)."""
    args = (list(ring_keys), list(ring_commitments), KI, D, masked_commitment)
    return (
        _tagged_scalar(_TAG_CLSAG_AGG_0, *args),
        _tagged_scalar(_TAG_CLSAG_AGG_1, *args),
    )


def hash_clsag_round(
    ring_keys, ring_commitments, masked_commitment: Point, message: bytes,
    L: Point, R: Point,
) -> Scalar:
    """CLSAG ring-step challenge  c_{i+1} = H_n(ring, C', m, L_i, R_i)."""
    return _tagged_scalar(
        _TAG_CLSAG_ROUND,
        list(ring_keys), list(ring_commitments), masked_commitment,
        message, L, R,
    )


def hash_binonce_merge(message: bytes, proof_key: Point, nonces) -> Scalar:
    r"""
    MuSig2-style merge factor  ρ = H(m, K, {D_e, E_e}).

    ``nonces`` must already be in canonical order; every signer computes
    the same ρ and the aggregate nonce is  Σ D_e + ρ·Σ E_e.
    """
    return _tagged_scalar(_TAG_BINONCE, message, proof_key, nonces)


def hash_schnorr_proof(R: Point, Y: Point, context: bytes = b"") -> Scalar:
    """Fiat-Shamir challenge for a Schnorr PoK:  c = H(R, Y, ctx)."""
    return _tagged_scalar(_TAG_SCHNORR, R, Y, context)


def hash_dleq(
    A1: Point, B1: Point, A2: Point, B2: Point, context: bytes = b"",
) -> Scalar:
    """Fiat-Shamir challenge for a DLEQ proof."""
    return _tagged_scalar(_TAG_DLEQ, A1, B1, A2, B2, context)


def hash_dkg_context(
    dealer_id: Point, num_signers: int, threshold: int,
) -> bytes:
    """Context string for key-generation proofs of knowledge."""
    return _tagged_hash(_TAG_DKG, dealer_id, num_signers, threshold)


def hash_key_image_context(
    signer_id: Point, proof_key: Point, signer_filter: int,
) -> bytes:
    """Context string binding a partial key image DLEQ to its signer."""
    return _tagged_hash(_TAG_KEY_IMAGE, signer_id, proof_key, signer_filter)
