"""
Cooperative key-image recovery for group-owned ring-signature keys.

For  K = (k_offset + k_group)·G  the key image is
KI = k_offset·Hp(K) + k_group·Hp(K).  ``k_offset`` is known to every
signer; the ``k_group`` term is assembled from T partial key images

    KI_e = λ_e·s_e·Hp(K)

each carrying a DLEQ proof against the signer's aggregate public share
λ_e·s_e·G, so a bad contribution is attributable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from .account import MultisigAccount
from .curve import Scalar, Point, G, hash_to_point
from .encoding import Reader, Writer
from .errors import InsufficientSigners, InvalidFilter
from .filters import SignerSetFilter, signers_to_filter
from .hash import hash_key_image_context
from .proofs import DLEQProof

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartialKeyImage:
    signer_id: Point
    signer_filter: SignerSetFilter
    proof_key: Point
    partial: Point
    proof: DLEQProof

    def to_bytes(self) -> bytes:
        w = Writer().point(self.signer_id).uvar(self.signer_filter)
        w.point(self.proof_key).point(self.partial)
        self.proof.write(w)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> PartialKeyImage:
        r = Reader(data)
        out = cls(
            signer_id=r.point(),
            signer_filter=r.uvar(),
            proof_key=r.point(),
            partial=r.point(),
            proof=DLEQProof.read(r),
        )
        r.finish()
        return out


def make_partial_key_image(
    account: MultisigAccount, proof_key: Point, signer_filter: SignerSetFilter,
) -> PartialKeyImage:
    secret = account.aggregate_signing_key(signer_filter)
    base = hash_to_point(proof_key)
    partial = secret * base
    ctx = hash_key_image_context(account.signer_id, proof_key, signer_filter)
    proof = DLEQProof.prove(
        secret, G, secret * G, base, partial, ctx,
    )
    return PartialKeyImage(
        signer_id=account.signer_id,
        signer_filter=signer_filter,
        proof_key=proof_key,
        partial=partial,
        proof=proof,
    )


def verify_partial_key_image(
    account: MultisigAccount, pki: PartialKeyImage,
) -> bool:
    """Check the DLEQ proof against the sender's aggregate public share."""
    try:
        public = account.aggregate_public_share(pki.signer_id, pki.signer_filter)
    except InvalidFilter:
        return False
    ctx = hash_key_image_context(pki.signer_id, pki.proof_key, pki.signer_filter)
    return pki.proof.verify(
        G, public, hash_to_point(pki.proof_key), pki.partial, ctx,
    )


def combine_partial_key_images(
    account: MultisigAccount,
    proof_key: Point,
    k_offset: Scalar,
    partials: Sequence[PartialKeyImage],
) -> Point:
    """
    KI = k_offset·Hp(K) + Σ partials.

    Only partials for ``proof_key`` that verify are used; the first
    signer filter fully covered by verified partials wins.

    Raises
    ------
    InsufficientSigners
        No filter has verified partials from all of its T members.
    """
    by_filter = {}
    for pki in partials:
        if pki.proof_key != proof_key:
            continue
        if not verify_partial_key_image(account, pki):
            logger.debug(
                f"rejected partial key image from signer "
                f"{pki.signer_id.hex()[:16]} for filter {pki.signer_filter}"
            )
            continue
        by_filter.setdefault(pki.signer_filter, {}).setdefault(
            pki.signer_id, pki.partial,
        )

    for signer_filter in sorted(by_filter):
        contributions = by_filter[signer_filter]
        if signers_to_filter(contributions, account.signers) == signer_filter:
            return k_offset * hash_to_point(proof_key) + Point.sum_points(
                contributions.values()
            )

    available = 0
    for contributions in by_filter.values():
        available |= signers_to_filter(contributions, account.signers)
    raise InsufficientSigners(
        f"no signer group fully contributed to the key image of "
        f"{proof_key.hex()[:16]}",
        available_filter=available,
    )
