"""
A signer's view of a T-of-N multisig account.

Key material comes from :func:`ctmultisig.dkg.make_multisig_accounts`:

- ``share``: the signer's Shamir share  f(i + 1)  of the group key
  ``k_group``.  ``multisig_pubkey = k_group·G`` and
  ``multisig_pubkey_u = k_group·U``.
- ``common_privkey``: a scalar every signer knows (e.g. a shared view
  key).  It never needs a threshold; composition proofs for the
  account's outputs use it as ``z_offset``.

For a concrete signer group (permutation filter) each member derives an
**aggregate signing key**  λ_e·s_e  so that the T members' keys sum to
``k_group``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Tuple

from .curve import Scalar, Point
from .errors import InvalidFilter
from .filters import (
    SignerSetFilter,
    is_member,
    signer_index,
    validate_permutation_filter,
)
from .polynomial import filter_lagrange_coefficient


@dataclass(frozen=True)
class MultisigAccount:
    signers: Tuple[Point, ...]
    threshold: int
    signer_id: Point
    base_privkey: Scalar = field(repr=False)
    share: Scalar = field(repr=False)
    common_privkey: Scalar = field(repr=False)
    multisig_pubkey: Point
    multisig_pubkey_u: Point
    public_shares: Dict[Point, Point] = field(repr=False)

    def __post_init__(self) -> None:
        if not 1 <= self.threshold <= len(self.signers):
            raise ValueError(
                f"threshold {self.threshold} invalid for "
                f"{len(self.signers)} signers"
            )
        if len(set(self.signers)) != len(self.signers):
            raise ValueError("duplicate signer ids")
        if self.signer_id not in self.signers:
            raise ValueError("local signer is not in the signer list")
        if set(self.public_shares) != set(self.signers):
            raise ValueError("public shares don't match the signer list")

    @property
    def num_signers(self) -> int:
        return len(self.signers)

    @property
    def signer_index(self) -> int:
        return self.signers.index(self.signer_id)

    @property
    def local_filter(self) -> SignerSetFilter:
        return 1 << self.signer_index

    @property
    def all_signers_filter(self) -> SignerSetFilter:
        return (1 << self.num_signers) - 1

    def _lagrange(self, idx: int, signer_filter: SignerSetFilter) -> Scalar:
        validate_permutation_filter(
            self.threshold, self.num_signers, signer_filter,
        )
        if not is_member(idx, signer_filter):
            raise InvalidFilter(
                f"signer {idx} is not a member of the filter", signer_filter,
            )
        return filter_lagrange_coefficient(idx, signer_filter)

    def aggregate_signing_key(self, signer_filter: SignerSetFilter) -> Scalar:
        """
        λ·s  for the local signer inside ``signer_filter``.

        The aggregate signing keys of the filter's T members sum to the
        group key.
        """
        return self._lagrange(self.signer_index, signer_filter) * self.share

    def aggregate_public_share(
        self, signer_id: Point, signer_filter: SignerSetFilter,
    ) -> Point:
        """Public image  λ·s·G  of any member's aggregate signing key."""
        idx = signer_index(signer_id, self.signers)
        return self._lagrange(idx, signer_filter) * self.public_shares[signer_id]
