"""
Signer-set filter algebra.

A filter is a plain ``int`` bitmask over the account's ordered signer
list: bit *i* set means signer *i* is in the set.

- An **aggregate filter** names every signer invited to a ceremony
  (T ≤ popcount ≤ N).
- A **permutation filter** is one concrete T-sized subset of an
  aggregate filter.

Enumeration order is a wire contract: initialization sets index their
nonce lists by position in :func:`aggregate_filter_to_permutations`, so
every participant must enumerate identically.  We use ascending integer
order, produced lazily by Gosper's hack on a compressed index space and
deposited back onto the aggregate's set bits (the deposit is monotone, so
order is preserved).
"""

from __future__ import annotations

from typing import Iterable, Iterator, List, Sequence

from .curve import Point
from .errors import InvalidFilter

SignerSetFilter = int


def popcount(signer_filter: SignerSetFilter) -> int:
    return bin(signer_filter).count("1")


def intersect(a: SignerSetFilter, b: SignerSetFilter) -> SignerSetFilter:
    return a & b


def is_subset(inner: SignerSetFilter, outer: SignerSetFilter) -> bool:
    return (inner & outer) == inner


def is_member(signer_index: int, signer_filter: SignerSetFilter) -> bool:
    """True if the signer at ``signer_index`` is in the filter."""
    if signer_index < 0:
        return False
    return bool((signer_filter >> signer_index) & 1)


def n_choose_k(n: int, k: int) -> int:
    """Binomial coefficient, 0 outside the valid range."""
    if n < 0 or k < 0 or k > n:
        return 0
    k = min(k, n - k)
    r = 1
    for i in range(k):
        r = r * (n - i) // (i + 1)
    return r


def filter_bits(signer_filter: SignerSetFilter) -> List[int]:
    """Indices of the set bits, ascending."""
    out = []
    i = 0
    while signer_filter:
        if signer_filter & 1:
            out.append(i)
        signer_filter >>= 1
        i += 1
    return out


# ── signer ↔ filter conversion ──────────────────────────────────────────

def signer_index(signer_id: Point, signers: Sequence[Point]) -> int:
    try:
        return list(signers).index(signer_id)
    except ValueError:
        raise InvalidFilter("signer is not in the signer list") from None


def signer_to_filter(
    signer_id: Point, signers: Sequence[Point],
) -> SignerSetFilter:
    return 1 << signer_index(signer_id, signers)


def signers_to_filter(
    signer_ids: Iterable[Point], signers: Sequence[Point],
) -> SignerSetFilter:
    out = 0
    for sid in signer_ids:
        out |= signer_to_filter(sid, signers)
    return out


def filter_to_signers(
    signer_filter: SignerSetFilter, signers: Sequence[Point],
) -> List[Point]:
    if signer_filter >> len(signers):
        raise InvalidFilter(
            "filter has bits beyond the signer list", signer_filter,
        )
    return [signers[i] for i in filter_bits(signer_filter)]


def signer_is_in_filter(
    signer_id: Point,
    signers: Sequence[Point],
    signer_filter: SignerSetFilter,
) -> bool:
    """False for unknown signers as well as non-members."""
    if signer_id not in signers:
        return False
    return is_member(list(signers).index(signer_id), signer_filter)


# ── validation ──────────────────────────────────────────────────────────

def validate_aggregate_filter(
    threshold: int, num_signers: int, aggregate: SignerSetFilter,
) -> None:
    """Raise ``InvalidFilter`` unless T ≤ popcount(aggregate) ≤ N."""
    if threshold < 1 or threshold > num_signers:
        raise InvalidFilter(
            f"threshold {threshold} invalid for {num_signers} signers"
        )
    if aggregate < 0 or aggregate >> num_signers:
        raise InvalidFilter(
            f"aggregate filter has bits beyond {num_signers} signers",
            aggregate,
        )
    n = popcount(aggregate)
    if n < threshold:
        raise InvalidFilter(
            f"aggregate filter names {n} signers, fewer than threshold "
            f"{threshold}",
            aggregate,
        )


def validate_permutation_filter(
    threshold: int, num_signers: int, signer_filter: SignerSetFilter,
) -> None:
    """Raise ``InvalidFilter`` unless the filter names exactly T signers."""
    if signer_filter < 0 or signer_filter >> num_signers:
        raise InvalidFilter(
            f"filter has bits beyond {num_signers} signers", signer_filter,
        )
    if popcount(signer_filter) != threshold:
        raise InvalidFilter(
            f"filter names {popcount(signer_filter)} signers, expected "
            f"{threshold}",
            signer_filter,
        )


# ── permutation enumeration ─────────────────────────────────────────────

def _deposit(compressed: int, positions: List[int]) -> SignerSetFilter:
    out = 0
    i = 0
    while compressed:
        if compressed & 1:
            out |= 1 << positions[i]
        compressed >>= 1
        i += 1
    return out


def aggregate_filter_to_permutations(
    threshold: int, num_signers: int, aggregate: SignerSetFilter,
) -> Iterator[SignerSetFilter]:
    """
    Lazily yield every T-subset of ``aggregate`` in ascending order.

    Yields ``n_choose_k(popcount(aggregate), threshold)`` filters.
    """
    validate_aggregate_filter(threshold, num_signers, aggregate)
    positions = filter_bits(aggregate)
    k = len(positions)

    v = (1 << threshold) - 1
    limit = 1 << k
    while v < limit:
        yield _deposit(v, positions)
        # Gosper's hack: next larger integer with the same popcount
        c = v & -v
        r = v + c
        v = (((r ^ v) >> 2) // c) | r


def permutations_containing(
    signer_idx: int,
    aggregate: SignerSetFilter,
    threshold: int,
    num_signers: int,
) -> Iterator[SignerSetFilter]:
    """
    Permutation filters of ``aggregate`` that include the signer.

    Yields ``n_choose_k(popcount(aggregate) - 1, threshold - 1)`` filters
    for a member and nothing for a non-member.
    """
    for f in aggregate_filter_to_permutations(
        threshold, num_signers, aggregate,
    ):
        if is_member(signer_idx, f):
            yield f


def num_permutations_with_signer(aggregate: SignerSetFilter, threshold: int) -> int:
    return n_choose_k(popcount(aggregate) - 1, threshold - 1)
