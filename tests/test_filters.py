"""
Signer-set filter algebra tests
"""

import pytest

from ctmultisig.curve import Scalar, G
from ctmultisig.errors import InvalidFilter
from ctmultisig.filters import (
    aggregate_filter_to_permutations,
    filter_bits,
    filter_to_signers,
    intersect,
    is_member,
    is_subset,
    n_choose_k,
    num_permutations_with_signer,
    permutations_containing,
    popcount,
    signer_is_in_filter,
    signer_to_filter,
    signers_to_filter,
    validate_aggregate_filter,
    validate_permutation_filter,
)


@pytest.fixture(scope="module")
def signers():
    return [Scalar(i + 1) * G for i in range(5)]


class TestBitOps:
    """Basic filter operations."""

    def test_popcount(self):
        """popcount counts set bits."""
        assert popcount(0) == 0
        assert popcount(0b1011) == 3

    def test_membership(self):
        """is_member tests a single bit."""
        assert is_member(0, 0b101)
        assert not is_member(1, 0b101)
        assert is_member(2, 0b101)
        assert not is_member(-1, 0b101)

    def test_intersect_and_subset(self):
        """intersect and is_subset are bitwise."""
        assert intersect(0b1100, 0b0110) == 0b0100
        assert is_subset(0b0100, 0b0110)
        assert not is_subset(0b1001, 0b0110)

    def test_filter_bits(self):
        """filter_bits lists set positions ascending."""
        assert filter_bits(0b10110) == [1, 2, 4]

    def test_n_choose_k(self):
        """Binomial coefficients, zero outside range."""
        assert n_choose_k(5, 2) == 10
        assert n_choose_k(4, 0) == 1
        assert n_choose_k(3, 4) == 0
        assert n_choose_k(3, -1) == 0


class TestSignerConversion:
    """Signer id <-> filter conversion."""

    def test_signer_to_filter(self, signers):
        """Each signer maps to its own bit."""
        assert signer_to_filter(signers[3], signers) == 0b1000

    def test_round_trip(self, signers):
        """signers_to_filter and filter_to_signers agree."""
        chosen = [signers[0], signers[2], signers[4]]
        f = signers_to_filter(chosen, signers)
        assert f == 0b10101
        assert filter_to_signers(f, signers) == chosen

    def test_unknown_signer(self, signers):
        """Unknown signers raise InvalidFilter."""
        with pytest.raises(InvalidFilter):
            signer_to_filter(Scalar(99) * G, signers)

    def test_filter_beyond_signers(self, signers):
        """Bits beyond the signer list are rejected."""
        with pytest.raises(InvalidFilter):
            filter_to_signers(1 << 5, signers)

    def test_signer_is_in_filter(self, signers):
        """Membership by signer id; unknown signers are never members."""
        assert signer_is_in_filter(signers[1], signers, 0b10)
        assert not signer_is_in_filter(signers[1], signers, 0b01)
        assert not signer_is_in_filter(Scalar(99) * G, signers, 0b11111)


class TestValidation:
    """Aggregate and permutation filter validation."""

    def test_aggregate_ok(self):
        """Aggregate with T <= popcount <= N passes."""
        validate_aggregate_filter(2, 3, 0b111)
        validate_aggregate_filter(2, 3, 0b011)

    def test_aggregate_too_small(self):
        """Aggregate with fewer than T signers fails."""
        with pytest.raises(InvalidFilter):
            validate_aggregate_filter(3, 4, 0b0011)

    def test_aggregate_out_of_range(self):
        """Aggregate naming signers beyond N fails."""
        with pytest.raises(InvalidFilter):
            validate_aggregate_filter(2, 3, 0b1011)

    def test_bad_threshold(self):
        """Threshold outside [1, N] fails."""
        with pytest.raises(InvalidFilter):
            validate_aggregate_filter(0, 3, 0b111)
        with pytest.raises(InvalidFilter):
            validate_aggregate_filter(4, 3, 0b111)

    def test_permutation_filter(self):
        """Permutation filters must name exactly T signers."""
        validate_permutation_filter(2, 3, 0b101)
        with pytest.raises(InvalidFilter):
            validate_permutation_filter(2, 3, 0b111)
        with pytest.raises(InvalidFilter):
            validate_permutation_filter(2, 3, 0b1001)


class TestPermutations:
    """Permutation enumeration."""

    def test_two_of_three(self):
        """All three 2-subsets in ascending order."""
        assert list(aggregate_filter_to_permutations(2, 3, 0b111)) == [
            0b011, 0b101, 0b110,
        ]

    def test_sparse_aggregate(self):
        """Subsets of a sparse aggregate only use its bits."""
        perms = list(aggregate_filter_to_permutations(2, 5, 0b10110))
        assert perms == [0b00110, 0b10010, 0b10100]

    @pytest.mark.parametrize("threshold,num_signers", [
        (1, 1), (1, 3), (2, 3), (3, 3), (2, 4), (3, 5), (4, 6),
    ])
    def test_counts_and_order(self, threshold, num_signers):
        """C(N, T) distinct T-subsets, strictly ascending."""
        aggregate = (1 << num_signers) - 1
        perms = list(aggregate_filter_to_permutations(
            threshold, num_signers, aggregate,
        ))
        assert len(perms) == n_choose_k(num_signers, threshold)
        assert perms == sorted(set(perms))
        assert all(popcount(p) == threshold for p in perms)
        assert all(is_subset(p, aggregate) for p in perms)

    @pytest.mark.parametrize("threshold,num_signers,aggregate", [
        (2, 3, 0b111), (2, 4, 0b1101), (3, 5, 0b11111), (1, 4, 0b1010),
    ])
    def test_containing_counts(self, threshold, num_signers, aggregate):
        """Members get C(k-1, T-1) filters; non-members get none."""
        for idx in range(num_signers):
            perms = list(permutations_containing(
                idx, aggregate, threshold, num_signers,
            ))
            if is_member(idx, aggregate):
                assert len(perms) == num_permutations_with_signer(aggregate, threshold)
                assert all(is_member(idx, p) for p in perms)
            else:
                assert perms == []

    def test_invalid_aggregate_raises(self):
        """Enumeration validates the aggregate filter."""
        with pytest.raises(InvalidFilter):
            list(aggregate_filter_to_permutations(3, 3, 0b011))
