"""
Round 2: partial signature sets.

For every permutation filter that holds the local signer and whose
members all sent a valid init set, the local signer co-signs every proof
key of the batch and bundles the partial signatures into one
:class:`MultisigPartialSigSet`.

Nonce lookup is positional.  Signer *e*'s init set lists one entry per
filter containing *e*, in global enumeration order, so while walking the
aggregate filter's permutations we keep a running counter per signer and
bump it for every filter the signer belongs to, whether or not we sign
for that filter.

A filter attempt is all-or-nothing: if any proof key fails, no set is
produced for the filter, and its consumed nonce records are gone for
good.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .account import MultisigAccount
from .adapters import (
    PartialSignature,
    ProofAdapter,
    ProofKind,
    ProofRequest,
    partial_sig_kind,
    read_partial,
    write_partial,
)
from .curve import Point
from .encoding import Reader, Writer
from .errors import (
    BadPartialSigSet,
    MultisigError,
    PartialSigSetErrorCode,
    Rejection,
    Stage,
)
from .filters import (
    SignerSetFilter,
    aggregate_filter_to_permutations,
    filter_bits,
    filter_to_signers,
    is_member,
    is_subset,
    num_permutations_with_signer,
    popcount,
    signers_to_filter,
)
from .init_set import MultisigInitSet
from .nonce_vault import NonceVault

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MultisigPartialSigSet:
    signer_id: Point
    message: bytes
    signer_filter: SignerSetFilter
    partial_signatures: Tuple[PartialSignature, ...]

    @property
    def proof_keys(self) -> List[Point]:
        return [p.proof_key for p in self.partial_signatures]

    @property
    def proof_kind(self) -> Optional[ProofKind]:
        """The common kind of the partials, None if empty or mixed."""
        kinds = {partial_sig_kind(p) for p in self.partial_signatures}
        return kinds.pop() if len(kinds) == 1 else None

    def to_bytes(self) -> bytes:
        w = Writer().point(self.signer_id).blob(self.message)
        w.uvar(self.signer_filter).u32(len(self.partial_signatures))
        for partial in self.partial_signatures:
            write_partial(w, partial)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> MultisigPartialSigSet:
        r = Reader(data)
        signer_id = r.point()
        message = r.blob()
        signer_filter = r.uvar()
        partials = tuple(read_partial(r) for _ in range(r.u32()))
        r.finish()
        return cls(
            signer_id=signer_id,
            message=message,
            signer_filter=signer_filter,
            partial_signatures=partials,
        )


@dataclass(frozen=True)
class FilterAttemptFailure:
    """A local signing attempt that produced no set for its filter."""

    message: bytes
    signer_filter: SignerSetFilter
    proof_key: Optional[Point]
    reason: str

    def describe(self) -> str:
        key = self.proof_key.hex()[:16] if self.proof_key is not None else "-"
        return (
            f"local attempt: message {self.message.hex()[:16]} filter "
            f"{self.signer_filter!r} proof key {key}: {self.reason}"
        )


@dataclass
class PartialSigSetResult:
    sets: List[MultisigPartialSigSet]
    aborted: List[FilterAttemptFailure]


def make_partial_sig_sets(
    account: MultisigAccount,
    message: bytes,
    requests: Sequence[ProofRequest],
    aggregate_filter: SignerSetFilter,
    init_sets: Mapping[Point, MultisigInitSet],
    vault: NonceVault,
    adapter: ProofAdapter,
) -> PartialSigSetResult:
    """
    Sign every available filter that holds the local signer.

    ``init_sets`` are the accepted init sets keyed by signer, the local
    one included.  Local failures for one filter are logged and reported
    in ``aborted``; the other filters still get signed.
    """
    signers = account.signers
    T = account.threshold
    local_id = account.signer_id
    local_idx = account.signer_index
    if not requests:
        raise ValueError("nothing to sign")
    if local_id not in init_sets:
        raise MultisigError("local init set is missing")
    if any(r.kind is not adapter.kind for r in requests):
        raise ValueError(f"all requests must be {adapter.kind.name} proofs")

    proof_keys = [adapter.proof_key(r.proposal) for r in requests]
    available = signers_to_filter(init_sets, signers)
    trackers: Dict[int, int] = {i: 0 for i in filter_bits(aggregate_filter)}

    sets: List[MultisigPartialSigSet] = []
    aborted: List[FilterAttemptFailure] = []

    for signer_filter in aggregate_filter_to_permutations(
        T, len(signers), aggregate_filter,
    ):
        members = filter_bits(signer_filter)
        if is_member(local_idx, signer_filter) and is_subset(signer_filter, available):
            partial_set = _sign_filter(
                account, message, requests, proof_keys, signer_filter,
                members, trackers, init_sets, vault, adapter, aborted,
            )
            if partial_set is not None:
                sets.append(partial_set)
        for i in members:
            trackers[i] += 1

    expected = num_permutations_with_signer(aggregate_filter, T)
    if any(count != expected for count in trackers.values()):
        raise RuntimeError("nonce trackers out of step with the enumeration")

    logger.info(
        f"signer {local_id.hex()[:16]} produced {len(sets)} partial sig "
        f"sets for message {message.hex()[:16]} ({len(aborted)} aborted)"
    )
    return PartialSigSetResult(sets=sets, aborted=aborted)


def _sign_filter(
    account: MultisigAccount,
    message: bytes,
    requests: Sequence[ProofRequest],
    proof_keys: List[Point],
    signer_filter: SignerSetFilter,
    members: List[int],
    trackers: Dict[int, int],
    init_sets: Mapping[Point, MultisigInitSet],
    vault: NonceVault,
    adapter: ProofAdapter,
    aborted: List[FilterAttemptFailure],
) -> Optional[MultisigPartialSigSet]:
    signers = account.signers
    partials: List[PartialSignature] = []
    failed_key: Optional[Point] = None
    try:
        signing_key = account.aggregate_signing_key(signer_filter)
        for request, proof_key in zip(requests, proof_keys):
            failed_key = proof_key
            signer_nonces = [
                init_sets[signers[i]].nonces_for(proof_key, trackers[i])
                for i in members
            ]
            partials.append(adapter.attempt_partial_signature(
                request.proposal,
                request.privkeys,
                signing_key,
                signer_nonces,
                signer_filter,
                vault,
                account.threshold,
            ))
    except (MultisigError, ValueError) as exc:
        logger.warning(
            f"signing attempt for filter {signer_filter} aborted at proof "
            f"key {failed_key.hex()[:16] if failed_key is not None else '-'}: {exc}"
        )
        aborted.append(FilterAttemptFailure(
            message=message, signer_filter=signer_filter,
            proof_key=failed_key, reason=str(exc),
        ))
        for proof_key in proof_keys:
            vault.remove(message, proof_key, signer_filter)
        return None

    return MultisigPartialSigSet(
        signer_id=account.signer_id,
        message=message,
        signer_filter=signer_filter,
        partial_signatures=tuple(partials),
    )


def check_partial_sig_set_semantics(
    partial_set: MultisigPartialSigSet, signers: Sequence[Point],
) -> None:
    """Raise ``BadPartialSigSet(SEMANTICS_FAILURE)`` if malformed."""

    def fail(detail: str) -> BadPartialSigSet:
        return BadPartialSigSet(
            PartialSigSetErrorCode.SEMANTICS_FAILURE,
            detail,
            signer_id=partial_set.signer_id,
            signer_filter=partial_set.signer_filter,
            message=partial_set.message,
        )

    if partial_set.signer_filter <= 0 or partial_set.signer_filter >> len(signers):
        raise fail("filter out of range")
    if partial_set.signer_id not in signers:
        raise fail("signer is not in the signer list")
    if not is_member(list(signers).index(partial_set.signer_id), partial_set.signer_filter):
        raise fail("signer is not a member of its filter")
    if not partial_set.partial_signatures:
        raise fail("no partial signatures")
    if any(p.message != partial_set.message for p in partial_set.partial_signatures):
        raise fail("partial signature message differs from the set's")
    if partial_set.proof_kind is None:
        raise fail("mixed proof kinds")
    keys = partial_set.proof_keys
    if len(set(keys)) != len(keys):
        raise fail("duplicate proof key")


def validate_partial_sig_set(
    partial_set: MultisigPartialSigSet,
    threshold: int,
    signers: Sequence[Point],
    expected_message: bytes,
    expected_aggregate_filter: SignerSetFilter,
    expected_proof_keys: Sequence[Point],
    expected_kind: ProofKind,
    expected_signer: Optional[Point] = None,
) -> None:
    """
    Full conformance check of a received partial signature set.

    Raises ``BadPartialSigSet`` with the first failing reason.
    """

    def fail(reason: PartialSigSetErrorCode, detail: str) -> BadPartialSigSet:
        return BadPartialSigSet(
            reason,
            detail,
            signer_id=partial_set.signer_id,
            signer_filter=partial_set.signer_filter,
            message=partial_set.message,
        )

    if expected_signer is not None and partial_set.signer_id != expected_signer:
        raise fail(
            PartialSigSetErrorCode.UNEXPECTED_SIGNER,
            f"set claims signer {partial_set.signer_id.hex()[:16]} but came "
            f"from {expected_signer.hex()[:16]}",
        )
    check_partial_sig_set_semantics(partial_set, signers)
    if partial_set.message != expected_message:
        raise fail(PartialSigSetErrorCode.UNEXPECTED_MESSAGE, "message mismatch")
    if popcount(partial_set.signer_filter) != threshold or not is_subset(
        partial_set.signer_filter, expected_aggregate_filter,
    ):
        raise fail(
            PartialSigSetErrorCode.UNEXPECTED_FILTER,
            f"filter is not a {threshold}-signer subset of the aggregate filter",
        )
    if partial_set.proof_kind is not expected_kind:
        raise fail(
            PartialSigSetErrorCode.UNEXPECTED_PROOF_KIND,
            f"expected {expected_kind.name} partial signatures",
        )
    if partial_set.proof_keys != list(expected_proof_keys):
        raise fail(
            PartialSigSetErrorCode.UNEXPECTED_PROOF_KEY,
            "proof keys don't match the signing batch",
        )


@dataclass
class CollectedPartials:
    # (filter, proof key) -> partials from distinct filter members
    partials: Dict[Tuple[SignerSetFilter, Point], List[PartialSignature]]
    # filter -> members that contributed a valid set
    contributors: Dict[SignerSetFilter, List[Point]]
    rejected: List[Rejection]

    def covered_filters(self, threshold: int) -> List[SignerSetFilter]:
        """Filters with valid sets from exactly ``threshold`` members, ascending."""
        return sorted(
            f for f, members in self.contributors.items()
            if len(members) == threshold
        )


def collect_partial_sigs_for_combining(
    partial_sets: Iterable[Tuple[Point, MultisigPartialSigSet]],
    threshold: int,
    signers: Sequence[Point],
    expected_message: bytes,
    expected_aggregate_filter: SignerSetFilter,
    expected_proof_keys: Sequence[Point],
    expected_kind: ProofKind,
) -> CollectedPartials:
    """
    Validate received sets and group their partials for combining.

    ``partial_sets`` pairs each set with its attributed sender.  Invalid
    sets and repeat sets from one signer for one filter are rejected.
    """
    collected: Dict[Tuple[SignerSetFilter, Point], List[PartialSignature]] = {}
    contributors: Dict[SignerSetFilter, List[Point]] = {}
    rejected: List[Rejection] = []

    for sender, partial_set in partial_sets:
        try:
            validate_partial_sig_set(
                partial_set, threshold, signers, expected_message,
                expected_aggregate_filter, expected_proof_keys, expected_kind,
                expected_signer=sender,
            )
        except BadPartialSigSet as exc:
            logger.debug(f"rejected partial sig set: {exc}")
            rejected.append(Rejection(
                stage=Stage.PARTIAL_SIGNING,
                signer_id=sender,
                signer_filter=partial_set.signer_filter,
                reason=f"{exc.reason.name}: {exc.detail}",
            ))
            continue

        members = contributors.setdefault(partial_set.signer_filter, [])
        if sender in members:
            rejected.append(Rejection(
                stage=Stage.PARTIAL_SIGNING,
                signer_id=sender,
                signer_filter=partial_set.signer_filter,
                reason=PartialSigSetErrorCode.DUPLICATE_SIGNER.name,
            ))
            continue
        members.append(sender)
        for partial in partial_set.partial_signatures:
            collected.setdefault(
                (partial_set.signer_filter, partial.proof_key), [],
            ).append(partial)

    for signer_filter in contributors:
        contributors[signer_filter] = [
            s for s in filter_to_signers(signer_filter, signers)
            if s in contributors[signer_filter]
        ]
    return CollectedPartials(
        partials=collected, contributors=contributors, rejected=rejected,
    )
