"""
Round 1: initialization sets.

A signer's initialization set carries its public nonce commitments for
every (proof key, permutation filter containing the signer) pair of a
ceremony.  Per proof key the commitments are listed positionally, one
entry per filter in :func:`~ctmultisig.filters.permutations_containing`
order, and each entry holds one :class:`PubNonces` per base point of
the proof family.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .curve import Point
from .encoding import Reader, Writer
from .errors import (
    BadInitSet,
    InitSetErrorCode,
    InvalidFilter,
    Rejection,
    Stage,
)
from .filters import (
    SignerSetFilter,
    is_member,
    num_permutations_with_signer,
    permutations_containing,
    signer_index,
    validate_aggregate_filter,
)
from .nonce_vault import NonceVault, PubNonces

logger = logging.getLogger(__name__)

ProofInfo = Tuple[Point, Sequence[Point]]


@dataclass(frozen=True)
class MultisigInitSet:
    signer_id: Point
    message: bytes
    aggregate_filter: SignerSetFilter
    # proof key -> [filter position][base point]
    inits: Dict[Point, List[List[PubNonces]]]

    @property
    def proof_keys(self) -> List[Point]:
        return list(self.inits)

    def nonces_for(self, proof_key: Point, filter_position: int) -> List[PubNonces]:
        """Commitments for the ``filter_position``-th filter holding the signer."""
        entries = self.inits[proof_key]
        if not 0 <= filter_position < len(entries):
            raise RuntimeError(
                f"filter position {filter_position} out of range for "
                f"{len(entries)} entries"
            )
        return entries[filter_position]

    def to_bytes(self) -> bytes:
        w = Writer().point(self.signer_id).blob(self.message)
        w.uvar(self.aggregate_filter).u32(len(self.inits))
        for proof_key, entries in self.inits.items():
            w.point(proof_key).u32(len(entries))
            for nonces in entries:
                w.u32(len(nonces))
                for n in nonces:
                    w.raw(n.to_bytes())
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> MultisigInitSet:
        r = Reader(data)
        signer_id = r.point()
        message = r.blob()
        aggregate_filter = r.uvar()
        inits: Dict[Point, List[List[PubNonces]]] = {}
        for _ in range(r.u32()):
            proof_key = r.point()
            if proof_key in inits:
                raise ValueError("duplicate proof key in init set")
            inits[proof_key] = [
                [PubNonces.from_bytes(r.raw(66)) for _ in range(r.u32())]
                for _ in range(r.u32())
            ]
        r.finish()
        return cls(
            signer_id=signer_id,
            message=message,
            aggregate_filter=aggregate_filter,
            inits=inits,
        )


def make_init_set(
    signer_id: Point,
    threshold: int,
    signers: Sequence[Point],
    message: bytes,
    proof_infos: Sequence[ProofInfo],
    aggregate_filter: SignerSetFilter,
    vault: NonceVault,
) -> MultisigInitSet:
    """
    Build the local signer's initialization set.

    ``proof_infos`` is the ordered batch of (proof key, base points).
    Creates a nonce record in ``vault`` for every (proof key, filter)
    pair that doesn't have one yet, so rebuilding the set yields the same
    commitments.
    """
    validate_aggregate_filter(threshold, len(signers), aggregate_filter)
    idx = signer_index(signer_id, signers)
    if not is_member(idx, aggregate_filter):
        raise InvalidFilter(
            "local signer is not in the aggregate filter", aggregate_filter,
        )
    keys = [k for k, _ in proof_infos]
    if len(set(keys)) != len(keys):
        raise ValueError("duplicate proof keys in the signing batch")

    filters = list(permutations_containing(
        idx, aggregate_filter, threshold, len(signers),
    ))
    inits: Dict[Point, List[List[PubNonces]]] = {}
    for proof_key, bases in proof_infos:
        entries = []
        for signer_filter in filters:
            entries.append(
                vault.ensure(message, proof_key, signer_filter, bases)
            )
        inits[proof_key] = entries

    logger.debug(
        f"built init set for signer {signer_id.hex()[:16]}: "
        f"{len(keys)} proof keys x {len(filters)} filters"
    )
    return MultisigInitSet(
        signer_id=signer_id,
        message=message,
        aggregate_filter=aggregate_filter,
        inits=inits,
    )


def check_init_set_semantics(
    init_set: MultisigInitSet,
    threshold: int,
    signers: Sequence[Point],
    nonces_per_proof: int,
) -> None:
    """Raise ``BadInitSet(SEMANTICS_FAILURE)`` if the set is malformed."""

    def fail(detail: str) -> BadInitSet:
        return BadInitSet(
            InitSetErrorCode.SEMANTICS_FAILURE,
            detail,
            signer_id=init_set.signer_id,
            aggregate_filter=init_set.aggregate_filter,
            message=init_set.message,
        )

    try:
        validate_aggregate_filter(
            threshold, len(signers), init_set.aggregate_filter,
        )
    except InvalidFilter as exc:
        raise fail(str(exc)) from exc
    if init_set.signer_id not in signers:
        raise fail("signer is not in the signer list")
    idx = list(signers).index(init_set.signer_id)
    if not is_member(idx, init_set.aggregate_filter):
        raise fail("signer is not in its aggregate filter")
    if not init_set.inits:
        raise fail("no proof keys")

    expected_entries = num_permutations_with_signer(
        init_set.aggregate_filter, threshold,
    )
    for proof_key, entries in init_set.inits.items():
        if len(entries) != expected_entries:
            raise fail(
                f"proof key {proof_key.hex()[:16]} has {len(entries)} filter "
                f"entries, expected {expected_entries}"
            )
        for nonces in entries:
            if len(nonces) != nonces_per_proof:
                raise fail(
                    f"filter entry has {len(nonces)} nonce commitments, "
                    f"expected {nonces_per_proof}"
                )
            if any(n.D.is_inf() or n.E.is_inf() for n in nonces):
                raise fail("identity nonce commitment")


def validate_init_set(
    init_set: MultisigInitSet,
    threshold: int,
    signers: Sequence[Point],
    expected_message: bytes,
    expected_aggregate_filter: SignerSetFilter,
    expected_proof_keys: Sequence[Point],
    nonces_per_proof: int,
    expected_signer: Optional[Point] = None,
) -> None:
    """
    Full conformance check of a received (or local) init set.

    ``expected_signer`` is the identity the transport attributes the set
    to.  Raises ``BadInitSet`` with the first failing reason.
    """

    def fail(reason: InitSetErrorCode, detail: str) -> BadInitSet:
        return BadInitSet(
            reason,
            detail,
            signer_id=init_set.signer_id,
            aggregate_filter=init_set.aggregate_filter,
            message=init_set.message,
        )

    if expected_signer is not None and init_set.signer_id != expected_signer:
        raise fail(
            InitSetErrorCode.UNEXPECTED_SIGNER,
            f"set claims signer {init_set.signer_id.hex()[:16]} but came from "
            f"{expected_signer.hex()[:16]}",
        )
    if init_set.signer_id not in signers:
        raise fail(InitSetErrorCode.UNEXPECTED_SIGNER, "unknown signer")
    if init_set.message != expected_message:
        raise fail(InitSetErrorCode.UNEXPECTED_MESSAGE, "message mismatch")
    if init_set.aggregate_filter != expected_aggregate_filter:
        raise fail(
            InitSetErrorCode.UNEXPECTED_FILTER,
            f"aggregate filter {init_set.aggregate_filter}, expected "
            f"{expected_aggregate_filter}",
        )
    if init_set.proof_keys != list(expected_proof_keys):
        raise fail(
            InitSetErrorCode.UNEXPECTED_PROOF_KEY,
            "proof keys don't match the signing batch",
        )
    check_init_set_semantics(init_set, threshold, signers, nonces_per_proof)


@dataclass
class InitSetFilterResult:
    # signer id -> init set, in signer-list order
    accepted: Dict[Point, MultisigInitSet]
    rejected: List[Rejection]

    @property
    def available_signers(self) -> List[Point]:
        return list(self.accepted)


def filter_init_sets(
    local_init_set: MultisigInitSet,
    others: Iterable[Tuple[Point, MultisigInitSet]],
    threshold: int,
    signers: Sequence[Point],
    expected_message: bytes,
    expected_aggregate_filter: SignerSetFilter,
    expected_proof_keys: Sequence[Point],
    nonces_per_proof: int,
) -> InitSetFilterResult:
    """
    Partition received init sets into accepted and rejected.

    ``others`` pairs each set with the signer the transport attributes it
    to.  The local set must be valid (``BadInitSet`` propagates).  Invalid
    peer sets are rejected; of several sets from one signer only the
    first is kept, and a peer set claiming the local identity is always
    rejected.
    """
    validate_init_set(
        local_init_set, threshold, signers, expected_message,
        expected_aggregate_filter, expected_proof_keys, nonces_per_proof,
    )
    local_id = local_init_set.signer_id
    by_signer: Dict[Point, MultisigInitSet] = {local_id: local_init_set}
    rejected: List[Rejection] = []

    def reject(sender: Point, reason: str) -> None:
        logger.debug(
            f"rejected init set from {sender.hex()[:16]}: {reason}"
        )
        rejected.append(Rejection(
            stage=Stage.INIT,
            signer_id=sender,
            signer_filter=expected_aggregate_filter,
            reason=reason,
        ))

    for sender, init_set in others:
        if sender in by_signer:
            reject(sender, InitSetErrorCode.DUPLICATE_SIGNER.name)
            continue
        try:
            validate_init_set(
                init_set, threshold, signers, expected_message,
                expected_aggregate_filter, expected_proof_keys,
                nonces_per_proof, expected_signer=sender,
            )
        except BadInitSet as exc:
            reject(sender, f"{exc.reason.name}: {exc.detail}")
            continue
        by_signer[sender] = init_set

    accepted = {sid: by_signer[sid] for sid in signers if sid in by_signer}
    return InitSetFilterResult(accepted=accepted, rejected=rejected)
