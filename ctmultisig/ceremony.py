"""
Per-proposal signing ceremony.

Drives one local signer through a two-round multisig signing session:

::

    PROPOSED ─initialize()─▶ INIT_COLLECTING ─begin_partial_signing()─▶
    PARTIAL_SIGNING ─finalize()─▶ AGGREGATING ─▶ COMPLETE | ABORTED

Transport is external: the caller hands every received message to
:meth:`MultisigCeremony.add_init_set` / :meth:`add_partial_sig_set`
together with the signer the channel attributes it to, and decides when
enough peers have responded.  Invalid peer messages are dropped and
recorded in :attr:`MultisigCeremony.rejections`; local failures raise.

Usage
-----
::

    ceremony = MultisigCeremony(account, proposal, vault)
    broadcast(ceremony.initialize())
    for sender, init_set in received_init_sets:
        ceremony.add_init_set(sender, init_set)
    broadcast(ceremony.begin_partial_signing())
    for sender, partial_set in received_partial_sets:
        ceremony.add_partial_sig_set(sender, partial_set)
    proofs = ceremony.finalize()
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, List, Optional, Tuple

from .account import MultisigAccount
from .adapters import CompleteProof, ProofKind, ProofRequest, adapter_for
from .clsag import ClsagProposal
from .config import MultisigConfig
from .curve import Point
from .errors import (
    AssemblyFailed,
    BadPartialSigSet,
    InsufficientSigners,
    InvalidFilter,
    PartialSigSetErrorCode,
    Rejection,
    Stage,
)
from .filters import (
    SignerSetFilter,
    is_member,
    permutations_containing,
    popcount,
    signers_to_filter,
    validate_aggregate_filter,
)
from .init_set import MultisigInitSet, filter_init_sets, make_init_set
from .nonce_vault import NonceVault
from .partial_sig_set import (
    FilterAttemptFailure,
    MultisigPartialSigSet,
    collect_partial_sigs_for_combining,
    make_partial_sig_sets,
    validate_partial_sig_set,
)

logger = logging.getLogger(__name__)


class CeremonyState(Enum):
    PROPOSED = auto()
    INIT_COLLECTING = auto()
    PARTIAL_SIGNING = auto()
    AGGREGATING = auto()
    COMPLETE = auto()
    ABORTED = auto()


@dataclass(frozen=True)
class SigningProposal:
    """What to sign: one message, the invited signers and the proofs."""

    message: bytes
    aggregate_filter: SignerSetFilter
    requests: Tuple[ProofRequest, ...]

    @property
    def kind(self) -> ProofKind:
        return self.requests[0].kind


@dataclass(frozen=True)
class CompletedProofs:
    signer_filter: SignerSetFilter
    proofs: Dict[Point, CompleteProof]

    def __getitem__(self, proof_key: Point) -> CompleteProof:
        return self.proofs[proof_key]

    def __len__(self) -> int:
        return len(self.proofs)


class MultisigCeremony:
    """
    One signer's state for one :class:`SigningProposal`.

    Every proof in a ceremony must be of the same kind.  Nonce records
    live in ``vault``, which may be shared with other ceremonies.
    """

    def __init__(
        self,
        account: MultisigAccount,
        proposal: SigningProposal,
        vault: NonceVault,
        config: Optional[MultisigConfig] = None,
    ) -> None:
        self.account = account
        self.proposal = proposal
        self.vault = vault
        self.config = config or MultisigConfig()

        self._check_proposal()
        self.adapter = adapter_for(proposal.kind)
        for request in proposal.requests:
            self.adapter.check_proposal(request.proposal, request.privkeys, account)
        self.proof_keys: List[Point] = [
            self.adapter.proof_key(r.proposal) for r in proposal.requests
        ]
        if len(set(self.proof_keys)) != len(self.proof_keys):
            raise ValueError("duplicate proof keys in the signing batch")

        self._state = CeremonyState.PROPOSED
        self._local_init_set: Optional[MultisigInitSet] = None
        self._init_sets: Dict[Point, MultisigInitSet] = {}
        self._partial_sets: List[Tuple[Point, MultisigPartialSigSet]] = []
        self._rejections: List[Rejection] = []
        self._filter_failures: List[FilterAttemptFailure] = []
        self._result: Optional[CompletedProofs] = None
        self.abort_reason: Optional[str] = None

    def _check_proposal(self) -> None:
        account, proposal, config = self.account, self.proposal, self.config
        if account.num_signers > config.max_signers:
            raise ValueError(
                f"{account.num_signers} signers exceed the limit of "
                f"{config.max_signers}"
            )
        if not proposal.requests:
            raise ValueError("signing proposal has no proofs")
        if len(proposal.requests) > config.max_proofs_per_ceremony:
            raise ValueError(
                f"{len(proposal.requests)} proofs exceed the limit of "
                f"{config.max_proofs_per_ceremony}"
            )
        if any(r.kind is not proposal.kind for r in proposal.requests):
            raise ValueError("all proofs in a ceremony must be of one kind")
        for r in proposal.requests:
            if r.proposal.message != proposal.message:
                raise ValueError("proof proposal signs a different message")
            if (isinstance(r.proposal, ClsagProposal)
                    and len(r.proposal.ring_keys) > config.max_ring_size):
                raise ValueError(
                    f"ring of {len(r.proposal.ring_keys)} members exceeds "
                    f"the limit of {config.max_ring_size}"
                )
        validate_aggregate_filter(
            account.threshold, account.num_signers, proposal.aggregate_filter,
        )
        if not is_member(account.signer_index, proposal.aggregate_filter):
            raise InvalidFilter(
                "local signer is not in the aggregate filter",
                proposal.aggregate_filter,
            )

    # ── state ──────────────────────────────────────────────────────────

    @property
    def state(self) -> CeremonyState:
        return self._state

    @property
    def rejections(self) -> List[Rejection]:
        return list(self._rejections)

    @property
    def filter_failures(self) -> List[FilterAttemptFailure]:
        """Local signing attempts that produced no partial sig set."""
        return list(self._filter_failures)

    @property
    def result(self) -> Optional[CompletedProofs]:
        return self._result

    @property
    def available_filter(self) -> SignerSetFilter:
        """Signers with an accepted init set."""
        return signers_to_filter(self._init_sets, self.account.signers)

    def _require(self, *states: CeremonyState) -> None:
        if self._state not in states:
            raise RuntimeError(
                f"operation not allowed in state {self._state.name}"
            )

    def _transition(self, state: CeremonyState) -> None:
        logger.info(
            f"ceremony {self.proposal.message.hex()[:16]} "
            f"(signer {self.account.signer_index}): "
            f"{self._state.name} -> {state.name}"
        )
        self._state = state

    def _reject(self, stage: Stage, sender: Point, signer_filter, reason: str) -> None:
        logger.debug(
            f"rejected {stage.name.lower()} message from "
            f"{sender.hex()[:16]}: {reason}"
        )
        self._rejections.append(Rejection(
            stage=stage, signer_id=sender, signer_filter=signer_filter,
            reason=reason,
        ))

    # ── round 1 ────────────────────────────────────────────────────────

    def initialize(self) -> MultisigInitSet:
        """Build the local init set (creates the nonce records)."""
        self._require(CeremonyState.PROPOSED)
        proof_infos = [
            (key, self.adapter.base_points(r.proposal))
            for key, r in zip(self.proof_keys, self.proposal.requests)
        ]
        init_set = make_init_set(
            self.account.signer_id,
            self.account.threshold,
            self.account.signers,
            self.proposal.message,
            proof_infos,
            self.proposal.aggregate_filter,
            self.vault,
        )
        result = self._filter_init_sets(init_set, [])
        self._local_init_set = init_set
        self._init_sets = result.accepted
        self._transition(CeremonyState.INIT_COLLECTING)
        return init_set

    def _filter_init_sets(self, local, others):
        return filter_init_sets(
            local,
            others,
            self.account.threshold,
            self.account.signers,
            self.proposal.message,
            self.proposal.aggregate_filter,
            self.proof_keys,
            self.adapter.required_base_point_count(),
        )

    def add_init_set(self, sender_id: Point, init_set: MultisigInitSet) -> bool:
        """Accept a peer's init set; False (and a rejection) if invalid."""
        self._require(CeremonyState.INIT_COLLECTING)
        if sender_id in self._init_sets:
            self._reject(
                Stage.INIT, sender_id, self.proposal.aggregate_filter,
                "DUPLICATE_SIGNER",
            )
            return False
        result = self._filter_init_sets(
            self._local_init_set, [(sender_id, init_set)],
        )
        self._rejections.extend(result.rejected)
        if sender_id not in result.accepted:
            return False
        self._init_sets[sender_id] = init_set
        self._init_sets = {
            sid: self._init_sets[sid]
            for sid in self.account.signers if sid in self._init_sets
        }
        return True

    # ── round 2 ────────────────────────────────────────────────────────

    def begin_partial_signing(self) -> List[MultisigPartialSigSet]:
        """
        Sign every filter whose members all sent valid init sets.

        Raises ``InsufficientSigners`` (and aborts) if fewer than T
        signers are available or no filter could be signed locally.
        """
        self._require(CeremonyState.INIT_COLLECTING)
        available = self.available_filter
        if popcount(available) < self.account.threshold:
            self.abort(
                f"{popcount(available)} signers available, need "
                f"{self.account.threshold}"
            )
            raise InsufficientSigners(self.abort_reason, available_filter=available)

        result = make_partial_sig_sets(
            self.account,
            self.proposal.message,
            self.proposal.requests,
            self.proposal.aggregate_filter,
            self._init_sets,
            self.vault,
            self.adapter,
        )
        self._filter_failures.extend(result.aborted)
        if not result.sets:
            self.abort("no signer group could be signed locally")
            raise InsufficientSigners(self.abort_reason, available_filter=available)

        self._partial_sets.extend(
            (self.account.signer_id, s) for s in result.sets
        )
        self._transition(CeremonyState.PARTIAL_SIGNING)
        return result.sets

    def add_partial_sig_set(
        self, sender_id: Point, partial_set: MultisigPartialSigSet,
    ) -> bool:
        """Accept a peer's partial sig set; False (and a rejection) if invalid."""
        self._require(CeremonyState.PARTIAL_SIGNING)
        duplicate = sender_id == self.account.signer_id or any(
            sender == sender_id and s.signer_filter == partial_set.signer_filter
            for sender, s in self._partial_sets
        )
        if duplicate:
            self._reject(
                Stage.PARTIAL_SIGNING, sender_id, partial_set.signer_filter,
                PartialSigSetErrorCode.DUPLICATE_SIGNER.name,
            )
            return False
        try:
            validate_partial_sig_set(
                partial_set,
                self.account.threshold,
                self.account.signers,
                self.proposal.message,
                self.proposal.aggregate_filter,
                self.proof_keys,
                self.proposal.kind,
                expected_signer=sender_id,
            )
        except BadPartialSigSet as exc:
            self._reject(
                Stage.PARTIAL_SIGNING, sender_id, partial_set.signer_filter,
                f"{exc.reason.name}: {exc.detail}",
            )
            return False
        self._partial_sets.append((sender_id, partial_set))
        return True

    def _collect(self):
        return collect_partial_sigs_for_combining(
            self._partial_sets,
            self.account.threshold,
            self.account.signers,
            self.proposal.message,
            self.proposal.aggregate_filter,
            self.proof_keys,
            self.proposal.kind,
        )

    def ready_filters(self) -> List[SignerSetFilter]:
        """Filters with partial sig sets from all T members, ascending."""
        return self._collect().covered_filters(self.account.threshold)

    # ── aggregation ────────────────────────────────────────────────────

    def finalize(self) -> CompletedProofs:
        """
        Assemble every proof from the first fully covered filter.

        A filter whose partials don't assemble is skipped in favour of
        the next covered one.  Raises ``InsufficientSigners`` if no
        filter is covered yet, leaving the ceremony open for more partial
        sig sets, and ``AssemblyFailed`` (aborting) if none assembles.
        """
        self._require(CeremonyState.PARTIAL_SIGNING)
        collected = self._collect()
        ready = collected.covered_filters(self.account.threshold)
        if not ready:
            raise InsufficientSigners(
                "no signer group has full partial signature coverage",
                available_filter=self.available_filter,
            )
        self._transition(CeremonyState.AGGREGATING)

        last_error: Optional[AssemblyFailed] = None
        for signer_filter in ready:
            try:
                proofs = {
                    key: self.adapter.finalize(
                        collected.partials[(signer_filter, key)],
                        request.proposal,
                        signer_filter=signer_filter,
                    )
                    for key, request in zip(self.proof_keys, self.proposal.requests)
                }
            except AssemblyFailed as exc:
                logger.warning(f"discarding filter {signer_filter}: {exc}")
                self._rejections.append(Rejection(
                    stage=Stage.AGGREGATION,
                    signer_id=None,
                    signer_filter=signer_filter,
                    reason=exc.detail,
                ))
                last_error = exc
                continue

            self._result = CompletedProofs(signer_filter=signer_filter, proofs=proofs)
            self._discard_nonces()
            self._transition(CeremonyState.COMPLETE)
            return self._result

        self.abort("no signer group assembled valid proofs")
        raise last_error

    # ── teardown ───────────────────────────────────────────────────────

    def _discard_nonces(self) -> int:
        removed = 0
        for signer_filter in permutations_containing(
            self.account.signer_index,
            self.proposal.aggregate_filter,
            self.account.threshold,
            self.account.num_signers,
        ):
            for key in self.proof_keys:
                if self.vault.remove(self.proposal.message, key, signer_filter):
                    removed += 1
        return removed

    def abort(self, reason: str) -> None:
        """Stop the ceremony and discard its unused nonce records."""
        if self._state in (CeremonyState.COMPLETE, CeremonyState.ABORTED):
            raise RuntimeError(f"ceremony already {self._state.name}")
        removed = self._discard_nonces()
        self.abort_reason = reason
        logger.warning(
            f"ceremony {self.proposal.message.hex()[:16]} aborted: {reason} "
            f"({removed} nonce records discarded)"
        )
        self._transition(CeremonyState.ABORTED)

    def blame_report(self) -> List[str]:
        """Human-readable list of every rejected artifact and failed local attempt."""
        return (
            [r.describe() for r in self._rejections]
            + [f.describe() for f in self._filter_failures]
        )
