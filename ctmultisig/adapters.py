"""
Proof-kind adapters.

One adapter per supported proof family.  The ceremony code is written
against :class:`ProofAdapter` and never inspects proof internals:

- how many nonce base points a proof needs, and which;
- how to turn the local signer's aggregate signing key, the group's
  round-1 nonces and the proof's shared private inputs into a partial
  signature (consuming the local nonce record);
- how to assemble and verify the complete proof.

Shared private inputs
---------------------
Every signer knows the same per-proof scalars; only the group key is
split.  With  k_e  the signer's aggregate signing key for the filter:

- composition:  z = z_multiplier·(z_offset + k_group), so each signer
  uses  z_e = z_multiplier·(z_offset/T + k_e);
- CLSAG:  p = k_offset + k_group, so each signer uses
  k_e' = k_e + k_offset/T  and  z_e = z/T.
"""

from __future__ import annotations

import abc
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union

from .account import MultisigAccount
from .clsag import (
    ClsagPartial,
    ClsagProof,
    ClsagProposal,
    finalize_clsag_proof,
    make_clsag_partial_sig,
    verify_clsag_proof,
)
from .composition import (
    CompositionPartial,
    CompositionProof,
    CompositionProposal,
    finalize_composition_proof,
    make_composition_partial_sig,
    verify_composition_proof,
)
from .curve import Scalar, Point, G, X, U, hash_to_point
from .encoding import Reader, Writer
from .errors import AssemblyFailed
from .nonce_vault import NonceVault, PubNonces


class ProofKind(Enum):
    """Wire tag of a proof family."""

    COMPOSITION = 1
    CLSAG = 2


PartialSignature = Union[CompositionPartial, ClsagPartial]
CompleteProof = Union[CompositionProof, ClsagProof]
Proposal = Union[CompositionProposal, ClsagProposal]


def partial_sig_kind(partial: PartialSignature) -> ProofKind:
    if isinstance(partial, CompositionPartial):
        return ProofKind.COMPOSITION
    if isinstance(partial, ClsagPartial):
        return ProofKind.CLSAG
    raise TypeError(f"unknown partial signature type {type(partial).__name__}")


def write_partial(w: Writer, partial: PartialSignature) -> None:
    w.u8(partial_sig_kind(partial).value)
    partial.write(w)


def read_partial(r: Reader) -> PartialSignature:
    tag = r.u8()
    try:
        kind = ProofKind(tag)
    except ValueError:
        raise ValueError(f"unknown proof kind tag {tag}") from None
    if kind is ProofKind.COMPOSITION:
        return CompositionPartial.read(r)
    if kind is ProofKind.CLSAG:
        return ClsagPartial.read(r)
    raise RuntimeError(f"unhandled proof kind {kind}")


# ── shared private inputs ───────────────────────────────────────────────

@dataclass(frozen=True)
class CompositionPrivkeys:
    x: Scalar = field(repr=False)
    y: Scalar = field(repr=False)
    z_offset: Scalar = field(repr=False)
    z_multiplier: Scalar = field(repr=False)


@dataclass(frozen=True)
class ClsagPrivkeys:
    k_offset: Scalar = field(repr=False)
    z: Scalar = field(repr=False)


Privkeys = Union[CompositionPrivkeys, ClsagPrivkeys]


@dataclass(frozen=True)
class ProofRequest:
    """One proof to co-sign: its family, public proposal and shared inputs."""

    kind: ProofKind
    proposal: Proposal
    privkeys: Privkeys


def account_composition_privkeys(
    account: MultisigAccount, x: Scalar, y: Scalar, z_multiplier: Scalar,
) -> CompositionPrivkeys:
    """Shared inputs for an output of ``account``, offset by its common key."""
    return CompositionPrivkeys(
        x=x, y=y, z_offset=account.common_privkey, z_multiplier=z_multiplier,
    )


def composition_proof_keys(
    account: MultisigAccount, privkeys: CompositionPrivkeys,
) -> Tuple[Point, Point]:
    """
    Proof key and key image for a composition proof owned by the group.

    K  = x·G + y·X + z_multiplier·(z_offset·U + k_group·U)
    KI = (z_multiplier / y)·(z_offset·U + k_group·U)
    """
    z_U = privkeys.z_offset * U + account.multisig_pubkey_u
    K = privkeys.x * G + privkeys.y * X + privkeys.z_multiplier * z_U
    KI = (privkeys.z_multiplier / privkeys.y) * z_U
    return K, KI


def clsag_proof_key(account: MultisigAccount, privkeys: ClsagPrivkeys) -> Point:
    """K = k_offset·G + k_group·G."""
    return privkeys.k_offset * G + account.multisig_pubkey


# ── adapter interface ───────────────────────────────────────────────────

class ProofAdapter(abc.ABC):
    kind: ProofKind

    @abc.abstractmethod
    def required_base_point_count(self) -> int:
        ...

    @abc.abstractmethod
    def base_points(self, proposal: Proposal) -> List[Point]:
        """Nonce base points, in the order init sets list commitments."""

    @abc.abstractmethod
    def proof_key(self, proposal: Proposal) -> Point:
        ...

    @abc.abstractmethod
    def check_proposal(
        self, proposal: Proposal, privkeys: Privkeys, account: MultisigAccount,
    ) -> None:
        """Raise ``ValueError`` if the proposal doesn't match the inputs."""

    @abc.abstractmethod
    def _partial_sig(
        self,
        proposal: Proposal,
        privkeys: Privkeys,
        signing_key: Scalar,
        signer_pub_nonces: Sequence[Sequence[PubNonces]],
        local_nonces,
        threshold: int,
    ) -> PartialSignature:
        ...

    @abc.abstractmethod
    def _assemble(self, partials: List[PartialSignature]) -> CompleteProof:
        ...

    @abc.abstractmethod
    def verify(self, proof: CompleteProof, proposal: Proposal) -> bool:
        ...

    def attempt_partial_signature(
        self,
        proposal: Proposal,
        privkeys: Privkeys,
        signing_key: Scalar,
        signer_pub_nonces: Sequence[Sequence[PubNonces]],
        signer_filter: int,
        vault: NonceVault,
        threshold: int,
    ) -> PartialSignature:
        """
        Produce the local partial signature for one proof and one filter.

        ``signer_pub_nonces`` holds one list of commitments (one per base
        point) for every member of ``signer_filter``.  The local nonce
        record is consumed even if signing then fails.

        Raises
        ------
        NotFound
            The local nonce record is missing or already consumed.
        ValueError
            Inconsistent inputs.
        """
        n_bases = self.required_base_point_count()
        if len(signer_pub_nonces) != threshold:
            raise ValueError(
                f"expected nonces from {threshold} signers, got "
                f"{len(signer_pub_nonces)}"
            )
        if any(len(n) != n_bases for n in signer_pub_nonces):
            raise ValueError(f"every signer needs {n_bases} nonce commitments")

        local_nonces = vault.consume(
            proposal.message, self.proof_key(proposal), signer_filter,
        )
        try:
            return self._partial_sig(
                proposal, privkeys, signing_key, signer_pub_nonces,
                local_nonces, threshold,
            )
        finally:
            local_nonces.clear()

    def finalize(
        self,
        partials: List[PartialSignature],
        proposal: Proposal,
        signer_filter: Optional[int] = None,
    ) -> CompleteProof:
        """
        Combine partial signatures and verify the result.

        Raises ``AssemblyFailed`` if the partials are of the wrong kind,
        don't belong to this proposal, don't combine, or combine into a
        proof that fails verification.
        """
        proof_key = self.proof_key(proposal)

        def failed(detail: str) -> AssemblyFailed:
            return AssemblyFailed(
                detail, signer_filter=signer_filter, proof_key=proof_key,
            )

        if not partials:
            raise failed("no partial signatures")
        for p in partials:
            if partial_sig_kind(p) is not self.kind:
                raise failed(f"partial signature of kind {partial_sig_kind(p).name}")
            if p.message != proposal.message or p.proof_key != proof_key:
                raise failed("partial signature for another message or proof key")
        try:
            proof = self._assemble(partials)
        except ValueError as exc:
            raise failed(str(exc)) from exc
        if not self.verify(proof, proposal):
            raise failed("assembled proof does not verify")
        return proof


# ── composition proofs ──────────────────────────────────────────────────

class CompositionProofAdapter(ProofAdapter):
    kind = ProofKind.COMPOSITION

    def required_base_point_count(self) -> int:
        return 1

    def base_points(self, proposal: CompositionProposal) -> List[Point]:
        return [U]

    def proof_key(self, proposal: CompositionProposal) -> Point:
        return proposal.K

    def check_proposal(
        self,
        proposal: CompositionProposal,
        privkeys: CompositionPrivkeys,
        account: MultisigAccount,
    ) -> None:
        if not isinstance(proposal, CompositionProposal):
            raise ValueError("not a composition proof proposal")
        if not isinstance(privkeys, CompositionPrivkeys):
            raise ValueError("composition proofs need CompositionPrivkeys")
        if privkeys.y.is_zero() or privkeys.z_multiplier.is_zero():
            raise ValueError("y and z_multiplier must be non-zero")
        K, KI = composition_proof_keys(account, privkeys)
        if proposal.K != K:
            raise ValueError("proposal proof key doesn't match the private inputs")
        if proposal.KI != KI:
            raise ValueError("proposal key image doesn't match the private inputs")

    def _partial_sig(
        self, proposal, privkeys, signing_key, signer_pub_nonces, local_nonces,
        threshold,
    ) -> CompositionPartial:
        z_e = privkeys.z_multiplier * (
            privkeys.z_offset / Scalar(threshold) + signing_key
        )
        return make_composition_partial_sig(
            proposal,
            privkeys.x,
            privkeys.y,
            z_e,
            [n[0] for n in signer_pub_nonces],
            local_nonces,
        )

    def _assemble(self, partials) -> CompositionProof:
        return finalize_composition_proof(partials)

    def verify(self, proof: CompositionProof, proposal: CompositionProposal) -> bool:
        return verify_composition_proof(
            proof, proposal.message, proposal.K, proposal.KI,
        )


# ── CLSAG ring signatures ───────────────────────────────────────────────

class ClsagAdapter(ProofAdapter):
    kind = ProofKind.CLSAG

    def required_base_point_count(self) -> int:
        return 2

    def base_points(self, proposal: ClsagProposal) -> List[Point]:
        return [G, hash_to_point(proposal.proof_key)]

    def proof_key(self, proposal: ClsagProposal) -> Point:
        return proposal.proof_key

    def check_proposal(
        self,
        proposal: ClsagProposal,
        privkeys: ClsagPrivkeys,
        account: MultisigAccount,
    ) -> None:
        if not isinstance(proposal, ClsagProposal):
            raise ValueError("not a CLSAG proposal")
        if not isinstance(privkeys, ClsagPrivkeys):
            raise ValueError("CLSAG proofs need ClsagPrivkeys")
        n = len(proposal.ring_keys)
        if n == 0 or len(proposal.ring_commitments) != n:
            raise ValueError("malformed ring")
        if len(proposal.decoy_responses) != n or not 0 <= proposal.l < n:
            raise ValueError("decoy responses or real index don't fit the ring")
        if proposal.proof_key != clsag_proof_key(account, privkeys):
            raise ValueError("proposal proof key doesn't match the private inputs")
        commitment_to_zero = (
            proposal.ring_commitments[proposal.l] - proposal.masked_commitment
        )
        if privkeys.z * G != commitment_to_zero:
            raise ValueError("z does not open the commitment to zero")
        if proposal.D != privkeys.z * proposal.key_image_base:
            raise ValueError("auxiliary key image doesn't match z")

    def _partial_sig(
        self, proposal, privkeys, signing_key, signer_pub_nonces, local_nonces,
        threshold,
    ) -> ClsagPartial:
        t = Scalar(threshold)
        return make_clsag_partial_sig(
            proposal,
            signing_key + privkeys.k_offset / t,
            privkeys.z / t,
            [n[0] for n in signer_pub_nonces],
            [n[1] for n in signer_pub_nonces],
            local_nonces,
        )

    def _assemble(self, partials) -> ClsagProof:
        return finalize_clsag_proof(partials)

    def verify(self, proof: ClsagProof, proposal: ClsagProposal) -> bool:
        return proof.KI == proposal.KI and verify_clsag_proof(
            proof,
            proposal.message,
            proposal.ring_keys,
            proposal.ring_commitments,
            proposal.masked_commitment,
        )


_ADAPTERS = {
    ProofKind.COMPOSITION: CompositionProofAdapter(),
    ProofKind.CLSAG: ClsagAdapter(),
}


def adapter_for(kind: ProofKind) -> ProofAdapter:
    try:
        return _ADAPTERS[kind]
    except KeyError:
        raise ValueError(f"no adapter for proof kind {kind!r}") from None
