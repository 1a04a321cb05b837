"""
Distributed Key Generation (DKG) over Shamir shares.

Each signer acts as a dealer: samples a random polynomial of degree
T − 1, commits to its coefficients (Pedersen), and sends every signer
its share  f(α)  at evaluation point  α = index + 1.  Recipients check
each share against the Pedersen commitment, then against the dealer's
Feldman commitments  a_j·G  (published once all shares are accepted),
and sum the shares into their share of the group key.

Dealers also publish  a_0·U  with a DLEQ proof against  a_0·G, so the
group key is known on both generators the composition proof uses, and
send every signer one contribution to the common private key.

References
----------
- Pedersen (1991). "A Threshold Cryptosystem Without a Trusted Party."
  EUROCRYPT 1991.
- Feldman (1987). "A Practical Scheme for Non-Interactive Verifiable
  Secret Sharing."  FOCS 1987.
- Gennaro, Jarecki, Krawczyk, Rabin (2007). "Secure Distributed Key
  Generation for Discrete-Log Based Cryptosystems."  J. Cryptology.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .account import MultisigAccount
from .commitment import PolynomialCommitment
from .curve import Scalar, Point, G, U
from .hash import hash_dkg_context
from .polynomial import (
    commit_polynomial as feldman_commit,
    eval_point,
    evaluate,
    evaluate_commitments,
    sample_polynomial,
    verify_share_feldman,
)
from .proofs import DLEQProof, SchnorrProof

logger = logging.getLogger(__name__)


# ── data structures ─────────────────────────────────────────────────────

@dataclass(frozen=True)
class DKGShare:
    """Secret material from one dealer to one recipient."""

    dealer_id: Point
    recipient_id: Point
    share_value: Scalar
    blinding_value: Scalar
    common_contribution: Scalar


@dataclass(frozen=True)
class DKGCommitment:
    """A dealer's round-1 broadcast."""

    dealer_id: Point
    poly_commitment: PolynomialCommitment
    public_u: Point
    proof_of_knowledge: SchnorrProof
    dleq: DLEQProof
    public_g: Point


# ── per-dealer state ────────────────────────────────────────────────────

class DKGDealer:
    def __init__(
        self,
        dealer_id: Point,
        threshold: int,
        num_signers: int,
    ) -> None:
        self.id = dealer_id
        self._poly = sample_polynomial(threshold - 1)
        self._blind = sample_polynomial(threshold - 1)
        self._common = Scalar.random()

        secret = self._poly[0]
        self.commitment = PolynomialCommitment.commit_polynomial(
            self._poly, self._blind,
        )
        # published after every share is accepted
        self.feldman_commitments = feldman_commit(self._poly)

        public_g = self.feldman_commitments[0]
        public_u = secret * U
        ctx = hash_dkg_context(dealer_id, num_signers, threshold)
        self._broadcast = DKGCommitment(
            dealer_id=dealer_id,
            poly_commitment=self.commitment,
            public_u=public_u,
            proof_of_knowledge=SchnorrProof.prove(secret, public_g, ctx),
            dleq=DLEQProof.prove(secret, G, public_g, U, public_u, ctx),
            public_g=public_g,
        )

    def get_commitment(self) -> DKGCommitment:
        return self._broadcast

    def compute_share(self, recipient_index: int, recipient_id: Point) -> DKGShare:
        alpha = Scalar(eval_point(recipient_index))
        return DKGShare(
            dealer_id=self.id,
            recipient_id=recipient_id,
            share_value=evaluate(self._poly, alpha),
            blinding_value=evaluate(self._blind, alpha),
            common_contribution=self._common,
        )


# ── per-recipient verification and aggregation ──────────────────────────

class DKGRecipient:
    """
    State for one signer receiving and verifying every dealer's
    broadcast and share.
    """

    def __init__(
        self,
        recipient_index: int,
        recipient_id: Point,
        threshold: int,
        num_signers: int,
    ) -> None:
        self.index = recipient_index
        self.id = recipient_id
        self.threshold = threshold
        self.num_signers = num_signers

        self._commitments: Dict[Point, DKGCommitment] = {}
        self._received_shares: Dict[Point, DKGShare] = {}
        self._complaints: List[Point] = []

    def receive_commitment(self, comm: DKGCommitment) -> bool:
        """
        Verify and store a dealer's broadcast.

        The Schnorr PoK shows the dealer knows  a_0  behind
        ``public_g``; the DLEQ shows ``public_u`` uses the same  a_0.
        """
        ctx = hash_dkg_context(comm.dealer_id, self.num_signers, self.threshold)
        valid = (
            comm.poly_commitment.degree == self.threshold - 1
            and comm.proof_of_knowledge.verify(comm.public_g, ctx)
            and comm.dleq.verify(G, comm.public_g, U, comm.public_u, ctx)
        )
        if valid:
            self._commitments[comm.dealer_id] = comm
        else:
            self._complaints.append(comm.dealer_id)
        return valid

    def receive_share(self, share: DKGShare) -> bool:
        """Check a share against the dealer's Pedersen commitment."""
        comm = self._commitments.get(share.dealer_id)
        if comm is None or share.recipient_id != self.id:
            return False
        valid = comm.poly_commitment.verify_share(
            eval_point=eval_point(self.index),
            share_value=share.share_value,
            blinding_value=share.blinding_value,
        )
        if valid:
            self._received_shares[share.dealer_id] = share
        else:
            self._complaints.append(share.dealer_id)
        return valid

    def receive_feldman(
        self, dealer_id: Point, feldman_commitments: List[Point],
    ) -> bool:
        """Second-phase check of the stored share against  a_j·G."""
        share = self._received_shares.get(dealer_id)
        comm = self._commitments.get(dealer_id)
        valid = (
            share is not None
            and comm is not None
            and feldman_commitments[0] == comm.public_g
            and verify_share_feldman(
                share.share_value, eval_point(self.index), feldman_commitments,
            )
        )
        if not valid:
            self._complaints.append(dealer_id)
        return valid

    def aggregate(self):
        """Return  (Σ shares, Σ common contributions)."""
        total = Scalar.zero()
        common = Scalar.zero()
        for share in self._received_shares.values():
            total = total + share.share_value
            common = common + share.common_contribution
        return total, common

    @property
    def complaints(self) -> List[Point]:
        return list(self._complaints)


# ── full DKG orchestration ──────────────────────────────────────────────

def make_multisig_accounts(
    threshold: int,
    num_signers: int,
    base_privkeys: Optional[Sequence[Scalar]] = None,
) -> List[MultisigAccount]:
    """
    Run the complete DKG locally and return every signer's account.

    Simulates all N signers in one process (tests, tooling).  In
    production the messages travel over authenticated channels.

    Raises
    ------
    ValueError
        If the threshold/signer counts are invalid.
    RuntimeError
        If any broadcast or share fails verification.
    """
    if not 1 <= threshold <= num_signers:
        raise ValueError(
            f"threshold {threshold} invalid for {num_signers} signers"
        )
    if base_privkeys is None:
        base_privkeys = [Scalar.random() for _ in range(num_signers)]
    if len(base_privkeys) != num_signers:
        raise ValueError("need one base private key per signer")

    signers = [k * G for k in base_privkeys]
    if len(set(signers)) != num_signers:
        raise ValueError("duplicate signer ids")

    # Phase 1: every signer deals
    dealers = [DKGDealer(sid, threshold, num_signers) for sid in signers]
    recipients = [
        DKGRecipient(i, sid, threshold, num_signers)
        for i, sid in enumerate(signers)
    ]

    # Phase 2: broadcast commitments
    for recipient in recipients:
        for dealer in dealers:
            if not recipient.receive_commitment(dealer.get_commitment()):
                raise RuntimeError(
                    f"signer {recipient.index} rejected broadcast from "
                    f"dealer {dealer.id.hex()[:16]}"
                )

    # Phase 3: distribute and verify shares
    for dealer in dealers:
        for recipient in recipients:
            share = dealer.compute_share(recipient.index, recipient.id)
            if not recipient.receive_share(share):
                raise RuntimeError(
                    f"signer {recipient.index} rejected share from dealer "
                    f"{dealer.id.hex()[:16]}"
                )

    # Phase 4: Feldman commitments
    for dealer in dealers:
        for recipient in recipients:
            if not recipient.receive_feldman(dealer.id, dealer.feldman_commitments):
                raise RuntimeError(
                    f"signer {recipient.index} rejected Feldman commitments "
                    f"from dealer {dealer.id.hex()[:16]}"
                )

    multisig_pubkey = Point.sum_points(d.get_commitment().public_g for d in dealers)
    multisig_pubkey_u = Point.sum_points(d.get_commitment().public_u for d in dealers)

    # Public shares:  Y_i = Σ_dealers f_dealer(α_i)·G
    public_shares = {
        sid: Point.sum_points(
            evaluate_commitments(d.feldman_commitments, eval_point(i))
            for d in dealers
        )
        for i, sid in enumerate(signers)
    }

    accounts = []
    for i, recipient in enumerate(recipients):
        share, common = recipient.aggregate()
        if share * G != public_shares[signers[i]]:
            raise RuntimeError(f"signer {i} share doesn't match its public share")
        accounts.append(MultisigAccount(
            signers=tuple(signers),
            threshold=threshold,
            signer_id=signers[i],
            base_privkey=base_privkeys[i],
            share=share,
            common_privkey=common,
            multisig_pubkey=multisig_pubkey,
            multisig_pubkey_u=multisig_pubkey_u,
            public_shares=dict(public_shares),
        ))

    logger.info(
        f"generated {threshold}-of-{num_signers} multisig account "
        f"{multisig_pubkey.hex()[:16]}"
    )
    return accounts
