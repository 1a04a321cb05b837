"""
ctmultisig test fixtures
"""

import pytest

from ctmultisig.adapters import (
    ClsagPrivkeys,
    ProofKind,
    ProofRequest,
    account_composition_privkeys,
    clsag_proof_key,
    composition_proof_keys,
)
from ctmultisig.ceremony import MultisigCeremony, SigningProposal
from ctmultisig.clsag import make_clsag_proposal
from ctmultisig.commitment import commit_amount, mask_commitment
from ctmultisig.composition import make_composition_proposal
from ctmultisig.curve import Scalar, G, hash_to_point
from ctmultisig.dkg import make_multisig_accounts
from ctmultisig.key_image import combine_partial_key_images, make_partial_key_image
from ctmultisig.nonce_vault import NonceVault


MESSAGE = b"ctmultisig test transaction proposal"


@pytest.fixture(scope="session")
def accounts_2of3():
    """A 2-of-3 account set shared by read-only tests."""
    return make_multisig_accounts(threshold=2, num_signers=3)


@pytest.fixture(scope="session")
def accounts_2of2():
    return make_multisig_accounts(threshold=2, num_signers=2)


@pytest.fixture
def message() -> bytes:
    return MESSAGE


@pytest.fixture
def composition_request():
    """Factory: a composition proof request owned by the account group."""

    def make(account, message=MESSAGE):
        privkeys = account_composition_privkeys(
            account, Scalar.random(), Scalar.random(), Scalar.random(),
        )
        K, KI = composition_proof_keys(account, privkeys)
        proposal = make_composition_proposal(message, K, KI)
        return ProofRequest(ProofKind.COMPOSITION, proposal, privkeys)

    return make


@pytest.fixture
def clsag_request():
    """
    Factory: a CLSAG request owned by the account group.

    The key image is recovered cooperatively by the first T signers.
    """

    def make(accounts, message=MESSAGE, ring_size=3, l=1):
        account = accounts[0]
        privkeys = ClsagPrivkeys(k_offset=Scalar.random(), z=Scalar.random())
        K = clsag_proof_key(account, privkeys)

        blinding = Scalar.random()
        C_l = commit_amount(blinding, 1000)
        masked = mask_commitment(C_l, blinding, blinding - privkeys.z)

        ring_keys = [Scalar.random() * G for _ in range(ring_size)]
        ring_commitments = [
            commit_amount(Scalar.random(), 7) for _ in range(ring_size)
        ]
        ring_keys[l] = K
        ring_commitments[l] = C_l

        T = account.threshold
        signer_filter = (1 << T) - 1
        partials = [
            make_partial_key_image(a, K, signer_filter) for a in accounts[:T]
        ]
        KI = combine_partial_key_images(account, K, privkeys.k_offset, partials)
        D = privkeys.z * hash_to_point(K)

        proposal = make_clsag_proposal(
            message, ring_keys, ring_commitments, masked, KI, D, l,
        )
        return ProofRequest(ProofKind.CLSAG, proposal, privkeys)

    return make


@pytest.fixture
def run_ceremony():
    """
    Factory: drive ceremonies for ``participants`` up to (not including)
    finalize.  Every participant sees every other participant's messages;
    ``tamper(sender_index, partial_set)`` may rewrite round-2 sets in transit.

    Returns  (ceremonies, partial sets)  keyed by signer index.
    """

    def run(
        accounts, participants, requests, aggregate_filter=None,
        message=MESSAGE, tamper=None,
    ):
        if aggregate_filter is None:
            aggregate_filter = accounts[0].all_signers_filter
        proposal = SigningProposal(
            message=message,
            aggregate_filter=aggregate_filter,
            requests=tuple(requests),
        )
        ceremonies = {
            i: MultisigCeremony(accounts[i], proposal, NonceVault())
            for i in participants
        }
        inits = {i: c.initialize() for i, c in ceremonies.items()}
        for i, c in ceremonies.items():
            for j, init_set in inits.items():
                if j != i:
                    assert c.add_init_set(accounts[j].signer_id, init_set)

        partial_sets = {i: c.begin_partial_signing() for i, c in ceremonies.items()}
        for i, c in ceremonies.items():
            for j, sets in partial_sets.items():
                if j == i:
                    continue
                for s in sets:
                    if tamper is not None:
                        s = tamper(j, s)
                    c.add_partial_sig_set(accounts[j].signer_id, s)
        return ceremonies, partial_sets

    return run
