"""
ctmultisig: threshold partial-signature ceremonies for confidential
transaction inputs.

A fixed group of N signers, any T of whom may spend, jointly produce
the two per-input proofs of a confidential transaction:

- a **composition proof** of ownership and key image for
  K = x·G + y·X + z·U;
- a **CLSAG ring signature** hiding the spent output among decoys.

Signing takes two rounds with MuSig2-style nonce pairs.  Every signer
commits nonces for each T-sized signer group it could end up in, so
the ceremony finishes as long as any one full group responds.  Nonces
are single use, and peer messages that fail validation are dropped and
recorded instead of aborting the ceremony.

Quick start
-----------
::

    from ctmultisig import (
        make_multisig_accounts, MultisigCeremony, NonceVault,
        SigningProposal, ProofRequest, ProofKind,
    )

    accounts = make_multisig_accounts(threshold=2, num_signers=3)
    ceremonies = [
        MultisigCeremony(acct, proposal, NonceVault()) for acct in accounts[:2]
    ]
    inits = [c.initialize() for c in ceremonies]
    ceremonies[0].add_init_set(accounts[1].signer_id, inits[1])
    ceremonies[1].add_init_set(accounts[0].signer_id, inits[0])
    ...
"""

__version__ = "0.1.0"

# ── core types ──────────────────────────────────────────────────────────
from .curve import Scalar, Point, G, H, X, U, ORDER, hash_to_point

# ── errors ──────────────────────────────────────────────────────────────
from .errors import (
    MultisigError,
    InvalidFilter,
    BadInitSet,
    InitSetErrorCode,
    BadPartialSigSet,
    PartialSigSetErrorCode,
    NotFound,
    AssemblyFailed,
    InsufficientSigners,
    Rejection,
    Stage,
)

# ── signer-set filters ──────────────────────────────────────────────────
from .filters import (
    SignerSetFilter,
    aggregate_filter_to_permutations,
    filter_to_signers,
    permutations_containing,
    signers_to_filter,
)

# ── nonces ──────────────────────────────────────────────────────────────
from .nonce_vault import NonceVault, NonceKey, PubNonces

# ── proofs ──────────────────────────────────────────────────────────────
from .composition import (
    CompositionProof,
    CompositionProposal,
    make_composition_key_image,
    make_composition_proof,
    make_composition_proposal,
    verify_composition_proof,
)
from .clsag import (
    ClsagProof,
    ClsagProposal,
    make_clsag_proof,
    make_clsag_proposal,
    verify_clsag_proof,
)
from .adapters import (
    ProofKind,
    ProofRequest,
    CompositionPrivkeys,
    ClsagPrivkeys,
    account_composition_privkeys,
    adapter_for,
    clsag_proof_key,
    composition_proof_keys,
)

# ── accounts ────────────────────────────────────────────────────────────
from .account import MultisigAccount
from .dkg import make_multisig_accounts
from .key_image import (
    PartialKeyImage,
    make_partial_key_image,
    combine_partial_key_images,
)

# ── ceremony ────────────────────────────────────────────────────────────
from .init_set import MultisigInitSet
from .partial_sig_set import MultisigPartialSigSet
from .ceremony import (
    CeremonyState,
    CompletedProofs,
    MultisigCeremony,
    SigningProposal,
)
from .config import MultisigConfig, LogConfig, setup_logging

__all__ = [
    # version
    "__version__",
    # core
    "Scalar", "Point", "G", "H", "X", "U", "ORDER", "hash_to_point",
    # errors
    "MultisigError", "InvalidFilter", "BadInitSet", "InitSetErrorCode",
    "BadPartialSigSet", "PartialSigSetErrorCode", "NotFound",
    "AssemblyFailed", "InsufficientSigners", "Rejection", "Stage",
    # filters
    "SignerSetFilter", "aggregate_filter_to_permutations",
    "filter_to_signers", "permutations_containing", "signers_to_filter",
    # nonces
    "NonceVault", "NonceKey", "PubNonces",
    # proofs
    "CompositionProof", "CompositionProposal", "make_composition_key_image",
    "make_composition_proof", "make_composition_proposal",
    "verify_composition_proof",
    "ClsagProof", "ClsagProposal", "make_clsag_proof", "make_clsag_proposal",
    "verify_clsag_proof",
    "ProofKind", "ProofRequest", "CompositionPrivkeys", "ClsagPrivkeys",
    "adapter_for", "account_composition_privkeys", "clsag_proof_key",
    "composition_proof_keys",
    # accounts
    "MultisigAccount", "make_multisig_accounts",
    "PartialKeyImage", "make_partial_key_image", "combine_partial_key_images",
    # ceremony
    "MultisigInitSet", "MultisigPartialSigSet",
    "CeremonyState", "CompletedProofs", "MultisigCeremony", "SigningProposal",
    "MultisigConfig", "LogConfig", "setup_logging",
]
