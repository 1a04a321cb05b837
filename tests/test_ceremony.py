"""
End-to-end signing ceremony tests
"""

import dataclasses

import pytest

from ctmultisig.adapters import ProofKind, adapter_for
from ctmultisig.ceremony import CeremonyState, MultisigCeremony, SigningProposal
from ctmultisig.clsag import verify_clsag_proof
from ctmultisig.composition import CompositionPartial, verify_composition_proof
from ctmultisig.config import MultisigConfig
from ctmultisig.curve import Scalar
from ctmultisig.dkg import make_multisig_accounts
from ctmultisig.errors import AssemblyFailed, InsufficientSigners, InvalidFilter, Stage
from ctmultisig.nonce_vault import NonceVault


def _tamper_response(partial_set):
    """Corrupt every composition response in a set."""
    partials = tuple(
        dataclasses.replace(p, r_ki_partial=p.r_ki_partial + Scalar.one())
        if isinstance(p, CompositionPartial) else p
        for p in partial_set.partial_signatures
    )
    return dataclasses.replace(partial_set, partial_signatures=partials)


def _verify(request, proof, message):
    proposal = request.proposal
    if request.kind is ProofKind.COMPOSITION:
        return verify_composition_proof(proof, message, proposal.K, proposal.KI)
    return proof.KI == proposal.KI and verify_clsag_proof(
        proof, message, proposal.ring_keys, proposal.ring_commitments,
        proposal.masked_commitment,
    )


class TestHappyPath:
    """All participants honest."""

    @pytest.mark.parametrize("threshold,num_signers", [
        (1, 2), (2, 2), (1, 3), (2, 3), (3, 3), (2, 4),
    ])
    def test_composition(self, threshold, num_signers, composition_request,
                         run_ceremony, message):
        """Every participant assembles verifying composition proofs."""
        accounts = make_multisig_accounts(threshold, num_signers)
        requests = [composition_request(accounts[0]) for _ in range(2)]
        ceremonies, _ = run_ceremony(accounts, range(num_signers), requests)

        first_filter = (1 << threshold) - 1
        for c in ceremonies.values():
            result = c.finalize()
            assert c.state is CeremonyState.COMPLETE
            assert c.rejections == []
            assert result.signer_filter == first_filter
            assert len(result) == 2
            for request in requests:
                proof = result[request.proposal.proof_key]
                assert _verify(request, proof, message)
            assert len(c.vault) == 0

    @pytest.mark.parametrize("threshold,num_signers", [(1, 2), (2, 3), (3, 3)])
    def test_clsag(self, threshold, num_signers, clsag_request, run_ceremony, message):
        """Every participant assembles a verifying CLSAG."""
        accounts = make_multisig_accounts(threshold, num_signers)
        requests = [clsag_request(accounts, ring_size=4, l=2)]
        ceremonies, _ = run_ceremony(accounts, range(num_signers), requests)
        for c in ceremonies.values():
            result = c.finalize()
            proof = result[requests[0].proposal.proof_key]
            assert _verify(requests[0], proof, message)

    def test_same_proofs_everywhere(self, accounts_2of3, composition_request,
                                    run_ceremony):
        """Participants assemble identical proofs from the same filter."""
        requests = [composition_request(accounts_2of3[0])]
        ceremonies, _ = run_ceremony(accounts_2of3, [0, 1, 2], requests)
        results = [c.finalize() for c in ceremonies.values()]
        key = requests[0].proposal.proof_key
        assert results[0][key] == results[1][key] == results[2][key]


class TestUnavailableSigners:
    """Progress with fewer than N participants."""

    @pytest.mark.parametrize("kind", [ProofKind.COMPOSITION, ProofKind.CLSAG])
    def test_two_of_three_without_third(self, kind, accounts_2of3, composition_request,
                                        clsag_request, run_ceremony, message):
        """Signers 0 and 1 finish without signer 2."""
        if kind is ProofKind.COMPOSITION:
            request = composition_request(accounts_2of3[0])
        else:
            request = clsag_request(accounts_2of3)
        ceremonies, partial_sets = run_ceremony(accounts_2of3, [0, 1], [request])

        for i in (0, 1):
            assert [s.signer_filter for s in partial_sets[i]] == [0b011]
            assert ceremonies[i].available_filter == 0b011
            assert ceremonies[i].ready_filters() == [0b011]
            result = ceremonies[i].finalize()
            assert result.signer_filter == 0b011
            proof = result[request.proposal.proof_key]
            assert _verify(request, proof, message)
            assert len(ceremonies[i].vault) == 0

    def test_two_of_two_with_one_init(self, accounts_2of2, composition_request):
        """A lone signer aborts and drops its nonces."""
        request = composition_request(accounts_2of2[0])
        proposal = SigningProposal(request.proposal.message, 0b11, (request,))
        vault = NonceVault()
        ceremony = MultisigCeremony(accounts_2of2[0], proposal, vault)
        ceremony.initialize()
        assert len(vault) == 1
        with pytest.raises(InsufficientSigners) as info:
            ceremony.begin_partial_signing()
        assert info.value.available_filter == 0b01
        assert ceremony.state is CeremonyState.ABORTED
        assert ceremony.abort_reason
        assert len(vault) == 0

    def test_no_coverage_at_finalize(self, accounts_2of3, composition_request, message):
        """Finalizing before any filter is covered leaves the ceremony open."""
        request = composition_request(accounts_2of3[0])
        proposal = SigningProposal(message, 0b111, (request,))
        ceremonies = [
            MultisigCeremony(a, proposal, NonceVault()) for a in accounts_2of3[:2]
        ]
        inits = [c.initialize() for c in ceremonies]
        ceremonies[0].add_init_set(accounts_2of3[1].signer_id, inits[1])
        ceremonies[1].add_init_set(accounts_2of3[0].signer_id, inits[0])
        ceremonies[0].begin_partial_signing()
        with pytest.raises(InsufficientSigners):
            ceremonies[0].finalize()
        assert ceremonies[0].state is CeremonyState.PARTIAL_SIGNING
        assert ceremonies[0].abort_reason is None

        for partial_set in ceremonies[1].begin_partial_signing():
            assert ceremonies[0].add_partial_sig_set(accounts_2of3[1].signer_id, partial_set)
        result = ceremonies[0].finalize()
        assert result.signer_filter == 0b011
        assert _verify(request, result[request.proposal.proof_key], message)
        assert len(ceremonies[0].vault) == 0

    def test_sparse_aggregate(self, composition_request, run_ceremony, message):
        """Only the invited signers take part."""
        accounts = make_multisig_accounts(2, 4)
        request = composition_request(accounts[0])
        ceremonies, _ = run_ceremony(
            accounts, [1, 3], [request], aggregate_filter=0b1010,
        )
        for c in ceremonies.values():
            assert c.finalize().signer_filter == 0b1010


class TestByzantinePeers:
    """Invalid peer messages are dropped and recorded."""

    def test_bad_init_set(self, accounts_2of3, composition_request, message):
        """An init set for another message is refused."""
        request = composition_request(accounts_2of3[0])
        proposal = SigningProposal(message, 0b111, (request,))
        local = MultisigCeremony(accounts_2of3[0], proposal, NonceVault())
        peer = MultisigCeremony(accounts_2of3[1], proposal, NonceVault())
        local.initialize()
        bad = dataclasses.replace(peer.initialize(), message=b"other")
        assert not local.add_init_set(accounts_2of3[1].signer_id, bad)
        assert local.available_filter == 0b001
        rejection = local.rejections[0]
        assert rejection.stage is Stage.INIT
        assert rejection.signer_id == accounts_2of3[1].signer_id

    def test_duplicate_init_set(self, accounts_2of3, composition_request, message):
        """A second init set from one signer is refused."""
        request = composition_request(accounts_2of3[0])
        proposal = SigningProposal(message, 0b111, (request,))
        local = MultisigCeremony(accounts_2of3[0], proposal, NonceVault())
        peer = MultisigCeremony(accounts_2of3[1], proposal, NonceVault())
        local.initialize()
        init_set = peer.initialize()
        assert local.add_init_set(accounts_2of3[1].signer_id, init_set)
        assert not local.add_init_set(accounts_2of3[1].signer_id, init_set)
        assert local.rejections[-1].reason == "DUPLICATE_SIGNER"

    def test_bad_partial_sets(self, accounts_2of3, composition_request, run_ceremony):
        """Mixed-message, non-member and duplicate sets are refused."""
        requests = [composition_request(accounts_2of3[0])]

        def tamper(sender, partial_set):
            if sender == 1 and partial_set.signer_filter == 0b110:
                first = dataclasses.replace(
                    partial_set.partial_signatures[0], message=b"other",
                )
                return dataclasses.replace(
                    partial_set,
                    partial_signatures=(first,) + partial_set.partial_signatures[1:],
                )
            if sender == 2 and partial_set.signer_filter == 0b101:
                return dataclasses.replace(partial_set, signer_filter=0b011)
            return partial_set

        ceremonies, partial_sets = run_ceremony(
            accounts_2of3, [0, 1, 2], requests, tamper=tamper,
        )
        local = ceremonies[0]
        reasons = [r.reason for r in local.rejections]
        assert len(reasons) == 2
        assert all(r.startswith("SEMANTICS_FAILURE") for r in reasons)

        s1 = partial_sets[1][0]
        assert not local.add_partial_sig_set(accounts_2of3[1].signer_id, s1)
        assert not local.add_partial_sig_set(accounts_2of3[0].signer_id, s1)
        reasons = [r.reason for r in local.rejections]
        assert reasons[2:] == ["DUPLICATE_SIGNER", "DUPLICATE_SIGNER"]
        assert local.finalize().signer_filter == 0b011

    def test_corrupt_partial_falls_back(self, accounts_2of3, composition_request,
                                        run_ceremony, message):
        """A filter that fails to assemble is skipped for the next one."""
        request = composition_request(accounts_2of3[0])

        def tamper(sender, partial_set):
            if sender == 1 and partial_set.signer_filter == 0b011:
                return _tamper_response(partial_set)
            return partial_set

        ceremonies, _ = run_ceremony(accounts_2of3, [0, 1, 2], [request], tamper=tamper)
        local = ceremonies[0]
        result = local.finalize()
        assert result.signer_filter == 0b101
        assert _verify(request, result[request.proposal.proof_key], message)
        aggregation = [r for r in local.rejections if r.stage is Stage.AGGREGATION]
        assert [r.signer_filter for r in aggregation] == [0b011]
        assert any(line.startswith("aggregation") for line in local.blame_report())

    def test_every_filter_corrupt(self, accounts_2of2, composition_request, run_ceremony):
        """If nothing assembles, finalize raises and aborts."""
        request = composition_request(accounts_2of2[0])
        ceremonies, _ = run_ceremony(
            accounts_2of2, [0, 1], [request],
            tamper=lambda sender, s: _tamper_response(s),
        )
        with pytest.raises(AssemblyFailed):
            ceremonies[0].finalize()
        assert ceremonies[0].state is CeremonyState.ABORTED


class TestLocalFailures:
    """Local signing attempts that fail are reported on the ceremony."""

    def test_missing_nonce_record(self, accounts_2of3, composition_request, message):
        """A filter whose nonces are gone is skipped and reported."""
        request = composition_request(accounts_2of3[0])
        proposal = SigningProposal(message, 0b111, (request,))
        ceremonies = [
            MultisigCeremony(a, proposal, NonceVault()) for a in accounts_2of3
        ]
        inits = [c.initialize() for c in ceremonies]
        local = ceremonies[0]
        for j in (1, 2):
            assert local.add_init_set(accounts_2of3[j].signer_id, inits[j])
        proof_key = request.proposal.proof_key
        assert local.vault.remove(message, proof_key, 0b011)

        sets = local.begin_partial_signing()
        assert [s.signer_filter for s in sets] == [0b101]
        assert local.state is CeremonyState.PARTIAL_SIGNING
        assert local.rejections == []

        [failure] = local.filter_failures
        assert failure.signer_filter == 0b011
        assert failure.message == message
        assert failure.proof_key == proof_key
        report = local.blame_report()
        assert len(report) == 1
        assert report[0].startswith("local attempt")
        assert "filter 3" in report[0]


class TestProposalChecks:
    """Local errors raised before any nonce is made."""

    def test_mixed_kinds(self, accounts_2of3, composition_request, clsag_request, message):
        requests = (composition_request(accounts_2of3[0]), clsag_request(accounts_2of3))
        with pytest.raises(ValueError):
            MultisigCeremony(
                accounts_2of3[0], SigningProposal(message, 0b111, requests), NonceVault(),
            )

    def test_message_mismatch(self, accounts_2of3, composition_request):
        request = composition_request(accounts_2of3[0], message=b"one")
        with pytest.raises(ValueError):
            MultisigCeremony(
                accounts_2of3[0], SigningProposal(b"two", 0b111, (request,)), NonceVault(),
            )

    def test_empty(self, accounts_2of3, message):
        with pytest.raises(ValueError):
            MultisigCeremony(
                accounts_2of3[0], SigningProposal(message, 0b111, ()), NonceVault(),
            )

    def test_not_invited(self, accounts_2of3, composition_request, message):
        """A signer outside the aggregate filter cannot join."""
        request = composition_request(accounts_2of3[0])
        with pytest.raises(InvalidFilter):
            MultisigCeremony(
                accounts_2of3[2], SigningProposal(message, 0b011, (request,)), NonceVault(),
            )

    def test_inconsistent_proposal(self, accounts_2of3, composition_request, message):
        """A key image that doesn't match the private inputs is refused."""
        request = composition_request(accounts_2of3[0])
        bad = dataclasses.replace(
            request,
            proposal=dataclasses.replace(
                request.proposal, KI=request.proposal.KI + request.proposal.K,
            ),
        )
        with pytest.raises(ValueError):
            MultisigCeremony(
                accounts_2of3[0], SigningProposal(message, 0b111, (bad,)), NonceVault(),
            )

    def test_limits(self, accounts_2of3, composition_request, clsag_request, message):
        """Configured limits are enforced."""
        requests = (composition_request(accounts_2of3[0]),
                    composition_request(accounts_2of3[0]))
        with pytest.raises(ValueError):
            MultisigCeremony(
                accounts_2of3[0], SigningProposal(message, 0b111, requests),
                NonceVault(), MultisigConfig(max_proofs_per_ceremony=1),
            )
        ring = (clsag_request(accounts_2of3, ring_size=5),)
        with pytest.raises(ValueError):
            MultisigCeremony(
                accounts_2of3[0], SigningProposal(message, 0b111, ring),
                NonceVault(), MultisigConfig(max_ring_size=4),
            )


class TestStateMachine:
    """Calls in the wrong state are programmer errors."""

    def test_out_of_order(self, accounts_2of3, composition_request, message):
        request = composition_request(accounts_2of3[0])
        ceremony = MultisigCeremony(
            accounts_2of3[0], SigningProposal(message, 0b111, (request,)), NonceVault(),
        )
        assert ceremony.state is CeremonyState.PROPOSED
        with pytest.raises(RuntimeError):
            ceremony.begin_partial_signing()
        with pytest.raises(RuntimeError):
            ceremony.finalize()
        init_set = ceremony.initialize()
        with pytest.raises(RuntimeError):
            ceremony.initialize()
        with pytest.raises(RuntimeError):
            ceremony.add_partial_sig_set(accounts_2of3[1].signer_id, None)
        assert ceremony.state is CeremonyState.INIT_COLLECTING
        assert init_set.signer_id == accounts_2of3[0].signer_id

    def test_terminal_states(self, accounts_2of3, composition_request, run_ceremony):
        requests = [composition_request(accounts_2of3[0])]
        ceremonies, _ = run_ceremony(accounts_2of3, [0, 1], requests)
        ceremonies[0].finalize()
        with pytest.raises(RuntimeError):
            ceremonies[0].finalize()
        with pytest.raises(RuntimeError):
            ceremonies[0].abort("late")
        ceremonies[1].abort("operator cancelled")
        assert ceremonies[1].state is CeremonyState.ABORTED
        assert ceremonies[1].result is None
        assert len(ceremonies[1].vault) == 0

    def test_shared_vault(self, accounts_2of3, composition_request):
        """Aborting one ceremony leaves another's nonces alone."""
        vault = NonceVault()
        first = MultisigCeremony(
            accounts_2of3[0],
            SigningProposal(b"a", 0b111, (composition_request(accounts_2of3[0], b"a"),)),
            vault,
        )
        second = MultisigCeremony(
            accounts_2of3[0],
            SigningProposal(b"b", 0b111, (composition_request(accounts_2of3[0], b"b"),)),
            vault,
        )
        first.initialize()
        second.initialize()
        assert len(vault) == 4
        first.abort("cancelled")
        assert len(vault) == 2
        assert adapter_for(ProofKind.COMPOSITION) is second.adapter
