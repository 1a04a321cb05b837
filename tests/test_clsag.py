"""
CLSAG ring signature tests
"""

import dataclasses

import pytest

from ctmultisig.commitment import commit_amount, mask_commitment
from ctmultisig.curve import Scalar, G, hash_to_point
from ctmultisig.clsag import (
    ClsagPartial,
    ClsagProof,
    finalize_clsag_proof,
    make_clsag_partial_sig,
    make_clsag_proof,
    make_clsag_proposal,
    verify_clsag_proof,
)
from ctmultisig.encoding import Reader, Writer
from ctmultisig.nonce_vault import NoncePair


def _ring(size, l, p, z):
    """Random ring with the real member (p·G, C_l) at index l."""
    keys = [Scalar.random() * G for _ in range(size)]
    commitments = [commit_amount(Scalar.random(), 5) for _ in range(size)]
    blinding = Scalar.random()
    C_l = commit_amount(blinding, 42)
    keys[l] = p * G
    commitments[l] = C_l
    return keys, commitments, mask_commitment(C_l, blinding, blinding - z)


class TestSingleParty:
    """Single-party CLSAG."""

    @pytest.mark.parametrize("size,l", [(1, 0), (2, 0), (2, 1), (3, 2), (11, 5)])
    def test_prove_verify(self, size, l):
        """An honest signature verifies at every real index."""
        p, z = Scalar.random(), Scalar.random()
        keys, commitments, masked = _ring(size, l, p, z)
        proof = make_clsag_proof(b"msg", keys, commitments, masked, p, z, l)
        assert proof.KI == p * hash_to_point(keys[l])
        assert verify_clsag_proof(proof, b"msg", keys, commitments, masked)

    def test_wrong_message(self):
        """Signatures are bound to the message."""
        p, z = Scalar.random(), Scalar.random()
        keys, commitments, masked = _ring(4, 1, p, z)
        proof = make_clsag_proof(b"msg", keys, commitments, masked, p, z, 1)
        assert not verify_clsag_proof(proof, b"nope", keys, commitments, masked)

    def test_tampered(self):
        """Altering a response or the key image breaks the signature."""
        p, z = Scalar.random(), Scalar.random()
        keys, commitments, masked = _ring(4, 2, p, z)
        proof = make_clsag_proof(b"msg", keys, commitments, masked, p, z, 2)
        s = list(proof.s)
        s[0] = s[0] + Scalar.one()
        bad_s = dataclasses.replace(proof, s=tuple(s))
        bad_ki = dataclasses.replace(proof, KI=proof.KI + G)
        assert not verify_clsag_proof(bad_s, b"msg", keys, commitments, masked)
        assert not verify_clsag_proof(bad_ki, b"msg", keys, commitments, masked)

    def test_wrong_ring(self):
        """A different ring or masked commitment fails."""
        p, z = Scalar.random(), Scalar.random()
        keys, commitments, masked = _ring(3, 0, p, z)
        proof = make_clsag_proof(b"msg", keys, commitments, masked, p, z, 0)
        other = list(keys)
        other[1] = Scalar.random() * G
        assert not verify_clsag_proof(proof, b"msg", other, commitments, masked)
        assert not verify_clsag_proof(proof, b"msg", keys, commitments, masked + G)
        assert not verify_clsag_proof(proof, b"msg", keys[:2], commitments[:2], masked)

    def test_bad_secrets(self):
        """Secrets must open the real member."""
        p, z = Scalar.random(), Scalar.random()
        keys, commitments, masked = _ring(3, 1, p, z)
        with pytest.raises(ValueError):
            make_clsag_proof(b"msg", keys, commitments, masked, p + Scalar.one(), z, 1)
        with pytest.raises(ValueError):
            make_clsag_proof(b"msg", keys, commitments, masked, p, z + Scalar.one(), 1)
        with pytest.raises(ValueError):
            make_clsag_proof(b"msg", keys, commitments, masked, p, z, 3)

    def test_linkable(self):
        """Two signatures by the same key share a key image."""
        p = Scalar.random()
        z1, z2 = Scalar.random(), Scalar.random()
        keys1, c1, m1 = _ring(3, 0, p, z1)
        keys2, c2, m2 = _ring(5, 4, p, z2)
        a = make_clsag_proof(b"a", keys1, c1, m1, p, z1, 0)
        b = make_clsag_proof(b"b", keys2, c2, m2, p, z2, 4)
        assert a.KI == b.KI

    def test_serialization(self):
        """Proofs survive encoding."""
        p, z = Scalar.random(), Scalar.random()
        keys, commitments, masked = _ring(3, 1, p, z)
        proof = make_clsag_proof(b"msg", keys, commitments, masked, p, z, 1)
        decoded = ClsagProof.from_bytes(proof.to_bytes())
        assert decoded == proof
        with pytest.raises(ValueError):
            ClsagProof.from_bytes(proof.to_bytes()[:-1])


class TestMultisig:
    """Split p and z, one nonce pair per signer on two bases."""

    @staticmethod
    def _sign(num_signers, size=4, l=2, message=b"msg"):
        k_parts = [Scalar.random() for _ in range(num_signers)]
        z_parts = [Scalar.random() for _ in range(num_signers)]
        p, z = sum(k_parts), sum(z_parts)
        keys, commitments, masked = _ring(size, l, p, z)
        base = hash_to_point(keys[l])
        proposal = make_clsag_proposal(
            message, keys, commitments, masked, p * base, z * base, l,
        )
        pairs = [NoncePair(Scalar.random(), Scalar.random()) for _ in k_parts]
        on_g = [pair.commitments_for_base(G) for pair in pairs]
        on_hp = [pair.commitments_for_base(base) for pair in pairs]
        partials = [
            make_clsag_partial_sig(proposal, k_e, z_e, on_g, on_hp, pair)
            for k_e, z_e, pair in zip(k_parts, z_parts, pairs)
        ]
        return proposal, partials

    @pytest.mark.parametrize("num_signers", [1, 2, 3])
    def test_combined_proof_verifies(self, num_signers):
        """Summed real-index responses give a valid CLSAG."""
        proposal, partials = self._sign(num_signers)
        proof = finalize_clsag_proof(partials)
        assert proof.KI == proposal.KI
        assert verify_clsag_proof(
            proof, b"msg", proposal.ring_keys, proposal.ring_commitments,
            proposal.masked_commitment,
        )

    def test_single_member_ring(self):
        """A ring of one still combines."""
        proposal, partials = self._sign(2, size=1, l=0)
        proof = finalize_clsag_proof(partials)
        assert verify_clsag_proof(
            proof, b"msg", proposal.ring_keys, proposal.ring_commitments,
            proposal.masked_commitment,
        )

    def test_missing_partial_fails(self):
        """Dropping a signer's share invalidates the signature."""
        proposal, partials = self._sign(3)
        proof = finalize_clsag_proof(partials[:2])
        assert not verify_clsag_proof(
            proof, b"msg", proposal.ring_keys, proposal.ring_commitments,
            proposal.masked_commitment,
        )

    def test_decoy_disagreement(self):
        """Partials with different decoy responses are refused."""
        _, partials = self._sign(2)
        responses = list(partials[1].responses)
        responses[0] = responses[0] + Scalar.one()
        bad = dataclasses.replace(partials[1], responses=tuple(responses))
        with pytest.raises(ValueError):
            finalize_clsag_proof([partials[0], bad])

    def test_unrelated_partials(self):
        """Partials from different attempts are refused."""
        _, first = self._sign(2)
        _, second = self._sign(2)
        with pytest.raises(ValueError):
            finalize_clsag_proof([first[0], second[1]])
        with pytest.raises(ValueError):
            finalize_clsag_proof([])

    def test_local_nonces_must_be_listed(self):
        """The local pair must appear on both bases."""
        proposal, _ = self._sign(1)
        base = proposal.key_image_base
        listed = NoncePair(Scalar.random(), Scalar.random())
        outsider = NoncePair(Scalar.random(), Scalar.random())
        with pytest.raises(ValueError):
            make_clsag_partial_sig(
                proposal, Scalar.random(), Scalar.random(),
                [listed.commitments_for_base(G)],
                [listed.commitments_for_base(base)],
                outsider,
            )

    def test_partial_encoding(self):
        """Partials survive the wire encoding."""
        _, partials = self._sign(2)
        w = Writer()
        partials[1].write(w)
        r = Reader(w.getvalue())
        assert ClsagPartial.read(r) == partials[1]
        r.finish()
