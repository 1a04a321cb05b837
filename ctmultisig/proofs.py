"""
Zero-knowledge proofs used by key generation and key-image recovery.

1. **Schnorr Proof of Knowledge**: knowledge of  x  with  Y = x·G.
   Each key-generation dealer proves it knows its polynomial's
   constant term.

2. **DLEQ Proof**: two points share one discrete log,
   log_A(Y) = log_B(Z).  Dealers bind their  a_0·G  and  a_0·U
   contributions, and signers bind a partial key image  s·Hp(K)  to
   their public key share  s·G.

Both are made non-interactive via Fiat-Shamir in the Random Oracle
Model.

References
----------
- Schnorr (1989). "Efficient Identification and Signatures for Smart
  Cards."  CRYPTO 1989.
- Chaum & Pedersen (1992). "Wallet Databases with Observers."
  CRYPTO 1992.
"""

from __future__ import annotations

from dataclasses import dataclass

from .curve import Scalar, Point, G
from .encoding import Reader, Writer
from .hash import hash_schnorr_proof, hash_dleq


# ── Schnorr Proof of Knowledge ──────────────────────────────────────────

@dataclass(frozen=True)
class SchnorrProof:
    """
    Non-interactive proof of knowledge of  x  such that  Y = x·G.

    Transcript: (R, z)  where  R = k·G,  z = k + c·x,  c = H(R, Y, ctx).
    Verification:  z·G  ==  R + c·Y.
    """

    R: Point
    z: Scalar

    @staticmethod
    def prove(
        secret: Scalar,
        public: Point,
        context: bytes = b"",
    ) -> SchnorrProof:
        """
        Produce a Schnorr PoK for  (secret, public = secret·G).

        Parameters
        ----------
        secret : Scalar
            The witness *x*.
        public : Point
            The statement *Y = x·G* (must be consistent).
        context : bytes
            Domain-separation context (e.g., the dealer's key-generation
            context).
        """
        k = Scalar.random()
        R = k * G
        c = hash_schnorr_proof(R, public, context)
        return SchnorrProof(R=R, z=k + c * secret)

    def verify(self, public: Point, context: bytes = b"") -> bool:
        if public.is_inf():
            return False
        c = hash_schnorr_proof(self.R, public, context)
        return self.z * G == self.R + (c * public)

    def to_bytes(self) -> bytes:
        return Writer().point(self.R).scalar(self.z).getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> SchnorrProof:
        r = Reader(data)
        proof = cls(R=r.point(), z=r.scalar())
        r.finish()
        return proof


# ── DLEQ (Discrete-Log Equality) Proof ─────────────────────────────────

@dataclass(frozen=True)
class DLEQProof:
    """
    Proves  log_A(Y) = log_B(Z)  without revealing the common scalar.

    Protocol (Fiat-Shamir):
        k ←$ Z_q
        A1 = k·A,   A2 = k·B
        c  = H(A1, Y, A2, Z, ctx)
        z  = k + c·x

    Verify:
        z·A  ==  A1 + c·Y
        z·B  ==  A2 + c·Z
    """

    A1: Point
    A2: Point
    z: Scalar

    @staticmethod
    def prove(
        secret: Scalar,
        base_a: Point,
        Y: Point,
        base_b: Point,
        Z: Point,
        context: bytes = b"",
    ) -> DLEQProof:
        """Prove that  Y = secret·base_a  and  Z = secret·base_b."""
        k = Scalar.random()
        A1 = k * base_a
        A2 = k * base_b
        c = hash_dleq(A1, Y, A2, Z, context)
        return DLEQProof(A1=A1, A2=A2, z=k + c * secret)

    def verify(
        self,
        base_a: Point,
        Y: Point,
        base_b: Point,
        Z: Point,
        context: bytes = b"",
    ) -> bool:
        c = hash_dleq(self.A1, Y, self.A2, Z, context)
        return (
            self.z * base_a == self.A1 + (c * Y)
            and self.z * base_b == self.A2 + (c * Z)
        )

    def write(self, w: Writer) -> None:
        w.point(self.A1).point(self.A2).scalar(self.z)

    @classmethod
    def read(cls, r: Reader) -> DLEQProof:
        return cls(A1=r.point(), A2=r.point(), z=r.scalar())

    def to_bytes(self) -> bytes:
        w = Writer()
        self.write(w)
        return w.getvalue()

    @classmethod
    def from_bytes(cls, data: bytes) -> DLEQProof:
        r = Reader(data)
        proof = cls.read(r)
        r.finish()
        return proof
