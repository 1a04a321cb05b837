"""
Error taxonomy for multisig signing ceremonies.

Two families, handled differently by callers:

- **Local errors** (the local signer's own state is inconsistent, or its
  nonce records are exhausted) propagate and stop the ceremony or the
  specific signer-group attempt.
- **Peer errors** (``BadInitSet``, ``BadPartialSigSet``) are raised by the
  validators and caught by the filtering helpers, which drop the
  offending artifact and record a :class:`Rejection`.

Error contexts carry public identifiers only (signer ids, filters,
messages, proof keys); secret nonces and key shares never appear.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .curve import Point


def _short(data) -> str:
    if data is None:
        return "-"
    if isinstance(data, Point):
        data = data.to_bytes()
    return data.hex()[:16]


class MultisigError(Exception):
    """Base class for every ceremony error."""


class InvalidFilter(MultisigError, ValueError):
    """Malformed or out-of-range signer subset."""

    def __init__(self, message: str, signer_filter: Optional[int] = None):
        super().__init__(message)
        self.signer_filter = signer_filter


class InitSetErrorCode(Enum):
    SEMANTICS_FAILURE = auto()
    UNEXPECTED_FILTER = auto()
    UNEXPECTED_SIGNER = auto()
    UNEXPECTED_MESSAGE = auto()
    UNEXPECTED_PROOF_KEY = auto()
    DUPLICATE_SIGNER = auto()


class BadInitSet(MultisigError):
    """An initialization set fails conformance."""

    def __init__(
        self,
        reason: InitSetErrorCode,
        detail: str,
        *,
        signer_id: Optional[Point] = None,
        aggregate_filter: Optional[int] = None,
        message: Optional[bytes] = None,
        proof_key: Optional[Point] = None,
    ) -> None:
        super().__init__(
            f"bad init set ({reason.name}) from signer {_short(signer_id)}: "
            f"{detail}"
        )
        self.reason = reason
        self.detail = detail
        self.signer_id = signer_id
        self.aggregate_filter = aggregate_filter
        self.message = message
        self.proof_key = proof_key


class PartialSigSetErrorCode(Enum):
    SEMANTICS_FAILURE = auto()
    UNEXPECTED_SIGNER = auto()
    UNEXPECTED_MESSAGE = auto()
    UNEXPECTED_FILTER = auto()
    UNEXPECTED_PROOF_KEY = auto()
    UNEXPECTED_PROOF_KIND = auto()
    DUPLICATE_SIGNER = auto()


class BadPartialSigSet(MultisigError):
    """A partial signature set fails conformance."""

    def __init__(
        self,
        reason: PartialSigSetErrorCode,
        detail: str,
        *,
        signer_id: Optional[Point] = None,
        signer_filter: Optional[int] = None,
        message: Optional[bytes] = None,
    ) -> None:
        super().__init__(
            f"bad partial sig set ({reason.name}) from signer "
            f"{_short(signer_id)} for filter {signer_filter!r}: {detail}"
        )
        self.reason = reason
        self.detail = detail
        self.signer_id = signer_id
        self.signer_filter = signer_filter
        self.message = message


class NotFound(MultisigError, KeyError):
    """Nonce vault miss (queried before ``ensure`` or already consumed)."""

    def __init__(self, message: bytes, proof_key: Point, signer_filter: int):
        super().__init__(
            f"no nonce record for message {_short(message)}, proof key "
            f"{_short(proof_key)}, filter {signer_filter}"
        )
        self.message = message
        self.proof_key = proof_key
        self.signer_filter = signer_filter

    def __str__(self) -> str:
        # KeyError would repr() the argument
        return self.args[0]


class AssemblyFailed(MultisigError):
    """Combined partial signatures do not yield a verifying proof."""

    def __init__(
        self,
        detail: str,
        *,
        signer_filter: Optional[int] = None,
        proof_key: Optional[Point] = None,
    ) -> None:
        super().__init__(
            f"proof assembly failed for proof key {_short(proof_key)} "
            f"(filter {signer_filter!r}): {detail}"
        )
        self.detail = detail
        self.signer_filter = signer_filter
        self.proof_key = proof_key


class InsufficientSigners(MultisigError):
    """No signer group can reach full threshold coverage."""

    def __init__(self, detail: str, *, available_filter: int = 0):
        super().__init__(detail)
        self.available_filter = available_filter


class Stage(Enum):
    INIT = auto()
    PARTIAL_SIGNING = auto()
    AGGREGATION = auto()


@dataclass(frozen=True)
class Rejection:
    """A peer artifact dropped during a ceremony, kept for blame reports."""

    stage: Stage
    signer_id: Optional[Point]
    signer_filter: Optional[int]
    reason: str

    def describe(self) -> str:
        return (
            f"{self.stage.name.lower()}: signer {_short(self.signer_id)} "
            f"filter {self.signer_filter!r}: {self.reason}"
        )
