"""
Error Taxonomy
==============

Every failure surfaced by the proof and payment services carries a stable
`kind` and a human-readable `message`. Exposed operations convert these
into tagged error results; nothing below is meant to escape as an
unhandled fault.

Version: 0.1.0
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Stable error kinds."""

    VALIDATION = "validation_error"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    COMMITMENT_MISMATCH = "commitment_mismatch"
    CHAIN = "chain_error"
    CRYPTO_VERIFICATION_FAILURE = "crypto_verification_failure"
    CONFIGURATION = "configuration_error"
    FORBIDDEN = "forbidden"
    INTERNAL = "internal_error"

    # Warning kinds, never raised.
    # Acceptance rested on the structural check only.
    WEAK_VERIFICATION = "weak_verification"
    # Simulated proof, simulated ledger or liveness marker involved.
    SIMULATED_ARTIFACT = "simulated_artifact"


class TaxProofError(Exception):
    """Base class for all domain errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details or None,
        }


class ValidationError(TaxProofError):
    """Malformed or missing input. Raised before any side effect."""

    kind = ErrorKind.VALIDATION


class NotFoundError(TaxProofError):
    """Unknown record id or unresolvable transaction hash."""

    kind = ErrorKind.NOT_FOUND


class StateConflictError(TaxProofError):
    """Operation is not valid for the record's current lifecycle state."""

    kind = ErrorKind.STATE_CONFLICT

    def __init__(self, message: str, current_state: str | None = None, **details: Any) -> None:
        super().__init__(message, current_state=current_state, **details)
        self.current_state = current_state


class CommitmentMismatchError(TaxProofError):
    """Recomputed commitment differs from the stored one (data integrity)."""

    kind = ErrorKind.COMMITMENT_MISMATCH


class ChainError(TaxProofError):
    """Network, revert, estimation or timeout failure against the ledger."""

    kind = ErrorKind.CHAIN


class CryptoVerificationFailure(TaxProofError):
    """The verifier legitimately rejected the proof."""

    kind = ErrorKind.CRYPTO_VERIFICATION_FAILURE


class ProofGenerationError(TaxProofError):
    """The proving toolchain failed on inputs that passed validation."""

    kind = ErrorKind.INTERNAL


class ConfigurationError(TaxProofError):
    """The service cannot be composed with the given settings."""

    kind = ErrorKind.CONFIGURATION


class PermissionDeniedError(TaxProofError):
    """The caller lacks the role an administrative operation requires."""

    kind = ErrorKind.FORBIDDEN
