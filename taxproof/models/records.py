"""
Record Models
=============

Persistent records for income proofs and tax payments, plus the
provenance tags carried by every ledger interaction.

Version: 0.1.0
"""

import secrets
import time
import uuid
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from taxproof.errors import StateConflictError
from taxproof.zk.models import VerificationGuarantee, ZKProof


DEFAULT_PROOF_VALIDITY = timedelta(days=365)


class ProofStatus(str, Enum):
    """Lifecycle state of an income proof."""

    COMMITMENT_GENERATED = "commitment_generated"
    PROOF_GENERATED = "proof_generated"
    PROOF_VERIFIED = "proof_verified"
    PROOF_VERIFIED_ON_CHAIN = "proof_verified_on_chain"
    EXPIRED = "expired"
    REVOKED = "revoked"


# Forward order of the non-absorbing states.
_STATUS_RANK = {
    ProofStatus.COMMITMENT_GENERATED: 0,
    ProofStatus.PROOF_GENERATED: 1,
    ProofStatus.PROOF_VERIFIED: 2,
    ProofStatus.PROOF_VERIFIED_ON_CHAIN: 3,
}

ABSORBING_STATES = frozenset({ProofStatus.EXPIRED, ProofStatus.REVOKED})
VERIFIED_STATES = frozenset({ProofStatus.PROOF_VERIFIED, ProofStatus.PROOF_VERIFIED_ON_CHAIN})


def can_transition(current: ProofStatus, target: ProofStatus) -> bool:
    """Forward-only moves, plus entry into an absorbing state from any live one."""
    if current in ABSORBING_STATES:
        return False
    if target in ABSORBING_STATES:
        return True
    return _STATUS_RANK[target] > _STATUS_RANK[current]


class TxProvenance(str, Enum):
    """How a ledger-facing result was obtained."""

    # verifyProof view call returned true; no transaction was sent
    READ_ONLY_CALL = "read_only_call"
    LEDGER = "ledger"
    SIMULATED_LEDGER = "simulated_ledger"
    # Every ledger tier failed outside production
    LIVENESS_FALLBACK = "liveness_fallback"


class PaymentStatus(str, Enum):
    """Tax payment status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


# =============================================================================
# Income Proof
# =============================================================================

IMMUTABLE_PROOF_FIELDS = frozenset({"id", "owner", "commitment", "created_at"})
WRITE_ONCE_PROOF_FIELDS = frozenset({"proof", "public_signals"})


class IncomeProof(BaseModel):
    """A commitment to an income and, once generated, its threshold proof."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner: str = Field(..., min_length=1)
    commitment: str = Field(..., description="0x-prefixed keccak256 digest")

    income_range: str | None = Field(default=None, description="Range label")
    threshold: int | None = Field(default=None, ge=0)

    proof: ZKProof | None = None
    public_signals: list[str] | None = None

    status: ProofStatus = ProofStatus.COMMITMENT_GENERATED

    commitment_tx_hash: str | None = None
    verification_tx_hash: str | None = None
    verification_provenance: TxProvenance | None = None
    verification_guarantee: VerificationGuarantee | None = None
    verification_claim: str | None = None
    revocation_reason: str | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    verified_at: datetime | None = None
    expires_at: datetime | None = None

    metadata: dict[str, Any] = Field(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        if self.expires_at is None:
            self.expires_at = self.created_at + DEFAULT_PROOF_VALIDITY

    @property
    def is_absorbing(self) -> bool:
        return self.status in ABSORBING_STATES

    @property
    def is_verified(self) -> bool:
        return self.status in VERIFIED_STATES

    @property
    def has_proof(self) -> bool:
        return self.proof is not None and bool(self.public_signals)

    def is_due(self, now: datetime | None = None) -> bool:
        """Check whether the proof has passed its expiry time."""
        now = now or datetime.now(UTC)
        return self.expires_at is not None and now > self.expires_at


def check_proof_changes(current: IncomeProof, changes: dict[str, Any]) -> None:
    """
    Enforce field-level invariants on an update.

    Raises:
        StateConflictError: The update touches an immutable field,
            overwrites a write-once field, or moves status backwards.
    """
    touched = IMMUTABLE_PROOF_FIELDS & changes.keys()
    if touched:
        raise StateConflictError(
            f"Fields are immutable: {', '.join(sorted(touched))}",
            current_state=current.status.value,
        )

    for field_name in WRITE_ONCE_PROOF_FIELDS & changes.keys():
        if getattr(current, field_name) is not None:
            raise StateConflictError(
                f"Field '{field_name}' is already set",
                current_state=current.status.value,
            )

    if "status" in changes:
        target = ProofStatus(changes["status"])
        if target != current.status and not can_transition(current.status, target):
            raise StateConflictError(
                f"Cannot move proof from {current.status.value} to {target.value}",
                current_state=current.status.value,
            )


# =============================================================================
# Tax Payment
# =============================================================================


def fiscal_year_for(moment: datetime | None = None) -> str:
    """Bangladesh fiscal year (July to June) as "YYYY-YYYY"."""
    moment = moment or datetime.now(UTC)
    start = moment.year if moment.month >= 7 else moment.year - 1
    return f"{start}-{start + 1}"


def generate_receipt_id() -> str:
    """Human-readable receipt id: RCPT-<epoch ms>-<0..999>."""
    return f"RCPT-{int(time.time() * 1000)}-{secrets.randbelow(1000)}"


class TaxPayment(BaseModel):
    """A tax payment backed by a verified income proof."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner: str = Field(..., min_length=1)
    proof_id: str
    amount: int = Field(..., gt=0, description="Amount in fiat units")
    wallet_address: str | None = None

    status: PaymentStatus = PaymentStatus.PENDING
    transaction_hash: str | None = None
    transaction_date: datetime | None = None
    transaction_provenance: TxProvenance | None = None

    fiscal_year: str = Field(default_factory=fiscal_year_for)
    receipt_id: str | None = None
    failure_reason: str | None = None

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    metadata: dict[str, Any] = Field(default_factory=dict)


class PaymentCall(BaseModel):
    """Arguments of the payment contract's processTaxPayment entry point."""

    amount: int = Field(..., gt=0, description="Ledger amount in wei")
    a: list[int]
    b: list[list[int]] = Field(..., description="G2 point, already in verifier order")
    c: list[int]
    input: list[int]


class PaymentIntent(BaseModel):
    """A pending payment with its ready-to-submit ledger call."""

    payment_id: str
    proof_id: str
    owner: str
    amount: int
    payer_address: str
    call: PaymentCall


class Receipt(BaseModel):
    """Receipt for a completed tax payment."""

    payment_id: str
    receipt_id: str
    owner: str
    amount: int
    fiscal_year: str
    date: datetime | None = None
    transaction_hash: str | None = None
    transaction_provenance: TxProvenance | None = None
    proof_id: str

    blockchain_verified: bool = False
    verification_error: str | None = None
