"""
Shared Data Models
==================

Pydantic models for proof and payment records and tagged results.
"""

from taxproof.models.common import ErrorDetail, HealthResponse, OperationResult
from taxproof.models.records import (
    ABSORBING_STATES,
    VERIFIED_STATES,
    IncomeProof,
    PaymentCall,
    PaymentIntent,
    PaymentStatus,
    ProofStatus,
    Receipt,
    TaxPayment,
    TxProvenance,
    can_transition,
    check_proof_changes,
    fiscal_year_for,
    generate_receipt_id,
)


__all__ = [
    # Common
    "OperationResult",
    "ErrorDetail",
    "HealthResponse",
    # Proofs
    "IncomeProof",
    "ProofStatus",
    "ABSORBING_STATES",
    "VERIFIED_STATES",
    "can_transition",
    "check_proof_changes",
    "TxProvenance",
    # Payments
    "TaxPayment",
    "PaymentStatus",
    "PaymentIntent",
    "PaymentCall",
    "Receipt",
    "fiscal_year_for",
    "generate_receipt_id",
]
