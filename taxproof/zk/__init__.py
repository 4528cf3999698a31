"""
ZK-SNARK Integration Module
===========================

Income commitments and Groth16 income threshold proofs.

Usage:
    from taxproof.zk import CommitmentScheme, select_proof_backend

    commitments = CommitmentScheme()
    secret = CommitmentScheme.generate_secret()
    commitment = commitments.commit(800000, secret)

    backend = select_proof_backend(settings)
    generated = await backend.generate_proof(800000, secret, 700000)
    result = await backend.verify_proof_data(generated.proof, generated.public_signals)

Version: 0.1.0
"""

from taxproof.zk.backend import (
    ProofBackend,
    SimulatedProofBackend,
    SoundProofBackend,
    select_proof_backend,
)
from taxproof.zk.commitment import CommitmentScheme, is_commitment, validate_witness
from taxproof.zk.models import (
    FIELD_ORDER,
    GeneratedProof,
    IncomeRange,
    ProofProvenance,
    VerificationGuarantee,
    VerificationResult,
    ZKProof,
)
from taxproof.zk.prover import SimulatedProver, SnarkjsProver, check_threshold_predicate
from taxproof.zk.ranges import INCOME_RANGES, available_income_ranges, resolve_income_range
from taxproof.zk.verifier import SnarkjsVerifier, check_structure


__all__ = [
    # Commitments
    "CommitmentScheme",
    "is_commitment",
    "validate_witness",
    # Backends
    "ProofBackend",
    "SoundProofBackend",
    "SimulatedProofBackend",
    "select_proof_backend",
    "SnarkjsProver",
    "SimulatedProver",
    "SnarkjsVerifier",
    "check_structure",
    "check_threshold_predicate",
    # Ranges
    "INCOME_RANGES",
    "available_income_ranges",
    "resolve_income_range",
    # Models
    "FIELD_ORDER",
    "ZKProof",
    "GeneratedProof",
    "VerificationResult",
    "VerificationGuarantee",
    "ProofProvenance",
    "IncomeRange",
]
