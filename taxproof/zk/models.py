"""
ZK-SNARK Data Models
====================

Pydantic models for income threshold proof data.

Version: 0.1.0
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field


# BN254 scalar field order
FIELD_ORDER = 21888242871839275222246405745257275088548364400416034343698204186575808495617


class ProofProvenance(str, Enum):
    """Where a proof came from."""

    SOUND = "sound"
    # Seeded pseudorandom points of the right shape. Not a proof of anything.
    SIMULATED = "simulated"


class VerificationGuarantee(str, Enum):
    """Strength of a successful verification."""

    PAIRING = "pairing"
    STRUCTURAL = "structural"


def field_element_to_int(value: str | int) -> int:
    """Parse a decimal or 0x-prefixed hex field element."""
    if isinstance(value, bool):
        raise ValueError("Boolean is not a field element")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


class ZKProof(BaseModel):
    """
    A Groth16 proof.

    Compatible with the snarkjs proof format: projective coordinates, so
    `pi_a`/`pi_c` carry three entries and `pi_b` three rows of two.
    """

    pi_a: list[str] = Field(..., description="Proof point A (G1)")
    pi_b: list[list[str]] = Field(..., description="Proof point B (G2)")
    pi_c: list[str] = Field(..., description="Proof point C (G1)")

    protocol: str = Field(default="groth16")
    curve: str = Field(default="bn128")
    provenance: ProofProvenance = ProofProvenance.SOUND

    @property
    def is_simulated(self) -> bool:
        return self.provenance == ProofProvenance.SIMULATED

    def to_snarkjs(self) -> dict:
        """Proof JSON as snarkjs reads it (no provenance tag)."""
        return self.model_dump(include={"pi_a", "pi_b", "pi_c", "protocol", "curve"})


class GeneratedProof(BaseModel):
    """Output of a proof backend."""

    proof: ZKProof
    public_signals: list[str]
    proving_time_ms: int = Field(default=0, ge=0)
    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def provenance(self) -> ProofProvenance:
        return self.proof.provenance


class VerificationResult(BaseModel):
    """Result of proof verification."""

    valid: bool
    guarantee: VerificationGuarantee | None = None
    commitment: str | None = None
    verified_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    verification_time_ms: int = Field(default=0, ge=0)

    error: str | None = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_weak(self) -> bool:
        return self.valid and self.guarantee == VerificationGuarantee.STRUCTURAL


class IncomeRange(BaseModel):
    """One entry of the published threshold menu."""

    id: str
    label: str
    threshold: int = Field(..., ge=0)
