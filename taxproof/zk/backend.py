"""
Proof Backends
==============

Two strategies behind one interface:

- SoundProofBackend: snarkjs Groth16 proving and pairing verification.
- SimulatedProofBackend: shape-compatible proofs with structural-only
  verification, for environments without circuit artifacts.

The strategy is picked once by `select_proof_backend` when the service is
composed. Every proof and verification result records which one ran.

Version: 0.1.0
"""

from abc import ABC, abstractmethod
from typing import Any

from taxproof.config import ProofBackendKind, Settings
from taxproof.errors import ConfigurationError
from taxproof.logging import get_logger
from taxproof.zk.commitment import CommitmentScheme
from taxproof.zk.models import (
    GeneratedProof,
    ProofProvenance,
    VerificationResult,
    ZKProof,
)
from taxproof.zk.prover import SimulatedProver, SnarkjsProver
from taxproof.zk.ranges import available_income_ranges
from taxproof.zk.verifier import (
    SnarkjsVerifier,
    VerifierUnavailable,
    check_structure,
    load_verification_key,
    structural_result,
)


logger = get_logger(__name__)


class ProofBackend(ABC):
    """Generates and verifies income threshold proofs."""

    settings: Settings

    @property
    @abstractmethod
    def provenance(self) -> ProofProvenance:
        """Provenance tag stamped on every generated proof."""
        ...

    @abstractmethod
    async def generate_proof(self, income: int, secret: str, threshold: int) -> GeneratedProof:
        """
        Prove income > threshold for commit(income, secret).

        Raises:
            ValidationError: income <= threshold or malformed witness
            ProofGenerationError: The proving toolchain failed
        """
        ...

    @abstractmethod
    async def verify_proof_data(
        self,
        proof: ZKProof,
        public_signals: list[str],
    ) -> VerificationResult:
        """Check a proof against its public signals."""
        ...

    def get_public_parameters(self) -> dict[str, Any]:
        """Verification key and the published threshold menu."""
        key, source = load_verification_key(self.settings.zk.verification_key_path)
        return {
            "verification_key": key,
            "verification_key_source": source,
            "proof_provenance": self.provenance.value,
            "income_ranges": [r.model_dump() for r in available_income_ranges()],
        }


class SoundProofBackend(ProofBackend):
    """snarkjs-backed Groth16 backend."""

    def __init__(self, settings: Settings, commitments: CommitmentScheme | None = None):
        self.settings = settings
        self.prover = SnarkjsProver(settings.zk, commitments)
        self.verifier = SnarkjsVerifier(settings.zk)

    @property
    def provenance(self) -> ProofProvenance:
        return ProofProvenance.SOUND

    async def generate_proof(self, income: int, secret: str, threshold: int) -> GeneratedProof:
        return await self.prover.prove(income=income, secret=secret, threshold=threshold)

    async def verify_proof_data(
        self,
        proof: ZKProof,
        public_signals: list[str],
    ) -> VerificationResult:
        ok, reason = check_structure(proof, public_signals)
        if not ok:
            logger.info("zk_proof_rejected", reason=reason)
            return VerificationResult(
                valid=False,
                commitment=public_signals[0] if public_signals else None,
                error=reason,
            )

        try:
            return await self.verifier.verify(proof, public_signals)
        except VerifierUnavailable as e:
            logger.warning("zk_verifier_unavailable", error=str(e), fallback="structural")
            return structural_result(proof, public_signals)


class SimulatedProofBackend(ProofBackend):
    """Backend for development and tests. Verification is structural only."""

    def __init__(self, settings: Settings, commitments: CommitmentScheme | None = None):
        self.settings = settings
        self.prover = SimulatedProver(commitments)

    @property
    def provenance(self) -> ProofProvenance:
        return ProofProvenance.SIMULATED

    async def generate_proof(self, income: int, secret: str, threshold: int) -> GeneratedProof:
        return await self.prover.prove(income=income, secret=secret, threshold=threshold)

    async def verify_proof_data(
        self,
        proof: ZKProof,
        public_signals: list[str],
    ) -> VerificationResult:
        result = structural_result(proof, public_signals)
        if not result.valid:
            logger.info("zk_proof_rejected", reason=result.error)
        return result


def select_proof_backend(
    settings: Settings,
    commitments: CommitmentScheme | None = None,
) -> ProofBackend:
    """
    Pick the proof backend for this deployment.

    ZK_BACKEND=sound requires the circuit artifacts. ZK_BACKEND=auto uses
    them when present and otherwise falls back to simulation, except in
    production where missing artifacts are a configuration error.

    Raises:
        ConfigurationError: Sound proving was required but is not possible
    """
    kind = settings.zk.backend

    if kind == ProofBackendKind.SIMULATED:
        if settings.is_production:
            raise ConfigurationError("Simulated proofs are not allowed in production")
        backend: ProofBackend = SimulatedProofBackend(settings, commitments)
    else:
        sound = SoundProofBackend(settings, commitments)
        if sound.prover.artifacts_available():
            backend = sound
        elif kind == ProofBackendKind.SOUND or settings.is_production:
            raise ConfigurationError(
                "Circuit artifacts not found",
                wasm_path=str(settings.zk.wasm_path),
                zkey_path=str(settings.zk.zkey_path),
            )
        else:
            logger.warning(
                "zk_artifacts_missing",
                circuit_dir=str(settings.zk.circuit_dir),
                fallback="simulated",
            )
            backend = SimulatedProofBackend(settings, commitments)

    logger.info(
        "proof_backend_selected",
        backend=backend.provenance.value,
        requested=kind.value,
    )
    return backend
