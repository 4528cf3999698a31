"""
ZK-SNARK Proof Generation
=========================

Generates income threshold proofs for the predicate

    income > threshold  AND  commitment = keccak256(income:secret)

Two provers share one output shape:

- SnarkjsProver runs `snarkjs groth16 fullprove` on the circuit artifacts.
- SimulatedProver derives seeded pseudorandom points. Its output is tagged
  `provenance="simulated"` and proves nothing.

Version: 0.1.0
"""

import asyncio
import hashlib
import json
import shlex
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any

from taxproof.config import ZKSettings
from taxproof.errors import ProofGenerationError, ValidationError
from taxproof.logging import get_logger
from taxproof.zk.commitment import CommitmentScheme, validate_witness
from taxproof.zk.models import (
    FIELD_ORDER,
    GeneratedProof,
    ProofProvenance,
    ZKProof,
)


logger = get_logger(__name__)


def check_threshold_predicate(income: int, secret: str, threshold: int) -> None:
    """
    Fail fast on inputs no proof may be produced for.

    Raises:
        ValidationError: Malformed witness, negative threshold, or
            income not strictly above the threshold.
    """
    validate_witness(income, secret)
    if isinstance(threshold, bool) or not isinstance(threshold, int) or threshold < 0:
        raise ValidationError("Threshold must be a non-negative integer", field="threshold")
    if income <= threshold:
        raise ValidationError(
            f"Income does not exceed threshold {threshold}",
            field="income",
            threshold=threshold,
        )


def expected_public_signals(commitment: str, threshold: int) -> list[str]:
    """[commitment, threshold, 1] where 1 means the predicate holds."""
    return [commitment, str(threshold), "1"]


class SnarkjsProver:
    """
    Groth16 prover backed by the snarkjs CLI.

    Usage:
        prover = SnarkjsProver(settings.zk)
        generated = await prover.prove(income=800000, secret=s, threshold=700000)
    """

    def __init__(self, settings: ZKSettings, commitments: CommitmentScheme | None = None):
        self.settings = settings
        self.commitments = commitments or CommitmentScheme()

    def artifacts_available(self) -> bool:
        """Check that the wasm witness generator and proving key exist."""
        return self.settings.wasm_path.exists() and self.settings.zkey_path.exists()

    def _secret_to_field(self, secret: str) -> str:
        """Hash an arbitrary secret string to a field element."""
        digest = hashlib.sha256(secret.encode()).digest()
        return str(int.from_bytes(digest, "big") % FIELD_ORDER)

    async def _run_snarkjs(self, input_data: dict[str, Any]) -> tuple[dict, list[str], int]:
        """
        Run snarkjs to generate a proof.

        Returns:
            Tuple of (proof_json, public_signals, proving_time_ms)
        """
        wasm_path = self.settings.wasm_path
        zkey_path = self.settings.zkey_path

        if not wasm_path.exists():
            raise ProofGenerationError(f"Circuit WASM not found: {wasm_path}")
        if not zkey_path.exists():
            raise ProofGenerationError(f"Proving key not found: {zkey_path}")

        # One scratch directory per call so concurrent proofs never share files.
        with tempfile.TemporaryDirectory(prefix="taxproof-") as scratch:
            scratch_dir = Path(scratch)
            input_file = scratch_dir / "input.json"
            proof_file = scratch_dir / "proof.json"
            public_file = scratch_dir / "public.json"
            input_file.write_text(json.dumps(input_data))

            start_time = time.time()
            try:
                result = await asyncio.to_thread(
                    subprocess.run,
                    [
                        *shlex.split(self.settings.snarkjs_command),
                        "groth16",
                        "fullprove",
                        str(input_file),
                        str(wasm_path),
                        str(zkey_path),
                        str(proof_file),
                        str(public_file),
                    ],
                    capture_output=True,
                    text=True,
                    timeout=self.settings.proving_timeout_seconds,
                )
            except (FileNotFoundError, subprocess.TimeoutExpired) as e:
                logger.error("snarkjs_unavailable", error=str(e))
                raise ProofGenerationError(f"Proving toolchain unavailable: {e}") from e

            proving_time_ms = int((time.time() - start_time) * 1000)

            if result.returncode != 0:
                logger.error(
                    "snarkjs_proof_generation_failed",
                    stderr=result.stderr,
                    circuit=self.settings.circuit_name,
                )
                raise ProofGenerationError(f"Proof generation failed: {result.stderr}")

            proof_json = json.loads(proof_file.read_text())
            public_signals = json.loads(public_file.read_text())

        logger.info(
            "zk_proof_generated",
            circuit=self.settings.circuit_name,
            proving_time_ms=proving_time_ms,
        )
        return proof_json, public_signals, proving_time_ms

    async def prove(self, income: int, secret: str, threshold: int) -> GeneratedProof:
        """
        Generate a proof that income > threshold for the committed income.

        Raises:
            ValidationError: If income <= threshold or inputs are malformed
            ProofGenerationError: If snarkjs fails
        """
        check_threshold_predicate(income, secret, threshold)
        commitment = self.commitments.commit(income, secret)

        input_data = {
            "income": str(income),
            "randomSecret": self._secret_to_field(secret),
            "threshold": str(threshold),
            "commitment": str(self.commitments.to_field_element(commitment)),
        }

        proof_json, public_signals, proving_time_ms = await self._run_snarkjs(input_data)

        if len(public_signals) != 3 or str(public_signals[2]) != "1":
            raise ProofGenerationError(
                "Circuit returned unexpected public signals",
                public_signals=public_signals,
            )

        return GeneratedProof(
            proof=ZKProof(**proof_json, provenance=ProofProvenance.SOUND),
            public_signals=[str(s) for s in public_signals],
            proving_time_ms=proving_time_ms,
        )


class SimulatedProver:
    """
    Shape-compatible stand-in for environments without proving artifacts.

    The output is deterministic in (income, secret, threshold) and carries
    `provenance="simulated"` so nothing downstream mistakes it for a proof.
    """

    def __init__(self, commitments: CommitmentScheme | None = None):
        self.commitments = commitments or CommitmentScheme()

    @staticmethod
    def _element(seed: str, index: int) -> str:
        digest = hashlib.sha256(f"{seed}{index}".encode()).digest()
        return str(int.from_bytes(digest, "big") % FIELD_ORDER)

    async def prove(self, income: int, secret: str, threshold: int) -> GeneratedProof:
        check_threshold_predicate(income, secret, threshold)
        commitment = self.commitments.commit(income, secret)

        start_time = time.time()
        seed = hashlib.sha256(f"{income}:{secret}:{threshold}:{commitment}".encode()).hexdigest()

        proof = ZKProof(
            pi_a=[self._element(seed, 1), self._element(seed, 2), "1"],
            pi_b=[
                [self._element(seed, 3), self._element(seed, 4)],
                [self._element(seed, 5), self._element(seed, 6)],
                ["1", "0"],
            ],
            pi_c=[self._element(seed, 7), self._element(seed, 8), "1"],
            provenance=ProofProvenance.SIMULATED,
        )

        logger.warning(
            "zk_simulated_proof_generated",
            threshold=threshold,
            note="not cryptographically sound",
        )

        return GeneratedProof(
            proof=proof,
            public_signals=expected_public_signals(commitment, threshold),
            proving_time_ms=int((time.time() - start_time) * 1000),
        )
