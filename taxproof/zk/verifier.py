"""
ZK-SNARK Proof Verification
===========================

Off-chain verification of income threshold proofs.

`SnarkjsVerifier` runs the Groth16 pairing check through
`snarkjs groth16 verify`. `check_structure` is the permissive
well-formedness check used when no pairing verifier is available; a pass
only means the proof has the right shape.

Version: 0.1.0
"""

import asyncio
import json
import shlex
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any

from taxproof.config import ZKSettings
from taxproof.errors import ErrorKind
from taxproof.logging import get_logger
from taxproof.zk.models import (
    VerificationGuarantee,
    VerificationResult,
    ZKProof,
    field_element_to_int,
)


logger = get_logger(__name__)


PLACEHOLDER_VERIFICATION_KEY: dict[str, Any] = {
    "protocol": "groth16",
    "curve": "bn128",
    "nPublic": 3,
    "vk_alpha_1": ["20", "21", "1"],
    "vk_beta_2": [["11", "12"], ["13", "14"], ["1", "0"]],
    "vk_gamma_2": [["15", "16"], ["17", "18"], ["1", "0"]],
    "vk_delta_2": [["19", "20"], ["21", "22"], ["1", "0"]],
    "vk_alphabeta_12": [
        [["23", "24"], ["25", "26"], ["27", "28"]],
        [["29", "30"], ["31", "32"], ["33", "34"]],
    ],
    "IC": [
        ["35", "36", "1"],
        ["37", "38", "1"],
        ["39", "40", "1"],
        ["41", "42", "1"],
    ],
}


class VerifierUnavailable(Exception):
    """The pairing verifier cannot run (missing key or tool)."""


def check_structure(proof: ZKProof, public_signals: list[str]) -> tuple[bool, str | None]:
    """
    Check component cardinalities and that every coordinate parses.

    Returns:
        (ok, reason) where reason explains the first failed check
    """
    if len(proof.pi_a) != 3:
        return False, "pi_a must have 3 coordinates"
    if len(proof.pi_c) != 3:
        return False, "pi_c must have 3 coordinates"
    if len(proof.pi_b) != 3 or any(len(row) != 2 for row in proof.pi_b):
        return False, "pi_b must have 3 rows of 2 coordinates"
    if not public_signals:
        return False, "public signals are empty"

    try:
        coordinates = [
            *proof.pi_a,
            *proof.pi_c,
            *(value for row in proof.pi_b for value in row),
            *public_signals,
        ]
        values = [field_element_to_int(v) for v in coordinates]
    except (TypeError, ValueError):
        return False, "coordinate is not a field element"

    if any(v < 0 for v in values):
        return False, "coordinate is negative"
    if field_element_to_int(proof.pi_c[0]) == 0 and field_element_to_int(proof.pi_c[1]) == 0:
        return False, "pi_c is the point at infinity"
    if field_element_to_int(proof.pi_a[0]) == 0 and field_element_to_int(proof.pi_a[1]) == 0:
        return False, "pi_a is the point at infinity"

    return True, None


def structural_result(proof: ZKProof, public_signals: list[str]) -> VerificationResult:
    """Verification result resting on the structural check alone."""
    ok, reason = check_structure(proof, public_signals)
    return VerificationResult(
        valid=ok,
        guarantee=VerificationGuarantee.STRUCTURAL if ok else None,
        commitment=public_signals[0] if public_signals else None,
        error=reason,
        warnings=[ErrorKind.WEAK_VERIFICATION.value] if ok else [],
    )


def load_verification_key(path: Path) -> tuple[dict[str, Any], str]:
    """
    Load the verification key.

    Returns:
        (key, source) with source "file" or "placeholder"
    """
    if path.exists():
        try:
            return json.loads(path.read_text()), "file"
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("verification_key_unreadable", path=str(path), error=str(e))
    return PLACEHOLDER_VERIFICATION_KEY, "placeholder"


class SnarkjsVerifier:
    """Groth16 pairing check via the snarkjs CLI."""

    def __init__(self, settings: ZKSettings):
        self.settings = settings

    async def verify(self, proof: ZKProof, public_signals: list[str]) -> VerificationResult:
        """
        Run the pairing check.

        Raises:
            VerifierUnavailable: Key or snarkjs missing, or the tool timed out
        """
        vkey_path = self.settings.verification_key_path
        if not vkey_path.exists():
            raise VerifierUnavailable(f"Verification key not found: {vkey_path}")

        with tempfile.TemporaryDirectory(prefix="taxproof-verify-") as scratch:
            proof_file = Path(scratch) / "proof.json"
            public_file = Path(scratch) / "public.json"
            proof_file.write_text(json.dumps(proof.to_snarkjs()))
            public_file.write_text(json.dumps(public_signals))

            start_time = time.time()
            try:
                result = await asyncio.to_thread(
                    subprocess.run,
                    [
                        *shlex.split(self.settings.snarkjs_command),
                        "groth16",
                        "verify",
                        str(vkey_path),
                        str(public_file),
                        str(proof_file),
                    ],
                    capture_output=True,
                    text=True,
                    timeout=self.settings.proving_timeout_seconds,
                )
            except (FileNotFoundError, subprocess.TimeoutExpired) as e:
                raise VerifierUnavailable(str(e)) from e

        verification_time_ms = int((time.time() - start_time) * 1000)
        is_valid = result.returncode == 0 and "OK" in result.stdout

        logger.info(
            "zk_proof_verified",
            circuit=self.settings.circuit_name,
            valid=is_valid,
            verification_time_ms=verification_time_ms,
        )

        return VerificationResult(
            valid=is_valid,
            guarantee=VerificationGuarantee.PAIRING if is_valid else None,
            commitment=public_signals[0] if public_signals else None,
            verification_time_ms=verification_time_ms,
            error=None if is_valid else (result.stderr or result.stdout or "Invalid proof"),
        )
