"""
Unit Tests for ZK Proof Backends
================================

Simulated and snarkjs-backed proving and verification, and backend
selection.

Version: 0.1.0
"""

import json
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from taxproof.config import Environment, ProofBackendKind, Settings, ZKSettings
from taxproof.errors import ConfigurationError, ProofGenerationError, ValidationError
from taxproof.zk import (
    CommitmentScheme,
    ProofProvenance,
    SimulatedProofBackend,
    SoundProofBackend,
    VerificationGuarantee,
    ZKProof,
    check_structure,
    select_proof_backend,
)


SNARKJS_PROOF = {
    "pi_a": ["11", "12", "1"],
    "pi_b": [["21", "22"], ["23", "24"], ["1", "0"]],
    "pi_c": ["31", "32", "1"],
    "protocol": "groth16",
    "curve": "bn128",
}


def make_settings(
    tmp_path: Path,
    backend: ProofBackendKind = ProofBackendKind.AUTO,
    environment: Environment = Environment.TESTING,
) -> Settings:
    return Settings(
        environment=environment,
        zk=ZKSettings(backend=backend, build_dir=tmp_path / "build"),
    )


def install_artifacts(settings: Settings, with_vkey: bool = True) -> None:
    """Create placeholder circuit artifacts where the settings expect them."""
    zk = settings.zk
    zk.wasm_path.parent.mkdir(parents=True, exist_ok=True)
    zk.wasm_path.write_bytes(b"\0asm")
    zk.zkey_path.write_bytes(b"zkey")
    if with_vkey:
        zk.verification_key_path.write_text(json.dumps({"protocol": "groth16", "nPublic": 3}))


def fake_snarkjs(public_signals: list[str], returncode: int = 0, verify_stdout: str = "OK!"):
    """subprocess.run stand-in that writes fullprove outputs to the requested paths."""

    def run(args: list[str], **kwargs) -> MagicMock:
        if "fullprove" in args:
            Path(args[-2]).write_text(json.dumps(SNARKJS_PROOF))
            Path(args[-1]).write_text(json.dumps(public_signals))
            return MagicMock(returncode=returncode, stdout="", stderr="boom" if returncode else "")
        return MagicMock(returncode=returncode, stdout=verify_stdout, stderr="")

    return run


class TestSimulatedProofBackend:
    """Tests for SimulatedProofBackend."""

    @pytest.fixture
    def backend(self, tmp_path: Path) -> SimulatedProofBackend:
        return SimulatedProofBackend(make_settings(tmp_path, ProofBackendKind.SIMULATED))

    @pytest.mark.asyncio
    async def test_generate_proof(self, backend: SimulatedProofBackend) -> None:
        """Test simulated proofs have snarkjs shape and are tagged simulated."""
        generated = await backend.generate_proof(800000, "abc", 700000)

        assert generated.provenance == ProofProvenance.SIMULATED
        assert generated.proof.is_simulated
        assert len(generated.proof.pi_a) == 3
        assert len(generated.proof.pi_b) == 3
        assert generated.public_signals == [
            CommitmentScheme().commit(800000, "abc"),
            "700000",
            "1",
        ]

    @pytest.mark.asyncio
    async def test_generate_is_deterministic(self, backend: SimulatedProofBackend) -> None:
        """Test the same witness yields the same simulated points."""
        first = await backend.generate_proof(800000, "abc", 700000)
        second = await backend.generate_proof(800000, "abc", 700000)

        assert first.proof.pi_a == second.proof.pi_a

    @pytest.mark.asyncio
    async def test_income_at_threshold_rejected(self, backend: SimulatedProofBackend) -> None:
        """Test the predicate is strict: income == threshold is not enough."""
        with pytest.raises(ValidationError):
            await backend.generate_proof(700000, "abc", 700000)

    @pytest.mark.asyncio
    async def test_verification_is_structural(self, backend: SimulatedProofBackend) -> None:
        """Test verification passes with a weak-verification warning."""
        generated = await backend.generate_proof(800000, "abc", 700000)

        result = await backend.verify_proof_data(generated.proof, generated.public_signals)

        assert result.valid
        assert result.guarantee == VerificationGuarantee.STRUCTURAL
        assert result.is_weak
        assert "weak_verification" in result.warnings

    @pytest.mark.asyncio
    async def test_zeroed_pi_c_rejected(self, backend: SimulatedProofBackend) -> None:
        """Test a proof whose C point is at infinity fails verification."""
        generated = await backend.generate_proof(800000, "abc", 700000)
        tampered = generated.proof.model_copy(update={"pi_c": ["0", "0", "1"]})

        result = await backend.verify_proof_data(tampered, generated.public_signals)

        assert not result.valid
        assert result.guarantee is None
        assert "pi_c" in result.error

    def test_public_parameters_placeholder(self, backend: SimulatedProofBackend) -> None:
        """Test missing verification keys fall back to the placeholder."""
        parameters = backend.get_public_parameters()

        assert parameters["verification_key_source"] == "placeholder"
        assert parameters["proof_provenance"] == "simulated"
        assert len(parameters["income_ranges"]) == 5


class TestCheckStructure:
    """Tests for the structural proof check."""

    def test_valid(self) -> None:
        """Test a well-formed proof passes."""
        ok, reason = check_structure(ZKProof(**SNARKJS_PROOF), ["0x01", "700000", "1"])

        assert ok
        assert reason is None

    @pytest.mark.parametrize(
        "update,fragment",
        [
            ({"pi_a": ["1", "2"]}, "pi_a"),
            ({"pi_b": [["1", "2"], ["3", "4"]]}, "pi_b"),
            ({"pi_c": ["x", "2", "1"]}, "field element"),
            ({"pi_a": ["0", "0", "1"]}, "pi_a"),
        ],
    )
    def test_malformed(self, update: dict, fragment: str) -> None:
        """Test each malformation is reported."""
        proof = ZKProof(**{**SNARKJS_PROOF, **update})

        ok, reason = check_structure(proof, ["1", "2", "1"])

        assert not ok
        assert fragment in reason

    def test_empty_signals(self) -> None:
        """Test proofs without public signals fail."""
        ok, _ = check_structure(ZKProof(**SNARKJS_PROOF), [])

        assert not ok


class TestSoundProofBackend:
    """Tests for SoundProofBackend with snarkjs mocked out."""

    @pytest.fixture
    def settings(self, tmp_path: Path) -> Settings:
        settings = make_settings(tmp_path, ProofBackendKind.SOUND)
        install_artifacts(settings)
        return settings

    @pytest.mark.asyncio
    async def test_generate_proof(self, settings: Settings) -> None:
        """Test fullprove outputs become a sound GeneratedProof."""
        backend = SoundProofBackend(settings)

        with patch("subprocess.run", side_effect=fake_snarkjs(["123", "700000", "1"])) as run:
            generated = await backend.generate_proof(800000, "abc", 700000)

        args = run.call_args.args[0]
        assert "fullprove" in args
        assert generated.provenance == ProofProvenance.SOUND
        assert generated.proof.pi_a == SNARKJS_PROOF["pi_a"]
        assert generated.public_signals == ["123", "700000", "1"]

    @pytest.mark.asyncio
    async def test_generate_writes_field_inputs(self, settings: Settings) -> None:
        """Test the witness input carries the commitment as a field element."""
        backend = SoundProofBackend(settings)
        captured: dict = {}
        outputs = fake_snarkjs(["123", "700000", "1"])

        def run(args: list[str], **kwargs) -> MagicMock:
            captured.update(json.loads(Path(args[-5]).read_text()))
            return outputs(args, **kwargs)

        with patch("subprocess.run", side_effect=run):
            await backend.generate_proof(800000, "abc", 700000)

        commitment = CommitmentScheme().commit(800000, "abc")
        assert captured["income"] == "800000"
        assert captured["threshold"] == "700000"
        assert captured["commitment"] == str(CommitmentScheme.to_field_element(commitment))

    @pytest.mark.asyncio
    async def test_generate_failure(self, settings: Settings) -> None:
        """Test a failing prover raises ProofGenerationError."""
        backend = SoundProofBackend(settings)

        with patch("subprocess.run", side_effect=fake_snarkjs(["1"], returncode=1)):
            with pytest.raises(ProofGenerationError):
                await backend.generate_proof(800000, "abc", 700000)

    @pytest.mark.asyncio
    async def test_unexpected_result_signal(self, settings: Settings) -> None:
        """Test a circuit result other than 1 is rejected."""
        backend = SoundProofBackend(settings)

        with patch("subprocess.run", side_effect=fake_snarkjs(["123", "700000", "0"])):
            with pytest.raises(ProofGenerationError):
                await backend.generate_proof(800000, "abc", 700000)

    @pytest.mark.asyncio
    async def test_missing_toolchain(self, settings: Settings) -> None:
        """Test a missing snarkjs binary is a proof generation error."""
        backend = SoundProofBackend(settings)

        with patch("subprocess.run", side_effect=FileNotFoundError("npx")):
            with pytest.raises(ProofGenerationError):
                await backend.generate_proof(800000, "abc", 700000)

    @pytest.mark.asyncio
    async def test_verify_pairing(self, settings: Settings) -> None:
        """Test a snarkjs OK is a pairing-strength verification."""
        backend = SoundProofBackend(settings)

        with patch("subprocess.run", side_effect=fake_snarkjs([])):
            result = await backend.verify_proof_data(ZKProof(**SNARKJS_PROOF), ["1", "2", "1"])

        assert result.valid
        assert result.guarantee == VerificationGuarantee.PAIRING
        assert result.warnings == []

    @pytest.mark.asyncio
    async def test_verify_rejected(self, settings: Settings) -> None:
        """Test a snarkjs rejection is an invalid result."""
        backend = SoundProofBackend(settings)

        with patch("subprocess.run", side_effect=fake_snarkjs([], returncode=1, verify_stdout="")):
            result = await backend.verify_proof_data(ZKProof(**SNARKJS_PROOF), ["1", "2", "1"])

        assert not result.valid

    @pytest.mark.asyncio
    async def test_zeroed_pi_c_never_reaches_snarkjs(self, settings: Settings) -> None:
        """Test malformed proofs fail before the pairing check runs."""
        backend = SoundProofBackend(settings)
        proof = ZKProof(**{**SNARKJS_PROOF, "pi_c": ["0", "0", "1"]})

        with patch("subprocess.run") as run:
            result = await backend.verify_proof_data(proof, ["1", "2", "1"])

        run.assert_not_called()
        assert not result.valid

    @pytest.mark.asyncio
    async def test_verify_timeout_falls_back_to_structural(self, settings: Settings) -> None:
        """Test an unavailable verifier degrades to a weak structural result."""
        backend = SoundProofBackend(settings)
        timeout = subprocess.TimeoutExpired(cmd="snarkjs", timeout=1)

        with patch("subprocess.run", side_effect=timeout):
            result = await backend.verify_proof_data(ZKProof(**SNARKJS_PROOF), ["1", "2", "1"])

        assert result.valid
        assert result.guarantee == VerificationGuarantee.STRUCTURAL
        assert "weak_verification" in result.warnings

    def test_public_parameters_from_file(self, settings: Settings) -> None:
        """Test the verification key is read from the build directory."""
        parameters = SoundProofBackend(settings).get_public_parameters()

        assert parameters["verification_key_source"] == "file"
        assert parameters["verification_key"]["nPublic"] == 3
        assert parameters["proof_provenance"] == "sound"


class TestSelectProofBackend:
    """Tests for backend selection."""

    def test_simulated_requested(self, tmp_path: Path) -> None:
        """Test ZK_BACKEND=simulated outside production."""
        backend = select_proof_backend(make_settings(tmp_path, ProofBackendKind.SIMULATED))

        assert isinstance(backend, SimulatedProofBackend)

    def test_simulated_refused_in_production(self, tmp_path: Path) -> None:
        """Test simulated proofs are a configuration error in production."""
        settings = make_settings(tmp_path, ProofBackendKind.SIMULATED, Environment.PRODUCTION)

        with pytest.raises(ConfigurationError):
            select_proof_backend(settings)

    def test_auto_without_artifacts_falls_back(self, tmp_path: Path) -> None:
        """Test auto selection simulates when artifacts are missing."""
        backend = select_proof_backend(make_settings(tmp_path))

        assert isinstance(backend, SimulatedProofBackend)

    def test_auto_with_artifacts(self, tmp_path: Path) -> None:
        """Test auto selection prefers sound proving when it can."""
        settings = make_settings(tmp_path)
        install_artifacts(settings)

        backend = select_proof_backend(settings)

        assert isinstance(backend, SoundProofBackend)

    def test_sound_without_artifacts(self, tmp_path: Path) -> None:
        """Test ZK_BACKEND=sound requires the artifacts."""
        with pytest.raises(ConfigurationError):
            select_proof_backend(make_settings(tmp_path, ProofBackendKind.SOUND))

    def test_auto_in_production_without_artifacts(self, tmp_path: Path) -> None:
        """Test production never silently simulates."""
        settings = make_settings(tmp_path, environment=Environment.PRODUCTION)

        with pytest.raises(ConfigurationError):
            select_proof_backend(settings)
