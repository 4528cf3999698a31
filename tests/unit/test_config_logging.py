"""
Unit tests for settings and structured logging.
"""

import structlog

from taxproof.config import ChainMode, ChainSettings, Environment, LogLevel, Settings, ZKSettings
from taxproof.logging import bind_context, clear_context, get_logger, setup_logging
from taxproof.logging.logger import censor_event


class TestSettings:
    """Tests for Settings."""

    def test_environment_variables(self, monkeypatch) -> None:
        """Test nested settings load from prefixed environment variables."""
        monkeypatch.setenv("CHAIN_MODE", "testnet")
        monkeypatch.setenv("CHAIN_FIAT_RATE", "300000")
        monkeypatch.setenv("ZK_PROOF_VALIDITY_DAYS", "30")
        monkeypatch.setenv("INCOME_PROOF_PORT", "9000")

        settings = Settings()

        assert settings.chain.mode == ChainMode.TESTNET
        assert settings.chain.fiat_rate == 300000
        assert settings.zk.proof_validity_days == 30
        assert settings.port == 9000

    def test_log_level_uppercased(self) -> None:
        """Test lowercase log levels are accepted."""
        assert Settings(log_level="debug").log_level == LogLevel.DEBUG

    def test_liveness_fallback_never_in_production(self) -> None:
        """Test the liveness fallback is disabled in production."""
        chain = ChainSettings(liveness_fallback=True)

        assert Settings(environment=Environment.TESTING, chain=chain).liveness_fallback_enabled
        assert not Settings(
            environment=Environment.PRODUCTION, chain=chain
        ).liveness_fallback_enabled

    def test_circuit_paths(self, tmp_path) -> None:
        """Test artifact paths derive from the build dir and circuit name."""
        zk = ZKSettings(build_dir=tmp_path, circuit_name="income_range")

        assert zk.zkey_path == tmp_path / "income_range" / "income_range.zkey"
        assert zk.wasm_path.name == "income_range.wasm"
        assert zk.verification_key_path.name == "verification_key.json"

    def test_cors_origins_list(self, monkeypatch) -> None:
        """Test comma-separated origins are split."""
        monkeypatch.setenv("CORS_ORIGINS", "http://a.test, http://b.test")

        assert Settings().cors.origins_list == ["http://a.test", "http://b.test"]


class TestLogging:
    """Tests for the logging setup."""

    def test_witnesses_are_redacted(self) -> None:
        """Test income and secrets never reach the log output."""
        event = censor_event(
            {
                "event": "proof_requested",
                "income": 800000,
                "secret": "abc",
                "private_key": "0x11",
                "income_range": "range3",
                "nested": {"random_secret": "abc", "proof_id": "p-1"},
            }
        )

        assert event["income"] == "***REDACTED***"
        assert event["secret"] == "***REDACTED***"
        assert event["private_key"] == "***REDACTED***"
        assert event["income_range"] == "range3"
        assert event["nested"]["random_secret"] == "***REDACTED***"
        assert event["nested"]["proof_id"] == "p-1"

    def test_setup_and_log(self, capsys) -> None:
        """Test JSON logs carry the service name and redact witnesses."""
        setup_logging(log_level="INFO", json_logs=True, service_name="income_proof")
        logger = get_logger("tests.logging")

        logger.info("commitment_requested", income=800000, owner="user-1")

        output = capsys.readouterr().out
        assert "commitment_requested" in output
        assert "income_proof" in output
        assert "800000" not in output

    def test_bound_context(self) -> None:
        """Test context variables bind and clear."""
        bind_context(owner="user-1", proof_id="p-1")
        assert structlog.contextvars.get_contextvars() == {"owner": "user-1", "proof_id": "p-1"}

        clear_context()
        assert structlog.contextvars.get_contextvars() == {}
