"""
Settings Module
===============

Pydantic-based configuration with environment variable loading.

Version: 0.1.0
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Deployment environment."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class ChainMode(str, Enum):
    """Ledger operation mode."""

    MOCK = "mock"
    TESTNET = "testnet"
    MAINNET = "mainnet"


class ProofBackendKind(str, Enum):
    """Proof backend selection."""

    AUTO = "auto"
    SOUND = "sound"
    SIMULATED = "simulated"


class ChainSettings(BaseSettings):
    """Ledger (verifier + payment contract) configuration."""

    model_config = SettingsConfigDict(env_prefix="CHAIN_")

    mode: ChainMode = ChainMode.MOCK

    rpc_url: str = "http://localhost:8545"
    chain_id: int = 11155111
    private_key: SecretStr = SecretStr("")
    verifier_address: str = ""
    payment_contract_address: str = ""
    treasury_address: str = ""

    request_timeout_seconds: float = 15.0
    receipt_timeout_seconds: float = 120.0
    gas_limit: int = 500_000

    # Accept a synthetic verification marker when every ledger tier errors.
    # Ignored in production.
    liveness_fallback: bool = True

    fiat_rate: int = 250_000
    fiat_currency: str = "BDT"


class ZKSettings(BaseSettings):
    """Proof backend configuration."""

    model_config = SettingsConfigDict(env_prefix="ZK_")

    backend: ProofBackendKind = ProofBackendKind.AUTO
    build_dir: Path = Field(
        default_factory=lambda: Path(__file__).parent.parent.parent / "circuits" / "build"
    )
    circuit_name: str = "income_range"
    snarkjs_command: str = "npx snarkjs"
    proving_timeout_seconds: float = 120.0
    proof_validity_days: int = 365

    @property
    def circuit_dir(self) -> Path:
        return self.build_dir / self.circuit_name

    @property
    def wasm_path(self) -> Path:
        return self.circuit_dir / f"{self.circuit_name}_js" / f"{self.circuit_name}.wasm"

    @property
    def zkey_path(self) -> Path:
        return self.circuit_dir / f"{self.circuit_name}.zkey"

    @property
    def verification_key_path(self) -> Path:
        return self.circuit_dir / "verification_key.json"


class CORSSettings(BaseSettings):
    """CORS configuration."""

    model_config = SettingsConfigDict(env_prefix="CORS_")

    origins: str = "http://localhost:3000"
    allow_credentials: bool = True

    @property
    def origins_list(self) -> list[str]:
        """Parse origins string into list."""
        return [o.strip() for o in self.origins.split(",") if o.strip()]


class Settings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables with sensible defaults.
    Build one with `get_settings()` at the composition root and pass it to
    the services that need it.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # General
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = True
    log_level: LogLevel = LogLevel.INFO
    port: int = Field(default=8010, alias="INCOME_PROOF_PORT")

    chain: ChainSettings = Field(default_factory=ChainSettings)
    zk: ZKSettings = Field(default_factory=ZKSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str | LogLevel) -> LogLevel:
        """Ensure log level is uppercase."""
        if isinstance(v, str):
            return LogLevel(v.upper())
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == Environment.PRODUCTION

    @property
    def liveness_fallback_enabled(self) -> bool:
        """Synthetic on-chain markers are never accepted in production."""
        return self.chain.liveness_fallback and not self.is_production


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings.
    """
    return Settings()
