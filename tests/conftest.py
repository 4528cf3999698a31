"""
Test Configuration
==================

Pytest fixtures for TaxProof tests.
"""

import os
from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Set test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ["CHAIN_MODE"] = "mock"
os.environ["ZK_BACKEND"] = "simulated"

from services.income_proof.dependencies import ServiceContainer, build_container  # noqa: E402
from services.income_proof.services.api import IncomeProofAPI  # noqa: E402
from services.income_proof.services.lifecycle import ProofLifecycle  # noqa: E402
from services.income_proof.services.payments import PaymentCoordinator  # noqa: E402
from taxproof.blockchain import MockVerifierContract, SimulatedChainGateway  # noqa: E402
from taxproof.config import (  # noqa: E402
    ChainSettings,
    Environment,
    ProofBackendKind,
    Settings,
    ZKSettings,
)
from taxproof.storage import InMemoryRecordStore  # noqa: E402
from taxproof.zk import CommitmentScheme, SimulatedProofBackend  # noqa: E402


OWNER = "user-1"
INCOME = 800_000
SECRET = "s3cr3t-for-tests"
WALLET = "0x" + "ab" * 20


class FakeClock:
    """Settable clock for expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    """Use asyncio backend for async tests."""
    return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Testing settings: simulated proofs, simulated ledger, no circuit artifacts."""
    return Settings(
        environment=Environment.TESTING,
        chain=ChainSettings(mode="mock"),
        zk=ZKSettings(backend=ProofBackendKind.SIMULATED, build_dir=tmp_path / "build"),
    )


@pytest.fixture
def production_settings(tmp_path: Path) -> Settings:
    """Production settings that would still pick the simulated ledger."""
    return Settings(
        environment=Environment.PRODUCTION,
        chain=ChainSettings(mode="mock"),
        zk=ZKSettings(backend=ProofBackendKind.SIMULATED, build_dir=tmp_path / "build"),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def commitments() -> CommitmentScheme:
    return CommitmentScheme()


@pytest.fixture
def store() -> InMemoryRecordStore:
    """Fresh in-memory record store."""
    return InMemoryRecordStore()


@pytest.fixture
def gateway(settings: Settings) -> SimulatedChainGateway:
    """Simulated ledger accepting any well-formed proof."""
    return SimulatedChainGateway(settings)


@pytest.fixture
def strict_gateway(settings: Settings) -> SimulatedChainGateway:
    """Simulated ledger accepting only registered proofs."""
    return SimulatedChainGateway(settings, MockVerifierContract(accept_all_well_formed=False))


@pytest.fixture
def backend(settings: Settings, commitments: CommitmentScheme) -> SimulatedProofBackend:
    return SimulatedProofBackend(settings, commitments)


@pytest.fixture
def lifecycle(
    store: InMemoryRecordStore,
    backend: SimulatedProofBackend,
    gateway: SimulatedChainGateway,
    settings: Settings,
    commitments: CommitmentScheme,
    clock: FakeClock,
) -> ProofLifecycle:
    return ProofLifecycle(store, backend, gateway, settings, commitments, clock=clock)


@pytest.fixture
def payments(
    store: InMemoryRecordStore,
    lifecycle: ProofLifecycle,
    gateway: SimulatedChainGateway,
    settings: Settings,
    clock: FakeClock,
) -> PaymentCoordinator:
    return PaymentCoordinator(store, lifecycle, gateway, settings, clock=clock)


@pytest.fixture
def api(
    lifecycle: ProofLifecycle,
    payments: PaymentCoordinator,
    backend: SimulatedProofBackend,
    gateway: SimulatedChainGateway,
    commitments: CommitmentScheme,
) -> IncomeProofAPI:
    return IncomeProofAPI(lifecycle, payments, backend, gateway, commitments)


@pytest.fixture
def container(
    settings: Settings,
    store: InMemoryRecordStore,
    gateway: SimulatedChainGateway,
) -> ServiceContainer:
    return build_container(settings, store=store, gateway=gateway)


@pytest_asyncio.fixture
async def income_proof_client(container: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """Create test client for the Income Proof Service."""
    from services.income_proof.main import create_app

    app = create_app(container=container)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Owner-Id": OWNER},
    ) as client:
        yield client


@pytest_asyncio.fixture
async def verified_proof(lifecycle: ProofLifecycle):
    """A proof record that has been generated and verified locally."""
    record = await lifecycle.create_from_income(OWNER, INCOME, SECRET)
    await lifecycle.generate_proof(record.id, OWNER, INCOME, SECRET, "range3")
    record, _ = await lifecycle.verify_locally(record.id, OWNER)
    return record
