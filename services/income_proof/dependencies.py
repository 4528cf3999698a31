"""
Service Composition
===================

Builds the income proof service graph from settings and exposes it to
route handlers through FastAPI dependencies.

Version: 0.1.0
"""

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, Request

from services.income_proof.services.api import IncomeProofAPI
from services.income_proof.services.lifecycle import ProofLifecycle
from services.income_proof.services.payments import PaymentCoordinator
from taxproof.blockchain import ChainGateway, build_chain_gateway
from taxproof.config import Settings
from taxproof.errors import PermissionDeniedError, ValidationError
from taxproof.logging import get_logger
from taxproof.storage import InMemoryRecordStore, RecordStore
from taxproof.zk import CommitmentScheme, ProofBackend, select_proof_backend


logger = get_logger(__name__)

ADMIN_ROLE = "admin"


@dataclass
class ServiceContainer:
    """Explicitly wired service objects for one application instance."""

    settings: Settings
    store: RecordStore
    backend: ProofBackend
    gateway: ChainGateway
    commitments: CommitmentScheme
    lifecycle: ProofLifecycle
    payments: PaymentCoordinator
    api: IncomeProofAPI


def build_container(
    settings: Settings,
    store: RecordStore | None = None,
    gateway: ChainGateway | None = None,
    backend: ProofBackend | None = None,
) -> ServiceContainer:
    """
    Compose the service graph.

    Raises:
        ConfigurationError: The settings do not describe a usable deployment
    """
    commitments = CommitmentScheme()
    store = store or InMemoryRecordStore()
    backend = backend or select_proof_backend(settings, commitments)
    gateway = gateway or build_chain_gateway(settings)

    lifecycle = ProofLifecycle(store, backend, gateway, settings, commitments)
    payments = PaymentCoordinator(store, lifecycle, gateway, settings)
    api = IncomeProofAPI(lifecycle, payments, backend, gateway, commitments)

    logger.info(
        "income_proof_container_built",
        environment=settings.environment.value,
        proof_backend=backend.provenance.value,
        chain_mode=gateway.mode.value,
        liveness_fallback=settings.liveness_fallback_enabled,
    )
    return ServiceContainer(
        settings=settings,
        store=store,
        backend=backend,
        gateway=gateway,
        commitments=commitments,
        lifecycle=lifecycle,
        payments=payments,
        api=api,
    )


# ============================================================================
# FastAPI Dependencies
# ============================================================================


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_api(container: Annotated[ServiceContainer, Depends(get_container)]) -> IncomeProofAPI:
    return container.api


def get_owner(x_owner_id: Annotated[str, Header()]) -> str:
    """Principal id of the caller, supplied by the upstream auth layer."""
    owner = x_owner_id.strip()
    if not owner:
        raise ValidationError("X-Owner-Id header is empty", field="X-Owner-Id")
    return owner


def get_roles(x_owner_roles: Annotated[str, Header()] = "") -> frozenset[str]:
    """Comma separated roles of the caller, supplied by the upstream auth layer."""
    return frozenset(r.strip().lower() for r in x_owner_roles.split(",") if r.strip())


def require_admin(
    owner: Annotated[str, Depends(get_owner)],
    roles: Annotated[frozenset[str], Depends(get_roles)],
) -> str:
    """
    Principal id of an administrator.

    Raises:
        PermissionDeniedError: Caller does not hold the admin role
    """
    if ADMIN_ROLE not in roles:
        logger.warning("admin_role_required", principal=owner)
        raise PermissionDeniedError("Admin role required", principal=owner)
    return owner


ApiDep = Annotated[IncomeProofAPI, Depends(get_api)]
OwnerDep = Annotated[str, Depends(get_owner)]
AdminDep = Annotated[str, Depends(require_admin)]
