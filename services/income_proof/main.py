"""
Income Proof Service - Main Application
=======================================

FastAPI application for ZK income proofs and proof-gated tax payments.

Version: 0.1.0
"""

import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from services.income_proof.dependencies import ServiceContainer, build_container
from services.income_proof.responses import status_code_for
from services.income_proof.routes import chain, payments, proofs
from taxproof.config import Settings, get_settings
from taxproof.errors import TaxProofError, ValidationError
from taxproof.logging import bind_context, clear_context, get_logger, setup_logging
from taxproof.models import HealthResponse, OperationResult


logger = get_logger(__name__)

SERVICE_NAME = "income-proof"
SERVICE_VERSION = "0.1.0"
REQUEST_ID_HEADER = "X-Request-Id"


def create_app(
    settings: Settings | None = None,
    container: ServiceContainer | None = None,
) -> FastAPI:
    """
    Build the application.

    The service graph is composed here rather than at startup so that a
    misconfigured deployment fails before serving anything.

    Raises:
        ConfigurationError: The settings do not describe a usable deployment
    """
    settings = settings or (container.settings if container else get_settings())

    setup_logging(
        log_level=settings.log_level.value,
        json_logs=settings.is_production,
        service_name="income_proof",
    )

    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> Any:
        """Application lifespan manager."""
        logger.info(
            "income_proof_service_starting",
            environment=settings.environment.value,
            port=settings.port,
        )

        try:
            await container.gateway.connect()
            logger.info("chain_gateway_connected", mode=container.gateway.mode.value)
        except Exception as e:
            logger.error("startup_failed", error=str(e))
            raise

        yield

        logger.info("income_proof_service_shutting_down")
        await container.gateway.disconnect()

    app = FastAPI(
        title="TaxProof Income Proof Service",
        description="Zero-knowledge income proofs and proof-gated tax payments",
        version=SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins_list,
        allow_credentials=settings.cors.allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next: Any) -> Response:
        """Bind request id, path and caller to every log entry of the request."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        clear_context()
        bind_context(
            request_id=request_id,
            path=request.url.path,
            owner=request.headers.get("X-Owner-Id"),
        )
        try:
            response = await call_next(request)
        finally:
            clear_context()
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    # ========================================================================
    # Health Check Endpoints
    # ========================================================================

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health of the record store and the ledger gateway."""
        components: dict[str, dict[str, Any]] = {
            "store": await container.store.health_check(),
            "blockchain": await container.api.health_check(),
        }
        all_healthy = all(c.get("status") == "healthy" for c in components.values())

        return HealthResponse(
            status="healthy" if all_healthy else "degraded",
            service=SERVICE_NAME,
            version=SERVICE_VERSION,
            components=components,
        )

    @app.get("/", tags=["Health"])
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {
            "service": "TaxProof Income Proof Service",
            "version": SERVICE_VERSION,
            "docs": "/docs",
        }

    # ========================================================================
    # Include Routers
    # ========================================================================

    app.include_router(proofs.router, prefix="/api/v1/proofs", tags=["Income Proofs"])
    app.include_router(payments.router, prefix="/api/v1/payments", tags=["Tax Payments"])
    app.include_router(chain.router, prefix="/api/v1/chain", tags=["Ledger"])

    # ========================================================================
    # Error Handlers
    # ========================================================================

    @app.exception_handler(TaxProofError)
    async def domain_exception_handler(request: Request, exc: TaxProofError) -> JSONResponse:
        """Domain errors raised outside the API facade, e.g. by dependencies."""
        logger.warning(
            "domain_exception",
            kind=exc.kind.value,
            error=exc.message,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status_code_for(exc.kind),
            content=OperationResult.fail(exc).model_dump(mode="json"),
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        """Malformed request bodies become validation_error results."""
        errors = [
            {"loc": list(e["loc"]), "msg": e["msg"], "type": e["type"]} for e in exc.errors()
        ]
        error = ValidationError("Invalid request", errors=errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=OperationResult.fail(error).model_dump(mode="json"),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.error(
            "unhandled_exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=OperationResult.fail(TaxProofError("Internal server error")).model_dump(
                mode="json"
            ),
        )

    return app


# ============================================================================
# Run with Uvicorn
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "services.income_proof.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
        reload=settings.debug,
    )
