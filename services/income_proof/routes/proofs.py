"""
Income Proof Routes
===================

Commitments, proof generation, verification and lifecycle endpoints.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from services.income_proof.dependencies import AdminDep, ApiDep, OwnerDep
from services.income_proof.responses import to_response


router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================


class CommitmentRequest(BaseModel):
    """Request to commit to an income."""

    income: int = Field(..., description="Annual income in BDT (never stored)")
    secret: str | None = Field(
        default=None,
        description="Commitment secret; generated and returned once when omitted",
    )

    model_config = {"json_schema_extra": {"examples": [{"income": 800000}]}}


class GenerateProofRequest(BaseModel):
    """Request to prove income exceeds a range threshold."""

    income: int = Field(..., description="Annual income in BDT")
    secret: str = Field(..., description="Secret used for the commitment")
    income_range: str = Field(..., description="Range id, label or '> N' expression")

    model_config = {
        "json_schema_extra": {
            "examples": [{"income": 800000, "secret": "9f2c...", "income_range": "range3"}]
        }
    }


class OnChainRequest(BaseModel):
    """Ledger address acting for the principal."""

    address: str = Field(..., description="0x-prefixed 20-byte address")


class RevokeRequest(BaseModel):
    """Administrative request to revoke another principal's proof."""

    owner: str = Field(..., min_length=1, description="Principal owning the proof")
    reason: str | None = Field(default=None, max_length=500)


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/parameters")
async def get_public_parameters(api: ApiDep) -> JSONResponse:
    """Circuit, curve, verification key source and the income range menu."""
    return to_response(await api.get_public_parameters())


@router.post("/commitment")
async def generate_commitment(
    request: CommitmentRequest,
    api: ApiDep,
    owner: OwnerDep,
) -> JSONResponse:
    """
    Commit to an income and open a proof record.

    The income is hashed with the secret and discarded.
    """
    result = await api.generate_commitment(owner, request.income, request.secret)
    return to_response(result, success_code=status.HTTP_201_CREATED)


@router.get("")
async def list_proofs(api: ApiDep, owner: OwnerDep) -> JSONResponse:
    return to_response(await api.list_proofs(owner))


@router.get("/{proof_id}")
async def get_proof(proof_id: str, api: ApiDep, owner: OwnerDep) -> JSONResponse:
    return to_response(await api.get_proof(owner, proof_id))


@router.post("/{proof_id}/generate")
async def generate_proof(
    proof_id: str,
    request: GenerateProofRequest,
    api: ApiDep,
    owner: OwnerDep,
) -> JSONResponse:
    """Generate a Groth16 proof that the committed income exceeds the range threshold."""
    result = await api.generate_proof(
        owner,
        proof_id,
        request.income,
        request.secret,
        request.income_range,
    )
    return to_response(result)


@router.post("/{proof_id}/verify")
async def verify_proof(proof_id: str, api: ApiDep, owner: OwnerDep) -> JSONResponse:
    return to_response(await api.verify_proof(owner, proof_id))


@router.post("/{proof_id}/verify-on-chain")
async def verify_proof_on_chain(
    proof_id: str,
    request: OnChainRequest,
    api: ApiDep,
    owner: OwnerDep,
) -> JSONResponse:
    """Verify through the income verifier contract and record the outcome."""
    return to_response(await api.verify_proof_on_chain(owner, proof_id, request.address))


@router.post("/{proof_id}/anchor")
async def anchor_commitment(
    proof_id: str,
    request: OnChainRequest,
    api: ApiDep,
    owner: OwnerDep,
) -> JSONResponse:
    return to_response(await api.anchor_commitment(owner, proof_id, request.address))


@router.post("/{proof_id}/revoke")
async def revoke_proof(
    proof_id: str,
    request: RevokeRequest,
    api: ApiDep,
    admin: AdminDep,
) -> JSONResponse:
    return to_response(
        await api.revoke_proof(request.owner, proof_id, request.reason, revoked_by=admin)
    )


# Expiry only succeeds once expires_at has passed, so the owner may trigger it.
@router.post("/{proof_id}/expire")
async def expire_proof(proof_id: str, api: ApiDep, owner: OwnerDep) -> JSONResponse:
    return to_response(await api.expire_proof(owner, proof_id))
