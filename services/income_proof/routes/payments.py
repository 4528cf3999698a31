"""
Tax Payment Routes
==================

Proof-gated tax payments and receipts.
"""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from services.income_proof.dependencies import ApiDep, OwnerDep
from services.income_proof.responses import to_response


router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================


class PreparePaymentRequest(BaseModel):
    """Request to prepare a tax payment backed by a verified proof."""

    proof_id: str = Field(..., description="Verified income proof id")
    amount: int = Field(..., description="Tax amount in BDT")
    payer_address: str = Field(..., description="Wallet paying the tax")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "proof_id": "7d1f0c3e-...",
                    "amount": 120000,
                    "payer_address": "0x" + "ab" * 20,
                }
            ]
        }
    }


class ConfirmPaymentRequest(BaseModel):
    """Confirm a pending payment, optionally with an externally sent transaction."""

    chain_tx_ref: str | None = Field(
        default=None,
        description="Hash of a transaction the payer already sent",
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post("")
async def prepare_payment(
    request: PreparePaymentRequest,
    api: ApiDep,
    owner: OwnerDep,
) -> JSONResponse:
    """Create a pending payment and return the ledger call to make."""
    result = await api.prepare_payment(
        owner,
        request.proof_id,
        request.amount,
        request.payer_address,
    )
    return to_response(result, success_code=status.HTTP_201_CREATED)


@router.get("")
async def list_payments(
    api: ApiDep,
    owner: OwnerDep,
    proof_id: str | None = None,
) -> JSONResponse:
    return to_response(await api.list_payments(owner, proof_id))


@router.get("/{payment_id}")
async def get_payment(payment_id: str, api: ApiDep, owner: OwnerDep) -> JSONResponse:
    return to_response(await api.get_payment(owner, payment_id))


@router.post("/{payment_id}/confirm")
async def confirm_payment(
    payment_id: str,
    api: ApiDep,
    owner: OwnerDep,
    request: ConfirmPaymentRequest | None = None,
) -> JSONResponse:
    chain_tx_ref = request.chain_tx_ref if request is not None else None
    return to_response(await api.confirm_payment(owner, payment_id, chain_tx_ref))


@router.get("/{payment_id}/receipt")
async def get_receipt(payment_id: str, api: ApiDep, owner: OwnerDep) -> JSONResponse:
    """Receipt of a completed payment, with the ledger check outcome."""
    return to_response(await api.get_receipt(owner, payment_id))
