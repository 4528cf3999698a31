"""
Ledger Routes
=============

Read-only views of the payment contract and ledger transactions.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from services.income_proof.dependencies import ApiDep
from services.income_proof.responses import to_response


router = APIRouter()


@router.get("/treasury")
async def get_treasury_balance(api: ApiDep) -> JSONResponse:
    return to_response(await api.get_treasury_balance())


@router.get("/transactions/{tx_hash}")
async def get_transaction(tx_hash: str, api: ApiDep) -> JSONResponse:
    return to_response(await api.get_transaction(tx_hash))
