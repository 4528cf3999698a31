"""
HTTP Responses
==============

Maps tagged operation results onto HTTP responses.

Version: 0.1.0
"""

from fastapi import status
from fastapi.responses import JSONResponse

from taxproof.errors import ErrorKind
from taxproof.models import OperationResult


ERROR_STATUS_CODES: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: status.HTTP_400_BAD_REQUEST,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.STATE_CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.COMMITMENT_MISMATCH: status.HTTP_409_CONFLICT,
    ErrorKind.CRYPTO_VERIFICATION_FAILURE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.CHAIN: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.CONFIGURATION: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.INTERNAL: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(kind: ErrorKind) -> int:
    return ERROR_STATUS_CODES.get(kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def to_response(result: OperationResult, success_code: int = status.HTTP_200_OK) -> JSONResponse:
    """Serialize a result; error results carry the status code of their kind."""
    if result.success:
        code = success_code
    else:
        code = status_code_for(result.error.kind)
    return JSONResponse(status_code=code, content=result.model_dump(mode="json"))
