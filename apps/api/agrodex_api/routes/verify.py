"""Public batch verification endpoint."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Response, status
from fastapi.responses import JSONResponse

from agrodex_api.dependencies import get_verification_service
from agrodex_api.services.verification import NotVerified, VerificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["verify"])


def _outcome_response(outcome) -> JSONResponse:
    if isinstance(outcome, NotVerified):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=outcome.to_response())
    return JSONResponse(status_code=status.HTTP_200_OK, content=outcome.to_response())


@router.post("/verify-batch")
def verify_batch(
    payload: Optional[Any] = Body(default=None),
    service: VerificationService = Depends(get_verification_service),
):
    """Verify a certificate by token id and serial number."""
    if not isinstance(payload, dict):
        payload = {}
    outcome = service.verify(payload.get("tokenId"), payload.get("serialNumber"))
    return _outcome_response(outcome)


@router.get("/verify-batch/{token_id}/{serial_number}")
def verify_batch_by_path(
    token_id: str,
    serial_number: str,
    service: VerificationService = Depends(get_verification_service),
):
    """Verify a certificate addressed by path parameters."""
    return _outcome_response(service.verify(token_id, serial_number))


@router.options("/verify-batch")
def verify_batch_options():
    """Bare OPTIONS; browser preflights are answered by the CORS middleware."""
    return Response(status_code=status.HTTP_200_OK)
