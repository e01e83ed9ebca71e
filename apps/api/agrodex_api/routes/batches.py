"""Batch registration and tokenization endpoints."""

import logging
from typing import Optional, Union

from fastapi import APIRouter, Depends, Header, Request, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from agrodex_api.auth.jwt import AuthenticatedUser, require_user
from agrodex_api.dependencies import get_registration_service, get_store, get_tokenization_service
from agrodex_api.errors import NotFoundError
from agrodex_api.middleware.correlation import get_correlation_id
from agrodex_api.services.registration import RegistrationService
from agrodex_api.services.tokenization import TokenizationService
from agrodex_api.store.service import ProvenanceStore
from agrodex_api.utils.dates import normalize_date

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["batches"])


class RegisterBatchRequest(BaseModel):
    """Batch registration request model."""

    model_config = ConfigDict(populate_by_name=True)

    product_type: str = Field(..., alias="productType", min_length=1, max_length=100)
    quantity: Union[str, int, float] = Field(..., description="Quantity with unit, e.g. '500 kg'")
    location: str = Field(..., min_length=1, max_length=255)
    harvest_date: str = Field(..., alias="harvestDate", description="DD-MM-YYYY or YYYY-MM-DD")
    photo_url: Optional[str] = Field(None, alias="photoUrl")
    image_data: Optional[str] = Field(None, alias="imageData", description="Image URL (legacy field)")

    @field_validator("product_type", "location")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value

    @field_validator("quantity")
    @classmethod
    def quantity_text(cls, value: Union[str, int, float]) -> str:
        if isinstance(value, bool):
            raise ValueError("must be a string or number")
        text = str(value).strip()
        if not text:
            raise ValueError("must not be blank")
        return text

    @field_validator("harvest_date")
    @classmethod
    def normalize_harvest_date(cls, value: str) -> str:
        return normalize_date(value)

    @field_validator("photo_url", "image_data")
    @classmethod
    def http_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("must be an http(s) URL; upload the image and pass its URL")
        return value


class BatchEventRequest(BaseModel):
    """Supply-chain event request model."""

    model_config = ConfigDict(populate_by_name=True)

    event_type: str = Field(..., alias="type", min_length=1, max_length=50, description="PLANTING, HARVEST, SHIPPING, ...")
    location: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = Field(None, max_length=500)
    timestamp: Optional[str] = Field(None, description="ISO 8601 event time; defaults to now")


class TokenizeBatchRequest(BaseModel):
    """Tokenization request model."""

    model_config = ConfigDict(populate_by_name=True)

    hcs_transaction_ids: list[str] = Field(..., alias="hcsTransactionIds", min_length=1)
    batch_id: Optional[int] = Field(None, alias="batchId")


@router.post("/register-batch", status_code=status.HTTP_200_OK)
def register_batch(
    request_data: RegisterBatchRequest,
    request: Request,
    x_dry_run: Optional[str] = Header(None),
    user: AuthenticatedUser = Depends(require_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """Register a harvest batch on the ledger."""
    result = service.register(
        product_type=request_data.product_type,
        quantity=request_data.quantity,
        location=request_data.location,
        harvest_date=request_data.harvest_date,
        photo_url=request_data.photo_url or request_data.image_data,
        operator=user.user_id,
        dry_run=x_dry_run == "1",
    )
    return {"id": get_correlation_id(request), **result}


@router.post("/batches/{batch_id}/events")
def record_batch_event(
    batch_id: int,
    request_data: BatchEventRequest,
    request: Request,
    user: AuthenticatedUser = Depends(require_user),
    service: RegistrationService = Depends(get_registration_service),
):
    """Record a further supply-chain event for a batch."""
    result = service.record_event(
        batch_id,
        event_type=request_data.event_type,
        location=request_data.location,
        notes=request_data.notes,
        timestamp=request_data.timestamp,
        operator=user.user_id,
    )
    return {"id": get_correlation_id(request), **result}


@router.get("/batches/{batch_id}")
def get_batch(
    batch_id: int,
    user: AuthenticatedUser = Depends(require_user),
    store: ProvenanceStore = Depends(get_store),
):
    """Get a batch with its event references and certificate."""
    batch = store.get_batch(batch_id)
    if batch is None:
        raise NotFoundError(f"Batch {batch_id} not found")
    return {
        "id": batch.id,
        "name": batch.name,
        "productType": batch.product_type,
        "quantity": batch.quantity,
        "harvestDate": batch.harvest_date,
        "location": batch.location,
        "photoUrl": batch.photo_url,
        "hcsTransactionIds": batch.ledger_event_refs or [],
        "tokenId": batch.token_id,
        "serialNumber": int(batch.serial_number) if batch.serial_number else None,
        "ai_analysis": batch.narrative_snapshot,
        "createdAt": batch.created_at.isoformat() if batch.created_at else None,
    }


@router.post("/tokenize-batch")
def tokenize_batch(
    request_data: TokenizeBatchRequest,
    request: Request,
    user: AuthenticatedUser = Depends(require_user),
    service: TokenizationService = Depends(get_tokenization_service),
):
    """Mint a provenance certificate over recorded ledger events."""
    result = service.tokenize(
        request_data.hcs_transaction_ids,
        batch_id=request_data.batch_id,
        operator=user.user_id,
    )
    return {"id": get_correlation_id(request), **result}
