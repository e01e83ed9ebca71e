"""Batch registration and supply-chain event recording."""

import logging
from typing import Optional

from agrodex_api.errors import ConflictError, NotFoundError, ValidationError
from agrodex_api.ledger.gateway import LedgerGateway
from agrodex_api.narrative.generator import NarrativeGenerator
from agrodex_api.narrative.prompts import ImageAnalysisRequest
from agrodex_api.narrative.result import Degraded
from agrodex_api.services.trace import utc_now_iso
from agrodex_api.store.service import ProvenanceStore
from agrodex_api.utils.dates import normalize_date
from agrodex_api.utils.metrics import batches_registered_total

logger = logging.getLogger(__name__)


class RegistrationService:
    """Registers harvest batches on the ledger and in the store."""

    def __init__(
        self,
        store: ProvenanceStore,
        ledger: LedgerGateway,
        narrative: NarrativeGenerator,
    ):
        """Initialize registration service."""
        self.store = store
        self.ledger = ledger
        self.narrative = narrative

    def register(
        self,
        *,
        product_type: str,
        quantity: str,
        location: str,
        harvest_date: str,
        photo_url: Optional[str] = None,
        operator: Optional[str] = None,
        dry_run: bool = False,
    ) -> dict:
        """
        Register a batch.

        Image analysis is best effort. The ledger submission is not: if it fails
        nothing is persisted and the ledger error propagates.
        """
        try:
            harvest_date = normalize_date(harvest_date)
        except ValueError as e:
            raise ValidationError(str(e), details={"field": "harvestDate"}) from e

        normalized = {
            "productType": product_type,
            "quantity": quantity,
            "location": location,
            "harvestDate": harvest_date,
            "photoUrl": photo_url,
        }
        if dry_run:
            logger.info(f"Dry-run registration for {product_type} harvested {harvest_date}")
            return {"success": True, "dryRun": True, "normalized": normalized}

        analysis = None
        if photo_url:
            result = self.narrative.generate(ImageAnalysisRequest(photo_url=photo_url))
            analysis = result.as_payload()
            if isinstance(result, Degraded):
                logger.warning(f"Image analysis unavailable for {product_type}: {result.error}")

        event = {
            "type": "REGISTRATION",
            **normalized,
            "operator": operator or self.ledger.operator_id,
            "timestamp": utc_now_iso(),
        }
        if analysis is not None and "error" not in analysis:
            event["aiTags"] = analysis.get("tags", [])
        submission = self.ledger.submit_event(event)

        batch = self.store.insert_batch(
            name=f"{product_type} - {harvest_date}",
            product_type=product_type,
            quantity=quantity,
            harvest_date=harvest_date,
            location=location,
            photo_url=photo_url,
            ledger_event_refs=[submission.event_reference],
            narrative_snapshot=analysis,
        )
        batches_registered_total.inc()
        logger.info(f"Batch {batch.id} registered: {submission.event_reference}")

        return {
            "success": True,
            "batchId": batch.id,
            "hcsTransactionId": submission.event_reference,
            "confirmationStatus": submission.confirmation_status.value,
            "harvestDate": harvest_date,
            "ai_analysis": analysis,
            "message": "Batch registered on the ledger",
        }

    def record_event(
        self,
        batch_id: int,
        *,
        event_type: str,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        timestamp: Optional[str] = None,
        operator: Optional[str] = None,
    ) -> dict:
        """Submit a further supply-chain event for a batch and append its reference."""
        batch = self.store.get_batch(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        if batch.token_id is not None:
            raise ConflictError(
                f"Batch {batch_id} is already tokenized; its event trail is sealed",
                stage="validation",
            )

        event = {
            "type": event_type.upper(),
            "batchId": batch.id,
            "productType": batch.product_type,
            "location": location or batch.location,
            "operator": operator or self.ledger.operator_id,
            "timestamp": timestamp or utc_now_iso(),
        }
        if notes:
            event["notes"] = notes
        submission = self.ledger.submit_event(event)
        batch = self.store.append_batch_event(batch, submission.event_reference)
        logger.info(f"Batch {batch.id} event {event['type']} recorded: {submission.event_reference}")

        return {
            "success": True,
            "batchId": batch.id,
            "hcsTransactionId": submission.event_reference,
            "hcsTransactionIds": list(batch.ledger_event_refs),
        }
