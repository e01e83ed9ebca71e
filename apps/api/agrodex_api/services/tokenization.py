"""Certificate tokenization for registered event trails."""

import hashlib
import json
import logging
from typing import Optional

from agrodex_api.errors import ConflictError, LedgerError, NotFoundError, StoreError, ValidationError
from agrodex_api.ledger.gateway import LedgerGateway
from agrodex_api.models import Batch
from agrodex_api.narrative.generator import NarrativeGenerator
from agrodex_api.narrative.prompts import ProvenanceSummaryRequest, TimelineEvent
from agrodex_api.narrative.result import Degraded
from agrodex_api.services.trace import build_trace, utc_now_iso
from agrodex_api.store.service import ProvenanceStore

logger = logging.getLogger(__name__)


def metadata_digest(full_metadata: dict) -> str:
    """SHA-256 hex digest of the canonical JSON form."""
    canonical = json.dumps(full_metadata, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def synthetic_timeline(
    event_references: list[str],
    location: Optional[str],
    operator: str,
    timestamp: str,
) -> list[TimelineEvent]:
    """One timeline entry per reference, in submission order."""
    return [
        TimelineEvent(
            timestamp=timestamp,
            event=f"Event {index}",
            tx_id=reference,
            location=location or "Unknown",
            operator=operator,
        )
        for index, reference in enumerate(event_references, start=1)
    ]


class TokenizationService:
    """Mints a provenance certificate over a list of ledger events."""

    def __init__(
        self,
        store: ProvenanceStore,
        ledger: LedgerGateway,
        narrative: NarrativeGenerator,
    ):
        """Initialize tokenization service."""
        self.store = store
        self.ledger = ledger
        self.narrative = narrative

    def _load_batch(self, batch_id: Optional[int]) -> Optional[Batch]:
        if batch_id is None:
            return None
        batch = self.store.get_batch(batch_id)
        if batch is None:
            raise NotFoundError(f"Batch {batch_id} not found")
        if batch.token_id is not None:
            raise ConflictError(
                f"Batch {batch_id} is already tokenized as {batch.token_id}/{batch.serial_number}",
                stage="validation",
            )
        return batch

    def tokenize(
        self,
        event_references: list[str],
        batch_id: Optional[int] = None,
        operator: Optional[str] = None,
    ) -> dict:
        """
        Summarize the trail, mint the certificate and persist it.

        A degraded narrative does not fail tokenization. A ledger failure does,
        before anything is written to the store.
        """
        references = [str(ref).strip() for ref in event_references or [] if str(ref).strip()]
        if not references or len(references) != len(event_references):
            raise ValidationError("hcsTransactionIds must be a non-empty list of transaction ids")

        batch = self._load_batch(batch_id)
        operator = operator or self.ledger.operator_id
        now = utc_now_iso()

        narrative = self.narrative.generate(
            ProvenanceSummaryRequest(
                events=synthetic_timeline(references, batch.location if batch else None, operator, now)
            )
        )
        if isinstance(narrative, Degraded):
            logger.warning(f"Tokenizing without provenance summary: {narrative.error}")

        full_metadata = {
            "hcs": references,
            "bid": batch.id if batch else None,
            "ts": now,
            "batch": {
                "productType": batch.product_type,
                "quantity": batch.quantity,
                "location": batch.location,
                "harvestDate": batch.harvest_date,
            }
            if batch
            else None,
        }
        digest = metadata_digest(full_metadata)
        minted = self.ledger.mint_certificate(self.ledger.operator_id, digest.encode("ascii"))
        token_id, serial_number = minted.token_id, str(minted.serial_number)

        try:
            self.store.insert_nft_metadata(digest, token_id, serial_number, full_metadata)
            self.store.insert_token(token_id, serial_number, references, batch.id if batch else None)
            if batch is not None:
                self.store.attach_certificate(batch, token_id, serial_number)
        except StoreError as e:
            logger.error(f"Certificate {token_id}/{serial_number} minted but not recorded: {e.message}")
            raise

        try:
            records = self.ledger.query_event_trail(references)
        except LedgerError as e:
            logger.warning(f"Event trail unavailable while tokenizing {token_id}: {e.message}")
            records = []
        nft_metadata = {
            "tokenId": token_id,
            "serialNumber": minted.serial_number,
            "accountId": self.ledger.operator_id,
            "metadata": digest,
            "metadataHash": digest,
            "fullMetadata": full_metadata,
        }
        trace = build_trace(nft_metadata, references, records, narrative, verified_at=now)
        self.store.upsert_verification(token_id, serial_number, trace)

        logger.info(f"Certificate {token_id}/{serial_number} minted for {len(references)} events")
        return {
            "success": True,
            "tokenId": token_id,
            "serialNumber": minted.serial_number,
            "batchId": batch.id if batch else None,
            "hcsTransactionIds": references,
            "metadataHash": digest,
            "ai_summary": trace["narrative"],
            "message": "Certificate minted",
        }
