"""Batch verification pipeline."""

import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

from agrodex_api.errors import LedgerError, StoreError, ValidationError
from agrodex_api.ledger.gateway import EventRecord, LedgerGateway
from agrodex_api.models import Token
from agrodex_api.narrative.generator import NarrativeGenerator
from agrodex_api.narrative.prompts import ProvenanceSummaryRequest
from agrodex_api.services.trace import build_trace, timeline_from_trail, trace_response
from agrodex_api.store.service import ProvenanceStore
from agrodex_api.utils.metrics import verification_duration, verifications_total

logger = logging.getLogger(__name__)

TOKEN_ID_RE = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+$")
METADATA_HASH_RE = re.compile(r"^[0-9a-f]{64}$")
SERIAL_RE = re.compile(r"^[0-9]+$")


def validate_certificate_key(token_id: Any, serial_number: Any) -> tuple[str, str]:
    """Validate and normalize a (tokenId, serialNumber) pair."""
    if token_id is None or (isinstance(token_id, str) and not token_id.strip()):
        raise ValidationError("tokenId is required")
    if serial_number is None or (isinstance(serial_number, str) and not serial_number.strip()):
        raise ValidationError("serialNumber is required")
    if not isinstance(token_id, str) or not TOKEN_ID_RE.match(token_id.strip()):
        raise ValidationError("tokenId must be a ledger entity id such as 0.0.12345")

    if isinstance(serial_number, bool):
        raise ValidationError("serialNumber must be a positive integer")
    if isinstance(serial_number, int):
        serial = serial_number
    elif isinstance(serial_number, str) and SERIAL_RE.match(serial_number.strip()):
        serial = int(serial_number.strip())
    else:
        raise ValidationError("serialNumber must be a positive integer")
    if serial < 1:
        raise ValidationError("serialNumber must be a positive integer")

    return token_id.strip(), str(serial)


@dataclass(frozen=True)
class Verified:
    token_id: str
    serial_number: str
    trace: dict
    cached: bool

    def to_response(self) -> dict:
        return trace_response(self.token_id, self.serial_number, self.trace, self.cached)


@dataclass(frozen=True)
class NotVerified:
    """The certificate is not registered: a business outcome, not a failure."""

    token_id: str
    serial_number: str
    reason: str = "not_found"

    @property
    def message(self) -> str:
        return f"Certificate {self.token_id}/{self.serial_number} is not registered"

    def to_response(self) -> dict:
        return {
            "stage": "database_query",
            "verified": False,
            "reason": self.reason,
            "error": self.message,
            "tokenId": self.token_id,
            "serialNumber": int(self.serial_number),
        }


VerificationOutcome = Union[Verified, NotVerified]


class VerificationService:
    """Resolves a certificate to a verification trace, cached per (token, serial)."""

    def __init__(
        self,
        store: ProvenanceStore,
        ledger: LedgerGateway,
        narrative: NarrativeGenerator,
    ):
        """Initialize verification service."""
        self.store = store
        self.ledger = ledger
        self.narrative = narrative

    def _cached_trace(self, token_id: str, serial_number: str) -> Optional[dict]:
        """Cached trace with a narrative; read failures count as a miss."""
        try:
            record = self.store.get_verification(token_id, serial_number)
        except StoreError as e:
            logger.warning(f"Verification cache read failed for {token_id}/{serial_number}, treating as miss: {e.message}")
            return None
        if record is None or not (record.trace or {}).get("narrative"):
            return None
        return record.trace

    def _certificate_metadata(self, token: Token) -> dict:
        """Ledger metadata, enriched with the off-ledger full metadata when available."""
        metadata = self.ledger.query_certificate_metadata(token.token_id, int(token.serial_number))
        if metadata is None:
            raise LedgerError(
                f"Certificate {token.token_id}/{token.serial_number} not found on ledger",
                stage="ledger_query",
                hint="The mirror node may lag behind consensus. Retry shortly.",
            )
        metadata_hash = (metadata.get("metadata") or "").strip()
        if METADATA_HASH_RE.match(metadata_hash):
            try:
                record = self.store.get_nft_metadata_by_hash(metadata_hash)
            except StoreError as e:
                logger.warning(f"Full metadata lookup failed for {metadata_hash}: {e.message}")
                record = None
            if record is not None:
                metadata = {**metadata, "metadataHash": metadata_hash, "fullMetadata": record.full_metadata}
        return metadata

    def _event_trail(self, token: Token) -> list[EventRecord]:
        references = list(token.ledger_event_refs or [])
        try:
            records = self.ledger.query_event_trail(references)
        except LedgerError as e:
            logger.warning(f"Event trail unavailable for {token.token_id}/{token.serial_number}: {e.message}")
            return []
        if len(records) < len(references):
            logger.warning(
                f"Event trail partially resolved for {token.token_id}/{token.serial_number}: "
                f"{len(records)}/{len(references)}"
            )
        return records

    def verify(self, token_id: Any, serial_number: Any) -> VerificationOutcome:
        """Verify a certificate, returning the cached trace when one exists."""
        token_id, serial_number = validate_certificate_key(token_id, serial_number)
        start = time.monotonic()

        cached = self._cached_trace(token_id, serial_number)
        if cached is not None:
            logger.info(f"Verification cache hit for {token_id}/{serial_number}")
            verifications_total.labels(outcome="cached").inc()
            verification_duration.labels(cached="true").observe(time.monotonic() - start)
            return Verified(token_id, serial_number, cached, cached=True)

        token = self.store.get_token(token_id, serial_number)
        if token is None:
            logger.info(f"Certificate not registered: {token_id}/{serial_number}")
            verifications_total.labels(outcome="not_found").inc()
            return NotVerified(token_id, serial_number)

        try:
            metadata = self._certificate_metadata(token)
        except LedgerError:
            verifications_total.labels(outcome="failed").inc()
            raise
        records = self._event_trail(token)

        narrative = self.narrative.generate(
            ProvenanceSummaryRequest(events=timeline_from_trail(records))
        )

        trace = build_trace(metadata, token.ledger_event_refs or [], records, narrative)
        self.store.upsert_verification(token_id, serial_number, trace)

        logger.info(
            f"Verified {token_id}/{serial_number}: {len(records)} events, "
            f"trustScore={trace['narrative'].get('trustScore')}"
        )
        verifications_total.labels(outcome="fresh").inc()
        verification_duration.labels(cached="false").observe(time.monotonic() - start)
        return Verified(token_id, serial_number, trace, cached=False)
