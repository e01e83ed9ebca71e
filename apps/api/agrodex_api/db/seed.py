"""Demo data: one coffee batch with a three-event trail and a certificate."""

import logging

from sqlalchemy.orm import Session

from agrodex_api.ledger.gateway import LedgerGateway
from agrodex_api.narrative.generator import NarrativeGenerator
from agrodex_api.services.registration import RegistrationService
from agrodex_api.services.tokenization import TokenizationService
from agrodex_api.store.service import ProvenanceStore

logger = logging.getLogger(__name__)

DEMO_PHOTO_URL = "https://i.imgur.com/g8vA5T8.jpeg"
DEMO_LOCATION = "Kigali Highlands, Rwanda"


def seed_demo(db: Session, ledger: LedgerGateway, narrative: NarrativeGenerator) -> dict:
    """Register, trace and tokenize a demo batch. Returns the tokenization result."""
    store = ProvenanceStore(db)
    registration = RegistrationService(store, ledger, narrative)

    registered = registration.register(
        product_type="Organic Coffee Beans",
        quantity="500 kg",
        location=DEMO_LOCATION,
        harvest_date="10-09-2025",
        photo_url=DEMO_PHOTO_URL,
    )
    batch_id = registered["batchId"]
    logger.info(f"Demo batch {batch_id} registered: {registered['hcsTransactionId']}")

    registration.record_event(
        batch_id,
        event_type="PLANTING",
        location=DEMO_LOCATION,
        notes="Arabica Red Bourbon",
        timestamp="2025-01-15T10:00:00+00:00",
    )
    recorded = registration.record_event(
        batch_id,
        event_type="SHIPPING",
        location="Port of Mombasa",
        timestamp="2025-09-15T11:00:00+00:00",
    )

    tokenized = TokenizationService(store, ledger, narrative).tokenize(
        recorded["hcsTransactionIds"], batch_id=batch_id
    )
    logger.info(f"Demo certificate {tokenized['tokenId']}/{tokenized['serialNumber']} minted")
    return tokenized
