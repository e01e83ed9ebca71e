"""Pytest configuration and fixtures."""

import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["ENVIRONMENT"] = "test"
os.environ["LEDGER_PROVIDER"] = "local"

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from agrodex_api.auth.jwt import create_access_token
from agrodex_api.db.base import Base
from agrodex_api.db.session import get_db
from agrodex_api.ledger.local import LocalLedgerGateway
from agrodex_api.ledger.provider import get_ledger
from agrodex_api.main import app
from agrodex_api.models import Batch
from agrodex_api.narrative.client import GeminiClient
from agrodex_api.narrative.generator import NarrativeGenerator, get_narrative_generator
from agrodex_api.services.tokenization import metadata_digest
from agrodex_api.store.service import ProvenanceStore

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")

PROVENANCE_OUTPUT = {
    "summary_en": "Coffee registered at Kigali Highlands and shipped via Mombasa.",
    "summary_fr": "Café enregistré à Kigali Highlands et expédié via Mombasa.",
    "timeline": [],
    "trustScore": 87,
    "trustExplanation": "All stages present with consistent timestamps.",
}
IMAGE_OUTPUT = {
    "caption": "Green coffee beans in a burlap sack.",
    "anomalies": [],
    "confidence": 0.9,
    "tags": ["organic", "fresh"],
}
MODEL_OUTPUTS = {
    "quality inspector": IMAGE_OUTPUT,
    "traceability analyst": PROVENANCE_OUTPUT,
    "traceability assistant": {"answer": "It was shipped from Mombasa.", "evidenceTxIds": []},
    "marketing translator": {
        "summary_fr": "Café traçable.",
        "blurb_en": "Traceable coffee.",
        "blurb_fr": "Café traçable.",
    },
    "pricing analyst": {"upliftPct": 18, "rationale": "Organic with a high trust score."},
    "Chief Analyst": {"insight_en": "Activity is steady.", "insight_fr": "L'activité est stable."},
    '{"pong": true}': {"pong": True},
}


def gemini_reply(output, status_code: int = 200) -> httpx.Response:
    """A generateContent response whose text is ``output`` (JSON-encoded unless a string)."""
    text = output if isinstance(output, str) else json.dumps(output)
    return httpx.Response(
        status_code,
        json={"candidates": [{"content": {"role": "model", "parts": [{"text": text}]}}]},
    )


class FakeGemini:
    """MockTransport handler answering each prompt kind with a canned output.

    Queued outcomes (responses or exceptions) are consumed first.
    """

    def __init__(self):
        self.prompts = []
        self.queue = []
        self.always = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        prompt = json.loads(request.content)["contents"][0]["parts"][0]["text"]
        self.prompts.append(prompt)
        outcome = self.queue.pop(0) if self.queue else self.always
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        for marker, output in MODEL_OUTPUTS.items():
            if marker in prompt:
                return gemini_reply(output)
        return gemini_reply({})


@pytest.fixture(scope="function")
def db():
    """
    Create a test database session.

    Set TEST_DATABASE_URL to run against PostgreSQL instead of in-memory SQLite.
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(TEST_DATABASE_URL)

    Base.metadata.create_all(engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def store(db: Session) -> ProvenanceStore:
    return ProvenanceStore(db)


@pytest.fixture
def ledger() -> LocalLedgerGateway:
    return LocalLedgerGateway(operator_id="0.0.1001", topic_id="0.0.5001")


@pytest.fixture
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def sleeps() -> list:
    return []


@pytest.fixture
def narrative(fake_gemini: FakeGemini, sleeps: list) -> NarrativeGenerator:
    """Narrative generator talking to the fake model; retry backoff is recorded, not slept."""
    client = GeminiClient(
        api_key="test-gemini-key",
        model="gemini-test",
        api_base="https://gemini.test/v1beta",
        timeout_ms=6000,
        transport=httpx.MockTransport(fake_gemini),
    )
    return NarrativeGenerator(client, retry_backoff_ms=300, sleep=sleeps.append)


@pytest.fixture
def client(db: Session, ledger: LocalLedgerGateway, narrative: NarrativeGenerator):
    """API client wired to the test database, local ledger and fake model."""
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_narrative_generator] = lambda: narrative
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> dict:
    token = create_access_token("operator-1", email="operator@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def registered_batch(store: ProvenanceStore, ledger: LocalLedgerGateway) -> Batch:
    """A batch with a registration and a shipping event on the ledger."""
    registration = ledger.submit_event(
        {
            "type": "REGISTRATION",
            "productType": "Organic Coffee Beans",
            "quantity": "500 kg",
            "location": "Kigali Highlands, Rwanda",
            "harvestDate": "2025-09-10",
            "operator": "0.0.1001",
            "timestamp": "2025-09-10T08:00:00+00:00",
        }
    )
    shipping = ledger.submit_event(
        {
            "type": "SHIPPING",
            "productType": "Organic Coffee Beans",
            "location": "Port of Mombasa",
            "operator": "0.0.1001",
            "timestamp": "2025-09-15T11:00:00+00:00",
        }
    )
    return store.insert_batch(
        name="Organic Coffee Beans - 2025-09-10",
        product_type="Organic Coffee Beans",
        quantity="500 kg",
        harvest_date="2025-09-10",
        location="Kigali Highlands, Rwanda",
        ledger_event_refs=[registration.event_reference, shipping.event_reference],
    )


@pytest.fixture
def minted_certificate(store: ProvenanceStore, ledger: LocalLedgerGateway, registered_batch: Batch) -> dict:
    """A certificate minted and recorded without a cached verification."""
    references = list(registered_batch.ledger_event_refs)
    full_metadata = {"hcs": references, "bid": registered_batch.id, "ts": "2025-09-16T00:00:00+00:00", "batch": None}
    digest = metadata_digest(full_metadata)
    minted = ledger.mint_certificate(ledger.operator_id, digest.encode("ascii"))
    store.insert_nft_metadata(digest, minted.token_id, str(minted.serial_number), full_metadata)
    store.insert_token(minted.token_id, str(minted.serial_number), references, registered_batch.id)
    return {
        "tokenId": minted.token_id,
        "serialNumber": minted.serial_number,
        "metadataHash": digest,
        "references": references,
    }


@pytest.fixture
def reply():
    """Build a fake model response."""
    return gemini_reply
