"""Tests for batch registration and event recording."""

from unittest.mock import patch

from agrodex_api.errors import LedgerUnavailable
from agrodex_api.models import Batch

REGISTRATION = {
    "productType": "Organic Coffee Beans",
    "quantity": "500 kg",
    "location": "Kigali Highlands, Rwanda",
    "harvestDate": "10-09-2025",
    "photoUrl": "https://i.imgur.com/g8vA5T8.jpeg",
}


def test_register_batch(client, db, ledger, fake_gemini, auth_headers):
    response = client.post("/api/register-batch", json=REGISTRATION, headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["harvestDate"] == "2025-09-10"
    assert data["confirmationStatus"] == "CONFIRMED"
    assert data["ai_analysis"]["tags"] == ["organic", "fresh"]
    assert data["id"] == response.headers["x-correlation-id"]

    batch = db.query(Batch).one()
    assert batch.id == data["batchId"]
    assert batch.name == "Organic Coffee Beans - 2025-09-10"
    assert batch.ledger_event_refs == [data["hcsTransactionId"]]

    (record,) = ledger.query_event_trail([data["hcsTransactionId"]])
    assert record.payload["type"] == "REGISTRATION"
    assert record.payload["operator"] == "operator-1"
    assert record.payload["aiTags"] == ["organic", "fresh"]
    assert "https://i.imgur.com/g8vA5T8.jpeg" in fake_gemini.prompts[0]


def test_register_batch_numeric_quantity_without_photo(client, db, fake_gemini, auth_headers):
    payload = {**REGISTRATION, "quantity": 500, "harvestDate": "2025-09-10"}
    del payload["photoUrl"]

    response = client.post("/api/register-batch", json=payload, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["ai_analysis"] is None
    assert db.query(Batch).one().quantity == "500"
    assert fake_gemini.prompts == []


def test_image_analysis_failure_does_not_block(client, db, fake_gemini, auth_headers, reply):
    fake_gemini.queue.append(reply("not json"))

    response = client.post("/api/register-batch", json=REGISTRATION, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["ai_analysis"]["caption"] == "Image analysis unavailable"
    assert db.query(Batch).count() == 1


def test_dry_run_persists_nothing(client, db, ledger, auth_headers):
    response = client.post(
        "/api/register-batch",
        json=REGISTRATION,
        headers={**auth_headers, "x-dry-run": "1"},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["dryRun"] is True
    assert data["normalized"]["harvestDate"] == "2025-09-10"
    assert db.query(Batch).count() == 0
    assert ledger.verify_chain() and ledger._messages == []


def test_invalid_harvest_date(client, auth_headers):
    response = client.post(
        "/api/register-batch",
        json={**REGISTRATION, "harvestDate": "31-02-2025"},
        headers=auth_headers,
    )

    assert response.status_code == 400
    data = response.json()
    assert data["stage"] == "validation"
    assert "Invalid date format" in data["error"]


def test_data_uri_image_rejected(client, auth_headers):
    response = client.post(
        "/api/register-batch",
        json={**REGISTRATION, "photoUrl": None, "imageData": "data:image/png;base64,iVBORw0KGgo="},
        headers=auth_headers,
    )

    assert response.status_code == 400


def test_ledger_failure_persists_nothing(client, db, ledger, auth_headers):
    with patch.object(
        ledger,
        "submit_event",
        side_effect=LedgerUnavailable("Ledger request timed out", stage="ledger_submit"),
    ):
        response = client.post("/api/register-batch", json=REGISTRATION, headers=auth_headers)

    assert response.status_code == 504
    assert response.json()["stage"] == "ledger_submit"
    assert db.query(Batch).count() == 0


def test_register_requires_auth(client):
    response = client.post("/api/register-batch", json=REGISTRATION)

    assert response.status_code == 401
    assert response.json()["stage"] == "auth"


def test_register_rejects_bad_token(client):
    response = client.post(
        "/api/register-batch",
        json=REGISTRATION,
        headers={"Authorization": "Bearer not-a-jwt"},
    )

    assert response.status_code == 401


def test_record_event_appends_reference(client, registered_batch, auth_headers):
    response = client.post(
        f"/api/batches/{registered_batch.id}/events",
        json={"type": "processing", "location": "Kigali washing station", "notes": "Fully washed"},
        headers=auth_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert len(data["hcsTransactionIds"]) == 3
    assert data["hcsTransactionIds"][-1] == data["hcsTransactionId"]

    batch = client.get(f"/api/batches/{registered_batch.id}", headers=auth_headers).json()
    assert batch["hcsTransactionIds"] == data["hcsTransactionIds"]
    assert batch["tokenId"] is None


def test_record_event_unknown_batch(client, auth_headers):
    response = client.post("/api/batches/999/events", json={"type": "SHIPPING"}, headers=auth_headers)

    assert response.status_code == 404


def test_record_event_after_tokenization_conflicts(client, store, registered_batch, auth_headers):
    store.attach_certificate(registered_batch, "0.0.7000000", "1")

    response = client.post(
        f"/api/batches/{registered_batch.id}/events",
        json={"type": "SHIPPING"},
        headers=auth_headers,
    )

    assert response.status_code == 409
