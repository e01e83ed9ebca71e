"""Tests for certificate tokenization."""

import re
from unittest.mock import patch

import httpx

from agrodex_api.errors import LedgerRejected
from agrodex_api.models import NftMetadata, Token, Verification
from agrodex_api.services.tokenization import metadata_digest


def _tokenize(client, headers, references, batch_id=None):
    payload = {"hcsTransactionIds": references}
    if batch_id is not None:
        payload["batchId"] = batch_id
    return client.post("/api/tokenize-batch", json=payload, headers=headers)


def test_tokenize_batch(client, db, ledger, registered_batch, auth_headers):
    references = list(registered_batch.ledger_event_refs)

    response = _tokenize(client, auth_headers, references, registered_batch.id)

    assert response.status_code == 200
    data = response.json()
    assert re.match(r"^\d+\.\d+\.\d+$", data["tokenId"])
    assert data["serialNumber"] == 1
    assert data["batchId"] == registered_batch.id
    assert data["ai_summary"]["trustScore"] == 87

    on_ledger = ledger.query_certificate_metadata(data["tokenId"], 1)
    assert on_ledger["metadata"] == data["metadataHash"]
    assert len(on_ledger["metadata"]) == 64

    side = db.query(NftMetadata).filter(NftMetadata.metadata_hash == data["metadataHash"]).one()
    assert side.full_metadata["hcs"] == references
    assert side.full_metadata["batch"]["harvestDate"] == "2025-09-10"
    assert metadata_digest(side.full_metadata) == data["metadataHash"]

    token = db.query(Token).one()
    assert token.ledger_event_refs == references
    db.refresh(registered_batch)
    assert registered_batch.certificate_ref == (data["tokenId"], "1")
    assert db.query(Verification).one().trust_score == 87


def test_tokenize_then_verify_uses_cached_trace(client, fake_gemini, registered_batch, auth_headers):
    minted = _tokenize(client, auth_headers, list(registered_batch.ledger_event_refs), registered_batch.id).json()

    response = client.post(
        "/api/verify-batch",
        json={"tokenId": minted["tokenId"], "serialNumber": minted["serialNumber"]},
    )

    assert response.status_code == 200
    assert response.json()["cached"] is True
    assert response.json()["ai_summary"] == minted["ai_summary"]
    assert len(fake_gemini.prompts) == 1


def test_narrative_timeout_does_not_block_minting(client, db, fake_gemini, registered_batch, auth_headers):
    fake_gemini.always = httpx.ReadTimeout("timed out")

    response = _tokenize(client, auth_headers, list(registered_batch.ledger_event_refs), registered_batch.id)

    assert response.status_code == 200
    summary = response.json()["ai_summary"]
    assert summary["error"] == "Timeout"
    assert summary["trustScore"] is None
    assert summary["summary_en"] == "Provenance summary unavailable"
    assert db.query(Token).count() == 1


def test_tokenize_without_batch(client, db, ledger, auth_headers):
    reference = ledger.submit_event({"type": "REGISTRATION", "productType": "Cocoa"}).event_reference

    response = _tokenize(client, auth_headers, [reference])

    assert response.status_code == 200
    assert response.json()["batchId"] is None
    assert db.query(Token).one().batch_id is None


def test_tokenize_twice_conflicts(client, registered_batch, auth_headers):
    references = list(registered_batch.ledger_event_refs)
    assert _tokenize(client, auth_headers, references, registered_batch.id).status_code == 200

    response = _tokenize(client, auth_headers, references, registered_batch.id)

    assert response.status_code == 409


def test_tokenize_requires_references(client, auth_headers):
    assert _tokenize(client, auth_headers, []).status_code == 400
    assert _tokenize(client, auth_headers, ["0.0.1001@1.000000001", " "]).status_code == 400


def test_tokenize_unknown_batch(client, auth_headers):
    response = _tokenize(client, auth_headers, ["0.0.1001@1.000000001"], 999)

    assert response.status_code == 404


def test_mint_rejection_records_nothing(client, db, ledger, registered_batch, auth_headers):
    with patch.object(
        ledger,
        "mint_certificate",
        side_effect=LedgerRejected(
            "Ledger rejected transaction: INSUFFICIENT_PAYER_BALANCE",
            status="INSUFFICIENT_PAYER_BALANCE",
            stage="ledger_mint",
        ),
    ):
        response = _tokenize(client, auth_headers, list(registered_batch.ledger_event_refs), registered_batch.id)

    assert response.status_code == 502
    assert response.json()["stage"] == "ledger_mint"
    assert db.query(Token).count() == 0
    assert db.query(NftMetadata).count() == 0


def test_metadata_digest_is_key_order_independent():
    assert metadata_digest({"a": 1, "b": [1, 2]}) == metadata_digest({"b": [1, 2], "a": 1})
