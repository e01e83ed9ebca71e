"""Tests for the in-process ledger."""

import dataclasses

import pytest

from agrodex_api.errors import LedgerRejected, MetadataTooLarge
from agrodex_api.ledger.gateway import MAX_METADATA_BYTES, ConfirmationStatus, LedgerSession
from agrodex_api.ledger.local import LocalLedgerGateway


def test_submit_returns_ordered_references(ledger):
    first = ledger.submit_event({"type": "REGISTRATION"})
    second = ledger.submit_event({"type": "SHIPPING"})

    assert first.confirmation_status == ConfirmationStatus.CONFIRMED
    assert first.event_reference.startswith("0.0.1001@")
    assert (first.sequence_number, second.sequence_number) == (1, 2)
    assert first.event_reference < second.event_reference


def test_hash_chain_detects_tampering(ledger):
    ledger.submit_event({"type": "REGISTRATION", "quantity": "500 kg"})
    ledger.submit_event({"type": "SHIPPING"})
    assert ledger.verify_chain() is True

    ledger._messages[0] = dataclasses.replace(
        ledger._messages[0], payload={"type": "REGISTRATION", "quantity": "900 kg"}
    )

    assert ledger.verify_chain() is False


def test_non_json_payload_rejected(ledger):
    with pytest.raises(LedgerRejected) as exc_info:
        ledger.submit_event({"type": "REGISTRATION", "tags": {"organic"}})

    assert exc_info.value.stage == "ledger_submit"


def test_mint_and_query_metadata(ledger):
    digest = "a" * 64

    minted = ledger.mint_certificate(ledger.operator_id, digest.encode("ascii"))
    metadata = ledger.query_certificate_metadata(minted.token_id, minted.serial_number)

    assert minted.serial_number == 1
    assert metadata["metadata"] == digest
    assert metadata["accountId"] == "0.0.1001"


def test_mint_rejects_oversized_metadata(ledger):
    with pytest.raises(MetadataTooLarge) as exc_info:
        ledger.mint_certificate(ledger.operator_id, b"x" * (MAX_METADATA_BYTES + 1))

    assert exc_info.value.status_code == 500
    assert exc_info.value.stage == "ledger_mint"


def test_mint_accepts_metadata_at_ceiling(ledger):
    minted = ledger.mint_certificate(ledger.operator_id, b"x" * MAX_METADATA_BYTES)

    assert ledger.query_certificate_metadata(minted.token_id, 1) is not None


def test_unknown_certificate_is_none(ledger):
    assert ledger.query_certificate_metadata("0.0.424242", 1) is None


def test_event_trail_keeps_order_and_drops_missing(ledger):
    first = ledger.submit_event({"type": "REGISTRATION"}).event_reference
    second = ledger.submit_event({"type": "SHIPPING"}).event_reference

    records = ledger.query_event_trail([second, "0.0.1001@1.000000001", first])

    assert [r.event_reference for r in records] == [second, first]
    assert records[0].to_dict()["message"] == {"type": "SHIPPING"}


def test_ledger_session_builds_once():
    built = []

    def factory():
        built.append(1)
        return LocalLedgerGateway()

    session = LedgerSession(factory)

    assert session.get() is session.get()
    assert len(built) == 1
    session.close()
    session.get()
    assert len(built) == 2
