"""Tests for the Python SDK client."""

from unittest.mock import MagicMock, patch

import pytest

from agrodex_sdk import AgroDexAPIError, AgroDexClient


def _response(status_code, body):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    response.headers = {}
    response.reason = "Error"
    return response


def test_bearer_token_is_sent():
    client = AgroDexClient(access_token="abc", base_url="http://api.test/")

    assert client.session.headers["authorization"] == "Bearer abc"
    assert client.base_url == "http://api.test"


def test_verify_batch_success():
    client = AgroDexClient(base_url="http://api.test")
    body = {"success": True, "cached": False, "tokenId": "0.0.7000000", "serialNumber": 1}

    with patch.object(client.session, "post", return_value=_response(200, body)) as post:
        result = client.verify_batch("0.0.7000000", 1)

    assert result["verified"] is True
    assert result["tokenId"] == "0.0.7000000"
    post.assert_called_once_with(
        "http://api.test/api/verify-batch",
        json={"tokenId": "0.0.7000000", "serialNumber": 1},
        headers={},
        timeout=60.0,
    )


def test_verify_batch_not_found_is_not_an_error():
    client = AgroDexClient(base_url="http://api.test")
    body = {"stage": "database_query", "verified": False, "reason": "not_found"}

    with patch.object(client.session, "post", return_value=_response(404, body)):
        result = client.verify_batch("0.0.999999", 1)

    assert result == {"verified": False, "reason": "not_found", "details": body}


def test_error_carries_stage_and_hint():
    client = AgroDexClient(access_token="abc", base_url="http://api.test")
    body = {"id": "req-1", "stage": "ledger_submit", "error": "Ledger request timed out", "hint": "Retry"}

    with patch.object(client.session, "post", return_value=_response(504, body)):
        with pytest.raises(AgroDexAPIError) as exc_info:
            client.register_batch("Coffee", "500 kg", "Kigali", "10-09-2025")

    assert exc_info.value.status_code == 504
    assert exc_info.value.stage == "ledger_submit"
    assert exc_info.value.hint == "Retry"
    assert exc_info.value.correlation_id == "req-1"


def test_register_batch_dry_run_header():
    client = AgroDexClient(access_token="abc", base_url="http://api.test")

    with patch.object(client.session, "post", return_value=_response(200, {"dryRun": True})) as post:
        client.register_batch("Coffee", 500, "Kigali", "2025-09-10", dry_run=True)

    assert post.call_args.kwargs["headers"] == {"x-dry-run": "1"}
    assert post.call_args.kwargs["json"]["quantity"] == 500


def test_register_batch_normalizes_date():
    client = AgroDexClient(access_token="abc", base_url="http://api.test")

    with patch.object(client.session, "post", return_value=_response(200, {"success": True})) as post:
        client.register_batch("Coffee", "500 kg", "Kigali", "10-09-2025")

    assert post.call_args.kwargs["json"]["harvestDate"] == "2025-09-10"
