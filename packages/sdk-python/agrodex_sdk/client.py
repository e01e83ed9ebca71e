"""AgroDex API client."""

import re
from typing import Optional, Union

import requests

_DMY_RE = re.compile(r"^([0-9]{2})-([0-9]{2})-([0-9]{4})$")


def normalize_date(value: str) -> str:
    """Rewrite DD-MM-YYYY as YYYY-MM-DD; other input is sent as-is for the server to validate."""
    value = value.strip()
    match = _DMY_RE.match(value)
    if match:
        day, month, year = match.groups()
        return f"{year}-{month}-{day}"
    return value


class AgroDexAPIError(requests.HTTPError):
    """Error response from the AgroDex API."""

    def __init__(self, response: requests.Response):
        try:
            body = response.json()
        except ValueError:
            body = {"error": response.text}
        if not isinstance(body, dict):
            body = {"error": str(body)}
        self.status_code = response.status_code
        self.stage = body.get("stage")
        self.hint = body.get("hint")
        self.correlation_id = body.get("id") or response.headers.get("x-correlation-id")
        self.body = body
        super().__init__(
            f"{response.status_code} at {self.stage or 'unknown'}: {body.get('error', response.reason)}",
            response=response,
        )


class AgroDexClient:
    """Client for AgroDex API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        base_url: str = "http://localhost:3001",
        timeout: float = 60.0,
    ):
        """Initialize client."""
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        if access_token:
            self.session.headers.update({"authorization": f"Bearer {access_token}"})

    def _post(self, path: str, payload: dict, headers: Optional[dict] = None) -> requests.Response:
        return self.session.post(
            f"{self.base_url}{path}", json=payload, headers=headers or {}, timeout=self.timeout
        )

    @staticmethod
    def _json(response: requests.Response) -> dict:
        if response.status_code >= 400:
            raise AgroDexAPIError(response)
        return response.json()

    def register_batch(
        self,
        product_type: str,
        quantity: Union[str, int, float],
        location: str,
        harvest_date: str,
        photo_url: Optional[str] = None,
        dry_run: bool = False,
    ) -> dict:
        """Register a harvest batch. ``harvest_date`` may be DD-MM-YYYY or YYYY-MM-DD."""
        payload = {
            "productType": product_type,
            "quantity": quantity,
            "location": location,
            "harvestDate": normalize_date(harvest_date),
        }
        if photo_url:
            payload["photoUrl"] = photo_url
        headers = {"x-dry-run": "1"} if dry_run else None
        return self._json(self._post("/api/register-batch", payload, headers))

    def record_event(
        self,
        batch_id: int,
        event_type: str,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        timestamp: Optional[str] = None,
    ) -> dict:
        """Record a supply-chain event for a registered batch."""
        payload = {"type": event_type}
        for key, value in (("location", location), ("notes", notes), ("timestamp", timestamp)):
            if value is not None:
                payload[key] = value
        return self._json(self._post(f"/api/batches/{batch_id}/events", payload))

    def tokenize_batch(self, hcs_transaction_ids: list[str], batch_id: Optional[int] = None) -> dict:
        """Mint a certificate over the given ledger transactions."""
        payload = {"hcsTransactionIds": list(hcs_transaction_ids)}
        if batch_id is not None:
            payload["batchId"] = batch_id
        return self._json(self._post("/api/tokenize-batch", payload))

    def verify_batch(self, token_id: str, serial_number: Union[str, int]) -> dict:
        """
        Verify a certificate.

        An unregistered certificate is not an error: it returns
        ``{"verified": False, "reason": "not_found", "details": <body>}``.
        """
        response = self._post(
            "/api/verify-batch", {"tokenId": token_id, "serialNumber": serial_number}
        )
        if response.status_code == 404:
            return {"verified": False, "reason": "not_found", "details": response.json()}
        result = self._json(response)
        return {"verified": True, **result}

    def health(self) -> dict:
        """Liveness check."""
        response = self.session.get(f"{self.base_url}/api/health/ping", timeout=self.timeout)
        return self._json(response)
