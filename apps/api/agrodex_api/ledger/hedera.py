"""Hedera ledger gateway: SDK writes, mirror node reads."""

import base64
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, Optional, TypeVar

import httpx

from agrodex_api.errors import ConfigurationError, LedgerError, LedgerRejected, LedgerUnavailable
from agrodex_api.ledger.gateway import (
    ConfirmationStatus,
    EventRecord,
    LedgerGateway,
    MintResult,
    SubmitResult,
    ensure_compact,
)
from agrodex_api.ledger.keys import OperatorKey, parse_operator_key
from agrodex_api.settings import Settings
from agrodex_api.utils.metrics import ledger_operations_total, orphaned_tokens_total

logger = logging.getLogger(__name__)

T = TypeVar("T")

REJECTION_HINTS = {
    "INVALID_SIGNATURE": (
        "Operator key does not match HEDERA_OPERATOR_ID, or the topic requires "
        "HEDERA_SUBMIT_KEY to sign submissions."
    ),
    "UNAUTHORIZED": "Topic has a submit key. Set HEDERA_SUBMIT_KEY to the topic's submit private key.",
    "INVALID_TOPIC_ID": "HEDERA_TOPIC_ID does not exist on the selected network. Check HEDERA_NETWORK.",
    "INSUFFICIENT_PAYER_BALANCE": "Operator account cannot pay fees. Fund HEDERA_OPERATOR_ID.",
    "TOKEN_HAS_NO_SUPPLY_KEY": "Certificate token was created without a supply key.",
}
UNAVAILABLE_HINT = "Ledger network did not respond in time. Retry the request."


def mirror_transaction_id(event_reference: str) -> str:
    """Convert ``0.0.123@1700000000.000000001`` to the mirror node's ``0.0.123-1700000000-000000001``."""
    account, _, valid_start = event_reference.partition("@")
    if not valid_start:
        return event_reference
    seconds, _, nanos = valid_start.partition(".")
    return f"{account}-{seconds}-{nanos or '0'}"


def classify_sdk_error(exc: Exception, stage: str) -> LedgerError:
    """Translate an SDK exception into a ledger error with a remediation hint."""
    text = str(exc)
    for status, hint in REJECTION_HINTS.items():
        if status in text:
            return LedgerRejected(f"Ledger rejected transaction: {status}", status=status, stage=stage, hint=hint, details=text)
    if isinstance(exc, (TimeoutError, FutureTimeoutError)) or "timeout" in text.lower():
        return LedgerUnavailable("Ledger request timed out", stage=stage, hint=UNAVAILABLE_HINT, details=text)
    name = type(exc).__name__
    if "Precheck" in name or "Receipt" in name:
        return LedgerRejected(f"Ledger rejected transaction: {text}", stage=stage, details=text)
    return LedgerUnavailable(f"Ledger request failed: {name}", stage=stage, hint=UNAVAILABLE_HINT, details=text)


class HederaLedgerGateway(LedgerGateway):
    """Ledger gateway backed by the Hedera consensus and token services."""

    def __init__(self, settings: Settings, http_client: Optional[httpx.Client] = None):
        """Initialize Hedera gateway. The SDK client is built on first write."""
        if not settings.hedera_operator_id or not settings.hedera_operator_key:
            raise ConfigurationError(
                "Ledger operator is not configured",
                hint="Set HEDERA_OPERATOR_ID and HEDERA_OPERATOR_KEY.",
            )
        self.settings = settings
        self.network = settings.hedera_network
        self.topic_id = settings.hedera_topic_id
        self._operator_id = settings.hedera_operator_id
        self._operator_key: OperatorKey = parse_operator_key(
            settings.hedera_operator_key, settings.hedera_operator_key_type
        )
        self._submit_key: Optional[OperatorKey] = (
            parse_operator_key(settings.hedera_submit_key) if settings.hedera_submit_key else None
        )
        self._sdk_client = None
        self._sdk_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="hedera")
        self.mirror = http_client or httpx.Client(
            base_url=settings.mirror_node_url_computed,
            timeout=settings.ledger_query_timeout_seconds,
        )

    @property
    def operator_id(self) -> str:
        return self._operator_id

    # SDK plumbing

    def _to_sdk_key(self, key: OperatorKey):
        from hiero_sdk_python import PrivateKey

        if key.encoding == "der":
            return PrivateKey.from_string_der(key.key_hex)
        if key.algorithm == "ecdsa":
            return PrivateKey.from_string_ecdsa(key.key_hex)
        return PrivateKey.from_string_ed25519(key.key_hex)

    def _client(self):
        """Authenticated SDK client, created once."""
        with self._sdk_lock:
            if self._sdk_client is None:
                from hiero_sdk_python import AccountId, Client, Network

                client = Client(Network(network=self.network))
                client.set_operator(
                    AccountId.from_string(self._operator_id),
                    self._to_sdk_key(self._operator_key),
                )
                self._sdk_client = client
                logger.info(f"Hedera client ready on {self.network} as {self._operator_id}")
        return self._sdk_client

    def _run(self, fn: Callable[[], T], timeout: float, stage: str) -> T:
        """Run a blocking SDK call with a timeout."""
        future = self._executor.submit(fn)
        try:
            return future.result(timeout=timeout)
        except FutureTimeoutError as e:
            raise LedgerUnavailable(
                f"Ledger request timed out after {timeout:g}s",
                stage=stage,
                hint=UNAVAILABLE_HINT,
            ) from e
        except LedgerError:
            raise
        except Exception as e:
            raise classify_sdk_error(e, stage) from e

    @staticmethod
    def _status_name(status) -> str:
        from hiero_sdk_python import ResponseCode

        try:
            return ResponseCode(status).name
        except ValueError:
            return str(status)

    def _check_receipt(self, receipt, stage: str) -> None:
        from hiero_sdk_python import ResponseCode

        if receipt.status != ResponseCode.SUCCESS:
            status = self._status_name(receipt.status)
            raise LedgerRejected(
                f"Ledger returned {status}",
                status=status,
                stage=stage,
                hint=REJECTION_HINTS.get(status),
            )

    # Writes

    def submit_event(self, payload: dict) -> SubmitResult:
        """Submit a JSON payload to the configured topic."""
        if not self.topic_id:
            raise ConfigurationError("HEDERA_TOPIC_ID is not set", stage="config")
        message = json.dumps(payload, separators=(",", ":"))

        def _submit():
            from hiero_sdk_python import TopicId, TopicMessageSubmitTransaction

            client = self._client()
            transaction = (
                TopicMessageSubmitTransaction()
                .set_topic_id(TopicId.from_string(self.topic_id))
                .set_message(message)
                .freeze_with(client)
            )
            if self._submit_key is not None:
                transaction.sign(self._to_sdk_key(self._submit_key))
            receipt = transaction.execute(client)
            self._check_receipt(receipt, "ledger_submit")
            return str(transaction.transaction_id), getattr(receipt, "topic_sequence_number", None)

        try:
            event_reference, sequence_number = self._run(
                _submit, self.settings.ledger_submit_timeout_seconds, "ledger_submit"
            )
        except LedgerError as e:
            ledger_operations_total.labels(operation="submit", status="failed").inc()
            logger.error(f"Ledger submit failed: {e.message} ({e.details})")
            raise

        ledger_operations_total.labels(operation="submit", status="success").inc()
        logger.info(f"Ledger message submitted to {self.topic_id}: {event_reference}")
        return SubmitResult(
            event_reference=event_reference,
            confirmation_status=ConfirmationStatus.CONFIRMED,
            sequence_number=sequence_number,
        )

    def mint_certificate(self, treasury_id: str, compact_metadata: bytes) -> MintResult:
        """
        Create an NFT token and mint one serial.

        Both phases must confirm. If minting fails after the token was created,
        the token is left orphaned and reported; there is no compensation.
        """
        ensure_compact(compact_metadata)
        timeout = self.settings.ledger_mint_timeout_seconds

        def _create():
            from hiero_sdk_python import AccountId, SupplyType, TokenCreateTransaction, TokenType

            client = self._client()
            key = self._to_sdk_key(self._operator_key)
            transaction = (
                TokenCreateTransaction()
                .set_token_name(self.settings.certificate_token_name)
                .set_token_symbol(self.settings.certificate_token_symbol)
                .set_decimals(0)
                .set_initial_supply(0)
                .set_treasury_account_id(AccountId.from_string(treasury_id))
                .set_token_type(TokenType.NON_FUNGIBLE_UNIQUE)
                .set_supply_type(SupplyType.INFINITE)
                .set_admin_key(key)
                .set_supply_key(key)
                .freeze_with(client)
                .sign(key)
            )
            receipt = transaction.execute(client)
            self._check_receipt(receipt, "ledger_mint")
            return receipt.token_id

        def _mint(token_id):
            from hiero_sdk_python import TokenMintTransaction

            client = self._client()
            key = self._to_sdk_key(self._operator_key)
            transaction = (
                TokenMintTransaction()
                .set_token_id(token_id)
                .set_metadata([compact_metadata])
                .freeze_with(client)
                .sign(key)
            )
            receipt = transaction.execute(client)
            self._check_receipt(receipt, "ledger_mint")
            return receipt.serial_numbers[0]

        try:
            token_id = self._run(_create, timeout, "ledger_mint")
        except LedgerError as e:
            ledger_operations_total.labels(operation="token_create", status="failed").inc()
            logger.error(f"Certificate token creation failed: {e.message}")
            raise
        ledger_operations_total.labels(operation="token_create", status="success").inc()

        try:
            serial_number = self._run(lambda: _mint(token_id), timeout, "ledger_mint")
        except LedgerError as e:
            ledger_operations_total.labels(operation="mint", status="failed").inc()
            orphaned_tokens_total.inc()
            logger.error(f"Certificate mint failed, token {token_id} left orphaned: {e.message}")
            raise

        ledger_operations_total.labels(operation="mint", status="success").inc()
        logger.info(f"Certificate minted: {token_id}/{serial_number}")
        return MintResult(token_id=str(token_id), serial_number=int(serial_number))

    # Reads

    def _mirror_get(self, path: str, stage: str = "ledger_query") -> Optional[dict]:
        """GET a mirror node resource; None on 404."""
        try:
            response = self.mirror.get(path)
        except httpx.TimeoutException as e:
            raise LedgerUnavailable(
                "Mirror node request timed out", stage=stage, hint=UNAVAILABLE_HINT, details=path
            ) from e
        except httpx.HTTPError as e:
            raise LedgerUnavailable(
                f"Mirror node request failed: {e}", stage=stage, hint=UNAVAILABLE_HINT, details=path
            ) from e
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise LedgerUnavailable(
                f"Mirror node returned HTTP {response.status_code}",
                stage=stage,
                hint=UNAVAILABLE_HINT,
                details=path,
            )
        return response.json()

    def query_certificate_metadata(self, token_id: str, serial_number: int) -> Optional[dict]:
        data = self._mirror_get(f"/api/v1/tokens/{token_id}/nfts/{serial_number}")
        if data is None:
            return None
        encoded = data.get("metadata") or ""
        raw = base64.b64decode(encoded) if encoded else b""
        return {
            "tokenId": data.get("token_id", token_id),
            "serialNumber": data.get("serial_number", int(serial_number)),
            "accountId": data.get("account_id"),
            "createdTimestamp": data.get("created_timestamp"),
            "metadata": raw.decode("utf-8", errors="replace"),
            "metadataBase64": encoded,
        }

    def _resolve_event(self, event_reference: str) -> Optional[EventRecord]:
        data = self._mirror_get(f"/api/v1/transactions/{mirror_transaction_id(event_reference)}")
        transactions = (data or {}).get("transactions") or []
        if not transactions:
            return None
        consensus_timestamp = transactions[0].get("consensus_timestamp")
        message = self._mirror_get(f"/api/v1/topics/messages/{consensus_timestamp}")
        if message is None:
            return None
        text = base64.b64decode(message.get("message") or "").decode("utf-8", errors="replace")
        try:
            payload = json.loads(text)
        except ValueError:
            payload = {"raw": text}
        if not isinstance(payload, dict):
            payload = {"raw": payload}
        return EventRecord(
            event_reference=event_reference,
            consensus_timestamp=consensus_timestamp,
            sequence_number=message.get("sequence_number"),
            payload=payload,
        )

    def query_event_trail(self, event_references: list[str]) -> list[EventRecord]:
        records = []
        for reference in event_references:
            try:
                record = self._resolve_event(reference)
            except LedgerError as e:
                logger.warning(f"Event {reference} could not be resolved, dropping: {e.message}")
                continue
            if record is None:
                logger.warning(f"Event {reference} not found on mirror node, dropping")
                continue
            records.append(record)
        return records

    def ping(self) -> None:
        self._mirror_get("/api/v1/network/nodes?limit=1", stage="health")

    def close(self) -> None:
        self.mirror.close()
        self._executor.shutdown(wait=False)
        with self._sdk_lock:
            if self._sdk_client is not None:
                self._sdk_client.close()
                self._sdk_client = None
