"""In-process ledger with hash chaining, for development and tests."""

import base64
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from agrodex_api.errors import LedgerRejected
from agrodex_api.ledger.gateway import (
    ConfirmationStatus,
    EventRecord,
    LedgerGateway,
    MintResult,
    SubmitResult,
    ensure_compact,
)
from agrodex_api.utils.metrics import ledger_operations_total

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Message:
    event_reference: str
    consensus_timestamp: str
    sequence_number: int
    payload: dict
    previous_hash: Optional[str]
    event_hash: str


class LocalLedgerGateway(LedgerGateway):
    """Tamper-evident consensus log and token registry held in memory."""

    def __init__(self, operator_id: str = "0.0.1001", topic_id: str = "0.0.5001"):
        """Initialize local ledger."""
        self._operator_id = operator_id
        self.topic_id = topic_id
        self._lock = threading.Lock()
        self._messages: list[_Message] = []
        self._by_reference: dict[str, _Message] = {}
        self._tokens: dict[str, dict[int, bytes]] = {}
        self._next_entity = 7000000
        self._last_ns = 0

    @property
    def operator_id(self) -> str:
        return self._operator_id

    def _hash_event(self, event_data: dict) -> str:
        """Compute hash of event data."""
        event_str = json.dumps(event_data, sort_keys=True)
        return hashlib.sha256(event_str.encode()).hexdigest()

    def _next_timestamp(self) -> tuple[int, int]:
        """Strictly increasing (seconds, nanos) consensus timestamp."""
        now_ns = max(time.time_ns(), self._last_ns + 1)
        self._last_ns = now_ns
        return divmod(now_ns, 1_000_000_000)

    def submit_event(self, payload: dict) -> SubmitResult:
        """Append payload to the log with hash chaining."""
        try:
            json.dumps(payload)
        except (TypeError, ValueError) as e:
            ledger_operations_total.labels(operation="submit", status="rejected").inc()
            raise LedgerRejected(
                f"Payload is not JSON serializable: {e}",
                status="INVALID_TRANSACTION_BODY",
                stage="ledger_submit",
            ) from e

        with self._lock:
            seconds, nanos = self._next_timestamp()
            previous_hash = self._messages[-1].event_hash if self._messages else None
            consensus_timestamp = f"{seconds}.{nanos:09d}"
            event_reference = f"{self._operator_id}@{seconds}.{nanos:09d}"
            sequence_number = len(self._messages) + 1
            event_hash = self._hash_event(
                {
                    "topic_id": self.topic_id,
                    "payload": payload,
                    "previous_hash": previous_hash,
                    "timestamp": consensus_timestamp,
                }
            )
            message = _Message(
                event_reference=event_reference,
                consensus_timestamp=consensus_timestamp,
                sequence_number=sequence_number,
                payload=payload,
                previous_hash=previous_hash,
                event_hash=event_hash,
            )
            self._messages.append(message)
            self._by_reference[event_reference] = message

        ledger_operations_total.labels(operation="submit", status="success").inc()
        logger.info(f"Local ledger message {sequence_number} submitted: {event_reference}")
        return SubmitResult(
            event_reference=event_reference,
            confirmation_status=ConfirmationStatus.CONFIRMED,
            sequence_number=sequence_number,
        )

    def mint_certificate(self, treasury_id: str, compact_metadata: bytes) -> MintResult:
        """Create a token and mint serial 1."""
        ensure_compact(compact_metadata)
        with self._lock:
            token_id = f"0.0.{self._next_entity}"
            self._next_entity += 1
            self._tokens[token_id] = {1: bytes(compact_metadata)}
        ledger_operations_total.labels(operation="mint", status="success").inc()
        logger.info(f"Local ledger certificate minted: {token_id}/1 (treasury {treasury_id})")
        return MintResult(token_id=token_id, serial_number=1)

    def query_certificate_metadata(self, token_id: str, serial_number: int) -> Optional[dict]:
        serials = self._tokens.get(token_id)
        if not serials or int(serial_number) not in serials:
            return None
        raw = serials[int(serial_number)]
        return {
            "tokenId": token_id,
            "serialNumber": int(serial_number),
            "accountId": self._operator_id,
            "metadata": raw.decode("utf-8", errors="replace"),
            "metadataBase64": base64.b64encode(raw).decode("ascii"),
        }

    def query_event_trail(self, event_references: list[str]) -> list[EventRecord]:
        records = []
        for reference in event_references:
            message = self._by_reference.get(reference)
            if message is None:
                logger.warning(f"Event reference not found on local ledger, dropping: {reference}")
                continue
            records.append(
                EventRecord(
                    event_reference=message.event_reference,
                    consensus_timestamp=message.consensus_timestamp,
                    sequence_number=message.sequence_number,
                    payload=message.payload,
                )
            )
        return records

    def verify_chain(self) -> bool:
        """Verify hash chain integrity of the log."""
        previous_hash = None
        for message in self._messages:
            if message.previous_hash != previous_hash:
                return False
            computed_hash = self._hash_event(
                {
                    "topic_id": self.topic_id,
                    "payload": message.payload,
                    "previous_hash": message.previous_hash,
                    "timestamp": message.consensus_timestamp,
                }
            )
            if computed_hash != message.event_hash:
                return False
            previous_hash = message.event_hash
        return True
