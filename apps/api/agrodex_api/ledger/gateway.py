"""Ledger gateway interface (consensus log + certificate tokens)."""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Callable, Optional

from agrodex_api.errors import MetadataTooLarge

logger = logging.getLogger(__name__)

MAX_METADATA_BYTES = 100


class ConfirmationStatus(str, Enum):
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a consensus message submission."""

    event_reference: str
    confirmation_status: ConfirmationStatus
    sequence_number: Optional[int] = None


@dataclass(frozen=True)
class MintResult:
    token_id: str
    serial_number: int


@dataclass(frozen=True)
class EventRecord:
    """A resolved consensus message from the event trail."""

    event_reference: str
    consensus_timestamp: str
    sequence_number: Optional[int]
    payload: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        record = asdict(self)
        return {
            "transactionId": record["event_reference"],
            "consensusTimestamp": record["consensus_timestamp"],
            "sequenceNumber": record["sequence_number"],
            "message": record["payload"],
        }


def ensure_compact(metadata: bytes) -> bytes:
    """Reject certificate metadata above the on-ledger ceiling."""
    if len(metadata) > MAX_METADATA_BYTES:
        raise MetadataTooLarge(
            f"Metadata is {len(metadata)} bytes; the ledger accepts at most {MAX_METADATA_BYTES}",
            stage="ledger_mint",
            hint="Hash the full metadata and keep it off-ledger, keyed by the hash.",
        )
    return metadata


class LedgerGateway(ABC):
    """Abstract ledger gateway."""

    @property
    @abstractmethod
    def operator_id(self) -> str:
        """Account that signs submissions and holds minted certificates."""
        pass

    @abstractmethod
    def submit_event(self, payload: dict) -> SubmitResult:
        """Submit a JSON payload to the consensus log."""
        pass

    @abstractmethod
    def mint_certificate(self, treasury_id: str, compact_metadata: bytes) -> MintResult:
        """Create a certificate token and mint one serial carrying the metadata."""
        pass

    @abstractmethod
    def query_certificate_metadata(self, token_id: str, serial_number: int) -> Optional[dict]:
        """Return on-ledger metadata for a certificate, or None if it does not exist."""
        pass

    @abstractmethod
    def query_event_trail(self, event_references: list[str]) -> list[EventRecord]:
        """Resolve event references in the given order, dropping unresolved ones."""
        pass

    def ping(self) -> None:
        """Raise if the ledger cannot be reached."""

    def close(self) -> None:
        """Release network resources."""


class LedgerSession:
    """Process-wide holder for the ledger gateway.

    Constructed lazily on first use; concurrent first callers share one instance.
    """

    def __init__(self, factory: Callable[[], LedgerGateway]):
        self._factory = factory
        self._gateway: Optional[LedgerGateway] = None
        self._lock = threading.Lock()

    def get(self) -> LedgerGateway:
        if self._gateway is None:
            with self._lock:
                if self._gateway is None:
                    self._gateway = self._factory()
                    logger.info(f"Ledger gateway initialized: {type(self._gateway).__name__}")
        return self._gateway

    def close(self) -> None:
        with self._lock:
            if self._gateway is not None:
                self._gateway.close()
                logger.info("Ledger gateway closed")
                self._gateway = None
