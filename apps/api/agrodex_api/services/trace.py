"""Verification trace assembly shared by tokenization and verification."""

from datetime import datetime, timezone
from typing import Optional

from agrodex_api.ledger.gateway import EventRecord
from agrodex_api.narrative.prompts import TimelineEvent
from agrodex_api.narrative.result import NarrativeResult

VERIFIED = "VERIFIED"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _optional_str(value) -> Optional[str]:
    return None if value in (None, "") else str(value)


def timeline_from_trail(records: list[EventRecord]) -> list[TimelineEvent]:
    """Reinterpret ledger messages as narrative timeline events, in arrival order."""
    events = []
    for record in records:
        payload = record.payload or {}
        events.append(
            TimelineEvent(
                timestamp=str(payload.get("timestamp") or record.consensus_timestamp),
                event=str(payload.get("type") or payload.get("event") or payload.get("productType") or "Event"),
                tx_id=record.event_reference,
                location=_optional_str(payload.get("location")),
                operator=_optional_str(payload.get("operator")),
            )
        )
    return events


def build_trace(
    nft_metadata: dict,
    event_references: list[str],
    records: list[EventRecord],
    narrative: NarrativeResult,
    verified_at: Optional[str] = None,
) -> dict:
    """Assemble the persisted verification trace."""
    return {
        "nftMetadata": nft_metadata,
        "hcsTransactionIds": list(event_references),
        "hcsMessages": [record.to_dict() for record in records],
        "narrative": narrative.as_payload(),
        "verifiedAt": verified_at or utc_now_iso(),
        "status": VERIFIED,
    }


def trace_response(token_id: str, serial_number: str, trace: dict, cached: bool) -> dict:
    """Public verification body for a trace."""
    return {
        "success": True,
        "cached": cached,
        "tokenId": token_id,
        "serialNumber": int(serial_number),
        "status": trace.get("status", VERIFIED),
        "verifiedAt": trace.get("verifiedAt"),
        "nftMetadata": trace.get("nftMetadata"),
        "hcsTransactionIds": trace.get("hcsTransactionIds", []),
        "hcsMessages": trace.get("hcsMessages", []),
        "ai_summary": trace.get("narrative"),
    }
