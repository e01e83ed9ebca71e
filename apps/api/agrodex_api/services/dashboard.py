"""Dashboard statistics and insight."""

import logging

from agrodex_api.models import Verification
from agrodex_api.narrative.generator import NarrativeGenerator
from agrodex_api.narrative.prompts import DashboardInsightRequest
from agrodex_api.store.service import ProvenanceStore

logger = logging.getLogger(__name__)


def _lot_summary(record: Verification) -> dict:
    narrative = (record.trace or {}).get("narrative") or {}
    return {
        "tokenId": record.token_id,
        "serialNumber": int(record.serial_number),
        "trustScore": record.trust_score,
        "verifiedAt": (record.trace or {}).get("verifiedAt"),
        "summary": narrative.get("summary_en"),
    }


class DashboardService:
    """Operator dashboard KPIs."""

    def __init__(self, store: ProvenanceStore, narrative: NarrativeGenerator):
        self.store = store
        self.narrative = narrative

    def stats(self) -> dict:
        counts = self.store.dashboard_counts()
        approved = [_lot_summary(record) for record in self.store.recent_verifications(approved=True)]
        flagged = [_lot_summary(record) for record in self.store.recent_verifications(approved=False)]

        insight = self.narrative.generate(
            DashboardInsightRequest(
                stats={**counts, "approvedLots": len(approved), "flaggedLots": len(flagged)}
            )
        )
        return {
            "kpis": counts,
            "approvedLots": approved,
            "flaggedLots": flagged,
            "insight": insight.as_payload(),
        }
