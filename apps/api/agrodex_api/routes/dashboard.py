"""Operator dashboard and status endpoints."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from agrodex_api.auth.jwt import AuthenticatedUser, require_user
from agrodex_api.dependencies import get_dashboard_service, get_store
from agrodex_api.ledger.gateway import LedgerGateway
from agrodex_api.ledger.provider import get_ledger
from agrodex_api.narrative.generator import NarrativeGenerator, get_narrative_generator
from agrodex_api.services.dashboard import DashboardService
from agrodex_api.services.health import run_probes
from agrodex_api.store.service import ProvenanceStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["dashboard"])


@router.get("/health/ping")
async def ping():
    """Liveness probe with no dependencies."""
    return {"ok": True, "service": "agrodex-api"}


@router.get("/dashboard-stats")
def dashboard_stats(
    user: AuthenticatedUser = Depends(require_user),
    service: DashboardService = Depends(get_dashboard_service),
):
    """KPIs, recent approved/flagged lots and an AI insight."""
    return service.stats()


@router.get("/dashboard-health")
async def dashboard_health(
    user: AuthenticatedUser = Depends(require_user),
    store: ProvenanceStore = Depends(get_store),
    ledger: LedgerGateway = Depends(get_ledger),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
):
    """Probe store, ledger and narrative generator concurrently."""
    result = await run_probes(
        {
            "database": store.ping,
            "ledger": ledger.ping,
            "ai": narrative.ping,
        }
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if result["ok"] else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=result,
    )
