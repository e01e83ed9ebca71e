"""Request-scoped service wiring."""

from fastapi import Depends
from sqlalchemy.orm import Session

from agrodex_api.db.session import get_db
from agrodex_api.ledger.gateway import LedgerGateway
from agrodex_api.ledger.provider import get_ledger
from agrodex_api.narrative.generator import NarrativeGenerator, get_narrative_generator
from agrodex_api.services.dashboard import DashboardService
from agrodex_api.services.registration import RegistrationService
from agrodex_api.services.tokenization import TokenizationService
from agrodex_api.services.verification import VerificationService
from agrodex_api.store.service import ProvenanceStore


def get_store(db: Session = Depends(get_db)) -> ProvenanceStore:
    return ProvenanceStore(db)


def get_verification_service(
    store: ProvenanceStore = Depends(get_store),
    ledger: LedgerGateway = Depends(get_ledger),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
) -> VerificationService:
    return VerificationService(store, ledger, narrative)


def get_registration_service(
    store: ProvenanceStore = Depends(get_store),
    ledger: LedgerGateway = Depends(get_ledger),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
) -> RegistrationService:
    return RegistrationService(store, ledger, narrative)


def get_tokenization_service(
    store: ProvenanceStore = Depends(get_store),
    ledger: LedgerGateway = Depends(get_ledger),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
) -> TokenizationService:
    return TokenizationService(store, ledger, narrative)


def get_dashboard_service(
    store: ProvenanceStore = Depends(get_store),
    narrative: NarrativeGenerator = Depends(get_narrative_generator),
) -> DashboardService:
    return DashboardService(store, narrative)
