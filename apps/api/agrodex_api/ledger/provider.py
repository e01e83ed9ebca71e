"""Ledger gateway provider selection and request dependency."""

from fastapi import Request

from agrodex_api.ledger.gateway import LedgerGateway, LedgerSession
from agrodex_api.ledger.hedera import HederaLedgerGateway
from agrodex_api.ledger.local import LocalLedgerGateway
from agrodex_api.settings import Settings, get_settings


def build_ledger_gateway(settings: Settings) -> LedgerGateway:
    """Build the gateway for the configured provider."""
    if settings.ledger_provider == "hedera":
        return HederaLedgerGateway(settings)
    return LocalLedgerGateway(
        operator_id=settings.hedera_operator_id or "0.0.1001",
        topic_id=settings.hedera_topic_id or "0.0.5001",
    )


def create_ledger_session(settings: Settings = None) -> LedgerSession:
    settings = settings or get_settings()
    return LedgerSession(lambda: build_ledger_gateway(settings))


def get_ledger(request: Request) -> LedgerGateway:
    """Dependency: the process-wide ledger gateway held on the application."""
    return request.app.state.ledger_session.get()
