"""CLI commands for AgroDex API."""

import sys
from datetime import timedelta

import click

from agrodex_api import models  # noqa: F401
from agrodex_api.auth.jwt import create_access_token
from agrodex_api.db.base import Base
from agrodex_api.db.seed import seed_demo
from agrodex_api.db.session import SessionLocal, engine
from agrodex_api.errors import AgroDexError
from agrodex_api.ledger.provider import build_ledger_gateway
from agrodex_api.narrative.generator import build_narrative_generator
from agrodex_api.settings import get_settings
from agrodex_api.store.service import ProvenanceStore


@click.group()
def cli():
    """AgroDex API CLI."""
    pass


@cli.command("init-db")
def init_db():
    """Create database tables."""
    Base.metadata.create_all(engine)
    click.echo(f"✓ Tables created: {', '.join(sorted(Base.metadata.tables))}")


@cli.command("seed-demo")
def seed_demo_command():
    """Register and tokenize a demo batch."""
    settings = get_settings()
    click.echo(f"Seeding demo data (ledger provider: {settings.ledger_provider})...")
    db = SessionLocal()
    ledger = build_ledger_gateway(settings)
    narrative = build_narrative_generator(settings)
    try:
        result = seed_demo(db, ledger, narrative)
    except AgroDexError as e:
        db.rollback()
        click.echo(f"✗ Error seeding data at {e.stage}: {e.message}", err=True)
        if e.hint:
            click.echo(f"  hint: {e.hint}", err=True)
        sys.exit(1)
    finally:
        db.close()
        ledger.close()
        narrative.close()

    summary = result["ai_summary"]
    click.echo(f"✓ Certificate {result['tokenId']} #{result['serialNumber']} minted.")
    click.echo(f"  trust score: {summary.get('trustScore')} ({summary.get('trustExplanation')})")
    click.echo(f"  verify: POST /api/verify-batch {{\"tokenId\": \"{result['tokenId']}\", \"serialNumber\": {result['serialNumber']}}}")


@cli.command("forget-verification")
@click.argument("token_id")
@click.argument("serial_number")
def forget_verification(token_id: str, serial_number: str):
    """Drop a cached verification so the next request re-verifies."""
    db = SessionLocal()
    try:
        deleted = ProvenanceStore(db).delete_verification(token_id, serial_number)
    finally:
        db.close()
    if deleted:
        click.echo(f"✓ Cached verification for {token_id}/{serial_number} removed.")
    else:
        click.echo(f"No cached verification for {token_id}/{serial_number}.")


@cli.command("issue-token")
@click.argument("subject")
@click.option("--email", default=None, help="Email claim to embed.")
@click.option("--hours", default=24, show_default=True, help="Token lifetime in hours.")
def issue_token(subject: str, email, hours: int):
    """Issue a bearer token for operator endpoints (development)."""
    click.echo(create_access_token(subject, email=email, expires_in=timedelta(hours=hours)))


if __name__ == "__main__":
    cli()
