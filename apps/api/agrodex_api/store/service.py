"""Provenance store: batches, certificates and cached verifications."""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from agrodex_api.errors import (
    ConflictError,
    ConstraintViolation,
    MissingSchema,
    PermissionDenied,
    StoreError,
    StoreUnavailable,
)
from agrodex_api.models import Batch, NftMetadata, Token, Verification

logger = logging.getLogger(__name__)

APPROVED_TRUST_THRESHOLD = 80

_MISSING_SCHEMA_HINT = "Database schema is missing. Run `agrodex init-db` against this database."
_PERMISSION_HINT = "Database role lacks privileges on the table. Use the service credential or grant access."
_CONSTRAINT_HINT = "A record with the same key already exists."
_UNAVAILABLE_HINT = "Database is unreachable. Check DATABASE_URL and retry."


def _error_code(exc: SQLAlchemyError) -> Optional[str]:
    """Extract the SQLSTATE code from the DBAPI error, if the driver exposes one."""
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def classify_store_error(exc: SQLAlchemyError, stage: str) -> StoreError:
    """Map a SQLAlchemy error to the store error family."""
    code = _error_code(exc) or ""
    message = str(getattr(exc, "orig", None) or exc)
    lowered = message.lower()

    if isinstance(exc, IntegrityError) or code.startswith("23"):
        return ConstraintViolation(
            "Constraint violation", stage=stage, hint=_CONSTRAINT_HINT, details=message
        )
    if code == "42P01" or "no such table" in lowered or ("relation" in lowered and "does not exist" in lowered):
        return MissingSchema(
            "Database table missing", stage=stage, hint=_MISSING_SCHEMA_HINT, details=message
        )
    if code in ("42501", "42502") or "permission denied" in lowered:
        return PermissionDenied(
            "Database permission denied", stage=stage, hint=_PERMISSION_HINT, details=message
        )
    if isinstance(exc, OperationalError):
        return StoreUnavailable(
            "Database unavailable", stage=stage, hint=_UNAVAILABLE_HINT, details=message
        )
    return StoreError("Database error", stage=stage, details=message)


class ProvenanceStore:
    """Persistence for batches, certificates and verification traces."""

    def __init__(self, db: Session):
        """Initialize provenance store."""
        self.db = db

    @contextmanager
    def _guard(self, stage: str):
        """Roll back and translate database errors raised inside the block."""
        try:
            yield
        except SQLAlchemyError as e:
            self.db.rollback()
            error = classify_store_error(e, stage)
            logger.error(f"Store {stage} failed: {error.message} ({error.details})")
            raise error from e

    # Batches

    def insert_batch(
        self,
        *,
        name: str,
        product_type: str,
        quantity: str,
        harvest_date: str,
        location: str,
        ledger_event_refs: list[str],
        photo_url: Optional[str] = None,
        narrative_snapshot: Optional[dict] = None,
    ) -> Batch:
        """Insert a batch and return it with its generated id."""
        batch = Batch(
            name=name,
            product_type=product_type,
            quantity=quantity,
            harvest_date=harvest_date,
            location=location,
            photo_url=photo_url,
            ledger_event_refs=list(ledger_event_refs),
            narrative_snapshot=narrative_snapshot,
        )
        with self._guard("database_write"):
            self.db.add(batch)
            self.db.commit()
            self.db.refresh(batch)
        return batch

    def get_batch(self, batch_id: int) -> Optional[Batch]:
        with self._guard("database_query"):
            return self.db.query(Batch).filter(Batch.id == batch_id).first()

    def append_batch_event(self, batch: Batch, event_reference: str) -> Batch:
        """Append a ledger event reference, preserving submission order."""
        with self._guard("database_write"):
            batch.ledger_event_refs = [*(batch.ledger_event_refs or []), event_reference]
            self.db.commit()
            self.db.refresh(batch)
        return batch

    def attach_certificate(self, batch: Batch, token_id: str, serial_number: str) -> Batch:
        """Attach the certificate reference. Set once."""
        if batch.token_id is not None:
            raise ConflictError(
                f"Batch {batch.id} is already tokenized as {batch.token_id}/{batch.serial_number}",
                stage="database_write",
            )
        with self._guard("database_write"):
            batch.token_id = token_id
            batch.serial_number = serial_number
            batch.tokenized_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(batch)
        return batch

    def update_batch_narrative(self, batch: Batch, snapshot: dict) -> Batch:
        """Replace the batch narrative snapshot."""
        with self._guard("database_write"):
            batch.narrative_snapshot = snapshot
            self.db.commit()
            self.db.refresh(batch)
        return batch

    # Certificates

    def insert_token(
        self,
        token_id: str,
        serial_number: str,
        ledger_event_refs: list[str],
        batch_id: Optional[int] = None,
    ) -> Token:
        token = Token(
            token_id=token_id,
            serial_number=str(serial_number),
            ledger_event_refs=list(ledger_event_refs),
            batch_id=batch_id,
        )
        with self._guard("database_write"):
            self.db.add(token)
            self.db.commit()
            self.db.refresh(token)
        return token

    def get_token(self, token_id: str, serial_number: str) -> Optional[Token]:
        with self._guard("database_query"):
            return (
                self.db.query(Token)
                .filter(Token.token_id == token_id, Token.serial_number == str(serial_number))
                .first()
            )

    def insert_nft_metadata(
        self, metadata_hash: str, token_id: str, serial_number: str, full_metadata: dict
    ) -> NftMetadata:
        record = NftMetadata(
            metadata_hash=metadata_hash,
            token_id=token_id,
            serial_number=str(serial_number),
            full_metadata=full_metadata,
        )
        with self._guard("database_write"):
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        return record

    def get_nft_metadata_by_hash(self, metadata_hash: str) -> Optional[NftMetadata]:
        with self._guard("database_query"):
            return (
                self.db.query(NftMetadata)
                .filter(NftMetadata.metadata_hash == metadata_hash)
                .first()
            )

    def get_nft_metadata(self, token_id: str, serial_number: str) -> Optional[NftMetadata]:
        with self._guard("database_query"):
            return (
                self.db.query(NftMetadata)
                .filter(
                    NftMetadata.token_id == token_id,
                    NftMetadata.serial_number == str(serial_number),
                )
                .first()
            )

    # Verifications

    def get_verification(self, token_id: str, serial_number: str) -> Optional[Verification]:
        with self._guard("database_query"):
            return (
                self.db.query(Verification)
                .filter(
                    Verification.token_id == token_id,
                    Verification.serial_number == str(serial_number),
                )
                .first()
            )

    def upsert_verification(self, token_id: str, serial_number: str, trace: dict) -> Verification:
        """
        Insert or overwrite the verification trace for a certificate.

        Last write wins; there is no version check between concurrent writers.
        """
        serial_number = str(serial_number)
        narrative = trace.get("narrative") or {}
        trust_score = narrative.get("trustScore")
        if not isinstance(trust_score, int) or isinstance(trust_score, bool):
            trust_score = None
        now = datetime.now(timezone.utc)

        with self._guard("database_write"):
            dialect = self.db.get_bind().dialect.name
            if dialect in ("postgresql", "sqlite"):
                insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
                stmt = (
                    insert(Verification.__table__)
                    .values(
                        token_id=token_id,
                        serial_number=serial_number,
                        trace=trace,
                        trust_score=trust_score,
                        created_at=now,
                        updated_at=now,
                    )
                    .on_conflict_do_update(
                        index_elements=["token_id", "serial_number"],
                        set_={"trace": trace, "trust_score": trust_score, "updated_at": now},
                    )
                )
                self.db.execute(stmt)
            else:
                record = self.get_verification(token_id, serial_number)
                if record is None:
                    record = Verification(token_id=token_id, serial_number=serial_number)
                    self.db.add(record)
                record.trace = trace
                record.trust_score = trust_score
            self.db.commit()

        record = self.get_verification(token_id, serial_number)
        # Sessions keep identity-mapped rows; reload the row written by the upsert.
        self.db.refresh(record)
        return record

    def delete_verification(self, token_id: str, serial_number: str) -> bool:
        """Drop a cached verification so the next request re-verifies."""
        with self._guard("database_write"):
            deleted = (
                self.db.query(Verification)
                .filter(
                    Verification.token_id == token_id,
                    Verification.serial_number == str(serial_number),
                )
                .delete()
            )
            self.db.commit()
        return bool(deleted)

    # Dashboard

    def dashboard_counts(self) -> dict:
        with self._guard("database_query"):
            return {
                "totalBatches": self.db.scalar(select(func.count(Batch.id))) or 0,
                "totalNFTs": self.db.scalar(select(func.count(Token.id))) or 0,
                "totalVerifications": self.db.scalar(select(func.count(Verification.id))) or 0,
                "aiVerified": self.db.scalar(
                    select(func.count(Verification.id)).where(
                        Verification.trust_score >= APPROVED_TRUST_THRESHOLD
                    )
                )
                or 0,
            }

    def recent_verifications(self, approved: bool, limit: int = 5) -> list[Verification]:
        """Most recent verifications above (approved) or below (flagged) the trust threshold."""
        with self._guard("database_query"):
            query = self.db.query(Verification)
            if approved:
                query = query.filter(Verification.trust_score >= APPROVED_TRUST_THRESHOLD)
            else:
                query = query.filter(Verification.trust_score < APPROVED_TRUST_THRESHOLD)
            return query.order_by(Verification.updated_at.desc()).limit(limit).all()

    def ping(self) -> None:
        with self._guard("database_query"):
            self.db.execute(text("SELECT 1"))
