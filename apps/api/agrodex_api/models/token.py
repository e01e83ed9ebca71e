"""Certificate token models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint

from agrodex_api.db.base import Base


class Token(Base):
    """Minted provenance certificate. Never mutated after insert."""

    __tablename__ = "tokens"
    __table_args__ = (UniqueConstraint("token_id", "serial_number", name="uq_tokens_token_serial"),)

    id = Column(Integer, primary_key=True, index=True)
    token_id = Column(String(50), nullable=False, index=True)
    serial_number = Column(String(20), nullable=False)
    ledger_event_refs = Column(JSON, nullable=False, default=list)
    batch_id = Column(Integer, ForeignKey("batches.id"), nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class NftMetadata(Base):
    """Off-ledger full metadata keyed by the compact hash stored on-ledger."""

    __tablename__ = "nft_metadata"

    id = Column(Integer, primary_key=True, index=True)
    metadata_hash = Column(String(64), nullable=False, unique=True, index=True)
    token_id = Column(String(50), nullable=False, index=True)
    serial_number = Column(String(20), nullable=False)
    full_metadata = Column(JSON, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
