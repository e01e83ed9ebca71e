"""Verification record models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, JSON, String, UniqueConstraint

from agrodex_api.db.base import Base


class Verification(Base):
    """Cached verification trace, one live row per (token_id, serial_number)."""

    __tablename__ = "verifications"
    __table_args__ = (
        UniqueConstraint("token_id", "serial_number", name="uq_verifications_token_serial"),
    )

    id = Column(Integer, primary_key=True, index=True)
    token_id = Column(String(50), nullable=False, index=True)
    serial_number = Column(String(20), nullable=False)
    # {nftMetadata, hcsTransactionIds, hcsMessages, narrative, verifiedAt, status}
    trace = Column(JSON, nullable=False)
    trust_score = Column(Integer, nullable=True, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
