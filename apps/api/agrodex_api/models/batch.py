"""Batch models."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text

from agrodex_api.db.base import Base


class Batch(Base):
    """A registered harvest lot and its ledger event trail."""

    __tablename__ = "batches"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    product_type = Column(String(100), nullable=False, index=True)
    quantity = Column(String(100), nullable=False)
    harvest_date = Column(String(10), nullable=False)  # YYYY-MM-DD
    location = Column(String(255), nullable=False)
    photo_url = Column(Text, nullable=True)
    ledger_event_refs = Column(JSON, nullable=False, default=list)  # append-only, submission order
    token_id = Column(String(50), nullable=True, index=True)
    serial_number = Column(String(20), nullable=True)
    narrative_snapshot = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    tokenized_at = Column(DateTime, nullable=True)

    @property
    def certificate_ref(self):
        if self.token_id is None:
            return None
        return (self.token_id, self.serial_number)
