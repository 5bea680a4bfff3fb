"""Proposal model — one vendor's response to one RFP."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Float, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class Proposal(Base):
    """Structured fields live both as columns and inside parsed_data.

    Replies may populate either location; the evaluator resolves each
    field column-first, then parsed_data. The latest evaluation is
    embedded under parsed_data["evaluation"].
    """

    __tablename__ = "proposals"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    rfp_id = Column(String(36), ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    vendor_id = Column(String(36), ForeignKey("vendors.id"), nullable=False)
    email_message_id = Column(String(255))
    raw_email = Column(Text)
    parsed_data = Column(JSON, nullable=False, default=dict)

    total_price = Column(Float)
    delivery_days = Column(Integer)
    payment_terms = Column(String(255))
    warranty = Column(String(255))
    notes = Column(Text)
    completeness = Column(Float)  # 0.0 - 1.0

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    rfp = relationship("Rfp", back_populates="proposals")
    vendor = relationship("Vendor", back_populates="proposals")

    __table_args__ = (
        UniqueConstraint("rfp_id", "vendor_id", name="uq_proposals_rfp_vendor"),
        Index("ix_proposals_rfp", "rfp_id"),
    )

    @property
    def evaluation(self) -> dict | None:
        return (self.parsed_data or {}).get("evaluation")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rfp_id": self.rfp_id,
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor.name if self.vendor else None,
            "raw_email": self.raw_email,
            "parsed_data": self.parsed_data or {},
            "total_price": self.total_price,
            "delivery_days": self.delivery_days,
            "payment_terms": self.payment_terms,
            "warranty": self.warranty,
            "notes": self.notes,
            "completeness": self.completeness,
            "evaluation": self.evaluation,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
