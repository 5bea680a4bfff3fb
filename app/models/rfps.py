"""RFP model — the structured procurement ask sent to vendors."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, Float, Index, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class Rfp(Base):
    """Request for Proposal.

    Lifecycle: draft → sent (on vendor dispatch) → closed.
    comparison_cache holds the last ComparisonResult; it is cleared
    whenever requirements, budget or the proposal set change.
    """

    __tablename__ = "rfps"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    budget = Column(Float)
    deadline = Column(UTCDateTime)
    requirements = Column(JSON, nullable=False, default=dict)
    status = Column(String(20), default="draft")  # draft | sent | closed

    comparison_cache = Column(JSON)
    comparison_cache_updated_at = Column(UTCDateTime)
    # Last explicit invalidation; late cache writes computed before it are dropped
    comparison_invalidated_at = Column(UTCDateTime)

    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    proposals = relationship(
        "Proposal", back_populates="rfp", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_rfps_status", "status"),
        Index("ix_rfps_created", "created_at"),
    )

    def to_dict(self, include_cache: bool = False) -> dict:
        d = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "budget": self.budget,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "requirements": self.requirements or {},
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_cache:
            d["comparison_cache"] = self.comparison_cache
            d["comparison_cache_updated_at"] = (
                self.comparison_cache_updated_at.isoformat()
                if self.comparison_cache_updated_at
                else None
            )
        return d
