"""Vendor directory."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class Vendor(Base):
    """A supplier that can receive RFPs and reply with proposals."""

    __tablename__ = "vendors"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False)
    contact_name = Column(String(255))
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    proposals = relationship("Proposal", back_populates="vendor")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "contact_name": self.contact_name,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
