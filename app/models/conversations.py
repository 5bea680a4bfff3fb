"""Conversation, chat message and sent-email models."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from ..database import UTCDateTime
from .base import Base


class Conversation(Base):
    """A chat session that collects an RFP draft in its agent state."""

    __tablename__ = "conversations"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id = Column(String(255), nullable=False)
    title = Column(String(255))
    # drafting_rfp | collecting_requirements | ready_to_send | sent | closed
    status = Column(String(30), default="drafting_rfp")
    agent_state = Column(JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        UTCDateTime,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.created_at",
    )

    __table_args__ = (Index("ix_conversations_session", "session_id"),)


class Message(Base):
    __tablename__ = "messages"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id = Column(
        String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    role = Column(String(20), nullable=False)  # user | assistant | system
    content = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    conversation = relationship("Conversation", back_populates="messages")


class SentEmail(Base):
    """Record of an RFP delivered to a vendor."""

    __tablename__ = "sent_emails"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id = Column(String(36), ForeignKey("conversations.id"))
    rfp_id = Column(String(36), ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False)
    vendor_id = Column(String(36), ForeignKey("vendors.id"), nullable=False)
    email_message_id = Column(String(255))
    subject = Column(String(500))
    body = Column(Text)
    sent_at = Column(UTCDateTime, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (Index("ix_sent_emails_rfp_vendor", "rfp_id", "vendor_id"),)
