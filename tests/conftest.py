"""
conftest.py — Shared test fixtures for the procurement API

Provides an in-memory SQLite database, a FastAPI TestClient wired to it,
fake email transports, and factory fixtures for core models (Vendor, Rfp,
Proposal, Conversation).

Business Rules:
- All tests run against an isolated in-memory DB
- No test talks to a real model, SMTP or IMAP server
- Each test function gets fresh tables

Called by: all test files via pytest autodiscovery
Depends on: app.models (Base), app.database (get_db), app.dependencies
"""

import os
os.environ["TESTING"] = "1"  # Must be set before importing app modules

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.email_service import VendorReply
from app.models import Base, Conversation, Proposal, Rfp, Vendor

TEST_DB_URL = "sqlite://"

engine = create_engine(
    TEST_DB_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@event.listens_for(engine, "connect")
def _enable_fk(dbapi_conn, _):
    """SQLite ignores FKs by default — turn them on."""
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ── Fake transports ──────────────────────────────────────────────────


class FakeSender:
    """Records deliveries; vendors whose email is in `fail_for` raise."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []

    async def deliver(self, vendor, rfp):
        if vendor.email in self.fail_for:
            raise ConnectionError(f"SMTP refused {vendor.email}")
        self.sent.append((vendor.email, rfp.id))
        return f"<msg-{len(self.sent)}@test>"


class FakeReader:
    def __init__(self, replies=None):
        self.replies = list(replies or [])

    async def poll(self):
        return list(self.replies)


# ── Fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(autouse=True)
def db_session():
    """Create all tables, yield a session, then tear down."""
    Base.metadata.create_all(bind=engine)
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def fake_sender() -> FakeSender:
    return FakeSender()


@pytest.fixture()
def client(db_session: Session, fake_sender: FakeSender) -> TestClient:
    """FastAPI TestClient bound to the test session and the fake sender."""
    from app.database import get_db
    from app.dependencies import get_email_sender
    from app.main import app

    def _override_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_email_sender] = lambda: fake_sender

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture()
def test_vendor(db_session: Session) -> Vendor:
    vendor = Vendor(name="Acme Supplies", email="sales@acme.example", contact_name="Ann Lee")
    db_session.add(vendor)
    db_session.commit()
    db_session.refresh(vendor)
    return vendor


@pytest.fixture()
def second_vendor(db_session: Session) -> Vendor:
    vendor = Vendor(name="Beta Traders", email="quotes@beta.example")
    db_session.add(vendor)
    db_session.commit()
    db_session.refresh(vendor)
    return vendor


@pytest.fixture()
def test_rfp(db_session: Session) -> Rfp:
    """Laptops + monitors RFP with a $10,000 budget and 30-day delivery."""
    rfp = Rfp(
        title="Office Laptops",
        description="Laptops and monitors for the new office",
        budget=10000,
        deadline=datetime(2030, 6, 30, tzinfo=timezone.utc),
        requirements={
            "items": [
                {"name": "Laptop", "quantity": 20, "specifications": "16GB RAM"},
                {"name": "Monitor", "quantity": 15, "specifications": "27-inch"},
            ],
            "delivery_days": 30,
            "payment_terms": "Net 30",
            "warranty": "1 year",
            "other_requirements": [],
        },
        status="draft",
    )
    db_session.add(rfp)
    db_session.commit()
    db_session.refresh(rfp)
    return rfp


@pytest.fixture()
def test_proposal(db_session: Session, test_rfp: Rfp, test_vendor: Vendor) -> Proposal:
    proposal = Proposal(
        rfp_id=test_rfp.id,
        vendor_id=test_vendor.id,
        total_price=9500,
        delivery_days=25,
        payment_terms="Net 30",
        warranty="2 years",
        completeness=0.9,
        parsed_data={
            "item_prices": [
                {"item": "Laptop", "price": 400, "quantity": 20},
                {"item": "Monitor", "price": 100, "quantity": 15},
            ],
        },
    )
    db_session.add(proposal)
    db_session.commit()
    db_session.refresh(proposal)
    return proposal


@pytest.fixture()
def test_conversation(db_session: Session) -> Conversation:
    from app.services.conversation_service import create_conversation

    return create_conversation(db_session, "session-1")


@pytest.fixture()
def make_reply():
    """Factory for inbound vendor replies (defaults: Acme answering the laptop RFP)."""

    def _make(vendor_email="sales@acme.example", subject="Re: RFP: Office Laptops",
              body="We can supply everything for $9,500.", attachments=None,
              message_id="<reply-1@acme>") -> VendorReply:
        return VendorReply(
            vendor_email=vendor_email,
            subject=subject,
            body_text=body,
            attachments=attachments or [],
            message_id=message_id,
        )

    return _make


@pytest.fixture()
def make_reader():
    """Factory for an InboxReader that returns the given replies."""
    return FakeReader
