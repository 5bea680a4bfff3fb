"""
Email Pipeline — the RFP round trip:
  1. SEND:    compose the RFP email → EmailSender.deliver → record SentEmail
  2. MONITOR: InboxReader.poll returns vendor replies
  3. PARSE:   AI extracts proposal fields from the reply text
  4. SCORE:   upsert the proposal, evaluate it, clear the comparison cache,
              notify the conversation that sent the RFP

Transports are injected (EmailSender / InboxReader protocols). The SMTP and
IMAP adapters at the bottom run the blocking stdlib clients in a thread.
"""
import asyncio
import email
import imaplib
import smtplib
import ssl
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email import policy
from email.message import EmailMessage
from email.utils import make_msgid, parseaddr
from typing import Protocol

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import get_settings
from app.models import Conversation, Rfp, SentEmail, Vendor
from app.services.conversation_service import add_message, update_agent_state, update_conversation_status
from app.services.proposal_service import upsert_proposal
from app.services.response_parser import parse_vendor_reply

REPLY_KEYWORDS = ("rfp", "proposal", "quote")
REPLY_PREFIXES = ("re:", "fwd:", "fw:", "rfp:")


@dataclass
class VendorReply:
    """A normalized inbound message; MIME parsing happens in the InboxReader."""
    vendor_email: str
    subject: str
    body_text: str
    attachments: list = field(default_factory=list)
    message_id: str | None = None


class EmailSender(Protocol):
    async def deliver(self, vendor: Vendor, rfp: Rfp) -> str:
        """Send the RFP to one vendor. Returns the message id; raises on failure."""
        ...


class InboxReader(Protocol):
    async def poll(self) -> list[VendorReply]:
        ...


# ═══════════════════════════════════════════════════════════════════════════════
# 1. SEND RFPs
# ═══════════════════════════════════════════════════════════════════════════════

def display_title(rfp: Rfp) -> str:
    """RFP title, or its description while the title is still the placeholder."""
    title = (rfp.title or "").strip()
    if not title or title == get_settings().placeholder_title:
        return (rfp.description or "").strip() or "Request for Proposal"
    return title


def format_requirements(requirements: dict | None) -> str:
    if not requirements:
        return "None specified"
    lines = []
    items = requirements.get("items") or []
    if items:
        lines.append("Items:")
        for idx, item in enumerate(items, start=1):
            line = f"{idx}. {item.get('name')}"
            if item.get("quantity"):
                line += f" (Qty: {item['quantity']})"
            if item.get("specifications"):
                line += f" - {item['specifications']}"
            lines.append(line)
    if requirements.get("delivery_days"):
        lines.append(f"Delivery: {requirements['delivery_days']} days")
    if requirements.get("payment_terms"):
        lines.append(f"Payment Terms: {requirements['payment_terms']}")
    if requirements.get("warranty"):
        lines.append(f"Warranty: {requirements['warranty']}")
    other = requirements.get("other_requirements") or []
    if other:
        lines.append("Other Requirements:")
        lines.extend(f"{idx}. {req}" for idx, req in enumerate(other, start=1))
    return "\n".join(lines) or "None specified"


def compose_rfp_email(vendor: Vendor, rfp: Rfp) -> tuple[str, str]:
    """Build (subject, body) for one vendor."""
    title = display_title(rfp)
    header = [title]
    if rfp.description and rfp.description.strip() != title:
        header.append(rfp.description.strip())
    if rfp.budget:
        header.append(f"Budget: ${rfp.budget:,.2f}")
    if rfp.deadline:
        header.append(f"Deadline: {rfp.deadline.date().isoformat()}")

    body = f"""Dear {vendor.contact_name or vendor.name},

We are requesting a proposal for the following procurement:

{chr(10).join(header)}

Requirements:
{format_requirements(rfp.requirements)}

Please provide your proposal including:
  - Detailed pricing for all items
  - Delivery timeline
  - Payment terms
  - Warranty information
  - Any additional terms or conditions

Please reply to this email with your proposal.

Thank you,
Procurement Team"""
    return f"RFP: {title}", body


async def send_rfp_to_vendors(
    db: Session,
    rfp: Rfp,
    vendors: list[Vendor],
    sender: EmailSender,
    conversation_id: str | None = None,
) -> dict:
    """Deliver the RFP to each vendor, send_concurrency at a time.

    Returns {"results": [{vendor_id, vendor_name, success, message_id|error}],
    "sent": n, "failed": n}.
    """
    batch_size = max(1, get_settings().send_concurrency)
    results = []

    for start in range(0, len(vendors), batch_size):
        batch = vendors[start:start + batch_size]
        outcomes = await asyncio.gather(
            *(sender.deliver(v, rfp) for v in batch), return_exceptions=True
        )
        for vendor, outcome in zip(batch, outcomes):
            if isinstance(outcome, Exception):
                logger.warning("RFP {} to {} failed: {}", rfp.id, vendor.email, outcome)
                results.append({
                    "vendor_id": vendor.id,
                    "vendor_name": vendor.name,
                    "success": False,
                    "error": str(outcome),
                })
                continue
            subject, body = compose_rfp_email(vendor, rfp)
            db.add(SentEmail(
                conversation_id=conversation_id,
                rfp_id=rfp.id,
                vendor_id=vendor.id,
                email_message_id=outcome,
                subject=subject,
                body=body,
            ))
            results.append({
                "vendor_id": vendor.id,
                "vendor_name": vendor.name,
                "success": True,
                "message_id": outcome,
            })

    sent = sum(1 for r in results if r["success"])
    if sent:
        rfp.status = "sent"
    db.commit()

    if conversation_id and sent:
        conversation = db.get(Conversation, conversation_id)
        if conversation is not None:
            update_agent_state(db, conversation, {
                "workflow_step": "sent",
                "last_action": f"RFP sent to {sent} vendor(s)",
            })
            update_conversation_status(db, conversation, "sent")
            names = ", ".join(r["vendor_name"] for r in results if r["success"])
            add_message(db, conversation, "system", f"RFP sent to {sent} vendor(s): {names}")

    logger.info("RFP {} dispatched: {} sent, {} failed", rfp.id, sent, len(results) - sent)
    return {"results": results, "sent": sent, "failed": len(results) - sent}


# ═══════════════════════════════════════════════════════════════════════════════
# 2-4. PROCESS REPLIES
# ═══════════════════════════════════════════════════════════════════════════════

def _subject_title(subject: str) -> str:
    """'Re: RFP: Office Laptops' → 'office laptops'."""
    text = subject.strip().lower()
    stripped = True
    while stripped:
        stripped = False
        for prefix in REPLY_PREFIXES:
            if text.startswith(prefix):
                text = text[len(prefix):].strip()
                stripped = True
    return text


def find_matching_rfp(db: Session, subject: str) -> Rfp | None:
    """RFP whose title appears in the subject, else the most recent sent RFP."""
    wanted = _subject_title(subject)
    rfps = db.execute(select(Rfp).order_by(Rfp.created_at.desc()).limit(200)).scalars().all()
    if wanted:
        for rfp in rfps:
            title = display_title(rfp).lower()
            if title and (title in wanted or wanted in title):
                return rfp
    return next((r for r in rfps if r.status == "sent"), None)


def find_conversation_for_rfp(db: Session, rfp_id: str, vendor_id: str) -> Conversation | None:
    """Conversation that sent this RFP to the vendor, else one whose agent state holds it."""
    sent = db.execute(
        select(SentEmail)
        .where(
            SentEmail.rfp_id == rfp_id,
            SentEmail.vendor_id == vendor_id,
            SentEmail.conversation_id.isnot(None),
        )
        .order_by(SentEmail.sent_at.desc())
        .limit(1)
    ).scalar_one_or_none()
    if sent is not None:
        return db.get(Conversation, sent.conversation_id)

    recent = db.execute(
        select(Conversation).order_by(Conversation.updated_at.desc()).limit(100)
    ).scalars().all()
    return next((c for c in recent if (c.agent_state or {}).get("rfp_id") == rfp_id), None)


def _evaluation_message(vendor: Vendor, rfp: Rfp, evaluation: dict) -> str:
    criteria = evaluation["criteria"]
    reqs = criteria["requirements"]
    lines = [
        f"Overall Score: {evaluation['overall_score']}/100",
        f"Price: {criteria['price']['score']}/100 - {criteria['price']['reasoning']}",
        f"Delivery: {criteria['delivery']['score']}/100 - {criteria['delivery']['reasoning']}",
        f"Requirements Match: {reqs['items_matched']}/{reqs['items_total']} items "
        f"({reqs['score']}/100)",
    ]
    for label, key in (("Strengths", "strengths"), ("Weaknesses", "weaknesses"), ("Concerns", "concerns")):
        if evaluation.get(key):
            lines.append(f"{label}: {', '.join(evaluation[key])}")
    summary = "\n".join(lines)
    return (
        f"**Proposal Received from {vendor.name}**\n\n"
        f'I\'ve received and evaluated a proposal from {vendor.name} for the RFP "{rfp.title}".\n\n'
        f"**Evaluation Summary:**\n{summary}\n\n"
        "You can view the full proposal details and comparison in the RFP view."
    )


async def process_vendor_reply(db: Session, reply: VendorReply) -> bool:
    """Turn one inbound reply into a scored proposal. Returns False when skipped."""
    subject = reply.subject or ""
    if not any(k in subject.lower() for k in REPLY_KEYWORDS):
        logger.debug("Skipping email '{}': no rfp/proposal/quote in subject", subject)
        return False

    sender = parseaddr(reply.vendor_email or "")[1].lower()
    vendor = db.execute(
        select(Vendor).where(func.lower(Vendor.email) == sender)
    ).scalar_one_or_none() if sender else None
    if vendor is None:
        logger.info("Skipping email from {}: not a known vendor", reply.vendor_email)
        return False

    rfp = find_matching_rfp(db, subject)
    if rfp is None:
        logger.info("Skipping email '{}': no matching RFP", subject)
        return False

    parsed = await parse_vendor_reply(reply.body_text, reply.attachments)
    if parsed is None:
        logger.warning("Skipping email from {}: reply could not be parsed", vendor.email)
        return False

    proposal, created = upsert_proposal(
        db,
        rfp,
        vendor.id,
        fields=parsed,
        parsed_data={**parsed, "attachment_count": len(reply.attachments)},
        raw_email=reply.body_text,
        email_message_id=reply.message_id,
    )
    db.commit()
    logger.info(
        "Processed proposal from {} for RFP {} (score {}/100)",
        vendor.name, rfp.title, proposal.evaluation["overall_score"],
    )

    if created:
        conversation = find_conversation_for_rfp(db, rfp.id, vendor.id)
        if conversation is not None:
            add_message(db, conversation, "assistant", _evaluation_message(vendor, rfp, proposal.evaluation))
    return True


async def poll_inbox(db: Session, reader: InboxReader) -> dict:
    """Process every message the reader returns. One bad message never stops the batch."""
    replies = await reader.poll()
    counts = {"fetched": len(replies), "processed": 0, "skipped": 0}
    for reply in replies:
        try:
            if await process_vendor_reply(db, reply):
                counts["processed"] += 1
            else:
                counts["skipped"] += 1
        except Exception as e:
            db.rollback()
            counts["skipped"] += 1
            logger.error("Error processing email from {}: {}", reply.vendor_email, e)
    logger.info("Inbox poll: {}", counts)
    return counts


# ═══════════════════════════════════════════════════════════════════════════════
# TRANSPORTS
# ═══════════════════════════════════════════════════════════════════════════════

class SmtpEmailSender:
    """EmailSender over SMTP with STARTTLS."""

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    async def deliver(self, vendor: Vendor, rfp: Rfp) -> str:
        subject, body = compose_rfp_email(vendor, rfp)
        return await asyncio.to_thread(self._send_sync, vendor.email, subject, body)

    def _send_sync(self, to_email: str, subject: str, body: str) -> str:
        s = self.settings
        message = EmailMessage()
        message["Subject"] = subject
        message["From"] = s.smtp_user
        message["To"] = to_email
        message["Message-ID"] = make_msgid()
        message.set_content(body)

        with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=30) as server:
            server.starttls(context=ssl.create_default_context())
            server.login(s.smtp_user, s.smtp_password)
            server.send_message(message)
        return message["Message-ID"]


class ImapInboxReader:
    """InboxReader over IMAP (SSL): unread messages from the last inbox_lookback_hours.

    Fetching RFC822 marks a message \\Seen, so each reply is picked up once.
    """

    def __init__(self, settings=None):
        self.settings = settings or get_settings()

    async def poll(self) -> list[VendorReply]:
        return await asyncio.to_thread(self._fetch_sync)

    def _fetch_sync(self) -> list[VendorReply]:
        s = self.settings
        since = datetime.now(timezone.utc) - timedelta(hours=s.inbox_lookback_hours)
        replies = []
        with imaplib.IMAP4_SSL(s.imap_host, s.imap_port) as client:
            client.login(s.imap_user, s.imap_password)
            client.select("INBOX")
            _, data = client.search(None, "UNSEEN", "SINCE", since.strftime("%d-%b-%Y"))
            for num in (data[0] or b"").split():
                _, msg_data = client.fetch(num, "(RFC822)")
                raw = next((part[1] for part in msg_data if isinstance(part, tuple)), None)
                if raw:
                    replies.append(_reply_from_bytes(raw))
        return replies


def _reply_from_bytes(raw: bytes) -> VendorReply:
    msg = email.message_from_bytes(raw, policy=policy.default)
    body = msg.get_body(preferencelist=("plain", "html"))
    attachments = [
        {"filename": part.get_filename(), "content_type": part.get_content_type()}
        for part in msg.iter_attachments()
    ]
    return VendorReply(
        vendor_email=parseaddr(msg.get("From", ""))[1],
        subject=msg.get("Subject", ""),
        body_text=body.get_content() if body is not None else "",
        attachments=attachments,
        message_id=msg.get("Message-ID"),
    )
