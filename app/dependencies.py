"""
dependencies.py — Shared FastAPI Dependencies

Email transports are resolved here so routers and the background poller
never construct them directly; tests override these dependencies with
fakes via app.dependency_overrides.

Business Rules:
- get_email_sender returns None when SMTP credentials are missing
- get_inbox_reader returns None when IMAP credentials are missing
- require_email_sender raises 503 when no sender is configured

Called by: routers/rfps.py, scheduler.py
Depends on: config, email_service
"""

from fastapi import Depends, HTTPException

from .config import get_settings
from .email_service import EmailSender, ImapInboxReader, InboxReader, SmtpEmailSender


def get_email_sender() -> EmailSender | None:
    settings = get_settings()
    if not settings.email_configured:
        return None
    return SmtpEmailSender(settings)


def get_inbox_reader() -> InboxReader | None:
    settings = get_settings()
    if not settings.inbox_configured:
        return None
    return ImapInboxReader(settings)


def require_email_sender(sender: EmailSender | None = Depends(get_email_sender)) -> EmailSender:
    if sender is None:
        raise HTTPException(503, "Email sending is not configured")
    return sender
