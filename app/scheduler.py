"""Background scheduler — periodic inbox polling for vendor replies.

Sleeps poll_interval_minutes, then runs one poll_inbox pass when an inbox
reader is configured. Only one poll runs at a time; a failed pass is
logged and the loop keeps going.
"""

import asyncio

from loguru import logger

from .config import get_settings
from .database import SessionLocal
from .dependencies import get_inbox_reader
from .email_service import poll_inbox

_poll_lock = asyncio.Lock()


async def run_inbox_poll(reader=None) -> dict | None:
    """One polling pass. Returns the counts, or None if skipped."""
    reader = reader or get_inbox_reader()
    if reader is None:
        logger.debug("Inbox poll skipped: no inbox configured")
        return None
    if _poll_lock.locked():
        logger.info("Inbox poll skipped: previous poll still running")
        return None

    async with _poll_lock:
        db = SessionLocal()
        try:
            return await poll_inbox(db, reader)
        finally:
            db.close()


async def inbox_poll_loop():
    """Launch the polling loop. Call once on app startup."""
    interval = get_settings().poll_interval_minutes * 60
    logger.info("Inbox poll loop started: every {} min", get_settings().poll_interval_minutes)
    while True:
        await asyncio.sleep(interval)
        try:
            await run_inbox_poll()
        except Exception as e:
            logger.error("Inbox poll error: {}", e)
