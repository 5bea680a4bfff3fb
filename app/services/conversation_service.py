"""Conversation service — agent state, chat turns and RFP draft materialization.

Business Rules:
- Agent state holds workflow_step, rfp_draft, last_action, rfp_id, metadata
- Every rfp_draft fragment is merged through normalize_rfp_draft
- No rfp_id yet + materializable draft → create the RFP (status draft),
  record rfp_id, move to ready_to_send
- rfp_id known → apply only real changes to the RFP; a budget or
  requirements change clears its comparison cache
- A failing draft materialization never fails the chat turn
- The conversation title is set from the model's suggestion once

Called by: routers/conversations.py, email_service.py
Depends on: models, services/draft_reconciler.py, services/ai_assistant.py,
            services/comparison_cache.py
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models import Conversation, Message, Rfp, Vendor
from app.services.ai_assistant import chat_with_agent_state
from app.services.comparison_cache import invalidate_comparison_cache
from app.services.draft_reconciler import (
    build_rfp_create,
    build_rfp_update,
    normalize_rfp_draft,
)

DEFAULT_TITLE = "New Conversation"

# workflow step → conversation status
_STEP_STATUS = {
    "ready_to_send": "ready_to_send",
    "collecting_requirements": "collecting_requirements",
    "sent": "sent",
    "closed": "closed",
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Agent state ───────────────────────────────────────────────────────


def create_default_agent_state() -> dict:
    return {
        "workflow_step": "initial",
        "rfp_draft": {"missing_fields": ["title", "description", "requirements"]},
        "last_action": "Conversation started",
        "metadata": {"started_at": _now_iso()},
    }


def summarize_agent_state(state: dict) -> str:
    """Plain-text summary of the agent state for the model prompt."""
    parts = [f"Workflow Step: {state.get('workflow_step', 'initial')}"]

    draft = state.get("rfp_draft")
    if draft:
        parts.append("\nRFP Draft Status:")
        if draft.get("title"):
            parts.append(f"- Title: {draft['title']}")
        if draft.get("description"):
            parts.append(f"- Description: {draft['description']}")
        if draft.get("budget"):
            parts.append(f"- Budget: ${draft['budget']:,.0f}")
        if draft.get("deadline"):
            parts.append(f"- Deadline: {draft['deadline']}")
        items = (draft.get("requirements") or {}).get("items") or []
        if items:
            parts.append(f"- Items: {len(items)} item(s) specified")
        if draft.get("vendors_selected"):
            parts.append(f"- Vendors Selected: {len(draft['vendors_selected'])} vendor(s)")
        if draft.get("missing_fields"):
            parts.append(f"- Missing Fields: {', '.join(draft['missing_fields'])}")

    if state.get("rfp_id"):
        parts.append(f"\nRFP Created: {state['rfp_id']}")
    if state.get("last_action"):
        parts.append(f"\nLast Action: {state['last_action']}")
    return "\n".join(parts)


def update_agent_state(db: Session, conversation: Conversation, changes: dict) -> dict:
    """Shallow-merge changes into the agent state and stamp metadata.last_updated."""
    current = copy.deepcopy(conversation.agent_state or {})
    metadata = {
        **(current.get("metadata") or {}),
        **(changes.get("metadata") or {}),
        "last_updated": _now_iso(),
    }
    state = {**current, **changes, "metadata": metadata}
    conversation.agent_state = state
    db.commit()
    return state


def update_conversation_status(db: Session, conversation: Conversation, status: str) -> None:
    conversation.status = status
    db.commit()


# ── Conversations & messages ─────────────────────────────────────────


def create_conversation(
    db: Session, session_id: str, initial_message: str | None = None, title: str | None = None
) -> Conversation:
    conversation = Conversation(
        session_id=session_id,
        title=title or DEFAULT_TITLE,
        status="drafting_rfp",
        agent_state=create_default_agent_state(),
    )
    db.add(conversation)
    db.flush()
    if initial_message:
        db.add(Message(conversation_id=conversation.id, role="user", content=initial_message))
    db.commit()
    db.refresh(conversation)
    logger.info("Conversation {} started (session {})", conversation.id, session_id)
    return conversation


def add_message(db: Session, conversation: Conversation, role: str, content: str) -> Message:
    message = Message(conversation_id=conversation.id, role=role, content=content)
    db.add(message)
    conversation.updated_at = datetime.now(timezone.utc)
    db.commit()
    return message


def get_recent_messages(db: Session, conversation: Conversation, limit: int = 3) -> list[Message]:
    """Last `limit` messages, oldest first."""
    rows = db.execute(
        select(Message)
        .where(Message.conversation_id == conversation.id)
        .order_by(Message.created_at.desc())
        .limit(limit)
    ).scalars().all()
    return list(reversed(rows))


# ── Draft materialization ────────────────────────────────────────────


def _rfp_current(rfp: Rfp) -> dict:
    return {
        "title": rfp.title,
        "description": rfp.description,
        "budget": rfp.budget,
        "deadline": rfp.deadline,
        "requirements": rfp.requirements or {},
    }


def create_rfp_from_draft(db: Session, draft: dict) -> Rfp | None:
    values = build_rfp_create(draft, settings.placeholder_title)
    if values is None:
        return None
    rfp = Rfp(status="draft", **values)
    db.add(rfp)
    db.commit()
    db.refresh(rfp)
    logger.info("RFP {} created from conversation draft: {}", rfp.id, rfp.title)
    return rfp


def update_rfp_from_draft(db: Session, rfp: Rfp, draft: dict) -> dict:
    """Apply draft changes to an existing RFP. Returns the applied changes."""
    changes = build_rfp_update(_rfp_current(rfp), draft, settings.placeholder_title)
    if not changes:
        return changes
    for key, value in changes.items():
        setattr(rfp, key, value)
    if "budget" in changes or "requirements" in changes:
        invalidate_comparison_cache(rfp, reason="draft changed budget/requirements")
    db.commit()
    logger.info("RFP {} updated from draft: {}", rfp.id, ", ".join(sorted(changes)))
    return changes


def process_rfp_draft(db: Session, conversation: Conversation, state_update: dict) -> str | None:
    """Merge the draft fragment into agent state and create/update the RFP.

    Returns the RFP id known after processing, or None.
    """
    state = conversation.agent_state or {}
    fragment = state_update.get("rfp_draft")
    if fragment is None:
        return state.get("rfp_id")

    if "missing_fields" in state_update and "missing_fields" not in fragment:
        fragment = {**fragment, "missing_fields": state_update["missing_fields"]}
    merged = normalize_rfp_draft(state.get("rfp_draft") or {}, fragment)
    state = update_agent_state(db, conversation, {"rfp_draft": merged})

    rfp_id = state.get("rfp_id")
    if rfp_id:
        rfp = db.get(Rfp, rfp_id)
        if rfp is not None:
            update_rfp_from_draft(db, rfp, merged)
            return rfp_id
        logger.warning("Agent state references missing RFP {}", rfp_id)

    rfp = create_rfp_from_draft(db, merged)
    if rfp is None:
        return None
    update_agent_state(db, conversation, {
        "rfp_id": rfp.id,
        "workflow_step": "ready_to_send",
        "last_action": "RFP created automatically from collected information",
    })
    update_conversation_status(db, conversation, "ready_to_send")
    return rfp.id


def _chat_context(db: Session) -> dict:
    rfps = db.execute(select(Rfp).order_by(Rfp.created_at.desc()).limit(10)).scalars().all()
    vendors = db.execute(select(Vendor).limit(20)).scalars().all()
    return {
        "rfps": [{"title": r.title} for r in rfps],
        "vendors": [{"name": v.name} for v in vendors],
    }


async def handle_user_message(db: Session, conversation: Conversation, content: str) -> dict:
    """One chat turn: store the message, ask the assistant, apply its state update."""
    recent = [
        {"role": m.role, "content": m.content}
        for m in get_recent_messages(db, conversation, limit=3)
    ]
    add_message(db, conversation, "user", content)
    state = conversation.agent_state or create_default_agent_state()

    result = await chat_with_agent_state(
        content, summarize_agent_state(state), recent, _chat_context(db)
    )
    add_message(db, conversation, "assistant", result["response"])

    update: dict[str, Any] = result["state_update"]
    if update:
        changes = {k: v for k, v in update.items() if k in ("workflow_step", "last_action")}
        if changes:
            update_agent_state(db, conversation, changes)
        if update.get("workflow_step"):
            status = _STEP_STATUS.get(update["workflow_step"], "drafting_rfp")
            update_conversation_status(db, conversation, status)

        try:
            process_rfp_draft(db, conversation, update)
        except Exception as e:
            db.rollback()
            logger.error("Draft processing failed for conversation {}: {}", conversation.id, e)

        draft_title = ((conversation.agent_state or {}).get("rfp_draft") or {}).get("title")
        if draft_title == settings.placeholder_title:
            draft_title = None
        title = update.get("conversation_title") or draft_title
        if title and conversation.title in (None, "", DEFAULT_TITLE):
            conversation.title = title
            db.commit()

    db.refresh(conversation)
    return {
        "conversation_id": conversation.id,
        "message": result["response"],
        "state_update": update or None,
        "show_send_button": result["show_send_button"],
        "agent_state": conversation.agent_state,
        "status": conversation.status,
    }
