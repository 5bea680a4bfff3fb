"""
routers/conversations.py — Chat sessions that collect an RFP draft

Business Rules:
- A chat turn never fails because the model is down; the reply falls
  back to an apology and the agent state is left alone
- The response carries the updated agent state and conversation status

Called by: main.py (router mount)
Depends on: models, schemas/conversations.py, services/conversation_service.py
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Conversation, Message
from ..schemas.conversations import ConversationCreate, MessageCreate
from ..services.conversation_service import create_conversation, handle_user_message

router = APIRouter(tags=["conversations"])


def _conversation_to_dict(conv: Conversation) -> dict:
    return {
        "id": conv.id,
        "session_id": conv.session_id,
        "title": conv.title,
        "status": conv.status,
        "agent_state": conv.agent_state or {},
        "created_at": conv.created_at.isoformat() if conv.created_at else None,
        "updated_at": conv.updated_at.isoformat() if conv.updated_at else None,
    }


def _message_to_dict(msg: Message) -> dict:
    return {
        "id": msg.id,
        "role": msg.role,
        "content": msg.content,
        "created_at": msg.created_at.isoformat() if msg.created_at else None,
    }


def _get_conversation_or_404(db: Session, conversation_id: str) -> Conversation:
    conv = db.get(Conversation, conversation_id)
    if not conv:
        raise HTTPException(404, "Conversation not found")
    return conv


@router.post("/api/conversations", status_code=201)
async def start_conversation(payload: ConversationCreate, db: Session = Depends(get_db)):
    conv = create_conversation(db, payload.session_id, payload.initial_message, payload.title)
    return _conversation_to_dict(conv)


@router.get("/api/conversations")
async def list_conversations(session_id: str = Query(...), db: Session = Depends(get_db)):
    rows = db.execute(
        select(Conversation)
        .where(Conversation.session_id == session_id)
        .order_by(Conversation.updated_at.desc())
    ).scalars().all()
    return [_conversation_to_dict(c) for c in rows]


@router.get("/api/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, db: Session = Depends(get_db)):
    conv = _get_conversation_or_404(db, conversation_id)
    messages = db.execute(
        select(Message)
        .where(Message.conversation_id == conv.id)
        .order_by(Message.created_at)
    ).scalars().all()
    data = _conversation_to_dict(conv)
    data["messages"] = [_message_to_dict(m) for m in messages]
    return data


@router.post("/api/conversations/{conversation_id}/messages")
async def send_message(conversation_id: str, payload: MessageCreate, db: Session = Depends(get_db)):
    conv = _get_conversation_or_404(db, conversation_id)
    return await handle_user_message(db, conv, payload.content)
