"""
schemas/conversations.py — Pydantic models for conversation endpoints

Called by: routers/conversations.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


class ConversationCreate(BaseModel):
    session_id: str = Field(min_length=1, max_length=255)
    initial_message: str | None = None
    title: str | None = None


class MessageCreate(BaseModel):
    content: str = Field(max_length=10000)

    @field_validator("content")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message must not be blank")
        return v
