"""
schemas/rfps.py — Pydantic models for RFP endpoints

Business Rules:
- Item names must not be blank; quantity, when given, is positive
- Budget is non-negative; delivery_days, when given, is positive
- RfpUpdate only changes the fields actually sent (exclude_unset)
- Send requests need at least one vendor id

Called by: routers/rfps.py
Depends on: pydantic
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator


class RequirementItem(BaseModel):
    name: str
    quantity: int | None = Field(default=None, gt=0)
    specifications: str | None = None

    @field_validator("name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Item name must not be blank")
        return v


class Requirements(BaseModel):
    items: list[RequirementItem] = Field(default_factory=list)
    delivery_days: int | None = Field(default=None, gt=0)
    payment_terms: str | None = None
    warranty: str | None = None
    other_requirements: list[str] = Field(default_factory=list)


class RfpCreate(BaseModel):
    title: str
    description: str = ""
    budget: float | None = Field(default=None, ge=0)
    deadline: datetime | None = None
    requirements: Requirements = Field(default_factory=Requirements)

    @field_validator("title")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Title must not be blank")
        return v


class RfpUpdate(BaseModel):
    title: str | None = None
    description: str | None = None
    budget: float | None = Field(default=None, ge=0)
    deadline: datetime | None = None
    requirements: Requirements | None = None
    status: str | None = Field(default=None, pattern="^(draft|sent|closed)$")


class RfpSendRequest(BaseModel):
    vendor_ids: list[str] = Field(min_length=1)
    conversation_id: str | None = None
