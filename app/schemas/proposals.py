"""
schemas/proposals.py — Pydantic models for proposal endpoints

Business Rules:
- total_price non-negative; completeness within [0, 1]
- ProposalUpdate only changes the fields actually sent (exclude_unset)

Called by: routers/proposals.py
Depends on: pydantic
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProposalFields(BaseModel):
    total_price: float | None = Field(default=None, ge=0)
    delivery_days: int | None = Field(default=None, ge=0)
    payment_terms: str | None = None
    warranty: str | None = None
    notes: str | None = None
    completeness: float | None = Field(default=None, ge=0, le=1)
    parsed_data: dict | None = None


class ProposalCreate(ProposalFields):
    rfp_id: str
    vendor_id: str
    raw_email: str | None = None


class ProposalUpdate(ProposalFields):
    pass
