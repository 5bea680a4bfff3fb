"""
schemas/vendors.py — Pydantic models for vendor endpoints

Business Rules:
- Emails are validated and lowercased (replies are matched on sender address)
- Name must not be blank

Called by: routers/vendors.py
Depends on: pydantic, email-validator
"""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, field_validator


class VendorCreate(BaseModel):
    name: str
    email: EmailStr
    contact_name: str | None = None

    @field_validator("name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Vendor name must not be blank")
        return v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return str(v).strip().lower()
