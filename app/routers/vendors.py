"""
routers/vendors.py — Vendor directory routes

Business Rules:
- Vendor emails are unique (case-insensitive); a second vendor with the
  same address is a 409
- Listing is alphabetical by name

Called by: main.py (router mount)
Depends on: models, schemas/vendors.py
"""

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Vendor
from ..schemas.vendors import VendorCreate

router = APIRouter(tags=["vendors"])


@router.post("/api/vendors", status_code=201)
async def create_vendor(payload: VendorCreate, db: Session = Depends(get_db)):
    existing = db.execute(
        select(Vendor).where(func.lower(Vendor.email) == payload.email)
    ).scalar_one_or_none()
    if existing:
        raise HTTPException(409, "A vendor with this email already exists")

    vendor = Vendor(name=payload.name, email=payload.email, contact_name=payload.contact_name)
    db.add(vendor)
    db.commit()
    db.refresh(vendor)
    logger.info("Vendor {} created: {}", vendor.id, vendor.name)
    return vendor.to_dict()


@router.get("/api/vendors")
async def list_vendors(db: Session = Depends(get_db)):
    vendors = db.execute(select(Vendor).order_by(Vendor.name)).scalars().all()
    return [v.to_dict() for v in vendors]


@router.get("/api/vendors/{vendor_id}")
async def get_vendor(vendor_id: str, db: Session = Depends(get_db)):
    vendor = db.get(Vendor, vendor_id)
    if not vendor:
        raise HTTPException(404, "Vendor not found")
    return vendor.to_dict()
