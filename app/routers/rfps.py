"""
routers/rfps.py — RFP CRUD, dispatch to vendors, and proposal comparison

Business Rules:
- PUT applies only the fields sent; a budget or requirements change
  clears the comparison cache
- Sending needs a configured email sender (503 otherwise) and at least
  one known vendor
- Comparison needs at least one proposal (400); ?refresh=true bypasses
  the cache

Called by: main.py (router mount)
Depends on: models, schemas/rfps.py, services/comparison_service.py,
            services/comparison_cache.py, email_service, dependencies
"""

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import require_email_sender
from ..email_service import EmailSender, send_rfp_to_vendors
from ..models import Conversation, Rfp, Vendor
from ..schemas.rfps import RfpCreate, RfpSendRequest, RfpUpdate
from ..services.comparison_cache import invalidate_comparison_cache
from ..services.comparison_service import get_comparison
from ..services.proposal_service import list_proposals

router = APIRouter(tags=["rfps"])


def _get_rfp_or_404(db: Session, rfp_id: str) -> Rfp:
    rfp = db.get(Rfp, rfp_id)
    if not rfp:
        raise HTTPException(404, "RFP not found")
    return rfp


@router.post("/api/rfps", status_code=201)
async def create_rfp(payload: RfpCreate, db: Session = Depends(get_db)):
    rfp = Rfp(
        title=payload.title,
        description=payload.description,
        budget=payload.budget,
        deadline=payload.deadline,
        requirements=payload.requirements.model_dump(),
        status="draft",
    )
    db.add(rfp)
    db.commit()
    db.refresh(rfp)
    logger.info("RFP {} created: {}", rfp.id, rfp.title)
    return rfp.to_dict()


@router.get("/api/rfps")
async def list_rfps(db: Session = Depends(get_db)):
    rfps = db.execute(select(Rfp).order_by(Rfp.created_at.desc())).scalars().all()
    return [r.to_dict() for r in rfps]


@router.get("/api/rfps/{rfp_id}")
async def get_rfp(rfp_id: str, db: Session = Depends(get_db)):
    rfp = _get_rfp_or_404(db, rfp_id)
    data = rfp.to_dict()
    data["proposals"] = [p.to_dict() for p in list_proposals(db, rfp.id)]
    return data


@router.put("/api/rfps/{rfp_id}")
async def update_rfp(rfp_id: str, payload: RfpUpdate, db: Session = Depends(get_db)):
    rfp = _get_rfp_or_404(db, rfp_id)
    changes = payload.model_dump(exclude_unset=True)
    # title, description and requirements are NOT NULL
    for key in ("title", "description", "requirements"):
        if key in changes and changes[key] is None:
            changes.pop(key)
    if "title" in changes and not changes["title"].strip():
        raise HTTPException(400, "Title must not be blank")

    for key, value in changes.items():
        setattr(rfp, key, value)
    if "budget" in changes or "requirements" in changes:
        invalidate_comparison_cache(rfp, reason="RFP edited")
    db.commit()
    db.refresh(rfp)
    return rfp.to_dict()


@router.post("/api/rfps/{rfp_id}/send")
async def send_rfp(
    rfp_id: str,
    payload: RfpSendRequest,
    sender: EmailSender = Depends(require_email_sender),
    db: Session = Depends(get_db),
):
    rfp = _get_rfp_or_404(db, rfp_id)
    vendors = db.execute(select(Vendor).where(Vendor.id.in_(payload.vendor_ids))).scalars().all()
    if not vendors:
        raise HTTPException(400, "No matching vendors")

    if payload.conversation_id and not db.get(Conversation, payload.conversation_id):
        raise HTTPException(404, "Conversation not found")

    return await send_rfp_to_vendors(db, rfp, vendors, sender, payload.conversation_id)


@router.get("/api/rfps/{rfp_id}/compare")
async def compare_rfp_proposals(
    rfp_id: str,
    refresh: bool = Query(False),
    db: Session = Depends(get_db),
):
    rfp = _get_rfp_or_404(db, rfp_id)
    if not list_proposals(db, rfp.id):
        raise HTTPException(400, "No proposals to compare")
    return await get_comparison(db, rfp, refresh=refresh)
