"""
routers/proposals.py — Manual proposal entry and (re-)evaluation

Business Rules:
- One proposal per (rfp, vendor); a second POST is a 409 carrying the
  existing proposal id (raised as DuplicateProposalError, mapped in main.py)
- New and updated proposals are evaluated immediately
- Create, update and evaluate clear the owning RFP's comparison cache

Called by: main.py (router mount)
Depends on: models, schemas/proposals.py, services/proposal_service.py
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Proposal, Rfp, Vendor
from ..schemas.proposals import ProposalCreate, ProposalUpdate
from ..services.comparison_cache import invalidate_comparison_cache
from ..services.proposal_service import (
    PROPOSAL_FIELDS,
    create_proposal,
    evaluate_all,
    evaluate_and_store,
    list_proposals,
    update_proposal,
)

router = APIRouter(tags=["proposals"])


def _get_proposal_or_404(db: Session, proposal_id: str) -> Proposal:
    proposal = db.get(Proposal, proposal_id)
    if not proposal:
        raise HTTPException(404, "Proposal not found")
    return proposal


@router.post("/api/proposals", status_code=201)
async def add_proposal(payload: ProposalCreate, db: Session = Depends(get_db)):
    rfp = db.get(Rfp, payload.rfp_id)
    if not rfp:
        raise HTTPException(404, "RFP not found")
    if not db.get(Vendor, payload.vendor_id):
        raise HTTPException(404, "Vendor not found")

    fields = payload.model_dump(include=set(PROPOSAL_FIELDS), exclude_none=True)
    proposal = create_proposal(
        db, rfp, payload.vendor_id, fields,
        parsed_data=payload.parsed_data, raw_email=payload.raw_email,
    )
    evaluate_and_store(proposal, rfp)
    db.commit()
    return proposal.to_dict()


@router.get("/api/proposals/rfp/{rfp_id}")
async def list_rfp_proposals(rfp_id: str, db: Session = Depends(get_db)):
    if not db.get(Rfp, rfp_id):
        raise HTTPException(404, "RFP not found")
    return [p.to_dict() for p in list_proposals(db, rfp_id)]


@router.get("/api/proposals/{proposal_id}")
async def get_proposal(proposal_id: str, db: Session = Depends(get_db)):
    return _get_proposal_or_404(db, proposal_id).to_dict()


@router.put("/api/proposals/{proposal_id}")
async def edit_proposal(proposal_id: str, payload: ProposalUpdate, db: Session = Depends(get_db)):
    proposal = _get_proposal_or_404(db, proposal_id)
    changes = payload.model_dump(exclude_unset=True)
    parsed_data = changes.pop("parsed_data", None)
    update_proposal(db, proposal, changes, parsed_data=parsed_data)
    evaluate_and_store(proposal)
    db.commit()
    return proposal.to_dict()


@router.post("/api/proposals/{proposal_id}/evaluate")
async def evaluate_proposal_route(proposal_id: str, db: Session = Depends(get_db)):
    proposal = _get_proposal_or_404(db, proposal_id)
    evaluation = evaluate_and_store(proposal)
    invalidate_comparison_cache(proposal.rfp, reason="proposal re-evaluated")
    db.commit()
    return {"proposal_id": proposal.id, "evaluation": evaluation.to_dict()}


@router.post("/api/proposals/rfp/{rfp_id}/evaluate-all")
async def evaluate_all_route(rfp_id: str, db: Session = Depends(get_db)):
    rfp = db.get(Rfp, rfp_id)
    if not rfp:
        raise HTTPException(404, "RFP not found")
    results = evaluate_all(db, rfp)
    invalidate_comparison_cache(rfp, reason="proposals re-evaluated")
    db.commit()
    return {
        "rfp_id": rfp.id,
        "results": results,
        "evaluated": sum(1 for r in results if r["success"]),
    }
