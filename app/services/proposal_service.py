"""Proposal service — create/update proposals and store their evaluations.

Business Rules:
- One proposal per (rfp, vendor). create_proposal refuses a second one
  with DuplicateProposalError; the inbox path uses upsert_proposal instead
- Every create/update clears the owning RFP's comparison cache
- The latest evaluation is embedded in parsed_data["evaluation"]
- Proposal and RFP rows are turned into plain snapshots before scoring

Called by: routers/proposals.py, email_service.py, comparison_service.py
Depends on: models, services/proposal_evaluator.py, services/comparison_cache.py
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Proposal, Rfp
from app.services.comparison_cache import invalidate_comparison_cache
from app.services.proposal_evaluator import ProposalEvaluation, evaluate_proposal
from app.utils import safe_float, safe_int

PROPOSAL_FIELDS = (
    "total_price",
    "delivery_days",
    "payment_terms",
    "warranty",
    "notes",
    "completeness",
)


class DuplicateProposalError(Exception):
    """A proposal for this (rfp, vendor) pair already exists."""

    def __init__(self, rfp_id: str, vendor_id: str, proposal_id: str):
        self.rfp_id = rfp_id
        self.vendor_id = vendor_id
        self.proposal_id = proposal_id
        super().__init__(
            f"Proposal {proposal_id} already exists for RFP {rfp_id} and vendor {vendor_id}"
        )


# ── Snapshots ─────────────────────────────────────────────────────────


def proposal_snapshot(proposal: Proposal) -> dict:
    parsed = dict(proposal.parsed_data or {})
    return {
        "id": proposal.id,
        "vendor_id": proposal.vendor_id,
        "vendor_name": proposal.vendor.name if proposal.vendor else None,
        "total_price": proposal.total_price,
        "item_prices": parsed.get("item_prices"),
        "delivery_days": proposal.delivery_days,
        "payment_terms": proposal.payment_terms,
        "warranty": proposal.warranty,
        "notes": proposal.notes,
        "completeness": proposal.completeness,
        "raw_email": proposal.raw_email,
        "parsed_data": parsed,
        "updated_at": proposal.updated_at,
    }


def rfp_snapshot(rfp: Rfp) -> dict:
    return {
        "id": rfp.id,
        "title": rfp.title,
        "description": rfp.description,
        "budget": rfp.budget,
        "deadline": rfp.deadline,
        "requirements": dict(rfp.requirements or {}),
    }


def _coerce_fields(fields: dict[str, Any]) -> dict[str, Any]:
    """Column types for the structured proposal fields. Unparseable numbers become None, 0 is kept."""
    out = {}
    for key in PROPOSAL_FIELDS:
        if key not in fields:
            continue
        value = fields[key]
        if key in ("total_price", "completeness"):
            value = safe_float(value)
        elif key == "delivery_days":
            value = safe_int(value)
        out[key] = value
    return out


# ── Evaluation ────────────────────────────────────────────────────────


def evaluate_and_store(proposal: Proposal, rfp: Rfp | None = None) -> ProposalEvaluation:
    """Score a proposal against its RFP and embed the result. Caller commits."""
    rfp = rfp or proposal.rfp
    evaluation = evaluate_proposal(proposal_snapshot(proposal), rfp_snapshot(rfp))
    stored = evaluation.to_dict()
    stored.pop("vendor_id")
    stored.pop("vendor_name")
    proposal.parsed_data = {**(proposal.parsed_data or {}), "evaluation": stored}
    logger.info(
        "Proposal {} evaluated: {}/100 (RFP {})", proposal.id, evaluation.overall_score, rfp.id
    )
    return evaluation


def evaluate_all(db: Session, rfp: Rfp) -> list[dict]:
    """Re-evaluate every proposal of an RFP. One failure does not stop the rest."""
    results = []
    for proposal in list_proposals(db, rfp.id):
        try:
            evaluation = evaluate_and_store(proposal, rfp)
            results.append({
                "proposal_id": proposal.id,
                "vendor_name": proposal.vendor.name if proposal.vendor else None,
                "overall_score": evaluation.overall_score,
                "success": True,
            })
        except Exception as e:
            logger.error("Evaluation failed for proposal {}: {}", proposal.id, e)
            results.append({"proposal_id": proposal.id, "success": False, "error": str(e)})
    db.commit()
    return results


# ── Create / update ──────────────────────────────────────────────────


def list_proposals(db: Session, rfp_id: str) -> list[Proposal]:
    """Proposals of an RFP in arrival order."""
    return list(db.execute(
        select(Proposal).where(Proposal.rfp_id == rfp_id).order_by(Proposal.created_at)
    ).scalars().all())


def find_proposal(db: Session, rfp_id: str, vendor_id: str) -> Proposal | None:
    return db.execute(
        select(Proposal).where(Proposal.rfp_id == rfp_id, Proposal.vendor_id == vendor_id)
    ).scalar_one_or_none()


def create_proposal(
    db: Session,
    rfp: Rfp,
    vendor_id: str,
    fields: dict[str, Any],
    parsed_data: dict | None = None,
    raw_email: str | None = None,
    email_message_id: str | None = None,
) -> Proposal:
    """Insert a new proposal. Raises DuplicateProposalError for an existing pair."""
    existing = find_proposal(db, rfp.id, vendor_id)
    if existing:
        raise DuplicateProposalError(rfp.id, vendor_id, existing.id)

    proposal = Proposal(
        rfp_id=rfp.id,
        vendor_id=vendor_id,
        parsed_data=dict(parsed_data or {}),
        raw_email=raw_email,
        email_message_id=email_message_id,
        **_coerce_fields(fields),
    )
    db.add(proposal)
    db.flush()
    invalidate_comparison_cache(rfp, reason="proposal created")
    db.commit()
    db.refresh(proposal)
    logger.info("Proposal {} created for RFP {} / vendor {}", proposal.id, rfp.id, vendor_id)
    return proposal


def update_proposal(
    db: Session,
    proposal: Proposal,
    fields: dict[str, Any],
    parsed_data: dict | None = None,
) -> Proposal:
    """Apply the given fields (only keys present are changed). Clears the RFP cache."""
    for key, value in _coerce_fields(fields).items():
        setattr(proposal, key, value)
    if parsed_data is not None:
        evaluation = (proposal.parsed_data or {}).get("evaluation")
        proposal.parsed_data = dict(parsed_data)
        if evaluation is not None and "evaluation" not in parsed_data:
            proposal.parsed_data["evaluation"] = evaluation
    invalidate_comparison_cache(proposal.rfp, reason="proposal updated")
    db.commit()
    db.refresh(proposal)
    logger.info("Proposal {} updated", proposal.id)
    return proposal


def upsert_proposal(
    db: Session,
    rfp: Rfp,
    vendor_id: str,
    fields: dict[str, Any],
    parsed_data: dict,
    raw_email: str | None = None,
    email_message_id: str | None = None,
) -> tuple[Proposal, bool]:
    """Update-not-insert for a (rfp, vendor) pair, then evaluate.

    Returns (proposal, created). Caller commits.
    """
    proposal = find_proposal(db, rfp.id, vendor_id)
    created = proposal is None
    if created:
        proposal = Proposal(rfp_id=rfp.id, vendor_id=vendor_id)
        db.add(proposal)

    for key, value in _coerce_fields(fields).items():
        setattr(proposal, key, value)
    proposal.parsed_data = dict(parsed_data)
    proposal.raw_email = raw_email
    proposal.email_message_id = email_message_id
    db.flush()
    db.refresh(proposal)

    evaluate_and_store(proposal, rfp)
    invalidate_comparison_cache(rfp, reason="vendor reply")
    logger.info(
        "Proposal {} {} from vendor reply (RFP {})",
        proposal.id, "created" if created else "updated", rfp.id,
    )
    return proposal, created
