"""Comparison service — ranked multi-vendor comparison for one RFP, with caching.

Purpose:
  Evaluates every proposal deterministically, then asks the text-generation
  model for a narrative (summary, recommendation, ranking, concerns,
  negotiation points). Scores and evaluations in the result always come
  from the evaluator, never from the model.

Business Rules:
  - Cached result is served while is_cache_valid() holds and no refresh
    is requested
  - The cache timestamp is the moment the proposal snapshot was taken
  - A result computed before the latest invalidation is returned to the
    caller but not written to the cache
  - Model unavailable → ComparisonUnavailableError (HTTP 502)

Called by: routers/rfps.py (GET /api/rfps/{id}/compare)
Depends on: services/proposal_evaluator.py, services/comparison_cache.py,
            services/llm_service.py
"""

import json
from datetime import datetime, timezone

from loguru import logger
from sqlalchemy.orm import Session

from app.models import Rfp
from app.services.comparison_cache import is_cache_valid, store_comparison
from app.services.llm_service import llm_json
from app.services.proposal_evaluator import ProposalEvaluation, evaluate_proposals, resolve_field
from app.services.proposal_service import list_proposals, proposal_snapshot, rfp_snapshot

NEEDS_MORE_INFO = "needs_more_info"

SYSTEM_PROMPT = (
    "You are a procurement analysis assistant. Always return valid JSON only. "
    "Use exact vendor names as provided."
)


class ComparisonUnavailableError(Exception):
    """The text-generation model returned nothing usable for a comparison."""


def _or_unspecified(value) -> str:
    return "Not specified" if value in (None, "") else str(value)


def _proposal_block(idx: int, evaluation: ProposalEvaluation, proposal: dict) -> str:
    c = evaluation.criteria
    return "\n".join([
        f"Proposal {idx} - {evaluation.vendor_name}:",
        f"- Overall Score: {evaluation.overall_score}/100",
        f"- Total Price: {_or_unspecified(resolve_field(proposal, 'total_price'))}",
        f"- Price Evaluation: {c.price.reasoning} (Score: {c.price.score}/100)",
        f"- Delivery: {_or_unspecified(resolve_field(proposal, 'delivery_days'))} days",
        f"- Delivery Evaluation: {c.delivery.reasoning} (Score: {c.delivery.score}/100)",
        f"- Requirements Match: {c.requirements.items_matched}/{c.requirements.items_total} "
        f"items (Score: {c.requirements.score}/100)",
        f"- Payment Terms: {_or_unspecified(resolve_field(proposal, 'payment_terms'))} "
        f"(Score: {c.payment_terms.score}/100)",
        f"- Warranty: {_or_unspecified(resolve_field(proposal, 'warranty'))} "
        f"(Score: {c.warranty.score}/100)",
        f"- Completeness: {c.completeness.score}/100",
        f"- Strengths: {', '.join(evaluation.strengths) or 'None'}",
        f"- Weaknesses: {', '.join(evaluation.weaknesses) or 'None'}",
        f"- Concerns: {', '.join(evaluation.concerns) or 'None'}",
        f"- Notes: {resolve_field(proposal, 'notes') or 'None'}",
    ])


def _breakdown_block(evaluation: ProposalEvaluation) -> str:
    lines = [f"{evaluation.vendor_name}:"]
    for item in evaluation.criteria.requirements.item_breakdown:
        status = "matches" if item.matches_quantity and item.specifications_match else "issues"
        lines.append(f"  - {item.item_name}: {status} ({item.reasoning})")
    return "\n".join(lines)


def build_comparison_prompt(
    rfp: dict, proposals: list[dict], evaluations: list[ProposalEvaluation]
) -> str:
    by_vendor = {p["vendor_id"]: p for p in proposals}
    proposal_text = "\n\n".join(
        _proposal_block(i, e, by_vendor.get(e.vendor_id, {}))
        for i, e in enumerate(evaluations, start=1)
    )
    breakdown_text = "\n\n".join(_breakdown_block(e) for e in evaluations)
    deadline = rfp.get("deadline")
    budget_text = f"${rfp['budget']:,.2f}" if rfp.get("budget") else "Not specified"
    deadline_text = deadline.date().isoformat() if isinstance(deadline, datetime) else "Not specified"
    return f"""\
Compare these vendor proposals for an RFP.

RFP:
- Title: {rfp.get('title')}
- Description: {rfp.get('description')}
- Budget: {budget_text}
- Deadline: {deadline_text}
- Requirements: {json.dumps(rfp.get('requirements') or {}, indent=2, default=str)}

Proposal evaluations:
{proposal_text}

Requirement matching:
{breakdown_text}

Scores weight price 25%, delivery 20%, requirement items 30%, payment terms 5%, \
warranty 10%, completeness 5%, other requirements 5%.

Return JSON with:
- summary: comparison of all proposals
- recommendation: exact vendor name to choose, or "{NEEDS_MORE_INFO}"
- reasoning: why, referencing the scores
- ranking: array of {{"vendor_name", "rank", "justification"}}
- concerns: array of additional red flags
- negotiation_points: array of negotiation points or clarification questions"""


def _str_list(value) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if v not in (None, "")]


def _ranking(value) -> list[dict]:
    ranking = []
    for entry in value if isinstance(value, list) else []:
        if not isinstance(entry, dict):
            continue
        name = entry.get("vendor_name", entry.get("vendorName"))
        if not name:
            continue
        ranking.append({
            "vendor_name": str(name),
            "rank": entry.get("rank") if isinstance(entry.get("rank"), int) else len(ranking) + 1,
            "justification": str(entry.get("justification") or ""),
        })
    return ranking


async def compare_proposals(rfp: dict, proposals: list[dict]) -> dict:
    """Evaluate and rank proposals, then attach the model's narrative.

    Raises ComparisonUnavailableError when the model reply is unusable.
    """
    evaluations = evaluate_proposals(proposals, rfp)
    prompt = build_comparison_prompt(rfp, proposals, evaluations)

    result = await llm_json(prompt, system=SYSTEM_PROMPT, max_tokens=2500, temperature=0.3)
    if not isinstance(result, dict):
        raise ComparisonUnavailableError("Comparison could not be generated")

    return {
        "summary": str(result.get("summary") or ""),
        "recommendation": str(result.get("recommendation") or NEEDS_MORE_INFO),
        "reasoning": str(result.get("reasoning") or ""),
        "ranking": _ranking(result.get("ranking")),
        "concerns": _str_list(result.get("concerns")),
        "negotiation_points": _str_list(
            result.get("negotiation_points", result.get("negotiationPoints"))
        ),
        "evaluations": [e.to_dict() for e in evaluations],
        "scores": {e.vendor_name: e.overall_score for e in evaluations},
    }


async def get_comparison(db: Session, rfp: Rfp, refresh: bool = False) -> dict:
    """Return {"comparison": ..., "cached": bool} for an RFP with proposals."""
    proposals = [proposal_snapshot(p) for p in list_proposals(db, rfp.id)]

    if not refresh and is_cache_valid(
        rfp.comparison_cache, rfp.comparison_cache_updated_at, proposals
    ):
        logger.info("Serving cached comparison for RFP {} ({} proposals)", rfp.id, len(proposals))
        return {"comparison": rfp.comparison_cache, "cached": True}

    snapshot_at = datetime.now(timezone.utc)
    logger.info(
        "Generating comparison for RFP {}{}", rfp.id, " (manual refresh)" if refresh else ""
    )
    comparison = await compare_proposals(rfp_snapshot(rfp), proposals)

    # Pick up invalidations committed while the model was running
    db.refresh(rfp)
    if store_comparison(rfp, comparison, snapshot_at):
        db.commit()
    return {"comparison": comparison, "cached": False}
