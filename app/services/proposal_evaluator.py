"""Proposal evaluator — weighted, explainable score for one vendor proposal.

Combines the seven criterion scorers from app/scoring.py into an overall
0-100 score and derives strengths / weaknesses / concerns from a fixed
rule table (no LLM involved).

Input shapes (plain mappings, never mutated):
  proposal: {vendor_id, vendor_name, total_price, item_prices, delivery_days,
             payment_terms, warranty, notes, completeness, raw_email,
             parsed_data}
  rfp:      {budget, requirements: {items, delivery_days, payment_terms,
             warranty, other_requirements}}

Every proposal field is read through resolve_field(): top-level value
first, then the parsed_data blob (which may use camelCase keys from older
extractions).

Called by: services/proposal_service.py, services/comparison_service.py
Depends on: app/scoring.py
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from app.scoring import (
    WEIGHTS,
    CompletenessScore,
    DeliveryScore,
    OtherRequirementsScore,
    PaymentTermsScore,
    PriceScore,
    RequirementsScore,
    WarrantyScore,
    round_half_up,
    score_completeness,
    score_delivery,
    score_other_requirements,
    score_payment_terms,
    score_price,
    score_requirements,
    score_warranty,
)
from app.utils import leading_int, safe_float
from app.utils.normalization import normalize_price

_PARSED_ALIASES = {
    "total_price": "totalPrice",
    "item_prices": "itemPrices",
    "delivery_days": "deliveryDays",
    "payment_terms": "paymentTerms",
}


def resolve_field(proposal: Mapping[str, Any], key: str) -> Any:
    """Top-level proposal field if set, else the same key from parsed_data."""
    value = proposal.get(key)
    if value is not None:
        return value
    parsed = proposal.get("parsed_data")
    if not isinstance(parsed, Mapping):
        return None
    value = parsed.get(key)
    if value is None and key in _PARSED_ALIASES:
        value = parsed.get(_PARSED_ALIASES[key])
    return value


def _text(value: Any) -> str | None:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def requirements_view(raw: Any) -> dict:
    """Normalize stored RFP requirements: absent collections become empty."""
    req = raw if isinstance(raw, Mapping) else {}
    items = [
        i for i in (req.get("items") or [])
        if isinstance(i, Mapping) and str(i.get("name") or "").strip()
    ]
    other = req.get("other_requirements") or []
    if isinstance(other, str):
        other = [other]
    return {
        "items": items,
        "delivery_days": leading_int(req.get("delivery_days")),
        "payment_terms": _text(req.get("payment_terms")) or None,
        "warranty": _text(req.get("warranty")) or None,
        "other_requirements": [str(o) for o in other if o],
    }


@dataclass
class EvaluationCriteria:
    price: PriceScore
    delivery: DeliveryScore
    requirements: RequirementsScore
    payment_terms: PaymentTermsScore
    warranty: WarrantyScore
    completeness: CompletenessScore
    other_requirements: OtherRequirementsScore

    def scores(self) -> dict[str, int]:
        return {name: getattr(self, name).score for name in WEIGHTS}

    def to_dict(self) -> dict:
        return {name: getattr(self, name).to_dict() for name in WEIGHTS}


@dataclass
class ProposalEvaluation:
    vendor_id: str | None
    vendor_name: str | None
    overall_score: int
    criteria: EvaluationCriteria
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    concerns: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "overall_score": self.overall_score,
            "criteria": self.criteria.to_dict(),
            "strengths": list(self.strengths),
            "weaknesses": list(self.weaknesses),
            "concerns": list(self.concerns),
        }


def calculate_overall_score(criteria: EvaluationCriteria) -> int:
    weighted = sum(score * WEIGHTS[name] for name, score in criteria.scores().items())
    return max(0, min(100, round_half_up(weighted)))


def generate_feedback(criteria: EvaluationCriteria) -> tuple[list[str], list[str], list[str]]:
    """Deterministic rule table → (strengths, weaknesses, concerns)."""
    strengths: list[str] = []
    weaknesses: list[str] = []
    concerns: list[str] = []

    price = criteria.price
    if price.score >= 90:
        strengths.append("Excellent price competitiveness")
    elif price.score < 60:
        direction = "over" if price.deviation > 0 else "under"
        weaknesses.append(f"Price significantly {direction} budget")
        if abs(price.deviation) > 30:
            concerns.append("Price deviation may be a concern")

    delivery = criteria.delivery
    if delivery.score >= 90:
        strengths.append("Delivery timeline meets or exceeds requirements")
    elif delivery.score < 60:
        weaknesses.append("Delivery timeline may not meet requirements")
        if delivery.days_difference is not None and delivery.days_difference > 14:
            concerns.append("Significant delivery delay")

    reqs = criteria.requirements
    if reqs.score >= 90:
        strengths.append("All required items are addressed")
    elif reqs.score < 70:
        unmet = reqs.items_total - reqs.items_matched
        weaknesses.append(f"{unmet} required item(s) not properly addressed")
        concerns.append("Missing required items may disqualify this proposal")

    if criteria.payment_terms.score == 100:
        strengths.append("Payment terms align with requirements")
    elif not criteria.payment_terms.matches:
        weaknesses.append("Payment terms may not align with requirements")

    if criteria.warranty.score == 100:
        strengths.append("Warranty meets or exceeds requirements")
    elif not criteria.warranty.meets_requirement:
        weaknesses.append("Warranty may not meet requirements")

    completeness = criteria.completeness
    if completeness.score >= 80:
        strengths.append("Comprehensive and detailed proposal")
    elif completeness.score < 60:
        weaknesses.append("Proposal may lack important details")
        concerns.append("Incomplete proposal may require clarification")

    missing = criteria.other_requirements.missing
    if missing:
        weaknesses.append(f"{len(missing)} other requirement(s) not addressed")

    return strengths, weaknesses, concerns


def evaluate_proposal(proposal: Mapping[str, Any], rfp: Mapping[str, Any]) -> ProposalEvaluation:
    """Score one proposal against an RFP's budget and requirements."""
    req = requirements_view(rfp.get("requirements"))
    notes = _text(resolve_field(proposal, "notes"))
    raw_reply = _text(proposal.get("raw_email"))
    item_prices = resolve_field(proposal, "item_prices")
    if not isinstance(item_prices, list):
        item_prices = None
    completeness = safe_float(resolve_field(proposal, "completeness"))

    criteria = EvaluationCriteria(
        price=score_price(
            normalize_price(resolve_field(proposal, "total_price")),
            safe_float(rfp.get("budget")),
        ),
        delivery=score_delivery(
            leading_int(resolve_field(proposal, "delivery_days")),
            req["delivery_days"],
        ),
        requirements=score_requirements(req["items"], item_prices, notes, raw_reply),
        payment_terms=score_payment_terms(
            _text(resolve_field(proposal, "payment_terms")), req["payment_terms"]
        ),
        warranty=score_warranty(_text(resolve_field(proposal, "warranty")), req["warranty"]),
        completeness=score_completeness(completeness),
        other_requirements=score_other_requirements(
            req["other_requirements"], notes, raw_reply
        ),
    )

    strengths, weaknesses, concerns = generate_feedback(criteria)
    return ProposalEvaluation(
        vendor_id=proposal.get("vendor_id"),
        vendor_name=proposal.get("vendor_name"),
        overall_score=calculate_overall_score(criteria),
        criteria=criteria,
        strengths=strengths,
        weaknesses=weaknesses,
        concerns=concerns,
    )


def evaluate_proposals(
    proposals: list[Mapping[str, Any]], rfp: Mapping[str, Any]
) -> list[ProposalEvaluation]:
    """Evaluate all proposals, best first.

    Equal scores keep input order (stable sort, no secondary key).
    """
    evaluations = [evaluate_proposal(p, rfp) for p in proposals]
    return sorted(evaluations, key=lambda e: e.overall_score, reverse=True)
