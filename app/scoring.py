"""
Criterion Scorers — seven independent 0-100 scores for a vendor proposal.

Overall = Price×25 + Delivery×20 + Requirements×30 + PaymentTerms×5 +
          Warranty×10 + Completeness×5 + OtherRequirements×5   (÷100)

Conventions shared by every scorer:
  - Field missing from the proposal → penalized score (0 or 50)
  - No matching constraint on the RFP → neutral 80 (nothing was violated)
  - A missing proposal field beats a missing requirement: no delivery
    estimate scores 0 even when the RFP has no delivery requirement

All functions are pure. Scores are ints rounded half-up.
"""
import math
from dataclasses import asdict, dataclass, field
from typing import Optional

from app.services.requirement_matcher import ItemBreakdown, match_items
from app.utils.normalization import combined_text, first_integer, meaningful_keywords, mutual_contains

# --- Weights (fixed, sum to 1.0) ---

WEIGHTS = {
    "price": 0.25,
    "delivery": 0.20,
    "requirements": 0.30,
    "payment_terms": 0.05,
    "warranty": 0.10,
    "completeness": 0.05,
    "other_requirements": 0.05,
}

NEUTRAL_SCORE = 80

PAYMENT_KEYWORDS = ("net", "days", "30", "60", "90", "advance", "upon delivery", "installment")


def round_half_up(x: float) -> int:
    """2.5 → 3, -2.5 → -2."""
    return int(math.floor(x + 0.5))


def _clamp(x: float, lo: float = 0, hi: float = 100) -> float:
    return max(lo, min(hi, x))


# --- Result types (one per criterion) ---

@dataclass
class PriceScore:
    score: int
    matches_budget: bool
    deviation: float  # percent from budget, negative = under
    reasoning: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class DeliveryScore:
    score: int
    meets_deadline: bool
    reasoning: str
    days_difference: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class RequirementsScore:
    score: int
    items_matched: int
    items_total: int
    reasoning: str
    item_breakdown: list[ItemBreakdown] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PaymentTermsScore:
    score: int
    matches: bool
    reasoning: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class WarrantyScore:
    score: int
    meets_requirement: bool
    reasoning: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CompletenessScore:
    score: int
    reasoning: str

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OtherRequirementsScore:
    score: int
    matches: int
    total: int
    reasoning: str
    missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


# --- Individual scoring functions ---

def _under_budget_score(abs_dev: float) -> float:
    if abs_dev <= 5:
        return 100
    if abs_dev <= 10:
        return 95
    if abs_dev <= 20:
        return 85
    if abs_dev <= 30:
        return 75
    if abs_dev <= 50:
        return 60
    return max(30, 70 - abs_dev * 0.5)


def _over_budget_score(abs_dev: float) -> float:
    if abs_dev <= 5:
        return 95
    if abs_dev <= 10:
        return 85
    if abs_dev <= 20:
        return 70
    if abs_dev <= 30:
        return 50
    if abs_dev <= 50:
        return 30
    return max(0, 40 - abs_dev * 0.3)


def score_price(price: Optional[float], budget: Optional[float]) -> PriceScore:
    """Under budget is rewarded more generously than over budget is penalized.

    Exactly on budget falls on the over-budget curve (95).
    """
    if not price:
        return PriceScore(0, False, 0.0, "Price not specified in proposal")
    if not budget:
        return PriceScore(NEUTRAL_SCORE, True, 0.0, "No budget specified in RFP. Price provided.")

    deviation = (price - budget) / budget * 100
    abs_dev = abs(deviation)
    raw = _under_budget_score(abs_dev) if deviation < 0 else _over_budget_score(abs_dev)

    direction = "over" if deviation > 0 else "under"
    return PriceScore(
        score=round_half_up(raw),
        matches_budget=abs_dev <= 10,
        deviation=round(deviation, 2),
        reasoning=f"Price is {abs_dev:.1f}% {direction} budget",
    )


def score_delivery(proposed_days: Optional[int], required_days: Optional[int]) -> DeliveryScore:
    """On time or early: 90-100 (2 points per day early, capped). Late: stepped decay."""
    if not proposed_days:
        return DeliveryScore(0, False, "Delivery timeline not specified")
    if not required_days:
        return DeliveryScore(NEUTRAL_SCORE, True, "No delivery requirement specified. Timeline provided.")

    diff = proposed_days - required_days
    if diff <= 0:
        raw = _clamp(100 - abs(diff) * 2, 90, 100)
    elif diff <= 7:
        raw = 75
    elif diff <= 14:
        raw = 60
    elif diff <= 30:
        raw = 40
    else:
        raw = max(0, 30 - diff / 10)

    meets = diff <= 0
    if meets:
        reasoning = "Meets deadline" + (f" ({abs(diff)} days early)" if diff < 0 else "")
    else:
        reasoning = f"Exceeds deadline by {diff} days"
    return DeliveryScore(round_half_up(raw), meets, reasoning, days_difference=diff)


def score_requirements(
    required_items: list[dict],
    item_prices: Optional[list],
    notes: Optional[str],
    raw_reply: Optional[str],
) -> RequirementsScore:
    if not required_items:
        return RequirementsScore(100, 0, 0, "No specific items required")

    breakdown = match_items(required_items, item_prices, notes, raw_reply)
    matched = sum(1 for b in breakdown if b.matched)
    total = len(breakdown)
    return RequirementsScore(
        score=round_half_up(matched / total * 100),
        items_matched=matched,
        items_total=total,
        reasoning=f"{matched} of {total} required items matched",
        item_breakdown=breakdown,
    )


def score_payment_terms(proposed: Optional[str], required: Optional[str]) -> PaymentTermsScore:
    """Keyword overlap over a fixed vocabulary, else substring either way."""
    if not proposed:
        return PaymentTermsScore(50, False, "Payment terms not specified")
    if not required:
        return PaymentTermsScore(NEUTRAL_SCORE, True, "No payment terms requirement. Terms provided.")

    proposed_l, required_l = proposed.lower(), required.lower()
    required_kw = [k for k in PAYMENT_KEYWORDS if k in required_l]
    if required_kw:
        matches = any(k in proposed_l for k in required_kw)
    else:
        matches = mutual_contains(proposed_l, required_l)

    if matches:
        return PaymentTermsScore(100, True, "Payment terms align with requirements")
    return PaymentTermsScore(60, False, "Payment terms may not align with requirements")


def score_warranty(proposed: Optional[str], required: Optional[str]) -> WarrantyScore:
    """Compares the first integer of each string; units are assumed to agree."""
    if not proposed:
        return WarrantyScore(50, False, "Warranty not specified")
    if not required:
        return WarrantyScore(NEUTRAL_SCORE, True, "No warranty requirement. Warranty provided.")

    proposed_n, required_n = first_integer(proposed), first_integer(required)
    if proposed_n is not None and required_n is not None:
        if proposed_n >= required_n:
            return WarrantyScore(
                100, True, f"Warranty ({proposed}) meets or exceeds requirement ({required})"
            )
        return WarrantyScore(50, False, f"Warranty ({proposed}) may not meet requirement ({required})")

    if mutual_contains(proposed, required):
        return WarrantyScore(100, True, "Warranty aligns with requirements")
    return WarrantyScore(60, False, "Warranty may not align with requirements")


def score_completeness(completeness: Optional[float]) -> CompletenessScore:
    if completeness is None:
        return CompletenessScore(50, "Completeness score not available")

    score = int(_clamp(round_half_up(completeness * 100)))
    if score >= 80:
        reasoning = "Proposal is comprehensive and complete"
    elif score >= 60:
        reasoning = "Proposal is reasonably complete but may lack some details"
    else:
        reasoning = "Proposal is incomplete and may require clarification"
    return CompletenessScore(score, reasoning)


def score_other_requirements(
    other_requirements: Optional[list[str]],
    notes: Optional[str],
    raw_reply: Optional[str],
) -> OtherRequirementsScore:
    """Each requirement counts as addressed if any of its keywords appears."""
    if not other_requirements:
        return OtherRequirementsScore(100, 0, 0, "No other requirements specified")

    text = combined_text(notes, raw_reply)
    missing = [
        req for req in other_requirements
        if not any(kw in text for kw in meaningful_keywords(req))
    ]
    total = len(other_requirements)
    matched = total - len(missing)
    return OtherRequirementsScore(
        score=round_half_up(matched / total * 100),
        matches=matched,
        total=total,
        reasoning=f"{matched} of {total} other requirements addressed",
        missing=missing,
    )
