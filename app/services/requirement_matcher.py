"""Requirement matcher — fuzzy-match RFP line items against a vendor proposal.

For each required item:
  1. Direct match: a proposal line item whose name contains, or is
     contained by, the required item's name (case-insensitive).
     Quantity matches when the RFP sets none or the line item's equals it.
  2. Fallback: the required name appears verbatim in notes + raw reply.
     Quantity cannot be checked there and is assumed to match.
  3. Specifications: any spec token longer than 3 chars appearing in the
     combined proposal text (line items + notes + raw reply).

Known imprecision: "Laptop" also matches "Laptop Bag".

Called by: app/scoring.py (score_requirements)
Depends on: app/utils/normalization.py
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any

from app.utils import safe_int
from app.utils.normalization import combined_text, meaningful_keywords, normalize_name


@dataclass
class ItemBreakdown:
    item_name: str
    matched: bool
    matches_quantity: bool
    specifications_match: bool
    reasoning: str
    required_quantity: int | None = None
    proposed_quantity: int | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def _line_item_name(line: Any) -> str:
    if isinstance(line, dict):
        return normalize_name(line.get("item") or line.get("name"))
    return ""


def _line_items_text(item_prices: list | None) -> str:
    parts = []
    for line in item_prices or []:
        if not isinstance(line, dict):
            continue
        name = line.get("item") or line.get("name") or ""
        qty = line.get("quantity")
        parts.append(f"{name} {qty if qty is not None else ''}".strip())
    return " ".join(parts)


def find_line_item(required_name: str, item_prices: list | None) -> dict | None:
    """First proposal line item whose name contains or is contained by required_name."""
    if not required_name:
        return None
    for line in item_prices or []:
        name = _line_item_name(line)
        if name and (required_name in name or name in required_name):
            return line
    return None


def match_items(
    required_items: list[dict],
    item_prices: list | None,
    notes: str | None,
    raw_reply: str | None,
) -> list[ItemBreakdown]:
    """Return one ItemBreakdown per required item. No items → empty list."""
    free_text = combined_text(notes, raw_reply)
    full_text = combined_text(_line_items_text(item_prices), notes, raw_reply)

    breakdown = []
    for item in required_items or []:
        name = normalize_name(item.get("name"))
        required_qty = safe_int(item.get("quantity"))
        specs = item.get("specifications")

        line = find_line_item(name, item_prices)
        proposed_qty = None
        if line is not None:
            found = True
            proposed_qty = safe_int(line.get("quantity"))
            matches_quantity = not required_qty or proposed_qty == required_qty
        else:
            found = bool(name) and name in free_text
            matches_quantity = not required_qty or found

        if specs:
            specifications_match = any(kw in full_text for kw in meaningful_keywords(specs))
        else:
            specifications_match = True

        matched = found and matches_quantity and specifications_match

        if not found:
            reasoning = "Item not found in proposal"
        elif not matches_quantity:
            reasoning = (
                f"Quantity mismatch (required: {required_qty}, "
                f"proposed: {proposed_qty if proposed_qty is not None else 'N/A'})"
            )
        elif not specifications_match:
            reasoning = "Specifications may not match"
        else:
            reasoning = "Item matches requirements"

        breakdown.append(
            ItemBreakdown(
                item_name=str(item.get("name") or ""),
                matched=matched,
                matches_quantity=matches_quantity,
                specifications_match=specifications_match,
                reasoning=reasoning,
                required_quantity=required_qty,
                proposed_quantity=proposed_qty,
            )
        )
    return breakdown
