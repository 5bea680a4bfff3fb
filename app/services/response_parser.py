"""Vendor Reply Parser — extract structured proposal fields from a vendor email.

Purpose:
  Turn the free-form body of a vendor's reply to an RFP into the fields
  the evaluator scores: total price, line items, delivery days, payment
  terms, warranty, notes and a completeness estimate.

Business Rules:
  - Prices go through normalize_price ("$12,500" → 12500.0); unparseable → None
  - completeness is clamped to [0, 1]
  - item_prices entries without an item name are dropped
  - Attachments are only counted in the prompt; their content is not read
  - Returns None when the model is unavailable or the reply is unusable

Called by: email_service.process_vendor_reply
Depends on: services/llm_service.py, utils/normalization.py
"""

from typing import Any

from loguru import logger

from app.services.llm_service import llm_json
from app.utils import leading_int, safe_float
from app.utils.normalization import normalize_price

SYSTEM_PROMPT = "You are a precise JSON extraction assistant. Always return valid JSON only."

PROMPT_TEMPLATE = """\
Extract structured proposal data from this vendor response email.

Email content:
{body}
{attachments}

Return JSON with:
- total_price: total price quoted (number, or null if not found)
- item_prices: array of {{"item": name, "price": number, "quantity": integer or null}}
- delivery_days: number of days for delivery (integer or null)
- payment_terms: payment terms (string or null)
- warranty: warranty offered (string or null)
- notes: any additional notes or conditions
- completeness: 0 to 1, how complete this proposal is (1 = very complete)

Extract all pricing, including prices in tables or lists. Normalize prices \
to a single number."""

MAX_BODY_CHARS = 12000


def _text_or_none(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _clean_item_prices(raw: Any) -> list[dict]:
    items = []
    for entry in raw if isinstance(raw, list) else []:
        if not isinstance(entry, dict):
            continue
        name = _text_or_none(entry.get("item") or entry.get("name"))
        if not name:
            continue
        quantity = leading_int(entry.get("quantity"))
        items.append({
            "item": name,
            "price": normalize_price(entry.get("price")),
            "quantity": quantity if quantity and quantity > 0 else None,
        })
    return items


def sanitize_parsed_reply(raw: dict) -> dict:
    """Coerce a model extraction into the proposal field shapes."""
    completeness = safe_float(raw.get("completeness"))
    if completeness is not None:
        completeness = max(0.0, min(1.0, completeness))

    delivery = leading_int(raw.get("delivery_days", raw.get("deliveryDays")))
    return {
        "total_price": normalize_price(raw.get("total_price", raw.get("totalPrice"))),
        "item_prices": _clean_item_prices(raw.get("item_prices", raw.get("itemPrices"))),
        "delivery_days": delivery if delivery and delivery > 0 else None,
        "payment_terms": _text_or_none(raw.get("payment_terms", raw.get("paymentTerms"))),
        "warranty": _text_or_none(raw.get("warranty")),
        "notes": _text_or_none(raw.get("notes")),
        "completeness": completeness,
    }


async def parse_vendor_reply(body: str, attachments: list | None = None) -> dict | None:
    """Extract proposal fields from a vendor reply body. None on failure."""
    if not body or not body.strip():
        return None

    attachments = attachments or []
    attachment_note = f"\nAttachments found: {len(attachments)} file(s)" if attachments else ""
    prompt = PROMPT_TEMPLATE.format(body=body[:MAX_BODY_CHARS], attachments=attachment_note)

    result = await llm_json(prompt, system=SYSTEM_PROMPT, max_tokens=1500, temperature=0.1)
    if not isinstance(result, dict):
        logger.warning("Vendor reply parse returned no usable JSON")
        return None

    parsed = sanitize_parsed_reply(result)
    logger.info(
        "Vendor reply parsed: price={} items={} delivery={}",
        parsed["total_price"], len(parsed["item_prices"]), parsed["delivery_days"],
    )
    return parsed
