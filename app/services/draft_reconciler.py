"""Draft reconciler — merge untrusted RFP draft fragments into one canonical draft.

Fragments come from the text-generation model, one per conversational
turn, and may be partial, stringified, or use legacy shapes. The merge
is total: a malformed sub-field is dropped (DEBUG log) and the rest of
the fragment still applies.

Business Rules:
- Incoming scalars override existing ones; blank/null never clears a value
- requirements merge key-wise; items concatenate (existing first) and
  dedupe by lower-cased trimmed name, keeping the first occurrence
- No requirements on either side → no "requirements" key at all
- Inputs are never mutated

Materialization: a draft becomes an RFP once it has a title and either a
description or at least one item. A placeholder title is replaced by the
start of the description.

Called by: services/conversation_service.py
Depends on: app/utils
"""

from __future__ import annotations

import copy
import json
from datetime import datetime, timezone
from typing import Any, Mapping

from loguru import logger

from app.utils import leading_int
from app.utils.normalization import normalize_name, normalize_price

DEFAULT_PLACEHOLDER_TITLE = "Auto-generated title"
CREATE_TITLE_LENGTH = 50
UPDATE_TITLE_LENGTH = 40

_DRAFT_ALIASES = {
    "deliveryRequirements": "delivery_requirements",
    "vendorsSelected": "vendors_selected",
    "missingFields": "missing_fields",
}
_REQUIREMENT_ALIASES = {
    "deliveryDays": "delivery_days",
    "paymentTerms": "payment_terms",
    "otherRequirements": "other_requirements",
}
REQUIREMENT_KEYS = ("items", "delivery_days", "payment_terms", "warranty", "other_requirements")


# ── Field sanitizers (return None to drop) ───────────────────────────


def _parse_json_string(value: Any, label: str) -> Any:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        logger.debug("Dropping unparseable {}: {!r}", label, value[:80])
        return None


def _clean_text(value: Any) -> str | None:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        value = str(value)
    if not isinstance(value, str):
        return None
    return value if value.strip() else None


def _clean_string_list(value: Any) -> list[str] | None:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return None
    return [v.strip() for v in value if isinstance(v, str) and v.strip()]


def _clean_budget(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, str)):
        return normalize_price(value)
    return None


def _clean_item(raw: Any) -> dict | None:
    if isinstance(raw, str):
        raw = {"name": raw}
    if not isinstance(raw, Mapping):
        return None
    name = _clean_text(raw.get("name"))
    if name is None:
        return None
    item: dict[str, Any] = {"name": name.strip()}
    quantity = leading_int(raw.get("quantity"))
    if quantity is not None and quantity > 0:
        item["quantity"] = quantity
    specs = _clean_text(raw.get("specifications"))
    if specs is not None:
        item["specifications"] = specs
    return item


def _clean_items(value: Any) -> list[dict] | None:
    value = _parse_json_string(value, "items")
    if isinstance(value, Mapping):
        value = [value]
    if not isinstance(value, list):
        return None
    return [i for i in (_clean_item(v) for v in value) if i is not None]


def _items_from_legacy(value: Any) -> list[dict] | None:
    """Top-level "items": JSON string, array, or a bare description string."""
    if isinstance(value, str):
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, ValueError):
            return [{"name": value.strip()}] if value.strip() else None
        return _clean_items(parsed)
    if isinstance(value, list):
        return _clean_items(value)
    return None


def _clean_requirements(value: Any) -> dict | None:
    value = _parse_json_string(value, "requirements")
    if not isinstance(value, Mapping):
        if value is not None:
            logger.debug("Dropping non-object requirements: {!r}", value)
        return None

    raw = {_REQUIREMENT_ALIASES.get(k, k): v for k, v in value.items()}
    clean: dict[str, Any] = {}
    if "items" in raw:
        items = _clean_items(raw["items"])
        if items is not None:
            clean["items"] = items
    if "delivery_days" in raw:
        days = leading_int(raw["delivery_days"])
        if days is not None and days > 0:
            clean["delivery_days"] = days
    for key in ("payment_terms", "warranty"):
        if key in raw:
            text = _clean_text(raw[key])
            if text is not None:
                clean[key] = text
    if "other_requirements" in raw:
        other = _clean_string_list(raw["other_requirements"])
        if other is not None:
            clean["other_requirements"] = other
    return clean


def sanitize_fragment(fragment: Any) -> dict:
    """Canonicalize one draft (or fragment). Unknown or malformed fields are dropped."""
    if not isinstance(fragment, Mapping):
        return {}
    raw = {_DRAFT_ALIASES.get(k, k): v for k, v in fragment.items()}
    out: dict[str, Any] = {}

    for key in ("title", "description"):
        text = _clean_text(raw.get(key))
        if text is not None:
            out[key] = text

    budget = _clean_budget(raw.get("budget"))
    if budget is not None:
        out["budget"] = budget

    deadline = raw.get("deadline")
    if isinstance(deadline, str) and deadline.strip():
        out["deadline"] = deadline.strip()

    for key in ("vendors_selected", "missing_fields"):
        if key in raw:
            values = _clean_string_list(raw[key])
            if values is not None:
                out[key] = values

    requirements = _clean_requirements(raw.get("requirements")) if "requirements" in raw else None

    # Legacy shapes fold into requirements
    if "items" in raw and not (requirements and "items" in requirements):
        items = _items_from_legacy(raw["items"])
        if items is not None:
            requirements = {**(requirements or {}), "items": items}

    if "delivery_requirements" in raw and not (requirements and "delivery_days" in requirements):
        days = leading_int(raw["delivery_requirements"])
        if days is not None and days > 0:
            requirements = {**(requirements or {}), "delivery_days": days}

    if requirements is not None:
        out["requirements"] = requirements
    return out


def dedupe_items(items: list[dict]) -> list[dict]:
    """Drop items whose normalized name was already seen; first one wins."""
    seen: set[str] = set()
    unique = []
    for item in items:
        key = normalize_name(item.get("name"))
        if key in seen:
            continue
        seen.add(key)
        unique.append(item)
    return unique


def normalize_rfp_draft(existing: Any, incoming: Any) -> dict:
    """Merge an incoming draft fragment into the existing draft.

    Never raises. normalize_rfp_draft(normalize_rfp_draft(a, b), {}) equals
    normalize_rfp_draft(a, b).
    """
    base = sanitize_fragment(copy.deepcopy(existing))
    update = sanitize_fragment(copy.deepcopy(incoming))

    merged = {**base, **{k: v for k, v in update.items() if k != "requirements"}}
    merged.pop("requirements", None)

    base_req, update_req = base.get("requirements"), update.get("requirements")
    if base_req is not None or update_req is not None:
        base_req, update_req = base_req or {}, update_req or {}
        merged["requirements"] = {
            **base_req,
            **update_req,
            "items": dedupe_items(base_req.get("items", []) + update_req.get("items", [])),
        }
    return merged


# ── Materialization ──────────────────────────────────────────────────


def _blank(value: Any) -> bool:
    return not (isinstance(value, str) and value.strip())


def is_materializable(draft: Mapping[str, Any]) -> bool:
    """Title plus (description or at least one item)."""
    if _blank(draft.get("title")):
        return False
    items = (draft.get("requirements") or {}).get("items") or []
    return not _blank(draft.get("description")) or len(items) > 0


def title_from_description(description: str, limit: int = CREATE_TITLE_LENGTH) -> str:
    text = description.strip()
    if len(text) > limit:
        return text[:limit].strip() + "..."
    return text


def resolve_title(draft: Mapping[str, Any], placeholder: str = DEFAULT_PLACEHOLDER_TITLE) -> str:
    """Draft title, or the description's opening words when it is the placeholder."""
    title = (draft.get("title") or "").strip()
    if title == placeholder and not _blank(draft.get("description")):
        return title_from_description(draft["description"], CREATE_TITLE_LENGTH)
    return title


def parse_deadline(value: Any) -> datetime | None:
    """ISO-8601 date or date-time → aware datetime (UTC if no offset)."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        try:
            dt = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug("Ignoring unparseable deadline: {!r}", value)
            return None
    else:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def requirements_payload(draft: Mapping[str, Any]) -> dict:
    """Requirements as persisted on an RFP: every key present, empty collections."""
    req = draft.get("requirements") or {}
    return {
        "items": list(req.get("items") or []),
        "delivery_days": req.get("delivery_days") or None,
        "payment_terms": req.get("payment_terms") or None,
        "warranty": req.get("warranty") or None,
        "other_requirements": list(req.get("other_requirements") or []),
    }


def has_requirements_data(draft: Mapping[str, Any]) -> bool:
    """True when at least one requirement sub-field carries a value."""
    req = draft.get("requirements") or {}
    return any(bool(req.get(key)) for key in REQUIREMENT_KEYS)


def build_rfp_create(
    draft: Mapping[str, Any], placeholder: str = DEFAULT_PLACEHOLDER_TITLE
) -> dict | None:
    """Field values for a new RFP, or None if the draft is not complete enough."""
    if not is_materializable(draft):
        return None
    title = resolve_title(draft, placeholder)
    return {
        "title": title,
        "description": draft.get("description") or title,
        "budget": draft.get("budget") or None,
        "deadline": parse_deadline(draft.get("deadline")),
        "requirements": requirements_payload(draft),
    }


def build_rfp_update(
    current: Mapping[str, Any],
    draft: Mapping[str, Any],
    placeholder: str = DEFAULT_PLACEHOLDER_TITLE,
) -> dict:
    """Changes to apply to an existing RFP from a merged draft.

    current holds the RFP's title, description, budget, deadline and
    requirements. Only fields that are provided and actually differ are
    returned, so an unchanged draft yields {}.
    """
    changes: dict[str, Any] = {}
    title, description = draft.get("title"), draft.get("description")

    if current.get("title") == placeholder and not _blank(description):
        new_title = title_from_description(description, UPDATE_TITLE_LENGTH)
        if new_title != current.get("title"):
            changes["title"] = new_title
    elif not _blank(title) and title != placeholder and title != current.get("title"):
        changes["title"] = title

    if not _blank(description) and description != current.get("description"):
        changes["description"] = description

    budget = draft.get("budget")
    if budget is not None and budget != current.get("budget"):
        changes["budget"] = budget

    deadline = parse_deadline(draft.get("deadline"))
    if deadline is not None and deadline != parse_deadline(current.get("deadline")):
        changes["deadline"] = deadline

    if has_requirements_data(draft):
        payload = requirements_payload(draft)
        if payload != (current.get("requirements") or {}):
            changes["requirements"] = payload

    return changes
