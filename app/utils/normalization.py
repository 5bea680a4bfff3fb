"""Deterministic normalization — pure Python, no AI.

Text and number helpers shared by the requirement matcher, the criterion
scorers and the vendor-reply parser:
  - Names: "  Laptop " → "laptop"
  - Keywords: "16GB RAM, SSD storage" → ["16gb", "ram,", "storage"]
  - Durations: "2 years on-site" → 2
  - Prices: "$1,234.56" → 1234.56

Design: Prefer less data if it means better data. Return None for ambiguous values.
"""

import math
import re
from typing import Any

from app.utils import safe_float

# ── Text ──────────────────────────────────────────────────────────────


def normalize_name(name: Any) -> str:
    """Identity key for requirement items: lower-cased and trimmed."""
    if name is None:
        return ""
    return str(name).strip().lower()


def meaningful_keywords(text: Any, min_length: int = 4) -> list[str]:
    """Whitespace tokens longer than 3 chars, lower-cased.

    Punctuation is kept on the token, so "RAM," stays "ram,".
    """
    if not text:
        return []
    return [t for t in str(text).lower().split() if len(t) >= min_length]


def combined_text(*parts: Any) -> str:
    """Join the non-empty parts with spaces, lower-cased, for substring scans."""
    return " ".join(str(p) for p in parts if p).lower()


def mutual_contains(a: str, b: str) -> bool:
    """Case-insensitive substring match in either direction."""
    a_l, b_l = a.lower(), b.lower()
    return a_l in b_l or b_l in a_l


# ── Numbers ───────────────────────────────────────────────────────────

_FIRST_INT = re.compile(r"(\d+)")


def first_integer(text: Any) -> int | None:
    """First run of digits in a string: "24 months" → 24, "two years" → None."""
    if text is None:
        return None
    m = _FIRST_INT.search(str(text))
    return int(m.group(1)) if m else None


_CURRENCY_SYMBOLS = ("US$", "HK$", "A$", "C$", "S$", "$", "€", "£", "¥", "₹")
_CURRENCY_CODES = ("USD", "EUR", "GBP", "JPY", "CNY", "INR", "AUD", "CAD", "SGD", "HKD")


def normalize_price(raw: Any) -> float | None:
    """Parse a price to a non-negative float. Returns None if ambiguous.

    No currency conversion happens; symbols and codes are only stripped.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        val = safe_float(raw)
        return val if val is not None and val >= 0 else None

    s = str(raw).strip()
    if not s:
        return None

    for sym in _CURRENCY_SYMBOLS:
        s = s.replace(sym, "")
    for code in _CURRENCY_CODES:
        s = re.sub(rf"\b{code}\b", "", s, flags=re.IGNORECASE)
    s = s.replace(",", "").strip()

    # K/M shorthand: "12.5k" → 12500
    m = re.match(r"^([\d.]+)\s*([kKmM])$", s)
    if m:
        try:
            num = float(m.group(1))
        except ValueError:
            return None
        return num * (1_000 if m.group(2) in "kK" else 1_000_000)

    try:
        val = float(s)
    except ValueError:
        return None
    return val if math.isfinite(val) and val >= 0 else None
