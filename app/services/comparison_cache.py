"""Comparison cache — validity check and write rules for an RFP's cached comparison.

Business Rules:
- Valid iff the cached evaluation count equals the current proposal count
  AND the cache is at least as new as the newest proposal update
- No proposal timestamps → the count check alone decides
- Invalidation clears the cache and stamps comparison_invalidated_at
- Invalidation wins over population: a comparison computed from a
  snapshot taken before the last invalidation is never written

Called by: services/comparison_service.py, services/proposal_service.py,
           services/conversation_service.py, routers/rfps.py
Depends on: models (Rfp)
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from loguru import logger


def _as_utc(value: Any) -> datetime | None:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _updated_at(proposal: Any) -> datetime | None:
    if isinstance(proposal, Mapping):
        return _as_utc(proposal.get("updated_at"))
    return _as_utc(getattr(proposal, "updated_at", None))


def is_cache_valid(
    cache: Mapping[str, Any] | None,
    cached_at: datetime | str | None,
    proposals: Iterable[Any],
) -> bool:
    """True when the cached comparison still reflects the current proposal set."""
    if not cache:
        return False
    proposals = list(proposals)
    evaluations = cache.get("evaluations")
    if not isinstance(evaluations, list) or len(evaluations) != len(proposals):
        return False

    stamps = [ts for ts in (_updated_at(p) for p in proposals) if ts is not None]
    if not stamps:
        return True
    cached_at = _as_utc(cached_at)
    if cached_at is None:
        return False
    return cached_at >= max(stamps)


def invalidate_comparison_cache(rfp, now: datetime | None = None, reason: str = "") -> None:
    """Clear the cached comparison on an Rfp row. Caller commits."""
    now = now or datetime.now(timezone.utc)
    had_cache = rfp.comparison_cache is not None
    rfp.comparison_cache = None
    rfp.comparison_cache_updated_at = None
    rfp.comparison_invalidated_at = now
    if had_cache:
        logger.info("Comparison cache invalidated for RFP {} ({})", rfp.id, reason or "change")


def store_comparison(rfp, comparison: Mapping[str, Any], computed_from: datetime) -> bool:
    """Write a comparison computed from a snapshot taken at computed_from.

    Returns False (and writes nothing) if the RFP was invalidated after the
    snapshot was taken. The cache timestamp is the snapshot time, so any
    proposal updated mid-computation makes the entry stale on next read.
    Caller commits.
    """
    computed_from = _as_utc(computed_from)
    invalidated_at = _as_utc(rfp.comparison_invalidated_at)
    if invalidated_at is not None and computed_from < invalidated_at:
        logger.info(
            "Discarding stale comparison for RFP {} (computed {} < invalidated {})",
            rfp.id, computed_from.isoformat(), invalidated_at.isoformat(),
        )
        return False
    rfp.comparison_cache = dict(comparison)
    rfp.comparison_cache_updated_at = computed_from
    return True
