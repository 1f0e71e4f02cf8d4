"""
Filter Pipeline: applies CardFilters to ranked recommendations.

INVARIANTS:
- Order of the surviving items is unchanged (stable)
- Scores and reasons are never recomputed
- `limit` is applied strictly after filtering, so a filter can never
  leave fewer results than the limit while matching candidates exist
"""

import logging
from collections.abc import Iterable

from manasight.filtering.facets import CardFilters
from manasight.models.recommendation import Recommendation

logger = logging.getLogger(__name__)


def apply_filters(
    recommendations: Iterable[Recommendation],
    filters: CardFilters,
    limit: int | None = None,
) -> list[Recommendation]:
    """
    Keep the recommendations whose candidate matches every facet.

    Args:
        recommendations: Ranked recommendations
        filters: Facets to apply
        limit: Maximum number of results to keep, None for all

    Returns:
        Matching recommendations in their original order
    """
    if limit is not None and limit < 0:
        raise ValueError(f"limit must not be negative, got {limit}")
    if limit == 0:
        return []

    if filters.is_empty:
        kept = list(recommendations)
        return kept if limit is None else kept[:limit]

    kept = []
    seen = 0
    for rec in recommendations:
        seen += 1
        if filters.matches(rec.candidate):
            kept.append(rec)
            if limit is not None and len(kept) >= limit:
                break

    logger.debug(
        "FILTERS_APPLIED",
        extra={"seen": seen, "kept": len(kept), "filters": filters.canonical()},
    )
    return kept
