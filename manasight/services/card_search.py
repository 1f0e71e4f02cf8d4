"""
Card search over the deduplicated catalog.

Matches a name substring plus facets, ordered by name then key, one entry
per card identity. The full match list is cached as identity keys under
the `card-search` tag; pages are sliced from it.
"""

import logging
from dataclasses import dataclass
from typing import Any

from manasight.cache.coordinator import TAG_PRICE_FILTERED, TAG_SEARCH, CacheCoordinator
from manasight.filtering.facets import CardFilters, InvalidFilterError
from manasight.models.card import CardIdentity
from manasight.services.card_catalog import CardCatalog
from manasight.services.identity_resolver import normalize_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchPage:
    """One page of search results."""

    data: list[CardIdentity]
    has_more: bool
    next_page: int | None
    total_cards: int
    page: int
    page_size: int


def search_cache_key(query: str, filters: CardFilters) -> str:
    return f"search:{normalize_name(query)}:{filters.cache_fingerprint()}"


def match_cards(catalog: CardCatalog, query: str, filters: CardFilters) -> list[CardIdentity]:
    """Every identity whose name contains `query` and which passes `filters`."""
    needle = normalize_name(query)
    return [
        card
        for card in catalog.identities()
        if (not needle or needle in normalize_name(card.name)) and filters.matches(card)
    ]


def _rehydrate(catalog: CardCatalog, keys: Any) -> list[CardIdentity] | None:
    if not isinstance(keys, list):
        return None
    cards = []
    for key in keys:
        card = catalog.get_by_key(key)
        if card is None:
            return None
        cards.append(card)
    return cards


async def search_cards(
    catalog: CardCatalog,
    coordinator: CacheCoordinator,
    query: str = "",
    filters: CardFilters | None = None,
    page: int = 1,
    page_size: int = 60,
    ttl: float | None = None,
) -> SearchPage:
    """
    Search the catalog.

    Raises:
        InvalidFilterError: If page or page_size is out of range
        CatalogUnavailableError: If the catalog is empty
    """
    if page < 1:
        raise InvalidFilterError(f"page must be at least 1, got {page}")
    if page_size < 1:
        raise InvalidFilterError(f"page_size must be at least 1, got {page_size}")

    filters = filters or CardFilters()
    key = search_cache_key(query, filters)

    lookup = await coordinator.get(key)
    matches = _rehydrate(catalog, lookup.value) if lookup.hit else None
    if matches is None:
        version = catalog.snapshot.version
        matches = match_cards(catalog, query, filters)
        tags = {TAG_SEARCH}
        if filters.uses_price:
            tags.add(TAG_PRICE_FILTERED)
        await coordinator.put_if_current(
            key,
            [card.key for card in matches],
            lambda: catalog.snapshot.version == version,
            ttl=ttl,
            tags=tags,
        )

    start = (page - 1) * page_size
    data = matches[start : start + page_size]
    has_more = start + page_size < len(matches)

    logger.debug(
        "SEARCH_SERVED",
        extra={"query": query, "total": len(matches), "page": page, "cache_tier": lookup.tier},
    )
    return SearchPage(
        data=data,
        has_more=has_more,
        next_page=page + 1 if has_more else None,
        total_cards=len(matches),
        page=page,
        page_size=page_size,
    )
