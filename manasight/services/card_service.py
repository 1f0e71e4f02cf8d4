"""
Card service: the process-wide container the API talks to.

Owns the catalog, the cache coordinator and the image preloader, and keeps
the cache consistent with catalog writes: every write path computes the
affected identities and purges their tags before returning.
"""

import logging
from collections.abc import Iterable, Mapping
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncSession

from manasight.cache.coordinator import (
    TAG_PRICE_FILTERED,
    TAG_RECOMMENDATIONS,
    TAG_SEARCH,
    CacheCoordinator,
    build_cache_coordinator,
    card_tag,
)
from manasight.cache.images import ImagePreloader
from manasight.config import Settings, settings
from manasight.db.operations import load_catalog_printings
from manasight.filtering.facets import CardFilters
from manasight.models.card import CardIdentity, CardPrinting
from manasight.models.db import UserInteractionDB
from manasight.models.recommendation import Recommendation, RecommendationRequest
from manasight.services.card_catalog import CardCatalog, CatalogChange
from manasight.services.card_search import SearchPage, search_cards
from manasight.services.identity_resolver import CardNotFoundError, IdentityResolver
from manasight.services.recommender import RecommendationService

logger = logging.getLogger(__name__)


def invalidation_tags(change: CatalogChange) -> set[str]:
    """Cache tags made stale by a catalog write."""
    if change.is_empty:
        return set()
    tags = {card_tag(key) for key in change.identity_keys}
    tags.add(TAG_SEARCH)
    if change.prices_only:
        tags.add(TAG_PRICE_FILTERED)
    else:
        tags.add(TAG_RECOMMENDATIONS)
    return tags


class CardService:
    """
    Catalog reads, recommendations, search, and cache-aware catalog writes.

    Usage:
        service = CardService(CardCatalog(printings), coordinator)
        recs = await service.recommend(request, user_id="u1")
        await service.ingest(new_printings)
    """

    def __init__(
        self,
        catalog: CardCatalog,
        coordinator: CacheCoordinator,
        preloader: ImagePreloader | None = None,
        config: Settings = settings,
    ) -> None:
        self.catalog = catalog
        self.coordinator = coordinator
        self.preloader = preloader
        self.config = config
        self.resolver = IdentityResolver(catalog)
        self.recommender = RecommendationService(
            catalog,
            coordinator,
            resolver=self.resolver,
            preloader=preloader,
            config=config,
        )

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_card(self, ref: str) -> tuple[CardIdentity, list[CardPrinting]]:
        """
        Identity plus all of its printings.

        Raises:
            CardNotFoundError: If the ref matches nothing
        """
        key = self.resolver.resolve(ref)
        identity = self.catalog.get_by_key(key)
        if identity is None:
            raise CardNotFoundError(ref)
        return identity, self.catalog.get_all_for_identity(key)

    async def recommend(
        self, request: RecommendationRequest, user_id: str | None = None
    ) -> list[Recommendation]:
        return await self.recommender.recommend(request, user_id=user_id)

    async def recommend_for_user(
        self,
        user_id: str,
        interactions: Iterable[UserInteractionDB],
        limit: int | None = None,
        filters: CardFilters | None = None,
    ) -> list[Recommendation]:
        return await self.recommender.recommend_for_user(
            interactions, limit=limit, filters=filters, user_id=user_id
        )

    async def search(
        self,
        query: str = "",
        filters: CardFilters | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> SearchPage:
        result = await search_cards(
            self.catalog,
            self.coordinator,
            query=query,
            filters=filters,
            page=page,
            page_size=page_size or self.config.search_page_size,
            ttl=self.config.search_cache_ttl,
        )
        if self.preloader is not None:
            self.preloader.preload_cards(result.data)
        return result

    async def warm_recommendations(self, ref: str) -> None:
        """
        Pre-compute unfiltered recommendations for both strategies.

        Run as a background task; a card removed in the meantime is ignored.
        """
        try:
            await self.recommender.warm(ref)
        except CardNotFoundError:
            logger.info("WARMUP_SKIPPED", extra={"ref": ref})

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def _invalidate(self, change: CatalogChange) -> CatalogChange:
        tags = invalidation_tags(change)
        if tags:
            await self.coordinator.invalidate_many(tags)
        return change

    async def replace_catalog(self, printings: Iterable[CardPrinting]) -> CatalogChange:
        """Full re-import."""
        return await self._invalidate(self.catalog.replace_all(printings))

    async def ingest(self, printings: Iterable[CardPrinting]) -> CatalogChange:
        """Add or overwrite printings."""
        return await self._invalidate(self.catalog.ingest(printings))

    async def refresh_prices(
        self, updates: Mapping[str, Mapping[str, float | None]]
    ) -> CatalogChange:
        return await self._invalidate(self.catalog.refresh_prices(updates))

    async def refresh_legalities(self, updates: Mapping[str, Mapping[str, str]]) -> CatalogChange:
        return await self._invalidate(self.catalog.refresh_legalities(updates))

    async def load_from_db(self, session: AsyncSession) -> CatalogChange:
        """Rebuild the catalog from stored printings."""
        printings = await load_catalog_printings(session)
        change = await self.replace_catalog(printings)
        logger.info("CATALOG_LOADED", extra={"printings": len(printings), "identities": len(self.catalog)})
        return change

    async def aclose(self) -> None:
        if self.preloader is not None:
            await self.preloader.aclose()
        await self.coordinator.aclose()


def build_card_service(config: Settings = settings) -> CardService:
    """Empty catalog plus the configured cache tiers."""
    coordinator = build_cache_coordinator(config)
    preloader = None
    if config.image_preload_enabled:
        preloader = ImagePreloader(
            coordinator,
            concurrency=config.image_preload_concurrency,
            timeout=config.image_preload_timeout,
            deferred_delay=config.image_preload_deferred_delay,
            immediate_count=config.image_preload_immediate_count,
        )
    return CardService(CardCatalog(), coordinator, preloader=preloader, config=config)


@lru_cache(maxsize=1)
def get_card_service() -> CardService:
    """
    Process-wide CardService (FastAPI dependency).

    Tests replace it through `app.dependency_overrides`.
    """
    return build_card_service()
