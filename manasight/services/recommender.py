"""
Recommendation Service.

Flow for one request:
    source ref → IdentityResolver → cache read-through →
    rank_candidates over the catalog snapshot → apply_filters → limit

The cached value is the filtered ranking (capped), stored as identity keys
with their scores and reasons. It is rehydrated against the current catalog
on every hit, so a cached response always carries current card data.

INVARIANTS:
- Cached and uncached responses are identical for the same catalog state
- The source card never appears in its own recommendations
- Filters and limit are applied after scoring, never inside it
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from manasight.cache.coordinator import (
    TAG_PRICE_FILTERED,
    TAG_RECOMMENDATIONS,
    CacheCoordinator,
    card_tag,
)
from manasight.cache.images import ImagePreloader
from manasight.config import (
    DEFAULT_INTERACTION_WEIGHT,
    INTERACTION_AGE_FLOOR,
    INTERACTION_AGE_WEIGHTS,
    INTERACTION_WEIGHTS,
    Settings,
    settings,
)
from manasight.filtering.facets import CardFilters
from manasight.filtering.pipeline import apply_filters
from manasight.models.card import CardIdentity
from manasight.models.db import UserInteractionDB
from manasight.models.recommendation import Recommendation, RecommendationRequest, Strategy
from manasight.scoring.engine import FunctionalWeights, get_scorer, rank_candidates
from manasight.services.card_catalog import CardCatalog
from manasight.services.identity_resolver import CardNotFoundError, IdentityResolver

logger = logging.getLogger(__name__)


def recommendation_cache_key(strategy: Strategy, identity_key: str, filters: CardFilters) -> str:
    return f"recs:{strategy.value}:{identity_key}:{filters.cache_fingerprint()}"


def serialize_recommendations(recommendations: list[Recommendation]) -> list[dict[str, Any]]:
    return [
        {"key": rec.candidate.key, "score": rec.score, "reason": rec.reason}
        for rec in recommendations
    ]


def interaction_weight(interaction: UserInteractionDB, now: datetime) -> float:
    """Interest signal of one interaction: type weight scaled by recency."""
    weight = INTERACTION_WEIGHTS.get(interaction.interaction_type, DEFAULT_INTERACTION_WEIGHT)
    created_at = interaction.created_at
    if created_at is None:
        return weight
    if created_at.tzinfo is None:
        # SQLite returns naive UTC timestamps
        created_at = created_at.replace(tzinfo=UTC)

    age_days = (now - created_at).total_seconds() / 86400
    for max_days, age_weight in INTERACTION_AGE_WEIGHTS:
        if age_days <= max_days:
            return weight * age_weight
    return weight * INTERACTION_AGE_FLOOR


class RecommendationService:
    """
    Serves ranked, filtered recommendations for a source card.

    Usage:
        service = RecommendationService(catalog, coordinator)
        request = RecommendationRequest("abc", Strategy.SYNERGY, 10, CardFilters())
        recs = await service.recommend(request, user_id="user-1")
    """

    def __init__(
        self,
        catalog: CardCatalog,
        coordinator: CacheCoordinator,
        resolver: IdentityResolver | None = None,
        preloader: ImagePreloader | None = None,
        config: Settings = settings,
    ) -> None:
        self.catalog = catalog
        self.coordinator = coordinator
        self.resolver = resolver or IdentityResolver(catalog)
        self.preloader = preloader
        self.config = config
        self.weights = FunctionalWeights.from_settings(config)

    def rank(
        self,
        source: CardIdentity,
        strategy: Strategy,
        filters: CardFilters,
        limit: int | None = None,
    ) -> list[Recommendation]:
        """Score every catalog identity against `source`, then filter. No caching."""
        scorer = get_scorer(strategy, self.weights)
        ranked = rank_candidates(source, self.catalog.identities(), scorer)
        return apply_filters(ranked, filters, limit=limit)

    def _rehydrate(self, payload: Any) -> list[Recommendation] | None:
        """Rebuild recommendations from a cached payload; None if any card is gone."""
        if not isinstance(payload, list):
            return None
        recs = []
        try:
            for item in payload:
                candidate = self.catalog.get_by_key(item["key"])
                if candidate is None:
                    return None
                recs.append(
                    Recommendation(candidate=candidate, score=item["score"], reason=item["reason"])
                )
        except (KeyError, TypeError):
            return None
        return recs

    async def recommend(
        self,
        request: RecommendationRequest,
        user_id: str | None = None,
    ) -> list[Recommendation]:
        """
        Ranked recommendations for a request.

        Args:
            request: Source ref, strategy, limit, and filters
            user_id: Caller identity, used for logging only

        Raises:
            CatalogUnavailableError: If the catalog is empty
            CardNotFoundError: If the source ref matches nothing
        """
        # Empty catalog fails before the ref is looked up
        self.catalog.identities()
        source = self.catalog.get_by_key(self.resolver.resolve(request.source_ref))
        if source is None:
            raise CardNotFoundError(request.source_ref)

        limit = min(request.limit, self.config.max_recommendation_limit)
        cap = max(self.config.max_cached_recommendations, limit)
        cache_key = recommendation_cache_key(request.strategy, source.key, request.filters)

        lookup = await self.coordinator.get(cache_key)
        recs = self._rehydrate(lookup.value) if lookup.hit else None

        if recs is None:
            version = self.catalog.snapshot.version
            recs = self.rank(source, request.strategy, request.filters, limit=cap)
            tags = {card_tag(source.key), TAG_RECOMMENDATIONS}
            if request.filters.uses_price:
                tags.add(TAG_PRICE_FILTERED)
            await self.coordinator.put_if_current(
                cache_key,
                serialize_recommendations(recs),
                lambda: self.catalog.snapshot.version == version,
                ttl=self.config.recommendation_cache_ttl,
                tags=tags,
            )

        recs = recs[:limit]

        if self.preloader is not None:
            self.preloader.preload_cards(rec.candidate for rec in recs)

        logger.info(
            "RECOMMENDATIONS_SERVED",
            extra={
                "source_key": source.key,
                "strategy": request.strategy.value,
                "count": len(recs),
                "cache_tier": lookup.tier,
                "user_id": user_id,
            },
        )
        return recs

    async def warm(self, source_ref: str) -> None:
        """Populate the cache for both strategies with no filters."""
        for strategy in Strategy:
            request = RecommendationRequest(
                source_ref=source_ref,
                strategy=strategy,
                limit=self.config.default_recommendation_limit,
                filters=CardFilters(),
            )
            await self.recommend(request)

    async def recommend_for_user(
        self,
        interactions: Iterable[UserInteractionDB],
        limit: int | None = None,
        filters: CardFilters | None = None,
        user_id: str | None = None,
        now: datetime | None = None,
    ) -> list[Recommendation]:
        """
        Synergy recommendations drawn from a user's recent interactions.

        `interactions` are expected newest first. The most recent distinct
        cards become sources, each weighted by its strongest interaction.
        A candidate keeps its best weighted score across sources, and cards
        the user has already interacted with are left out. No interactions
        means no recommendations.

        Raises:
            CatalogUnavailableError: If the catalog is empty
        """
        self.catalog.identities()
        filters = filters or CardFilters()
        now = now or datetime.now(UTC)
        limit = min(
            limit or self.config.personalized_recommendation_limit,
            self.config.max_recommendation_limit,
        )

        # Insertion order is recency order
        weights: dict[str, float] = {}
        for interaction in interactions:
            try:
                key = self.resolver.resolve(interaction.card_key)
            except CardNotFoundError:
                continue
            weights[key] = max(interaction_weight(interaction, now), weights.get(key, 0.0))

        best: dict[str, Recommendation] = {}
        for source_key in list(weights)[: self.config.personalized_source_count]:
            source = self.catalog.get_by_key(source_key)
            if source is None:
                continue
            request = RecommendationRequest(
                source_ref=source_key,
                strategy=Strategy.SYNERGY,
                limit=self.config.personalized_per_source,
                filters=filters,
            )
            for rec in await self.recommend(request, user_id=user_id):
                if rec.candidate.key in weights:
                    continue
                score = rec.score * weights[source_key]
                current = best.get(rec.candidate.key)
                if current is None or score > current.score:
                    best[rec.candidate.key] = Recommendation(
                        candidate=rec.candidate,
                        score=score,
                        reason=f"Related to {source.name}: {rec.reason}",
                    )

        recs = sorted(best.values(), key=Recommendation.sort_key)[:limit]
        logger.info(
            "USER_RECOMMENDATIONS_SERVED",
            extra={"user_id": user_id, "interacted_cards": len(weights), "count": len(recs)},
        )
        return recs
