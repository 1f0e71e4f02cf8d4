"""
Card API endpoints.

Search, card detail, and recommendations. Domain errors (unknown card, bad
filters, empty catalog) propagate as KnownError and are rendered by the
application's error handler.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from manasight.config import settings
from manasight.filtering.facets import parse_filters
from manasight.models.card import CardIdentity, CardPrinting
from manasight.models.recommendation import Recommendation, RecommendationRequest, Strategy
from manasight.services.card_service import CardService, get_card_service

router = APIRouter(prefix="/cards", tags=["cards"])


class CardResponse(BaseModel):
    """One card identity."""

    key: str
    oracle_id: str | None = None
    name: str
    type_line: str = ""
    oracle_text: str = ""
    mana_cost: str = ""
    cmc: float = 0.0
    colors: list[str] = Field(default_factory=list)
    color_identity: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    rarities: list[str] = Field(default_factory=list)
    set_codes: list[str] = Field(default_factory=list)
    legalities: dict[str, str] = Field(default_factory=dict)
    price_usd: float | None = None
    image_url: str | None = None
    printing_ids: list[str] = Field(default_factory=list)

    @classmethod
    def from_identity(cls, card: CardIdentity) -> "CardResponse":
        return cls(
            key=card.key,
            oracle_id=card.oracle_id,
            name=card.name,
            type_line=card.type_line,
            oracle_text=card.oracle_text,
            mana_cost=card.mana_cost,
            cmc=card.cmc,
            colors=[c for c in "WUBRG" if c in card.colors],
            color_identity=[c for c in "WUBRG" if c in card.color_identity],
            keywords=sorted(card.keywords),
            rarities=sorted(card.rarities),
            set_codes=sorted(card.set_codes),
            legalities=dict(card.legalities),
            price_usd=card.price_usd,
            image_url=card.image_url,
            printing_ids=list(card.printing_ids),
        )


class PrintingResponse(BaseModel):
    """One printing of a card."""

    printing_id: str
    set_code: str
    rarity: str
    prices: dict[str, float | None] = Field(default_factory=dict)
    image_url: str | None = None

    @classmethod
    def from_printing(cls, printing: CardPrinting) -> "PrintingResponse":
        return cls(
            printing_id=printing.printing_id,
            set_code=printing.set_code,
            rarity=printing.rarity,
            prices=dict(printing.prices),
            image_url=printing.image_url(),
        )


class CardDetailResponse(BaseModel):
    """A card identity with all of its printings."""

    card: CardResponse
    printings: list[PrintingResponse]


class SearchResponse(BaseModel):
    """Paginated search results, one entry per card."""

    data: list[CardResponse]
    has_more: bool
    next_page: int | None = None
    total_cards: int


class RecommendationItem(BaseModel):
    card: CardResponse
    score: float = Field(ge=0.0, le=1.0)
    reason: str

    @classmethod
    def from_recommendation(cls, rec: Recommendation) -> "RecommendationItem":
        return cls(card=CardResponse.from_identity(rec.candidate), score=rec.score, reason=rec.reason)


class RecommendationsResponse(BaseModel):
    """Ranked recommendations for a source card."""

    source: CardResponse
    strategy: Strategy
    count: int
    recommendations: list[RecommendationItem]


@router.get("/search", response_model=SearchResponse)
async def search(
    service: Annotated[CardService, Depends(get_card_service)],
    q: str = "",
    colors: str | None = None,
    types: str | None = None,
    rarities: str | None = None,
    format: str | None = None,
    min_mv: Annotated[float | None, Query(alias="minMv")] = None,
    max_mv: Annotated[float | None, Query(alias="maxMv")] = None,
    min_price: Annotated[float | None, Query(alias="minPrice")] = None,
    max_price: Annotated[float | None, Query(alias="maxPrice")] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int | None, Query(ge=1, le=200)] = None,
) -> SearchResponse:
    """
    Search cards by name and facets.

    List facets take comma-separated values (e.g. `colors=W,U`).
    """
    raw = {
        "colors": colors,
        "types": types,
        "rarities": rarities,
        "format": format,
        "min_mv": min_mv,
        "max_mv": max_mv,
        "min_price": min_price,
        "max_price": max_price,
    }
    filters = parse_filters({name: value for name, value in raw.items() if value is not None})
    result = await service.search(q, filters, page=page, page_size=page_size)
    return SearchResponse(
        data=[CardResponse.from_identity(card) for card in result.data],
        has_more=result.has_more,
        next_page=result.next_page,
        total_cards=result.total_cards,
    )


@router.get("/{card_ref}", response_model=CardDetailResponse)
async def get_card(
    card_ref: str,
    service: Annotated[CardService, Depends(get_card_service)],
) -> CardDetailResponse:
    """Card identity plus every printing. Accepts a printing id, oracle id, or identity key."""
    identity, printings = service.get_card(card_ref)
    return CardDetailResponse(
        card=CardResponse.from_identity(identity),
        printings=[PrintingResponse.from_printing(p) for p in printings],
    )


@router.get("/{card_ref}/recommendations", response_model=RecommendationsResponse)
async def get_recommendations(
    card_ref: str,
    service: Annotated[CardService, Depends(get_card_service)],
    strategy: Annotated[Strategy, Query(alias="type")] = Strategy.SYNERGY,
    limit: Annotated[int, Query(ge=1)] = settings.default_recommendation_limit,
    filters: str | None = None,
    user_id: str | None = None,
) -> RecommendationsResponse:
    """
    Ranked recommendations for a card.

    `filters` is a JSON object of facets, e.g. `{"colors": ["W"], "maxMv": 3}`.
    `limit` is capped at the configured maximum.
    """
    request = RecommendationRequest(
        source_ref=card_ref,
        strategy=strategy,
        limit=min(limit, settings.max_recommendation_limit),
        filters=parse_filters(filters),
    )
    recs = await service.recommend(request, user_id=user_id)
    source, _ = service.get_card(card_ref)
    return RecommendationsResponse(
        source=CardResponse.from_identity(source),
        strategy=strategy,
        count=len(recs),
        recommendations=[RecommendationItem.from_recommendation(rec) for rec in recs],
    )
