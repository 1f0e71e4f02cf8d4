"""
User interaction endpoints.

The user id is always explicit in the path; there is no session state.
Recording an interaction warms the card's recommendations in the
background so the user's next request is served from cache. Personalized
recommendations are built from the same per-card rankings.
"""

from datetime import datetime
from typing import Annotated, Any, Literal

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from manasight.api.cards import RecommendationItem
from manasight.config import settings
from manasight.db import get_interactions_for_user, record_interaction
from manasight.db.database import get_session
from manasight.filtering.facets import parse_filters
from manasight.services.card_service import CardService, get_card_service

router = APIRouter(prefix="/users", tags=["interactions"])

InteractionType = Literal["view", "favorite", "search", "deck_add"]


class InteractionRequest(BaseModel):
    """One interaction with a card."""

    card_ref: str = Field(
        ...,
        min_length=1,
        description="Printing id, oracle id, or identity key",
    )
    interaction_type: InteractionType
    details: dict[str, Any] = Field(default_factory=dict)


class InteractionResponse(BaseModel):
    """A stored interaction."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    card_key: str
    interaction_type: str
    created_at: datetime | None = None


class UserRecommendationsResponse(BaseModel):
    """Recommendations drawn from a user's recent interactions."""

    user_id: str
    count: int
    recommendations: list[RecommendationItem]


@router.post(
    "/{user_id}/interactions",
    response_model=InteractionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_interaction(
    user_id: str,
    request: InteractionRequest,
    background_tasks: BackgroundTasks,
    session: Annotated[AsyncSession, Depends(get_session)],
    service: Annotated[CardService, Depends(get_card_service)],
) -> InteractionResponse:
    """
    Record an interaction and warm recommendations for the card.

    The card ref is resolved first, so unknown cards return 404 and nothing
    is stored.
    """
    card_key = service.resolver.resolve(request.card_ref)
    interaction = await record_interaction(
        session,
        user_id=user_id,
        card_key=card_key,
        interaction_type=request.interaction_type,
        details=request.details,
    )
    background_tasks.add_task(service.warm_recommendations, card_key)
    return InteractionResponse.model_validate(interaction)


@router.get("/{user_id}/interactions", response_model=list[InteractionResponse])
async def list_interactions(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
) -> list[InteractionResponse]:
    """Most recent interactions first."""
    interactions = await get_interactions_for_user(session, user_id, limit=limit)
    return [InteractionResponse.model_validate(i) for i in interactions]


@router.get("/{user_id}/recommendations", response_model=UserRecommendationsResponse)
async def get_user_recommendations(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    service: Annotated[CardService, Depends(get_card_service)],
    limit: Annotated[int, Query(ge=1)] = settings.personalized_recommendation_limit,
    filters: str | None = None,
) -> UserRecommendationsResponse:
    """
    Synergy recommendations across the user's recent cards.

    Cards the user already interacted with are excluded. A user with no
    interactions gets an empty list.
    """
    parsed = parse_filters(filters)
    interactions = await get_interactions_for_user(
        session, user_id, limit=settings.user_interaction_window
    )
    recs = await service.recommend_for_user(user_id, interactions, limit=limit, filters=parsed)
    return UserRecommendationsResponse(
        user_id=user_id,
        count=len(recs),
        recommendations=[RecommendationItem.from_recommendation(rec) for rec in recs],
    )
