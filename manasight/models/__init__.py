from manasight.models.card import CardFace, CardIdentity, CardPrinting, ImageUris
from manasight.models.failure import (
    ApiResponse,
    FailureDetail,
    FailureKind,
    KnownError,
    OutcomeType,
)
from manasight.models.recommendation import (
    Recommendation,
    RecommendationRequest,
    ScoreResult,
    Strategy,
)

__all__ = [
    "ApiResponse",
    "CardFace",
    "CardIdentity",
    "CardPrinting",
    "FailureDetail",
    "FailureKind",
    "ImageUris",
    "KnownError",
    "OutcomeType",
    "Recommendation",
    "RecommendationRequest",
    "ScoreResult",
    "Strategy",
]
