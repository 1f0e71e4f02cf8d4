from manasight.scoring.engine import (
    FunctionalSimilarityScorer,
    FunctionalWeights,
    Scorer,
    SynergyScorer,
    get_scorer,
    rank_candidates,
    score,
)

__all__ = [
    "FunctionalSimilarityScorer",
    "FunctionalWeights",
    "Scorer",
    "SynergyScorer",
    "get_scorer",
    "rank_candidates",
    "score",
]
