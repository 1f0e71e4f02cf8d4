"""
Recommendation request and result values.

Both are ephemeral and request-scoped; nothing here is persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from manasight.models.card import CardIdentity

if TYPE_CHECKING:
    from manasight.filtering.facets import CardFilters


class Strategy(str, Enum):
    """How candidates are related to the source card."""

    SYNERGY = "synergy"
    FUNCTIONAL_SIMILARITY = "functional_similarity"


@dataclass(frozen=True, slots=True)
class ScoreResult:
    """
    Outcome of scoring one candidate against a source card.

    Attributes:
        score: Relevance in [0, 1]
        reason: Human-readable explanation naming the dominant signal
        breakdown: Signal name -> weighted contribution
    """

    score: float
    reason: str
    breakdown: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Recommendation:
    """A scored candidate card."""

    candidate: CardIdentity
    score: float
    reason: str

    def sort_key(self) -> tuple[float, str, str]:
        """Score descending, then name and key ascending."""
        return (-self.score, self.candidate.name, self.candidate.key)


@dataclass(frozen=True, slots=True)
class RecommendationRequest:
    """
    A request for cards related to `source_ref`.

    Attributes:
        source_ref: Printing id, oracle id, or identity key
        strategy: Scoring strategy
        limit: Maximum results, applied after filtering
        filters: Facets narrowing the candidate list
    """

    source_ref: str
    strategy: Strategy
    limit: int
    filters: "CardFilters"

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")
