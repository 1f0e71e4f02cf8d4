"""
Scoring Engine: pairwise relevance between a source card and a candidate.

One Scorer subclass per Strategy; both are pure functions of the two
identities (no session state, no catalog access).

INVARIANTS:
- Every score lies in [0, 1]
- Same (source, candidate, strategy) → bit-identical ScoreResult
- The source identity is never ranked as its own candidate
- Color filtering is NOT done here (see filtering/)
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from manasight.config import (
    SYNERGY_COLOR_WEIGHT,
    SYNERGY_CROSS_REFERENCE_WEIGHT,
    SYNERGY_EVIDENCE_SATURATION,
    Settings,
)
from manasight.models.card import CardIdentity
from manasight.models.recommendation import Recommendation, ScoreResult, Strategy
from manasight.scoring.text import (
    GENERIC_TYPE_WORDS,
    MECHANIC_PAIRS,
    card_types,
    jaccard,
    matches_enabler,
    matches_payoff,
    mentions_keyword,
    rules_words,
    subtypes,
    type_tokens,
)
from manasight.services.identity_resolver import normalize_name

# Decimal places kept on final scores so float noise cannot reorder ties
SCORE_PRECISION = 12

# =============================================================================
# FUNCTIONAL SIMILARITY
# =============================================================================

FUNCTIONAL_SIGNALS = ("type_line", "mana_value", "color_identity", "keywords")


@dataclass(frozen=True, slots=True)
class FunctionalWeights:
    """
    Convex weights for the functional-similarity sub-signals.

    Weights must be non-negative and sum to 1.0, so a candidate matching the
    source on every signal scores exactly 1.0.
    """

    type_line: float = 0.35
    mana_value: float = 0.25
    color_identity: float = 0.20
    keywords: float = 0.20

    def __post_init__(self) -> None:
        values = [getattr(self, name) for name in FUNCTIONAL_SIGNALS]
        if any(v < 0 for v in values):
            raise ValueError(f"Functional weights must be non-negative: {values}")
        if abs(sum(values) - 1.0) > 1e-9:
            raise ValueError(f"Functional weights must sum to 1.0, got {sum(values)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "FunctionalWeights":
        return cls(
            type_line=settings.functional_type_weight,
            mana_value=settings.functional_mana_value_weight,
            color_identity=settings.functional_color_identity_weight,
            keywords=settings.functional_keyword_weight,
        )


def _finalize(value: float) -> float:
    return min(1.0, max(0.0, round(value, SCORE_PRECISION)))


def _lower(values: frozenset[str]) -> frozenset[str]:
    return frozenset(v.lower() for v in values)


class Scorer(ABC):
    """Scores one candidate against a source card under a fixed strategy."""

    strategy: Strategy

    @abstractmethod
    def score(self, source: CardIdentity, candidate: CardIdentity) -> ScoreResult:
        """Return a score in [0, 1] and the reason behind it."""


class FunctionalSimilarityScorer(Scorer):
    """
    Cards that do the same job: same types, curve slot, colors and keywords.

    Sub-signals (each in [0, 1]):
        type_line: Jaccard overlap of type-line words
        mana_value: 1 / (1 + |cmc difference|)
        color_identity: Jaccard overlap of color identities
        keywords: Jaccard overlap of keyword abilities
    """

    strategy = Strategy.FUNCTIONAL_SIMILARITY

    def __init__(self, weights: FunctionalWeights | None = None) -> None:
        self.weights = weights or FunctionalWeights()

    def signals(self, source: CardIdentity, candidate: CardIdentity) -> dict[str, float]:
        """Raw, unweighted sub-signal values."""
        return {
            "type_line": jaccard(type_tokens(source.type_line), type_tokens(candidate.type_line)),
            "mana_value": 1.0 / (1.0 + abs(source.cmc - candidate.cmc)),
            "color_identity": jaccard(source.color_identity, candidate.color_identity),
            "keywords": jaccard(_lower(source.keywords), _lower(candidate.keywords)),
        }

    def score(self, source: CardIdentity, candidate: CardIdentity) -> ScoreResult:
        signals = self.signals(source, candidate)
        breakdown = {name: getattr(self.weights, name) * signals[name] for name in FUNCTIONAL_SIGNALS}

        total = 0.0
        for name in FUNCTIONAL_SIGNALS:
            total += breakdown[name]

        # max() keeps the first signal on ties, so the reason is stable
        dominant = max(FUNCTIONAL_SIGNALS, key=lambda name: breakdown[name])
        return ScoreResult(
            score=_finalize(total),
            reason=_functional_reason(dominant, source, candidate),
            breakdown=breakdown,
        )


def _functional_reason(signal: str, source: CardIdentity, candidate: CardIdentity) -> str:
    if signal == "type_line":
        shared = sorted(type_tokens(source.type_line) & type_tokens(candidate.type_line))
        if shared:
            return f"Shares card types: {', '.join(t.title() for t in shared)}"
        return "Similar card type"
    if signal == "mana_value":
        if source.cmc == candidate.cmc:
            return f"Same mana value ({candidate.cmc:g})"
        return f"Similar mana value ({candidate.cmc:g} vs {source.cmc:g})"
    if signal == "color_identity":
        shared = "".join(c for c in "WUBRG" if c in source.color_identity & candidate.color_identity)
        return f"Shares color identity ({shared})" if shared else "Both colorless"
    shared = sorted(_lower(source.keywords) & _lower(candidate.keywords))
    if shared:
        return f"Shares keywords: {', '.join(k.title() for k in shared)}"
    return "Similar keyword profile"


# =============================================================================
# SYNERGY
# =============================================================================

SUBTYPE_EVIDENCE = 1.0
CARD_TYPE_EVIDENCE = 0.5
KEYWORD_EVIDENCE = 0.75
MECHANIC_EVIDENCE = 0.75


@dataclass(frozen=True, slots=True)
class SynergyEvidence:
    """One cross-reference between the two cards."""

    weight: float
    label: str
    reason: str

    def sort_key(self) -> tuple[float, str]:
        return (-self.weight, self.label)


def _type_evidence(
    referrer: CardIdentity,
    referenced: CardIdentity,
    direction: str,
    source: CardIdentity,
) -> list[SynergyEvidence]:
    words = rules_words(referrer)
    found: list[SynergyEvidence] = []
    for token in sorted(subtypes(referenced.type_line)):
        if token in words:
            found.append(
                SynergyEvidence(
                    SUBTYPE_EVIDENCE,
                    f"{direction}:subtype:{token}",
                    _type_reason(token, direction, source),
                )
            )
    for token in sorted(card_types(referenced.type_line) - GENERIC_TYPE_WORDS):
        if token in words:
            found.append(
                SynergyEvidence(
                    CARD_TYPE_EVIDENCE,
                    f"{direction}:type:{token}",
                    _type_reason(token, direction, source),
                )
            )
    return found


def _type_reason(token: str, direction: str, source: CardIdentity) -> str:
    if direction == "forward":
        return f"{token.title()} synergy: {source.name} cares about {token.title()}s"
    return f"{token.title()} synergy: rewards {token.title()}s like {source.name}"


def _keyword_evidence(
    referrer: CardIdentity,
    referenced: CardIdentity,
    direction: str,
    source: CardIdentity,
) -> list[SynergyEvidence]:
    found: list[SynergyEvidence] = []
    own = _lower(referrer.keywords)
    for keyword in sorted(_lower(referenced.keywords) - own):
        if mentions_keyword(referrer, keyword):
            if direction == "forward":
                reason = f"Has {keyword.title()}, which {source.name} rewards"
            else:
                reason = f"Rewards {keyword.title()}, which {source.name} has"
            found.append(
                SynergyEvidence(KEYWORD_EVIDENCE, f"{direction}:keyword:{keyword}", reason)
            )
    return found


def _mechanic_evidence(source: CardIdentity, candidate: CardIdentity) -> list[SynergyEvidence]:
    found: list[SynergyEvidence] = []
    for label, enabler, payoff in MECHANIC_PAIRS:
        if matches_enabler(source, enabler) and matches_payoff(candidate, payoff):
            found.append(
                SynergyEvidence(
                    MECHANIC_EVIDENCE,
                    f"forward:mechanic:{label}",
                    f"{label.title()} payoff for {source.name}",
                )
            )
        if matches_enabler(candidate, enabler) and matches_payoff(source, payoff):
            found.append(
                SynergyEvidence(
                    MECHANIC_EVIDENCE,
                    f"backward:mechanic:{label}",
                    f"{label.title()} enabler for {source.name}",
                )
            )
    return found


def collect_evidence(source: CardIdentity, candidate: CardIdentity) -> list[SynergyEvidence]:
    """All cross-references between two cards, strongest first."""
    evidence = [
        *_type_evidence(source, candidate, "forward", source),
        *_type_evidence(candidate, source, "backward", source),
        *_keyword_evidence(source, candidate, "forward", source),
        *_keyword_evidence(candidate, source, "backward", source),
        *_mechanic_evidence(source, candidate),
    ]
    evidence.sort(key=SynergyEvidence.sort_key)
    return evidence


def color_compatibility(source: CardIdentity, candidate: CardIdentity) -> float:
    """1.0 when the candidate fits in the source's colors, else their overlap."""
    if candidate.color_identity <= source.color_identity:
        return 1.0
    return jaccard(source.color_identity, candidate.color_identity)


class SynergyScorer(Scorer):
    """
    Cards that work together: one card's text calls out the other.

    Cross-reference density (type call-outs, keyword references, enabler →
    payoff mechanics, in both directions) drives the score; color
    compatibility is a smaller additive term. No cross-reference means no
    synergy, whatever the colors.
    """

    strategy = Strategy.SYNERGY

    def score(self, source: CardIdentity, candidate: CardIdentity) -> ScoreResult:
        evidence = collect_evidence(source, candidate)
        if not evidence:
            return ScoreResult(score=0.0, reason="No synergy found")

        total = 0.0
        for item in evidence:
            total += item.weight
        density = min(1.0, total / SYNERGY_EVIDENCE_SATURATION)
        colors = color_compatibility(source, candidate)

        breakdown = {
            "cross_reference": SYNERGY_CROSS_REFERENCE_WEIGHT * density,
            "color_identity": SYNERGY_COLOR_WEIGHT * colors,
        }
        return ScoreResult(
            score=_finalize(breakdown["cross_reference"] + breakdown["color_identity"]),
            reason=evidence[0].reason,
            breakdown=breakdown,
        )


# =============================================================================
# DISPATCH AND RANKING
# =============================================================================


def get_scorer(strategy: Strategy, weights: FunctionalWeights | None = None) -> Scorer:
    """Scorer implementation for a strategy."""
    if strategy == Strategy.FUNCTIONAL_SIMILARITY:
        return FunctionalSimilarityScorer(weights)
    if strategy == Strategy.SYNERGY:
        return SynergyScorer()
    raise ValueError(f"Unknown strategy: {strategy!r}")


def score(source: CardIdentity, candidate: CardIdentity, strategy: Strategy) -> ScoreResult:
    """Score a single pair with the default weights."""
    return get_scorer(strategy).score(source, candidate)


def is_same_card(source: CardIdentity, candidate: CardIdentity) -> bool:
    """Same identity key, or same card name (names are unique per rules object)."""
    if source.key == candidate.key:
        return True
    return normalize_name(source.name) == normalize_name(candidate.name)


def rank_candidates(
    source: CardIdentity,
    candidates: Iterable[CardIdentity],
    scorer: Scorer,
) -> list[Recommendation]:
    """
    Score and order every candidate.

    The source card is skipped, zero scores are dropped, and the result is
    sorted by score descending, then name and key ascending.
    """
    ranked: list[Recommendation] = []
    for candidate in candidates:
        if is_same_card(source, candidate):
            continue
        result = scorer.score(source, candidate)
        if result.score <= 0.0:
            continue
        ranked.append(Recommendation(candidate=candidate, score=result.score, reason=result.reason))

    ranked.sort(key=Recommendation.sort_key)
    return ranked
