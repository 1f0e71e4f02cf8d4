"""
Card Filters: user-supplied facets that narrow a candidate list.

Facets are conjunctive: a card must satisfy every facet that is set. Within a
facet the accepted values are a disjunction (any listed color, any listed
type, ...).

Filters never touch scores. They only decide membership.
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from manasight.models.card import CardIdentity
from manasight.models.failure import FailureKind, KnownError
from manasight.parsers.scryfall import VALID_RARITIES
from manasight.scoring.text import mentions

# C stands for colorless
VALID_COLORS = frozenset({"W", "U", "B", "R", "G", "C"})

# Scryfall legality keys
VALID_FORMATS = frozenset(
    {
        "alchemy",
        "brawl",
        "commander",
        "duel",
        "explorer",
        "future",
        "gladiator",
        "historic",
        "legacy",
        "modern",
        "oathbreaker",
        "oldschool",
        "pauper",
        "paupercommander",
        "penny",
        "pioneer",
        "predh",
        "premodern",
        "standard",
        "standardbrawl",
        "timeless",
        "vintage",
    }
)


class InvalidFilterError(KnownError):
    """Raised when a filter value is malformed or outside its allowed set."""

    def __init__(self, detail: str):
        super().__init__(
            kind=FailureKind.INVALID_INPUT,
            message="The filters could not be applied.",
            detail=detail,
            suggestion="Check filter names and values, then retry.",
            status_code=400,
        )


def _split_values(value: Any) -> Any:
    """Accept "W,U" as well as ["W", "U"]."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class CardFilters(BaseModel):
    """
    Facets narrowing a set of cards.

    Accepts snake_case or camelCase names (`min_mv` or `minMv`). Unknown
    facets are rejected rather than ignored.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    colors: frozenset[str] = Field(default_factory=frozenset)
    color_identity: frozenset[str] = Field(default_factory=frozenset)
    types: frozenset[str] = Field(default_factory=frozenset)
    rarities: frozenset[str] = Field(default_factory=frozenset)
    format: str | None = None
    set_codes: frozenset[str] = Field(default_factory=frozenset)
    keywords: frozenset[str] = Field(default_factory=frozenset)
    oracle_text: str | None = None
    min_mv: float | None = Field(default=None, ge=0)
    max_mv: float | None = Field(default=None, ge=0)
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)

    @field_validator("colors", "color_identity", "types", "rarities", "set_codes", "keywords", mode="before")
    @classmethod
    def split_values(cls, value: Any) -> Any:
        return _split_values(value)

    @field_validator("colors", "color_identity")
    @classmethod
    def check_colors(cls, value: frozenset[str]) -> frozenset[str]:
        colors = frozenset(c.upper() for c in value)
        unknown = sorted(colors - VALID_COLORS)
        if unknown:
            raise ValueError(f"Unknown colors: {', '.join(unknown)} (expected W, U, B, R, G or C)")
        return colors

    @field_validator("rarities")
    @classmethod
    def check_rarities(cls, value: frozenset[str]) -> frozenset[str]:
        rarities = frozenset(r.lower() for r in value)
        unknown = sorted(rarities - VALID_RARITIES)
        if unknown:
            raise ValueError(f"Unknown rarities: {', '.join(unknown)}")
        return rarities

    @field_validator("format")
    @classmethod
    def check_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip().lower()
        if value not in VALID_FORMATS:
            raise ValueError(f"Unknown format: {value}")
        return value

    @field_validator("types", "set_codes", "keywords")
    @classmethod
    def lowercase(cls, value: frozenset[str]) -> frozenset[str]:
        return frozenset(v.strip().lower() for v in value if v.strip())

    @field_validator("oracle_text")
    @classmethod
    def blank_text_is_unset(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @model_validator(mode="after")
    def check_ranges(self) -> "CardFilters":
        if self.min_mv is not None and self.max_mv is not None and self.min_mv > self.max_mv:
            raise ValueError(f"minMv ({self.min_mv:g}) is greater than maxMv ({self.max_mv:g})")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError(
                f"minPrice ({self.min_price:g}) is greater than maxPrice ({self.max_price:g})"
            )
        return self

    # -------------------------------------------------------------------------

    @property
    def is_empty(self) -> bool:
        return self == _NO_FILTERS

    @property
    def uses_price(self) -> bool:
        """True when results depend on card prices."""
        return self.min_price is not None or self.max_price is not None

    def canonical(self) -> dict[str, Any]:
        """Set facets only, with sorted values."""
        out: dict[str, Any] = {}
        for name, value in self.model_dump().items():
            if value is None or value == frozenset():
                continue
            out[name] = sorted(value) if isinstance(value, frozenset) else value
        return out

    def cache_fingerprint(self) -> str:
        """Order-insensitive digest of the set facets, for cache keys."""
        canonical = self.canonical()
        if not canonical:
            return "none"
        payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]

    def matches(self, card: CardIdentity) -> bool:
        """True if the card satisfies every set facet."""
        if self.colors:
            colorless = "C" in self.colors and not card.colors
            if not colorless and not (self.colors & card.colors):
                return False

        if self.color_identity and not card.color_identity <= self.color_identity:
            return False

        if self.types and not any(mentions(card.type_line, t) for t in self.types):
            return False

        if self.rarities and not (self.rarities & card.rarities):
            return False

        if self.format and card.legalities.get(self.format) != "legal":
            return False

        if self.set_codes and not (self.set_codes & card.set_codes):
            return False

        if self.keywords:
            card_keywords = {k.lower() for k in card.keywords}
            if not (self.keywords & card_keywords):
                return False

        if self.oracle_text and self.oracle_text.lower() not in card.oracle_text.lower():
            return False

        if self.min_mv is not None and card.cmc < self.min_mv:
            return False
        if self.max_mv is not None and card.cmc > self.max_mv:
            return False

        if self.uses_price:
            if card.price_usd is None:
                return False
            if self.min_price is not None and card.price_usd < self.min_price:
                return False
            if self.max_price is not None and card.price_usd > self.max_price:
                return False

        return True


_NO_FILTERS = CardFilters()


def _describe(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "filters"
        message = item["msg"].removeprefix("Value error, ")
        parts.append(f"{location}: {message}")
    return "; ".join(parts)


def parse_filters(raw: Mapping[str, Any] | str | None) -> CardFilters:
    """
    Validate user-supplied filters.

    Args:
        raw: A mapping, a JSON object string, or None for no filters

    Raises:
        InvalidFilterError: On malformed JSON, unknown facets, or bad values
    """
    if raw is None:
        return _NO_FILTERS

    if isinstance(raw, str):
        if not raw.strip():
            return _NO_FILTERS
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise InvalidFilterError(f"filters is not valid JSON: {e.msg}") from e

    if not isinstance(raw, Mapping):
        raise InvalidFilterError("filters must be a JSON object")

    try:
        return CardFilters.model_validate(dict(raw))
    except ValidationError as e:
        raise InvalidFilterError(_describe(e)) from e
