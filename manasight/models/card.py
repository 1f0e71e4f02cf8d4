"""
Card Models.

Defines the two halves of the catalog: printings (one row per edition, as
delivered by Scryfall) and identities (one per unique rules object).

INVARIANTS:
- CardPrinting is an immutable snapshot of one catalog row
- CardIdentity is built from one or more printings sharing a resolved key
- color_identity is always a superset of colors
- All models are frozen (immutable after construction)
"""

from dataclasses import dataclass, field

FACE_TEXT_SEPARATOR = "\n//\n"
FACE_TYPE_SEPARATOR = " // "

# Preference order when a single image is needed
IMAGE_PREFERENCE = ("normal", "large", "small", "border_crop", "art_crop")


@dataclass(frozen=True, slots=True)
class ImageUris:
    """Image variants Scryfall publishes for a card or card face."""

    small: str | None = None
    normal: str | None = None
    large: str | None = None
    art_crop: str | None = None
    border_crop: str | None = None

    def preferred(self) -> str | None:
        """Return the best single image URL, or None when no variant exists."""
        for variant in IMAGE_PREFERENCE:
            url: str | None = getattr(self, variant)
            if url:
                return url
        return None

    def all_urls(self) -> tuple[str, ...]:
        """All non-empty variant URLs in preference order."""
        urls = (getattr(self, variant) for variant in IMAGE_PREFERENCE)
        return tuple(url for url in urls if url)


@dataclass(frozen=True, slots=True)
class CardFace:
    """
    One face of a multi-faced card (transform, modal DFC, split, adventure).

    Attributes:
        name: Face name (e.g., "Delver of Secrets")
        type_line: Face type line
        oracle_text: Face rules text
        mana_cost: Face mana cost, empty for back faces of transform cards
        image_uris: Face images (only set for double-sided layouts)
    """

    name: str
    type_line: str = ""
    oracle_text: str = ""
    mana_cost: str = ""
    image_uris: ImageUris | None = None


@dataclass(frozen=True, slots=True)
class CardPrinting:
    """
    A specific edition of a card.

    Attributes:
        printing_id: Scryfall card id (unique per printing)
        oracle_id: Scryfall oracle id; None for some digital-only or legacy rows
        name: Card name (faces joined with " // " for multi-faced cards)
        set_code: Lowercase set code (e.g., "dmu")
        prices: Currency -> price, None when Scryfall has no price
        card_faces: Faces for multi-faced layouts, empty otherwise
    """

    printing_id: str
    oracle_id: str | None
    name: str
    set_code: str
    type_line: str = ""
    oracle_text: str = ""
    mana_cost: str = ""
    cmc: float = 0.0
    colors: frozenset[str] = frozenset()
    color_identity: frozenset[str] = frozenset()
    keywords: frozenset[str] = frozenset()
    rarity: str = "common"
    legalities: dict[str, str] = field(default_factory=dict)
    prices: dict[str, float | None] = field(default_factory=dict)
    image_uris: ImageUris | None = None
    card_faces: tuple[CardFace, ...] = ()

    @property
    def full_oracle_text(self) -> str:
        """Rules text, falling back to the joined face texts."""
        if self.oracle_text:
            return self.oracle_text
        return FACE_TEXT_SEPARATOR.join(f.oracle_text for f in self.card_faces if f.oracle_text)

    @property
    def full_type_line(self) -> str:
        """Type line, falling back to the joined face type lines."""
        if self.type_line:
            return self.type_line
        return FACE_TYPE_SEPARATOR.join(f.type_line for f in self.card_faces if f.type_line)

    @property
    def price_usd(self) -> float | None:
        """Lowest known USD price for this printing (nonfoil or foil)."""
        known = [p for p in (self.prices.get("usd"), self.prices.get("usd_foil")) if p is not None]
        return min(known) if known else None

    def image_url(self) -> str | None:
        """Primary image, falling back to the front face for double-sided cards."""
        if self.image_uris is not None:
            url = self.image_uris.preferred()
            if url:
                return url
        for face in self.card_faces:
            if face.image_uris is not None:
                url = face.image_uris.preferred()
                if url:
                    return url
        return None

    def all_image_urls(self) -> tuple[str, ...]:
        """Preferred image for the card and each face, without duplicates."""
        urls: list[str] = []
        candidates = [self.image_uris] + [f.image_uris for f in self.card_faces]
        for uris in candidates:
            if uris is None:
                continue
            url = uris.preferred()
            if url and url not in urls:
                urls.append(url)
        return tuple(urls)


@dataclass(frozen=True, slots=True)
class CardIdentity:
    """
    Canonical card: one per independent name + rules text combination.

    Attributes:
        key: Resolved identity key (oracle id, or derived key when absent)
        oracle_id: Oracle id when any printing carried one
        cmc: Converted mana cost (mana value), never negative
        colors: Color symbols (W, U, B, R, G)
        color_identity: Always contains every color in `colors`
        rarities: Every rarity this card was printed at
        set_codes: Every set this card was printed in
        legalities: Format -> legality status
        price_usd: Cheapest known USD price across printings
        image_url: Representative image
        printing_ids: Sorted ids of all printings for this identity
    """

    key: str
    oracle_id: str | None
    name: str
    type_line: str = ""
    oracle_text: str = ""
    mana_cost: str = ""
    cmc: float = 0.0
    colors: frozenset[str] = frozenset()
    color_identity: frozenset[str] = frozenset()
    keywords: frozenset[str] = frozenset()
    rarities: frozenset[str] = frozenset()
    set_codes: frozenset[str] = frozenset()
    legalities: dict[str, str] = field(default_factory=dict)
    price_usd: float | None = None
    image_url: str | None = None
    printing_ids: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.cmc < 0:
            object.__setattr__(self, "cmc", 0.0)
        if not self.colors <= self.color_identity:
            object.__setattr__(self, "color_identity", self.color_identity | self.colors)
