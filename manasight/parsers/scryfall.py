"""
Scryfall bulk data loader.

Downloads and parses Scryfall's bulk card data into CardPrinting records.

Bulk data: https://scryfall.com/docs/api/bulk-data
"""

import json
import logging
from pathlib import Path
from typing import Any

import httpx

from manasight.models.card import CardFace, CardPrinting, ImageUris

logger = logging.getLogger(__name__)

SCRYFALL_BULK_API = "https://api.scryfall.com/bulk-data"
USER_AGENT = "ManaSight/1.0"

VALID_RARITIES = frozenset({"common", "uncommon", "rare", "mythic", "special", "bonus"})
PRICE_FIELDS = ("usd", "usd_foil", "eur", "tix")


class ScryfallParseError(ValueError):
    """A Scryfall object is missing fields every printing must have."""


def _normalize_rarity(rarity: str | None) -> str:
    """Normalize rarity to one of the Scryfall rarity names."""
    return rarity if rarity in VALID_RARITIES else "common"


def _parse_price(value: Any) -> float | None:
    """Scryfall prices are decimal strings or null."""
    if value is None or value == "":
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if price >= 0 else None


def parse_prices(raw_prices: dict[str, Any] | None) -> dict[str, float | None]:
    """Convert a Scryfall `prices` object to floats."""
    raw_prices = raw_prices or {}
    return {name: _parse_price(raw_prices.get(name)) for name in PRICE_FIELDS}


def _parse_image_uris(raw: dict[str, Any] | None) -> ImageUris | None:
    if not raw:
        return None
    return ImageUris(
        small=raw.get("small"),
        normal=raw.get("normal"),
        large=raw.get("large"),
        art_crop=raw.get("art_crop"),
        border_crop=raw.get("border_crop"),
    )


def _parse_faces(raw_faces: list[dict[str, Any]] | None) -> tuple[CardFace, ...]:
    if not raw_faces:
        return ()
    return tuple(
        CardFace(
            name=str(face.get("name", "")),
            type_line=str(face.get("type_line") or ""),
            oracle_text=str(face.get("oracle_text") or ""),
            mana_cost=str(face.get("mana_cost") or ""),
            image_uris=_parse_image_uris(face.get("image_uris")),
        )
        for face in raw_faces
    )


def parse_printing(card: dict[str, Any]) -> CardPrinting:
    """
    Build a CardPrinting from one Scryfall card object.

    Multi-faced cards keep their faces; colors fall back to the union of
    face colors when the top-level field is absent (transform layouts).

    Raises:
        ScryfallParseError: If the object has no id or name
    """
    printing_id = card.get("id")
    name = card.get("name")
    if not printing_id or not name:
        raise ScryfallParseError(f"Card object missing id or name: {card.get('id')!r}")

    raw_faces = card.get("card_faces") or []

    colors = card.get("colors")
    if colors is None:
        colors = [c for face in raw_faces for c in face.get("colors", [])]

    oracle_id = card.get("oracle_id")
    if not oracle_id and raw_faces:
        # reversible_card layouts carry oracle ids per face only
        oracle_id = raw_faces[0].get("oracle_id")

    cmc = card.get("cmc")
    if cmc is None and raw_faces:
        cmc = raw_faces[0].get("cmc")

    return CardPrinting(
        printing_id=str(printing_id),
        oracle_id=str(oracle_id) if oracle_id else None,
        name=str(name),
        set_code=str(card.get("set", "")).lower(),
        type_line=str(card.get("type_line") or ""),
        oracle_text=str(card.get("oracle_text") or ""),
        mana_cost=str(card.get("mana_cost") or ""),
        cmc=max(float(cmc or 0.0), 0.0),
        colors=frozenset(colors),
        color_identity=frozenset(card.get("color_identity", [])) | frozenset(colors),
        keywords=frozenset(card.get("keywords", [])),
        rarity=_normalize_rarity(card.get("rarity")),
        legalities=dict(card.get("legalities", {})),
        prices=parse_prices(card.get("prices")),
        image_uris=_parse_image_uris(card.get("image_uris")),
        card_faces=_parse_faces(raw_faces),
    )


def parse_printings(cards: list[dict[str, Any]]) -> list[CardPrinting]:
    """
    Parse a batch of Scryfall objects, skipping malformed entries.

    Partial feeds are expected; malformed rows are logged and dropped so one
    bad object does not abort an import.
    """
    printings: list[CardPrinting] = []
    skipped = 0
    for card in cards:
        try:
            printings.append(parse_printing(card))
        except ScryfallParseError as e:
            skipped += 1
            logger.warning("SCRYFALL_ROW_SKIPPED", extra={"reason": str(e)})
    if skipped:
        logger.info("Parsed %d printings, skipped %d malformed rows", len(printings), skipped)
    return printings


def get_bulk_data_url(bulk_type: str = "oracle_cards") -> str:
    """
    Fetch the download URL for a Scryfall bulk data file.

    Args:
        bulk_type: Bulk file type (e.g., "oracle_cards", "default_cards")

    Returns:
        URL to download the bulk JSON file

    Raises:
        httpx.HTTPError: If API request fails
        ValueError: If the bulk type is not listed
    """
    response = httpx.get(
        SCRYFALL_BULK_API,
        headers={"User-Agent": USER_AGENT},
    )
    response.raise_for_status()

    data = response.json()

    for entry in data["data"]:
        if entry["type"] == bulk_type:
            return str(entry["download_uri"])

    raise ValueError(f"Could not find {bulk_type} bulk data URL")


def download_bulk_data(output_path: Path, bulk_type: str = "oracle_cards") -> Path:
    """
    Download Scryfall bulk data to a file.

    Args:
        output_path: Where to save the JSON file
        bulk_type: Bulk file type to download

    Note:
        default_cards is ~80MB, download may take a minute.
    """
    url = get_bulk_data_url(bulk_type)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    # Stream download due to file size
    with httpx.stream(
        "GET",
        url,
        headers={"User-Agent": USER_AGENT},
        follow_redirects=True,
        timeout=300.0,
    ) as response:
        response.raise_for_status()
        with open(output_path, "wb") as f:
            for chunk in response.iter_bytes(chunk_size=8192):
                f.write(chunk)

    return output_path


def load_raw_cards(bulk_data_path: Path) -> list[dict[str, Any]]:
    """
    Read a downloaded bulk file.

    Raises:
        FileNotFoundError: If the file does not exist
    """
    with open(bulk_data_path, encoding="utf-8") as f:
        cards: list[dict[str, Any]] = json.load(f)
    return cards


def load_printings(bulk_data_path: Path) -> list[CardPrinting]:
    """
    Load every printing from a downloaded bulk file.

    Args:
        bulk_data_path: Path to downloaded Scryfall bulk JSON

    Returns:
        Parsed printings, in file order
    """
    return parse_printings(load_raw_cards(bulk_data_path))
