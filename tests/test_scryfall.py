import json
from pathlib import Path
from typing import Any

import httpx
import pytest
import respx

from manasight.parsers.scryfall import (
    SCRYFALL_BULK_API,
    ScryfallParseError,
    download_bulk_data,
    get_bulk_data_url,
    load_printings,
    parse_prices,
    parse_printing,
    parse_printings,
)

BULK_LISTING = {
    "data": [
        {"type": "oracle_cards", "download_uri": "https://data.test/oracle-cards.json"},
        {"type": "default_cards", "download_uri": "https://data.test/default-cards.json"},
    ]
}


@pytest.fixture
def transform_card() -> dict[str, Any]:
    """A double-faced card: no top-level colors, text, or images."""
    return {
        "id": "p-delver",
        "oracle_id": "oracle-delver",
        "name": "Delver of Secrets // Insectile Aberration",
        "set": "ISD",
        "layout": "transform",
        "cmc": 1.0,
        "color_identity": ["U"],
        "keywords": ["Transform"],
        "rarity": "common",
        "legalities": {"modern": "legal"},
        "prices": {"usd": "0.10", "usd_foil": "1.25", "eur": None, "tix": "0.03"},
        "card_faces": [
            {
                "name": "Delver of Secrets",
                "type_line": "Creature — Human Wizard",
                "oracle_text": "At the beginning of your upkeep, look at the top card of your library.",
                "mana_cost": "{U}",
                "colors": ["U"],
                "image_uris": {"normal": "https://img.test/delver-front.jpg"},
            },
            {
                "name": "Insectile Aberration",
                "type_line": "Creature — Human Insect",
                "oracle_text": "Flying",
                "mana_cost": "",
                "colors": ["U"],
                "image_uris": {"normal": "https://img.test/delver-back.jpg"},
            },
        ],
    }


class TestParsePrinting:
    def test_parses_basic_fields(self, make_raw_card) -> None:
        raw = make_raw_card(
            "p1", "Lightning Bolt", "oracle-bolt", "Instant", cmc=1, colors=["R"], usd="1.50"
        )

        printing = parse_printing(raw)

        assert printing.printing_id == "p1"
        assert printing.oracle_id == "oracle-bolt"
        assert printing.colors == frozenset({"R"})
        assert printing.prices["usd"] == 1.50
        assert printing.image_url() == "https://img.test/p1.jpg"

    def test_missing_oracle_id_is_none(self, make_raw_card) -> None:
        printing = parse_printing(make_raw_card("p1", "Card", None, "Instant"))

        assert printing.oracle_id is None

    def test_multi_faced_card(self, transform_card: dict[str, Any]) -> None:
        """Faces supply colors, text, type line, and the image."""
        printing = parse_printing(transform_card)

        assert printing.set_code == "isd"
        assert printing.colors == frozenset({"U"})
        assert len(printing.card_faces) == 2
        assert "Flying" in printing.full_oracle_text
        assert printing.full_type_line == "Creature — Human Wizard // Creature — Human Insect"
        assert printing.image_url() == "https://img.test/delver-front.jpg"
        assert printing.all_image_urls() == (
            "https://img.test/delver-front.jpg",
            "https://img.test/delver-back.jpg",
        )

    def test_lowest_usd_price(self, transform_card: dict[str, Any]) -> None:
        assert parse_printing(transform_card).price_usd == 0.10

    def test_unknown_rarity_becomes_common(self, make_raw_card) -> None:
        card = make_raw_card("p1", "Card", "o", "Instant")
        card["rarity"] = "legendary"

        assert parse_printing(card).rarity == "common"

    def test_negative_cmc_clamped(self, make_raw_card) -> None:
        assert parse_printing(make_raw_card("p1", "Card", "o", "Instant", cmc=-1)).cmc == 0.0

    @pytest.mark.parametrize("missing", ["id", "name"])
    def test_missing_required_field_raises(self, missing: str, make_raw_card) -> None:
        card = make_raw_card("p1", "Card", "o", "Instant")
        del card[missing]

        with pytest.raises(ScryfallParseError):
            parse_printing(card)


class TestParsePrices:
    def test_converts_strings(self) -> None:
        prices = parse_prices({"usd": "0.25", "usd_foil": None, "eur": "", "tix": "bad"})

        assert prices == {"usd": 0.25, "usd_foil": None, "eur": None, "tix": None}

    def test_missing_prices_object(self) -> None:
        assert parse_prices(None) == {"usd": None, "usd_foil": None, "eur": None, "tix": None}


class TestParsePrintings:
    def test_skips_malformed_rows(self, make_raw_card) -> None:
        cards = [make_raw_card("p1", "Card", "o", "Instant"), {"name": "No Id"}]

        printings = parse_printings(cards)

        assert [p.printing_id for p in printings] == ["p1"]

    def test_load_printings_from_file(self, tmp_path: Path, raw_cards: list[dict[str, Any]]) -> None:
        path = tmp_path / "bulk.json"
        path.write_text(json.dumps(raw_cards), encoding="utf-8")

        printings = load_printings(path)

        assert len(printings) == len(raw_cards)
        assert printings[0].name == "Champion of the Parish"

    def test_load_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_printings(tmp_path / "missing.json")


class TestBulkDownload:
    @respx.mock
    def test_get_bulk_data_url(self) -> None:
        respx.get(SCRYFALL_BULK_API).mock(return_value=httpx.Response(200, json=BULK_LISTING))

        assert get_bulk_data_url("default_cards") == "https://data.test/default-cards.json"

    @respx.mock
    def test_unknown_bulk_type(self) -> None:
        respx.get(SCRYFALL_BULK_API).mock(return_value=httpx.Response(200, json=BULK_LISTING))

        with pytest.raises(ValueError, match="all_cards"):
            get_bulk_data_url("all_cards")

    @respx.mock
    def test_bulk_api_error(self) -> None:
        respx.get(SCRYFALL_BULK_API).mock(return_value=httpx.Response(503))

        with pytest.raises(httpx.HTTPStatusError):
            get_bulk_data_url()

    @respx.mock
    def test_download_writes_file(self, tmp_path: Path, make_raw_card) -> None:
        body = json.dumps([make_raw_card("p1", "Card", "o", "Instant")]).encode()
        respx.get(SCRYFALL_BULK_API).mock(return_value=httpx.Response(200, json=BULK_LISTING))
        respx.get("https://data.test/oracle-cards.json").mock(
            return_value=httpx.Response(200, content=body)
        )

        path = download_bulk_data(tmp_path / "nested" / "oracle.json")

        assert path.read_bytes() == body
        assert [p.printing_id for p in load_printings(path)] == ["p1"]
