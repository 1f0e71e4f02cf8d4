import asyncio
from typing import Any

import pytest

from manasight.cache.coordinator import CacheCoordinator
from manasight.cache.tiers import CacheEntry, HotCache
from manasight.models.card import CardIdentity, CardPrinting
from manasight.parsers.scryfall import parse_printings
from manasight.services.card_catalog import CardCatalog
from manasight.services.card_service import CardService

LEGAL_EVERYWHERE = {"standard": "not_legal", "modern": "legal", "commander": "legal"}


def raw_card(
    printing_id: str,
    name: str,
    oracle_id: str | None,
    type_line: str,
    oracle_text: str = "",
    cmc: float = 0.0,
    colors: list[str] | None = None,
    keywords: list[str] | None = None,
    rarity: str = "common",
    set_code: str = "tst",
    usd: str | None = None,
    legalities: dict[str, str] | None = None,
) -> dict[str, Any]:
    """A Scryfall card object with the fields the parser reads."""
    card: dict[str, Any] = {
        "id": printing_id,
        "name": name,
        "set": set_code,
        "type_line": type_line,
        "oracle_text": oracle_text,
        "mana_cost": "",
        "cmc": cmc,
        "colors": colors or [],
        "color_identity": colors or [],
        "keywords": keywords or [],
        "rarity": rarity,
        "legalities": legalities or dict(LEGAL_EVERYWHERE),
        "prices": {"usd": usd, "usd_foil": None, "eur": None, "tix": None},
        "image_uris": {"normal": f"https://img.test/{printing_id}.jpg"},
    }
    if oracle_id is not None:
        card["oracle_id"] = oracle_id
    return card


@pytest.fixture
def raw_cards() -> list[dict[str, Any]]:
    """
    A small catalog with reprints.

    Lightning Bolt has two printings; Elite Vanguard has a reprint that is
    missing its oracle id.
    """
    return [
        raw_card(
            "p-champion",
            "Champion of the Parish",
            "oracle-champion",
            "Creature — Human Soldier",
            "Whenever another Human you control enters, "
            "put a +1/+1 counter on Champion of the Parish.",
            cmc=1,
            colors=["W"],
            rarity="rare",
            usd="4.00",
        ),
        raw_card(
            "p-lieutenant",
            "Thalia's Lieutenant",
            "oracle-lieutenant",
            "Creature — Human Soldier",
            "When Thalia's Lieutenant enters, put a +1/+1 counter on each other Human "
            "you control.\nWhenever another Human you control enters, "
            "put a +1/+1 counter on Thalia's Lieutenant.",
            cmc=2,
            colors=["W"],
            rarity="rare",
            usd="0.50",
        ),
        raw_card(
            "p-vanguard-1",
            "Elite Vanguard",
            "oracle-vanguard",
            "Creature — Human Soldier",
            cmc=1,
            colors=["W"],
        ),
        raw_card(
            "p-vanguard-2",
            "Elite Vanguard",
            None,
            "Creature — Human Soldier",
            cmc=1,
            colors=["W"],
            set_code="m13",
            rarity="uncommon",
        ),
        raw_card(
            "p-goblin-guide",
            "Goblin Guide",
            "oracle-goblin-guide",
            "Creature — Goblin Scout",
            "Haste\nWhenever Goblin Guide attacks, defending player reveals the top card "
            "of their library. If it's a land card, that player puts it into their hand.",
            cmc=1,
            colors=["R"],
            keywords=["Haste"],
            rarity="rare",
            usd="3.00",
        ),
        raw_card(
            "p-llanowar",
            "Llanowar Elves",
            "oracle-llanowar",
            "Creature — Elf Druid",
            "{T}: Add {G}.",
            cmc=1,
            colors=["G"],
            usd="0.30",
        ),
        raw_card(
            "p-bolt-1",
            "Lightning Bolt",
            "oracle-bolt",
            "Instant",
            "Lightning Bolt deals 3 damage to any target.",
            cmc=1,
            colors=["R"],
            set_code="lea",
            usd="1.50",
        ),
        raw_card(
            "p-bolt-2",
            "Lightning Bolt",
            "oracle-bolt",
            "Instant",
            "Lightning Bolt deals 3 damage to any target.",
            cmc=1,
            colors=["R"],
            set_code="m10",
            usd="0.75",
        ),
        raw_card(
            "p-serra",
            "Serra Angel",
            "oracle-serra",
            "Creature — Angel",
            "Flying, vigilance",
            cmc=5,
            colors=["W"],
            keywords=["Flying", "Vigilance"],
            rarity="uncommon",
            usd="0.25",
        ),
        raw_card(
            "p-sol-ring",
            "Sol Ring",
            "oracle-sol-ring",
            "Artifact",
            "{T}: Add {C}{C}.",
            cmc=1,
            rarity="uncommon",
            usd="2.00",
            legalities={"standard": "not_legal", "modern": "banned", "commander": "legal"},
        ),
    ]


@pytest.fixture
def printings(raw_cards: list[dict[str, Any]]) -> list[CardPrinting]:
    return parse_printings(raw_cards)


@pytest.fixture
def catalog(printings: list[CardPrinting]) -> CardCatalog:
    return CardCatalog(printings)


@pytest.fixture
def coordinator() -> CacheCoordinator:
    return CacheCoordinator([HotCache(max_entries=256)])


@pytest.fixture
def card_service(catalog: CardCatalog, coordinator: CacheCoordinator) -> CardService:
    """Service over the sample catalog with an in-process cache only."""
    return CardService(catalog, coordinator)


@pytest.fixture
def make_identity():
    """Factory for CardIdentity with sensible defaults."""

    def _make(key: str, name: str | None = None, **fields: Any) -> CardIdentity:
        return CardIdentity(key=key, oracle_id=key, name=name or key.title(), **fields)

    return _make


@pytest.fixture
def make_raw_card():
    """Factory for single Scryfall card objects."""
    return raw_card


class SlowTier(HotCache):
    """A remote tier whose writes wait until `release` is set."""

    name = "slow"

    def __init__(self) -> None:
        super().__init__()
        self.writing = asyncio.Event()
        self.release = asyncio.Event()

    async def put(self, entry: CacheEntry) -> None:
        self.writing.set()
        await self.release.wait()
        await super().put(entry)


@pytest.fixture
def slow_tier() -> SlowTier:
    return SlowTier()
