"""
Database operations for card printings and user interactions.

Printings are stored with their raw Scryfall object; the catalog is rebuilt
from those payloads with the same parser the import job uses.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from manasight.models.card import CardPrinting
from manasight.models.db import CardPrintingDB, UserInteractionDB
from manasight.parsers.scryfall import PRICE_FIELDS, ScryfallParseError, parse_printing
from manasight.services.identity_resolver import raw_identity_key

logger = logging.getLogger(__name__)

INTERACTION_TYPES = ("view", "favorite", "search", "deck_add")

# Rows per flush during a full re-import
BATCH_SIZE = 1000


def _parse_batch(raw_cards: Iterable[dict[str, Any]]) -> list[tuple[dict[str, Any], CardPrinting]]:
    """Pair each raw object with its parsed printing, dropping malformed rows."""
    parsed = []
    for raw in raw_cards:
        try:
            parsed.append((raw, parse_printing(raw)))
        except ScryfallParseError as e:
            logger.warning("SCRYFALL_ROW_SKIPPED", extra={"reason": str(e)})
    return parsed


def _apply(row: CardPrintingDB, raw: dict[str, Any], printing: CardPrinting) -> None:
    row.oracle_id = printing.oracle_id
    row.identity_key = raw_identity_key(printing)
    row.name = printing.name
    row.set_code = printing.set_code
    row.payload = raw


def _new_row(raw: dict[str, Any], printing: CardPrinting) -> CardPrintingDB:
    row = CardPrintingDB(printing_id=printing.printing_id)
    _apply(row, raw, printing)
    return row


# --- Printing Operations ---


async def get_printing(session: AsyncSession, printing_id: str) -> CardPrintingDB | None:
    """Get one stored printing by Scryfall id."""
    return await session.get(CardPrintingDB, printing_id)


async def upsert_printings(
    session: AsyncSession, raw_cards: Iterable[dict[str, Any]]
) -> list[CardPrinting]:
    """
    Insert or update printings by printing id.

    Returns the parsed printings that were stored.
    """
    parsed = _parse_batch(raw_cards)
    if not parsed:
        return []

    ids = [printing.printing_id for _, printing in parsed]
    result = await session.execute(select(CardPrintingDB).where(CardPrintingDB.printing_id.in_(ids)))
    existing = {row.printing_id: row for row in result.scalars().all()}

    for raw, printing in parsed:
        row = existing.get(printing.printing_id)
        if row is None:
            row = _new_row(raw, printing)
            session.add(row)
            existing[printing.printing_id] = row
        else:
            _apply(row, raw, printing)

    await session.flush()
    return [printing for _, printing in parsed]


async def replace_all_printings(
    session: AsyncSession, raw_cards: Iterable[dict[str, Any]]
) -> list[CardPrinting]:
    """
    Full re-import: delete every stored printing, then insert the new set.

    Duplicate ids in the input keep the last occurrence.
    """
    parsed = {printing.printing_id: (raw, printing) for raw, printing in _parse_batch(raw_cards)}

    await session.execute(delete(CardPrintingDB))

    batch: list[CardPrintingDB] = []
    for raw, printing in parsed.values():
        batch.append(_new_row(raw, printing))
        if len(batch) >= BATCH_SIZE:
            session.add_all(batch)
            await session.flush()
            batch = []
    if batch:
        session.add_all(batch)
        await session.flush()

    return [printing for _, printing in parsed.values()]


async def load_catalog_printings(session: AsyncSession) -> list[CardPrinting]:
    """Every stored printing, parsed, in printing id order."""
    result = await session.execute(select(CardPrintingDB).order_by(CardPrintingDB.printing_id))
    return [printing for _, printing in _parse_batch(row.payload for row in result.scalars())]


async def update_prices(
    session: AsyncSession, updates: Mapping[str, Mapping[str, float | None]]
) -> int:
    """
    Patch stored prices in place.

    Prices are written back in Scryfall's string form. Unknown printing ids
    and unknown currencies are ignored. Returns the number of rows updated.
    """
    if not updates:
        return 0

    result = await session.execute(
        select(CardPrintingDB).where(CardPrintingDB.printing_id.in_(list(updates)))
    )
    updated = 0
    for row in result.scalars().all():
        prices = dict(row.payload.get("prices") or {})
        for currency, value in updates[row.printing_id].items():
            if currency in PRICE_FIELDS:
                prices[currency] = None if value is None else str(value)
        # Reassign so the JSON column is marked dirty
        row.payload = {**row.payload, "prices": prices}
        updated += 1

    await session.flush()
    return updated


async def count_printings(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(CardPrintingDB))
    return int(result.scalar_one())


# --- Interaction Operations ---


async def record_interaction(
    session: AsyncSession,
    user_id: str,
    card_key: str,
    interaction_type: str,
    details: dict[str, Any] | None = None,
) -> UserInteractionDB:
    """
    Store one user interaction.

    Raises ValueError for an unknown interaction type.
    """
    if interaction_type not in INTERACTION_TYPES:
        msg = f"Unknown interaction type '{interaction_type}'"
        raise ValueError(msg)

    interaction = UserInteractionDB(
        user_id=user_id,
        card_key=card_key,
        interaction_type=interaction_type,
        details=details or {},
    )
    session.add(interaction)
    await session.flush()
    # Load server-side defaults (id, created_at)
    await session.refresh(interaction)
    return interaction


async def get_interactions_for_user(
    session: AsyncSession, user_id: str, limit: int = 50
) -> list[UserInteractionDB]:
    """Most recent interactions first."""
    result = await session.execute(
        select(UserInteractionDB)
        .where(UserInteractionDB.user_id == user_id)
        .order_by(UserInteractionDB.created_at.desc(), UserInteractionDB.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
