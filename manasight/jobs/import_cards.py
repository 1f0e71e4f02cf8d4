"""
Import Scryfall bulk data into the card database.

Full re-import: every stored printing is replaced. Run with:

    python -m manasight.jobs.import_cards --bulk-type default_cards
    python -m manasight.jobs.import_cards --file data/oracle_cards.json
"""

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Any

from manasight.config import settings
from manasight.db.database import async_session_factory, init_db
from manasight.db.operations import replace_all_printings
from manasight.models.card import CardPrinting
from manasight.parsers.scryfall import download_bulk_data, load_raw_cards
from manasight.services.card_catalog import CatalogSnapshot

logger = logging.getLogger(__name__)


def identity_coverage(printings: list[CardPrinting]) -> dict[str, int]:
    """
    How well the imported printings deduplicate.

    Returns counts of printings, printings carrying an oracle id, resulting
    identities, derived-key identities, and ambiguous oracle id groups.
    """
    snapshot = CatalogSnapshot.build(printings)
    derived = sum(1 for identity in snapshot.identities.values() if identity.oracle_id is None)
    return {
        "printings": len(snapshot.printings),
        "with_oracle_id": sum(1 for p in snapshot.printings.values() if p.oracle_id),
        "identities": len(snapshot.identities),
        "derived_identities": derived,
        "ambiguous_groups": len(snapshot.index.ambiguous_groups),
    }


async def run_import(
    file_path: Path | None = None,
    bulk_type: str = settings.scryfall_bulk_type,
) -> dict[str, int]:
    """
    Download (unless `file_path` is given) and import a bulk file.

    Returns the identity coverage of the imported printings.
    """
    if file_path is None:
        file_path = settings.data_dir / f"{bulk_type}.json"
        logger.info("Downloading Scryfall %s bulk data to %s...", bulk_type, file_path)
        await asyncio.to_thread(download_bulk_data, file_path, bulk_type)

    raw_cards: list[dict[str, Any]] = load_raw_cards(file_path)
    logger.info("Loaded %d card objects from %s", len(raw_cards), file_path)

    await init_db()
    async with async_session_factory() as session:
        printings = await replace_all_printings(session, raw_cards)
        await session.commit()

    coverage = identity_coverage(printings)
    logger.info("IMPORT_COMPLETE", extra=coverage)
    logger.info(
        "Imported %d printings (%d with oracle id) into %d identities",
        coverage["printings"],
        coverage["with_oracle_id"],
        coverage["identities"],
    )
    return coverage


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Import Scryfall bulk card data")
    parser.add_argument("--file", type=Path, default=None, help="Read this bulk file instead of downloading")
    parser.add_argument(
        "--bulk-type",
        default=settings.scryfall_bulk_type,
        help="Scryfall bulk type to download (oracle_cards, default_cards)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_import(args.file, args.bulk_type))


if __name__ == "__main__":
    main()
