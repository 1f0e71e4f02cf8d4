"""
Catalog maintenance endpoints.

Incremental printing ingest, price refresh, and cache statistics. Writes
go to the database first, then to the in-memory catalog, which purges the
affected cache tags.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from manasight.db import update_prices, upsert_printings
from manasight.db.database import get_session
from manasight.services.card_service import CardService, get_card_service

router = APIRouter(prefix="/catalog", tags=["catalog"])


class PrintingsIngestRequest(BaseModel):
    """Raw Scryfall card objects to add or overwrite."""

    cards: list[dict[str, Any]] = Field(
        ...,
        description="Scryfall card objects, as found in the bulk data files",
    )


class PriceRefreshRequest(BaseModel):
    """New prices keyed by printing id."""

    prices: dict[str, dict[str, float | None]] = Field(
        ...,
        description="Printing id -> currency -> price",
        examples=[{"0000579f-7b35-4ed3-b44c-db2a538066fe": {"usd": 0.25, "usd_foil": None}}],
    )


class CatalogWriteResponse(BaseModel):
    stored: int
    changed_identities: int
    catalog_size: int


@router.post("/printings", response_model=CatalogWriteResponse)
async def ingest_printings(
    request: PrintingsIngestRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    service: Annotated[CardService, Depends(get_card_service)],
) -> CatalogWriteResponse:
    """Add or overwrite printings. Malformed objects are skipped."""
    printings = await upsert_printings(session, request.cards)
    change = await service.ingest(printings)
    return CatalogWriteResponse(
        stored=len(printings),
        changed_identities=len(change.identity_keys),
        catalog_size=len(service.catalog),
    )


@router.post("/prices", response_model=CatalogWriteResponse)
async def refresh_prices(
    request: PriceRefreshRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    service: Annotated[CardService, Depends(get_card_service)],
) -> CatalogWriteResponse:
    """Patch prices on existing printings. Unknown printing ids are ignored."""
    stored = await update_prices(session, request.prices)
    change = await service.refresh_prices(request.prices)
    return CatalogWriteResponse(
        stored=stored,
        changed_identities=len(change.identity_keys),
        catalog_size=len(service.catalog),
    )


@router.get("/cache/stats")
async def cache_stats(
    service: Annotated[CardService, Depends(get_card_service)],
) -> dict[str, Any]:
    """Per-tier hit/miss counters plus catalog and preload state."""
    stats = service.coordinator.stats()
    stats["catalog"] = {
        "identities": len(service.catalog),
        "printings": len(service.catalog.snapshot.printings),
        "version": service.catalog.snapshot.version,
    }
    if service.preloader is not None:
        stats["image_preload"] = service.preloader.stats()
    return stats
