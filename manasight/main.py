import asyncio
import contextlib
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from manasight.api import (
    cards_router,
    catalog_router,
    health_router,
    interactions_router,
)
from manasight.config import settings
from manasight.db.database import async_session_factory, init_db
from manasight.jobs.cache_cleanup import start_cleanup_task
from manasight.models.failure import KnownError
from manasight.services.card_service import get_card_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Create tables, load the catalog, and run cache maintenance."""
    await init_db()

    service = get_card_service()
    async with async_session_factory() as session:
        await service.load_from_db(session)
    if len(service.catalog) == 0:
        logger.warning("CATALOG_EMPTY", extra={"hint": "run manasight.jobs.import_cards"})

    cleanup = start_cleanup_task(service.coordinator, settings.cache_cleanup_interval)
    try:
        yield
    finally:
        cleanup.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await cleanup
        await service.aclose()


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("manasight"),
    lifespan=lifespan,
)


@app.exception_handler(KnownError)
async def known_error_handler(_request: Request, exc: KnownError) -> JSONResponse:
    """Render domain errors as their ApiResponse envelope."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


app.include_router(cards_router)
app.include_router(catalog_router)
app.include_router(interactions_router)
app.include_router(health_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
