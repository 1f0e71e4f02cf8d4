from manasight.api.cards import router as cards_router
from manasight.api.catalog import router as catalog_router
from manasight.api.health import router as health_router
from manasight.api.interactions import router as interactions_router

__all__ = [
    "cards_router",
    "catalog_router",
    "health_router",
    "interactions_router",
]
