"""
ManaSight services.

Catalog state and identity resolution. The recommendation and search
services build on these and are imported from their own modules.
"""

from manasight.services.card_catalog import (
    CardCatalog,
    CatalogChange,
    CatalogSnapshot,
    CatalogUnavailableError,
)
from manasight.services.identity_resolver import (
    CardNotFoundError,
    IdentityIndex,
    IdentityResolver,
    derived_identity_key,
    raw_identity_key,
)

__all__ = [
    "CardCatalog",
    "CardNotFoundError",
    "CatalogChange",
    "CatalogSnapshot",
    "CatalogUnavailableError",
    "IdentityIndex",
    "IdentityResolver",
    "derived_identity_key",
    "raw_identity_key",
]
