from manasight.db.database import get_session, init_db
from manasight.db.operations import (
    INTERACTION_TYPES,
    count_printings,
    get_interactions_for_user,
    get_printing,
    load_catalog_printings,
    record_interaction,
    replace_all_printings,
    update_prices,
    upsert_printings,
)

__all__ = [
    "INTERACTION_TYPES",
    "count_printings",
    "get_interactions_for_user",
    "get_printing",
    "get_session",
    "init_db",
    "load_catalog_printings",
    "record_interaction",
    "replace_all_printings",
    "update_prices",
    "upsert_printings",
]
