from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(env_file=".env")

    app_name: str = "ManaSight"
    debug: bool = False

    database_url: str = "postgresql+asyncpg://localhost:5432/manasight"

    data_dir: Path = Path(__file__).parent.parent / "data"
    scryfall_bulk_type: str = "oracle_cards"

    # Cache tiers
    cache_enabled: bool = True
    hot_cache_max_entries: int = 2048
    recommendation_cache_ttl: float = 3600.0
    search_cache_ttl: float = 3600.0
    cache_cleanup_interval: float = 6 * 60 * 60

    # Warm tier is skipped entirely when no URL is configured
    edge_kv_url: str = ""
    edge_kv_token: str = ""
    edge_kv_timeout: float = 2.0

    image_cache_dir: Path = Path(__file__).parent.parent / "data" / "images"
    image_preload_enabled: bool = True
    image_preload_timeout: float = 10.0
    image_preload_concurrency: int = 4
    image_preload_deferred_delay: float = 1.0
    image_preload_immediate_count: int = 8

    # Recommendations and search
    default_recommendation_limit: int = 10
    max_recommendation_limit: int = 50
    max_cached_recommendations: int = 100
    search_page_size: int = 60

    # Personalized recommendations
    user_interaction_window: int = 50
    personalized_source_count: int = 10
    personalized_per_source: int = 15
    personalized_recommendation_limit: int = 20

    # Functional similarity weights (must sum to 1.0)
    functional_type_weight: float = 0.35
    functional_mana_value_weight: float = 0.25
    functional_color_identity_weight: float = 0.20
    functional_keyword_weight: float = 0.20


settings = Settings()


# =============================================================================
# SYNERGY SCORING CONSTANTS
# =============================================================================

# Share of the synergy score driven by cross-references vs color compatibility
SYNERGY_CROSS_REFERENCE_WEIGHT = 0.8
SYNERGY_COLOR_WEIGHT = 0.2

# Evidence total at which cross-reference density saturates at 1.0
SYNERGY_EVIDENCE_SATURATION = 2.0


# =============================================================================
# PERSONALIZED RECOMMENDATION WEIGHTS
# =============================================================================

# How strongly each interaction type signals interest in a card
INTERACTION_WEIGHTS = {
    "favorite": 1.0,
    "deck_add": 0.9,
    "search": 0.6,
    "view": 0.3,
}
DEFAULT_INTERACTION_WEIGHT = 0.1

# (max age in days, weight), newest first; older interactions get the floor
INTERACTION_AGE_WEIGHTS = ((1, 1.0), (7, 0.8), (30, 0.6))
INTERACTION_AGE_FLOOR = 0.3
