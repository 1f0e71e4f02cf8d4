"""
User-facing facet filtering for recommendations and search.
"""

from manasight.filtering.facets import (
    VALID_COLORS,
    VALID_FORMATS,
    CardFilters,
    InvalidFilterError,
    parse_filters,
)
from manasight.filtering.pipeline import apply_filters

__all__ = [
    "VALID_COLORS",
    "VALID_FORMATS",
    "CardFilters",
    "InvalidFilterError",
    "apply_filters",
    "parse_filters",
]
