from manasight.parsers.scryfall import (
    ScryfallParseError,
    download_bulk_data,
    get_bulk_data_url,
    load_printings,
    parse_printing,
    parse_printings,
)

__all__ = [
    "ScryfallParseError",
    "download_bulk_data",
    "get_bulk_data_url",
    "load_printings",
    "parse_printing",
    "parse_printings",
]
