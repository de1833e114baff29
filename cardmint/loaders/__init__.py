"""Loaders for the static card catalog."""

from .json_loader import (
    load_catalog,
    parse_catalog,
    parse_item,
    validate_catalog_data,
    validate_catalog_file,
)

__all__ = [
    "load_catalog",
    "parse_catalog",
    "parse_item",
    "validate_catalog_data",
    "validate_catalog_file",
]
