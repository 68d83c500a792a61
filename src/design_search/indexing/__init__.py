"""Catalog sync into the vector store."""

from .catalog import CatalogItem, build_content, build_searchable_text, load_catalog
from .pipeline import SyncFailure, SyncPipeline, SyncResult

__all__ = [
    "CatalogItem",
    "build_content",
    "build_searchable_text",
    "load_catalog",
    "SyncFailure",
    "SyncPipeline",
    "SyncResult",
]
