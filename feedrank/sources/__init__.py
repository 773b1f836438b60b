"""Collaborator interfaces and the JSON snapshot catalog."""

from feedrank.sources.errors import (
    ItemStoreUnavailableError,
    SignalFetchError,
    SourceError,
)
from feedrank.sources.protocols import (
    Attribution,
    ChangedItem,
    ConfigStore,
    DisplayItem,
    ItemStore,
    SignalSource,
)
from feedrank.sources.snapshot import CatalogFile, CatalogItem, SnapshotCatalog


__all__ = [
    "Attribution",
    "CatalogFile",
    "CatalogItem",
    "ChangedItem",
    "ConfigStore",
    "DisplayItem",
    "ItemStore",
    "ItemStoreUnavailableError",
    "SignalFetchError",
    "SignalSource",
    "SnapshotCatalog",
    "SourceError",
]
