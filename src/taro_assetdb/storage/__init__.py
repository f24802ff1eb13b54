"""Persistence layer for imported assets."""

from .queries import (
    FetchGenesisStore,
    SqlAlchemyAssetQueries,
    StoredGenesis,
    StoredInternalKey,
    UpsertAssetStore,
)
from .store import AssetStore

__all__ = [
    "AssetStore",
    "FetchGenesisStore",
    "SqlAlchemyAssetQueries",
    "StoredGenesis",
    "StoredInternalKey",
    "UpsertAssetStore",
]
