"""Database bootstrap helpers and ORM models for the asset store."""

from .models import (
    Asset,
    AssetGroupKey,
    AssetGroupSig,
    Base,
    ChainTxn,
    GenesisAsset,
    GenesisPoint,
    InternalKey,
    ManagedUtxo,
    ScriptKey,
    create_session_factory,
    get_engine,
    metadata,
)

__all__ = [
    "Asset",
    "AssetGroupKey",
    "AssetGroupSig",
    "Base",
    "ChainTxn",
    "GenesisAsset",
    "GenesisPoint",
    "InternalKey",
    "ManagedUtxo",
    "ScriptKey",
    "create_session_factory",
    "get_engine",
    "metadata",
]
