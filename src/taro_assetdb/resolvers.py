"""Resolve the rows an asset depends on into database identifiers.

Each resolver upserts one entity (plus whatever it references) through an
:class:`~taro_assetdb.storage.UpsertAssetStore` and returns the primary key
the next step needs.  The resolvers are called in foreign key order by
:func:`taro_assetdb.importer.upsert_assets_with_genesis`.
"""

from __future__ import annotations

import logging

from .asset import (
    AssetType,
    DerivedScriptKey,
    Genesis,
    GroupKey,
    KeyDescriptor,
    KeyLocator,
    ObservedScriptKey,
    OutPoint,
    ScriptKey,
)
from .context import OperationContext
from .errors import (
    EncodingError,
    KeyLocatorConflictError,
    OutpointEncodingError,
    ScriptKeyNotFoundError,
)
from .storage.queries import FetchGenesisStore, UpsertAssetStore
from .wire import decode_outpoint, encode_outpoint

__all__ = [
    "fetch_genesis",
    "upsert_genesis",
    "upsert_genesis_point",
    "upsert_group_key",
    "upsert_internal_key",
    "upsert_script_key",
]

logger = logging.getLogger(__name__)


def upsert_internal_key(
    ctx: OperationContext, q: UpsertAssetStore, key: KeyDescriptor
) -> int:
    """Insert *key* or return the identifier of the stored raw key.

    A raw key stored without a derivation path is upgraded when the path
    becomes known.  Re-importing a raw key with a different, non-empty path
    raises :class:`~taro_assetdb.errors.KeyLocatorConflictError`.
    """

    if not key.pub_key:
        raise ValueError("internal key bytes cannot be empty")

    locator = key.locator
    key_id = q.upsert_internal_key(
        ctx,
        raw_key=key.pub_key,
        key_family=locator.family,
        key_index=locator.index,
    )
    if locator.is_placeholder:
        return key_id

    stored = q.fetch_internal_key(ctx, key_id)
    stored_locator = KeyLocator(family=stored.key_family, index=stored.key_index)
    if stored_locator == locator:
        return key_id
    if stored_locator.is_placeholder:
        logger.debug(
            "Recording derivation path %s for internal key %s",
            locator.as_tuple(),
            key_id,
        )
        q.update_internal_key_locator(
            ctx, key_id, key_family=locator.family, key_index=locator.index
        )
        return key_id
    raise KeyLocatorConflictError(
        key.pub_key, stored_locator.as_tuple(), locator.as_tuple()
    )


def upsert_script_key(
    ctx: OperationContext, q: UpsertAssetStore, script_key: ScriptKey
) -> int:
    """Return the identifier of *script_key*, inserting it when necessary."""

    match script_key:
        case DerivedScriptKey():
            return _upsert_derived_script_key(ctx, q, script_key)
        case ObservedScriptKey():
            return _upsert_observed_script_key(ctx, q, script_key)
    raise TypeError(f"unsupported script key {type(script_key).__name__}")


def _upsert_derived_script_key(
    ctx: OperationContext, q: UpsertAssetStore, script_key: DerivedScriptKey
) -> int:
    internal_key_id = upsert_internal_key(ctx, q, script_key.raw_key)
    script_key_id = q.upsert_script_key(
        ctx,
        internal_key_id=internal_key_id,
        tweaked_script_key=script_key.pub_key,
        tweak=script_key.tweak,
    )
    logger.debug("Resolved derived script key %s", script_key_id)
    return script_key_id


def _upsert_observed_script_key(
    ctx: OperationContext, q: UpsertAssetStore, script_key: ObservedScriptKey
) -> int:
    try:
        return q.fetch_script_key_id_by_tweaked_key(ctx, script_key.pub_key)
    except ScriptKeyNotFoundError:
        pass

    # The proof belongs to another node, so the raw key is unknown.  The
    # tweaked key stands in for it; such an asset can be tracked but never
    # spent by this wallet.
    internal_key_id = upsert_internal_key(
        ctx, q, KeyDescriptor(pub_key=script_key.pub_key)
    )
    script_key_id = q.upsert_script_key(
        ctx,
        internal_key_id=internal_key_id,
        tweaked_script_key=script_key.pub_key,
    )
    logger.debug("Imported observed script key %s", script_key_id)
    return script_key_id


def upsert_group_key(
    ctx: OperationContext,
    q: UpsertAssetStore,
    group_key: GroupKey | None,
    genesis_point_id: int,
    gen_asset_id: int,
) -> int | None:
    """Store the group key and genesis signature of an asset.

    Returns the group signature identifier, or ``None`` for assets that
    cannot be reissued.
    """

    if group_key is None:
        return None

    raw_key = group_key.raw_key or KeyDescriptor(pub_key=group_key.group_pub_key)
    internal_key_id = upsert_internal_key(ctx, q, raw_key)
    group_id = q.upsert_asset_group_key(
        ctx,
        tweaked_group_key=group_key.group_pub_key,
        internal_key_id=internal_key_id,
        genesis_point_id=genesis_point_id,
    )

    # One group key links many genesis assets, each through its own sig.
    sig_id = q.upsert_asset_group_sig(
        ctx,
        genesis_sig=group_key.sig,
        gen_asset_id=gen_asset_id,
        group_key_id=group_id,
    )
    logger.debug("Resolved group %s with signature %s", group_id, sig_id)
    return sig_id


def upsert_genesis_point(
    ctx: OperationContext, q: UpsertAssetStore, outpoint: OutPoint
) -> int:
    """Return the identifier of the genesis point spending *outpoint*."""

    try:
        prev_out = encode_outpoint(outpoint)
    except OutpointEncodingError as exc:
        raise OutpointEncodingError(f"unable to encode genesis point: {exc}") from exc
    return q.upsert_genesis_point(ctx, prev_out)


def upsert_genesis(
    ctx: OperationContext,
    q: UpsertAssetStore,
    genesis_point_id: int,
    genesis: Genesis,
) -> int:
    """Return the identifier of the genesis asset derived from *genesis*."""

    return q.upsert_genesis_asset(
        ctx,
        asset_id=genesis.id(),
        asset_tag=genesis.tag,
        meta_data=genesis.metadata,
        output_index=genesis.output_index,
        asset_type=int(genesis.type),
        genesis_point_id=genesis_point_id,
    )


def fetch_genesis(
    ctx: OperationContext, q: FetchGenesisStore, gen_asset_id: int
) -> Genesis:
    """Rebuild the :class:`Genesis` stored under *gen_asset_id*."""

    stored = q.fetch_genesis_by_id(ctx, gen_asset_id)
    try:
        prev_out = decode_outpoint(stored.prev_out)
    except OutpointEncodingError as exc:
        raise OutpointEncodingError(
            f"unable to read genesis point of asset {gen_asset_id}: {exc}"
        ) from exc

    try:
        asset_type = AssetType(stored.asset_type)
    except ValueError as exc:
        raise EncodingError(
            f"unknown asset type {stored.asset_type} for genesis {gen_asset_id}"
        ) from exc

    return Genesis(
        first_prev_out=prev_out,
        tag=stored.asset_tag,
        metadata=stored.meta_data,
        output_index=stored.output_index,
        type=asset_type,
    )
