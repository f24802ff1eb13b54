"""Import batches of assets sharing one genesis outpoint."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .asset import Asset, Genesis, KeyDescriptor, OutPoint
from .context import OperationContext
from .errors import AssetStoreError
from .resolvers import (
    fetch_genesis,
    upsert_genesis,
    upsert_genesis_point,
    upsert_group_key,
    upsert_internal_key,
    upsert_script_key,
)
from .storage import AssetStore, UpsertAssetStore
from .wire import encode_outpoint

__all__ = [
    "AnchorUtxo",
    "AssetImporter",
    "BatchImportResult",
    "upsert_assets_with_genesis",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BatchImportResult:
    """Identifiers produced by importing one batch of assets."""

    genesis_point_id: int
    asset_ids: tuple[int, ...]


@dataclass(frozen=True, slots=True)
class AnchorUtxo:
    """On-chain output that anchors assets, with its confirming transaction."""

    outpoint: OutPoint
    amt_sats: int
    internal_key: KeyDescriptor
    taro_root: bytes
    raw_tx: bytes
    block_height: int | None = None
    block_hash: bytes | None = None
    tx_index: int | None = None


def upsert_assets_with_genesis(
    ctx: OperationContext,
    q: UpsertAssetStore,
    genesis_outpoint: OutPoint,
    assets: Sequence[Asset],
    anchor_utxo_ids: Sequence[int | None] | None = None,
) -> tuple[int, list[int]]:
    """Write *assets* and every row they depend on.

    Runs inside the caller's transaction.  Anchor identifiers are applied
    positionally and only when one is supplied for every asset.  Returns the
    genesis point identifier and the asset row identifiers in input order.
    """

    genesis_point_id = upsert_genesis_point(ctx, q, genesis_outpoint)

    anchored = anchor_utxo_ids is not None and len(anchor_utxo_ids) == len(assets)
    if anchor_utxo_ids and not anchored:
        logger.warning(
            "Ignoring %d anchor references for a batch of %d assets",
            len(anchor_utxo_ids),
            len(assets),
        )

    asset_ids: list[int] = []
    for idx, asset in enumerate(assets):
        step = "upsert genesis"
        try:
            gen_asset_id = upsert_genesis(ctx, q, genesis_point_id, asset.genesis)
            step = "upsert group key"
            group_sig_id = upsert_group_key(
                ctx, q, asset.group_key, genesis_point_id, gen_asset_id
            )
            step = "upsert script key"
            script_key_id = upsert_script_key(ctx, q, asset.script_key)
            step = "insert asset"
            asset_ids.append(
                q.insert_new_asset(
                    ctx,
                    genesis_id=gen_asset_id,
                    version=asset.version,
                    script_key_id=script_key_id,
                    asset_group_sig_id=group_sig_id,
                    script_version=asset.script_version,
                    amount=asset.amount,
                    lock_time=asset.lock_time,
                    relative_lock_time=asset.relative_lock_time,
                    anchor_utxo_id=anchor_utxo_ids[idx] if anchored else None,
                )
            )
        except (AssetStoreError, ValueError) as exc:
            exc.add_note(f"unable to {step} for asset {idx} ({asset.genesis.tag!r})")
            raise

    return genesis_point_id, asset_ids


class AssetImporter:
    """Coordinate atomic asset imports against an :class:`AssetStore`."""

    def __init__(self, store: AssetStore) -> None:
        self._store = store

    @property
    def store(self) -> AssetStore:
        return self._store

    def import_asset_batch(
        self,
        ctx: OperationContext,
        genesis_outpoint: OutPoint,
        assets: Sequence[Asset],
        anchor_utxo_ids: Sequence[int | None] | None = None,
    ) -> BatchImportResult:
        """Import *assets* in a single transaction.

        Either every asset and its dependencies are committed, or none are.
        """

        with self._store.transaction(ctx) as q:
            genesis_point_id, asset_ids = upsert_assets_with_genesis(
                ctx, q, genesis_outpoint, assets, anchor_utxo_ids
            )

        logger.info(
            "Imported %d assets for genesis point %s", len(asset_ids), genesis_outpoint
        )
        return BatchImportResult(
            genesis_point_id=genesis_point_id, asset_ids=tuple(asset_ids)
        )

    def fetch_genesis(self, ctx: OperationContext, gen_asset_id: int) -> Genesis:
        """Return the genesis stored under *gen_asset_id*."""

        with self._store.transaction(ctx) as q:
            return fetch_genesis(ctx, q, gen_asset_id)

    def upsert_anchor_utxo(self, ctx: OperationContext, anchor: AnchorUtxo) -> int:
        """Record an anchoring output and return its identifier.

        The returned value is what :meth:`import_asset_batch` expects in
        ``anchor_utxo_ids``.
        """

        with self._store.transaction(ctx) as q:
            txn_id = q.upsert_chain_txn(
                ctx,
                txid=anchor.outpoint.txid,
                raw_tx=anchor.raw_tx,
                block_height=anchor.block_height,
                block_hash=anchor.block_hash,
                tx_index=anchor.tx_index,
            )
            internal_key_id = upsert_internal_key(ctx, q, anchor.internal_key)
            return q.upsert_managed_utxo(
                ctx,
                outpoint=encode_outpoint(anchor.outpoint),
                amt_sats=anchor.amt_sats,
                internal_key_id=internal_key_id,
                taro_root=anchor.taro_root,
                txn_id=txn_id,
            )
