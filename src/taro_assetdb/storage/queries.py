"""Query layer for the tables written by the asset import path.

:class:`UpsertAssetStore` is the capability set the resolvers depend on.
:class:`SqlAlchemyAssetQueries` implements it on top of a SQLAlchemy
:class:`~sqlalchemy.orm.Session` whose transaction is managed by the caller
(see :class:`taro_assetdb.storage.AssetStore`).

Upserts are issued as ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` so
that concurrent writers importing the same data converge on one row and each
receive its primary key.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..context import OperationContext
from ..db import models
from ..errors import GenesisNotFoundError, ScriptKeyNotFoundError, StoreError

__all__ = [
    "FetchGenesisStore",
    "SqlAlchemyAssetQueries",
    "StoredGenesis",
    "StoredInternalKey",
    "UpsertAssetStore",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StoredGenesis:
    """Genesis asset row joined with the outpoint of its genesis point."""

    gen_asset_id: int
    asset_id: bytes
    prev_out: bytes
    asset_tag: str
    meta_data: bytes
    output_index: int
    asset_type: int


@dataclass(frozen=True, slots=True)
class StoredInternalKey:
    """Internal key row as persisted."""

    key_id: int
    raw_key: bytes
    key_family: int
    key_index: int


class FetchGenesisStore(Protocol):
    """Read access to stored genesis assets."""

    def fetch_genesis_by_id(
        self, ctx: OperationContext, gen_asset_id: int
    ) -> StoredGenesis: ...


class UpsertAssetStore(FetchGenesisStore, Protocol):
    """Operations required to import assets together with their genesis."""

    def upsert_genesis_point(self, ctx: OperationContext, prev_out: bytes) -> int: ...

    def upsert_genesis_asset(
        self,
        ctx: OperationContext,
        *,
        asset_id: bytes,
        asset_tag: str,
        meta_data: bytes,
        output_index: int,
        asset_type: int,
        genesis_point_id: int,
    ) -> int: ...

    def upsert_internal_key(
        self,
        ctx: OperationContext,
        *,
        raw_key: bytes,
        key_family: int = 0,
        key_index: int = 0,
    ) -> int: ...

    def fetch_internal_key(
        self, ctx: OperationContext, key_id: int
    ) -> StoredInternalKey: ...

    def update_internal_key_locator(
        self, ctx: OperationContext, key_id: int, *, key_family: int, key_index: int
    ) -> None: ...

    def fetch_script_key_id_by_tweaked_key(
        self, ctx: OperationContext, tweaked_script_key: bytes
    ) -> int: ...

    def upsert_script_key(
        self,
        ctx: OperationContext,
        *,
        internal_key_id: int,
        tweaked_script_key: bytes,
        tweak: bytes | None = None,
    ) -> int: ...

    def upsert_asset_group_key(
        self,
        ctx: OperationContext,
        *,
        tweaked_group_key: bytes,
        internal_key_id: int,
        genesis_point_id: int,
    ) -> int: ...

    def upsert_asset_group_sig(
        self,
        ctx: OperationContext,
        *,
        genesis_sig: bytes,
        gen_asset_id: int,
        group_key_id: int,
    ) -> int: ...

    def insert_new_asset(
        self,
        ctx: OperationContext,
        *,
        genesis_id: int,
        version: int,
        script_key_id: int,
        asset_group_sig_id: int | None,
        script_version: int,
        amount: int,
        lock_time: int | None,
        relative_lock_time: int | None,
        anchor_utxo_id: int | None,
    ) -> int: ...


_DIALECT_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}


class SqlAlchemyAssetQueries:
    """Execute asset store statements inside the caller's session."""

    def __init__(self, session: Session) -> None:
        self._session = session
        dialect = session.get_bind().dialect.name
        try:
            self._dialect_insert = _DIALECT_INSERTS[dialect]
        except KeyError:
            raise StoreError(f"unsupported database dialect {dialect!r}") from None

    @property
    def session(self) -> Session:
        """Return the session statements are issued on."""

        return self._session

    # ------------------------------------------------------------------
    # Genesis
    # ------------------------------------------------------------------
    def upsert_genesis_point(self, ctx: OperationContext, prev_out: bytes) -> int:
        return self._upsert(
            ctx,
            "insert genesis point",
            models.GenesisPoint,
            {"prev_out": prev_out},
            conflict_columns=("prev_out",),
            returning=models.GenesisPoint.genesis_id,
        )

    def upsert_genesis_asset(
        self,
        ctx: OperationContext,
        *,
        asset_id: bytes,
        asset_tag: str,
        meta_data: bytes,
        output_index: int,
        asset_type: int,
        genesis_point_id: int,
    ) -> int:
        return self._upsert(
            ctx,
            "insert genesis asset",
            models.GenesisAsset,
            {
                "asset_id": asset_id,
                "asset_tag": asset_tag,
                "meta_data": meta_data,
                "output_index": output_index,
                "asset_type": asset_type,
                "genesis_point_id": genesis_point_id,
            },
            conflict_columns=("asset_id",),
            returning=models.GenesisAsset.gen_asset_id,
        )

    def fetch_genesis_by_id(
        self, ctx: OperationContext, gen_asset_id: int
    ) -> StoredGenesis:
        stmt = (
            select(
                models.GenesisAsset.gen_asset_id,
                models.GenesisAsset.asset_id,
                models.GenesisPoint.prev_out,
                models.GenesisAsset.asset_tag,
                models.GenesisAsset.meta_data,
                models.GenesisAsset.output_index,
                models.GenesisAsset.asset_type,
            )
            .join(
                models.GenesisPoint,
                models.GenesisPoint.genesis_id == models.GenesisAsset.genesis_point_id,
            )
            .where(models.GenesisAsset.gen_asset_id == gen_asset_id)
        )
        row = self._execute(ctx, "fetch genesis", stmt).one_or_none()
        if row is None:
            raise GenesisNotFoundError(f"no genesis asset with id {gen_asset_id}")
        return StoredGenesis(**row._asdict())

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------
    def upsert_internal_key(
        self,
        ctx: OperationContext,
        *,
        raw_key: bytes,
        key_family: int = 0,
        key_index: int = 0,
    ) -> int:
        return self._upsert(
            ctx,
            "insert internal key",
            models.InternalKey,
            {"raw_key": raw_key, "key_family": key_family, "key_index": key_index},
            conflict_columns=("raw_key",),
            returning=models.InternalKey.key_id,
        )

    def fetch_internal_key(
        self, ctx: OperationContext, key_id: int
    ) -> StoredInternalKey:
        stmt = select(
            models.InternalKey.key_id,
            models.InternalKey.raw_key,
            models.InternalKey.key_family,
            models.InternalKey.key_index,
        ).where(models.InternalKey.key_id == key_id)
        row = self._execute(ctx, "fetch internal key", stmt).one()
        return StoredInternalKey(**row._asdict())

    def update_internal_key_locator(
        self, ctx: OperationContext, key_id: int, *, key_family: int, key_index: int
    ) -> None:
        table = models.InternalKey.__table__
        stmt = (
            table.update()
            .where(table.c.key_id == key_id)
            .values(key_family=key_family, key_index=key_index)
        )
        self._execute(ctx, "update internal key", stmt)

    def fetch_script_key_id_by_tweaked_key(
        self, ctx: OperationContext, tweaked_script_key: bytes
    ) -> int:
        stmt = select(models.ScriptKey.script_key_id).where(
            models.ScriptKey.tweaked_script_key == tweaked_script_key
        )
        script_key_id = self._execute(ctx, "fetch script key", stmt).scalar_one_or_none()
        if script_key_id is None:
            raise ScriptKeyNotFoundError(
                f"no script key for tweaked key {tweaked_script_key.hex()}"
            )
        return script_key_id

    def upsert_script_key(
        self,
        ctx: OperationContext,
        *,
        internal_key_id: int,
        tweaked_script_key: bytes,
        tweak: bytes | None = None,
    ) -> int:
        """Insert a script key or return the stored one.

        A row written for an observed key references a placeholder internal
        key whose raw key is the tweaked key itself.  Such a row is moved to
        *internal_key_id* once the real raw key is supplied, with or without
        a tweak.  Rows referencing a real internal key are never repointed.
        """

        table = models.ScriptKey.__table__
        insert_stmt = self._dialect_insert(table)
        script_key_id = self._upsert(
            ctx,
            "insert script key",
            models.ScriptKey,
            {
                "internal_key_id": internal_key_id,
                "tweaked_script_key": tweaked_script_key,
                "tweak": tweak,
            },
            conflict_columns=("tweaked_script_key",),
            returning=models.ScriptKey.script_key_id,
            set_={"tweak": func.coalesce(table.c.tweak, insert_stmt.excluded.tweak)},
            statement=insert_stmt,
        )

        keys = models.InternalKey.__table__
        stored_raw_key = (
            select(keys.c.raw_key)
            .where(keys.c.key_id == table.c.internal_key_id)
            .scalar_subquery()
        )
        values: dict[str, Any] = {"internal_key_id": internal_key_id}
        if tweak is not None:
            values["tweak"] = tweak
        upgrade_stmt = (
            update(table)
            .where(
                table.c.script_key_id == script_key_id,
                table.c.internal_key_id != internal_key_id,
                stored_raw_key == table.c.tweaked_script_key,
            )
            .values(**values)
        )
        if self._execute(ctx, "upgrade script key", upgrade_stmt).rowcount:
            logger.debug(
                "Replaced placeholder internal key of script key %s", script_key_id
            )
        return script_key_id

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------
    def upsert_asset_group_key(
        self,
        ctx: OperationContext,
        *,
        tweaked_group_key: bytes,
        internal_key_id: int,
        genesis_point_id: int,
    ) -> int:
        return self._upsert(
            ctx,
            "insert group key",
            models.AssetGroupKey,
            {
                "tweaked_group_key": tweaked_group_key,
                "internal_key_id": internal_key_id,
                "genesis_point_id": genesis_point_id,
            },
            conflict_columns=("tweaked_group_key",),
            returning=models.AssetGroupKey.group_id,
        )

    def upsert_asset_group_sig(
        self,
        ctx: OperationContext,
        *,
        genesis_sig: bytes,
        gen_asset_id: int,
        group_key_id: int,
    ) -> int:
        return self._upsert(
            ctx,
            "insert group sig",
            models.AssetGroupSig,
            {
                "genesis_sig": genesis_sig,
                "gen_asset_id": gen_asset_id,
                "group_key_id": group_key_id,
            },
            conflict_columns=("gen_asset_id", "group_key_id"),
            returning=models.AssetGroupSig.sig_id,
        )

    # ------------------------------------------------------------------
    # Anchoring
    # ------------------------------------------------------------------
    def upsert_chain_txn(
        self,
        ctx: OperationContext,
        *,
        txid: bytes,
        raw_tx: bytes,
        block_height: int | None = None,
        block_hash: bytes | None = None,
        tx_index: int | None = None,
    ) -> int:
        table = models.ChainTxn.__table__
        insert_stmt = self._dialect_insert(table)
        excluded = insert_stmt.excluded
        return self._upsert(
            ctx,
            "insert chain txn",
            models.ChainTxn,
            {
                "txid": txid,
                "raw_tx": raw_tx,
                "block_height": block_height,
                "block_hash": block_hash,
                "tx_index": tx_index,
            },
            conflict_columns=("txid",),
            returning=models.ChainTxn.txn_id,
            set_={
                "block_height": func.coalesce(excluded.block_height, table.c.block_height),
                "block_hash": func.coalesce(excluded.block_hash, table.c.block_hash),
                "tx_index": func.coalesce(excluded.tx_index, table.c.tx_index),
            },
            statement=insert_stmt,
        )

    def upsert_managed_utxo(
        self,
        ctx: OperationContext,
        *,
        outpoint: bytes,
        amt_sats: int,
        internal_key_id: int,
        taro_root: bytes,
        txn_id: int,
    ) -> int:
        return self._upsert(
            ctx,
            "insert managed utxo",
            models.ManagedUtxo,
            {
                "outpoint": outpoint,
                "amt_sats": amt_sats,
                "internal_key_id": internal_key_id,
                "taro_root": taro_root,
                "txn_id": txn_id,
            },
            conflict_columns=("outpoint",),
            returning=models.ManagedUtxo.utxo_id,
        )

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------
    def insert_new_asset(
        self,
        ctx: OperationContext,
        *,
        genesis_id: int,
        version: int,
        script_key_id: int,
        asset_group_sig_id: int | None,
        script_version: int,
        amount: int,
        lock_time: int | None,
        relative_lock_time: int | None,
        anchor_utxo_id: int | None,
    ) -> int:
        """Insert an asset row, or return the row already stored for it.

        Rows are identified by genesis, script key and anchor.  Unanchored
        rows conflict on the partial unique index over genesis and script
        key, anchored rows on the full unique constraint.  A stored row is
        never rewritten; a warning is logged when its fields differ from
        the incoming ones.
        """

        table = models.Asset.__table__
        fields = {
            "version": version,
            "asset_group_sig_id": asset_group_sig_id,
            "script_version": script_version,
            "amount": amount,
            "lock_time": lock_time,
            "relative_lock_time": relative_lock_time,
        }
        if anchor_utxo_id is None:
            conflict: dict[str, Any] = {
                "index_elements": ["genesis_id", "script_key_id"],
                "index_where": table.c.anchor_utxo_id.is_(None),
            }
        else:
            conflict = {
                "index_elements": ["genesis_id", "script_key_id", "anchor_utxo_id"]
            }

        stmt = self._dialect_insert(table).values(
            genesis_id=genesis_id,
            script_key_id=script_key_id,
            anchor_utxo_id=anchor_utxo_id,
            **fields,
        )
        stmt = stmt.on_conflict_do_update(
            set_={"genesis_id": stmt.excluded.genesis_id}, **conflict
        ).returning(table.c.asset_id, *(table.c[name] for name in fields))
        row = self._execute(ctx, "insert asset", stmt).one()

        stored = {name: getattr(row, name) for name in fields}
        changed = sorted(name for name in fields if stored[name] != fields[name])
        if changed:
            logger.warning(
                "Asset row %s already stored with different %s; keeping stored values",
                row.asset_id,
                ", ".join(changed),
            )
        return row.asset_id

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _upsert(
        self,
        ctx: OperationContext,
        operation: str,
        model: type[models.Base],
        values: Mapping[str, Any],
        *,
        conflict_columns: Sequence[str],
        returning: Any,
        set_: Mapping[str, Any] | None = None,
        statement: Any = None,
    ) -> int:
        stmt = statement if statement is not None else self._dialect_insert(model.__table__)
        if set_ is None:
            # Touch the conflict target so RETURNING yields the existing row.
            set_ = {column: stmt.excluded[column] for column in conflict_columns}
        stmt = (
            stmt.values(**values)
            .on_conflict_do_update(index_elements=list(conflict_columns), set_=dict(set_))
            .returning(returning)
        )
        return self._execute(ctx, operation, stmt).scalar_one()

    def _execute(self, ctx: OperationContext, operation: str, stmt: Any) -> Any:
        ctx.check(operation)
        try:
            return self._session.execute(stmt)
        except SQLAlchemyError as exc:
            raise StoreError(f"unable to {operation}: {exc}") from exc
