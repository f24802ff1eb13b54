"""Database schema definitions for the asset store.

This module centralises the SQLAlchemy declarative mappings that back the
asset import path.  The schema models the entities an imported asset depends
on, in the order they must be written:

* :class:`GenesisPoint` – the outpoint that seeds a batch of assets.
* :class:`GenesisAsset` – per-asset genesis metadata identified by asset ID.
* :class:`InternalKey` – a raw key and, when known, its wallet derivation path.
* :class:`AssetGroupKey` – a tweaked reissuance key owned by a genesis point.
* :class:`AssetGroupSig` – the signature linking a genesis asset to its group.
* :class:`ScriptKey` – the tweaked key controlling an asset output.
* :class:`ChainTxn` / :class:`ManagedUtxo` – on-chain anchoring information.
* :class:`Asset` – the final asset row referencing all of the above.

Alongside the ORM mappings the module provides helpers for instantiating an
engine, constructing sessions and accessing the shared
:class:`sqlalchemy.schema.MetaData` instance.
"""
from __future__ import annotations

from typing import Any

from sqlalchemy import (
    BigInteger,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    SmallInteger,
    String,
    UniqueConstraint,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

from ..config import get_config


class Base(DeclarativeBase):
    """Base class for all ORM models within the asset store schema."""


metadata = Base.metadata
"""Exposed metadata object for table management."""


def _configure_sqlite_pragma(engine: Engine) -> None:
    """Ensure SQLite engines enforce foreign key constraints."""

    if engine.url.get_backend_name() != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
        cursor = dbapi_connection.cursor()
        try:
            cursor.execute("PRAGMA foreign_keys=ON")
        finally:
            cursor.close()


def _create_engine(url: str, **kwargs: Any) -> Engine:
    """Create a configured SQLAlchemy engine and enable SQLite pragmas."""

    engine = create_engine(url, **kwargs)
    _configure_sqlite_pragma(engine)
    return engine


def get_engine(url: str | None = None, **kwargs: Any) -> Engine:
    """Return a configured SQLAlchemy engine.

    Parameters
    ----------
    url:
        Optional database URL. When omitted the URL from
        :func:`taro_assetdb.config.get_config` is used.
    **kwargs:
        Additional keyword arguments forwarded to :func:`sqlalchemy.create_engine`.
    """

    config = get_config()
    kwargs.setdefault("echo", config.echo)
    return _create_engine(url or config.database_url, **kwargs)


def create_session_factory(
    engine: Engine | None = None,
    *,
    expire_on_commit: bool = False,
    autoflush: bool = False,
) -> sessionmaker[Session]:
    """Return a ``sessionmaker`` bound to the supplied engine."""

    bound_engine = engine or get_engine()
    return sessionmaker(
        bind=bound_engine,
        expire_on_commit=expire_on_commit,
        autoflush=autoflush,
    )


class ChainTxn(Base):
    """A transaction that anchors assets on chain."""

    __tablename__ = "chain_txns"

    txn_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    txid: Mapped[bytes] = mapped_column(LargeBinary(32), unique=True, nullable=False)
    raw_tx: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    block_height: Mapped[int | None] = mapped_column(Integer)
    block_hash: Mapped[bytes | None] = mapped_column(LargeBinary(32))
    tx_index: Mapped[int | None] = mapped_column(Integer)


class GenesisPoint(Base):
    """Outpoint spent by the transaction that minted a batch of assets."""

    __tablename__ = "genesis_points"

    genesis_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    prev_out: Mapped[bytes] = mapped_column(
        LargeBinary(36), unique=True, nullable=False
    )
    anchor_tx_id: Mapped[int | None] = mapped_column(
        ForeignKey("chain_txns.txn_id"), nullable=True
    )

    genesis_assets: Mapped[list[GenesisAsset]] = relationship(
        back_populates="genesis_point"
    )


class GenesisAsset(Base):
    """Information that uniquely derives a single asset ID."""

    __tablename__ = "genesis_assets"

    gen_asset_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    asset_id: Mapped[bytes] = mapped_column(
        LargeBinary(32), unique=True, nullable=False
    )
    asset_tag: Mapped[str] = mapped_column(String, nullable=False)
    meta_data: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    output_index: Mapped[int] = mapped_column(Integer, nullable=False)
    asset_type: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    genesis_point_id: Mapped[int] = mapped_column(
        ForeignKey("genesis_points.genesis_id"), index=True, nullable=False
    )

    genesis_point: Mapped[GenesisPoint] = relationship(
        back_populates="genesis_assets"
    )


class InternalKey(Base):
    """A raw public key with the wallet derivation path it came from.

    Family and index are both zero for keys the wallet did not derive.
    """

    __tablename__ = "internal_keys"

    key_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    raw_key: Mapped[bytes] = mapped_column(LargeBinary, unique=True, nullable=False)
    key_family: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    key_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class AssetGroupKey(Base):
    """Tweaked key that authorizes reissuance into the same group."""

    __tablename__ = "asset_groups"

    group_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    tweaked_group_key: Mapped[bytes] = mapped_column(
        LargeBinary, unique=True, nullable=False
    )
    internal_key_id: Mapped[int] = mapped_column(
        ForeignKey("internal_keys.key_id"), nullable=False
    )
    genesis_point_id: Mapped[int] = mapped_column(
        ForeignKey("genesis_points.genesis_id"), nullable=False
    )

    internal_key: Mapped[InternalKey] = relationship()
    signatures: Mapped[list[AssetGroupSig]] = relationship(
        back_populates="group_key", order_by="AssetGroupSig.sig_id"
    )


class AssetGroupSig(Base):
    """Signature tying one genesis asset to its group key."""

    __tablename__ = "asset_group_sigs"
    __table_args__ = (
        UniqueConstraint("gen_asset_id", "group_key_id", name="uq_group_sig_asset"),
    )

    sig_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    genesis_sig: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    gen_asset_id: Mapped[int] = mapped_column(
        ForeignKey("genesis_assets.gen_asset_id"), nullable=False
    )
    group_key_id: Mapped[int] = mapped_column(
        ForeignKey("asset_groups.group_id"), index=True, nullable=False
    )

    group_key: Mapped[AssetGroupKey] = relationship(back_populates="signatures")


class ScriptKey(Base):
    """Tweaked script key and the internal key it was derived from."""

    __tablename__ = "script_keys"

    script_key_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    internal_key_id: Mapped[int] = mapped_column(
        ForeignKey("internal_keys.key_id"), nullable=False
    )
    tweaked_script_key: Mapped[bytes] = mapped_column(
        LargeBinary, unique=True, nullable=False
    )
    tweak: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True)

    internal_key: Mapped[InternalKey] = relationship()


class ManagedUtxo(Base):
    """On-chain output that anchors one or more assets."""

    __tablename__ = "managed_utxos"

    utxo_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    outpoint: Mapped[bytes] = mapped_column(
        LargeBinary(36), unique=True, nullable=False
    )
    amt_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    internal_key_id: Mapped[int] = mapped_column(
        ForeignKey("internal_keys.key_id"), nullable=False
    )
    taro_root: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    txn_id: Mapped[int] = mapped_column(
        ForeignKey("chain_txns.txn_id"), nullable=False
    )


class Asset(Base):
    """An asset row referencing its genesis, script key, group and anchor."""

    __tablename__ = "assets"
    __table_args__ = (
        UniqueConstraint(
            "genesis_id", "script_key_id", "anchor_utxo_id", name="uq_asset_anchor"
        ),
        # NULL anchors never collide in uq_asset_anchor.
        Index(
            "uq_asset_unanchored",
            "genesis_id",
            "script_key_id",
            unique=True,
            sqlite_where=text("anchor_utxo_id IS NULL"),
            postgresql_where=text("anchor_utxo_id IS NULL"),
        ),
    )

    asset_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    genesis_id: Mapped[int] = mapped_column(
        ForeignKey("genesis_assets.gen_asset_id"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    script_key_id: Mapped[int] = mapped_column(
        ForeignKey("script_keys.script_key_id"), nullable=False
    )
    asset_group_sig_id: Mapped[int | None] = mapped_column(
        ForeignKey("asset_group_sigs.sig_id"), nullable=True
    )
    script_version: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    lock_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    relative_lock_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    anchor_utxo_id: Mapped[int | None] = mapped_column(
        ForeignKey("managed_utxos.utxo_id"), nullable=True
    )

    genesis: Mapped[GenesisAsset] = relationship()
    script_key: Mapped[ScriptKey] = relationship()
    group_sig: Mapped[AssetGroupSig | None] = relationship()
    anchor_utxo: Mapped[ManagedUtxo | None] = relationship()


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
