"""Pytest configuration helpers for taro_assetdb tests."""

from __future__ import annotations

import sys
from itertools import count
from pathlib import Path
from typing import Any

import pytest

# Ensure the source directory is importable without requiring an editable install.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))


@pytest.fixture(autouse=True)
def reset_store_config() -> None:
    """Ensure each test runs with the default store configuration."""

    from taro_assetdb.config import configure

    configure(database_url=None, echo=None)
    yield
    configure(database_url=None, echo=None)


@pytest.fixture()
def ctx():
    """Provide a context that is never cancelled."""

    from taro_assetdb.context import background

    return background()


@pytest.fixture()
def engine(tmp_path):
    """Create a temporary SQLite database for testing."""

    from taro_assetdb.db import get_engine

    db_path = tmp_path / "assets.sqlite"
    engine = get_engine(f"sqlite+pysqlite:///{db_path}")
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture()
def store(engine):
    """Yield an :class:`AssetStore` with its schema created."""

    from taro_assetdb.storage import AssetStore

    asset_store = AssetStore(engine)
    asset_store.create_schema()
    return asset_store


@pytest.fixture()
def importer(store):
    from taro_assetdb.importer import AssetImporter

    return AssetImporter(store)


class InMemoryAssetStore:
    """Dictionary-backed stand-in for the SQL asset queries.

    Rows are keyed by their identity column so upserts behave like the SQL
    ``ON CONFLICT`` statements.  ``calls`` records every method invoked.
    """

    def __init__(self) -> None:
        self._ids = count(1)
        self.calls: list[str] = []
        self.genesis_points: dict[bytes, int] = {}
        self.genesis_assets: dict[bytes, dict[str, Any]] = {}
        self.internal_keys: dict[bytes, dict[str, Any]] = {}
        self.script_keys: dict[bytes, dict[str, Any]] = {}
        self.group_keys: dict[bytes, dict[str, Any]] = {}
        self.group_sigs: dict[tuple[int, int], dict[str, Any]] = {}
        self.assets: dict[int, dict[str, Any]] = {}

    def _next_id(self) -> int:
        return next(self._ids)

    def upsert_genesis_point(self, ctx, prev_out):
        self.calls.append("upsert_genesis_point")
        ctx.check()
        if prev_out not in self.genesis_points:
            self.genesis_points[prev_out] = self._next_id()
        return self.genesis_points[prev_out]

    def upsert_genesis_asset(self, ctx, *, asset_id, **fields):
        self.calls.append("upsert_genesis_asset")
        ctx.check()
        row = self.genesis_assets.setdefault(
            asset_id, {"id": self._next_id(), "asset_id": asset_id, **fields}
        )
        return row["id"]

    def fetch_genesis_by_id(self, ctx, gen_asset_id):
        from taro_assetdb.errors import GenesisNotFoundError
        from taro_assetdb.storage import StoredGenesis

        self.calls.append("fetch_genesis_by_id")
        for row in self.genesis_assets.values():
            if row["id"] != gen_asset_id:
                continue
            prev_out = next(
                point
                for point, point_id in self.genesis_points.items()
                if point_id == row["genesis_point_id"]
            )
            return StoredGenesis(
                gen_asset_id=row["id"],
                asset_id=row["asset_id"],
                prev_out=prev_out,
                asset_tag=row["asset_tag"],
                meta_data=row["meta_data"],
                output_index=row["output_index"],
                asset_type=row["asset_type"],
            )
        raise GenesisNotFoundError(f"no genesis asset with id {gen_asset_id}")

    def upsert_internal_key(self, ctx, *, raw_key, key_family=0, key_index=0):
        self.calls.append("upsert_internal_key")
        ctx.check()
        row = self.internal_keys.setdefault(
            raw_key,
            {
                "key_id": self._next_id(),
                "raw_key": raw_key,
                "key_family": key_family,
                "key_index": key_index,
            },
        )
        return row["key_id"]

    def fetch_internal_key(self, ctx, key_id):
        from taro_assetdb.storage import StoredInternalKey

        self.calls.append("fetch_internal_key")
        row = next(r for r in self.internal_keys.values() if r["key_id"] == key_id)
        return StoredInternalKey(**row)

    def update_internal_key_locator(self, ctx, key_id, *, key_family, key_index):
        self.calls.append("update_internal_key_locator")
        row = next(r for r in self.internal_keys.values() if r["key_id"] == key_id)
        row.update(key_family=key_family, key_index=key_index)

    def fetch_script_key_id_by_tweaked_key(self, ctx, tweaked_script_key):
        from taro_assetdb.errors import ScriptKeyNotFoundError

        self.calls.append("fetch_script_key_id_by_tweaked_key")
        ctx.check()
        try:
            return self.script_keys[tweaked_script_key]["script_key_id"]
        except KeyError:
            raise ScriptKeyNotFoundError(tweaked_script_key.hex()) from None

    def upsert_script_key(self, ctx, *, internal_key_id, tweaked_script_key, tweak=None):
        self.calls.append("upsert_script_key")
        ctx.check()
        row = self.script_keys.get(tweaked_script_key)
        if row is None:
            row = self.script_keys[tweaked_script_key] = {
                "script_key_id": self._next_id(),
                "internal_key_id": internal_key_id,
                "tweak": tweak,
            }
        elif row["internal_key_id"] != internal_key_id and self._is_placeholder(
            row["internal_key_id"], tweaked_script_key
        ):
            row["internal_key_id"] = internal_key_id
            if tweak is not None:
                row["tweak"] = tweak
        elif row["tweak"] is None:
            row["tweak"] = tweak
        return row["script_key_id"]

    def _is_placeholder(self, key_id, tweaked_script_key):
        return any(
            r["key_id"] == key_id and r["raw_key"] == tweaked_script_key
            for r in self.internal_keys.values()
        )

    def upsert_asset_group_key(self, ctx, *, tweaked_group_key, **fields):
        self.calls.append("upsert_asset_group_key")
        ctx.check()
        row = self.group_keys.setdefault(
            tweaked_group_key, {"group_id": self._next_id(), **fields}
        )
        return row["group_id"]

    def upsert_asset_group_sig(self, ctx, *, genesis_sig, gen_asset_id, group_key_id):
        self.calls.append("upsert_asset_group_sig")
        ctx.check()
        row = self.group_sigs.setdefault(
            (gen_asset_id, group_key_id),
            {"sig_id": self._next_id(), "genesis_sig": genesis_sig},
        )
        return row["sig_id"]

    def insert_new_asset(self, ctx, **fields):
        self.calls.append("insert_new_asset")
        ctx.check()
        for asset_id, row in self.assets.items():
            if all(
                row[name] == fields[name]
                for name in ("genesis_id", "script_key_id", "anchor_utxo_id")
            ):
                return asset_id
        asset_id = self._next_id()
        self.assets[asset_id] = dict(fields)
        return asset_id


@pytest.fixture()
def fake_store() -> InMemoryAssetStore:
    """Provide an in-memory implementation of ``UpsertAssetStore``."""

    return InMemoryAssetStore()
