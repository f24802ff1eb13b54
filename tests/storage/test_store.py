"""Tests for the transactional asset store."""

from __future__ import annotations

import pytest

from taro_assetdb.context import OperationContext
from taro_assetdb.errors import DeadlineExceededError, OperationCancelledError
from taro_assetdb.storage import AssetStore


class DummyError(RuntimeError):
    """Raised from inside a transaction to force a rollback."""


def test_create_schema_is_repeatable(store) -> None:
    store.create_schema()

    counts = store.table_counts()
    assert set(counts) >= {"genesis_points", "assets", "script_keys"}
    assert all(value == 0 for value in counts.values())


def test_exception_rolls_back_transaction(store, ctx) -> None:
    with pytest.raises(DummyError):
        with store.transaction(ctx) as q:
            q.upsert_genesis_point(ctx, b"\x01" * 36)
            raise DummyError("boom")

    assert store.table_counts()["genesis_points"] == 0


def test_cancel_before_commit_rolls_back(store, ctx) -> None:
    with pytest.raises(OperationCancelledError, match="commit"):
        with store.transaction(ctx) as q:
            q.upsert_genesis_point(ctx, b"\x01" * 36)
            ctx.cancel()

    assert store.table_counts()["genesis_points"] == 0


def test_expired_context_never_opens_transaction(store) -> None:
    ctx = OperationContext(timeout=0)

    with pytest.raises(DeadlineExceededError):
        with store.transaction(ctx):
            pytest.fail("transaction body should not run")


def test_default_store_uses_configured_engine() -> None:
    asset_store = AssetStore()

    assert asset_store.engine.url.get_backend_name() == "sqlite"
