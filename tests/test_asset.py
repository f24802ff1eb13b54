"""Tests for the in-memory asset values."""

from __future__ import annotations

import hashlib
import struct

from taro_assetdb.asset import (
    Asset,
    AssetType,
    Genesis,
    KeyLocator,
    ObservedScriptKey,
    OutPoint,
)
from taro_assetdb.wire import encode_outpoint


def _genesis(**overrides) -> Genesis:
    fields = {
        "first_prev_out": OutPoint(txid=b"\x11" * 32, index=0),
        "tag": "gold",
        "metadata": b"\x01\x02",
        "output_index": 0,
        "type": AssetType.NORMAL,
    }
    fields.update(overrides)
    return Genesis(**fields)


def test_genesis_id_commits_to_every_field() -> None:
    genesis = _genesis(output_index=3, type=AssetType.COLLECTIBLE)
    expected = hashlib.sha256(
        encode_outpoint(genesis.first_prev_out)
        + hashlib.sha256(b"gold").digest()
        + b"\x01\x02"
        + struct.pack(">I", 3)
        + b"\x01"
    ).digest()

    assert genesis.id() == expected
    assert len(genesis.id()) == 32


def test_genesis_id_changes_with_inputs() -> None:
    base = _genesis()
    variants = [
        _genesis(tag="silver"),
        _genesis(metadata=b"other"),
        _genesis(output_index=1),
        _genesis(type=AssetType.COLLECTIBLE),
        _genesis(first_prev_out=OutPoint(txid=b"\x11" * 32, index=1)),
    ]

    ids = {base.id(), *(variant.id() for variant in variants)}
    assert len(ids) == len(variants) + 1


def test_asset_id_matches_genesis() -> None:
    genesis = _genesis()
    asset = Asset(genesis=genesis, amount=10, script_key=ObservedScriptKey(b"\x02" * 33))

    assert asset.id() == genesis.id()
    assert asset.group_key is None
    assert asset.lock_time is None


def test_key_locator_placeholder() -> None:
    assert KeyLocator().is_placeholder
    assert not KeyLocator(family=1).is_placeholder
    assert not KeyLocator(index=4).is_placeholder
    assert KeyLocator(2, 5).as_tuple() == (2, 5)
