"""In-memory asset values that the store materializes into rows.

The values mirror what a verified proof or a local minting batch hands to
the store: a :class:`Genesis` record, an optional :class:`GroupKey`, a script
key and the numeric asset fields.  Script keys come in two flavours:

* :class:`DerivedScriptKey` – owned by the local wallet, so the raw key, its
  derivation path and the tweak are known.
* :class:`ObservedScriptKey` – read from a foreign proof, where only the
  tweaked key is visible.

:data:`ScriptKey` is the union of both and is what the store accepts.
"""

from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Final, TypeAlias

from .wire import OutPoint, encode_outpoint

__all__ = [
    "ASSET_ID_SIZE",
    "Asset",
    "AssetType",
    "DerivedScriptKey",
    "Genesis",
    "GroupKey",
    "KeyDescriptor",
    "KeyLocator",
    "ObservedScriptKey",
    "OutPoint",
    "ScriptKey",
]

ASSET_ID_SIZE: Final[int] = 32


class AssetType(IntEnum):
    """Kinds of assets that can be minted."""

    NORMAL = 0
    COLLECTIBLE = 1


@dataclass(frozen=True, slots=True)
class Genesis:
    """Immutable data that uniquely derives an asset ID."""

    first_prev_out: OutPoint
    tag: str
    metadata: bytes
    output_index: int
    type: AssetType = AssetType.NORMAL

    def tag_hash(self) -> bytes:
        return hashlib.sha256(self.tag.encode("utf-8")).digest()

    def id(self) -> bytes:
        """Return the 32-byte asset ID committed to by this genesis."""

        digest = hashlib.sha256()
        digest.update(encode_outpoint(self.first_prev_out))
        digest.update(self.tag_hash())
        digest.update(self.metadata)
        digest.update(struct.pack(">I", self.output_index))
        digest.update(struct.pack(">B", int(self.type)))
        return digest.digest()


@dataclass(frozen=True, slots=True)
class KeyLocator:
    """Wallet derivation path of a key."""

    family: int = 0
    index: int = 0

    @property
    def is_placeholder(self) -> bool:
        """Whether this locator carries no derivation information."""

        return self.family == 0 and self.index == 0

    def as_tuple(self) -> tuple[int, int]:
        return (self.family, self.index)


@dataclass(frozen=True, slots=True)
class KeyDescriptor:
    """A serialized public key and, if known, where the wallet derived it."""

    pub_key: bytes
    locator: KeyLocator = field(default_factory=KeyLocator)


@dataclass(frozen=True, slots=True)
class GroupKey:
    """Reissuance key of an asset together with the genesis signature.

    ``raw_key`` is ``None`` when the group was learned from a foreign proof.
    """

    group_pub_key: bytes
    sig: bytes
    raw_key: KeyDescriptor | None = None


@dataclass(frozen=True, slots=True)
class DerivedScriptKey:
    """Script key whose raw key and tweak are controlled by the wallet."""

    raw_key: KeyDescriptor
    pub_key: bytes
    tweak: bytes | None = None


@dataclass(frozen=True, slots=True)
class ObservedScriptKey:
    """Script key seen in a foreign proof; only the tweaked key is known."""

    pub_key: bytes


ScriptKey: TypeAlias = DerivedScriptKey | ObservedScriptKey


@dataclass(frozen=True, slots=True)
class Asset:
    """A single asset as carried by a proof or produced by a minting batch."""

    genesis: Genesis
    amount: int
    script_key: ScriptKey
    version: int = 0
    script_version: int = 0
    lock_time: int | None = None
    relative_lock_time: int | None = None
    group_key: GroupKey | None = None

    def id(self) -> bytes:
        return self.genesis.id()
