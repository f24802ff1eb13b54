"""Exception hierarchy shared by the asset store layers."""

from __future__ import annotations

__all__ = [
    "AssetStoreError",
    "ContextError",
    "DeadlineExceededError",
    "EncodingError",
    "GenesisNotFoundError",
    "KeyLocatorConflictError",
    "NotFoundError",
    "OperationCancelledError",
    "OutpointEncodingError",
    "ScriptKeyNotFoundError",
    "StoreError",
]


class AssetStoreError(RuntimeError):
    """Base exception raised by the asset store."""


class EncodingError(AssetStoreError):
    """Raised when a value cannot be converted to or from its stored form."""


class OutpointEncodingError(EncodingError):
    """Raised when an outpoint cannot be encoded or decoded."""


class StoreError(AssetStoreError):
    """Raised when the underlying database rejects or fails an operation."""


class NotFoundError(AssetStoreError):
    """Raised when a lookup has no matching row."""


class ScriptKeyNotFoundError(NotFoundError):
    """Raised when no script key is stored for a tweaked key."""


class GenesisNotFoundError(NotFoundError):
    """Raised when no genesis asset is stored for an identifier."""


class KeyLocatorConflictError(AssetStoreError):
    """Raised when a raw key is re-imported with a different derivation path."""

    def __init__(
        self,
        raw_key: bytes,
        existing: tuple[int, int],
        incoming: tuple[int, int],
    ) -> None:
        super().__init__(
            f"internal key {raw_key.hex()} already stored with locator "
            f"{existing}, refusing to overwrite with {incoming}"
        )
        self.raw_key = raw_key
        self.existing = existing
        self.incoming = incoming


class ContextError(AssetStoreError):
    """Base class for operations aborted by their caller's context."""


class OperationCancelledError(ContextError):
    """Raised when the caller cancelled the operation."""


class DeadlineExceededError(ContextError):
    """Raised when the caller's deadline passed before the operation ended."""
