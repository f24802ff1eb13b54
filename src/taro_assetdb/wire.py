"""Transaction outpoints and their binary codec.

Outpoints are stored as 36 bytes: the 32-byte transaction hash in internal
byte order followed by the output index as a little-endian ``uint32``.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Final

from .errors import OutpointEncodingError

__all__ = [
    "HASH_SIZE",
    "OUTPOINT_SIZE",
    "OutPoint",
    "decode_outpoint",
    "encode_outpoint",
]

HASH_SIZE: Final[int] = 32
OUTPOINT_SIZE: Final[int] = HASH_SIZE + 4
_MAX_INDEX: Final[int] = 0xFFFFFFFF


@dataclass(frozen=True, slots=True)
class OutPoint:
    """Reference to a single output of a previous transaction."""

    txid: bytes
    index: int

    @classmethod
    def from_string(cls, value: str) -> OutPoint:
        """Parse the ``<txid-hex>:<index>`` form shown by block explorers.

        The hex transaction id is displayed byte-reversed, so it is flipped
        back into internal order here.
        """

        txid_hex, sep, index = value.partition(":")
        if not sep:
            raise OutpointEncodingError(f"malformed outpoint {value!r}")
        try:
            txid = bytes.fromhex(txid_hex)[::-1]
            parsed_index = int(index)
        except ValueError as exc:
            raise OutpointEncodingError(f"malformed outpoint {value!r}") from exc
        return cls(txid=txid, index=parsed_index)

    def __str__(self) -> str:
        return f"{self.txid[::-1].hex()}:{self.index}"


def encode_outpoint(outpoint: OutPoint) -> bytes:
    """Serialize *outpoint* into its fixed-width binary form."""

    if len(outpoint.txid) != HASH_SIZE:
        raise OutpointEncodingError(
            f"outpoint hash must be {HASH_SIZE} bytes, got {len(outpoint.txid)}"
        )
    if not 0 <= outpoint.index <= _MAX_INDEX:
        raise OutpointEncodingError(f"outpoint index {outpoint.index} out of range")
    return bytes(outpoint.txid) + struct.pack("<I", outpoint.index)


def decode_outpoint(data: bytes | None) -> OutPoint:
    """Parse the binary form produced by :func:`encode_outpoint`."""

    if data is None or len(data) != OUTPOINT_SIZE:
        size = "no" if data is None else len(data)
        raise OutpointEncodingError(
            f"stored outpoint must be {OUTPOINT_SIZE} bytes, got {size}"
        )
    (index,) = struct.unpack("<I", data[HASH_SIZE:])
    return OutPoint(txid=bytes(data[:HASH_SIZE]), index=index)
