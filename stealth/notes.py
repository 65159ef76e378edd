"""Payment note layouts.

Notes are opaque to the ledger: it only checks word sizes and republishes the
fields in the PaymentNote event. Two layouts exist:

- packed:   xCoord, yCoord, note            (three 32-byte words)
- unpacked: iv, xCoord, yCoord, ctBuf0..2, mac
            (16-byte IV, 96 bytes of ciphertext in three words, 32-byte MAC)
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Tuple, Union

from eth_utils import to_bytes

WORD = 32
IV_SIZE = 16
CIPHERTEXT_WORDS = 3


def _as_bytes(value: Union[bytes, bytearray, str]) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return to_bytes(hexstr=str(value))


def _fixed(value: Union[bytes, bytearray, str], size: int, label: str) -> bytes:
    raw = _as_bytes(value)
    if len(raw) != size:
        raise ValueError(f"{label} must be {size} bytes, got {len(raw)}")
    return raw


def split_public_key(public_key: Union[bytes, str]) -> Tuple[bytes, bytes]:
    """Split an uncompressed secp256k1 key (0x04 || X || Y) into its coordinates."""
    raw = _as_bytes(public_key)
    if len(raw) == 65:
        if raw[0] != 0x04:
            raise ValueError("uncompressed public key must start with 0x04")
        raw = raw[1:]
    if len(raw) != 2 * WORD:
        raise ValueError("public key must be 64 or 65 bytes")
    return raw[:WORD], raw[WORD:]


def _words(blob: bytes, count: int) -> List[bytes]:
    if len(blob) > count * WORD:
        raise ValueError(f"ciphertext longer than {count * WORD} bytes")
    padded = blob.ljust(count * WORD, b"\x00")
    return [padded[i * WORD:(i + 1) * WORD] for i in range(count)]


@dataclass(frozen=True)
class PackedNote:
    x_coord: bytes
    y_coord: bytes
    note: bytes

    layout = "packed"

    def __post_init__(self) -> None:
        object.__setattr__(self, "x_coord", _fixed(self.x_coord, WORD, "xCoord"))
        object.__setattr__(self, "y_coord", _fixed(self.y_coord, WORD, "yCoord"))
        object.__setattr__(self, "note", _fixed(self.note, WORD, "note"))

    @classmethod
    def from_parts(cls, public_key: Union[bytes, str], ciphertext: Union[bytes, str]) -> "PackedNote":
        x_coord, y_coord = split_public_key(public_key)
        (note,) = _words(_as_bytes(ciphertext), 1)
        return cls(x_coord=x_coord, y_coord=y_coord, note=note)

    def event_fields(self) -> Dict[str, bytes]:
        return {"xCoord": self.x_coord, "yCoord": self.y_coord, "note": self.note}

    @staticmethod
    def abi_types() -> List[Tuple[str, str]]:
        return [("xCoord", "bytes32"), ("yCoord", "bytes32"), ("note", "bytes32")]


@dataclass(frozen=True)
class UnpackedNote:
    iv: bytes
    x_coord: bytes
    y_coord: bytes
    ct_buf0: bytes
    ct_buf1: bytes
    ct_buf2: bytes
    mac: bytes

    layout = "unpacked"

    def __post_init__(self) -> None:
        object.__setattr__(self, "iv", _fixed(self.iv, IV_SIZE, "iv"))
        for name in ("x_coord", "y_coord", "ct_buf0", "ct_buf1", "ct_buf2", "mac"):
            object.__setattr__(self, name, _fixed(getattr(self, name), WORD, name))

    @classmethod
    def from_parts(
        cls,
        iv: Union[bytes, str],
        public_key: Union[bytes, str],
        ciphertext: Union[bytes, str],
        mac: Union[bytes, str],
    ) -> "UnpackedNote":
        x_coord, y_coord = split_public_key(public_key)
        ct_buf0, ct_buf1, ct_buf2 = _words(_as_bytes(ciphertext), CIPHERTEXT_WORDS)
        return cls(
            iv=_as_bytes(iv),
            x_coord=x_coord,
            y_coord=y_coord,
            ct_buf0=ct_buf0,
            ct_buf1=ct_buf1,
            ct_buf2=ct_buf2,
            mac=_as_bytes(mac),
        )

    def event_fields(self) -> Dict[str, bytes]:
        return {
            "iv": self.iv,
            "xCoord": self.x_coord,
            "yCoord": self.y_coord,
            "ctBuf0": self.ct_buf0,
            "ctBuf1": self.ct_buf1,
            "ctBuf2": self.ct_buf2,
            "mac": self.mac,
        }

    @staticmethod
    def abi_types() -> List[Tuple[str, str]]:
        return [
            ("iv", "bytes16"),
            ("xCoord", "bytes32"),
            ("yCoord", "bytes32"),
            ("ctBuf0", "bytes32"),
            ("ctBuf1", "bytes32"),
            ("ctBuf2", "bytes32"),
            ("mac", "bytes32"),
        ]


Note = Union[PackedNote, UnpackedNote]


def note_from_fields(fields: Dict[str, Union[bytes, str]]) -> Note:
    """Build a note from event-style field names (``xCoord``, ``ctBuf0`` ...)."""
    if "iv" in fields:
        return UnpackedNote(
            iv=fields["iv"],
            x_coord=fields["xCoord"],
            y_coord=fields["yCoord"],
            ct_buf0=fields["ctBuf0"],
            ct_buf1=fields["ctBuf1"],
            ct_buf2=fields["ctBuf2"],
            mac=fields["mac"],
        )
    return PackedNote(x_coord=fields["xCoord"], y_coord=fields["yCoord"], note=fields["note"])
