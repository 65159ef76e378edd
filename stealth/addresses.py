"""Address helpers shared by the ledger, events and HTTP layer."""
from __future__ import annotations

from typing import Any

from eth_utils import is_hex_address, keccak, to_bytes
from web3 import Web3

# Reserved token identifier used in events for native-currency payments.
NATIVE_TOKEN = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(value: Any) -> str:
    """Return the EIP-55 checksum form of ``value`` or raise ``ValueError``."""
    if isinstance(value, (bytes, bytearray)):
        if len(value) != 20:
            raise ValueError("address must be 20 bytes")
        return Web3.to_checksum_address("0x" + bytes(value).hex())
    candidate = str(value or "").strip()
    if not is_hex_address(candidate):
        raise ValueError(f"Invalid address {value!r}")
    return Web3.to_checksum_address(candidate)


def same_address(left: Any, right: Any) -> bool:
    if not left or not right:
        return False
    return str(left).lower() == str(right).lower()


def is_native(asset: str) -> bool:
    return same_address(asset, NATIVE_TOKEN)


def address_bytes(address: str) -> bytes:
    return to_bytes(hexstr=normalize_address(address))


def receiver_hash(address: str) -> bytes:
    """keccak256 over the raw 20 address bytes, as published in PaymentNote."""
    return keccak(address_bytes(address))
