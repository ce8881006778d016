"""Address normalization helpers."""

from __future__ import annotations

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_address(value: str | None) -> str:
    """Normalize on-chain address keys for internal maps/dedup."""
    return str(value or "").strip().lower()


def is_valid_address(value: str | None) -> bool:
    return bool(value) and Web3.is_address(str(value).strip())


def to_checksum(value: str) -> str:
    return Web3.to_checksum_address(str(value).strip())


def is_zero_address(value: str | None) -> bool:
    return normalize_address(value) in ("", ZERO_ADDRESS)
