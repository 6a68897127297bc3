"""Helpers for normalizing identities and 32-byte hash values."""

from __future__ import annotations

from web3 import Web3

from ..errors import ValidationError

ZERO_HASH = "0x" + "00" * 32


def normalize_identity(identity: str) -> str:
    """Return ``identity`` as a checksummed 20-byte address.

    Parameters
    ----------
    identity : str
        Raw address, with or without checksum casing.

    Raises
    ------
    ValidationError
        If ``identity`` is not a string or not a valid address.
    """

    if not isinstance(identity, str):
        raise ValidationError("identity must be a string address")
    candidate = identity.strip()
    if not Web3.is_address(candidate):
        raise ValidationError(f"{identity!r} is not a valid address")
    return Web3.to_checksum_address(candidate)


def normalize_hash(value: "str | bytes") -> str:
    """Normalize a 32-byte value to a lower-case ``0x``-prefixed hex string."""

    if isinstance(value, (bytes, bytearray)):
        if len(value) != 32:
            raise ValidationError("hash values must be exactly 32 bytes")
        return "0x" + bytes(value).hex()
    if not isinstance(value, str):
        raise ValidationError("hash values must be hex strings or bytes")
    text = value.strip().lower()
    if text.startswith("0x"):
        text = text[2:]
    if len(text) != 64:
        raise ValidationError("hash values must be 32 bytes (64 hex characters)")
    try:
        bytes.fromhex(text)
    except ValueError as exc:
        raise ValidationError("hash values must be hexadecimal") from exc
    return "0x" + text


def hash_to_bytes(value: "str | bytes") -> bytes:
    return bytes.fromhex(normalize_hash(value)[2:])


def is_zero_hash(value: "str | bytes") -> bool:
    return normalize_hash(value) == ZERO_HASH


def empty_input_hash() -> str:
    """keccak256 of the empty byte string."""

    return "0x" + Web3.keccak(b"").hex().removeprefix("0x")


def identity_hash(identity: str) -> str:
    """keccak256 of the packed 20-byte address of ``identity``."""

    digest = Web3.solidity_keccak(["address"], [normalize_identity(identity)])
    return "0x" + digest.hex().removeprefix("0x")


__all__ = [
    "ZERO_HASH",
    "empty_input_hash",
    "hash_to_bytes",
    "identity_hash",
    "is_zero_hash",
    "normalize_hash",
    "normalize_identity",
]
