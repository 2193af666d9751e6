"""Byte helpers shared by the MTPZ engines."""

import secrets

from .definitions import NONCE_LENGTH


def be32(value: int) -> bytes:
    """Encode a 32-bit word big-endian."""
    return (value & 0xFFFFFFFF).to_bytes(4, 'big')


def xor_bytes(a: bytes, b: bytes) -> bytes:
    """XOR two byte strings of equal length.

    Raises:
        ValueError: If the lengths differ
    """
    if len(a) != len(b):
        raise ValueError(f"Cannot XOR {len(a)} bytes with {len(b)} bytes")
    return bytes(x ^ y for x, y in zip(a, b))


def random_nonce() -> bytes:
    """Generate a cryptographically secure handshake nonce."""
    return secrets.token_bytes(NONCE_LENGTH)


def wipe(buffer: bytearray) -> None:
    """Overwrite a mutable buffer with zeros."""
    buffer[:] = bytes(len(buffer))
