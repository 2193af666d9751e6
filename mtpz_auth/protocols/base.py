"""Base protocol interfaces and types for the MTPZ handshake."""

import struct
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Tuple

from .. import definitions as defs
from ..errors import FramingError
from ..utils import wipe


class HandshakeState(Enum):
    """Steps of the host side handshake."""
    IDLE = "IDLE"
    RESET = "RESET"
    CERT_SENT = "CERT_SENT"
    RESPONSE_VALIDATED = "RESPONSE_VALIDATED"
    CONFIRMED = "CONFIRMED"
    SESSION_OPEN = "SESSION_OPEN"
    FAILED = "FAILED"


class MtpzTransport(Protocol):
    """
    Device connection used by the handshake.

    Every call returns a PTP response code; PTP_RC_OK means success.
    """

    def send_request(self, data: bytes) -> int:
        """Send one handshake message to the device."""
        ...

    def get_response(self) -> Tuple[bytes, int]:
        """Fetch the device's handshake response and a status code."""
        ...

    def reset_handshake(self) -> int:
        """Drop any handshake state held by the device."""
        ...

    def enable_trusted_operations(self, w0: int, w1: int, w2: int, w3: int) -> int:
        """Unlock trusted file operations with four 32-bit MAC words."""
        ...


@dataclass
class HandshakeResult:
    """Outcome of a successful handshake."""
    state: HandshakeState
    nonce_verified: bool
    trusted_words: Tuple[int, int, int, int]


class HandshakeSession:
    """
    Secrets for one handshake attempt.

    Buffers are bytearrays so they can be zeroed in place; use the session
    as a context manager to wipe them on the way out, whatever happens.
    """

    def __init__(self):
        self.nonce = bytearray(defs.NONCE_LENGTH)
        self.session_key = bytearray(defs.SESSION_KEY_LENGTH)
        self.mac_hash = bytearray(defs.MAC_HASH_LENGTH)

    @property
    def mac_counter(self) -> bytes:
        """MAC-use counter carried in the device MAC-hash."""
        start = defs.MAC_COUNTER_OFFSET
        return bytes(self.mac_hash[start:start + defs.MAC_COUNTER_LENGTH])

    def wipe(self) -> None:
        wipe(self.nonce)
        wipe(self.session_key)
        wipe(self.mac_hash)

    def __enter__(self) -> 'HandshakeSession':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()


class MessageReader:
    """
    Bounds-checked cursor over a received message.

    Reading past the end raises FramingError instead of returning short
    data.
    """

    def __init__(self, data: bytes, name: str = "message"):
        self.data = bytes(data)
        self.name = name
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read(self, length: int, what: Optional[str] = None) -> bytes:
        """
        Take the next length bytes.

        Args:
            length: Number of bytes
            what: Field name for the error message

        Returns:
            The bytes read

        Raises:
            FramingError: If fewer than length bytes remain
        """
        if length < 0 or length > self.remaining:
            raise FramingError(
                f"{self.name} truncated reading {what or 'field'}: need {length} bytes "
                f"at offset {self.offset}, {self.remaining} left")
        chunk = self.data[self.offset:self.offset + length]
        self.offset += length
        return chunk

    def skip(self, length: int = 1) -> None:
        self.read(length, "padding")

    def read_be16(self, what: Optional[str] = None) -> int:
        return struct.unpack('>H', self.read(2, what))[0]

    def read_be32(self, what: Optional[str] = None) -> int:
        return struct.unpack('>I', self.read(4, what))[0]

    def read_prefixed16(self, what: Optional[str] = None) -> bytes:
        """Read a big-endian 16-bit length followed by that many bytes."""
        return self.read(self.read_be16(what), what)

    def read_prefixed32(self, what: Optional[str] = None) -> bytes:
        """Read a big-endian 32-bit length followed by that many bytes."""
        return self.read(self.read_be32(what), what)

    def expect(self, marker: bytes, what: Optional[str] = None) -> None:
        """
        Consume bytes that must equal marker.

        Raises:
            FramingError: If the bytes differ or the message is too short
        """
        found = self.read(len(marker), what)
        if found != marker:
            raise FramingError(
                f"{self.name} has bad {what or 'marker'} at offset {self.offset - len(marker)}: "
                f"expected {marker.hex()}, got {found.hex()}")
