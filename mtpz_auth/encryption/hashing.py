"""Streaming 20-byte hash and keystream expansion used by MTPZ.

The digest is SHA-1; devices compare it byte for byte.
"""

from cryptography.hazmat.primitives import hashes

from ..utils import be32

DIGEST_SIZE = hashes.SHA1.digest_size


class HashState:
    """
    Incremental hash over any number of update() calls.

    One state can digest any number of independent messages because
    finalize() starts a fresh context.

    Attributes:
        length: Bytes absorbed since the last reset
    """

    def __init__(self):
        self.reset()

    def reset(self) -> None:
        """Drop anything absorbed so far."""
        self._context = hashes.Hash(hashes.SHA1())
        self.length = 0

    def update(self, data: bytes) -> None:
        """
        Absorb data.

        Args:
            data: Message bytes, may be empty
        """
        self._context.update(bytes(data))
        self.length += len(data)

    def finalize(self) -> bytes:
        """
        Emit the digest and reset the state.

        Returns:
            20-byte digest
        """
        digest = self._context.finalize()
        self.reset()
        return digest


def digest(data: bytes) -> bytes:
    """Hash a complete message with a fresh state."""
    state = HashState()
    state.update(data)
    return state.finalize()


def expand(message: bytes, out_len: int) -> bytes:
    """
    Derive a keystream of out_len bytes from message.

    Chunk i is digest(message || BE32(i)); chunks are independent so a
    longer expansion always starts with a shorter one.

    Args:
        message: Seed material
        out_len: Number of bytes wanted

    Returns:
        Keystream bytes
    """
    state = HashState()
    chunks = []
    for counter in range((out_len + DIGEST_SIZE - 1) // DIGEST_SIZE):
        state.update(message)
        state.update(be32(counter))
        chunks.append(state.finalize())
    return b''.join(chunks)[:out_len]
