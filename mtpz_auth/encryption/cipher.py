"""AES block cipher, chained mode and one-block MAC for MTPZ."""

from dataclasses import dataclass, field
from typing import Optional

from cryptography.hazmat.primitives import cmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..utils import xor_bytes

BLOCK_SIZE = 16
ROUNDS_BY_KEY_LENGTH = {16: 10, 24: 12, 32: 14}
ZERO_IV = bytes(BLOCK_SIZE)


@dataclass(frozen=True)
class CipherSchedule:
    """
    Cipher bound to one raw key.

    Attributes:
        rounds: 10, 12 or 14, from the key length
        key: Raw key
        cipher: Single-block (ECB) cipher object for the key
    """
    rounds: int
    key: bytes = field(repr=False)
    cipher: Cipher = field(repr=False, compare=False)


def expand_key(key: bytes) -> CipherSchedule:
    """
    Prepare the cipher for a 16, 24 or 32 byte key.

    Args:
        key: Raw cipher key

    Returns:
        CipherSchedule

    Raises:
        ValueError: If the key length is not supported
    """
    rounds = ROUNDS_BY_KEY_LENGTH.get(len(key))
    if rounds is None:
        raise ValueError(f"Key must be 16, 24 or 32 bytes long, got {len(key)}")
    key = bytes(key)
    return CipherSchedule(rounds, key, Cipher(algorithms.AES(key), modes.ECB()))


def _check_block(block: bytes, seed: Optional[bytes]) -> bytes:
    if len(block) != BLOCK_SIZE:
        raise ValueError("Block must be 16 bytes long")
    if seed is not None:
        return xor_bytes(bytes(block), bytes(seed))
    return bytes(block)


def encrypt_block(schedule: CipherSchedule, block: bytes, seed: Optional[bytes] = None) -> bytes:
    """
    Encrypt a single 16-byte block.

    Args:
        schedule: Cipher from expand_key()
        block: 16 bytes of plaintext
        seed: Optional 16 bytes XORed into the block before encryption

    Returns:
        16 bytes of ciphertext
    """
    encryptor = schedule.cipher.encryptor()
    return encryptor.update(_check_block(block, seed)) + encryptor.finalize()


def decrypt_block(schedule: CipherSchedule, block: bytes, seed: Optional[bytes] = None) -> bytes:
    """
    Decrypt a single 16-byte block.

    Args:
        schedule: Cipher from expand_key()
        block: 16 bytes of ciphertext
        seed: Optional 16 bytes XORed into the block before decryption

    Returns:
        16 bytes of plaintext
    """
    decryptor = schedule.cipher.decryptor()
    return decryptor.update(_check_block(block, seed)) + decryptor.finalize()


class BlockCipherEngine:
    """
    MTPZ block cipher bound to one key.

    encrypt()/decrypt() run the chained mode: CBC with a zero IV over the
    whole blocks. A short final chunk is zero padded in scratch space,
    chained on the last ciphertext block, and only its original length is
    written back, so only whole blocks survive a round trip.
    """

    def __init__(self, key: bytes):
        """
        Initialize the engine with a raw key.

        Args:
            key: 16, 24 or 32 byte key

        Raises:
            ValueError: If the key has an unsupported length
        """
        self._schedule = expand_key(key)

    @property
    def schedule(self) -> CipherSchedule:
        return self._schedule

    def encrypt_block(self, block: bytes, seed: Optional[bytes] = None) -> bytes:
        return encrypt_block(self._schedule, block, seed)

    def decrypt_block(self, block: bytes, seed: Optional[bytes] = None) -> bytes:
        return decrypt_block(self._schedule, block, seed)

    def _chain(self, data: bytes, encrypt: bool) -> bytes:
        data = bytes(data)
        whole = len(data) - len(data) % BLOCK_SIZE
        cipher = Cipher(algorithms.AES(self._schedule.key), modes.CBC(ZERO_IV))
        context = cipher.encryptor() if encrypt else cipher.decryptor()
        result = context.update(data[:whole]) + context.finalize()

        tail = data[whole:]
        if not tail:
            return result

        # Feedback is the last ciphertext block, produced or consumed
        ciphertext = result if encrypt else data[:whole]
        feedback = ciphertext[-BLOCK_SIZE:] if whole else ZERO_IV
        scratch = tail + bytes(BLOCK_SIZE - len(tail))
        if encrypt:
            out = self.encrypt_block(scratch, feedback)
        else:
            out = xor_bytes(self.decrypt_block(scratch), feedback)
        return result + out[:len(tail)]

    def encrypt(self, data: bytes) -> bytes:
        """
        Encrypt data in chained mode.

        Args:
            data: Plaintext of any length

        Returns:
            Ciphertext of the same length
        """
        return self._chain(data, True)

    def decrypt(self, data: bytes) -> bytes:
        """
        Decrypt data in chained mode.

        Args:
            data: Ciphertext of any length

        Returns:
            Plaintext of the same length
        """
        return self._chain(data, False)

    def encrypt_blocks(self, data: bytes) -> bytes:
        """
        Encrypt each 16-byte block independently.

        Raises:
            ValueError: If data is not a multiple of 16 bytes
        """
        if len(data) % BLOCK_SIZE:
            raise ValueError("Data must be a multiple of 16 bytes long")
        encryptor = self._schedule.cipher.encryptor()
        return encryptor.update(bytes(data)) + encryptor.finalize()

    def decrypt_blocks(self, data: bytes) -> bytes:
        """
        Decrypt each 16-byte block independently.

        Raises:
            ValueError: If data is not a multiple of 16 bytes
        """
        if len(data) % BLOCK_SIZE:
            raise ValueError("Data must be a multiple of 16 bytes long")
        decryptor = self._schedule.cipher.decryptor()
        return decryptor.update(bytes(data)) + decryptor.finalize()

    def mac(self, seed: bytes) -> bytes:
        """
        Compute the one-block CMAC of seed.

        Args:
            seed: At most 16 bytes

        Returns:
            16-byte tag

        Raises:
            ValueError: If seed is longer than one block
        """
        if len(seed) > BLOCK_SIZE:
            raise ValueError("MAC seed must be at most 16 bytes long")
        c = cmac.CMAC(algorithms.AES(self._schedule.key))
        c.update(bytes(seed))
        return c.finalize()


def cipher_chain(key: bytes, data: bytes, encrypt: bool) -> bytes:
    """Run the chained mode over data with a fresh cipher for key."""
    engine = BlockCipherEngine(key)
    return engine.encrypt(data) if encrypt else engine.decrypt(data)


def cipher_blocks(key: bytes, data: bytes, encrypt: bool) -> bytes:
    """Run independent 16-byte blocks through the cipher."""
    engine = BlockCipherEngine(key)
    return engine.encrypt_blocks(data) if encrypt else engine.decrypt_blocks(data)


def mac(key: bytes, seed: bytes) -> bytes:
    """Compute the one-block MAC of seed under key."""
    return BlockCipherEngine(key).mac(seed)
