"""Cryptographic engines for the MTPZ handshake."""

from .hashing import HashState, digest, expand
from .cipher import (
    BlockCipherEngine,
    CipherSchedule,
    expand_key,
    encrypt_block,
    decrypt_block,
    cipher_chain,
    cipher_blocks,
    mac
)
from .rsa import RsaEngine, RsaPrivateKey, RsaPublicKey

__all__ = [
    'HashState',
    'digest',
    'expand',
    'BlockCipherEngine',
    'CipherSchedule',
    'expand_key',
    'encrypt_block',
    'decrypt_block',
    'cipher_chain',
    'cipher_blocks',
    'mac',
    'RsaEngine',
    'RsaPrivateKey',
    'RsaPublicKey'
]
