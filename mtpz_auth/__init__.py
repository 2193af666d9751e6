"""
MTPZ authentication library

Runs the MTPZ handshake that unlocks trusted file operations on
DRM-locked MTP media devices.
"""

__version__ = "0.1.0"

from .errors import (
    MtpzError,
    ProvisioningError,
    FramingError,
    CryptographicError,
    AuthenticationError,
    TransportError
)

from .key_material import (
    KeyMaterial,
    parse_key_material,
    check_key_material,
    format_key_material,
    load_key_material,
    default_key_material_path
)

from .protocols import (
    HandshakeOrchestrator,
    HandshakeResult,
    HandshakeState,
    MtpzTransport
)

from .device import MtpzDevice

__all__ = [
    # Errors
    'MtpzError',
    'ProvisioningError',
    'FramingError',
    'CryptographicError',
    'AuthenticationError',
    'TransportError',

    # Key material
    'KeyMaterial',
    'parse_key_material',
    'check_key_material',
    'format_key_material',
    'load_key_material',
    'default_key_material_path',

    # Handshake
    'HandshakeOrchestrator',
    'HandshakeResult',
    'HandshakeState',
    'MtpzTransport',
    'MtpzDevice',
]
