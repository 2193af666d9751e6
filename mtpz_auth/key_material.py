"""Provisioned MTPZ key material and the ~/.mtpz-data loader."""

import logging
import os
import string
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Set, Union

from . import definitions as defs
from .errors import CryptographicError, ProvisioningError
from .encryption.cipher import cipher_blocks
from .encryption.rsa import RsaEngine

_LOGGER = logging.getLogger(__name__)

_REPORTED: Set[str] = set()


@dataclass(frozen=True)
class KeyMaterial:
    """
    Application key material, immutable once loaded.

    Attributes:
        public_exponent: RSA public exponent, hex string
        encryption_key: 16 raw bytes
        modulus: RSA modulus, hex string (at most 256 digits)
        private_key: RSA private exponent, hex string (at most 256 digits)
        certificates: Application certificate blob (at most 0x275 bytes)
    """
    public_exponent: str
    encryption_key: bytes
    modulus: str
    private_key: str
    certificates: bytes

    def __repr__(self) -> str:
        return (f"KeyMaterial(modulus_digits={len(self.modulus)}, "
                f"certificates={len(self.certificates)} bytes)")

    def encrypt_blocks(self, data: bytes) -> bytes:
        """Encrypt whole 16-byte blocks with the provisioned encryption key."""
        return cipher_blocks(self.encryption_key, data, True)

    def decrypt_blocks(self, data: bytes) -> bytes:
        """Decrypt whole 16-byte blocks with the provisioned encryption key."""
        return cipher_blocks(self.encryption_key, data, False)


def _check_hex(record: str, name: str, max_digits: Optional[int] = None) -> str:
    if not record:
        raise ProvisioningError(f"Unable to read MTPZ {name}: record is empty")
    if max_digits is not None and len(record) > max_digits:
        raise ProvisioningError(
            f"Unable to read MTPZ {name}: {len(record)} hex digits, at most {max_digits} allowed")
    if not all(c in string.hexdigits for c in record):
        raise ProvisioningError(f"Unable to read MTPZ {name}: not a hex string")
    return record


def _hex_to_bytes(record: str, name: str) -> bytes:
    _check_hex(record, name)
    if len(record) % 2:
        raise ProvisioningError(f"Unable to parse MTPZ {name}: odd number of hex digits")
    try:
        return bytes.fromhex(record)
    except ValueError:
        raise ProvisioningError(f"Unable to parse MTPZ {name}: not a hex string") from None


def parse_key_material(text: str) -> KeyMaterial:
    """
    Parse the five newline separated hex records of a key-material file.

    Record order: public exponent, encryption key, modulus, private key,
    certificates.

    Args:
        text: File contents

    Returns:
        KeyMaterial

    Raises:
        ProvisioningError: If a record is missing or malformed
    """
    records: List[str] = [line.strip() for line in text.splitlines()]
    if len(records) < len(defs.KEY_MATERIAL_RECORDS):
        missing = defs.KEY_MATERIAL_RECORDS[len(records)]
        raise ProvisioningError(f"Unable to read MTPZ {missing}: record missing")

    public_exponent = _check_hex(records[0], "public exponent", defs.MAX_PUBLIC_EXPONENT_DIGITS)

    encryption_key = _hex_to_bytes(records[1], "encryption key")
    if len(encryption_key) != defs.ENCRYPTION_KEY_LENGTH:
        raise ProvisioningError(
            f"Unable to read MTPZ encryption key: {len(encryption_key)} bytes, "
            f"expected {defs.ENCRYPTION_KEY_LENGTH}")

    modulus = _check_hex(records[2], "modulus", defs.MAX_RSA_HEX_DIGITS)
    private_key = _check_hex(records[3], "private key", defs.MAX_RSA_HEX_DIGITS)

    certificates = _hex_to_bytes(records[4], "certificates")
    if len(certificates) > defs.CERTIFICATES_LENGTH:
        raise ProvisioningError(
            f"Unable to parse MTPZ certificates: {len(certificates)} bytes, "
            f"at most {defs.CERTIFICATES_LENGTH} allowed")

    return KeyMaterial(
        public_exponent=public_exponent,
        encryption_key=encryption_key,
        modulus=modulus,
        private_key=private_key,
        certificates=certificates,
    )


def check_key_material(key_material: KeyMaterial) -> None:
    """
    Check that the RSA records form one consistent key pair.

    parse_key_material() only checks the record syntax; a private exponent
    that does not match the modulus and public exponent is caught here,
    before any handshake is attempted.

    Raises:
        ProvisioningError: If the RSA key cannot be built
    """
    try:
        RsaEngine.from_key_material(key_material)
    except CryptographicError as e:
        raise ProvisioningError(f"Unable to use MTPZ RSA key: {e}") from e


def default_key_material_path() -> Path:
    """
    Get the key-material file location.

    The MTPZ_DATA environment variable wins over ~/.mtpz-data.
    """
    override = os.environ.get(defs.MTPZ_DATA_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / defs.MTPZ_DATA_FILENAME


def load_key_material(path: Optional[Union[str, Path]] = None,
                      strict: bool = False) -> Optional[KeyMaterial]:
    """
    Load key material from disk.

    A missing or malformed file, or RSA records that do not form a key
    pair, disable MTPZ without aborting the host: the problem is logged
    once per path and None is returned. With strict=True the
    ProvisioningError is raised instead.

    Args:
        path: File to read, default_key_material_path() when None
        strict: Raise instead of returning None

    Returns:
        KeyMaterial, or None when unavailable
    """
    path = Path(path).expanduser() if path is not None else default_key_material_path()

    try:
        try:
            text = path.read_text(encoding='ascii')
        except (OSError, UnicodeDecodeError) as e:
            raise ProvisioningError(f"Unable to read {path}: {e}") from e
        key_material = parse_key_material(text)
        check_key_material(key_material)
    except ProvisioningError as e:
        if strict:
            raise
        if str(path) not in _REPORTED:
            _REPORTED.add(str(path))
            _LOGGER.error("%s, MTPZ disabled.", e)
        return None

    _LOGGER.debug("Loaded MTPZ key material from %s", path)
    return key_material


def format_key_material(key_material: KeyMaterial) -> str:
    """Serialize key material in the on-disk record format."""
    return "\n".join([
        key_material.public_exponent,
        key_material.encryption_key.hex(),
        key_material.modulus,
        key_material.private_key,
        key_material.certificates.hex(),
    ]) + "\n"
