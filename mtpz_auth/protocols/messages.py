"""Encoders and decoders for the MTPZ handshake messages."""

import logging
import struct
from dataclasses import dataclass
from typing import Tuple

from .. import definitions as defs
from ..encryption import RsaEngine, digest, expand, mac
from ..errors import FramingError, ProvisioningError
from ..key_material import KeyMaterial
from ..utils import xor_bytes
from .base import MessageReader

_LOGGER = logging.getLogger(__name__)

# The signature covers the certificate message minus its first two marker
# bytes and the trailing signature marker.
SIGNED_REGION_START = 2
SIGNED_REGION_END = defs.CERT_MESSAGE_LENGTH - defs.RSA_BLOCK_LENGTH - len(defs.CERT_MESSAGE_SIGNATURE_MARKER)


@dataclass
class ResponseFrame:
    """Outer framing of the device's handshake response."""
    key_blob: bytes  # RSA encrypted, 128 bytes
    payload: bytes  # cipher_chain encrypted, 832 bytes


@dataclass
class ResponsePayload:
    """Decrypted body of the device's handshake response."""
    certificates: bytes
    random_echo: bytes
    device_random: bytes
    signature: bytes
    mac_hash: bytes


def encode_signature_block(message_hash: bytes) -> bytes:
    """
    Build the 128-byte block that gets raised to the private exponent.

    Layout: masked separator area (107) || h2 (20) || 0xBC, where
    h2 = digest(0^8 || message_hash) and the mask is expand(h2, 107).
    The top bit of the first byte is cleared so the block stays below
    the modulus.

    Args:
        message_hash: Digest of the signed region

    Returns:
        Encoded block, RSA_BLOCK_LENGTH bytes
    """
    h2 = digest(bytes(defs.SIGNATURE_HASH_PREFIX_LENGTH) + message_hash)
    separator = bytearray(defs.SIGNATURE_MASK_LENGTH)
    separator[-1] = defs.SIGNATURE_SEPARATOR

    block = bytearray(xor_bytes(bytes(separator), expand(h2, defs.SIGNATURE_MASK_LENGTH)))
    block += h2
    block.append(defs.SIGNATURE_TRAILER)
    block[0] &= 0x7F
    return bytes(block)


def sign_certificate_body(body: bytes, rsa: RsaEngine) -> bytes:
    """
    Sign an unsigned certificate message.

    Args:
        body: Certificate message up to and including the signature marker
        rsa: Engine holding the application private key

    Returns:
        128-byte signature
    """
    message_hash = digest(body[SIGNED_REGION_START:SIGNED_REGION_END])
    return rsa.sign(encode_signature_block(message_hash), defs.RSA_BLOCK_LENGTH)


def build_application_certificate_message(key_material: KeyMaterial, nonce: bytes,
                                          rsa: RsaEngine) -> bytes:
    """
    Build the signed application certificate message.

    Args:
        key_material: Provisioned application keys and certificates
        nonce: Fresh 16-byte host nonce
        rsa: Engine holding the application private key

    Returns:
        785-byte message
    """
    if len(nonce) != defs.NONCE_LENGTH:
        raise ValueError(f"Nonce must be {defs.NONCE_LENGTH} bytes, got {len(nonce)}")

    if len(key_material.certificates) > defs.CERTIFICATES_LENGTH:
        raise ProvisioningError(
            f"Certificates are {len(key_material.certificates)} bytes, "
            f"at most {defs.CERTIFICATES_LENGTH} allowed")
    certificates = key_material.certificates.ljust(defs.CERTIFICATES_LENGTH, b'\x00')
    body = (defs.CERT_MESSAGE_HEADER + certificates + defs.CERT_MESSAGE_NONCE_MARKER
            + bytes(nonce) + defs.CERT_MESSAGE_SIGNATURE_MARKER)
    message = body + sign_certificate_body(body, rsa)

    _LOGGER.debug("Built application certificate message (%d bytes)", len(message))
    return message


def parse_handshake_response(data: bytes) -> ResponseFrame:
    """
    Check the response framing and split it into its encrypted parts.

    No cryptography happens here so a malformed frame is rejected before
    any RSA work.

    Args:
        data: Raw response from the transport

    Returns:
        ResponseFrame

    Raises:
        FramingError: If a marker, the declared payload length or the total
                      length is wrong
    """
    if len(data) < defs.RESPONSE_LENGTH:
        raise FramingError(
            f"Handshake response too short: {len(data)} bytes, expected {defs.RESPONSE_LENGTH}")

    reader = MessageReader(data, "handshake response")
    reader.expect(defs.RESPONSE_MARKER, "response marker")
    reader.skip()
    reader.expect(bytes([defs.RESPONSE_KEY_BLOB_MARKER]), "key blob marker")
    key_blob = reader.read(defs.RSA_BLOCK_LENGTH, "key blob")
    reader.skip(2)

    payload_length = reader.read_be16("payload length")
    if payload_length != defs.RESPONSE_PAYLOAD_LENGTH:
        raise FramingError(
            f"Handshake response declares a {payload_length:#06x} byte payload, "
            f"expected {defs.RESPONSE_PAYLOAD_LENGTH:#06x}")
    payload = reader.read(payload_length, "payload")

    return ResponseFrame(key_blob=key_blob, payload=payload)


def unwrap_session_key(blob: bytes) -> bytes:
    """
    Recover the session key from the RSA-decrypted key blob.

    The seed at [1:21] is unmasked with expand(blob[21:128], 20), then the
    data at [21:128] is unmasked with expand(seed, 107). The session key is
    the last 16 bytes of the unmasked blob.

    Args:
        blob: 128 bytes from the RSA private transform

    Returns:
        16-byte session key
    """
    if len(blob) != defs.RSA_BLOCK_LENGTH:
        raise FramingError(f"Key blob must be {defs.RSA_BLOCK_LENGTH} bytes, got {len(blob)}")

    work = bytearray(blob)
    seed_end = defs.KEY_BLOB_SEED_OFFSET + defs.KEY_BLOB_SEED_LENGTH
    data_end = defs.KEY_BLOB_DATA_OFFSET + defs.KEY_BLOB_DATA_LENGTH

    work[defs.KEY_BLOB_SEED_OFFSET:seed_end] = xor_bytes(
        bytes(work[defs.KEY_BLOB_SEED_OFFSET:seed_end]),
        expand(bytes(work[defs.KEY_BLOB_DATA_OFFSET:data_end]), defs.KEY_BLOB_SEED_LENGTH))
    work[defs.KEY_BLOB_DATA_OFFSET:data_end] = xor_bytes(
        bytes(work[defs.KEY_BLOB_DATA_OFFSET:data_end]),
        expand(bytes(work[defs.KEY_BLOB_SEED_OFFSET:seed_end]), defs.KEY_BLOB_DATA_LENGTH))

    start = defs.KEY_BLOB_SESSION_KEY_OFFSET
    session_key = bytes(work[start:start + defs.SESSION_KEY_LENGTH])
    work[:] = bytes(len(work))
    return session_key


def decode_response_payload(plaintext: bytes) -> ResponsePayload:
    """
    Parse the decrypted response payload.

    Layout: 1 skip, BE32 length + device certificates, BE16 length +
    random echo, BE16 length + device random, 1 skip, BE16 length +
    signature, 1 skip, BE16 length + MAC-hash. The device certificates
    are not validated.

    Raises:
        FramingError: If a length runs past the end or the MAC-hash is short
    """
    reader = MessageReader(plaintext, "response payload")
    reader.skip()
    certificates = reader.read_prefixed32("device certificates")
    random_echo = reader.read_prefixed16("random echo")
    device_random = reader.read_prefixed16("device random")
    reader.skip()
    signature = reader.read_prefixed16("device signature")
    reader.skip()
    mac_hash = reader.read_prefixed16("MAC-hash")

    if len(mac_hash) < defs.MAC_HASH_LENGTH:
        raise FramingError(
            f"Device MAC-hash is {len(mac_hash)} bytes, expected {defs.MAC_HASH_LENGTH}")

    _LOGGER.debug("Response payload: %d certificate bytes, %d byte signature",
                  len(certificates), len(signature))
    return ResponsePayload(
        certificates=certificates,
        random_echo=random_echo,
        device_random=device_random,
        signature=signature,
        mac_hash=mac_hash[:defs.MAC_HASH_LENGTH],
    )


def build_confirmation_message(mac_hash: bytes) -> bytes:
    """Build the 20-byte confirmation: marker || MAC(mac_hash[:16], 0^15 || 01)."""
    return defs.CONFIRMATION_MARKER + mac(bytes(mac_hash[:defs.MAC_KEY_LENGTH]),
                                          defs.CONFIRMATION_SEED)


def trusted_operation_words(mac_hash: bytes) -> Tuple[int, int, int, int]:
    """
    Derive the four words that unlock trusted operations.

    The MAC of the four-byte counter at mac_hash[16:20], keyed with
    mac_hash[:16], read as four big-endian 32-bit words.
    """
    start = defs.MAC_COUNTER_OFFSET
    tag = mac(bytes(mac_hash[:defs.MAC_KEY_LENGTH]),
              bytes(mac_hash[start:start + defs.MAC_COUNTER_LENGTH]))
    return struct.unpack('>4I', tag)
