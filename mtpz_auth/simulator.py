"""Software MTPZ device for tests and demos.

SimulatedMtpzDevice implements the device end of the handshake on top of
the MtpzTransport contract: it checks the host's signature with the
application public key, answers with an RSA-wrapped session key and an
encrypted payload, and only enables trusted operations after a valid
confirmation MAC.
"""

import logging
import secrets
import struct
from typing import Callable, Dict, List, Optional, Tuple

from cryptography.hazmat.primitives.asymmetric import rsa

from . import definitions as defs
from .encryption import RsaEngine, cipher_chain, digest, expand, mac
from .errors import AuthenticationError, CryptographicError, FramingError, MtpzError
from .key_material import KeyMaterial
from .protocols.messages import SIGNED_REGION_END, SIGNED_REGION_START, encode_signature_block
from .utils import xor_bytes

_LOGGER = logging.getLogger(__name__)

SYNTHETIC_KEY_SIZE = 1024
SYNTHETIC_PUBLIC_EXPONENT = 65537


def synthetic_key_material(certificates: Optional[bytes] = None) -> KeyMaterial:
    """
    Generate throwaway key material.

    Only for tests and the CLI demo; real devices reject it.

    Args:
        certificates: Certificate blob, random 0x275 bytes when None

    Returns:
        KeyMaterial backed by a fresh 1024-bit RSA key
    """
    private_key = rsa.generate_private_key(public_exponent=SYNTHETIC_PUBLIC_EXPONENT,
                                           key_size=SYNTHETIC_KEY_SIZE)
    numbers = private_key.private_numbers()
    if certificates is None:
        certificates = secrets.token_bytes(defs.CERTIFICATES_LENGTH)

    return KeyMaterial(
        public_exponent=format(numbers.public_numbers.e, 'x'),
        encryption_key=secrets.token_bytes(defs.ENCRYPTION_KEY_LENGTH),
        modulus=format(numbers.public_numbers.n, 'x'),
        private_key=format(numbers.d, 'x'),
        certificates=bytes(certificates),
    )


class SimulatedMtpzDevice:
    """
    In-memory device speaking the MTPZ handshake.

    Knobs for fault injection:
        corrupt_nonce: Echo a different nonce than the host sent
        payload_length: Length marker written before the payload
        response_marker: First two bytes of the response
        statuses: Forced status per operation name ('reset_handshake',
                  'send_request', 'get_response', 'enable_trusted_operations')

    Attributes:
        requests: Every message received through send_request
        trusted: True once trusted operations were enabled
        last_error: Why the last rejected request was rejected
    """

    def __init__(self, key_material: KeyMaterial,
                 corrupt_nonce: bool = False,
                 payload_length: int = defs.RESPONSE_PAYLOAD_LENGTH,
                 response_marker: bytes = defs.RESPONSE_MARKER,
                 device_certificates: bytes = b'\x00' * 64,
                 statuses: Optional[Dict[str, int]] = None,
                 random_bytes: Callable[[int], bytes] = secrets.token_bytes):
        self._rsa = RsaEngine.from_public_numbers(int(key_material.modulus, 16),
                                                  int(key_material.public_exponent, 16))
        self.corrupt_nonce = corrupt_nonce
        self.payload_length = payload_length
        self.response_marker = response_marker
        self.device_certificates = device_certificates
        self.statuses: Dict[str, int] = dict(statuses or {})
        self._random_bytes = random_bytes

        self.requests: List[bytes] = []
        self.trusted = False
        self.last_error: Optional[MtpzError] = None
        self.trusted_words: Optional[Tuple[int, int, int, int]] = None
        self._response: Optional[bytes] = None
        self._mac_hash: Optional[bytes] = None
        self._confirmed = False

    @property
    def mac_hash(self) -> Optional[bytes]:
        """MAC-hash handed to the host in the last response."""
        return self._mac_hash

    def _status(self, operation: str) -> int:
        return self.statuses.get(operation, defs.PTP_RC_OK)

    def _reject(self, error: MtpzError) -> int:
        _LOGGER.warning("Simulated device rejected request: %s", error)
        self.last_error = error
        return defs.PTP_RC_GENERAL_ERROR

    def reset_handshake(self) -> int:
        self._response = None
        self._mac_hash = None
        self._confirmed = False
        self.trusted = False
        self.trusted_words = None
        self.last_error = None
        return self._status('reset_handshake')

    def send_request(self, data: bytes) -> int:
        data = bytes(data)
        self.requests.append(data)
        status = self._status('send_request')
        if status != defs.PTP_RC_OK:
            return status

        try:
            if data.startswith(defs.CERT_MESSAGE_HEADER):
                self._handle_certificate_message(data)
            elif data.startswith(defs.CONFIRMATION_MARKER):
                self._handle_confirmation(data)
            else:
                raise FramingError(f"Unknown request starting with {data[:4].hex()}")
        except MtpzError as e:
            return self._reject(e)
        return defs.PTP_RC_OK

    def get_response(self) -> Tuple[bytes, int]:
        status = self._status('get_response')
        if status != defs.PTP_RC_OK:
            return b'', status
        if self._response is None:
            return b'', defs.PTP_RC_GENERAL_ERROR
        return self._response, defs.PTP_RC_OK

    def enable_trusted_operations(self, w0: int, w1: int, w2: int, w3: int) -> int:
        status = self._status('enable_trusted_operations')
        if status != defs.PTP_RC_OK:
            return status
        if not self._confirmed:
            return self._reject(AuthenticationError("Trusted operations requested before confirmation"))

        counter = self._mac_hash[defs.MAC_COUNTER_OFFSET:defs.MAC_COUNTER_OFFSET + defs.MAC_COUNTER_LENGTH]
        expected = struct.unpack('>4I', mac(self._mac_hash[:defs.MAC_KEY_LENGTH], counter))
        if (w0, w1, w2, w3) != expected:
            return self._reject(AuthenticationError("Trusted operation words do not match"))

        self.trusted = True
        self.trusted_words = expected
        return defs.PTP_RC_OK

    def _handle_certificate_message(self, data: bytes) -> None:
        if len(data) != defs.CERT_MESSAGE_LENGTH:
            raise FramingError(f"Certificate message is {len(data)} bytes, "
                               f"expected {defs.CERT_MESSAGE_LENGTH}")

        signature = data[-defs.RSA_BLOCK_LENGTH:]
        try:
            recovered = self._rsa.public_transform(signature, defs.RSA_BLOCK_LENGTH)
        except CryptographicError as e:
            raise AuthenticationError(f"Application certificate signature unusable: {e}") from e
        expected = encode_signature_block(digest(data[SIGNED_REGION_START:SIGNED_REGION_END]))
        if recovered != expected:
            raise AuthenticationError("Application certificate signature does not verify")

        nonce_offset = (len(defs.CERT_MESSAGE_HEADER) + defs.CERTIFICATES_LENGTH
                        + len(defs.CERT_MESSAGE_NONCE_MARKER))
        nonce = data[nonce_offset:nonce_offset + defs.NONCE_LENGTH]
        self._response = self._build_response(nonce)
        self._confirmed = False

    def _wrap_session_key(self, session_key: bytes) -> bytes:
        # Inverse of the host's unmasking: data is masked by the seed,
        # then the seed is masked by the masked data
        seed = self._random_bytes(defs.KEY_BLOB_SEED_LENGTH)
        data = bytearray(defs.KEY_BLOB_DATA_LENGTH)
        data[-defs.SESSION_KEY_LENGTH:] = session_key

        masked_data = xor_bytes(bytes(data), expand(seed, defs.KEY_BLOB_DATA_LENGTH))
        masked_seed = xor_bytes(seed, expand(masked_data, defs.KEY_BLOB_SEED_LENGTH))
        block = b'\x00' + masked_seed + masked_data
        return self._rsa.encrypt(block, defs.RSA_BLOCK_LENGTH)

    def _build_payload(self, nonce: bytes) -> bytes:
        echo = bytes(b ^ 0xFF for b in nonce) if self.corrupt_nonce else nonce
        device_random = self._random_bytes(defs.NONCE_LENGTH)
        device_signature = self._random_bytes(defs.RSA_BLOCK_LENGTH)

        payload = bytearray(b'\x00')
        payload += struct.pack('>I', len(self.device_certificates)) + self.device_certificates
        payload += struct.pack('>H', len(echo)) + echo
        payload += struct.pack('>H', len(device_random)) + device_random
        payload += b'\x00'
        payload += struct.pack('>H', len(device_signature)) + device_signature
        payload += b'\x00'
        payload += struct.pack('>H', len(self._mac_hash)) + self._mac_hash

        if len(payload) > defs.RESPONSE_PAYLOAD_LENGTH:
            raise ValueError("Device certificates too long for the response payload")
        return bytes(payload.ljust(defs.RESPONSE_PAYLOAD_LENGTH, b'\x00'))

    def _build_response(self, nonce: bytes) -> bytes:
        session_key = self._random_bytes(defs.SESSION_KEY_LENGTH)
        self._mac_hash = self._random_bytes(defs.MAC_HASH_LENGTH)

        key_blob = self._wrap_session_key(session_key)
        payload = cipher_chain(session_key, self._build_payload(nonce), True)

        return (self.response_marker + b'\x00' + bytes([defs.RESPONSE_KEY_BLOB_MARKER])
                + key_blob + b'\x00\x00' + struct.pack('>H', self.payload_length) + payload)

    def _handle_confirmation(self, data: bytes) -> None:
        if self._mac_hash is None:
            raise AuthenticationError("Confirmation received before a handshake response")
        if len(data) != defs.CONFIRMATION_LENGTH:
            raise FramingError(f"Confirmation is {len(data)} bytes, "
                               f"expected {defs.CONFIRMATION_LENGTH}")

        expected = mac(self._mac_hash[:defs.MAC_KEY_LENGTH], defs.CONFIRMATION_SEED)
        if data[len(defs.CONFIRMATION_MARKER):] != expected:
            raise AuthenticationError("Confirmation MAC does not match")
        self._confirmed = True
