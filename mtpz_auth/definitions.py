"""MTPZ handshake wire definitions and constants."""

from typing import List

# PTP response codes returned by the transport
PTP_RC_OK = 0x2001
PTP_RC_GENERAL_ERROR = 0x2002

# Key material file
MTPZ_DATA_FILENAME = ".mtpz-data"
MTPZ_DATA_ENV = "MTPZ_DATA"
KEY_MATERIAL_RECORDS: List[str] = [
    "public exponent",
    "encryption key",
    "modulus",
    "private key",
    "certificates",
]
MAX_PUBLIC_EXPONENT_DIGITS = 6
MAX_RSA_HEX_DIGITS = 256

# Sizes (bytes)
ENCRYPTION_KEY_LENGTH = 16
NONCE_LENGTH = 16
SESSION_KEY_LENGTH = 16
MAC_LENGTH = 16
MAC_HASH_LENGTH = 20
RSA_BLOCK_LENGTH = 128

# Application certificate message
CERTIFICATES_LENGTH = 0x275
CERT_MESSAGE_HEADER = bytes([0x02, 0x01, 0x01, 0x00, 0x00, 0x02, 0x75])
CERT_MESSAGE_NONCE_MARKER = bytes([0x00, 0x10])
CERT_MESSAGE_SIGNATURE_MARKER = bytes([0x01, 0x00, 0x80])
CERT_MESSAGE_LENGTH = (
    len(CERT_MESSAGE_HEADER) + CERTIFICATES_LENGTH + len(CERT_MESSAGE_NONCE_MARKER)
    + NONCE_LENGTH + len(CERT_MESSAGE_SIGNATURE_MARKER) + RSA_BLOCK_LENGTH
)  # 785

# Signature encoding
SIGNATURE_HASH_PREFIX_LENGTH = 8
SIGNATURE_MASK_LENGTH = 107
SIGNATURE_SEPARATOR = 0x01
SIGNATURE_TRAILER = 0xBC

# Device handshake response
RESPONSE_MARKER = bytes([0x02, 0x02])
RESPONSE_KEY_BLOB_MARKER = 0x80
RESPONSE_PAYLOAD_LENGTH = 0x0340  # 832
RESPONSE_LENGTH = 2 + 1 + 1 + RSA_BLOCK_LENGTH + 2 + 2 + RESPONSE_PAYLOAD_LENGTH  # 1098

# Session key unwrapping offsets inside the decrypted RSA blob
KEY_BLOB_SEED_OFFSET = 1
KEY_BLOB_SEED_LENGTH = 20
KEY_BLOB_DATA_OFFSET = 21
KEY_BLOB_DATA_LENGTH = 107
KEY_BLOB_SESSION_KEY_OFFSET = 112

# Confirmation message
CONFIRMATION_MARKER = bytes([0x02, 0x03, 0x00, 0x10])
CONFIRMATION_SEED = bytes(15) + b"\x01"
CONFIRMATION_LENGTH = len(CONFIRMATION_MARKER) + MAC_LENGTH  # 20

# Offsets inside the device MAC-hash
MAC_KEY_LENGTH = 16
MAC_COUNTER_OFFSET = 16
MAC_COUNTER_LENGTH = 4
