"""MTPZ handshake protocol implementation."""

from .base import (
    HandshakeResult,
    HandshakeSession,
    HandshakeState,
    MessageReader,
    MtpzTransport
)
from .messages import (
    ResponseFrame,
    ResponsePayload,
    build_application_certificate_message,
    build_confirmation_message,
    decode_response_payload,
    encode_signature_block,
    parse_handshake_response,
    sign_certificate_body,
    trusted_operation_words,
    unwrap_session_key
)
from .handshake import HandshakeOrchestrator

__all__ = [
    'HandshakeResult',
    'HandshakeSession',
    'HandshakeState',
    'MessageReader',
    'MtpzTransport',
    'ResponseFrame',
    'ResponsePayload',
    'build_application_certificate_message',
    'build_confirmation_message',
    'decode_response_payload',
    'encode_signature_block',
    'parse_handshake_response',
    'sign_certificate_body',
    'trusted_operation_words',
    'unwrap_session_key',
    'HandshakeOrchestrator'
]
