"""Host side of the MTPZ handshake."""

import hmac
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Tuple

from .. import definitions as defs
from ..encryption import RsaEngine, cipher_chain
from ..errors import AuthenticationError, MtpzError, TransportError
from ..event_emitter import EventEmitter
from ..key_material import KeyMaterial
from ..utils import random_nonce
from .base import HandshakeResult, HandshakeSession, HandshakeState, MtpzTransport
from .messages import (
    build_application_certificate_message,
    build_confirmation_message,
    decode_response_payload,
    parse_handshake_response,
    trusted_operation_words,
    unwrap_session_key
)

_LOGGER = logging.getLogger(__name__)


class HandshakeOrchestrator:
    """
    Runs one handshake attempt against a transport.

    States advance IDLE -> RESET -> CERT_SENT -> RESPONSE_VALIDATED ->
    CONFIRMED -> SESSION_OPEN. Any error moves to FAILED, wipes the session
    secrets and is re-raised with error.state set to the step that failed.
    Nothing is retried; create a new orchestrator for another attempt.

    Example:
        orchestrator = HandshakeOrchestrator(transport, key_material)
        result = orchestrator.run()
        print(result.trusted_words)
    """

    def __init__(self, transport: MtpzTransport, key_material: KeyMaterial,
                 nonce_factory: Callable[[], bytes] = random_nonce,
                 emitter: Optional[EventEmitter] = None):
        """
        Initialize the orchestrator.

        Args:
            transport: Device connection
            key_material: Provisioned application keys
            nonce_factory: Source of the 16-byte host nonce
            emitter: Receives a 'state' event on every transition
        """
        self._transport = transport
        self._key_material = key_material
        self._nonce_factory = nonce_factory
        self._emitter = emitter
        self._state = HandshakeState.IDLE
        self._rsa: Optional[RsaEngine] = None
        self._nonce_verified = False

    @property
    def state(self) -> HandshakeState:
        """Get the current handshake state."""
        return self._state

    def _transition(self, state: HandshakeState) -> None:
        _LOGGER.debug("Handshake state %s -> %s", self._state.value, state.value)
        self._state = state
        if self._emitter is not None:
            self._emitter.emit('state', state)

    @contextmanager
    def _step(self, state: HandshakeState) -> Iterator[None]:
        # Tag errors with the step that raised them, advance on success
        try:
            yield
        except MtpzError as e:
            if e.state is None:
                e.state = state
            raise
        self._transition(state)

    def _check(self, status: int, operation: str) -> None:
        if status != defs.PTP_RC_OK:
            raise TransportError(f"{operation} failed with status {status:#06x}", status=status)

    def run(self) -> HandshakeResult:
        """
        Perform the handshake.

        Returns:
            HandshakeResult with the words passed to enable_trusted_operations

        Raises:
            MtpzError: Any failure; the subclass tells what went wrong
        """
        if self._state is not HandshakeState.IDLE:
            raise MtpzError("Handshake already attempted, use a new orchestrator",
                            state=self._state)

        try:
            with HandshakeSession() as session:
                with self._step(HandshakeState.RESET):
                    self._reset()
                with self._step(HandshakeState.CERT_SENT):
                    self._send_application_certificate(session)
                with self._step(HandshakeState.RESPONSE_VALIDATED):
                    self._validate_response(session)
                with self._step(HandshakeState.CONFIRMED):
                    self._send_confirmation(session)
                with self._step(HandshakeState.SESSION_OPEN):
                    words = self._open_session(session)
        except Exception as e:
            _LOGGER.info("(MTPZ) Failure - %s", e)
            self._transition(HandshakeState.FAILED)
            raise
        finally:
            self._rsa = None

        return HandshakeResult(state=self._state, nonce_verified=self._nonce_verified,
                               trusted_words=words)

    def _reset(self) -> None:
        _LOGGER.info("(MTPZ) Resetting handshake.")
        self._check(self._transport.reset_handshake(), "Reset handshake")

    def _send_application_certificate(self, session: HandshakeSession) -> None:
        _LOGGER.info("(MTPZ) Sending application certificate message.")
        nonce = self._nonce_factory()
        if len(nonce) != defs.NONCE_LENGTH:
            raise ValueError(f"Nonce factory returned {len(nonce)} bytes, "
                             f"expected {defs.NONCE_LENGTH}")
        session.nonce[:] = nonce

        self._rsa = RsaEngine.from_key_material(self._key_material)
        message = build_application_certificate_message(
            self._key_material, bytes(session.nonce), self._rsa)
        self._check(self._transport.send_request(message), "Send application certificate")

    def _validate_response(self, session: HandshakeSession) -> None:
        _LOGGER.info("(MTPZ) Getting and validating handshake response.")
        data, status = self._transport.get_response()
        self._check(status, "Get handshake response")

        frame = parse_handshake_response(data)

        blob = bytearray(self._rsa.decrypt(frame.key_blob, defs.RSA_BLOCK_LENGTH))
        try:
            session.session_key[:] = unwrap_session_key(bytes(blob))
        finally:
            blob[:] = bytes(len(blob))

        plaintext = bytearray(cipher_chain(bytes(session.session_key), frame.payload, False))
        try:
            payload = decode_response_payload(bytes(plaintext))
        finally:
            plaintext[:] = bytes(len(plaintext))

        if not hmac.compare_digest(payload.random_echo, bytes(session.nonce)):
            raise AuthenticationError("Device did not echo the handshake nonce")
        self._nonce_verified = True

        session.mac_hash[:] = payload.mac_hash
        _LOGGER.debug("Device MAC counter %s", session.mac_counter.hex())

    def _send_confirmation(self, session: HandshakeSession) -> None:
        _LOGGER.info("(MTPZ) Sending confirmation message.")
        message = build_confirmation_message(bytes(session.mac_hash))
        self._check(self._transport.send_request(message), "Send confirmation")

    def _open_session(self, session: HandshakeSession) -> Tuple[int, int, int, int]:
        _LOGGER.info("(MTPZ) Opening secure sync session.")
        words = trusted_operation_words(bytes(session.mac_hash))
        self._check(self._transport.enable_trusted_operations(*words),
                    "Enable trusted operations")
        return words
