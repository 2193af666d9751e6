"""High level MTPZ device wrapper."""

import logging
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import MtpzError, ProvisioningError
from .event_emitter import EventEmitter
from .key_material import KeyMaterial, check_key_material, load_key_material
from .protocols import HandshakeOrchestrator, HandshakeResult, MtpzTransport

_LOGGER = logging.getLogger(__name__)


class MtpzDevice:
    """
    MTPZ authentication for one connected device.

    Key material is taken as given or loaded from disk, and its RSA key is
    checked once before the first handshake. When none is usable the
    feature is disabled: authenticate() returns False and a 'disabled'
    event is emitted instead of raising.

    Example:
        device = MtpzDevice(transport)
        device.on('state', lambda state: print(f"Handshake: {state.value}"))
        device.on('failed', lambda error: print(f"Failed: {error}"))

        if device.authenticate():
            print("Trusted operations enabled")
    """

    def __init__(self, transport: MtpzTransport,
                 key_material: Optional[KeyMaterial] = None,
                 key_path: Optional[Union[str, Path]] = None):
        """
        Initialize the device wrapper.

        Args:
            transport: Device connection
            key_material: Provisioned keys; loaded from key_path when None
            key_path: Key-material file, default location when None
        """
        self._transport = transport
        self._key_material = key_material
        self._key_path = key_path
        self._key_resolved = False
        self._event_emitter = EventEmitter()
        self._trusted = False
        self._last_result: Optional[HandshakeResult] = None
        self._last_error: Optional[MtpzError] = None

    def on(self, event: str, handler: Callable):
        """
        Register event handler.

        Events:
        - 'state': Handshake state changed (HandshakeState)
        - 'authenticated': Handshake completed (HandshakeResult)
        - 'failed': Handshake aborted (MtpzError)
        - 'disabled': No usable key material (None)

        Args:
            event: Event name
            handler: Handler function
        """
        self._event_emitter.on(event, handler)

    def off(self, event: str, handler: Callable = None):
        """
        Unregister event handler.

        Args:
            event: Event name
            handler: Handler to remove, or None to remove all
        """
        self._event_emitter.off(event, handler)

    @property
    def is_trusted(self) -> bool:
        """Check if trusted operations were enabled by the last handshake."""
        return self._trusted

    @property
    def last_result(self) -> Optional[HandshakeResult]:
        return self._last_result

    @property
    def last_error(self) -> Optional[MtpzError]:
        return self._last_error

    @property
    def key_material(self) -> Optional[KeyMaterial]:
        """Get usable key material, loading and checking it on first use."""
        if not self._key_resolved:
            self._key_resolved = True
            if self._key_material is None:
                self._key_material = load_key_material(self._key_path)
            else:
                try:
                    check_key_material(self._key_material)
                except ProvisioningError as e:
                    _LOGGER.error("%s, MTPZ disabled.", e)
                    self._key_material = None
        return self._key_material

    def authenticate(self) -> bool:
        """
        Run a fresh handshake.

        Returns:
            True if the device enabled trusted operations
        """
        self._trusted = False
        self._last_result = None
        self._last_error = None

        key_material = self.key_material
        if key_material is None:
            _LOGGER.debug("MTPZ key material unavailable, skipping authentication")
            self._event_emitter.emit('disabled', None)
            return False

        orchestrator = HandshakeOrchestrator(self._transport, key_material,
                                             emitter=self._event_emitter)
        try:
            result = orchestrator.run()
        except MtpzError as e:
            _LOGGER.error("MTPZ authentication failed in %s: %s",
                          e.state.value if e.state else "unknown state", e)
            self._last_error = e
            self._event_emitter.emit('failed', e)
            return False

        self._trusted = True
        self._last_result = result
        self._event_emitter.emit('authenticated', result)
        return True
