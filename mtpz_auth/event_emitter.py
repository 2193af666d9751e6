"""Event emitter used to report handshake progress."""

from typing import Callable, Optional

from pyee import EventEmitter as PyeeEventEmitter


class EventEmitter(PyeeEventEmitter):
    """Synchronous pyee emitter with an off() that mirrors on()."""

    def off(self, event: str, handler: Optional[Callable] = None) -> None:
        """
        Unregister a handler, or every handler for event when None.

        Args:
            event: Event name
            handler: Handler previously passed to on()
        """
        if handler is None:
            self.remove_all_listeners(event)
        elif handler in self.listeners(event):
            self.remove_listener(event, handler)
