"""Exceptions raised by the MTPZ handshake."""

from typing import Optional


class MtpzError(Exception):
    """Base class for all MTPZ errors.

    Attributes:
        state: Handshake state the error was raised in, if known
    """

    def __init__(self, message: str, state=None):
        super().__init__(message)
        self.state = state


class ProvisioningError(MtpzError):
    """Key material is missing or malformed."""


class FramingError(MtpzError):
    """A message has an unexpected marker byte or declared length."""


class CryptographicError(MtpzError):
    """An RSA operation failed or a key could not be built."""


class AuthenticationError(MtpzError):
    """The peer failed to prove knowledge of the session secrets.

    Raised on a nonce echo mismatch. Never retried: it may indicate
    tampering or a replayed response.
    """


class TransportError(MtpzError):
    """The transport reported a non-OK PTP response code."""

    def __init__(self, message: str, status: Optional[int] = None, state=None):
        super().__init__(message, state)
        self.status = status
