"""Exceptions raised while talking to a Hue Bridge."""

from typing import Optional

# Bridge error types from the v1 API error envelope.
UNAUTHORIZED_USER = 1
LINK_BUTTON_NOT_PRESSED = 101


class HueError(Exception):
    """Base class for all bridge errors."""

    def __init__(self, message: str, address: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.address = address
        self.attempts = 1

    def __str__(self) -> str:
        text = self.message
        if self.address:
            text = f"{text} [{self.address}]"
        if self.attempts > 1:
            text = f"{text} (after {self.attempts} attempts)"
        return text


class AuthenticationError(HueError):
    """No token is set, or the bridge rejected it."""


class LinkButtonPendingError(HueError):
    """Registration attempted before the link button was pressed."""

    def __init__(self, address: Optional[str] = None):
        super().__init__(
            "Link button not pressed. Press the link button on the Hue Bridge "
            "and register again.",
            address,
        )


class ProtocolError(HueError):
    """The bridge answered with an error object or an unusable payload."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        error_type: Optional[int] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, address)
        self.error_type = error_type
        self.status_code = status_code


class TransportError(HueError):
    """The request never got a response (refused, reset, timed out)."""

    def __init__(
        self,
        message: str,
        address: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message, address)
        self.cause = cause


class ServerBusyError(HueError):
    """HTTP 5xx, 408 or 429 from the bridge."""

    def __init__(self, status_code: int, address: Optional[str] = None):
        super().__init__(f"Bridge responded with HTTP {status_code}", address)
        self.status_code = status_code


class CacheError(HueError):
    """A cache backend failed to read or write."""


def error_from_envelope(error: dict, address: Optional[str] = None) -> HueError:
    """
    Map a bridge ``{"type", "address", "description"}`` error object to an exception.

    Args:
        error: The ``error`` member of a bridge response item.
        address: Bridge address, used when the error carries no resource path.

    Returns:
        The matching HueError subclass instance (not raised).
    """
    error_type = error.get("type")
    description = error.get("description") or "Unknown bridge error"
    resource = error.get("address") or address

    if error_type == LINK_BUTTON_NOT_PRESSED:
        return LinkButtonPendingError(address)
    if error_type == UNAUTHORIZED_USER:
        return AuthenticationError(description, resource)
    return ProtocolError(description, resource, error_type=error_type)
