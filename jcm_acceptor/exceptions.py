"""
Custom exceptions for the bill acceptor controller.

Provides a hierarchy of typed exceptions for better error handling
and more informative error messages.
"""

from typing import Any, Optional


class AcceptorError(Exception):
    """Base exception for all acceptor controller errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """
        Initialize the exception.

        Args:
            message: Human-readable error message.
            code: Optional error code for programmatic handling.
            details: Optional additional error details.
        """
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for reporting."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# Device Errors
# =============================================================================


class DeviceError(AcceptorError):
    """Base exception for device-related errors."""

    def __init__(
        self,
        message: str,
        device_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.device_name = device_name
        if device_name:
            self.details["device"] = device_name


class DeviceFault(DeviceError):
    """
    The acceptor reported a failure-category status.

    Fatal for the polling loop: the controller must be restarted after
    operator or hardware intervention.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        sub_code: Optional[int] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.sub_code = sub_code
        if status_code is not None:
            self.details["status"] = f"0x{status_code:02X}"
        if sub_code is not None:
            self.details["sub_code"] = f"0x{sub_code:02X}"


class PollingInProgressError(DeviceError):
    """A polling loop is already running for this acceptor."""

    def __init__(
        self,
        message: str = "Polling loop already running",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)


class TransportError(DeviceError):
    """Error opening, reading from or writing to the serial link."""

    pass


class TransportTimeoutError(TransportError):
    """A link read or write did not complete in time."""

    pass


# =============================================================================
# Frame Errors
# =============================================================================


class FrameError(AcceptorError):
    """Base exception for frame decoding errors."""

    pass


class FrameCRCError(FrameError):
    """Computed CRC does not match the CRC carried by the frame."""

    def __init__(
        self,
        message: str,
        expected: bytes = b'',
        received: bytes = b'',
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.details["expected"] = expected.hex()
        self.details["received"] = received.hex()


class FrameFormatError(FrameError):
    """Frame is truncated or has an invalid sync/length header."""

    pass
