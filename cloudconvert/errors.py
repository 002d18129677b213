"""
Error types raised or delivered by the CloudConvert client.

Every asynchronous operation resolves its completion handler with exactly one
of these (or None on success). CancelledByUser only unwinds cancelled
transfers internally and is never delivered to a caller.
"""

from typing import Optional


class CloudConvertError(Exception):
    """Base class for all client errors."""

    def __init__(self, message: str = "Unknown error"):
        super().__init__(message)
        self.message = message


class TransportFailure(CloudConvertError):
    """Exception raised when a request fails at network or HTTP level."""

    def __init__(self, message: str = "Unknown error", status_code: Optional[int] = None):
        self.status_code = status_code
        if status_code is not None:
            message = f"HTTP {status_code}: {message}"
        super().__init__(message)


class ServerRejected(TransportFailure):
    """
    Exception raised when the API answers with a non-2xx status and an
    error message, or when a process reports the "error" step.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.server_message = message
        super().__init__(message, status_code=status_code)


class InvalidState(CloudConvertError):
    """Exception raised when an operation is attempted without its prerequisite."""


class OutputUnavailable(InvalidState):
    """Exception raised when a download is requested but no output url is known."""

    def __init__(self, message: str = "Output file not yet available!"):
        super().__init__(message)


class CancelledByUser(CloudConvertError):
    """Raised inside a transfer after its operation was cancelled."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)
