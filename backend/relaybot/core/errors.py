"""
Error taxonomy for backend dispatch and response decoding.
"""
from typing import Optional


class RelayError(Exception):
    """Base class for relay errors."""


class NoBackendsConfiguredError(RelayError):
    """Raised at startup when a backend pool has no endpoints."""


class BackendError(RelayError):
    """
    Raised when every retry round of a dispatch has been used up.

    Attributes:
        last_error: The last per-attempt error observed, if any.
        exhausted_without_error: True when the budget ran out only because
            no endpoint was ever available (pool permanently saturated).
    """

    def __init__(
        self,
        message: str,
        last_error: Optional[BaseException] = None,
        exhausted_without_error: bool = False
    ):
        super().__init__(message)
        self.last_error = last_error
        self.exhausted_without_error = exhausted_without_error


class MalformedResponseError(RelayError):
    """Raised when a backend body is not the expected JSON-lines stream."""
