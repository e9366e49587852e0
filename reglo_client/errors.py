"""Error taxonomy shared by the API adapter and the coordinators.

Coordinators catch these at their public boundary and turn them into
toasts; only session bootstrap/refresh failures reset local state.
"""

from typing import Any, Optional


class RegloError(Exception):
    """Base error for everything raised by this package."""


class NetworkError(RegloError):
    """Transport or backend failure. The user may retry the same action."""


class BackendConnectionError(NetworkError):
    """Raised when the backend cannot be reached or times out."""


class BackendAuthError(NetworkError):
    """Raised when the backend rejects the credentials."""


class BackendRequestError(NetworkError):
    """Raised for non-auth backend errors and failed response envelopes."""

    def __init__(self, message: str, status: Optional[int] = None, payload: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.payload = payload


class ValidationError(RegloError):
    """Local precondition failure, detected before any network call."""


class StateInconsistency(RegloError):
    """Company or role resolution failed; the session cannot continue."""


class DomainConflict(RegloError):
    """The backend refused an action because the world moved on.

    Examples are a slot claimed by another student or a proposal that is
    no longer pending. Shown as information, never as a failure.
    """
