"""
Layout composition and synchronization engine for the signage console.

This package provides:
- Layout presets and the per-device slot model
- The editor session that saves a device's layout descriptor
- Best-effort propagation of a layout across a device group
- Reconciliation of link records, descriptors and live status into device rows

Base exception classes are defined here for consistent error handling
across all console modules.

Example:
    from src.console import ConsoleClientError
    from src.console.api_client import ConsoleAPIClient

    try:
        client = ConsoleAPIClient.from_config()
        client.get_layout('device-01')
    except ConsoleClientError as e:
        logger.error("Collaborator call failed: %s", e)
"""

from typing import Optional


class ServiceError(Exception):
    """
    Base exception for all console errors.

    All console-specific exceptions inherit from this class
    so any console error can be caught with a single except clause.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ConsoleClientError(ServiceError):
    """
    Exception raised when a collaborator API call fails.

    This includes network errors, authentication failures,
    timeout errors and unexpected API responses.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code
        self.response_body = response_body


class ConsoleAuthenticationError(ConsoleClientError):
    """
    Exception raised when the collaborator rejects our credentials (401/403).
    """

    pass


class ConsoleNotFoundError(ConsoleClientError):
    """
    Exception raised when the requested resource does not exist (404).
    """

    pass


class ConsoleTimeoutError(ConsoleClientError):
    """
    Exception raised when a collaborator request times out.
    """

    pass


class ConsoleConnectionError(ConsoleClientError):
    """
    Exception raised when the collaborator cannot be reached.

    This indicates network-level failures such as
    DNS resolution failures or connection refused.
    """

    pass


class LayoutValidationError(ServiceError):
    """
    Exception raised for an invalid local edit.

    Out-of-range slots, rotation on an empty slot, bad rotation values,
    unknown presets and unknown catalog items all end up here. Raised
    before any network call is made.
    """

    pass


class EditorSessionClosedError(ServiceError):
    """
    Exception raised when a closed editor session is asked to save.
    """

    pass


__all__ = [
    'ServiceError',
    'ConsoleClientError',
    'ConsoleAuthenticationError',
    'ConsoleNotFoundError',
    'ConsoleTimeoutError',
    'ConsoleConnectionError',
    'LayoutValidationError',
    'EditorSessionClosedError',
]
