"""
Taskline exception hierarchy.

All custom exceptions inherit from TasklineException so callers can
catch a single base type when they want a broad safety net.
"""


class TasklineException(Exception):
    """Base exception for all Taskline errors."""


class ConfigurationError(TasklineException, ValueError):
    """Raised when configuration is invalid or cannot be loaded."""


class InvalidInputError(TasklineException, ValueError):
    """Raised when raw input is not text or is empty."""


class FallbackError(TasklineException):
    """Raised when the slow interpretation service cannot answer."""


class FallbackTimeout(FallbackError):
    """Raised when the interpretation service exceeds its time bound."""


class FallbackUnavailable(FallbackError):
    """Raised when the interpretation service errors or returns garbage."""


class ProtocolError(TasklineException):
    """Raised when an IPC frame cannot be decoded or is too large."""


class ResidentError(TasklineException):
    """Raised for resident-process lifecycle failures."""


class ResidentNotRunningError(ResidentError):
    """Raised when no resident process is listening on the socket."""


class ShuttingDownError(ResidentError):
    """Raised when the resident process rejects work during shutdown."""


class StorageError(TasklineException):
    """Raised when the persistence collaborator fails."""
