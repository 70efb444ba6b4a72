"""
Domain-specific exception hierarchy for the free time analyzer.
"""


class FreeTimeError(Exception):
    """Base class for all application-level errors."""


class AccessError(FreeTimeError):
    """Raised when calendar data may not be read."""

    default_message = "Calendar access was not granted."

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class AccessDeniedError(AccessError):
    """The user refused calendar access."""

    default_message = "Calendar access was denied. Please enable access in Settings."


class AccessRestrictedError(AccessError):
    """Calendar access is blocked by a policy outside the user's control."""

    default_message = "Calendar access is restricted on this device."


class AccessWriteOnlyError(AccessError):
    """Events may be written but not read."""

    default_message = "Calendar access is write-only on this device."


class ProviderFailure(FreeTimeError):
    """Raised when calendar data cannot be fetched or parsed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidWindowError(FreeTimeError, ValueError):
    """Raised when a working window cannot be resolved to valid instants."""


class AuthenticationError(FreeTimeError):
    """Raised when authentication or token handling fails."""
