"""Exception hierarchy for sfautoauth.

All exceptions inherit from :class:`SfAutoAuthError`, which carries a
``status_code`` attribute holding the HTTP status reported to the caller.
The FastAPI exception handler in :mod:`sfautoauth.server` translates any
``SfAutoAuthError`` into a ``{"success": false, "error": ...}`` response,
and the CLI entry point in :func:`sfautoauth.app.main` maps it to an exit
code.

Subclass hierarchy::

    SfAutoAuthError           (500)
    +-- ValidationError       (400)
    |   +-- MissingFieldError
    |   +-- InvalidDomainError
    +-- CredentialRejectedError (401)
    +-- AcquisitionError      (500)
    +-- AutomationError       (500)
    |   +-- ElementNotFoundError
    |   +-- NavigationError
    +-- CaptureFailedError    (500)
    +-- InternalError         (500)

``user_facing`` controls whether the message may be echoed to the HTTP
client. Classes where it is ``False`` have their detail logged and replaced
by :attr:`SfAutoAuthError.public_message`.
"""

from __future__ import annotations

from http import HTTPStatus

from sfautoauth.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_AUTOMATION_ERROR,
    EXIT_CAPTURE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
)


class SfAutoAuthError(Exception):
    """Base exception for all sfautoauth errors.

    Args:
        message: Human-readable error description.
        status_code: Optional override for the class-level HTTP status.
    """

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    exit_code: int = EXIT_GENERIC_FAILURE
    user_facing: bool = False
    public_message: str = "Internal server error."

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def client_message(self) -> str:
        """Return the message that is safe to send to the HTTP client."""
        if self.user_facing:
            return self.message
        return self.public_message


class ValidationError(SfAutoAuthError):
    """Raised when a request field is missing or malformed."""

    status_code = HTTPStatus.BAD_REQUEST
    exit_code = EXIT_INVALID_USAGE
    user_facing = True


class MissingFieldError(ValidationError):
    """Raised when a credential field is absent or empty after normalisation."""


class InvalidDomainError(ValidationError):
    """Raised when the login domain is neither a canonical host nor a My Domain."""


class CredentialRejectedError(SfAutoAuthError):
    """Raised when the login page shows its error indicator after submission."""

    status_code = HTTPStatus.UNAUTHORIZED
    exit_code = EXIT_AUTH_FAILURE
    user_facing = True


class AcquisitionError(SfAutoAuthError):
    """Raised when the browser automation engine cannot be started."""

    exit_code = EXIT_AUTOMATION_ERROR
    public_message = "Failed to build Selenium Chrome instance."


class AutomationError(SfAutoAuthError):
    """Raised when a browser automation step fails.

    The driver's own message is passed through to the client.
    """

    exit_code = EXIT_AUTOMATION_ERROR
    user_facing = True


class ElementNotFoundError(AutomationError):
    """Raised when a required element never appears on the page."""


class NavigationError(AutomationError):
    """Raised when the browser cannot load a page or the session dies."""


class CaptureFailedError(SfAutoAuthError):
    """Raised when the OAuth redirect or the token exchange fails or times out."""

    exit_code = EXIT_CAPTURE_ERROR
    public_message = "Failed to capture the OAuth response."


class InternalError(SfAutoAuthError):
    """Raised for failures that do not fit any other category."""
