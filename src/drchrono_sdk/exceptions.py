"""Exception hierarchy for drchrono_sdk.

All exceptions inherit from :class:`DrChronoError`, which carries an
``exit_code`` attribute mapped to a constant from
:mod:`drchrono_sdk.exit_codes`. The CLI entry point catches
``DrChronoError`` and exits with that code; library callers receive the
same objects through raised exceptions, failed futures, or the
``on_failure`` continuation of :meth:`~drchrono_sdk.client.DrChrono.authenticate`.

Setup failures are raised or delivered before any browser or network
interaction. Authorization failures (:class:`AuthorizationError` and its
subclasses) are only ever delivered after the redirect listener has been
stopped.

Subclass hierarchy::

    DrChronoError                  (exit 1)
    +-- ConfigError                (exit 1)
    +-- NotConfiguredError         (exit 2)
    +-- InvalidRedirectSchemeError (exit 2)
    +-- BindError                  (exit 4)
    +-- ListenerSetupError         (exit 4)
    +-- AttemptInProgressError     (exit 5)
    +-- AuthorizationError         (exit 3)
    |   +-- ProviderDeniedError
    |   +-- TokenExchangeError
    |   |   +-- StateMismatchError
    |   +-- AuthorizationTimeoutError
    |   +-- AuthorizationCancelledError
    +-- TokenExpiredError          (exit 3)
    +-- TransportError             (exit 6)
    +-- APIError                   (exit 7)
    +-- ResponseDecodeError        (exit 8)
"""

from drchrono_sdk.exit_codes import (
    EXIT_API_ERROR,
    EXIT_ATTEMPT_IN_PROGRESS,
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_DECODE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_LISTENER_ERROR,
)


class DrChronoError(Exception):
    """Base exception for all drchrono_sdk errors.

    Args:
        message: Human-readable error description.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(DrChronoError):
    """Raised for configuration problems (invalid JSON, bad credential sources)."""

    exit_code = EXIT_GENERIC_FAILURE


class NotConfiguredError(DrChronoError):
    """Raised when no client identity has been set."""

    exit_code = EXIT_INVALID_USAGE


class InvalidRedirectSchemeError(DrChronoError):
    """Raised when the loopback callback URL cannot be formed from the scheme."""

    exit_code = EXIT_INVALID_USAGE


class BindError(DrChronoError):
    """Raised by the redirect listener when its port cannot be bound.

    The underlying :class:`OSError`, when there is one, is chained as
    ``__cause__``.
    """

    exit_code = EXIT_LISTENER_ERROR


class ListenerSetupError(DrChronoError):
    """Raised when an authorization attempt cannot start its redirect listener.

    Always chained to the :class:`BindError` that caused it.
    """

    exit_code = EXIT_LISTENER_ERROR


class AttemptInProgressError(DrChronoError):
    """Raised when ``authenticate`` is called while another attempt is pending."""

    exit_code = EXIT_ATTEMPT_IN_PROGRESS


class AuthorizationError(DrChronoError):
    """Base class for failures that happen after the listener was started."""

    exit_code = EXIT_AUTH_FAILURE


class ProviderDeniedError(AuthorizationError):
    """The user declined consent or the provider returned an error in the redirect.

    Args:
        error: The OAuth ``error`` value from the redirect (e.g.
            ``"access_denied"``).
    """

    def __init__(self, error: str, message: str | None = None):
        super().__init__(message or f"Authorization denied by provider: {error}")
        self.error = error


class TokenExchangeError(AuthorizationError):
    """The authorization code could not be exchanged for a token."""


class StateMismatchError(TokenExchangeError):
    """The ``state`` returned in the redirect does not match the one sent."""


class AuthorizationTimeoutError(AuthorizationError):
    """No redirect arrived before the attempt's timeout expired."""


class AuthorizationCancelledError(AuthorizationError):
    """The attempt was cancelled by the caller before it completed."""


class TokenExpiredError(DrChronoError):
    """The stored credential has expired and expiration checking is enabled."""

    exit_code = EXIT_AUTH_FAILURE


class TransportError(DrChronoError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused)."""

    exit_code = EXIT_CONNECTION_ERROR


class APIError(DrChronoError):
    """Raised when the API answers with a non-2xx status.

    Args:
        message: Human-readable description.
        status_code: The HTTP status code of the response.
    """

    exit_code = EXIT_API_ERROR

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class ResponseDecodeError(DrChronoError):
    """Raised when an API response body is not valid JSON."""

    exit_code = EXIT_DECODE_ERROR
