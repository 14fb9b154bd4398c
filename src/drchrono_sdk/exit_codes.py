"""Numeric process exit codes used by the ``drchrono-sdk`` command line tool.

Each constant maps to one error category and is referenced by the
corresponding :class:`~drchrono_sdk.exceptions.DrChronoError` subclass.
Library callers never see these directly; they only matter when the CLI
converts an exception into a process exit status.

Example::

    $ drchrono-sdk request GET /api/users
    $ echo $?
    3   # EXIT_AUTH_FAILURE -- the stored token has expired
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The SDK was used incorrectly (not configured, malformed redirect scheme)."""

EXIT_AUTH_FAILURE = 3
"""Authorization failed or the stored token is no longer usable."""

EXIT_LISTENER_ERROR = 4
"""The local redirect listener could not bind its port."""

EXIT_ATTEMPT_IN_PROGRESS = 5
"""Another authorization attempt already holds the redirect listener."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_API_ERROR = 7
"""The API answered with a non-2xx HTTP status."""

EXIT_DECODE_ERROR = 8
"""The API response body could not be decoded as JSON."""
