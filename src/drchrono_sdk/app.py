"""Typer application and CLI entry point for drchrono_sdk.

A small developer tool around :class:`~drchrono_sdk.client.DrChrono`:
log in through the browser, inspect or discard the stored token, and send
signed requests from a terminal::

    drchrono-sdk login --scheme myapp --scope "user patients"
    drchrono-sdk request GET /api/users
    drchrono-sdk logout

Client identity and defaults come from :func:`~drchrono_sdk.config.resolve_settings`
and :func:`~drchrono_sdk.config.resolve_client_identity`; tokens are kept in
a :class:`~drchrono_sdk.credential_store.CredentialStore` per profile.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.
"""

from __future__ import annotations

import logging
import secrets
import signal
import sys
from typing import Any, Optional

import typer
from rich.logging import RichHandler

from drchrono_sdk import __version__
from drchrono_sdk.exceptions import DrChronoError
from drchrono_sdk.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INVALID_USAGE

app = typer.Typer(
    name="drchrono-sdk",
    help="Authorize against drchrono and call its API from the terminal.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"drchrono-sdk {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Initialise output and logging from the global flags."""
    from drchrono_sdk.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    set_output(OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose))

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False, rich_tracebacks=False)],
        force=True,
    )


def _parse_pairs(values: list[str], separator: str, label: str) -> dict[str, str]:
    """Turn ``KEY<sep>VALUE`` option values into a dict."""
    pairs: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition(separator)
        if not sep or not key:
            raise typer.BadParameter(f"Expected {label} in the form KEY{separator}VALUE: {item!r}")
        pairs[key.strip()] = value.strip()
    return pairs


def _exit_with(exc: DrChronoError) -> typer.Exit:
    from drchrono_sdk.output import error

    error(str(exc))
    return typer.Exit(code=exc.exit_code)


@app.command("login")
def login(
    scheme: Optional[str] = typer.Option(
        None, "--scheme", "-s", help="Redirect URL scheme registered for the app."
    ),
    scope: Optional[str] = typer.Option(None, "--scope", help="OAuth scope."),
    state: Optional[str] = typer.Option(
        None, "--state", help="OAuth state value (random when omitted)."
    ),
    param: list[str] = typer.Option(
        [], "--param", "-P", help="Extra authorize parameter, KEY=VALUE. Repeatable."
    ),
    port: Optional[int] = typer.Option(None, "--port", help="Local redirect listener port."),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", help="Seconds to wait for the browser redirect."
    ),
    profile: str = typer.Option("default", "--profile", "-p", help="Credential profile."),
) -> None:
    """Authorize in the browser and store the resulting token."""
    from drchrono_sdk.client import DrChrono
    from drchrono_sdk.config import resolve_client_identity, resolve_settings
    from drchrono_sdk.credential_store import CredentialStore
    from drchrono_sdk.output import error, info, success

    params = _parse_pairs(param, "=", "parameter")

    try:
        settings = resolve_settings(local_http_port=port, authorize_timeout=timeout)
        identity = resolve_client_identity(settings)
    except DrChronoError as exc:
        raise _exit_with(exc) from None

    redirect_scheme = scheme or settings.redirect_scheme
    if not redirect_scheme:
        error("No redirect scheme given: pass --scheme or set redirect_scheme in settings.")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    client = DrChrono(
        identity.client_id,
        identity.client_secret,
        base_url=settings.base_url,
        local_http_port=settings.local_http_port,
        authorize_timeout=settings.authorize_timeout,
        timeout=settings.timeout,
        verify_ssl=settings.verify_ssl,
    )
    with client:
        future = client.authenticate(
            redirect_scheme,
            scope if scope is not None else settings.scope,
            state or secrets.token_urlsafe(16),
            params,
        )
        if not future.done():
            info(
                f"Waiting for authorization on http://localhost:{settings.local_http_port}/"
                f"{redirect_scheme} ..."
            )
        try:
            result = future.result()
        except DrChronoError as exc:
            raise _exit_with(exc) from None

    store = CredentialStore(profile)
    store.save(result.credential)
    success(f'Logged in. Token stored for profile "{profile}".')
    info(f"Credential file: {store.path}")


@app.command("token")
def token(
    profile: str = typer.Option("default", "--profile", "-p", help="Credential profile."),
) -> None:
    """Print the stored access token."""
    from drchrono_sdk.credential_store import CredentialStore
    from drchrono_sdk.output import OutputFormat, error, get_output, warning

    credential = CredentialStore(profile).load()
    if credential is None or not credential.oauth_token:
        error(f'No stored token for profile "{profile}". Run: drchrono-sdk login')
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)
    if credential.is_expired():
        warning("The stored token has expired.")

    output = get_output()
    if output.format == OutputFormat.JSON:
        output.format_response(credential.model_dump(mode="json"))
    else:
        output.print_data(credential.oauth_token)


@app.command("logout")
def logout(
    profile: str = typer.Option("default", "--profile", "-p", help="Credential profile."),
) -> None:
    """Delete the stored token."""
    from drchrono_sdk.credential_store import CredentialStore
    from drchrono_sdk.output import success

    CredentialStore(profile).clear()
    success(f'Token removed for profile "{profile}".')


@app.command("request")
def request(
    method: str = typer.Argument(help="HTTP method: GET, POST, PUT, PATCH or DELETE."),
    endpoint: str = typer.Argument(help="API path, e.g. /api/users."),
    param: list[str] = typer.Option(
        [], "--param", "-P", help="Request parameter, KEY=VALUE. Repeatable."
    ),
    header: list[str] = typer.Option(
        [], "--header", "-H", help="Extra header, NAME:VALUE. Repeatable."
    ),
    check_expiration: bool = typer.Option(
        True,
        "--check-expiration/--no-check-expiration",
        help="Refuse to send an expired token.",
    ),
    profile: str = typer.Option("default", "--profile", "-p", help="Credential profile."),
) -> None:
    """Send a signed request with the stored token and print the JSON body."""
    from drchrono_sdk.client import DrChrono
    from drchrono_sdk.config import resolve_client_identity, resolve_settings
    from drchrono_sdk.credential_store import CredentialStore
    from drchrono_sdk.output import error, get_output

    method = method.upper()
    if method not in ("GET", "POST", "PUT", "PATCH", "DELETE"):
        error(f"Unsupported method: {method}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    params = _parse_pairs(param, "=", "parameter")
    headers = _parse_pairs(header, ":", "header")

    credential = CredentialStore(profile).load()
    if credential is None or not credential.oauth_token:
        error(f'No stored token for profile "{profile}". Run: drchrono-sdk login')
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)

    try:
        settings = resolve_settings()
        identity = resolve_client_identity(settings)
        with DrChrono(
            identity.client_id,
            identity.client_secret,
            base_url=settings.base_url,
            timeout=settings.timeout,
            verify_ssl=settings.verify_ssl,
        ) as client:
            client.restore_credential(credential)
            result = client.request(
                endpoint,
                method,
                parameters=params,
                headers=headers,
                check_token_expiration=check_expiration,
            )
    except DrChronoError as exc:
        raise _exit_with(exc) from None

    get_output().format_response(result.data)


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def main() -> None:
    """CLI entry point invoked by the ``drchrono-sdk`` console script.

    Unhandled :class:`~drchrono_sdk.exceptions.DrChronoError` instances
    cause a clean exit with the error's ``exit_code``.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except DrChronoError as exc:
        from drchrono_sdk.output import error

        error(str(exc))
        sys.exit(exc.exit_code)
