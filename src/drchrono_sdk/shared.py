"""Optional process-wide :class:`~drchrono_sdk.client.DrChrono` instance.

Applications that only ever talk to one drchrono account can use these
module-level functions instead of passing a client around::

    from drchrono_sdk import shared

    shared.set_client_identity("my-id", "my-secret")
    shared.authenticate("myapp", "user patients", "xyz123").result()
    users = shared.get("/api/users").data

Every function forwards to the instance returned by :func:`get_shared`.
Nothing in the rest of the package depends on this module.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Optional

from drchrono_sdk.client import DrChrono, FailureCallback, SuccessCallback
from drchrono_sdk.engine import URLHandler
from drchrono_sdk.models import APIResponse, Credential

_shared: Optional[DrChrono] = None


def get_shared() -> DrChrono:
    """Return the shared instance, creating an unconfigured one on first use."""
    global _shared
    if _shared is None:
        _shared = DrChrono()
    return _shared


def set_shared(client: DrChrono) -> None:
    """Install *client* as the shared instance."""
    global _shared
    _shared = client


def reset_shared() -> None:
    """Close and drop the shared instance. Mainly useful in test suites."""
    global _shared
    if _shared is not None:
        _shared.close()
    _shared = None


# ------------------------------------------------------------------ #
# Configuration
# ------------------------------------------------------------------ #


def set_client_identity(client_id: str, client_secret: str) -> None:
    get_shared().set_client_identity(client_id, client_secret)


def set_local_http_port(port: int) -> None:
    get_shared().local_http_port = port


def get_local_http_port() -> int:
    return get_shared().local_http_port


def set_authorize_url_handler(handler: Optional[URLHandler]) -> None:
    get_shared().authorize_url_handler = handler


def get_authorize_url_handler() -> Optional[URLHandler]:
    return get_shared().authorize_url_handler


# ------------------------------------------------------------------ #
# Authorization
# ------------------------------------------------------------------ #


def authenticate(
    redirect_scheme: str,
    scope: str,
    state: str,
    params: Optional[dict[str, str]] = None,
    on_success: Optional[SuccessCallback] = None,
    on_failure: Optional[FailureCallback] = None,
    **kwargs: Any,
) -> Future:
    return get_shared().authenticate(
        redirect_scheme,
        scope,
        state,
        params,
        on_success=on_success,
        on_failure=on_failure,
        **kwargs,
    )


def handle_open_url(url: str) -> bool:
    return get_shared().handle_open_url(url)


# ------------------------------------------------------------------ #
# Requests
# ------------------------------------------------------------------ #


def request(endpoint: str, method: str, **kwargs: Any) -> APIResponse:
    return get_shared().request(endpoint, method, **kwargs)


def get(endpoint: str, **kwargs: Any) -> APIResponse:
    return get_shared().get(endpoint, **kwargs)


def post(endpoint: str, **kwargs: Any) -> APIResponse:
    return get_shared().post(endpoint, **kwargs)


def put(endpoint: str, **kwargs: Any) -> APIResponse:
    return get_shared().put(endpoint, **kwargs)


def patch(endpoint: str, **kwargs: Any) -> APIResponse:
    return get_shared().patch(endpoint, **kwargs)


def delete(endpoint: str, **kwargs: Any) -> APIResponse:
    return get_shared().delete(endpoint, **kwargs)


# ------------------------------------------------------------------ #
# Credential access
# ------------------------------------------------------------------ #


def get_token() -> Optional[tuple[str, str]]:
    return get_shared().token


def get_credential() -> Optional[Credential]:
    return get_shared().credential


def restore_token(token: str, secret_token: str) -> None:
    get_shared().restore_token(token, secret_token)
