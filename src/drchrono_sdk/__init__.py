"""drchrono_sdk -- OAuth2 authorization code flow and signed requests for the drchrono API.

A native application obtains a token without implementing the browser
redirect dance itself::

    from drchrono_sdk import DrChrono

    drchrono = DrChrono("my-client-id", "my-client-secret")
    result = drchrono.authenticate("myapp", "user patients", "xyz123").result()
    patients = drchrono.get("/api/patients").data

A temporary listener on ``http://localhost:9080/<scheme>`` catches the
provider's redirect and forwards it as ``<scheme>://oauth?code=...``; the
listener is always stopped before the outcome is delivered.

Modules:
    client: :class:`DrChrono`, the authorization orchestrator and API client.
    listener: The loopback redirect listener.
    engine: OAuth2 protocol engine and credential-holding HTTP client.
    shared: Optional process-wide instance with module-level functions.
    config: XDG-aware settings and credential source resolution.
    credential_store: Optional on-disk token persistence.
    exceptions: Exception hierarchy with exit-code mapping.
    app: The ``drchrono-sdk`` command line tool.
"""

__version__ = "0.1.0"

from drchrono_sdk.client import DrChrono
from drchrono_sdk.engine import ExternalBrowserHandler, OAuth2Engine, URLHandler
from drchrono_sdk.exceptions import (
    APIError,
    AttemptInProgressError,
    AuthorizationError,
    AuthorizationTimeoutError,
    DrChronoError,
    InvalidRedirectSchemeError,
    ListenerSetupError,
    NotConfiguredError,
    ProviderDeniedError,
    ResponseDecodeError,
    TokenExchangeError,
)
from drchrono_sdk.listener import RedirectListener
from drchrono_sdk.models import APIResponse, AuthorizationResult, Credential

__all__ = [
    "APIError",
    "APIResponse",
    "AttemptInProgressError",
    "AuthorizationError",
    "AuthorizationResult",
    "AuthorizationTimeoutError",
    "Credential",
    "DrChrono",
    "DrChronoError",
    "ExternalBrowserHandler",
    "InvalidRedirectSchemeError",
    "ListenerSetupError",
    "NotConfiguredError",
    "OAuth2Engine",
    "ProviderDeniedError",
    "RedirectListener",
    "ResponseDecodeError",
    "TokenExchangeError",
    "URLHandler",
    "__version__",
]
