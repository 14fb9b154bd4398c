"""Pydantic models shared across drchrono_sdk modules.

**Identity and tokens**
    :class:`ClientIdentity` and :class:`Credential`. A credential is
    produced by the OAuth engine and only stored and forwarded by
    :class:`~drchrono_sdk.client.DrChrono`.

**Redirect handling**
    :class:`RedirectResult` is parsed from the query string of the one
    request the local redirect listener captures, and knows how to render
    the custom-scheme URL the listener redirects to.

**Configuration**
    :class:`Settings` is persisted as JSON by :mod:`drchrono_sdk.config`.

**Results**
    :class:`AuthorizationResult` and :class:`APIResponse` are plain
    dataclasses because they carry :class:`httpx.Response` objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import parse_qs, quote

import httpx
from pydantic import BaseModel, Field

DEFAULT_BASE_URL = "https://drchrono.com"
DEFAULT_LOCAL_HTTP_PORT = 9080
DEFAULT_AUTHORIZE_TIMEOUT = 300.0


# --- Identity ---


class ClientIdentity(BaseModel):
    """The OAuth client credentials issued on the API management page."""

    client_id: str
    client_secret: str


class Credential(BaseModel):
    """Token material produced by a successful authorization.

    ``oauth_token_secret`` only applies to 1-legged and 2-legged variants;
    for plain OAuth2 bearer flows it is empty.

    Example::

        cred = Credential(oauth_token="tok123")
        assert not cred.is_expired()
    """

    oauth_token: str = ""
    oauth_token_secret: str = ""
    refresh_token: str = ""
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = Field(
        default=None, description="When the access token expires (None = unknown)"
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Return ``True`` if ``expires_at`` is set and lies in the past."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires = self.expires_at
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return now >= expires


# --- Redirect ---


class RedirectResult(BaseModel):
    """The OAuth callback parameters carried by one inbound redirect.

    A missing ``code`` means the user (or the provider) denied the request.
    """

    code: Optional[str] = None
    state: Optional[str] = None

    @classmethod
    def from_query(cls, query: str) -> RedirectResult:
        """Parse ``code`` and ``state`` out of a raw query string.

        Only the first value of each parameter is used. Blank values are
        kept, so ``?code=`` yields an empty code rather than a denial.
        """
        params = parse_qs(query, keep_blank_values=True)
        code = params.get("code", [None])[0]
        state = params.get("state", [None])[0]
        return cls(code=code, state=state)

    @property
    def denied(self) -> bool:
        return self.code is None

    def location(self, scheme: str) -> str:
        """Build the ``<scheme>://oauth?...`` URL the listener redirects to.

        The ``state`` parameter is left out entirely when absent.
        """
        if self.code is None:
            pairs = ["error=access_denied"]
        else:
            pairs = [f"code={quote(self.code, safe='')}"]
        if self.state is not None:
            pairs.append(f"state={quote(self.state, safe='')}")
        return f"{scheme}://oauth?{'&'.join(pairs)}"


# --- Settings ---


class Settings(BaseModel):
    """User configuration persisted at ``~/.config/drchrono-sdk/config.json``.

    Client identity is referenced through credential *sources*
    (``env:VAR``, ``file:/path``, ``prompt``) rather than stored in clear
    text; see :func:`~drchrono_sdk.config.resolve_credential`.
    """

    client_id_source: Optional[str] = Field(
        default=None, description="Credential source for the OAuth client ID"
    )
    client_secret_source: Optional[str] = Field(
        default=None, description="Credential source for the OAuth client secret"
    )
    base_url: str = Field(default=DEFAULT_BASE_URL, description="API base URL")
    local_http_port: int = Field(
        default=DEFAULT_LOCAL_HTTP_PORT,
        ge=1,
        le=65535,
        description="Port the temporary redirect listener binds",
    )
    authorize_timeout: Optional[float] = Field(
        default=DEFAULT_AUTHORIZE_TIMEOUT,
        description="Seconds to wait for the OAuth redirect (None = wait forever)",
    )
    timeout: float = Field(default=30.0, description="HTTP request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    redirect_scheme: Optional[str] = Field(
        default=None, description="Default redirect scheme for the CLI login command"
    )
    scope: str = Field(default="", description="Default OAuth scope for the CLI login command")


# --- Results ---


@dataclass
class AuthorizationResult:
    """What a successful authorization attempt delivers.

    Attributes:
        credential: The credential now held by the engine's client.
        response: The raw token endpoint response.
        parameters: The decoded token endpoint JSON body.
    """

    credential: Credential
    response: httpx.Response
    parameters: dict[str, Any] = field(default_factory=dict)


@dataclass
class APIResponse:
    """A decoded API response.

    Attributes:
        data: The JSON-decoded body.
        response: The underlying :class:`httpx.Response`.
    """

    data: Any
    response: httpx.Response
