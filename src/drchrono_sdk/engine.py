"""OAuth2 authorization code engine.

This module provides the protocol machinery that
:class:`~drchrono_sdk.client.DrChrono` delegates to:

- :class:`OAuth2Engine` builds the authorize URL, presents it through a
  URL handler, receives the custom-scheme callback in
  :meth:`~OAuth2Engine.handle_open_url`, and exchanges the authorization
  code for a token at the token endpoint.
- :class:`OAuthClient` holds the resulting :class:`~drchrono_sdk.models.Credential`
  and sends bearer-signed requests.
- :class:`ExternalBrowserHandler` is the default way of presenting the
  authorize URL: the system browser, opened on a daemon thread.

The engine knows nothing about the loopback listener; it only sees the
callback URL it is asked to put in ``redirect_uri`` and the custom-scheme
URL later handed to :meth:`~OAuth2Engine.handle_open_url`.
"""

from __future__ import annotations

import logging
import threading
import webbrowser
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from drchrono_sdk.exceptions import (
    AuthorizationError,
    NotConfiguredError,
    ProviderDeniedError,
    StateMismatchError,
    TokenExchangeError,
    TokenExpiredError,
    TransportError,
)
from drchrono_sdk.models import Credential

logger = logging.getLogger(__name__)

TokenSuccessHandler = Callable[[Credential, httpx.Response, dict[str, Any]], None]
FailureHandler = Callable[[AuthorizationError], None]


class URLHandler(Protocol):
    """Anything that can show an authorize URL to the user."""

    def present(self, url: str) -> None: ...


class ExternalBrowserHandler:
    """Open the authorize URL in the system browser.

    The browser is launched on a daemon thread so that a slow or blocking
    ``webbrowser`` backend never delays the caller.
    """

    def present(self, url: str) -> None:
        logger.debug("Opening authorize URL in external browser")
        thread = threading.Thread(target=webbrowser.open, args=(url,), daemon=True)
        thread.start()


class OAuthClient:
    """Credential holder and bearer-signed request sender.

    Args:
        http_client: Transport to send requests with. When ``None`` a
            private :class:`httpx.Client` is created on first use and
            closed by :meth:`close`.
        timeout: Request timeout in seconds for the private client.
        verify_ssl: Whether the private client verifies certificates.
    """

    def __init__(
        self,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        self._http_client = http_client
        self._owns_client = http_client is None
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._credential = Credential()
        self._lock = threading.Lock()

    @property
    def credential(self) -> Credential:
        with self._lock:
            return self._credential

    @credential.setter
    def credential(self, value: Credential) -> None:
        with self._lock:
            self._credential = value

    def restore(self, token: str, secret_token: str) -> None:
        """Replace the token pair in one step, keeping the other fields."""
        with self._lock:
            self._credential = self._credential.model_copy(
                update={"oauth_token": token, "oauth_token_secret": secret_token}
            )

    @property
    def http(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(
                timeout=self._timeout,
                verify=self._verify_ssl,
                follow_redirects=True,
            )
        return self._http_client

    def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def request(
        self,
        url: str,
        method: str,
        parameters: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
        check_token_expiration: bool = True,
    ) -> httpx.Response:
        """Send a request signed with the current credential.

        Parameters go in the query string for GET and DELETE and are
        form-encoded in the body otherwise.

        Raises:
            TokenExpiredError: If ``check_token_expiration`` is set and the
                credential has expired.
            TransportError: On network-level failures.
        """
        credential = self.credential
        if check_token_expiration and credential.is_expired():
            raise TokenExpiredError("The access token has expired")

        method = method.upper()
        merged_headers: dict[str, str] = {"Accept": "application/json"}
        if credential.oauth_token:
            merged_headers["Authorization"] = (
                f"{credential.token_type or 'Bearer'} {credential.oauth_token}"
            )
        merged_headers.update(headers or {})

        kwargs: dict[str, Any] = {"headers": merged_headers}
        if method in ("GET", "DELETE"):
            kwargs["params"] = parameters or {}
        elif parameters:
            kwargs["data"] = parameters

        try:
            return self.http.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc


@dataclass
class _PendingAuthorization:
    callback_url: str
    state: str
    success: TokenSuccessHandler
    failure: FailureHandler


class OAuth2Engine:
    """OAuth2 authorization code grant against a single provider.

    Args:
        client_id: OAuth client ID.
        client_secret: OAuth client secret.
        authorize_url: The provider's authorization endpoint.
        access_token_url: The provider's token endpoint.
        response_type: The ``response_type`` sent to the authorization
            endpoint.
        http_client: Optional shared transport, also used by :attr:`client`.
        timeout: HTTP timeout in seconds.
        verify_ssl: Whether to verify TLS certificates.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        authorize_url: str,
        access_token_url: str,
        response_type: str = "code",
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        if not client_id:
            raise NotConfiguredError("client_id is required")
        self.client_id = client_id
        self.client_secret = client_secret
        self.authorize_url = authorize_url
        self.access_token_url = access_token_url
        self.response_type = response_type
        self.client = OAuthClient(http_client, timeout=timeout, verify_ssl=verify_ssl)
        self.authorize_url_handler: URLHandler = ExternalBrowserHandler()
        self._pending: Optional[_PendingAuthorization] = None
        self._lock = threading.Lock()

    def build_authorize_request(
        self,
        callback_url: str,
        scope: str,
        state: str,
        params: Optional[dict[str, str]] = None,
    ) -> str:
        """Return the full authorize URL for a code grant."""
        query: dict[str, str] = {
            "response_type": self.response_type,
            "client_id": self.client_id,
            "redirect_uri": callback_url,
        }
        if scope:
            query["scope"] = scope
        if state:
            query["state"] = state
        for key, value in (params or {}).items():
            query.setdefault(key, value)
        return f"{self.authorize_url}?{urlencode(query)}"

    def authorize(
        self,
        callback_url: str,
        scope: str,
        state: str,
        params: Optional[dict[str, str]],
        success: TokenSuccessHandler,
        failure: FailureHandler,
    ) -> None:
        """Present the authorize URL and wait for :meth:`handle_open_url`.

        Exactly one of ``success`` / ``failure`` is called once the
        callback URL arrives. ``success`` receives the new credential but
        it is not stored on :attr:`client`; keeping it is up to the
        continuation. A new call replaces any pending authorization without
        notifying it.
        """
        url = self.build_authorize_request(callback_url, scope, state, params)
        with self._lock:
            self._pending = _PendingAuthorization(callback_url, state, success, failure)
        logger.info("Presenting authorize URL for scope %r", scope)
        self.authorize_url_handler.present(url)

    def cancel_pending(self) -> None:
        """Forget the pending authorization; a late callback is then ignored."""
        with self._lock:
            self._pending = None

    def handle_open_url(self, url: str) -> bool:
        """Consume a ``<scheme>://oauth?...`` callback URL.

        Returns:
            ``True`` if the URL completed a pending authorization, ``False``
            if it was not an OAuth callback or nothing was pending.
        """
        parsed = urlparse(url)
        if parsed.netloc != "oauth":
            return False
        with self._lock:
            pending = self._pending
            self._pending = None
        if pending is None:
            logger.debug("Ignoring OAuth callback with no pending authorization")
            return False

        params = parse_qs(parsed.query, keep_blank_values=True)
        error = params.get("error", [None])[0]
        code = params.get("code", [None])[0]
        returned_state = params.get("state", [None])[0]

        if error is not None or code is None:
            pending.failure(ProviderDeniedError(error or "access_denied"))
            return True
        if pending.state and returned_state != pending.state:
            pending.failure(
                StateMismatchError(
                    f"State mismatch: expected {pending.state!r}, got {returned_state!r}"
                )
            )
            return True

        try:
            credential, response, token_data = self._exchange(code, pending.callback_url)
        except TokenExchangeError as exc:
            pending.failure(exc)
            return True
        pending.success(credential, response, token_data)
        return True

    def exchange_code(self, code: str, redirect_uri: str) -> Credential:
        """Exchange an authorization code for a credential.

        The credential is also stored on :attr:`client`.

        Raises:
            TokenExchangeError: On HTTP errors, a non-JSON body, or a
                response without ``access_token``.
        """
        credential, _, _ = self._exchange(code, redirect_uri)
        self.client.credential = credential
        return credential

    def _exchange(
        self, code: str, redirect_uri: str
    ) -> tuple[Credential, httpx.Response, dict[str, Any]]:
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            response = self.client.http.post(
                self.access_token_url,
                data=data,
                headers={"Accept": "application/json"},
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise TokenExchangeError(
                f"Token exchange failed with status {exc.response.status_code}: "
                f"{exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise TokenExchangeError(f"Token exchange failed: {exc}") from exc

        try:
            token_data: dict[str, Any] = response.json()
        except ValueError as exc:
            raise TokenExchangeError("Token response is not valid JSON") from exc
        if not isinstance(token_data, dict) or "access_token" not in token_data:
            raise TokenExchangeError("Token response missing 'access_token' field")

        credential = _credential_from_token_data(token_data)
        logger.info("Authorization code exchanged for access token")
        return credential, response, token_data


def _credential_from_token_data(token_data: dict[str, Any]) -> Credential:
    expires_at = None
    expires_in = token_data.get("expires_in")
    if expires_in is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=float(expires_in))
    return Credential(
        oauth_token=token_data["access_token"],
        oauth_token_secret=token_data.get("oauth_token_secret", ""),
        refresh_token=token_data.get("refresh_token", ""),
        token_type=token_data.get("token_type") or "Bearer",
        expires_at=expires_at,
    )
