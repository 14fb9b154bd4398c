"""The drchrono API client and OAuth2 authorization orchestrator.

:class:`DrChrono` drives one authorization attempt at a time:

1. Builds the loopback callback URL ``http://localhost:<port>/<scheme>``.
2. Starts a :class:`~drchrono_sdk.listener.RedirectListener` on that port.
3. Asks the :class:`~drchrono_sdk.engine.OAuth2Engine` to build and
   present the authorize URL.
4. Waits -- without blocking the caller -- for the listener's
   custom-scheme redirect to reach the engine, which exchanges the code.
5. Stops the listener, then delivers exactly one outcome through the
   returned :class:`~concurrent.futures.Future` and the optional
   ``on_success`` / ``on_failure`` continuations.

Once a credential exists, :meth:`DrChrono.request` and its GET / POST /
PUT / PATCH / DELETE shorthands send signed requests and decode the JSON
body.

See Also:
    :mod:`drchrono_sdk.shared` for the optional process-wide instance.
"""

from __future__ import annotations

import logging
import re
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

import httpx

from drchrono_sdk.engine import ExternalBrowserHandler, OAuth2Engine, URLHandler
from drchrono_sdk.exceptions import (
    APIError,
    AttemptInProgressError,
    AuthorizationCancelledError,
    AuthorizationTimeoutError,
    BindError,
    DrChronoError,
    InvalidRedirectSchemeError,
    ListenerSetupError,
    NotConfiguredError,
    ResponseDecodeError,
)
from drchrono_sdk.listener import RedirectListener
from drchrono_sdk.models import (
    DEFAULT_AUTHORIZE_TIMEOUT,
    DEFAULT_BASE_URL,
    DEFAULT_LOCAL_HTTP_PORT,
    APIResponse,
    AuthorizationResult,
    Credential,
)

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[Credential, httpx.Response, dict[str, Any]], None]
FailureCallback = Callable[[DrChronoError], None]

# RFC 3986 scheme grammar; the value doubles as a URL path segment.
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")

_UNSET: Any = object()


@dataclass
class _Attempt:
    redirect_scheme: str
    scope: str
    state: str
    extra_params: dict[str, str]
    listener: RedirectListener
    engine: OAuth2Engine
    future: Future
    on_success: Optional[SuccessCallback] = None
    on_failure: Optional[FailureCallback] = None
    timer: Optional[threading.Timer] = None
    finished: bool = field(default=False)


class DrChrono:
    """Client for the drchrono API.

    Args:
        client_id: OAuth client ID from the API management page. When both
            ``client_id`` and ``client_secret`` are given the instance is
            configured immediately; otherwise call
            :meth:`set_client_identity` before authenticating.
        client_secret: OAuth client secret.
        base_url: API base URL. The authorize and token endpoints live at
            ``/o/authorize`` and ``/o/token/`` under it.
        local_http_port: Port of the temporary redirect listener.
        authorize_timeout: Seconds to wait for the redirect before failing
            with :class:`~drchrono_sdk.exceptions.AuthorizationTimeoutError`.
            ``None`` waits forever.
        http_client: Optional transport shared by the token exchange and
            API requests.
        timeout: HTTP timeout for the private transport.
        verify_ssl: Whether the private transport verifies certificates.
        route_redirects_in_process: Deliver the listener's custom-scheme
            redirect straight to the engine. Disable when the platform
            routes the scheme and the application calls
            :meth:`handle_open_url` itself.

    Example::

        drchrono = DrChrono("my-id", "my-secret")
        future = drchrono.authenticate("myapp", "user patients", "xyz123")
        result = future.result()
        users = drchrono.get("/api/users").data
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        local_http_port: int = DEFAULT_LOCAL_HTTP_PORT,
        authorize_timeout: Optional[float] = DEFAULT_AUTHORIZE_TIMEOUT,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 30.0,
        verify_ssl: bool = True,
        route_redirects_in_process: bool = True,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.local_http_port = local_http_port
        self.authorize_timeout = authorize_timeout
        self.authorize_url_handler: Optional[URLHandler] = None
        self.route_redirects_in_process = route_redirects_in_process
        self.engine: Optional[OAuth2Engine] = None
        self._http_client = http_client
        self._timeout = timeout
        self._verify_ssl = verify_ssl
        self._attempt: Optional[_Attempt] = None
        self._lock = threading.Lock()
        if client_id and client_secret is not None:
            self.set_client_identity(client_id, client_secret)

    # ------------------------------------------------------------------ #
    # Configuration
    # ------------------------------------------------------------------ #

    def set_client_identity(self, client_id: str, client_secret: str) -> None:
        """Set the OAuth client identity and rebuild the engine.

        An attempt already in flight keeps the engine it started with.
        Changing identity mid-attempt is not supported.
        """
        previous = self.engine
        self.engine = OAuth2Engine(
            client_id,
            client_secret,
            authorize_url=f"{self.base_url}/o/authorize",
            access_token_url=f"{self.base_url}/o/token/",
            http_client=self._http_client,
            timeout=self._timeout,
            verify_ssl=self._verify_ssl,
        )
        if previous is not None and previous is not self._attempt_engine():
            previous.client.close()
        logger.debug("Client identity set for client_id %s", client_id)

    def _attempt_engine(self) -> Optional[OAuth2Engine]:
        attempt = self._attempt
        return attempt.engine if attempt is not None else None

    # ------------------------------------------------------------------ #
    # Authorization
    # ------------------------------------------------------------------ #

    def authenticate(
        self,
        redirect_scheme: str,
        scope: str,
        state: str,
        params: Optional[dict[str, str]] = None,
        on_success: Optional[SuccessCallback] = None,
        on_failure: Optional[FailureCallback] = None,
        timeout: Optional[float] = _UNSET,
    ) -> Future:
        """Run one OAuth2 authorization code attempt.

        Setup failures (:class:`NotConfiguredError`,
        :class:`AttemptInProgressError`, :class:`InvalidRedirectSchemeError`,
        :class:`ListenerSetupError`) are delivered before this method
        returns. Every later outcome is delivered after the redirect
        listener has been stopped, so the port can be reused immediately.

        Args:
            redirect_scheme: The custom URL scheme registered for the app;
                also the listener's path segment.
            scope: OAuth scope string.
            state: OAuth state value, checked against the redirect.
            params: Extra authorize URL query parameters.
            on_success: Called with ``(credential, response, parameters)``.
            on_failure: Called with the :class:`DrChronoError`.
            timeout: Overrides :attr:`authorize_timeout` for this attempt.

        Returns:
            A future resolving to an :class:`AuthorizationResult` or failing
            with the same error passed to ``on_failure``.
        """
        future: Future = Future()
        engine = self.engine
        if engine is None:
            return _fail_now(
                future, on_failure, NotConfiguredError("DrChrono SDK has not been configured")
            )

        with self._lock:
            attempt, error = self._start_attempt(
                engine, redirect_scheme, scope, state, params, future, on_success, on_failure
            )
        if attempt is None:
            return _fail_now(future, on_failure, error)

        engine.authorize_url_handler = self.authorize_url_handler or ExternalBrowserHandler()

        wait = self.authorize_timeout if timeout is _UNSET else timeout
        if wait is not None:
            attempt.timer = threading.Timer(wait, self._on_timeout, args=(attempt, wait))
            attempt.timer.daemon = True
            attempt.timer.start()

        callback_url = f"http://localhost:{self.local_http_port}/{redirect_scheme}"
        logger.info(
            "Authorization started: scheme=%s port=%d", redirect_scheme, self.local_http_port
        )
        try:
            engine.authorize(
                callback_url,
                scope,
                state,
                attempt.extra_params,
                success=lambda cred, resp, data: self._succeed(attempt, cred, resp, data),
                failure=lambda err: self._fail(attempt, err),
            )
        except DrChronoError as exc:
            self._fail(attempt, exc, cancel_engine=True)
        except Exception as exc:
            error = DrChronoError(f"Cannot present authorize URL: {exc}")
            error.__cause__ = exc
            self._fail(attempt, error, cancel_engine=True)
        return future

    def _start_attempt(
        self,
        engine: OAuth2Engine,
        redirect_scheme: str,
        scope: str,
        state: str,
        params: Optional[dict[str, str]],
        future: Future,
        on_success: Optional[SuccessCallback],
        on_failure: Optional[FailureCallback],
    ) -> tuple[Optional[_Attempt], Optional[DrChronoError]]:
        """Validate, bind the listener and register the attempt. Caller holds the lock."""
        if self._attempt is not None:
            return None, AttemptInProgressError("An authorization attempt is already in progress")

        if not isinstance(redirect_scheme, str) or not _SCHEME_RE.match(redirect_scheme):
            return None, InvalidRedirectSchemeError(
                f"Call back URL scheme error: {redirect_scheme!r}"
            )

        listener = RedirectListener(on_redirect=self._route_redirect)
        try:
            listener.start(self.local_http_port, redirect_scheme)
        except BindError as exc:
            error = ListenerSetupError(f"Cannot set up HTTP server to handle redirect URL: {exc}")
            error.__cause__ = exc
            return None, error

        attempt = _Attempt(
            redirect_scheme=redirect_scheme,
            scope=scope,
            state=state,
            extra_params=dict(params or {}),
            listener=listener,
            engine=engine,
            future=future,
            on_success=on_success,
            on_failure=on_failure,
        )
        self._attempt = attempt
        return attempt, None

    def handle_open_url(self, url: str) -> bool:
        """Hand a ``<scheme>://oauth?...`` URL received by the app to the engine.

        Returns:
            ``True`` if the URL completed a pending authorization.
        """
        engine = self._attempt_engine() or self.engine
        if engine is None:
            return False
        return engine.handle_open_url(url)

    def cancel(self) -> bool:
        """Abort the in-flight attempt, if any.

        Returns:
            ``True`` if an attempt was cancelled.
        """
        attempt = self._attempt
        if attempt is None:
            return False
        return self._fail(
            attempt, AuthorizationCancelledError("Authorization cancelled"), cancel_engine=True
        )

    @property
    def in_progress(self) -> bool:
        return self._attempt is not None

    def _route_redirect(self, target: str) -> None:
        # Runs on a listener connection thread; the exchange must not.
        if not self.route_redirects_in_process:
            return
        threading.Thread(
            target=self.handle_open_url,
            args=(target,),
            name="oauth-redirect",
            daemon=True,
        ).start()

    def _on_timeout(self, attempt: _Attempt, wait: float) -> None:
        self._fail(
            attempt,
            AuthorizationTimeoutError(f"No OAuth redirect received within {wait:g} seconds"),
            cancel_engine=True,
        )

    def _finish(self, attempt: _Attempt, cancel_engine: bool = False) -> bool:
        """Close out ``attempt`` exactly once; return False if already closed.

        The listener is stopped and the in-flight slot released before
        this returns, so outcomes are only delivered on a free port.
        """
        with self._lock:
            if attempt.finished:
                return False
            attempt.finished = True
        if cancel_engine:
            attempt.engine.cancel_pending()
        if attempt.timer is not None:
            attempt.timer.cancel()
        attempt.listener.stop()
        with self._lock:
            if self._attempt is attempt:
                self._attempt = None
        return True

    def _succeed(
        self,
        attempt: _Attempt,
        credential: Credential,
        response: httpx.Response,
        parameters: dict[str, Any],
    ) -> bool:
        if not self._finish(attempt):
            logger.debug("Discarding credential from an attempt that already ended")
            return False
        attempt.engine.client.credential = credential
        logger.info("Authorization succeeded")
        if attempt.on_success is not None:
            try:
                attempt.on_success(credential, response, parameters)
            except Exception:
                logger.exception("on_success callback raised")
        attempt.future.set_result(AuthorizationResult(credential, response, parameters))
        return True

    def _fail(
        self, attempt: _Attempt, error: DrChronoError, cancel_engine: bool = False
    ) -> bool:
        if not self._finish(attempt, cancel_engine):
            return False
        logger.warning("Authorization failed: %s", error)
        if attempt.on_failure is not None:
            try:
                attempt.on_failure(error)
            except Exception:
                logger.exception("on_failure callback raised")
        attempt.future.set_exception(error)
        return True

    # ------------------------------------------------------------------ #
    # Requests
    # ------------------------------------------------------------------ #

    def request(
        self,
        endpoint: str,
        method: str,
        parameters: Optional[dict[str, str]] = None,
        headers: Optional[dict[str, str]] = None,
        check_token_expiration: bool = True,
    ) -> APIResponse:
        """Send a signed request to ``base_url + endpoint`` and decode the JSON body.

        Raises:
            NotConfiguredError: If no client identity is set.
            TokenExpiredError: If the token has expired and
                ``check_token_expiration`` is set.
            TransportError: On network-level failures.
            APIError: On a non-2xx response.
            ResponseDecodeError: If the body is not valid JSON.
        """
        engine = self.engine
        if engine is None:
            raise NotConfiguredError("DrChrono SDK has not been configured")

        response = engine.client.request(
            f"{self.base_url}{endpoint}",
            method,
            parameters=parameters,
            headers=headers,
            check_token_expiration=check_token_expiration,
        )
        if not response.is_success:
            detail = response.text[:200] if response.text else ""
            message = f"HTTP {response.status_code}"
            raise APIError(f"{message}: {detail}" if detail else message, response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise ResponseDecodeError(
                f"Response from {method.upper()} {endpoint} is not valid JSON"
            ) from exc
        return APIResponse(data=data, response=response)

    def get(self, endpoint: str, **kwargs: Any) -> APIResponse:
        return self.request(endpoint, "GET", **kwargs)

    def post(self, endpoint: str, **kwargs: Any) -> APIResponse:
        return self.request(endpoint, "POST", **kwargs)

    def put(self, endpoint: str, **kwargs: Any) -> APIResponse:
        return self.request(endpoint, "PUT", **kwargs)

    def patch(self, endpoint: str, **kwargs: Any) -> APIResponse:
        return self.request(endpoint, "PATCH", **kwargs)

    def delete(self, endpoint: str, **kwargs: Any) -> APIResponse:
        return self.request(endpoint, "DELETE", **kwargs)

    # ------------------------------------------------------------------ #
    # Credential access
    # ------------------------------------------------------------------ #

    @property
    def credential(self) -> Optional[Credential]:
        """The engine's current credential, or ``None`` if unconfigured."""
        if self.engine is None:
            return None
        return self.engine.client.credential

    @property
    def token(self) -> Optional[tuple[str, str]]:
        """``(oauth_token, oauth_token_secret)``, or ``None`` if unconfigured."""
        credential = self.credential
        if credential is None:
            return None
        return credential.oauth_token, credential.oauth_token_secret

    def restore_token(self, token: str, secret_token: str) -> None:
        """Resume a session from a saved token pair without the browser flow.

        Does nothing when no client identity is set.
        """
        if self.engine is None:
            return
        self.engine.client.restore(token, secret_token)

    def restore_credential(self, credential: Credential) -> None:
        """Replace the whole stored credential, expiry and refresh token included.

        Does nothing when no client identity is set.
        """
        if self.engine is None:
            return
        self.engine.client.credential = credential

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Cancel any in-flight attempt and release the HTTP transport."""
        self.cancel()
        if self.engine is not None:
            self.engine.client.close()

    def __enter__(self) -> DrChrono:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _fail_now(
    future: Future, on_failure: Optional[FailureCallback], error: DrChronoError
) -> Future:
    logger.warning("Authorization not started: %s", error)
    if on_failure is not None:
        try:
            on_failure(error)
        except Exception:
            logger.exception("on_failure callback raised")
    future.set_exception(error)
    return future
