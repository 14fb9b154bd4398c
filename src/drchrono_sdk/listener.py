"""Ephemeral loopback HTTP listener for OAuth redirects.

The provider redirects the browser to ``http://localhost:<port>/<scheme>``,
a URL it accepts as a registered redirect URI. :class:`RedirectListener`
answers that single route with a ``301`` into the application's own
custom scheme (``<scheme>://oauth?code=...&state=...``), which the host
platform -- or, by default, :class:`~drchrono_sdk.client.DrChrono`
itself -- routes to the OAuth engine.

The server runs on a daemon thread from :meth:`RedirectListener.start`
until :meth:`RedirectListener.stop`. Each connection is handled on its own
daemon thread with a socket timeout, so an idle client (a browser
preconnect, a port scanner) can neither hold up the redirect nor keep
:meth:`RedirectListener.stop` waiting. The handler writes the redirect,
then hands the target URL to the optional ``on_redirect`` callback.
"""

from __future__ import annotations

import logging
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Optional
from urllib.parse import urlparse

from drchrono_sdk.exceptions import BindError
from drchrono_sdk.models import RedirectResult

logger = logging.getLogger(__name__)

RedirectCallback = Callable[[str], None]


class _RedirectServer(ThreadingHTTPServer):
    """Threading HTTP server carrying the route configuration for its handler."""

    daemon_threads = True
    block_on_close = False

    def __init__(
        self,
        address: tuple[str, int],
        path_segment: str,
        on_redirect: Optional[RedirectCallback],
    ) -> None:
        self.path_segment = path_segment
        self.on_redirect = on_redirect
        super().__init__(address, _RedirectHandler)


class _RedirectHandler(BaseHTTPRequestHandler):
    server: _RedirectServer

    # Seconds a connection may stay silent before it is dropped.
    timeout = 5

    def do_GET(self) -> None:
        parsed = urlparse(self.path)
        if parsed.path != f"/{self.server.path_segment}":
            self._not_found()
            return

        result = RedirectResult.from_query(parsed.query)
        target = result.location(self.server.path_segment)

        self.send_response(301)
        self.send_header("Location", target)
        self.send_header("Content-Length", "0")
        self.end_headers()
        self.wfile.flush()

        if result.denied:
            logger.info("Redirect without authorization code, forwarding access_denied")

        callback = self.server.on_redirect
        if callback is not None:
            try:
                callback(target)
            except Exception:
                logger.exception("Redirect callback failed for %s", target)

    def do_POST(self) -> None:
        self._not_found()

    def do_PUT(self) -> None:
        self._not_found()

    def do_DELETE(self) -> None:
        self._not_found()

    def do_HEAD(self) -> None:
        self._not_found()

    def _not_found(self) -> None:
        self.send_response(404)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:
        logger.debug("redirect listener: " + format, *args)


class RedirectListener:
    """Single-route HTTP server that turns an OAuth redirect into a custom-scheme redirect.

    Args:
        host: Interface to bind. Loopback only by default.
        on_redirect: Called with the custom-scheme target URL after each
            matching request has been answered. Runs on the connection
            thread, so it must return quickly.

    Example::

        listener = RedirectListener()
        listener.start(9080, "myapp")
        # GET http://localhost:9080/myapp?code=ABC -> 301 myapp://oauth?code=ABC
        listener.stop()
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        on_redirect: Optional[RedirectCallback] = None,
    ) -> None:
        self._host = host
        self._on_redirect = on_redirect
        self._server: Optional[_RedirectServer] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> Optional[int]:
        """The bound port, or ``None`` while stopped."""
        server = self._server
        if server is None:
            return None
        return server.server_address[1]

    def start(self, port: int, path_segment: str) -> None:
        """Bind ``port`` and start serving ``GET /<path_segment>``.

        Returns once the socket is listening, so a redirect issued right
        after this call cannot race the bind.

        Raises:
            BindError: If the port is out of range, already in use, or the
                listener is already running.
        """
        if not isinstance(port, int) or not 1 <= port <= 65535:
            raise BindError(f"Invalid port {port!r}: must be between 1 and 65535")

        with self._lock:
            if self._server is not None:
                raise BindError(f"Redirect listener already running on port {self.port}")
            try:
                server = _RedirectServer(
                    (self._host, port), path_segment, self._on_redirect
                )
            except OSError as exc:
                raise BindError(f"Cannot bind {self._host}:{port}: {exc}") from exc

            thread = threading.Thread(
                target=server.serve_forever,
                name=f"redirect-listener-{port}",
                daemon=True,
            )
            thread.start()
            self._server = server
            self._thread = thread

        logger.debug("Redirect listener serving /%s on %s:%d", path_segment, self._host, port)

    def stop(self) -> None:
        """Stop serving and release the port.

        Safe to call when never started, after a failed start, or more
        than once. Connections still open are abandoned, not waited for.
        """
        with self._lock:
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None

        if server is None:
            return

        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join()
        logger.debug("Redirect listener on port %d stopped", server.server_address[1])
