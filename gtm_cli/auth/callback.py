"""Ephemeral local HTTP listener for the OAuth redirect.

The browser is redirected to ``http://localhost:8085/callback`` after consent.
The handler validates the query string and delivers the outcome through a
single-slot rendezvous (a :class:`concurrent.futures.Future`) that the login
flow waits on. Only the first terminal callback counts; later requests (a
reload, a duplicate tab) are answered but ignored.

Security considerations:
- The ``state`` parameter must match the value generated for this login
  (CSRF protection); mismatches abort the flow
- The listener binds to the loopback interface only
- Each request socket has a timeout so a stalled client cannot block shutdown
"""

from __future__ import annotations

import errno
import html
import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlparse

from gtm_cli.config.constants import (
    OAUTH_CALLBACK_HOST,
    OAUTH_CALLBACK_PATH,
    OAUTH_CALLBACK_PORT,
)
from gtm_cli.utils.errors import AuthenticationError

logger = logging.getLogger(__name__)

# Delay before the outcome is signalled, so the HTML response is flushed first
SIGNAL_DELAY_SECONDS = 0.1
# Grace period between the terminal signal and listener shutdown
SHUTDOWN_GRACE_SECONDS = 0.5
WAIT_POLL_SECONDS = 0.5

MSG_STATE_MISMATCH = "State mismatch - possible CSRF attack"
MSG_NO_CODE = "No authorization code received"

_PAGE_STYLE = """
    body {
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
      display: flex; justify-content: center; align-items: center;
      height: 100vh; margin: 0; color: white; background: %s;
    }
    .container { text-align: center; padding: 2rem; border-radius: 1rem;
      background: rgba(255,255,255,0.1); }
    .icon { font-size: 4rem; margin-bottom: 1rem; }
"""
_SUCCESS_STYLE = _PAGE_STYLE % "linear-gradient(135deg, #667eea 0%, #764ba2 100%)"
_ERROR_STYLE = _PAGE_STYLE % "linear-gradient(135deg, #eb3349 0%, #f45c43 100%)"


def success_html() -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>Authentication Successful</title>
  <style>{_SUCCESS_STYLE}</style>
</head>
<body>
  <div class="container">
    <div class="icon">&#10003;</div>
    <h1>Authentication Successful!</h1>
    <p>You can close this window and return to the terminal.</p>
  </div>
</body>
</html>"""


def error_html(message: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head>
  <title>Authentication Failed</title>
  <style>{_ERROR_STYLE}</style>
</head>
<body>
  <div class="container">
    <div class="icon">&#10007;</div>
    <h1>Authentication Failed</h1>
    <p>{html.escape(message)}</p>
    <p>Please try again in the terminal.</p>
  </div>
</body>
</html>"""


class _CallbackHTTPServer(HTTPServer):
    """HTTPServer carrying a back-reference to its :class:`CallbackServer`."""

    callback: CallbackServer


class CallbackHandler(BaseHTTPRequestHandler):
    """HTTP request handler for the OAuth redirect."""

    server: _CallbackHTTPServer
    timeout = 5

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        callback = self.server.callback

        if parsed.path != callback.callback_path:
            self.send_response(404)
            self.send_header("Content-Type", "text/plain")
            self.end_headers()
            self.wfile.write(b"Not found")
            return

        params = parse_qs(parsed.query)
        error = params.get("error", [None])[0]
        code = params.get("code", [None])[0]
        returned_state = params.get("state", [None])[0]

        if callback.signalled:
            self._send_html(400, error_html("This login request was already processed."))
            return

        if error:
            self._send_html(400, error_html(error))
            callback.reject(
                AuthenticationError(
                    f"OAuth error: {error}",
                    details={"oauth_error": error},
                )
            )
        elif not code:
            self._send_html(400, error_html(MSG_NO_CODE))
            callback.reject(
                AuthenticationError(MSG_NO_CODE, details={"params": sorted(params)})
            )
        elif returned_state != callback.expected_state:
            # Don't leak state values in error details
            self._send_html(400, error_html("Security error: state mismatch"))
            callback.reject(
                AuthenticationError(
                    MSG_STATE_MISMATCH,
                    details={"hint": "Request may have been tampered with"},
                )
            )
        else:
            self._send_html(200, success_html())
            callback.resolve(code)

    def _send_html(self, status: int, body: str) -> None:
        payload = body.encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def log_message(self, format: str, *args: object) -> None:  # noqa: A002
        logger.debug("OAuth callback server: %s", format % args)


class CallbackServer:
    """Local listener that turns one OAuth redirect into a code or an error.

    Example:
        >>> server = CallbackServer(expected_state=state)
        >>> server.start()
        >>> try:
        ...     code = server.wait()
        ... finally:
        ...     server.close()
    """

    def __init__(
        self,
        expected_state: str,
        host: str = OAUTH_CALLBACK_HOST,
        port: int = OAUTH_CALLBACK_PORT,
        callback_path: str = OAUTH_CALLBACK_PATH,
        signal_delay: float = SIGNAL_DELAY_SECONDS,
        shutdown_grace: float = SHUTDOWN_GRACE_SECONDS,
    ) -> None:
        self.expected_state = expected_state
        self.host = host
        self.port = port
        self.callback_path = callback_path
        self.signal_delay = signal_delay
        self.shutdown_grace = shutdown_grace

        self._result: Future[str] = Future()
        self._lock = threading.Lock()
        self._signalled = False
        self._closed = False
        self._server: _CallbackHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def signalled(self) -> bool:
        return self._signalled

    @property
    def bound_port(self) -> int:
        if self._server is None:
            raise RuntimeError("Callback server is not running")
        return int(self._server.server_address[1])

    def start(self) -> int:
        """Bind the listener and start serving on a background thread.

        Returns:
            The bound port. Connections are accepted once this returns.

        Raises:
            AuthenticationError: If the port is already in use.
        """
        try:
            server = _CallbackHTTPServer((self.host, self.port), CallbackHandler)
        except OSError as e:
            if e.errno == errno.EADDRINUSE:
                raise AuthenticationError(
                    f"Port {self.port} is already in use. Close the program "
                    "using it (or a previous login) and try again.",
                    details={"port": self.port},
                ) from e
            raise
        server.callback = self
        self._server = server

        ready = threading.Event()

        def serve() -> None:
            ready.set()
            server.serve_forever(poll_interval=0.1)

        self._thread = threading.Thread(
            target=serve, name="oauth-callback-server", daemon=True
        )
        self._thread.start()
        ready.wait()
        logger.debug("OAuth callback server listening on %s:%d", self.host, self.bound_port)
        return self.bound_port

    def _claim(self) -> bool:
        with self._lock:
            if self._signalled:
                return False
            self._signalled = True
            return True

    def _deliver(self, outcome: str | BaseException) -> None:
        # Future.set_* raises InvalidStateError on a second write
        if self._result.done():
            return
        if isinstance(outcome, BaseException):
            self._result.set_exception(outcome)
        else:
            self._result.set_result(outcome)

    def _schedule(self, outcome: str | BaseException) -> None:
        if not self._claim():
            logger.debug("Ignoring duplicate OAuth callback")
            return
        timer = threading.Timer(self.signal_delay, self._deliver, args=(outcome,))
        timer.daemon = True
        timer.start()

    def resolve(self, code: str) -> None:
        """Deliver the authorization code after the flush delay."""
        self._schedule(code)

    def reject(self, error: BaseException) -> None:
        """Abort the flow with ``error`` after the flush delay."""
        self._schedule(error)

    def wait(self, timeout: float | None = None) -> str:
        """Block until the callback delivers a code.

        Waits in short slices so KeyboardInterrupt is delivered promptly.

        Args:
            timeout: Seconds to wait in total. None waits indefinitely.

        Returns:
            The authorization code.

        Raises:
            AuthenticationError: On an OAuth error, missing code, state
                mismatch, or timeout.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            slice_seconds = WAIT_POLL_SECONDS
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise AuthenticationError(
                        "Authentication timed out or was cancelled",
                        details={"timeout_seconds": timeout},
                    )
                slice_seconds = min(slice_seconds, remaining)
            try:
                return self._result.result(timeout=slice_seconds)
            except FutureTimeoutError:
                continue

    def close(self, grace: float | None = None) -> None:
        """Shut the listener down, exactly once.

        Args:
            grace: Seconds to wait first so an in-flight response completes.
                Defaults to ``shutdown_grace``; pass 0 on interrupt.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True

        if self._server is None:
            return

        delay = self.shutdown_grace if grace is None else grace
        if delay > 0:
            time.sleep(delay)

        try:
            self._server.shutdown()
            self._server.server_close()
        except OSError as e:
            logger.debug("Ignoring error while closing callback server: %s", e)

        if self._thread is not None:
            self._thread.join(timeout=CallbackHandler.timeout)
        logger.debug("OAuth callback server stopped")

    def __enter__(self) -> CallbackServer:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


__all__ = [
    "CallbackServer",
    "CallbackHandler",
    "MSG_STATE_MISMATCH",
    "MSG_NO_CODE",
    "SIGNAL_DELAY_SECONDS",
    "SHUTDOWN_GRACE_SECONDS",
    "success_html",
    "error_html",
]
