"""Local HTTP listener that receives the OAuth redirect.

The request handler runs on the server's thread while the login flow awaits
on the event loop. Exactly one outcome crosses that boundary: the first
callback to finish wins and every later request is answered but ignored.
"""

import asyncio
import threading
from collections.abc import Callable
from dataclasses import dataclass
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlparse

from structlog import get_logger

from lark_cli.auth.oauth.constants import (
    USER_OAUTH_CALLBACK_PATH,
    USER_OAUTH_LISTEN_HOST,
    USER_OAUTH_LISTEN_PORT,
)
from lark_cli.exceptions import (
    OAuthCallbackError,
    OAuthLoginError,
    OAuthStateMismatchError,
    OAuthTimeoutError,
)


logger = get_logger(__name__)

SUCCESS_PAGE_TEXT = "Login complete. You can close this window."


@dataclass
class OAuthCallbackResult:
    """Container for OAuth callback results."""

    code: str = ""
    error: Exception | None = None


class OneShotLatch:
    """Thread-safe flag that can be tripped exactly once."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._fired = False

    def try_fire(self) -> bool:
        """Trip the latch.

        Returns:
            True for the first caller only

        """
        with self._lock:
            if self._fired:
                return False
            self._fired = True
            return True

    @property
    def fired(self) -> bool:
        with self._lock:
            return self._fired


class CallbackResultChannel:
    """Single-slot handoff from the handler thread to the waiting coroutine.

    Must be created while the event loop that will await it is running.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future[OAuthCallbackResult] = self._loop.create_future()
        self._latch = OneShotLatch()

    def offer(self, result: OAuthCallbackResult) -> bool:
        """Deliver a result from any thread without blocking.

        Returns:
            True if this result was accepted, False if one was already taken

        """
        if not self._latch.try_fire():
            logger.debug("oauth_callback_duplicate_ignored")
            return False
        try:
            self._loop.call_soon_threadsafe(self._resolve, result)
        except RuntimeError:
            # Event loop already closed; the waiter is gone.
            logger.debug("oauth_callback_loop_closed")
            return False
        return True

    def _resolve(self, result: OAuthCallbackResult) -> None:
        if not self._future.done():
            self._future.set_result(result)

    async def receive(self, timeout: float | None) -> str:
        """Wait for the callback outcome.

        Args:
            timeout: Seconds to wait; None waits indefinitely

        Returns:
            Authorization code

        Raises:
            OAuthTimeoutError: If no callback arrived in time
            OAuthCallbackError: If the callback reported a failure

        """
        try:
            result = await asyncio.wait_for(self._future, timeout)
        except TimeoutError:
            raise OAuthTimeoutError() from None
        if result.error is not None:
            raise result.error
        return result.code


def _create_oauth_callback_handler(
    expected_state: str,
    channel: CallbackResultChannel,
    on_complete: Callable[[], None] | None = None,
) -> type[BaseHTTPRequestHandler]:
    """Create an OAuth callback HTTP request handler.

    Args:
        expected_state: Expected state parameter for CSRF protection
        channel: Channel the first outcome is delivered through
        on_complete: Optional no-argument callable run after a response is
            written for the callback path

    Returns:
        A BaseHTTPRequestHandler subclass for processing OAuth callbacks

    """

    class OAuthCallbackHandler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            parsed_url = urlparse(self.path)
            if parsed_url.path != USER_OAUTH_CALLBACK_PATH:
                self.send_response(404)
                self.end_headers()
                return

            query_params = parse_qs(parsed_url.query)

            def param(name: str) -> str:
                return query_params.get(name, [""])[0]

            if param("state") != expected_state:
                result = OAuthCallbackResult(error=OAuthStateMismatchError())
                self._send_error("OAuth state mismatch")
            elif param("error"):
                error = param("error")
                description = param("error_description")
                message = f"oauth error: {error}"
                if description:
                    message = f"{message}: {description}"
                result = OAuthCallbackResult(error=OAuthCallbackError(message))
                self._send_error(error)
            elif not param("code"):
                result = OAuthCallbackResult(
                    error=OAuthCallbackError("oauth callback missing code")
                )
                self._send_error("missing code")
            else:
                result = OAuthCallbackResult(code=param("code"))
                self._send_success()

            accepted = channel.offer(result)
            logger.debug(
                "oauth_callback_received",
                accepted=accepted,
                success=result.error is None,
            )
            if on_complete is not None:
                on_complete()

        def _send_success(self) -> None:
            self._send_text(200, SUCCESS_PAGE_TEXT)

        def _send_error(self, message: str) -> None:
            self._send_text(400, f"Login failed: {message}")

        def _send_text(self, status: int, text: str) -> None:
            body = text.encode()
            self.send_response(status)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args: Any) -> None:
            pass  # Suppress HTTP server logs

    return OAuthCallbackHandler


class OAuthCallbackServer:
    """Short-lived callback listener served on a daemon thread."""

    def __init__(
        self,
        expected_state: str,
        channel: CallbackResultChannel,
        host: str = USER_OAUTH_LISTEN_HOST,
        port: int = USER_OAUTH_LISTEN_PORT,
    ) -> None:
        self.host = host
        self.port = port
        self._handler_class = _create_oauth_callback_handler(
            expected_state, channel, on_complete=self.shutdown_async
        )
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._shutdown_latch = OneShotLatch()

    @property
    def server_port(self) -> int:
        """Bound port; differs from ``port`` when binding to port 0."""
        if self._server is None:
            return self.port
        return self._server.server_address[1]

    def start(self) -> None:
        """Bind the listener and start serving.

        Raises:
            OAuthLoginError: If the address cannot be bound

        """
        try:
            self._server = ThreadingHTTPServer(
                (self.host, self.port), self._handler_class
            )
        except OSError as e:
            raise OAuthLoginError(f"listen on {self.host}:{self.port}: {e}") from e
        self._server.daemon_threads = True
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.debug("oauth_callback_listening", host=self.host, port=self.server_port)

    def shutdown_async(self) -> None:
        """Stop the listener from a background thread.

        Safe to call from a request handler, where a direct ``shutdown()``
        would deadlock waiting on the serving loop.
        """
        if self._server is None or not self._shutdown_latch.try_fire():
            return
        threading.Thread(target=self._shutdown, daemon=True).start()

    def _shutdown(self) -> None:
        server = self._server
        if server is None:
            return
        server.shutdown()
        server.server_close()
        logger.debug("oauth_callback_stopped")

    def close(self, timeout: float = 1.0) -> None:
        """Stop the listener and wait briefly for the serving thread."""
        if self._server is not None and self._shutdown_latch.try_fire():
            self._shutdown()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
