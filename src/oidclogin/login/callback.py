"""Local HTTP listener for the provider's authorization redirect."""

from __future__ import annotations

import asyncio
import socket
from collections.abc import Iterator
from contextlib import contextmanager
from types import TracebackType
from typing import Self
from urllib.parse import urlsplit, urlunsplit

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import Response
from structlog.stdlib import BoundLogger

from ..constants import (
    CALLBACK_CLOSE_DELAY,
    CALLBACK_START_TIMEOUT,
    DEFAULT_REDIRECT_URL,
)
from ..exceptions import CallbackError
from .templates import templates

__all__ = ["CallbackServer"]


class _Server(uvicorn.Server):
    """Uvicorn server that leaves signal handling to the application."""

    @contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


class CallbackServer:
    """Receive the authorization code from the provider's redirect.

    The listening socket is bound when the server is constructed, so the
    redirect URL is known (and reserved) before any login starts.  The HTTP
    server itself runs as a background task once `start` is called and is
    reused by later logins until `aclose` is called.

    Only one login can wait for a redirect at a time.  A login registers
    the state it sent with `expect` and awaits the returned future, which
    the request handler resolves with the authorization code or fails with
    `~oidclogin.exceptions.CallbackError`.

    Parameters
    ----------
    redirect_url
        Redirect URL registered with the provider.  Its host and port are
        bound locally and its path receives the redirect.  Port 0 picks a
        free port.
    start_timeout
        How long (in seconds) to wait for the server to start listening.
    logger
        Logger for any log messages.

    Raises
    ------
    CallbackError
        Raised if the address could not be bound.
    """

    def __init__(
        self,
        redirect_url: str = DEFAULT_REDIRECT_URL,
        *,
        start_timeout: float = CALLBACK_START_TIMEOUT,
        logger: BoundLogger | None = None,
    ) -> None:
        self._start_timeout = start_timeout
        self._logger = logger or structlog.get_logger("oidclogin")
        url = urlsplit(redirect_url)
        host = url.hostname or "127.0.0.1"
        port = url.port if url.port is not None else 80
        family = socket.AF_INET6 if ":" in host else socket.AF_INET
        try:
            self._socket = socket.create_server((host, port), family=family)
        except OSError as e:
            msg = f"Cannot listen on {host}:{port}: {e!s}"
            raise CallbackError(msg) from e

        port = self._socket.getsockname()[1]
        netloc = f"[{host}]:{port}" if family == socket.AF_INET6 else None
        netloc = netloc or f"{host}:{port}"
        self._path = url.path or "/"
        self._redirect_url = urlunsplit(
            (url.scheme or "http", netloc, self._path, "", "")
        )

        self._pending: tuple[str, asyncio.Future[str]] | None = None
        self._server: _Server | None = None
        self._task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def redirect_url(self) -> str:
        """URL on which the redirect is received, with the bound port."""
        return self._redirect_url

    async def aclose(self) -> None:
        """Stop the server and release the socket."""
        if self._server and self._task:
            self._server.should_exit = True
            await asyncio.wait({self._task})
        self._socket.close()

    def expect(self, state: str) -> asyncio.Future[str]:
        """Register a login waiting for the redirect.

        Parameters
        ----------
        state
            The state parameter sent in the authorization request.

        Returns
        -------
        asyncio.Future
            Resolved with the authorization code, or failed with
            `~oidclogin.exceptions.CallbackError`, when the redirect
            arrives.

        Raises
        ------
        CallbackError
            Raised if another login is already waiting.
        """
        if self._pending and not self._pending[1].done():
            raise CallbackError("Another login is waiting for a callback")
        future = asyncio.get_running_loop().create_future()
        self._pending = (state, future)
        return future

    def forget(self, future: asyncio.Future[str]) -> None:
        """Stop waiting on a registered login, cancelling it if unresolved."""
        if self._pending and self._pending[1] is future:
            self._pending = None
        if not future.done():
            future.cancel()

    async def start(self) -> None:
        """Start serving requests if not already running.

        Raises
        ------
        CallbackError
            Raised if the server failed to start or has already stopped.
        """
        if self._task:
            if self._task.done():
                raise CallbackError("Callback server is not running")
            return

        config = uvicorn.Config(
            self._create_app(),
            log_config=None,
            access_log=False,
            lifespan="off",
        )
        self._server = _Server(config)
        serve = self._server.serve(sockets=[self._socket])
        self._task = asyncio.create_task(serve)
        self._task.add_done_callback(self._on_server_exit)
        try:
            async with asyncio.timeout(self._start_timeout):
                while not self._server.started:
                    if self._task.done():
                        msg = "Callback server failed to start"
                        raise CallbackError(msg)
                    await asyncio.sleep(0.01)
        except TimeoutError as e:
            self._task.cancel()
            await asyncio.wait({self._task})
            msg = "Callback server did not start in time"
            raise CallbackError(msg) from e
        self._logger.debug(
            "Started callback server", redirect_url=self._redirect_url
        )

    def _create_app(self) -> FastAPI:
        app = FastAPI(openapi_url=None, docs_url=None, redoc_url=None)

        async def callback(request: Request) -> Response:
            return self._handle_callback(request)

        app.add_api_route(
            self._path, callback, methods=["GET"], include_in_schema=False
        )
        return app

    def _handle_callback(self, request: Request) -> Response:
        pending = self._pending
        if not pending or pending[1].done():
            self._logger.warning("Received callback with no login waiting")
            return self._render_error(
                request,
                "No login is in progress.",
                status.HTTP_409_CONFLICT,
            )

        # Each login accepts exactly one redirect.
        expected_state, future = pending
        self._pending = None

        params = request.query_params
        code = params.get("code")
        state = params.get("state")
        if "error" in params:
            msg = f"Authentication provider returned error {params['error']}"
            if params.get("error_description"):
                msg += f": {params['error_description']}"
        elif not code or not state:
            msg = "Callback did not contain code and state"
        elif state != expected_state:
            msg = "State in callback does not match the login request"
        else:
            self._logger.info("Received authorization code")
            future.set_result(code)
            return templates.TemplateResponse(
                request,
                "callback_ok.html",
                {"close_delay": CALLBACK_CLOSE_DELAY},
            )

        self._logger.warning("Authentication callback failed", error=msg)
        future.set_exception(CallbackError(msg))
        return self._render_error(request, msg, status.HTTP_400_BAD_REQUEST)

    def _on_server_exit(self, task: asyncio.Task[None]) -> None:
        error = None if task.cancelled() else task.exception()
        if error:
            self._logger.error("Callback server failed", error=str(error))
        if self._pending and not self._pending[1].done():
            msg = "Callback server stopped before receiving a redirect"
            self._pending[1].set_exception(CallbackError(msg))
            self._pending = None

    def _render_error(
        self, request: Request, message: str, status_code: int
    ) -> Response:
        return templates.TemplateResponse(
            request,
            "callback_error.html",
            {"close_delay": CALLBACK_CLOSE_DELAY, "message": message},
            status_code=status_code,
        )
