"""Local HTTP listener receiving the provider's authorization redirect.

Serves GET / on a fixed loopback port with Starlette under uvicorn,
hands exactly one redirect to the orchestrator through a one-shot future
and shows the user a page telling them to return to the terminal.
"""

from __future__ import annotations

import asyncio
import contextlib
import html
import logging
import socket

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse
from starlette.routing import Route

from gmail_cli.auth.models.errors import ListenerBindError, ListenerError
from gmail_cli.auth.models.flow import CallbackResult

logger = logging.getLogger(__name__)

_PAGE = """<html>
<head><title>Gmail CLI Tools - {title}</title></head>
<body style="font-family: sans-serif; padding: 40px; text-align: center;">
    <h1>{title}</h1>
    <p>{message}</p>
    {script}
</body>
</html>
"""

# Extra time on top of the graceful shutdown period before forcing exit.
_STOP_MARGIN = 1.0


def render_page(title: str, message: str, close_window: bool = False) -> str:
    """Render the confirmation page shown in the browser."""
    return _PAGE.format(
        title=html.escape(title),
        message=html.escape(message),
        script="<script>window.close();</script>" if close_window else "",
    )


class CallbackListener:
    """Short-lived HTTP endpoint for one authorization attempt.

    The socket is bound before the server task starts, so bind failures
    surface from start() instead of inside uvicorn.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 8080,
        shutdown_grace_period: float = 5.0,
    ) -> None:
        self.host = host
        self.port = port
        self.shutdown_grace_period = shutdown_grace_period

        self._app = Starlette(
            routes=[Route("/", self._handle_callback, methods=["GET"])]
        )
        self._socket: socket.socket | None = None
        self._bound_port: int | None = None
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._result: asyncio.Future[CallbackResult] | None = None
        self._stopping = False

    @property
    def bound_port(self) -> int:
        """Port actually bound; differs from port when port is 0."""
        return self._bound_port or self.port

    @property
    def redirect_uri(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"http://{host}:{self.bound_port}"

    @property
    def is_serving(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    async def start(self) -> None:
        """Bind the port and start serving in a background task.

        Raises:
            ListenerBindError: If the port cannot be bound (in use, no
                permission). Not retried.
        """
        if self._server is not None:
            raise RuntimeError("CallbackListener can only be started once")

        self._socket = self._bind_socket()
        self._bound_port = self._socket.getsockname()[1]
        self._result = asyncio.get_running_loop().create_future()

        config = uvicorn.Config(
            app=self._app,
            log_config=None,
            access_log=False,
            lifespan="off",
            timeout_graceful_shutdown=self.shutdown_grace_period,
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(
            self._server.serve(sockets=[self._socket])
        )
        self._serve_task.add_done_callback(self._on_server_exit)
        logger.info(f"Callback listener started on {self.redirect_uri}")

    def _bind_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self.port))
            sock.listen(8)
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            raise ListenerBindError(
                f"Cannot bind callback listener to {self.host}:{self.port}: {e}"
            ) from e
        return sock

    async def wait_for_callback(self) -> CallbackResult:
        """Wait for the one redirect of this attempt.

        Raises:
            ListenerError: If the server stopped before a redirect arrived
        """
        if self._result is None:
            raise RuntimeError("CallbackListener has not been started")
        return await self._result

    async def stop(self) -> None:
        """Shut the server down and release the port.

        In-flight connections get the graceful shutdown period; after that
        plus a small margin the server is forced to exit. Safe to call more
        than once.
        """
        self._stopping = True
        if self._result is not None and not self._result.done():
            self._result.cancel()

        if self._server is not None and self._serve_task is not None:
            self._server.should_exit = True
            try:
                await asyncio.wait_for(
                    asyncio.shield(self._serve_task),
                    timeout=self.shutdown_grace_period + _STOP_MARGIN,
                )
            except asyncio.TimeoutError:
                logger.warning("Callback listener did not stop in time, forcing exit")
                self._server.force_exit = True
                self._serve_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._serve_task
            except Exception as e:
                logger.debug(f"Callback listener exited with error: {e}")

        if self._socket is not None:
            self._socket.close()
        logger.debug("Callback listener stopped")

    def _on_server_exit(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            error = ListenerError("Callback listener was cancelled")
        elif task.exception() is not None:
            error = ListenerError(f"Callback listener failed: {task.exception()}")
        else:
            error = ListenerError("Callback listener stopped before a redirect arrived")

        if self._result is not None and not self._result.done() and not self._stopping:
            logger.error(str(error))
            self._result.set_exception(error)

    async def _handle_callback(self, request: Request) -> HTMLResponse:
        """Handle the provider redirect."""
        if self._result is None or self._result.done():
            logger.info("Ignoring callback received after the session completed")
            return HTMLResponse(
                render_page(
                    "Session Complete",
                    "This authorization session is already complete. "
                    "You can close this window.",
                ),
                status_code=409,
            )

        params = request.query_params
        error = params.get("error")
        if error:
            description = params.get("error_description")
            logger.warning(f"Provider redirected with error: {error}")
            self._result.set_result(
                CallbackResult(
                    state=params.get("state"),
                    error=error,
                    error_description=description,
                )
            )
            return HTMLResponse(
                render_page(
                    "Authorization Failed",
                    f"{error}: {description or 'no description'}. "
                    "Return to the terminal for details.",
                ),
                status_code=400,
            )

        code = params.get("code")
        if not code:
            logger.warning("Callback without authorization code, still waiting")
            return HTMLResponse(
                render_page("Invalid Request", "Missing authorization code."),
                status_code=400,
            )

        self._result.set_result(CallbackResult(code=code, state=params.get("state")))
        logger.debug("Authorization redirect received")
        return HTMLResponse(
            render_page(
                "Authorization Successful!",
                "You can now close this window and return to the terminal.",
                close_window=True,
            )
        )
