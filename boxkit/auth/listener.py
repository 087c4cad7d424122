from __future__ import annotations

import asyncio
import html
import socket
from dataclasses import dataclass, field
from typing import Callable

import httpx
import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from ..constants import AUTH_LOGGER, AUTHORIZE_URL, CALLBACK_PATH, TOKEN_URL
from ..errors import AuthError, BoxError, TransportError
from . import box_oauth2
from .session import AccountSession, TokenState

StopCallback = Callable[[BaseException | None], None]

_PAGE = """<!doctype html>
<html><head><title>{title}</title></head>
<body><h1>{title}</h1><p>{message}</p></body></html>
"""


def _page(title: str, message: str, status_code: int) -> Response:
    return HTMLResponse(
        _PAGE.format(title=html.escape(title), message=html.escape(message)),
        status_code=status_code,
    )


@dataclass
class ListenerState:
    server: uvicorn.Server | None = None
    task: asyncio.Task | None = None
    sock: socket.socket | None = None

    @property
    def running(self) -> bool:
        return self.server is not None

    @property
    def open_sockets(self) -> set[asyncio.BaseTransport]:
        if self.server is None:
            return set()
        transports = set()
        for connection in self.server.server_state.connections:
            transport = getattr(connection, "transport", None)
            if transport is not None and not transport.is_closing():
                transports.add(transport)
        return transports


@dataclass
class AuthorizationListener:
    """Local endpoint that receives Box's OAuth redirect.

    Box sends the browser back to ``http://host:port/authorize?id=<account>``
    with a ``code`` query parameter. The code is exchanged for tokens and the
    result is handed to the account's session, so anything waiting on
    ``session.ready()`` resumes. A failed exchange moves the session to
    ``ERROR``; the listener keeps serving.
    """

    host: str
    port: int
    client_id: str
    client_secret: str
    session_for: Callable[[str], AccountSession | None]
    authorize_url: str = AUTHORIZE_URL
    token_url: str = TOKEN_URL
    http_client: httpx.AsyncClient | None = None
    exchange_code_fn: Callable = box_oauth2.exchange_code
    state: ListenerState = field(default_factory=ListenerState)

    def __post_init__(self) -> None:
        self.app = Starlette(
            routes=[Route(CALLBACK_PATH, self._handle_callback, methods=["GET"])],
        )

    def redirect_uri(self, account_id: str) -> str:
        return box_oauth2.build_redirect_uri(self.host, self.port, account_id, CALLBACK_PATH)

    def authorization_url(self, account_id: str) -> str:
        return box_oauth2.build_authorization_url(
            self.client_id,
            self.redirect_uri(account_id),
            authorize_url=self.authorize_url,
        )

    # -- lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        if self.state.running:
            return

        try:
            sock = socket.create_server((self.host, self.port))
        except OSError as error:
            raise TransportError(
                f"Could not listen for authorization callbacks on {self.host}:{self.port}: {error}"
            ) from error
        self.port = sock.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            lifespan="off",
            log_config=None,
            access_log=False,
        )
        server = uvicorn.Server(config)
        task = asyncio.create_task(server.serve(sockets=[sock]))
        self.state = ListenerState(server=server, task=task, sock=sock)

        while not server.started:
            if task.done():
                self.state = ListenerState()
                sock.close()
                task.result()
                raise TransportError("Authorization listener exited during startup.")
            await asyncio.sleep(0.01)

        AUTH_LOGGER.info("Listening for authorization callbacks on %s:%s", self.host, self.port)

    async def stop(self, callback: StopCallback | None = None) -> None:
        """Close the listener and drop every open connection.

        Stopping a listener that never started succeeds without doing
        anything. With ``callback`` the outcome is reported there instead of
        being raised.
        """
        error: BaseException | None = None
        if not self.state.running:
            AUTH_LOGGER.debug("Authorization listener not running; nothing to stop")
        else:
            try:
                await self._shutdown()
            except Exception as exc:
                error = exc

        if callback is not None:
            callback(error)
        elif error is not None:
            raise error

    async def _shutdown(self) -> None:
        state = self.state
        server = state.server
        AUTH_LOGGER.debug("Stopping authorization listener...")

        server.should_exit = True
        server.force_exit = True
        self._abort_connections(server)
        try:
            await state.task
        finally:
            # A connection accepted while the server was closing.
            self._abort_connections(server)
            await asyncio.sleep(0)
            if state.sock is not None:
                state.sock.close()
            self.state = ListenerState()
        AUTH_LOGGER.info("Authorization listener stopped")

    @staticmethod
    def _abort_connections(server: uvicorn.Server) -> None:
        for connection in list(server.server_state.connections):
            transport = getattr(connection, "transport", None)
            if transport is not None:
                transport.abort()

    # -- handlers --------------------------------------------------------------

    async def _handle_callback(self, request: Request) -> Response:
        account_id = request.query_params.get("id")
        if not account_id:
            return _page("Authorization failed", "Missing account id.", 400)

        session = self.session_for(account_id)
        if session is None:
            AUTH_LOGGER.warning("Authorization callback for unknown account %s", account_id)
            return _page("Authorization failed", "Unknown account.", 400)

        error = request.query_params.get("error")
        if error:
            description = request.query_params.get("error_description") or error
            # A denial never invalidates tokens that already work.
            if session.is_ready:
                AUTH_LOGGER.warning(
                    "Ignoring authorization denial for %s; its tokens are still valid",
                    account_id,
                )
            else:
                session.fail(
                    AuthError(f"Box authorization was denied: {description}", detail=error)
                )
            return _page("Authorization failed", description, 400)

        code = request.query_params.get("code")
        if not code:
            return _page("Authorization failed", "Missing authorization code.", 400)

        AUTH_LOGGER.debug("Authorization code received for %s", account_id)
        try:
            await self._wait_for_running_exchange(session)
            await session.run_exchange(lambda: self._exchange(account_id, code))
        except BoxError as exc:
            return _page("Authorization failed", f"Could not exchange the code: {exc}", 502)

        return _page("Authorization complete", "You can close this window.", 200)

    async def _wait_for_running_exchange(self, session: AccountSession) -> None:
        """Let an in-flight refresh finish so the new code is exchanged after it."""
        while session.state is TokenState.PENDING:
            AUTH_LOGGER.info(
                "Token exchange already running for %s; exchanging the new code after it",
                session.account_id,
            )
            try:
                await session.ready()
            except BoxError as exc:
                AUTH_LOGGER.debug("Earlier exchange for %s failed: %s", session.account_id, exc)

    async def _exchange(self, account_id: str, code: str) -> box_oauth2.TokenResponse:
        return await self.exchange_code_fn(
            client_id=self.client_id,
            client_secret=self.client_secret,
            code=code,
            redirect_uri=self.redirect_uri(account_id),
            token_url=self.token_url,
            client=self.http_client,
        )
