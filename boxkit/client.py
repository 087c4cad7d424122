from __future__ import annotations

import asyncio
from typing import IO, Any, Callable, Mapping

import httpx

from .auth import box_oauth2
from .auth.listener import AuthorizationListener, StopCallback
from .auth.session import AccountSession
from .auth.token_store import TokenStore
from .config import ClientConfig
from .connection import Connection
from .constants import API_BASE_URL, AUTH_LOGGER, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT, LOGGER
from .env import setup_logging
from .errors import AuthError, BoxError, ValidationError
from .http import build_http_client
from .registry import ConnectionRegistry


class Client:
    """Entry point: one instance per Box application.

    With a config the client runs standalone: it owns the local listener that
    receives OAuth redirects and can refresh tokens itself. Without one it is
    in delegated mode and tokens arrive through :meth:`authenticate`.

    ::

        async with Client({"client_id": "...", "client_secret": "...", "port": 9999}) as box:
            connection = box.get_connection("user@example.com")
            print(connection.get_auth_url())
            await connection.ready()
            items = await connection.folders.get_items(0)
    """

    def __init__(
        self,
        config: ClientConfig | Mapping | None = None,
        log_level: str | int | None = None,
        log_stream: IO[str] | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        token_store: TokenStore | None = None,
        sleep=asyncio.sleep,
    ) -> None:
        if isinstance(config, Mapping):
            config = ClientConfig.from_mapping(dict(config))
        self.config = config
        self.token_store = token_store
        self._store_writes: set[asyncio.Task] = set()

        if config is not None or log_level is not None or log_stream is not None:
            level = log_level if log_level is not None else (config.log_level if config else None)
            setup_logging(level, log_stream)

        self.http = build_http_client(
            timeout=config.timeout if config else DEFAULT_TIMEOUT,
            max_retries=config.max_retries if config else DEFAULT_MAX_RETRIES,
            transport=transport,
            sleep=sleep,
        )
        self.connections = ConnectionRegistry(self, on_create=self._watch_tokens)

        self.listener: AuthorizationListener | None = None
        if config is not None:
            self.listener = AuthorizationListener(
                host=config.host,
                port=config.port,
                client_id=config.client_id,
                client_secret=config.client_secret,
                session_for=self._session_for,
                authorize_url=config.authorize_url,
                token_url=config.token_url,
                http_client=self.http,
            )

    @property
    def standalone(self) -> bool:
        return self.config is not None

    @property
    def api_base_url(self) -> str:
        return self.config.api_base_url if self.config else API_BASE_URL

    async def __aenter__(self) -> "Client":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -- connections -----------------------------------------------------------

    def get_connection(self, account_id: str) -> Connection:
        return self.connections.get(account_id)

    async def restore_connection(
        self, account_id: str, *, refresh_expired: bool = True
    ) -> Connection:
        """Get the connection and load any tokens persisted for it.

        A stored access token that has expired is refreshed right away when
        the client holds credentials; a failed refresh leaves the session in
        ``ERROR`` so a new authorization can replace it.
        """
        connection = self.get_connection(account_id)
        if self.token_store is None:
            return connection
        data = await self.token_store.load(account_id)
        if data is None:
            return connection

        restored = connection.session.restore(data)
        if not (restored and refresh_expired and self.standalone):
            return connection
        if data.is_expired() and data.can_refresh:
            AUTH_LOGGER.info("Stored access token for %s has expired", account_id)
            try:
                await connection.refresh()
            except BoxError as error:
                LOGGER.warning("Could not refresh stored tokens for %s: %s", account_id, error)
        return connection

    def authorization_url(self, account_id: str) -> str:
        if self.listener is None:
            raise AuthError("Authorization URLs need a client configured for standalone mode.")
        return self.listener.authorization_url(account_id)

    def authenticate(self) -> Callable[..., Any]:
        """Verify callback for an external OAuth middleware.

        The middleware calls it with ``(access_token, refresh_token, profile,
        done)``; the Box login in ``profile["login"]`` selects the connection.
        """

        def verify(access_token: str, refresh_token: str | None, profile: Mapping, done=None):
            login = profile.get("login") if isinstance(profile, Mapping) else None
            if not login:
                raise ValidationError("profile must carry the Box login.")
            connection = self.get_connection(login)
            connection.set_tokens(
                {"access_token": access_token, "refresh_token": refresh_token}
            )
            if done is not None:
                return done(None, profile)
            return profile

        return verify

    # -- token exchange --------------------------------------------------------

    async def refresh_tokens(self, refresh_token: str) -> box_oauth2.TokenResponse:
        if self.config is None:
            raise AuthError("Token refresh needs client credentials; none were configured.")
        return await box_oauth2.refresh_token(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            refresh_token=refresh_token,
            token_url=self.config.token_url,
            client=self.http,
        )

    # -- lifecycle -------------------------------------------------------------

    async def start(self) -> None:
        if self.listener is None:
            return
        await self.listener.start()
        if self.config.refresh_token:
            await self._startup_refresh()

    async def _startup_refresh(self) -> None:
        account_id = self.config.account_id
        connection = await self.restore_connection(account_id, refresh_expired=False)
        session = connection.session
        # A persisted refresh token is newer than the configured one.
        if not session.refresh_token:
            session.refresh_token = self.config.refresh_token
        try:
            await connection.refresh()
        except BoxError as error:
            LOGGER.warning("Startup token refresh failed for %s: %s", account_id, error)

    async def stop_server(self, callback: StopCallback | None = None) -> None:
        if self.listener is None:
            if callback is not None:
                callback(None)
            return
        await self.listener.stop(callback)

    async def aclose(self) -> None:
        await self.stop_server()
        if self._store_writes:
            await asyncio.gather(*self._store_writes, return_exceptions=True)
        await self.http.aclose()

    # -- internals -------------------------------------------------------------

    def _session_for(self, account_id: str) -> AccountSession | None:
        # Callbacks never create connections.
        connection = self.connections.peek(account_id)
        return connection.session if connection is not None else None

    def _watch_tokens(self, connection: Connection) -> None:
        if self.token_store is None:
            return
        connection.session.add_token_listener(self._persist_tokens)

    def _persist_tokens(self, session: AccountSession) -> None:
        write = self.token_store.save(session.account_id, session.snapshot())
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Tokens handed over from synchronous middleware code.
            asyncio.run(write)
            return
        task = loop.create_task(write)
        self._store_writes.add(task)
        task.add_done_callback(self._store_write_done)

    def _store_write_done(self, task: asyncio.Task) -> None:
        self._store_writes.discard(task)
        if not task.cancelled() and task.exception() is not None:
            AUTH_LOGGER.warning("Could not persist tokens: %s", task.exception())
