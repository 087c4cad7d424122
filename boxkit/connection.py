from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Any, Mapping

import httpx

from . import resources
from .auth.session import AccountSession, ReadyCallback, TokenState
from .constants import AUTH_LOGGER, HTTP_LOGGER
from .errors import AuthError, TransportError
from .http import parse_response
from .options import SearchOptions
from .request import PendingRequest

if TYPE_CHECKING:
    import asyncio

    from .client import Client


class ConnectionStatus(enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    AUTH_FAILED = "auth_failed"


class Connection:
    """API handle for one Box account.

    Resource calls are grouped by endpoint family (``folders``, ``files``,
    ``collaborations``, ``users``) and all go through :meth:`request`.
    """

    def __init__(self, client: "Client", account_id: str) -> None:
        self.client = client
        self.account_id = account_id
        self.session = AccountSession(account_id)
        self._auth_url_issued = False

        self.folders = resources.Folders(self)
        self.files = resources.Files(self)
        self.collaborations = resources.Collaborations(self)
        self.users = resources.Users(self)

    def __repr__(self) -> str:
        return f"Connection(account_id={self.account_id!r}, status={self.status.value})"

    @property
    def status(self) -> ConnectionStatus:
        state = self.session.state
        if state is TokenState.READY:
            return ConnectionStatus.AUTHENTICATED
        if state is TokenState.ERROR:
            return ConnectionStatus.AUTH_FAILED
        if state is TokenState.PENDING:
            if self.session.access_token:
                return ConnectionStatus.REFRESHING
            return ConnectionStatus.AWAITING_CALLBACK
        if self._auth_url_issued:
            return ConnectionStatus.AWAITING_CALLBACK
        return ConnectionStatus.UNAUTHENTICATED

    def get_auth_url(self) -> str:
        url = self.client.authorization_url(self.account_id)
        self._auth_url_issued = True
        return url

    def ready(self, callback: ReadyCallback | None = None) -> "asyncio.Future[None]":
        return self.session.ready(callback)

    def set_tokens(self, payload) -> None:
        self.session.set_tokens(payload)

    async def refresh(self) -> None:
        """Exchange the stored refresh token; joins an exchange already in flight."""
        await self.session.run_exchange(self._refresh_exchange)

    async def _refresh_exchange(self):
        refresh_token = self.session.refresh_token
        if not refresh_token:
            raise AuthError(f"No refresh token available for {self.account_id}.")
        AUTH_LOGGER.info("Refreshing access token for %s", self.account_id)
        return await self.client.refresh_tokens(refresh_token)

    async def search(
        self,
        query: str,
        options: SearchOptions | Mapping | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        return await resources.search(self, query, options, headers)

    # -- dispatch --------------------------------------------------------------

    async def request(
        self,
        path,
        method: str = "GET",
        *,
        query: Mapping | None = None,
        body: Mapping | None = None,
        extra: Mapping | None = None,
        headers: Mapping | None = None,
    ) -> Any:
        pending = PendingRequest.build(
            path, method, query=query, body=body, extra=extra, headers=headers
        )
        return await self.send(pending)

    async def send(self, pending: PendingRequest) -> Any:
        await self._wait_until_ready()

        response, used_token = await self._dispatch(pending)
        if response.status_code == 401:
            await response.aclose()
            # Another request may already have refreshed the token we used.
            if not (self.session.is_ready and self.session.access_token != used_token):
                AUTH_LOGGER.info("Access token rejected for %s", self.account_id)
                await self.refresh()
            response, _ = await self._dispatch(pending)

        return parse_response(response)

    async def _wait_until_ready(self) -> None:
        if self.session.state is TokenState.READY:
            return
        if self.session.state is TokenState.ERROR:
            raise AuthError(
                f"Account {self.account_id} is not authenticated: {self.session.error}",
                detail=self.session.error,
            )
        HTTP_LOGGER.debug("Waiting for tokens for %s", self.account_id)
        await self.session.ready()

    async def _dispatch(self, pending: PendingRequest) -> tuple[httpx.Response, str]:
        access_token = self.session.access_token or ""
        request = pending.to_httpx(self.client.http, self.client.api_base_url, access_token)
        try:
            response = await self.client.http.send(request)
        except httpx.TransportError as error:
            raise TransportError(
                f"Box API unreachable ({pending.method} {'/'.join(pending.path)}): {error}"
            ) from error
        return response, access_token
