from __future__ import annotations

import asyncio
import enum
from typing import Awaitable, Callable

from ..constants import AUTH_LOGGER
from ..errors import AuthError
from .box_oauth2 import TokenResponse
from .token_store import TokenData

ReadyCallback = Callable[[BaseException | None], None]
TokenListener = Callable[["AccountSession"], None]


class TokenState(enum.Enum):
    UNSET = "unset"
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


class AccountSession:
    """Token state for one Box account.

    Exchanges are serialized: while one is in flight (``PENDING``) any further
    exchange request waits on the same waiter list as ``ready()`` instead of
    hitting the token endpoint a second time. Every waiter registered before a
    terminal transition (``READY`` or ``ERROR``) is resolved exactly once and
    then dropped.
    """

    def __init__(self, account_id: str) -> None:
        self.account_id = account_id
        self.access_token: str | None = None
        self.refresh_token: str | None = None
        self.expires_at: float | None = None
        self.state = TokenState.UNSET
        self.error: BaseException | None = None
        self._waiters: list[asyncio.Future[None]] = []
        self._listeners: list[TokenListener] = []

    def __repr__(self) -> str:
        return f"AccountSession(account_id={self.account_id!r}, state={self.state.value})"

    @property
    def is_ready(self) -> bool:
        return self.state is TokenState.READY

    @property
    def waiter_count(self) -> int:
        return len(self._waiters)

    def add_token_listener(self, listener: TokenListener) -> None:
        self._listeners.append(listener)

    def ready(self, callback: ReadyCallback | None = None) -> asyncio.Future[None]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[None] = loop.create_future()

        if self.state is TokenState.READY:
            future.set_result(None)
            if callback is not None:
                callback(None)
            return future

        if callback is not None:
            future.add_done_callback(_wrap_ready_callback(callback))
        self._waiters.append(future)
        return future

    def begin_exchange(self) -> None:
        if self.state is TokenState.PENDING:
            raise AuthError(f"A token exchange is already running for {self.account_id}.")
        AUTH_LOGGER.debug("Token exchange started for %s (was %s)", self.account_id, self.state.value)
        self.state = TokenState.PENDING
        self.error = None

    def set_tokens(self, payload: TokenResponse | TokenData | dict) -> None:
        try:
            tokens = _coerce_tokens(payload)
        except AuthError as error:
            self.fail(error)
            raise

        self.access_token = tokens.access_token
        # Box may rotate the refresh token; whatever it sends wins.
        if tokens.refresh_token:
            self.refresh_token = tokens.refresh_token
        self.expires_at = tokens.expires_at
        self.state = TokenState.READY
        self.error = None
        AUTH_LOGGER.info("Tokens set for %s", self.account_id)

        for listener in list(self._listeners):
            listener(self)
        self._resolve_waiters(None)

    def fail(self, error: BaseException) -> None:
        self.state = TokenState.ERROR
        self.error = error
        AUTH_LOGGER.warning("Token exchange failed for %s: %s", self.account_id, error)
        self._resolve_waiters(error)

    def restore(self, data: TokenData) -> bool:
        """Load persisted tokens into a session that has none yet."""
        if self.state is not TokenState.UNSET or not data.access_token:
            return False
        self.access_token = data.access_token
        self.refresh_token = data.refresh_token
        self.expires_at = data.expires_at
        self.state = TokenState.READY
        return True

    def snapshot(self) -> TokenData:
        return TokenData(
            access_token=self.access_token or "",
            refresh_token=self.refresh_token,
            expires_at=self.expires_at,
        )

    async def run_exchange(
        self, exchange: Callable[[], Awaitable[TokenResponse | dict]]
    ) -> None:
        """Run ``exchange`` as this session's token exchange.

        If an exchange is already pending, wait for it instead. Raises the
        exchange error after moving the session to ``ERROR``.
        """
        if self.state is TokenState.PENDING:
            await self.ready()
            return

        self.begin_exchange()
        try:
            payload = await exchange()
        except asyncio.CancelledError:
            self.fail(AuthError(f"Token exchange cancelled for {self.account_id}."))
            raise
        except Exception as error:
            self.fail(error)
            raise
        self.set_tokens(payload)

    def _resolve_waiters(self, error: BaseException | None) -> None:
        waiters, self._waiters = self._waiters, []
        for future in waiters:
            if future.done():
                continue
            if error is None:
                future.set_result(None)
            else:
                future.set_exception(error)


def _wrap_ready_callback(callback: ReadyCallback) -> Callable[[asyncio.Future[None]], None]:
    def _done(future: asyncio.Future[None]) -> None:
        if future.cancelled():
            return
        callback(future.exception())

    return _done


def _coerce_tokens(payload: TokenResponse | TokenData | dict) -> TokenResponse | TokenData:
    if isinstance(payload, (TokenResponse, TokenData)):
        if not payload.access_token:
            raise AuthError("Token payload missing access_token.")
        return payload
    return TokenResponse.from_payload(payload)
