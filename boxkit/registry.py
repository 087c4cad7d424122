from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Iterator

from .connection import Connection
from .constants import LOGGER

if TYPE_CHECKING:
    from .client import Client


class ConnectionRegistry:
    """One :class:`Connection` per account id, created on first lookup and kept."""

    def __init__(
        self,
        client: "Client",
        *,
        on_create: Callable[[Connection], None] | None = None,
    ) -> None:
        self._client = client
        self._connections: dict[str, Connection] = {}
        self._on_create = on_create

    def get(self, account_id: str) -> Connection:
        connection = self._connections.get(account_id)
        if connection is not None:
            return connection

        connection = Connection(self._client, account_id)
        self._connections[account_id] = connection
        LOGGER.debug("Created connection for %s", account_id)
        if self._on_create is not None:
            self._on_create(connection)
        return connection

    def peek(self, account_id: str) -> Connection | None:
        return self._connections.get(account_id)

    def __contains__(self, account_id: object) -> bool:
        return account_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._connections))
