from __future__ import annotations

import asyncio
import json
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from ..constants import AUTH_LOGGER
from ..errors import BoxError

# Treat an access token as expired slightly before Box does.
EXPIRY_LEEWAY_SECONDS = 60.0
FILE_FORMAT_VERSION = 1


@dataclass(frozen=True)
class TokenData:
    """The last token pair Box issued for one account.

    Box rotates the refresh token on every refresh, so a record is always
    replaced as a whole; an older pair is useless once a newer one exists.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: float | None = None

    def is_expired(self, now: float | None = None) -> bool:
        if self.expires_at is None:
            return False
        current = time.time() if now is None else now
        return current >= self.expires_at - EXPIRY_LEEWAY_SECONDS

    @property
    def can_refresh(self) -> bool:
        return bool(self.refresh_token)

    def to_record(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_record(cls, record: object) -> "TokenData":
        if not isinstance(record, dict) or not isinstance(record.get("access_token"), str):
            raise BoxError("Stored token record is missing its access_token.")
        expires_at = record.get("expires_at")
        return cls(
            access_token=record["access_token"],
            refresh_token=record.get("refresh_token") or None,
            expires_at=float(expires_at) if expires_at is not None else None,
        )


class TokenStore(ABC):
    """Keeps each account's latest tokens across client restarts."""

    @abstractmethod
    async def load(self, account_id: str) -> TokenData | None:
        raise NotImplementedError

    @abstractmethod
    async def save(self, account_id: str, data: TokenData) -> None:
        raise NotImplementedError


class MemoryTokenStore(TokenStore):
    def __init__(self) -> None:
        self._records: dict[str, TokenData] = {}

    async def load(self, account_id: str) -> TokenData | None:
        return self._records.get(account_id)

    async def save(self, account_id: str, data: TokenData) -> None:
        self._records[account_id] = data


class FileTokenStore(TokenStore):
    """JSON file of ``{"version": 1, "accounts": {login: record}}``.

    The file is read once and cached; saves are serialized so concurrent
    refreshes of different accounts cannot drop each other's records.
    """

    def __init__(self, path: str | Path = ".box_tokens.json") -> None:
        self.path = Path(path)
        self._accounts: dict[str, TokenData] | None = None
        self._lock = asyncio.Lock()

    async def load(self, account_id: str) -> TokenData | None:
        return self._read().get(account_id)

    async def save(self, account_id: str, data: TokenData) -> None:
        async with self._lock:
            accounts = self._read()
            accounts[account_id] = data
            self._write(accounts)
        AUTH_LOGGER.debug("Saved tokens for %s to %s", account_id, self.path)

    def _read(self) -> dict[str, TokenData]:
        if self._accounts is not None:
            return self._accounts
        if not self.path.exists():
            self._accounts = {}
            return self._accounts

        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except ValueError as error:
            raise BoxError(f"Token file {self.path} is not valid JSON: {error}") from error
        if not isinstance(document, dict) or not isinstance(document.get("accounts"), dict):
            raise BoxError(f"Token file {self.path} has no accounts section.")

        self._accounts = {
            account_id: TokenData.from_record(record)
            for account_id, record in document["accounts"].items()
        }
        return self._accounts

    def _write(self, accounts: dict[str, TokenData]) -> None:
        document = {
            "version": FILE_FORMAT_VERSION,
            "accounts": {account_id: data.to_record() for account_id, data in accounts.items()},
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        staging = self.path.with_name(self.path.name + ".tmp")
        # Tokens are credentials: the file is never readable by other users.
        fd = os.open(staging, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(document, handle, indent=2, sort_keys=True)
        os.replace(staging, self.path)
