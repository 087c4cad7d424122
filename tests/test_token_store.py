import json
import os
import stat

import pytest

from boxkit.auth.token_store import FileTokenStore, MemoryTokenStore, TokenData
from boxkit.errors import BoxError


def test_token_expiry_uses_leeway() -> None:
    data = TokenData("access", "refresh", expires_at=1000.0)

    assert data.is_expired(now=1000.0)
    assert data.is_expired(now=950.0)
    assert not data.is_expired(now=900.0)
    assert not TokenData("access").is_expired()


def test_can_refresh_needs_refresh_token() -> None:
    assert TokenData("access", "refresh").can_refresh
    assert not TokenData("access").can_refresh


def test_record_round_trip_drops_empty_refresh_token() -> None:
    data = TokenData.from_record({"access_token": "access", "refresh_token": "", "expires_at": 5})

    assert data == TokenData("access", None, 5.0)


def test_record_requires_access_token() -> None:
    with pytest.raises(BoxError, match="access_token"):
        TokenData.from_record({"refresh_token": "refresh"})


@pytest.mark.asyncio
async def test_memory_store_keeps_latest_pair() -> None:
    store = MemoryTokenStore()

    await store.save("user@example.com", TokenData("T1", "R1"))
    await store.save("user@example.com", TokenData("T2", "R2"))

    assert await store.load("user@example.com") == TokenData("T2", "R2")
    assert await store.load("other@example.com") is None


@pytest.mark.asyncio
async def test_file_store_persists_across_instances(tmp_path) -> None:
    path = tmp_path / "tokens.json"
    payload = TokenData("access", "refresh", 1234.0)

    await FileTokenStore(path).save("user@example.com", payload)

    assert await FileTokenStore(path).load("user@example.com") == payload
    document = json.loads(path.read_text())
    assert document["version"] == 1
    assert document["accounts"]["user@example.com"]["refresh_token"] == "refresh"


@pytest.mark.asyncio
async def test_file_store_keeps_other_accounts(tmp_path) -> None:
    path = tmp_path / "tokens.json"
    store = FileTokenStore(path)

    await store.save("a@example.com", TokenData("access-a"))
    await store.save("b@example.com", TokenData("access-b"))

    reloaded = FileTokenStore(path)
    assert await reloaded.load("a@example.com") == TokenData("access-a")
    assert await reloaded.load("b@example.com") == TokenData("access-b")


@pytest.mark.asyncio
async def test_file_store_is_private(tmp_path) -> None:
    path = tmp_path / "tokens.json"

    await FileTokenStore(path).save("user@example.com", TokenData("access"))

    assert stat.S_IMODE(os.stat(path).st_mode) == 0o600
    assert not (tmp_path / "tokens.json.tmp").exists()


@pytest.mark.asyncio
async def test_file_store_missing_file(tmp_path) -> None:
    store = FileTokenStore(tmp_path / "missing.json")

    assert await store.load("user@example.com") is None


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["[]", "{}", "not json"])
async def test_file_store_rejects_foreign_files(tmp_path, content) -> None:
    path = tmp_path / "tokens.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(BoxError, match="Token file"):
        await FileTokenStore(path).load("user@example.com")
