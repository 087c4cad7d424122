import asyncio
import io
import logging
import time

import httpx
import pytest

from boxkit.auth.session import TokenState
from boxkit.auth.token_store import MemoryTokenStore, TokenData
from boxkit.client import Client
from boxkit.config import ClientConfig
from boxkit.errors import AuthError, ValidationError
from tests.helpers import (
    ACCOUNT,
    BASE_CONFIG,
    SleepRecorder,
    build_client,
    build_delegated_client,
    form_of,
    is_token_request,
    token_response,
)


class TokenEndpoint:
    def __init__(self, status: int = 200) -> None:
        self.status = status
        self.calls: list[dict[str, str]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert is_token_request(request)
        self.calls.append(form_of(request))
        if self.status != 200:
            return httpx.Response(self.status, json={"error": "invalid_grant"})
        return token_response("T2", "R2")


def test_auth_url_for_account() -> None:
    client = build_client()

    url = client.get_connection("user@example.com").get_auth_url()

    assert url.startswith("https://app.box.com/api/oauth2/authorize?response_type=code")
    assert "client_id=abc" in url
    assert "redirect_uri=http://localhost:9999/" in url


def test_config_object_is_accepted() -> None:
    config = ClientConfig(client_id="abc", client_secret="xyz", port=8080, host="127.0.0.1")
    client = Client(config)

    assert client.standalone
    assert "redirect_uri=http://127.0.0.1:8080/" in client.authorization_url(ACCOUNT)


def test_invalid_config_is_rejected() -> None:
    with pytest.raises(ValidationError, match="Must specify a client_id"):
        Client({"client_secret": "xyz", "port": 9999, "client_id": ""})


def test_delegated_client_has_no_auth_url() -> None:
    client = build_delegated_client(lambda request: httpx.Response(200))

    assert not client.standalone
    assert client.listener is None
    with pytest.raises(AuthError):
        client.get_connection(ACCOUNT).get_auth_url()


@pytest.mark.asyncio
async def test_authenticate_hands_tokens_to_connection() -> None:
    client = build_delegated_client(lambda request: httpx.Response(200))
    verify = client.authenticate()
    done_calls = []

    result = verify("T1", "R1", {"login": ACCOUNT}, lambda err, user: done_calls.append((err, user)))

    connection = client.get_connection(ACCOUNT)
    assert result is None
    assert done_calls == [(None, {"login": ACCOUNT})]
    assert connection.session.state is TokenState.READY
    assert connection.session.refresh_token == "R1"
    await client.aclose()


def test_authenticate_requires_login() -> None:
    client = build_delegated_client(lambda request: httpx.Response(200))
    verify = client.authenticate()

    with pytest.raises(ValidationError):
        verify("T1", "R1", {"name": "No Login"})


@pytest.mark.asyncio
async def test_startup_refresh_uses_configured_token() -> None:
    endpoint = TokenEndpoint()
    client = build_client(
        endpoint, host="127.0.0.1", port=0, refresh_token="R0", account_id=ACCOUNT
    )

    await client.start()
    try:
        connection = client.get_connection(ACCOUNT)
        assert endpoint.calls[0]["refresh_token"] == "R0"
        assert connection.session.access_token == "T2"
        assert connection.session.refresh_token == "R2"
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_startup_refresh_failure_is_logged(caplog) -> None:
    client = build_client(
        TokenEndpoint(status=400),
        host="127.0.0.1",
        port=0,
        refresh_token="R0",
        account_id=ACCOUNT,
    )

    with caplog.at_level(logging.WARNING, logger="boxkit"):
        await client.start()
    try:
        assert client.listener.state.running
        assert client.get_connection(ACCOUNT).session.state is TokenState.ERROR
        assert "Startup token refresh failed" in caplog.text
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_startup_refresh_prefers_stored_token() -> None:
    endpoint = TokenEndpoint()
    store = MemoryTokenStore()
    await store.save(ACCOUNT, TokenData("T1", "R-stored"))
    client = Client(
        {**BASE_CONFIG, "host": "127.0.0.1", "port": 0, "refresh_token": "R0", "account_id": ACCOUNT},
        transport=httpx.MockTransport(endpoint),
        token_store=store,
        sleep=SleepRecorder(),
    )

    async with client:
        assert endpoint.calls[0]["refresh_token"] == "R-stored"

    stored = await store.load(ACCOUNT)
    assert (stored.access_token, stored.refresh_token) == ("T2", "R2")
    assert stored.expires_at == client.get_connection(ACCOUNT).session.expires_at


@pytest.mark.asyncio
async def test_tokens_are_persisted_and_restored() -> None:
    store = MemoryTokenStore()
    first = Client(
        BASE_CONFIG,
        transport=httpx.MockTransport(TokenEndpoint()),
        token_store=store,
        sleep=SleepRecorder(),
    )
    first.get_connection(ACCOUNT).set_tokens({"access_token": "T1", "refresh_token": "R1"})
    await first.aclose()

    second = Client(
        BASE_CONFIG,
        transport=httpx.MockTransport(TokenEndpoint()),
        token_store=store,
        sleep=SleepRecorder(),
    )
    connection = await second.restore_connection(ACCOUNT)

    assert connection.session.state is TokenState.READY
    assert connection.session.access_token == "T1"
    assert connection.session.refresh_token == "R1"
    await second.aclose()


@pytest.mark.asyncio
async def test_stop_server_in_delegated_mode() -> None:
    client = build_delegated_client(lambda request: httpx.Response(200))
    results: list = []

    await client.stop_server(results.append)

    assert results == [None]
    await client.aclose()


@pytest.mark.asyncio
async def test_context_manager_starts_and_stops_listener() -> None:
    client = build_client(host="127.0.0.1", port=0)

    async with client as box:
        assert box.listener.state.running
        listener = box.listener

    assert not listener.state.running


def test_log_stream_receives_records() -> None:
    stream = io.StringIO()
    client = Client(BASE_CONFIG, log_level="debug", log_stream=stream)

    client.get_connection(ACCOUNT)

    assert f"Created connection for {ACCOUNT}" in stream.getvalue()
    logging.getLogger("boxkit").setLevel(logging.INFO)


def test_unknown_log_level_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown log level"):
        Client(BASE_CONFIG, log_level="chatty")


@pytest.mark.asyncio
async def test_ready_resolves_after_authenticate() -> None:
    client = build_delegated_client(lambda request: httpx.Response(200))
    connection = client.get_connection(ACCOUNT)
    waiter = connection.ready()
    await asyncio.sleep(0)
    assert not waiter.done()

    client.authenticate()("T1", None, {"login": ACCOUNT})

    await asyncio.wait_for(waiter, timeout=1)
    assert connection.session.refresh_token is None
    await client.aclose()


@pytest.mark.asyncio
async def test_expired_stored_tokens_are_refreshed_on_restore() -> None:
    endpoint = TokenEndpoint()
    store = MemoryTokenStore()
    await store.save(ACCOUNT, TokenData("T1", "R1", expires_at=time.time() - 10))
    client = Client(
        BASE_CONFIG,
        transport=httpx.MockTransport(endpoint),
        token_store=store,
        sleep=SleepRecorder(),
    )

    connection = await client.restore_connection(ACCOUNT)
    await client.aclose()

    assert endpoint.calls[0]["refresh_token"] == "R1"
    assert connection.session.access_token == "T2"
    assert (await store.load(ACCOUNT)).refresh_token == "R2"


@pytest.mark.asyncio
async def test_failed_restore_refresh_leaves_session_reauthorizable() -> None:
    store = MemoryTokenStore()
    await store.save(ACCOUNT, TokenData("T1", "R1", expires_at=time.time() - 10))
    client = Client(
        BASE_CONFIG,
        transport=httpx.MockTransport(TokenEndpoint(status=400)),
        token_store=store,
        sleep=SleepRecorder(),
    )

    connection = await client.restore_connection(ACCOUNT)

    assert connection.session.state is TokenState.ERROR
    assert "client_id=abc" in connection.get_auth_url()
    await client.aclose()
