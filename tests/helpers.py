import json
import urllib.parse

import httpx

from boxkit.client import Client
from boxkit.constants import TOKEN_URL

ACCOUNT = "user@example.com"
BASE_CONFIG = {"client_id": "abc", "client_secret": "xyz", "port": 9999}


class SleepRecorder:
    def __init__(self) -> None:
        self.calls: list[int] = []

    async def __call__(self, seconds: int) -> None:
        self.calls.append(seconds)


def build_client(handler=None, **overrides) -> Client:
    def _unexpected(request: httpx.Request) -> httpx.Response:
        raise AssertionError(f"Unexpected request {request.method} {request.url}")

    config = {**BASE_CONFIG, **overrides}
    return Client(
        config,
        transport=httpx.MockTransport(handler or _unexpected),
        sleep=SleepRecorder(),
    )


def build_delegated_client(handler) -> Client:
    return Client(transport=httpx.MockTransport(handler), sleep=SleepRecorder())


def is_token_request(request: httpx.Request) -> bool:
    return str(request.url) == TOKEN_URL


def form_of(request: httpx.Request) -> dict[str, str]:
    parsed = urllib.parse.parse_qs(request.content.decode("utf-8"))
    return {key: values[0] for key, values in parsed.items()}


def json_of(request: httpx.Request):
    return json.loads(request.content.decode("utf-8"))


def api_path(request: httpx.Request) -> str:
    return request.url.path.removeprefix("/2.0/")


def token_response(access_token: str = "T1", refresh_token: str | None = "R1") -> httpx.Response:
    payload = {"access_token": access_token, "expires_in": 3600, "token_type": "bearer"}
    if refresh_token is not None:
        payload["refresh_token"] = refresh_token
    return httpx.Response(200, json=payload)


def listener_browser(client: Client) -> httpx.AsyncClient:
    """An HTTP client that talks to the client's callback listener in-process."""
    return httpx.AsyncClient(
        transport=httpx.ASGITransport(app=client.listener.app),
        base_url=f"http://{client.listener.host}:{client.listener.port}",
    )
