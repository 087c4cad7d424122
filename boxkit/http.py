from __future__ import annotations

import asyncio
import logging

import httpx

from .constants import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT, HTTP_LOGGER, USER_AGENT
from .errors import APIError


def _retry_after_seconds(header: str | None) -> int | None:
    if header is None:
        return None
    try:
        return max(0, int(header))
    except ValueError:
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Retries rate-limited (429) and server-error (5xx) responses.

    401 is never retried here; token refresh is the connection's job.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._max_retries = max(0, max_retries)
        self._sleep = sleep
        self._logger = logger or HTTP_LOGGER

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = request.content
        retries = 0

        while True:
            next_request = httpx.Request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                content=body,
                extensions=request.extensions,
            )
            response = await self._transport.handle_async_request(next_request)

            if self._max_retries == 0 or retries >= self._max_retries:
                return response

            if response.status_code == 429:
                wait_seconds = _retry_after_seconds(response.headers.get("retry-after"))
                if wait_seconds is None:
                    wait_seconds = 2**retries
                self._logger.warning(
                    "Retrying 429 after %ss (%s %s)",
                    wait_seconds,
                    request.method,
                    request.url,
                )
                await response.aclose()
                await self._sleep(wait_seconds)
                retries += 1
                continue

            if 500 <= response.status_code < 600:
                backoff_seconds = 2**retries
                self._logger.warning(
                    "Retrying %s after %ss (%s %s)",
                    response.status_code,
                    backoff_seconds,
                    request.method,
                    request.url,
                )
                await response.aclose()
                await self._sleep(backoff_seconds)
                retries += 1
                continue

            return response

    async def aclose(self) -> None:
        await self._transport.aclose()


async def log_request(request: httpx.Request) -> None:
    HTTP_LOGGER.debug("Box API request %s %s", request.method, request.url)


async def log_response(response: httpx.Response) -> None:
    HTTP_LOGGER.debug(
        "Box API response %s %s -> %s",
        response.request.method,
        response.request.url,
        response.status_code,
    )
    if response.status_code >= 400:
        request_id = response.headers.get("box-request-id")
        if request_id:
            HTTP_LOGGER.warning("Box API box-request-id: %s", request_id)
        body = await response.aread()
        text = body.decode("utf-8", errors="replace")
        if len(text) > 1000:
            text = text[:1000] + "...<truncated>"
        HTTP_LOGGER.warning("Box API error body: %s", text)


def build_http_client(
    *,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = DEFAULT_MAX_RETRIES,
    transport: httpx.AsyncBaseTransport | None = None,
    sleep=asyncio.sleep,
) -> httpx.AsyncClient:
    retry_transport = RetryTransport(
        transport or httpx.AsyncHTTPTransport(),
        max_retries=max_retries,
        sleep=sleep,
    )
    return httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=timeout,
        transport=retry_transport,
        event_hooks={
            "request": [log_request],
            "response": [log_response],
        },
    )


def parse_response(response: httpx.Response) -> object:
    """Return the decoded body of a successful response or raise ``APIError``."""
    if response.status_code >= 400:
        try:
            payload = response.json()
        except ValueError:
            payload = {"raw": response.text}
        error = APIError.from_payload(response.status_code, payload)
        if error.request_id is None:
            error.request_id = response.headers.get("box-request-id")
        raise error

    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
