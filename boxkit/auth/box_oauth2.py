from __future__ import annotations

import time
import urllib.parse
from dataclasses import dataclass

import httpx

from ..constants import AUTHORIZE_URL, TOKEN_URL
from ..errors import AuthError, TransportError


@dataclass
class TokenResponse:
    access_token: str
    refresh_token: str | None
    expires_in: int | None
    expires_at: float | None
    token_type: str = "bearer"

    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return time.time() >= self.expires_at

    @classmethod
    def from_payload(cls, payload: object) -> "TokenResponse":
        if not isinstance(payload, dict):
            raise AuthError("Token response must be a JSON object.", detail=payload)
        if payload.get("error"):
            raise AuthError(
                f"Token request rejected: {payload.get('error_description') or payload['error']}",
                detail=payload,
            )

        access_token = payload.get("access_token")
        refresh_token = payload.get("refresh_token")
        expires_in = payload.get("expires_in")

        if not isinstance(access_token, str) or not access_token:
            raise AuthError("Token response missing access_token.", detail=payload)
        if refresh_token is not None and not isinstance(refresh_token, str):
            raise AuthError("Token response refresh_token must be a string.", detail=payload)
        if expires_in is not None and not isinstance(expires_in, int):
            raise AuthError("Token response expires_in must be an integer.", detail=payload)

        return cls(
            access_token=access_token,
            refresh_token=refresh_token or None,
            expires_in=expires_in,
            expires_at=None if expires_in is None else time.time() + expires_in,
            token_type=str(payload.get("token_type", "bearer")),
        )


def build_redirect_uri(host: str, port: int, account_id: str, path: str = "/authorize") -> str:
    query = urllib.parse.urlencode({"id": account_id})
    return f"http://{host}:{port}{path}?{query}"


def build_authorization_url(
    client_id: str,
    redirect_uri: str,
    *,
    authorize_url: str = AUTHORIZE_URL,
) -> str:
    query = {
        "response_type": "code",
        "client_id": client_id,
        "redirect_uri": redirect_uri,
    }
    # redirect_uri keeps ":" and "/" literal.
    return f"{authorize_url}?{urllib.parse.urlencode(query, safe=':/')}"


async def _token_request(
    payload: dict[str, str],
    *,
    token_url: str = TOKEN_URL,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    own_client = client is None
    http_client = client or httpx.AsyncClient()

    try:
        response = await http_client.post(token_url, data=payload)
        response.raise_for_status()
        body = response.json()
    except httpx.HTTPStatusError as error:
        detail = error.response.text
        raise AuthError(
            f"Token request failed with status {error.response.status_code}: {detail}",
            status_code=error.response.status_code,
            detail=detail,
        ) from error
    except httpx.TransportError as error:
        raise TransportError(f"Token endpoint unreachable: {error}") from error
    except ValueError as error:
        raise AuthError("Token response was not valid JSON.") from error
    finally:
        if own_client:
            await http_client.aclose()

    return TokenResponse.from_payload(body)


async def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    *,
    token_url: str = TOKEN_URL,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "authorization_code",
            "client_id": client_id,
            "client_secret": client_secret,
            "code": code,
            "redirect_uri": redirect_uri,
        },
        token_url=token_url,
        client=client,
    )


async def refresh_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    token_url: str = TOKEN_URL,
    client: httpx.AsyncClient | None = None,
) -> TokenResponse:
    return await _token_request(
        {
            "grant_type": "refresh_token",
            "client_id": client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
        },
        token_url=token_url,
        client=client,
    )
