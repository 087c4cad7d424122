from __future__ import annotations

import json
import urllib.parse
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping

import httpx

from .constants import BODY_METHODS, HTTP_METHODS
from .errors import ValidationError


def _freeze(value: Mapping | None) -> Mapping | None:
    if value is None:
        return None
    return MappingProxyType(dict(value))


@dataclass(frozen=True)
class PendingRequest:
    path: tuple[str, ...]
    method: str = "GET"
    query: Mapping[str, Any] | None = None
    body: Mapping[str, Any] | None = None
    headers: Mapping[str, str] | None = field(default=None)

    @classmethod
    def build(
        cls,
        path,
        method: str = "GET",
        *,
        query: Mapping | None = None,
        body: Mapping | None = None,
        extra: Mapping | None = None,
        headers: Mapping | None = None,
    ) -> "PendingRequest":
        method = method.upper()
        if method not in HTTP_METHODS:
            raise ValidationError(f"Unsupported HTTP method: {method}")
        if isinstance(path, str):
            path = [path]
        segments = tuple(str(segment) for segment in path)
        if not segments or any(not segment for segment in segments):
            raise ValidationError("Request path must be a sequence of non-empty segments.")

        merged = None
        if body is not None or extra is not None:
            merged = {**(body or {}), **(extra or {})}
        query = {key: value for key, value in (query or {}).items() if value is not None}

        return cls(
            path=segments,
            method=method,
            query=_freeze(query) if query else None,
            body=_freeze(merged),
            headers=_freeze(headers),
        )

    def url(self, base_url: str) -> str:
        quoted = "/".join(urllib.parse.quote(segment, safe="") for segment in self.path)
        return f"{base_url.rstrip('/')}/{quoted}"

    def to_httpx(
        self, http: httpx.AsyncClient, base_url: str, access_token: str
    ) -> httpx.Request:
        headers = {"Authorization": f"Bearer {access_token}"}
        if self.headers:
            headers.update(self.headers)

        content = None
        if self.body is not None and self.method in BODY_METHODS:
            content = json.dumps(dict(self.body)).encode("utf-8")
            headers.setdefault("Content-Type", "application/json")

        return http.build_request(
            self.method,
            self.url(base_url),
            params=_query_params(self.query),
            headers=headers,
            content=content,
        )


def _query_params(query: Mapping | None) -> list[tuple[str, str]] | None:
    if not query:
        return None
    params = []
    for key, value in query.items():
        if isinstance(value, bool):
            value = "true" if value else "false"
        elif isinstance(value, (list, tuple, set)):
            value = ",".join(str(item) for item in value)
        params.append((key, str(value)))
    return params
