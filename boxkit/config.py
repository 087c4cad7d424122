from __future__ import annotations

from dataclasses import dataclass

from .constants import (
    API_BASE_URL,
    AUTHORIZE_URL,
    DEFAULT_HOST,
    DEFAULT_MAX_RETRIES,
    DEFAULT_TIMEOUT,
    TOKEN_URL,
)
from .errors import ValidationError


@dataclass
class ClientConfig:
    client_id: str
    client_secret: str
    port: int
    host: str = DEFAULT_HOST
    refresh_token: str | None = None
    account_id: str | None = None
    log_level: str = "info"
    timeout: float = DEFAULT_TIMEOUT
    max_retries: int = DEFAULT_MAX_RETRIES
    api_base_url: str = API_BASE_URL
    authorize_url: str = AUTHORIZE_URL
    token_url: str = TOKEN_URL

    def __post_init__(self) -> None:
        if not isinstance(self.client_id, str) or not self.client_id.strip():
            raise ValidationError("Must specify a client_id")
        if not isinstance(self.client_secret, str) or not self.client_secret.strip():
            raise ValidationError("Must specify a client_secret")

        try:
            port = int(self.port)
        except (TypeError, ValueError):
            raise ValidationError("Must specify a numeric port") from None
        if isinstance(self.port, bool) or not 0 <= port <= 65535:
            raise ValidationError("Must specify a numeric port")
        self.port = port

        self.host = self.host or DEFAULT_HOST
        if self.refresh_token and not self.account_id:
            raise ValidationError("account_id is required when a refresh_token is given")
        if self.timeout is not None and self.timeout <= 0:
            raise ValidationError("timeout must be positive")
        self.max_retries = max(0, int(self.max_retries))
        self.api_base_url = self.api_base_url.rstrip("/")

    @property
    def callback_base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_mapping(cls, payload: dict) -> "ClientConfig":
        known = set(cls.__dataclass_fields__)
        unknown = sorted(key for key in payload if key not in known)
        if unknown:
            raise ValidationError(f"Unknown config keys: {', '.join(unknown)}")
        missing = [key for key in ("client_id", "client_secret", "port") if key not in payload]
        if missing:
            raise ValidationError(f"Missing config keys: {', '.join(missing)}")
        return cls(**payload)
