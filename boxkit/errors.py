from __future__ import annotations


class BoxError(RuntimeError):
    """Base class for every error raised by boxkit."""


class ValidationError(BoxError, ValueError):
    """Caller input was rejected before any request was made."""


class TransportError(BoxError):
    """The Box API or token endpoint could not be reached."""


class AuthError(BoxError):
    """A token exchange or refresh failed."""

    def __init__(
        self,
        message: str = "Authentication failed.",
        *,
        status_code: int | None = None,
        detail: object = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class APIError(BoxError):
    """Box answered with a non-success status.

    ``context_info`` carries the diagnostic block Box attaches to error
    bodies (conflicting items, field errors and so on).
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        *,
        code: str | None = None,
        context_info: dict | None = None,
        request_id: str | None = None,
        body: object = None,
    ) -> None:
        super().__init__(f"Box API request failed with status {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.code = code
        self.context_info = context_info
        self.request_id = request_id
        self.body = body

    @classmethod
    def from_payload(cls, status_code: int, payload: object) -> "APIError":
        if not isinstance(payload, dict):
            return cls(status_code, _friendly_error_message(status_code), body=payload)

        message = payload.get("message")
        if not isinstance(message, str) or not message:
            message = _friendly_error_message(status_code)
        context_info = payload.get("context_info")
        return cls(
            status_code,
            message,
            code=payload.get("code"),
            context_info=context_info if isinstance(context_info, dict) else None,
            request_id=payload.get("request_id"),
            body=payload,
        )


def _friendly_error_message(status_code: int) -> str:
    if status_code == 401:
        return "Authentication failed. The Box access token may have expired."
    if status_code == 403:
        return "You don't have permission to perform this action."
    if status_code == 404:
        return "The requested item was not found on Box."
    if status_code == 409:
        return "The request conflicts with an existing item."
    if status_code == 412:
        return "The item changed since it was last fetched (If-Match failed)."
    if status_code == 429:
        return "Rate limit exceeded. Please try again later."
    if status_code >= 500:
        return "Box API is experiencing issues. Please try again later."
    return f"Box API request failed with status {status_code}."
