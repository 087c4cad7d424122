from boxkit.connection import Connection
from tests.helpers import build_client, build_delegated_client


def test_same_account_returns_same_connection() -> None:
    client = build_client()

    first = client.get_connection("user@example.com")
    second = client.get_connection("user@example.com")

    assert first is second
    assert isinstance(first, Connection)
    assert len(client.connections) == 1


def test_accounts_get_separate_sessions() -> None:
    client = build_client()

    first = client.get_connection("a@example.com")
    second = client.get_connection("b@example.com")

    assert first is not second
    assert first.session is not second.session
    assert list(client.connections) == ["a@example.com", "b@example.com"]


def test_registries_are_per_client() -> None:
    first = build_client()
    second = build_delegated_client(lambda request: None)

    assert first.get_connection("user@example.com") is not second.get_connection(
        "user@example.com"
    )


def test_peek_does_not_create() -> None:
    client = build_client()

    assert client.connections.peek("user@example.com") is None
    assert "user@example.com" not in client.connections
