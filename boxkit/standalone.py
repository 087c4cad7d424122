from __future__ import annotations

import asyncio
import os
import webbrowser

from .auth.token_store import FileTokenStore
from .client import Client
from .constants import LOGGER
from .env import config_from_env, is_truthy, load_env
from .errors import BoxError


async def authorize(client: Client, account_id: str, *, open_browser: bool = False) -> dict:
    connection = await client.restore_connection(account_id)
    if not connection.session.is_ready:
        url = connection.get_auth_url()
        print(f"Authorize {account_id} by visiting:\n\n  {url}\n")
        if open_browser:
            webbrowser.open(url)
        await connection.ready()
    return await connection.users.get_current()


async def _run() -> int:
    load_env()
    config = config_from_env()
    account_id = config.account_id
    if not account_id:
        raise RuntimeError("BOX_ACCOUNT_ID must be set to the Box login to authorize.")

    token_store = FileTokenStore(os.getenv("BOX_TOKEN_STORE_PATH", ".box_tokens.json"))
    async with Client(config, token_store=token_store) as client:
        try:
            user = await authorize(
                client,
                account_id,
                open_browser=is_truthy(os.getenv("BOX_OPEN_BROWSER")),
            )
        except BoxError as error:
            LOGGER.error("Authorization failed: %s", error)
            return 1

    print(f"Authorized as {user.get('login')} ({user.get('name')}).")
    return 0


def main() -> None:
    raise SystemExit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
