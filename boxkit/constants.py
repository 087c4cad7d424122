from __future__ import annotations

import logging

HTTP_METHODS = {"GET", "POST", "PUT", "DELETE"}
BODY_METHODS = {"POST", "PUT"}

LOGGER = logging.getLogger("boxkit")
HTTP_LOGGER = logging.getLogger("boxkit.http")
AUTH_LOGGER = logging.getLogger("boxkit.auth")

APP_VERSION = "0.1.0"
USER_AGENT = f"boxkit/{APP_VERSION}"

API_BASE_URL = "https://api.box.com/2.0"
AUTHORIZE_URL = "https://app.box.com/api/oauth2/authorize"
TOKEN_URL = "https://app.box.com/api/oauth2/token"

DEFAULT_HOST = "localhost"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 2
CALLBACK_PATH = "/authorize"
