"""Login against the auth service and client-local credential storage.

WHY: The provider authorizes every call with a bearer token. Users log in
once; the token and profile must survive between CLI invocations the way
a browser keeps them in local storage.

HOW: TokenStore is a tiny JSON key/value file with the same keys the web
client used (``auth_token`` and ``user``). login() posts credentials with
httpx and persists the result; logout() removes both keys.

RULES:
- The storage file holds only auth_token and user
- A corrupt or missing storage file reads as empty (logged, not raised)
- login() never sends the bearer header
- Failed logins raise AuthenticationError with the server's error text
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError as PydanticValidationError

from transcribe_client.api.models import LoginResult, User
from transcribe_client.api.schemas import LoginResponse
from transcribe_client.config import (
    LOGIN_PATH,
    STORAGE_PATH,
    TRANSCRIBE_HTTP_TIMEOUT_S,
    load_api_url,
)
from transcribe_client.errors import AuthenticationError

logger = logging.getLogger(__name__)

TOKEN_KEY = "auth_token"
USER_KEY = "user"

_LOGIN_FAILED = "Login failed. Please check your credentials."


class TokenStore:
    """JSON-file replacement for browser local storage."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path) if path is not None else STORAGE_PATH

    def _read(self) -> Dict[str, Any]:
        if not self.path.is_file():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable storage file: %s", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def get_token(self) -> Optional[str]:
        token = self._read().get(TOKEN_KEY)
        return token if isinstance(token, str) and token else None

    def get_user(self) -> Optional[User]:
        raw = self._read().get(USER_KEY)
        if not isinstance(raw, dict) or "username" not in raw:
            return None
        return User(username=str(raw["username"]), is_admin=bool(raw.get("is_admin", False)))

    def save(self, result: LoginResult) -> None:
        data = self._read()
        data[TOKEN_KEY] = result.token
        data[USER_KEY] = {"username": result.user.username, "is_admin": result.user.is_admin}
        self._write(data)

    def clear(self) -> None:
        data = self._read()
        if TOKEN_KEY not in data and USER_KEY not in data:
            return
        data.pop(TOKEN_KEY, None)
        data.pop(USER_KEY, None)
        self._write(data)


async def login(
    username: str,
    password: str,
    store: Optional[TokenStore] = None,
    base_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> LoginResult:
    """Log in and persist the token and user profile.

    Args:
        username: Account name.
        password: Account password.
        store: Where to persist the credentials (default storage file).
        base_url: Auth service base URL (default TRANSCRIBE_API_URL).
        transport: Optional httpx transport, for tests.

    Returns:
        The LoginResult that was stored.

    Raises:
        AuthenticationError: Credentials rejected, service unreachable,
            or an unrecognized response.
    """
    store = store or TokenStore()
    url = (base_url or load_api_url()).rstrip("/")

    async with httpx.AsyncClient(
        base_url=url,
        timeout=TRANSCRIBE_HTTP_TIMEOUT_S,
        transport=transport,
    ) as client:
        try:
            resp = await client.post(LOGIN_PATH, json={"username": username, "password": password})
        except httpx.TransportError as exc:
            raise AuthenticationError(_LOGIN_FAILED) from exc

    if resp.status_code >= 400:
        message = _LOGIN_FAILED
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("error"), str) and body["error"]:
            message = body["error"]
        raise AuthenticationError(message)

    try:
        result = LoginResponse.model_validate(resp.json()).to_result()
    except (ValueError, PydanticValidationError) as exc:
        raise AuthenticationError(_LOGIN_FAILED) from exc

    store.save(result)
    logger.info("Logged in as %s", result.user.username)
    return result


def logout(store: Optional[TokenStore] = None) -> None:
    (store or TokenStore()).clear()


def get_user(store: Optional[TokenStore] = None) -> Optional[User]:
    return (store or TokenStore()).get_user()


def is_authenticated(store: Optional[TokenStore] = None) -> bool:
    return (store or TokenStore()).get_token() is not None


def is_admin(store: Optional[TokenStore] = None) -> bool:
    user = get_user(store)
    return user.is_admin if user is not None else False
