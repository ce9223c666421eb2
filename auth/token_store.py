"""Access/refresh token storage.

ApiClient only depends on the CredentialStore protocol; the two stores here
keep the tokens in memory or in config.json.
"""

import json
import logging
import os
from typing import Protocol

import jwt

log = logging.getLogger(__name__)

_CONFIG_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "config.json")


class CredentialStore(Protocol):
    @property
    def access_token(self) -> str | None: ...

    @access_token.setter
    def access_token(self, value: str | None) -> None: ...

    @property
    def refresh_token(self) -> str | None: ...

    @refresh_token.setter
    def refresh_token(self, value: str | None) -> None: ...

    def get_token_expiration(self) -> int | None:
        """Unix seconds at which the access token expires, if known."""
        ...


def token_expiration(token: str | None) -> int | None:
    """Read the `exp` claim without verifying the signature."""
    if token is None:
        return None
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        log.debug("Access token is not a decodable JWT")
        return None
    exp = payload.get("exp")
    return int(exp) if exp is not None else None


class MemoryTokenStore:
    def __init__(self, access_token: str | None = None, refresh_token: str | None = None):
        self._access_token = access_token
        self._refresh_token = refresh_token

    @property
    def is_authenticated(self) -> bool:
        return self._access_token is not None

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @access_token.setter
    def access_token(self, value: str | None):
        self._access_token = value
        self._changed()

    @property
    def refresh_token(self) -> str | None:
        return self._refresh_token

    @refresh_token.setter
    def refresh_token(self, value: str | None):
        self._refresh_token = value
        self._changed()

    def get_token_expiration(self) -> int | None:
        return token_expiration(self._access_token)

    def save(self, access_token: str, refresh_token: str):
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._changed()
        log.info("Tokens saved")

    def clear(self):
        self._access_token = None
        self._refresh_token = None
        self._changed()
        log.info("Tokens cleared")

    def _changed(self):
        pass


class TokenStore(MemoryTokenStore):
    """Tokens persisted in config.json, next to the other client settings."""

    def __init__(self, path: str = _CONFIG_PATH):
        super().__init__()
        self._path = path
        self._load()

    def _changed(self):
        self._persist()

    def _load(self):
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._access_token = data.get("access_token")
            self._refresh_token = data.get("refresh_token")
        except (FileNotFoundError, json.JSONDecodeError):
            pass

    def _persist(self):
        # Read existing config, merge tokens
        data = {}
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (FileNotFoundError, json.JSONDecodeError):
            pass

        for key, value in (
            ("access_token", self._access_token),
            ("refresh_token", self._refresh_token),
        ):
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value

        with open(self._path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
