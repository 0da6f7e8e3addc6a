from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, status
from pydantic import BaseModel

from .config import settings, split_csv
from .errors import AuthError


class Principal(BaseModel):
    name: str
    via: str


class AuthVerifier:
    """Checks bearer tokens and API keys against the configured secrets."""

    def __init__(self, api_token: str = "", api_keys: list[str] | None = None) -> None:
        self.api_token = (api_token or "").strip()
        self.api_keys = [k for k in (api_keys or []) if k]

    @classmethod
    def from_settings(cls) -> "AuthVerifier":
        return cls(settings.API_TOKEN, split_csv(settings.API_KEYS))

    def verify(self, token: str | None) -> Principal:
        if not token:
            raise AuthError("missing token")
        if self.api_token and hmac.compare_digest(token.encode(), self.api_token.encode()):
            return Principal(name="token", via="bearer")
        for index, key in enumerate(self.api_keys):
            if hmac.compare_digest(token.encode(), key.encode()):
                return Principal(name=f"key-{index}", via="api_key")
        raise AuthError("bad token")


def require_auth(
    authorization: str | None = Header(default=None),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> Principal:
    verifier = AuthVerifier.from_settings()
    if authorization and authorization.startswith("Bearer "):
        token = authorization.split(" ", 1)[1].strip()
        try:
            return verifier.verify(token)
        except AuthError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if x_api_key:
        try:
            return verifier.verify(x_api_key.strip())
        except AuthError as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing token")
