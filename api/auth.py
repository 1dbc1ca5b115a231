"""
Authentication adapter.

Session and token verification live outside this service. The
API only needs "who is calling", resolved from the bearer token
(Authorization header, or the "token" cookie).
"""

import logging
import os
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Protocol

from fastapi import HTTPException, Request


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    user_id: str


class Authenticator(Protocol):
    def authenticate(self, request: Request) -> Optional[AuthenticatedUser]:
        ...


def extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        token = header[7:].strip()
        if token:
            return token
    return request.cookies.get("token") or None


class BearerTokenAuthenticator:
    """Resolves a bearer token to a user id with a caller-supplied function."""

    def __init__(self, resolve_token: Callable[[str], Optional[str]]):
        self._resolve_token = resolve_token

    def authenticate(self, request: Request) -> Optional[AuthenticatedUser]:
        token = extract_token(request)
        if not token:
            return None
        user_id = self._resolve_token(token)
        return AuthenticatedUser(user_id) if user_id else None


def tokens_from_env(var: str = "API_TOKENS") -> Dict[str, str]:
    """
    Parse "token:user_id,token:user_id" from the environment.

    Intended for local development only.
    """
    tokens: Dict[str, str] = {}
    for pair in os.getenv(var, "").split(","):
        token, sep, user_id = pair.strip().partition(":")
        if sep and token and user_id:
            tokens[token] = user_id
    if not tokens:
        logger.warning(f"{var} NOT configured - every authenticated request will get 401")
    return tokens


def get_current_user(request: Request) -> AuthenticatedUser:
    """FastAPI dependency: the caller, or 401."""
    authenticator: Authenticator = request.app.state.authenticator
    user = authenticator.authenticate(request)
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
