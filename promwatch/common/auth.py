"""Guards for the metrics endpoint.

Each factory returns a FastAPI dependency suitable for
``PrometheusInstrumentation.register_at(app, path, *guards)``. A guard that
rejects the request raises ``HTTPException(401)``; the metrics are never
rendered in that case.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from typing import Any, Callable, Mapping

import jwt
from fastapi import Depends, HTTPException
from fastapi.security import (
    APIKeyHeader,
    HTTPAuthorizationCredentials,
    HTTPBasic,
    HTTPBasicCredentials,
    HTTPBearer,
)
from jwt import PyJWTError

logger = logging.getLogger("promwatch.auth")

SHA256_PREFIX = "{SHA256}"


class AuthenticationError(Exception):
    """Raised when credentials are missing or invalid."""


def hash_password(password: str) -> str:
    digest = hashlib.sha256(password.encode("utf-8")).digest()
    return SHA256_PREFIX + base64.b64encode(digest).decode("ascii")


def _matches(stored: str, candidate: str) -> bool:
    if stored.startswith(SHA256_PREFIX):
        candidate = hash_password(candidate)
    return secrets.compare_digest(stored.encode("utf-8"), candidate.encode("utf-8"))


def verify_basic_credentials(
    users: Mapping[str, str], credentials: HTTPBasicCredentials | None
) -> str:
    if credentials is None:
        raise AuthenticationError("Missing basic credentials")
    stored = users.get(credentials.username)
    if stored is None or not _matches(stored, credentials.password):
        raise AuthenticationError("Invalid username or password")
    return credentials.username


def basic_auth(users: Mapping[str, str], realm: str = "metrics") -> Callable[..., None]:
    """HTTP basic authentication.

    Stored passwords are either plain text or ``{SHA256}`` followed by the
    base64 encoded SHA-256 digest (see :func:`hash_password`).
    """
    if not users:
        raise ValueError("At least one user must be provided")
    known_users = dict(users)
    security = HTTPBasic(auto_error=False, realm=realm)

    def dependency(
        credentials: HTTPBasicCredentials | None = Depends(security),
    ) -> None:
        try:
            verify_basic_credentials(known_users, credentials)
        except AuthenticationError as exc:
            logger.warning(
                "metrics_auth_rejected scheme=basic username=%s",
                credentials.username if credentials else "<missing>",
            )
            raise HTTPException(
                status_code=401,
                detail=str(exc),
                headers={"WWW-Authenticate": f'Basic realm="{realm}"'},
            ) from exc

    return dependency


def api_key(expected: str, header: str = "X-API-Key") -> Callable[..., None]:
    if not expected:
        raise ValueError("API key must not be empty")
    security = APIKeyHeader(name=header, auto_error=False)

    def dependency(provided: str | None = Depends(security)) -> None:
        if not provided or not secrets.compare_digest(
            provided.encode("utf-8"), expected.encode("utf-8")
        ):
            preview = f"{provided[:4]}***" if provided else "<missing>"
            logger.warning("metrics_auth_rejected scheme=api_key key_preview=%s", preview)
            raise HTTPException(status_code=401, detail="Invalid API key")

    return dependency


def decode_token(
    token: str,
    secret: str,
    algorithm: str = "HS256",
    audience: str | None = None,
    issuer: str | None = None,
    leeway: int = 0,
) -> dict[str, Any]:
    options = {"verify_aud": audience is not None}
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[algorithm],
            audience=audience,
            issuer=issuer,
            leeway=leeway,
            options=options,
        )
    except PyJWTError as exc:
        raise AuthenticationError(f"Invalid token: {exc}") from exc


def bearer_token(
    secret: str,
    algorithm: str = "HS256",
    audience: str | None = None,
    issuer: str | None = None,
    leeway: int = 0,
) -> Callable[..., None]:
    if not secret:
        raise ValueError("Token secret must not be empty")
    security = HTTPBearer(auto_error=False)

    def dependency(
        credentials: HTTPAuthorizationCredentials | None = Depends(security),
    ) -> None:
        try:
            if credentials is None:
                raise AuthenticationError("Missing bearer token")
            decode_token(
                credentials.credentials,
                secret,
                algorithm=algorithm,
                audience=audience,
                issuer=issuer,
                leeway=leeway,
            )
        except AuthenticationError as exc:
            logger.warning("metrics_auth_rejected scheme=bearer reason=%s", exc)
            raise HTTPException(
                status_code=401,
                detail=str(exc),
                headers={"WWW-Authenticate": "Bearer"},
            ) from exc

    return dependency
