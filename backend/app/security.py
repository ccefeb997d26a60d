"""Bearer-token verification for the practitioner API.

Tokens are HS256 JWTs issued by the hosted auth provider. The verified
``sub`` claim becomes the explicit ``user_id`` every service call receives.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer


AUTH_JWT_SECRET_ENV = "AUTH_JWT_SECRET"
AUTH_JWT_AUDIENCE_ENV = "AUTH_JWT_AUDIENCE"
ACCESS_TOKEN_EXPIRE_MINUTES_ENV = "ACCESS_TOKEN_EXPIRE_MINUTES"

DEFAULT_AUDIENCE = "authenticated"

bearer_scheme = HTTPBearer(auto_error=False)


class SecurityConfigurationError(RuntimeError):
    """Raised when mandatory security settings are missing or invalid."""


def _read_env_var(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise SecurityConfigurationError(f"Environment variable '{name}' is required")
    return value


@lru_cache(maxsize=1)
def _load_jwt_key() -> bytes:
    return _read_env_var(AUTH_JWT_SECRET_ENV).encode("utf-8")


def _expected_audience() -> str:
    return os.getenv(AUTH_JWT_AUDIENCE_ENV, DEFAULT_AUDIENCE).strip() or DEFAULT_AUDIENCE


def reset_security_caches() -> None:
    """Forget cached secrets so updated environment variables take effect."""

    _load_jwt_key.cache_clear()


def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def _unauthorized(detail: str = "Invalid token") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _encode_jwt(payload: dict[str, Any], key: bytes) -> str:
    header = {"typ": "JWT", "alg": "HS256"}
    header_b64 = _b64url_encode(json.dumps(header, separators=(",", ":")).encode("utf-8"))
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    signature = hmac.new(key, signing_input, hashlib.sha256).digest()
    return f"{header_b64}.{payload_b64}.{_b64url_encode(signature)}"


def _decode_jwt(token: str, key: bytes, audience: str) -> dict[str, Any]:
    try:
        header_b64, payload_b64, signature_b64 = token.split(".")
        header = json.loads(_b64url_decode(header_b64).decode("utf-8"))
        signature = _b64url_decode(signature_b64)
    except (ValueError, binascii.Error) as exc:
        raise _unauthorized() from exc

    if not isinstance(header, dict) or header.get("alg") != "HS256":
        raise _unauthorized()

    signing_input = f"{header_b64}.{payload_b64}".encode("ascii")
    expected_signature = hmac.new(key, signing_input, hashlib.sha256).digest()
    if not hmac.compare_digest(signature, expected_signature):
        raise _unauthorized()

    try:
        payload_data = json.loads(_b64url_decode(payload_b64).decode("utf-8"))
    except (ValueError, binascii.Error) as exc:
        raise _unauthorized() from exc
    if not isinstance(payload_data, dict) or payload_data.get("exp") is None:
        raise _unauthorized()

    try:
        exp = int(payload_data["exp"])
    except (TypeError, ValueError) as exc:
        raise _unauthorized() from exc
    if datetime.now(timezone.utc) >= datetime.fromtimestamp(exp, tz=timezone.utc):
        raise _unauthorized("Token expired")

    claimed_audience = payload_data.get("aud")
    audiences = claimed_audience if isinstance(claimed_audience, list) else [claimed_audience]
    if audience not in audiences:
        raise _unauthorized()
    return payload_data


def _resolve_access_token_expiry() -> timedelta:
    raw = os.getenv(ACCESS_TOKEN_EXPIRE_MINUTES_ENV)
    if not raw:
        return timedelta(minutes=30)
    try:
        minutes = int(raw)
    except ValueError as exc:
        raise SecurityConfigurationError("ACCESS_TOKEN_EXPIRE_MINUTES must be an integer") from exc
    if minutes <= 0:
        raise SecurityConfigurationError("ACCESS_TOKEN_EXPIRE_MINUTES must be positive")
    return timedelta(minutes=minutes)


def create_access_token(user_id: str, *, expires_in: Optional[timedelta] = None) -> str:
    """Mint a token shaped like the auth provider's, for local use and tests."""

    key = _load_jwt_key()
    expiry = datetime.now(timezone.utc) + (expires_in or _resolve_access_token_expiry())
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "aud": _expected_audience(),
        "role": "authenticated",
        "exp": int(expiry.timestamp()),
    }
    return _encode_jwt(payload, key)


@dataclass
class CurrentUser:
    """The practitioner a request acts on behalf of."""

    id: str


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CurrentUser:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Not authenticated")

    payload = _decode_jwt(credentials.credentials, _load_jwt_key(), _expected_audience())
    subject = payload.get("sub")
    if not isinstance(subject, str):
        raise _unauthorized()
    try:
        user_id = str(uuid.UUID(subject))
    except ValueError as exc:
        raise _unauthorized() from exc
    return CurrentUser(id=user_id)
