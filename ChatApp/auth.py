import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Optional

import requests
from fastapi import HTTPException, Request
from jose import JWTError, jwt

from ChatApp.errors import AuthError

logger = logging.getLogger(__name__)

JWKS_TTL_SECONDS = 300


@dataclass(frozen=True)
class AuthSettings:
    jwks_url: str
    audience: Optional[str]
    issuer: str


# Issuer defaults to the JWKS host with a trailing slash (Auth0 style)
def auth_settings() -> AuthSettings:
    jwks_url = os.getenv("AUTH_JWKS_URL")
    if not jwks_url:
        raise HTTPException(status_code=500, detail="AUTH_JWKS_URL is not configured.")
    return AuthSettings(
        jwks_url=jwks_url,
        audience=os.getenv("AUTH_AUDIENCE") or None,
        issuer=os.getenv("AUTH_ISSUER") or jwks_url.split("/.well-known/")[0] + "/",
    )


# jwks_url -> (fetched_at, keys); a stale entry is served when a refresh fails
_signing_keys: dict[str, tuple[float, list[dict]]] = {}


def signing_keys(jwks_url: str) -> list[dict]:
    cached = _signing_keys.get(jwks_url)
    if cached and time.time() - cached[0] < JWKS_TTL_SECONDS:
        return cached[1]
    try:
        response = requests.get(jwks_url, timeout=3.0)
        response.raise_for_status()
        keys = response.json().get("keys", [])
    except (requests.RequestException, ValueError) as e:
        if cached:
            logger.warning("auth.jwks.stale: refresh of %s failed: %s", jwks_url, e)
            return cached[1]
        raise HTTPException(status_code=503, detail=f"Unable to fetch JWKS: {e}")
    _signing_keys[jwks_url] = (time.time(), keys)
    return keys


def bearer_token(request: Request) -> str:
    scheme, _, token = (request.headers.get("Authorization") or "").partition(" ")
    if scheme != "Bearer" or token.count(".") != 2:
        raise AuthError("Missing or invalid token.")
    return token


# Verifies an RS256 token against the JWKS key named by its `kid` header and returns the claims
def decode_token(token: str, settings: AuthSettings) -> dict[str, Any]:
    try:
        kid = jwt.get_unverified_header(token).get("kid")
    except JWTError as e:
        raise AuthError(f"Token header is unreadable: {e}") from e

    key = next((k for k in signing_keys(settings.jwks_url) if k.get("kid") == kid), None)
    if key is None:
        raise AuthError("Public key not found.")

    try:
        return jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=settings.audience,
            issuer=settings.issuer,
            options={"verify_aud": settings.audience is not None},
        )
    except JWTError as e:
        raise AuthError(f"Token verification failed: {e}") from e


# FastAPI dependency: the owning-user identifier is the token subject
def get_current_user_id(request: Request) -> str:
    settings = auth_settings()
    try:
        claims = decode_token(bearer_token(request), settings)
        user_id = claims.get("sub")
        if not user_id:
            raise AuthError("Token has no subject.")
    except AuthError as e:
        logger.info("auth.rejected: path=%s reason=%s", request.url.path, e)
        raise HTTPException(status_code=401, detail=str(e))
    return user_id
