"""
JWT authentication for API routes.

Validates Bearer tokens against the identity provider's JWKS endpoint,
extracts the user identity and provides FastAPI dependencies for
route-level auth.

Set AUTH_DISABLED=true to bypass validation (tests / local dev without an IdP).
"""

import logging
import time
import uuid
from typing import Annotated

import httpx
import jwt
from fastapi import Depends, HTTPException, Request, status

from ..core.config import settings
from ..schemas.auth import TokenPayload, UserContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# JWKS cache
# ---------------------------------------------------------------------------

_jwks_data: dict | None = None
_jwks_fetched_at: float = 0


def _fetch_jwks() -> dict:
    """Fetch JSON Web Key Set from the issuer. Raises on failure."""
    url = f"{settings.JWT_ISSUER_URL}/protocol/openid-connect/certs"
    response = httpx.get(url, timeout=5)
    response.raise_for_status()
    return response.json()


def _get_jwks(force_refresh: bool = False) -> dict:
    """Return cached JWKS, refreshing if stale or forced."""
    global _jwks_data, _jwks_fetched_at  # noqa: PLW0603

    now = time.time()
    if _jwks_data is None or force_refresh or (now - _jwks_fetched_at) > settings.JWKS_CACHE_TTL:
        _jwks_data = _fetch_jwks()
        _jwks_fetched_at = now

    return _jwks_data


def _find_key(jwks: dict, kid: str | None) -> jwt.PyJWK | None:
    try:
        key_set = jwt.PyJWKSet.from_dict(jwks)
    except jwt.PyJWKSetError:
        logger.warning("JWKS contained no usable keys")
        return None
    for key in key_set.keys:
        if key.key_id == kid:
            return key
    return None


def _get_signing_key(token: str) -> jwt.PyJWK:
    """Find the signing key for the given token from the JWKS."""
    try:
        kid = jwt.get_unverified_header(token).get("kid")
        key = _find_key(_get_jwks(), kid)
        if key is None:
            # kid not found -- cache-bust and retry once (key rotation)
            key = _find_key(_get_jwks(force_refresh=True), kid)
        if key is None:
            raise jwt.InvalidTokenError(f"No matching key found for kid={kid}")
        return key

    except httpx.HTTPError as exc:
        logger.error("Failed to fetch JWKS: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service unavailable",
        ) from exc


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------


def _extract_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:]
    return None


def _decode_token(token: str) -> TokenPayload:
    """Validate and decode a JWT against the issuer's JWKS."""
    signing_key = _get_signing_key(token)
    payload = jwt.decode(
        token,
        signing_key.key,
        algorithms=["RS256"],
        issuer=settings.JWT_ISSUER_URL,
        options={"verify_aud": False},
    )
    return TokenPayload(**payload)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------

DEV_USER_ID = uuid.UUID("00000000-0000-4000-8000-000000000001")

_DISABLED_USER = UserContext(
    user_id=DEV_USER_ID,
    email="dev@citizenos.local",
    name="Dev User",
)


async def get_current_user(request: Request) -> UserContext:
    """FastAPI dependency: validate JWT and return UserContext.

    When AUTH_DISABLED=true, returns a fixed dev user without token validation.
    """
    if settings.AUTH_DISABLED:
        return _DISABLED_USER

    token = _extract_token(request)
    if not token:
        raise _unauthorized("Missing authentication token")

    try:
        payload = _decode_token(token)
    except jwt.ExpiredSignatureError as exc:
        raise _unauthorized("Token has expired") from exc
    except jwt.InvalidTokenError as exc:
        raise _unauthorized("Invalid token") from exc

    try:
        user_id = uuid.UUID(payload.sub)
        partner_id = uuid.UUID(payload.partner_id) if payload.partner_id else None
    except ValueError as exc:
        raise _unauthorized("Invalid token") from exc

    return UserContext(
        user_id=user_id,
        email=payload.email,
        name=payload.name or payload.preferred_username,
        partner_id=partner_id,
    )


# Type alias for use in route signatures
CurrentUser = Annotated[UserContext, Depends(get_current_user)]


async def require_path_user(user_id: str, user: CurrentUser) -> UserContext:
    """Dependency: the ``{user_id}`` path segment must be ``self`` or the caller."""
    if user_id != "self" and user_id != str(user.user_id):
        logger.warning(
            "Path user mismatch: caller=%s attempted path user=%s", user.user_id, user_id
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Insufficient permissions",
        )
    return user


PathUser = Annotated[UserContext, Depends(require_path_user)]
