"""
Authentication Dependencies

Provides FastAPI dependencies for:
- Firebase ID token verification
- Optional (guest-friendly) student authentication
- Admin authorization

Firebase ID tokens are RS256 JWTs signed by Google. They are verified against
the securetoken JWKS with issuer https://securetoken.google.com/<project> and
the project id as audience.

When FIREBASE_PROJECT_ID is not configured the API runs in open mode: students
act as DEV_USER_ID and admin routes skip the role check.

Usage:
    @router.get("/stats")
    def stats(admin: Optional[AuthenticatedUser] = Depends(get_admin_user)):
        ...
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import httpx
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from jose.exceptions import JWKError

from homework_helper.config import Settings
from homework_helper.context import get_settings
from homework_helper.errors import ForbiddenError, UnauthenticatedError

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

DEV_USER_ID = "dev-user"
FIREBASE_ISSUER_PREFIX = "https://securetoken.google.com/"

# JWKS cache with TTL and thread-safe locking
_jwks_cache: Tuple[Optional[dict], float] = (None, 0)
_jwks_lock = threading.Lock()
JWKS_CACHE_TTL_SECONDS = 3600
JWKS_MAX_STALE_SECONDS = 3600


@dataclass
class AuthenticatedUser:
    uid: str
    email: Optional[str] = None
    is_admin: bool = False
    claims: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "AuthenticatedUser":
        return cls(
            uid=claims.get("sub") or claims.get("user_id"),
            email=claims.get("email"),
            is_admin=claims.get("admin") is True or claims.get("role") == "admin",
            claims=claims,
        )


def get_firebase_jwks(jwks_url: str, force_refresh: bool = False) -> dict:
    """
    Fetch and cache Google's JWKS for Firebase ID tokens.

    A failed refresh falls back to the previous key set while it is younger
    than JWKS_MAX_STALE_SECONDS.
    """
    global _jwks_cache
    cached_jwks, cache_time = _jwks_cache

    if not force_refresh and cached_jwks is not None:
        if time.time() - cache_time < JWKS_CACHE_TTL_SECONDS:
            return cached_jwks

    with _jwks_lock:
        # Another thread might have refreshed while we waited
        cached_jwks, cache_time = _jwks_cache
        cache_age = time.time() - cache_time

        if not force_refresh and cached_jwks is not None:
            if cache_age < JWKS_CACHE_TTL_SECONDS:
                return cached_jwks

        try:
            response = httpx.get(jwks_url, timeout=10.0)
            response.raise_for_status()
            jwks = response.json()
            _jwks_cache = (jwks, time.time())
            logger.debug("Firebase JWKS cache refreshed")
            return jwks
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch Firebase JWKS: {e}")
            if cached_jwks is not None and cache_age < JWKS_MAX_STALE_SECONDS:
                logger.warning(f"Returning stale JWKS cache (age: {cache_age:.0f}s)")
                return cached_jwks
            return {"keys": []}


def reset_jwks_cache() -> None:
    global _jwks_cache
    _jwks_cache = (None, 0)


def _find_key(jwks: dict, kid: str) -> Optional[dict]:
    for key in jwks.get("keys", []):
        if key.get("kid") == kid:
            return key
    return None


def verify_firebase_token(token: str, settings: Settings) -> Dict[str, Any]:
    """
    Verify a Firebase ID token and return its claims.

    Raises:
        UnauthenticatedError: If the token is malformed, expired or not
            issued for this project
    """
    project_id = settings.firebase_project_id
    try:
        kid = jwt.get_unverified_header(token).get("kid")
        if not kid:
            raise UnauthenticatedError("Token missing key ID")

        rsa_key = _find_key(get_firebase_jwks(settings.firebase_jwks_url), kid)
        if rsa_key is None:
            # Google rotates keys; refresh once before giving up
            rsa_key = _find_key(get_firebase_jwks(settings.firebase_jwks_url, force_refresh=True), kid)
        if rsa_key is None:
            raise UnauthenticatedError("Unable to find appropriate key")

        claims = jwt.decode(
            token,
            rsa_key,
            algorithms=["RS256"],
            audience=project_id,
            issuer=f"{FIREBASE_ISSUER_PREFIX}{project_id}",
        )
    except JWTError as e:
        logger.warning(f"Firebase token verification failed: {e}")
        raise UnauthenticatedError("Invalid or expired token")
    except JWKError as e:
        logger.error(f"JWK error: {e}")
        raise UnauthenticatedError("Token verification failed")

    if not claims.get("sub"):
        raise UnauthenticatedError("Invalid token claims")
    return claims


def _authenticate(
    credentials: Optional[HTTPAuthorizationCredentials],
    settings: Settings,
) -> Optional[AuthenticatedUser]:
    if credentials is None or not credentials.credentials:
        return None
    claims = verify_firebase_token(credentials.credentials, settings)
    return AuthenticatedUser.from_claims(claims)


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Optional[AuthenticatedUser]:
    """
    Student authentication. Returns None (guest) when there is no token or
    the token does not verify.
    """
    if not settings.auth_enabled:
        return AuthenticatedUser(uid=DEV_USER_ID)

    try:
        return _authenticate(credentials, settings)
    except UnauthenticatedError as e:
        logger.info(f"Continuing as guest: {e.message}")
        return None


async def get_admin_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Optional[AuthenticatedUser]:
    """
    Require a verified token carrying the admin claim.

    In open mode the check is skipped and None is returned.

    Raises:
        UnauthenticatedError: No token, or the token does not verify
        ForbiddenError: The user is not an admin
    """
    if not settings.auth_enabled:
        return None

    user = _authenticate(credentials, settings)
    if user is None:
        raise UnauthenticatedError("Not authenticated")
    if not user.is_admin:
        logger.warning(f"Non-admin user {user.uid} attempted to access admin analytics")
        raise ForbiddenError()
    return user


def user_id_of(user: Optional[AuthenticatedUser]) -> Optional[str]:
    return user.uid if user else None
