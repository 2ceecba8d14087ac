# fanconnect/auth.py
from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from fanconnect import config, models
from fanconnect.database import get_db
from fanconnect.profiles import ProfileService

logger = logging.getLogger(__name__)

# Login/signup live in the external identity provider; we only verify its
# bearer tokens. auto_error=False so anonymous viewers can read public content.
bearer_scheme = HTTPBearer(auto_error=False)


# -------------------------------------------------------------------
# JWT verify (and mint, for local tooling/tests)
# -------------------------------------------------------------------
def decode_token(token: str) -> dict:
    options = {"verify_aud": config.IDENTITY_JWT_AUDIENCE is not None}
    try:
        payload = jwt.decode(
            token,
            config.IDENTITY_JWT_SECRET,
            algorithms=[config.IDENTITY_JWT_ALGORITHM],
            audience=config.IDENTITY_JWT_AUDIENCE,
            options=options,
        )
        if not payload.get("sub"):
            raise ValueError("Token missing sub claim")
        return payload
    except (JWTError, ValueError) as e:
        raise ValueError("Invalid token") from e


def create_access_token(user_id: str, *, expires_minutes: int = 60, **claims) -> str:
    """
    Token claims:
      sub: identity-provider user id (== profiles.id)
      exp: expiry
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": str(user_id), "exp": expire, **claims}
    if config.IDENTITY_JWT_AUDIENCE and "aud" not in payload:
        payload["aud"] = config.IDENTITY_JWT_AUDIENCE
    return jwt.encode(payload, config.IDENTITY_JWT_SECRET, algorithm=config.IDENTITY_JWT_ALGORITHM)


def _auth_401() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "NOT_AUTHENTICATED", "message": "Not authenticated"},
        headers={"WWW-Authenticate": "Bearer"},
    )


def user_id_from_request(request: Request) -> Optional[str]:
    """Middleware-safe: reads the Authorization header directly. None if absent/invalid."""
    auth_header = (request.headers.get("Authorization") or "").strip()
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    try:
        return str(decode_token(parts[1])["sub"])
    except ValueError:
        return None


# -------------------------------------------------------------------
# Dependencies
# -------------------------------------------------------------------
def get_optional_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """
    Anonymous viewers are allowed (tier 0). A token that is present but
    invalid is still a 401, not silent anonymity.
    """
    if credentials is None:
        return None
    try:
        return str(decode_token(credentials.credentials)["sub"])
    except ValueError:
        raise _auth_401()


def get_current_user_id(user_id: Optional[str] = Depends(get_optional_user_id)) -> str:
    if not user_id:
        raise _auth_401()
    return user_id


def get_current_profile(
    user_id: str = Depends(get_current_user_id),
    db: Optional[Session] = Depends(get_db),
) -> models.Profile:
    profile = ProfileService(db).get_profile(user_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "PROFILE_NOT_FOUND", "message": "Create your profile first (PUT /me)."},
        )
    return profile


def require_creator(profile: models.Profile = Depends(get_current_profile)) -> models.Profile:
    if profile.role != models.ROLE_CREATOR:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"code": "CREATOR_REQUIRED", "message": "Creator account required."},
        )
    return profile


# -------------------------------------------------------------------
# Session propagation
# -------------------------------------------------------------------
def wait_for_session(
    lookup: Callable[[], Optional[str]],
    attempts: int = config.SESSION_POLL_ATTEMPTS,
    delay: float = config.SESSION_POLL_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[str]:
    """
    Right after login/signup the provider's session may not be queryable
    yet. Poll `lookup` (returns current user id or None) a bounded number
    of times; give up with None instead of hanging.
    """
    for attempt in range(1, max(1, attempts) + 1):
        try:
            user_id = lookup()
        except Exception as e:
            logger.debug("session lookup attempt %s failed: %s", attempt, e)
            user_id = None
        if user_id:
            return user_id
        if attempt < attempts:
            sleep(delay)
    logger.warning("session not available after %s attempts", attempts)
    return None
