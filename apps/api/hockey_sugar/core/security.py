"""JWT handling for session tokens and OAuth state.

Session tokens are issued by the login service; this API only decodes them.
``create_access_token`` remains for service-to-service use and tests.
"""

import uuid
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from hockey_sugar.config import settings

_OAUTH_STATE_TYPE = "dexcom_oauth_state"


def create_access_token(
    user_id: uuid.UUID,
    email: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT access token.

    Args:
        user_id: User's unique identifier
        email: User's email address
        role: User's role value
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    if expires_delta is None:
        expires_delta = timedelta(hours=settings.session_expire_hours)

    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "exp": now + expires_delta,
        "iat": now,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict | None:
    """Decode and validate a JWT access token.

    Returns:
        Token payload dict if valid, None if invalid, expired or not an
        access token
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None

    if payload.get("type") != "access":
        return None
    return payload


class TokenData:
    """Parsed token data for type safety."""

    def __init__(self, payload: dict):
        self.user_id: uuid.UUID = uuid.UUID(payload["sub"])
        self.email: str = payload["email"]
        self.role: str = payload["role"]
        self.exp: datetime = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)


def create_oauth_state(parent_id: uuid.UUID, athlete_id: uuid.UUID) -> str:
    """Sign the (parent, athlete) pair the Dexcom callback will bind to."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(parent_id),
        "athlete_id": str(athlete_id),
        "nonce": uuid.uuid4().hex,
        "iat": now,
        "exp": now + timedelta(seconds=settings.oauth_state_ttl_seconds),
        "type": _OAUTH_STATE_TYPE,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_oauth_state(state: str) -> tuple[uuid.UUID, uuid.UUID] | None:
    """Verify an OAuth state value.

    Returns:
        (parent_id, athlete_id) if the state is valid and unexpired, else None
    """
    try:
        payload = jwt.decode(
            state,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("type") != _OAUTH_STATE_TYPE:
            return None
        return uuid.UUID(payload["sub"]), uuid.UUID(payload["athlete_id"])
    except (JWTError, KeyError, ValueError):
        return None
