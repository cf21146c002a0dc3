import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt

from shortlinks.config import Settings
from shortlinks.errors import Unauthorized
from shortlinks.validators import PASSWORD_MAX_BYTES

logger = logging.getLogger("shortlinks.auth")

ACCESS_TOKEN_TTL = timedelta(hours=24)
ACCESS_TOKEN_TTL_LABEL = "24h"
TOKEN_TYPE = "Bearer"

# auto_error=False: missing headers are reported by the dependencies below
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    user_id: str
    email: str


def hash_password(password: str, rounds: int = 12) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    encoded = password.encode("utf-8")
    if len(encoded) > PASSWORD_MAX_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


def create_access_token(
    user_id: str,
    email: str,
    settings: Settings,
    issued_at: datetime | None = None,
) -> str:
    issued_at = issued_at or datetime.now(timezone.utc)
    to_encode = {
        "sub": user_id,
        "email": email,
        "iat": issued_at,
        "exp": issued_at + ACCESS_TOKEN_TTL,
    }
    return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> dict:
    """Verify signature and expiry; any failure is Unauthorized."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise Unauthorized("Invalid or expired token")
    if not payload.get("sub"):
        raise Unauthorized("Invalid or expired token")
    return payload


def get_current_user(request: Request, token: str | None = Depends(oauth2_scheme)) -> CurrentUser:
    if not token:
        raise Unauthorized("Authentication token required")
    payload = decode_access_token(token, request.app.state.settings)
    return CurrentUser(user_id=payload["sub"], email=payload.get("email", ""))


def get_optional_user(request: Request, token: str | None = Depends(oauth2_scheme)) -> CurrentUser | None:
    """Resolve the caller if a valid token is present; otherwise anonymous."""
    if not token:
        return None
    try:
        payload = decode_access_token(token, request.app.state.settings)
    except Unauthorized:
        return None
    return CurrentUser(user_id=payload["sub"], email=payload.get("email", ""))
