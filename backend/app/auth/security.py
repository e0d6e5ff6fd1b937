"""Password hashing and bearer tokens (JWT) for editors and admins."""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from app.config import get_settings

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS = "access"
REFRESH = "refresh"

# Bcrypt only looks at the first 72 bytes
_BCRYPT_MAX_BYTES = 72


def _bcrypt_input(password: str) -> str:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES].decode("utf-8", errors="ignore")


def hash_password(password: str) -> str:
    """Hash a password for storage. Input beyond 72 bytes is ignored."""
    return pwd_context.hash(_bcrypt_input(password))


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(_bcrypt_input(plain), hashed)


def _issue(subject: str, token_type: str, lifetime: timedelta) -> str:
    settings = get_settings()
    claims: dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    """Short-lived token sent as Authorization: Bearer. Subject is the user email."""
    lifetime = expires_delta or timedelta(minutes=get_settings().access_token_expire_minutes)
    return _issue(subject, ACCESS, lifetime)


def create_refresh_token(subject: str) -> str:
    return _issue(subject, REFRESH, timedelta(days=get_settings().refresh_token_expire_days))


def decode_token(token: str) -> Optional[dict[str, Any]]:
    """Validated claims, or None for malformed, expired or foreign tokens."""
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def subject_of(token: str, token_type: str) -> Optional[str]:
    """Email carried by a valid token of the given type, else None."""
    claims = decode_token(token)
    if not claims or claims.get("type") != token_type:
        return None
    return claims.get("sub")
