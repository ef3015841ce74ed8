# app/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from app.core.config import settings
from app.core.errors import AuthenticationError
from app.schemas.user import AuthUser


def get_password_hash(password: str) -> str:
    """Salted one-way hash of a plaintext password."""
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def get_expiry_date(days: Optional[int] = None) -> datetime:
    """
    Calculate a token expiry date from now.
    Falls back to ACCESS_TOKEN_EXPIRE_DAYS when days is None.
    """
    if days is None:
        days = settings.ACCESS_TOKEN_EXPIRE_DAYS
    return datetime.now(timezone.utc) + timedelta(days=days)


def create_access_token(
    user: AuthUser,
    secret_key: Optional[str] = None,
    expires_in_days: Optional[int] = None,
) -> str:
    """Sign a bearer token carrying the user's id, email and display name."""
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "name": user.name,
        "exp": get_expiry_date(expires_in_days),
    }
    return jwt.encode(payload, secret_key or settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str, secret_key: Optional[str] = None) -> AuthUser:
    """
    Verify signature and expiry and return the identity encoded in the token.
    Raises AuthenticationError for anything that does not verify.
    """
    try:
        payload = jwt.decode(token, secret_key or settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise AuthenticationError("Invalid or expired token")

    try:
        return AuthUser(id=int(payload["sub"]), email=payload["email"], name=payload["name"])
    except (KeyError, TypeError, ValueError):
        raise AuthenticationError("Invalid or expired token")
