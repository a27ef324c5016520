"""Authentication for platform users: passwords, role-bearing access tokens, TOTP.

Access tokens carry the username and the role the user held at login. The
API dependencies reject a token whose role no longer matches the stored user,
so demoting an admin or issuer takes effect without waiting for expiry.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt
import pyotp

from backend.config import settings
from backend.models.user import ROLES

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class AccessClaims:
    username: str
    role: str | None = None


def hash_password(password: str) -> str:
    # bcrypt only looks at the first 72 bytes
    pw = password.encode("utf-8")[:72]
    return bcrypt.hashpw(pw, bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    pw = plain.encode("utf-8")[:72]
    return bcrypt.checkpw(pw, hashed.encode("utf-8"))


def create_access_token(username: str, role: str | None = None, expire_minutes: int | None = None) -> str:
    if role is not None and role not in ROLES:
        raise ValueError(f"Unknown role: {role}")
    minutes = settings.jwt_expire_minutes if expire_minutes is None else expire_minutes
    claims = {"sub": username, "exp": datetime.now(timezone.utc) + timedelta(minutes=minutes)}
    if role:
        claims["role"] = role
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> AccessClaims | None:
    """Return the token's claims, or None if it is invalid, expired or names an unknown role."""
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
    username = payload.get("sub")
    role = payload.get("role")
    if not username or (role is not None and role not in ROLES):
        return None
    return AccessClaims(username=username, role=role)


def has_role(user_role: str, *allowed: str) -> bool:
    """Admins pass every role check."""
    return user_role == ADMIN_ROLE or user_role in allowed


def verify_totp(secret: str, code: str) -> bool:
    return pyotp.TOTP(secret).verify(code, valid_window=1)


def generate_totp_secret() -> str:
    return pyotp.random_base32()


def get_totp_uri(secret: str, username: str) -> str:
    return pyotp.TOTP(secret).provisioning_uri(name=username, issuer_name=settings.totp_issuer)
