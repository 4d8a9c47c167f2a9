import secrets
from datetime import datetime, timedelta, timezone
import jwt
from passlib.context import CryptContext

from studiocrm.core.config import settings

pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto",
)

# Gallery links stay valid for one day after the password was entered.
GALLERY_TOKEN_MINUTES = 60 * 24


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    return pwd_context.verify(password, password_hash)


def _encode(payload: dict, minutes: int) -> str:
    now = datetime.now(timezone.utc)
    exp = now + timedelta(minutes=minutes)
    payload = {
        **payload,
        "iat": int(now.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def create_access_token(subject: str, role: str) -> str:
    return _encode({"sub": subject, "role": role, "typ": "admin"}, settings.JWT_EXPIRES_MINUTES)


def decode_access_token(token: str) -> dict:
    payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    if payload.get("typ") != "admin":
        raise jwt.InvalidTokenError("not an admin token")
    return payload


def create_gallery_token(slug: str) -> str:
    """Short-lived token handed to a client after unlocking a protected gallery."""
    return _encode({"sub": slug, "typ": "gallery"}, GALLERY_TOKEN_MINUTES)


def gallery_token_matches(token: str, slug: str) -> bool:
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return False
    return payload.get("typ") == "gallery" and payload.get("sub") == slug


def new_csrf_token() -> str:
    return secrets.token_urlsafe(32)


def new_voucher_suffix() -> str:
    return f"{secrets.randbelow(10000):04d}"
