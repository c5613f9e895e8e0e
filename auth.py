"""
Password hashing, credentials and the request-level capability check.

A request may carry a server-side session cookie, a bearer token, or both.
Either one is enough: ``authenticate`` resolves each credential type to the
same ``Identity``.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import singledispatch
from typing import Annotated, Optional

import jwt
from fastapi import Depends, Header, Request
from passlib.crypto.scrypt import scrypt
from passlib.utils import consteq

from config import settings
from DB_Link.database import Store, store_dependency
from errors import Unauthorized

logger = logging.getLogger(__name__)

# scrypt cost parameters, 64 byte derived key
SCRYPT_N = 16384
SCRYPT_R = 8
SCRYPT_P = 1
KEY_LENGTH = 64
SALT_BYTES = 16

JWT_ALGORITHM = "HS256"


def _derive(password: str, salt: str) -> bytes:
    return scrypt(password.encode("utf-8"), salt.encode("utf-8"), SCRYPT_N, SCRYPT_R, SCRYPT_P, KEY_LENGTH)


def hash_password(password: str) -> str:
    """Return ``"<hex key>.<salt>"`` for a fresh random salt."""
    salt = secrets.token_hex(SALT_BYTES)
    return f"{_derive(password, salt).hex()}.{salt}"


def verify_password(plain_password: str, hashed_password: str) -> bool:
    hashed, sep, salt = (hashed_password or "").partition(".")
    if not sep or not hashed or not salt:
        return False
    try:
        expected = bytes.fromhex(hashed)
    except ValueError:
        return False
    return consteq(expected, _derive(plain_password, salt))


def generate_session_token():
    return secrets.token_hex(32)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def create_access_token(user_id: int, username: str) -> str:
    payload = {
        "id": user_id,
        "username": username,
        "exp": _utcnow() + timedelta(hours=settings.JWT_EXPIRES_HOURS),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Raises ``jwt.InvalidTokenError`` for bad signatures and expired tokens."""
    return jwt.decode(token, settings.JWT_SECRET, algorithms=[JWT_ALGORITHM])


@dataclass(frozen=True)
class Identity:
    id: int
    username: str


@dataclass(frozen=True)
class SessionCredential:
    token: str


@dataclass(frozen=True)
class TokenCredential:
    token: str


@singledispatch
def authenticate(credential, store: Store) -> Identity:
    raise Unauthorized("Unsupported credential")


@authenticate.register
def _(credential: SessionCredential, store: Store) -> Identity:
    record = store.get_session(credential.token)
    if record is None:
        raise Unauthorized("Invalid session")
    if record.expires_at <= _utcnow().replace(tzinfo=None):
        store.delete_session(credential.token)
        raise Unauthorized("Session expired")
    user = store.get("users", record.user_id)
    if user is None:
        raise Unauthorized("User not found for session")
    return Identity(id=user.id, username=user.username)


@authenticate.register
def _(credential: TokenCredential, store: Store) -> Identity:
    try:
        claims = decode_access_token(credential.token)
    except jwt.ExpiredSignatureError:
        raise Unauthorized("Unauthorized: Token expired")
    except jwt.InvalidTokenError:
        raise Unauthorized("Unauthorized: Invalid token")
    if "id" not in claims or "username" not in claims:
        raise Unauthorized("Unauthorized: Invalid token")
    return Identity(id=claims["id"], username=claims["username"])


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def login(store: Store, username: str, password: str):
    """Check a password and open a server-side session.

    Returns ``(user, session_token, access_token)``.
    """
    user = store.get_user_by_username(username)
    if not user or not verify_password(password, user.password):
        raise Unauthorized("Invalid username or password")
    session_token = generate_session_token()
    expires_at = (_utcnow() + timedelta(hours=settings.SESSION_MAX_AGE_HOURS)).replace(tzinfo=None)
    store.create_session(user.id, session_token, expires_at)
    logger.info("User %s logged in", user.username)
    return user, session_token, create_access_token(user.id, user.username)


def current_identity(
    request: Request,
    store: store_dependency,
    authorization: Annotated[Optional[str], Header()] = None,
) -> Identity:
    """FastAPI dependency for protected routes."""
    session_token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    token = bearer_token(authorization)
    if session_token:
        try:
            return authenticate(SessionCredential(session_token), store)
        except Unauthorized:
            if token is None:
                raise

    if token is None:
        raise Unauthorized("Unauthorized: No token provided")
    return authenticate(TokenCredential(token), store)


identity_dependency = Annotated[Identity, Depends(current_identity)]


def ensure_default_admin(store: Store) -> bool:
    """Create the admin account when it does not exist yet. Returns True if created."""
    if store.get_user_by_username(settings.ADMIN_USERNAME):
        return False
    store.create("users", {
        "username": settings.ADMIN_USERNAME,
        "password": hash_password(settings.ADMIN_PASSWORD),
    })
    logger.info("Created default admin account '%s'", settings.ADMIN_USERNAME)
    return True
