"""Request authentication: JWT bearer tokens resolved to an acting user."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, Request
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import get_settings
from taskflow.database import get_db
from taskflow.exceptions import (
    ForbiddenError,
    TaskflowError,
    UnauthorizedError,
    raise_http_exception,
)
from taskflow.logging_config import bind_actor, get_logger
from taskflow.models import User, UserRole

logger = get_logger(__name__)

_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


# ---------------------------------------------------------------------------
# Actor
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Actor:
    """The authenticated user a request acts as."""

    user_id: int
    role: str
    name: str = ""

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin.value

    @classmethod
    def from_user(cls, user: User) -> "Actor":
        return cls(user_id=user.id, role=user.role, name=user.name)


def require_admin(actor: Actor, action: str) -> None:
    """Raise ForbiddenError unless the actor is an admin."""
    if not actor.is_admin:
        raise ForbiddenError(actor.user_id, action)


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    return _pwd_context.hash(password)


# ---------------------------------------------------------------------------
# JWT
# ---------------------------------------------------------------------------


def _jwt_secret() -> str:
    secret = get_settings().jwt_secret_key
    if not secret:
        raise RuntimeError("JWT_SECRET_KEY environment variable is required")
    return secret


def create_access_token(user_id: int, expires_minutes: int | None = None) -> str:
    """Create a JWT access token for a user."""
    settings = get_settings()
    minutes = expires_minutes or settings.jwt_access_token_expire_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"sub": str(user_id), "exp": expire, "type": "access"}
    return jwt.encode(payload, _jwt_secret(), algorithm=settings.jwt_algorithm)


def decode_jwt(token: str) -> dict:
    """Decode and validate a JWT token. Raises UnauthorizedError on failure."""
    try:
        return jwt.decode(
            token, _jwt_secret(), algorithms=[get_settings().jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")


async def resolve_actor(token: str, db: AsyncSession) -> Actor:
    """Resolve a bearer token to the acting user."""
    payload = decode_jwt(token)
    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    try:
        user_id = int(payload.get("sub", ""))
    except ValueError:
        raise UnauthorizedError("Invalid token payload")

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        raise UnauthorizedError("User no longer exists")
    return Actor.from_user(user)


# ---------------------------------------------------------------------------
# FastAPI Auth Dependencies
# ---------------------------------------------------------------------------


async def get_current_actor(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Actor:
    """
    FastAPI dependency: extract and validate the Bearer token.

    Returns the Actor or raises 401.
    """
    auth_header = request.headers.get("Authorization")
    try:
        if not auth_header or not auth_header.startswith("Bearer "):
            raise UnauthorizedError("Missing or invalid Authorization header")
        token = auth_header.removeprefix("Bearer ").strip()
        if not token:
            raise UnauthorizedError("Empty token")
        actor = await resolve_actor(token, db)
    except TaskflowError as e:
        logger.info("authentication_rejected", reason=e.message)
        raise_http_exception(e)

    bind_actor(actor.user_id)
    return actor
