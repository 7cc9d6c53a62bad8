"""User test data factory."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import create_access_token
from taskflow.models import User, UserRole


class UserFactory:
    """Factory for persisted User rows."""

    _counter: int = 0

    @classmethod
    async def create(
        cls,
        db: AsyncSession,
        name: str | None = None,
        email: str | None = None,
        role: str = UserRole.user.value,
        phone: str | None = None,
        total_points: int = 0,
        **kwargs: Any,
    ) -> User:
        """Insert and commit a User with sensible defaults."""
        cls._counter += 1
        user = User(
            name=name or f"Test User {cls._counter}",
            email=email or f"user{cls._counter}@example.com",
            role=role,
            phone=phone,
            total_points=total_points,
            **kwargs,
        )
        db.add(user)
        await db.commit()
        return user


def auth_headers(user: User) -> dict[str, str]:
    """Bearer header for a persisted user."""
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}
