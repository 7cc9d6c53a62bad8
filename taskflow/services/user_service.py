"""User directory, admin account management and self-service profile edits."""

from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import Actor, hash_password, require_admin
from taskflow.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from taskflow.logging_config import get_logger
from taskflow.models import (
    ActivityAction,
    PointsLog,
    Task,
    TaskComment,
    User,
    UserBadge,
    UserRole,
)
from taskflow.services.activity_service import log_activity
from taskflow.services.side_effects import MutationResult, run_secondary

logger = get_logger(__name__)

VALID_ROLES = {r.value for r in UserRole}
ADMIN_EDITABLE_FIELDS = {"name", "email", "phone", "role"}
PROFILE_FIELDS = {"name", "phone"}


def _validate_name(name: str | None) -> str:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name", "must not be empty")
    return name


def _validate_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if "@" not in email:
        raise ValidationError("email", "must be an email address")
    return email


def _validate_role(role: str) -> str:
    if role not in VALID_ROLES:
        raise ValidationError("role", f"'{role}' is not one of {sorted(VALID_ROLES)}")
    return role


async def _ensure_email_free(db: AsyncSession, email: str, user_id: int | None = None) -> None:
    query = select(User.id).where(User.email == email)
    if user_id is not None:
        query = query.where(User.id != user_id)
    if (await db.execute(query)).scalar_one_or_none() is not None:
        raise ConflictError("user", "email", email)


async def _commit_user(db: AsyncSession, operation: str, email: str | None = None) -> None:
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if email is None:
            raise PersistenceError(operation, str(e)) from e
        raise ConflictError("user", "email", email) from e
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("primary_write_failed", operation=operation, error=str(e))
        raise PersistenceError(operation, str(e)) from e


async def list_users(db: AsyncSession) -> list[User]:
    result = await db.execute(select(User).order_by(User.name, User.id))
    return list(result.scalars().all())


async def get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    return user


async def create_user(
    db: AsyncSession,
    actor: Actor,
    name: str,
    email: str,
    password: str | None = None,
    phone: str | None = None,
    role: str = UserRole.user.value,
) -> MutationResult:
    """Provision a user account. Admin only; points start at zero."""
    require_admin(actor, "create users")
    name = _validate_name(name)
    email = _validate_email(email)
    role = _validate_role(role)
    await _ensure_email_free(db, email)

    user = User(
        name=name,
        email=email,
        phone=phone,
        role=role,
        total_points=0,
        password_hash=hash_password(password) if password else None,
    )
    db.add(user)
    await _commit_user(db, "create_user", email)
    db.expunge(user)

    logger.info("user_created", user_id=user.id, role=role, actor_id=actor.user_id)
    result = MutationResult(entity=user)
    await run_secondary(
        db, result, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.created, "user",
            f'Created user "{name}"', entity_id=user.id,
        ),
    )
    return result


async def update_user(
    db: AsyncSession,
    actor: Actor,
    user_id: int,
    fields: dict[str, Any],
) -> MutationResult:
    """
    Edit another account's name, email, phone or role. Admin only.

    Points are never edited here; they move only through the ledger.
    """
    require_admin(actor, "edit users")
    unknown = set(fields) - ADMIN_EDITABLE_FIELDS
    if unknown:
        raise ValidationError("fields", f"cannot edit {sorted(unknown)}")

    user = await get_user(db, user_id)

    changes: dict[str, Any] = {}
    if "name" in fields:
        changes["name"] = _validate_name(fields["name"])
    if "email" in fields:
        changes["email"] = _validate_email(fields["email"])
        await _ensure_email_free(db, changes["email"], user_id)
    if "phone" in fields:
        changes["phone"] = fields["phone"]
    if "role" in fields:
        changes["role"] = _validate_role(fields["role"])

    for name, value in changes.items():
        setattr(user, name, value)
    await _commit_user(db, "update_user", changes.get("email"))
    db.expunge(user)

    logger.info("user_updated", user_id=user_id, fields=sorted(changes), actor_id=actor.user_id)
    result = MutationResult(entity=user)
    await run_secondary(
        db, result, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.updated, "user",
            f'Updated user "{user.name}"', entity_id=user_id,
        ),
    )
    return result


async def update_profile(db: AsyncSession, actor: Actor, fields: dict[str, Any]) -> User:
    """Let any user change their own name or phone. Not logged."""
    unknown = set(fields) - PROFILE_FIELDS
    if unknown:
        raise ValidationError("fields", f"cannot edit {sorted(unknown)}")

    user = await get_user(db, actor.user_id)
    if "name" in fields:
        user.name = _validate_name(fields["name"])
    if "phone" in fields:
        user.phone = fields["phone"]
    await _commit_user(db, "update_profile")

    logger.info("profile_updated", user_id=actor.user_id, fields=sorted(fields))
    return user


async def delete_user(db: AsyncSession, actor: Actor, user_id: int) -> MutationResult:
    """
    Delete an account. Admin only, and never the caller's own account.

    Tasks stay on the board: the user is removed as assignee and creator.
    Their comments, badges and ledger entries go with them. Activity entries
    are append-only and keep the old user id.
    """
    require_admin(actor, "delete users")
    if user_id == actor.user_id:
        raise ValidationError("user_id", "cannot delete your own account")
    user = await get_user(db, user_id)
    name = user.name

    await db.execute(update(Task).where(Task.assignee_id == user_id).values(assignee_id=None))
    await db.execute(
        update(Task).where(Task.created_by_id == user_id).values(created_by_id=None)
    )
    await db.execute(delete(TaskComment).where(TaskComment.user_id == user_id))
    await db.execute(delete(UserBadge).where(UserBadge.user_id == user_id))
    await db.execute(delete(PointsLog).where(PointsLog.user_id == user_id))
    await db.delete(user)
    await _commit_user(db, "delete_user")

    logger.info("user_deleted", user_id=user_id, actor_id=actor.user_id)
    result = MutationResult(entity=user_id)
    await run_secondary(
        db, result, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.deleted, "user",
            f'Deleted user "{name}"', entity_id=user_id,
        ),
    )
    return result
