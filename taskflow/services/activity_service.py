"""Activity logging service: append-only audit trail."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.config import get_settings
from taskflow.logging_config import get_logger
from taskflow.models import ActivityAction, ActivityLog

logger = get_logger(__name__)


async def log_activity(
    db: AsyncSession,
    user_id: int,
    action: ActivityAction | str,
    entity_type: str,
    details: str | None = None,
    entity_id: int | None = None,
) -> ActivityLog:
    """
    Append an activity log entry.

    Args:
        db: Database session (caller commits)
        user_id: Acting user
        action: e.g. 'created', 'status_changed', 'earned_badge'
        entity_type: e.g. 'task', 'badge', 'user'
        details: Human-readable description
        entity_id: Related entity (optional)
    """
    action_value = action.value if isinstance(action, ActivityAction) else action
    entry = ActivityLog(
        user_id=user_id,
        action=action_value,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
    )
    db.add(entry)
    await db.flush()

    logger.info(
        "activity_logged",
        user_id=user_id,
        action=action_value,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    return entry


def clamp_limit(limit: int | None) -> int:
    """Apply the configured default and upper bound to a read limit."""
    settings = get_settings()
    if limit is None:
        return settings.activity_default_limit
    return max(1, min(limit, settings.activity_max_limit))


async def list_activity(
    db: AsyncSession,
    user_id: int | None = None,
    limit: int | None = None,
) -> list[ActivityLog]:
    """Activity entries newest first, optionally scoped to one user."""
    query = select(ActivityLog)
    if user_id is not None:
        query = query.where(ActivityLog.user_id == user_id)
    query = query.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    query = query.limit(clamp_limit(limit))
    result = await db.execute(query)
    return list(result.scalars().all())


async def list_task_activity(db: AsyncSession, task_id: int) -> list[ActivityLog]:
    """Activity entries recorded against a task, newest first."""
    result = await db.execute(
        select(ActivityLog)
        .where(ActivityLog.entity_type == "task", ActivityLog.entity_id == task_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
    )
    return list(result.scalars().all())
