"""Points ledger: append-only grants with a cached per-user total."""

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import NotFoundError, ValidationError
from taskflow.logging_config import get_logger
from taskflow.models import PointsLog, TaskPriority, User

logger = get_logger(__name__)

PRIORITY_BASE_POINTS: dict[str, int] = {
    TaskPriority.low.value: 5,
    TaskPriority.medium.value: 10,
    TaskPriority.high.value: 20,
    TaskPriority.urgent.value: 30,
}
DEFAULT_BASE_POINTS = 10
ON_TIME_BONUS = 5


def calculate_points(priority: str, on_time: bool) -> int:
    """Points earned for completing a task of ``priority``."""
    base = PRIORITY_BASE_POINTS.get(priority, DEFAULT_BASE_POINTS)
    return base + ON_TIME_BONUS if on_time else base


async def grant_points(
    db: AsyncSession,
    user_id: int,
    delta: int,
    reason: str,
    task_id: int | None = None,
) -> int:
    """
    Append a ledger entry and add ``delta`` to the user's cached total.

    Both writes go into the caller's transaction; the caller commits.
    Returns the new total.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason", "must not be empty")
    if len(reason) > 255:
        raise ValidationError("reason", "must be at most 255 characters")

    exists = await db.execute(select(User.id).where(User.id == user_id))
    if exists.scalar_one_or_none() is None:
        raise NotFoundError("user", user_id)

    db.add(PointsLog(user_id=user_id, points=delta, reason=reason, task_id=task_id))
    # Single-statement increment so concurrent grants never lose an update.
    await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(total_points=User.total_points + delta)
    )
    await db.flush()

    new_total = await get_total_points(db, user_id)
    logger.info(
        "points_granted",
        user_id=user_id,
        delta=delta,
        reason=reason,
        task_id=task_id,
        total_points=new_total,
    )
    return new_total


async def get_total_points(db: AsyncSession, user_id: int) -> int:
    """Cached total for a user."""
    result = await db.execute(select(User.total_points).where(User.id == user_id))
    total = result.scalar_one_or_none()
    if total is None:
        raise NotFoundError("user", user_id)
    return int(total)


async def ledger_sum(db: AsyncSession, user_id: int) -> int:
    """Sum of every ledger entry for a user (audit path, not for hot reads)."""
    result = await db.execute(
        select(func.coalesce(func.sum(PointsLog.points), 0)).where(
            PointsLog.user_id == user_id
        )
    )
    return int(result.scalar_one())


async def get_points_history(
    db: AsyncSession,
    user_id: int,
    limit: int | None = 50,
) -> list[PointsLog]:
    """Ledger entries for a user, newest first."""
    query = (
        select(PointsLog)
        .where(PointsLog.user_id == user_id)
        .order_by(PointsLog.created_at.desc(), PointsLog.id.desc())
    )
    if limit is not None:
        query = query.limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())
