"""Badge evaluation: catalog bootstrap and threshold checks."""

import enum
from collections.abc import Awaitable, Callable

from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.logging_config import get_logger
from taskflow.models import Badge, Task, TaskPriority, TaskStatus, User, UserBadge

logger = get_logger(__name__)


class BadgeRequirement(str, enum.Enum):
    """Statistic a badge threshold is measured against."""

    tasks_completed = "tasks_completed"
    on_time = "on_time"
    points = "points"
    urgent_completed = "urgent_completed"


BADGE_CATALOG: list[dict] = [
    {"name": "First Task", "description": "Completed the first task", "icon": "🎯", "requirement": "tasks_completed", "threshold": 1},
    {"name": "Productive", "description": "Completed 10 tasks", "icon": "⚡", "requirement": "tasks_completed", "threshold": 10},
    {"name": "Machine", "description": "Completed 50 tasks", "icon": "🔥", "requirement": "tasks_completed", "threshold": 50},
    {"name": "Legend", "description": "Completed 100 tasks", "icon": "🏆", "requirement": "tasks_completed", "threshold": 100},
    {"name": "Punctual", "description": "Completed 5 tasks on time", "icon": "⏰", "requirement": "on_time", "threshold": 5},
    {"name": "Swiss Watch", "description": "Completed 25 tasks on time", "icon": "🕐", "requirement": "on_time", "threshold": 25},
    {"name": "Rookie", "description": "Reached 100 points", "icon": "⭐", "requirement": "points", "threshold": 100},
    {"name": "Experienced", "description": "Reached 500 points", "icon": "🌟", "requirement": "points", "threshold": 500},
    {"name": "Master", "description": "Reached 1000 points", "icon": "💎", "requirement": "points", "threshold": 1000},
    {"name": "Sprinter", "description": "Completed 5 urgent tasks", "icon": "🚀", "requirement": "urgent_completed", "threshold": 5},
]


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def _completed_by(user_id: int):
    return and_(
        Task.assignee_id == user_id,
        Task.status == TaskStatus.completed.value,
    )


def on_time_condition():
    """SQL condition for a completed task delivered on or before its due date."""
    return or_(Task.due_date.is_(None), Task.completed_at <= Task.due_date)


async def _count(db: AsyncSession, *conditions) -> int:
    result = await db.execute(select(func.count()).select_from(Task).where(*conditions))
    return int(result.scalar() or 0)


async def _tasks_completed(db: AsyncSession, user_id: int) -> int:
    return await _count(db, _completed_by(user_id))


async def _on_time(db: AsyncSession, user_id: int) -> int:
    return await _count(db, _completed_by(user_id), on_time_condition())


async def _urgent_completed(db: AsyncSession, user_id: int) -> int:
    return await _count(
        db, _completed_by(user_id), Task.priority == TaskPriority.urgent.value
    )


async def _points(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(select(User.total_points).where(User.id == user_id))
    return int(result.scalar_one_or_none() or 0)


STATISTICS: dict[BadgeRequirement, Callable[[AsyncSession, int], Awaitable[int]]] = {
    BadgeRequirement.tasks_completed: _tasks_completed,
    BadgeRequirement.on_time: _on_time,
    BadgeRequirement.points: _points,
    BadgeRequirement.urgent_completed: _urgent_completed,
}


async def collect_user_statistics(
    db: AsyncSession, user_id: int
) -> dict[BadgeRequirement, int]:
    """Current value of every badge statistic for a user."""
    return {req: await compute(db, user_id) for req, compute in STATISTICS.items()}


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


async def ensure_badge_catalog(db: AsyncSession) -> int:
    """
    Insert the default badge catalog if the badge table is empty.

    Returns the number of badges inserted. Safe to call on every startup;
    a concurrent bootstrap that loses the unique-name race is ignored.
    """
    existing = (await db.execute(select(func.count()).select_from(Badge))).scalar() or 0
    if existing:
        logger.info("badge_catalog_present", count=existing)
        return 0

    db.add_all([Badge(**entry) for entry in BADGE_CATALOG])
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.info("badge_catalog_seeded_concurrently")
        return 0

    logger.info("badge_catalog_seeded", count=len(BADGE_CATALOG))
    return len(BADGE_CATALOG)


async def list_badges(db: AsyncSession) -> list[Badge]:
    result = await db.execute(select(Badge).order_by(Badge.threshold, Badge.id))
    return list(result.scalars().all())


async def list_user_badges(db: AsyncSession, user_id: int) -> list[UserBadge]:
    result = await db.execute(
        select(UserBadge)
        .where(UserBadge.user_id == user_id)
        .order_by(UserBadge.earned_at.desc(), UserBadge.id.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().unique().all())


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


async def evaluate_badges(db: AsyncSession, user_id: int) -> list[Badge]:
    """
    Award every badge whose threshold the user now meets.

    Returns the newly awarded badges; an empty list when nothing changed.
    Badges already held are never awarded again. The caller commits.
    """
    badges = await list_badges(db)
    held_result = await db.execute(
        select(UserBadge.badge_id).where(UserBadge.user_id == user_id)
    )
    held = set(held_result.scalars().all())

    pending = [b for b in badges if b.id not in held]
    if not pending:
        return []

    stats = await collect_user_statistics(db, user_id)
    awarded: list[Badge] = []
    for badge in pending:
        try:
            requirement = BadgeRequirement(badge.requirement)
        except ValueError:
            logger.warning(
                "badge_requirement_unknown",
                badge_id=badge.id,
                requirement=badge.requirement,
            )
            continue

        if stats[requirement] < badge.threshold:
            continue

        try:
            async with db.begin_nested():
                db.add(UserBadge(user_id=user_id, badge_id=badge.id))
        except IntegrityError:
            # Another request awarded it first.
            logger.info("badge_already_awarded", user_id=user_id, badge_id=badge.id)
            continue

        awarded.append(badge)
        logger.info(
            "badge_awarded",
            user_id=user_id,
            badge_id=badge.id,
            badge_name=badge.name,
            requirement=requirement.value,
            statistic=stats[requirement],
            threshold=badge.threshold,
        )

    return awarded
