"""Read-side dashboard stats and ranking."""

from datetime import datetime, timedelta

from sqlalchemy import and_, case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.datetime_utils import ensure_utc, utcnow
from taskflow.models import Task, TaskStatus, User
from taskflow.services.badge_service import on_time_condition


def completion_rate(completed: int, total: int) -> int:
    """Percentage of completed tasks, halves rounded up; 0 when there are no tasks."""
    if total <= 0:
        return 0
    # Half-up in integer arithmetic. round() is half-to-even.
    return (completed * 200 + total) // (total * 2)


async def dashboard_stats(
    db: AsyncSession,
    user_id: int | None = None,
    now: datetime | None = None,
) -> dict:
    """
    Task counts by status, overdue count and completion rate.

    Scoped to one assignee when ``user_id`` is given, otherwise all tasks.
    """
    now = ensure_utc(now) or utcnow()
    completed = Task.status == TaskStatus.completed.value
    overdue = and_(~completed, Task.due_date.is_not(None), Task.due_date < now)

    query = select(
        func.count(Task.id),
        func.sum(case((Task.status == TaskStatus.pending.value, 1), else_=0)),
        func.sum(case((Task.status == TaskStatus.in_progress.value, 1), else_=0)),
        func.sum(case((completed, 1), else_=0)),
        func.sum(case((overdue, 1), else_=0)),
    )
    if user_id is not None:
        query = query.where(Task.assignee_id == user_id)

    total, pending, in_progress, done, late = (await db.execute(query)).one()
    total = int(total or 0)
    done = int(done or 0)
    return {
        "total": total,
        "pending": int(pending or 0),
        "in_progress": int(in_progress or 0),
        "completed": done,
        "overdue": int(late or 0),
        "completion_rate": completion_rate(done, total),
    }


async def get_ranking(db: AsyncSession) -> list[dict]:
    """
    Every user with task and points stats, highest total_points first.

    Equal totals are ordered by user id ascending.
    """
    is_completed = Task.status == TaskStatus.completed.value
    task_stats = (
        select(
            Task.assignee_id.label("user_id"),
            func.count(Task.id).label("total_assigned"),
            func.sum(case((is_completed, 1), else_=0)).label("completed_tasks"),
            func.sum(case((and_(is_completed, on_time_condition()), 1), else_=0)).label(
                "on_time_tasks"
            ),
        )
        .where(Task.assignee_id.is_not(None))
        .group_by(Task.assignee_id)
        .subquery()
    )

    query = (
        select(
            User.id,
            User.name,
            User.email,
            User.role,
            User.total_points,
            func.coalesce(task_stats.c.completed_tasks, 0),
            func.coalesce(task_stats.c.on_time_tasks, 0),
            func.coalesce(task_stats.c.total_assigned, 0),
        )
        .outerjoin(task_stats, task_stats.c.user_id == User.id)
        .order_by(User.total_points.desc(), User.id.asc())
    )
    rows = (await db.execute(query)).all()
    return [
        {
            "user_id": row[0],
            "name": row[1],
            "email": row[2],
            "role": row[3],
            "total_points": int(row[4]),
            "completed_tasks": int(row[5]),
            "on_time_tasks": int(row[6]),
            "total_assigned": int(row[7]),
        }
        for row in rows
    ]


async def recent_completions(
    db: AsyncSession,
    days: int = 30,
    now: datetime | None = None,
) -> list[dict]:
    """Completions inside the last ``days`` days, oldest first."""
    now = ensure_utc(now) or utcnow()
    since = now - timedelta(days=max(days, 0))
    result = await db.execute(
        select(Task.id, Task.completed_at, Task.assignee_id, Task.points_awarded)
        .where(
            Task.status == TaskStatus.completed.value,
            Task.completed_at.is_not(None),
            Task.completed_at >= since,
        )
        .order_by(Task.completed_at.asc(), Task.id.asc())
    )
    return [
        {
            "task_id": row[0],
            "completed_at": ensure_utc(row[1]),
            "assignee_id": row[2],
            "points_awarded": row[3],
        }
        for row in result.all()
    ]
