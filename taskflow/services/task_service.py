"""Task lifecycle: status transitions and scoring, CRUD, comments, checklists."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import Actor, require_admin
from taskflow.datetime_utils import ensure_utc, utcnow
from taskflow.exceptions import (
    ForbiddenError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from taskflow.logging_config import get_logger
from taskflow.models import (
    ActivityAction,
    Badge,
    ChecklistItem,
    Task,
    TaskComment,
    TaskPriority,
    TaskStatus,
    User,
)
from taskflow.services import notification_service
from taskflow.services.activity_service import log_activity
from taskflow.services.badge_service import evaluate_badges
from taskflow.services.points_service import calculate_points, grant_points
from taskflow.services.side_effects import MutationResult, run_secondary

logger = get_logger(__name__)

VALID_STATUSES = {s.value for s in TaskStatus}
VALID_PRIORITIES = {p.value for p in TaskPriority}
EDITABLE_FIELDS = {"title", "description", "priority", "assignee_id", "due_date"}
MAX_LIST_LIMIT = 200
MAX_COMMENT_LENGTH = 2000
MAX_CHECKLIST_TITLE_LENGTH = 500
CHECKLIST_FIELDS = {"title", "is_completed", "sort_order"}

STATUS_LABELS = {
    TaskStatus.pending.value: "Pending",
    TaskStatus.in_progress.value: "In progress",
    TaskStatus.completed.value: "Completed",
}


@dataclass
class StatusChangeResult(MutationResult):
    previous_status: str = ""
    points_awarded: int = 0
    new_badges: list[Badge] = field(default_factory=list)

    @property
    def task(self) -> Task:
        return self.entity


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _validate_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title", "must not be empty")
    if len(title) > 255:
        raise ValidationError("title", "must be at most 255 characters")
    return title


def _validate_priority(priority: str) -> str:
    if priority not in VALID_PRIORITIES:
        raise ValidationError("priority", f"'{priority}' is not one of {sorted(VALID_PRIORITIES)}")
    return priority


def _validate_status(status: str) -> str:
    if status not in VALID_STATUSES:
        raise ValidationError("status", f"'{status}' is not one of {sorted(VALID_STATUSES)}")
    return status


def is_on_time(due_date: datetime | None, completed_at: datetime) -> bool:
    """A task with no due date is always on time."""
    if due_date is None:
        return True
    return ensure_utc(completed_at) <= ensure_utc(due_date)


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("user", user_id)
    return user


async def _commit_primary(db: AsyncSession, operation: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("primary_write_failed", operation=operation, error=str(e))
        raise PersistenceError(operation, str(e)) from e


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_task(db: AsyncSession, task_id: int) -> Task:
    task = await db.get(Task, task_id)
    if task is None:
        raise NotFoundError("task", task_id)
    return task


async def list_tasks(
    db: AsyncSession,
    status: str | None = None,
    priority: str | None = None,
    assignee_id: int | None = None,
    search: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[Task], int]:
    """Filtered tasks in board order, plus the unpaginated total."""
    query = select(Task)
    if status and status != "all":
        query = query.where(Task.status == _validate_status(status))
    if priority and priority != "all":
        query = query.where(Task.priority == _validate_priority(priority))
    if assignee_id is not None:
        query = query.where(Task.assignee_id == assignee_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))

    count_query = select(func.count()).select_from(query.subquery())
    total = (await db.execute(count_query)).scalar() or 0

    limit = max(1, min(limit, MAX_LIST_LIMIT))
    query = query.order_by(Task.sort_order.asc(), Task.created_at.desc(), Task.id.desc())
    query = query.offset(max(offset, 0)).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all()), total


# ---------------------------------------------------------------------------
# Creation / editing
# ---------------------------------------------------------------------------


async def create_task(
    db: AsyncSession,
    actor: Actor,
    title: str,
    priority: str = TaskPriority.medium.value,
    description: str | None = None,
    assignee_id: int | None = None,
    due_date: datetime | None = None,
    checklist: list[str] | None = None,
) -> MutationResult:
    """Create a pending task, optionally with checklist items. Admin only."""
    require_admin(actor, "create tasks")
    title = _validate_title(title)
    priority = _validate_priority(priority)
    checklist = [_validate_checklist_title(t) for t in checklist or []]
    contact = None
    if assignee_id is not None:
        assignee = await _get_user(db, assignee_id)
        contact = (assignee.phone, assignee.name)

    task = Task(
        title=title,
        description=description,
        priority=priority,
        status=TaskStatus.pending.value,
        assignee_id=assignee_id,
        created_by_id=actor.user_id,
        due_date=ensure_utc(due_date),
        points_awarded=0,
    )
    db.add(task)
    await db.flush()
    db.add_all(
        ChecklistItem(task_id=task.id, title=item, sort_order=position)
        for position, item in enumerate(checklist)
    )
    await _commit_primary(db, "create_task")
    db.expunge(task)

    logger.info(
        "task_created",
        task_id=task.id,
        priority=priority,
        assignee_id=assignee_id,
        checklist_items=len(checklist),
    )
    result = MutationResult(entity=task)

    details = f'Created task "{title}"'
    if checklist:
        details += f" with {len(checklist)} checklist items"
    await run_secondary(
        db, result, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.created, "task", details, entity_id=task.id,
        ),
    )

    if contact and contact[0]:
        await notification_service.notify_task_assigned(
            contact[0], contact[1], title, priority, task.due_date
        )
    return result


async def update_task_fields(
    db: AsyncSession,
    actor: Actor,
    task_id: int,
    fields: dict[str, Any],
) -> MutationResult:
    """
    Edit title, description, priority, assignee or due date. Admin only.

    Points are never recomputed here, even for an already completed task.
    """
    require_admin(actor, "edit tasks")
    unknown = set(fields) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError("fields", f"cannot edit {sorted(unknown)}")

    task = await get_task(db, task_id)

    changes: dict[str, Any] = {}
    if "title" in fields:
        changes["title"] = _validate_title(fields["title"])
    if "description" in fields:
        changes["description"] = fields["description"]
    if "priority" in fields:
        changes["priority"] = _validate_priority(fields["priority"])
    if "due_date" in fields:
        changes["due_date"] = ensure_utc(fields["due_date"])

    contact = None
    if "assignee_id" in fields:
        if fields["assignee_id"] is not None:
            new_assignee = await _get_user(db, fields["assignee_id"])
            if new_assignee.id != task.assignee_id:
                contact = (new_assignee.phone, new_assignee.name)
        changes["assignee_id"] = fields["assignee_id"]

    for name, value in changes.items():
        setattr(task, name, value)
    await _commit_primary(db, "update_task_fields")
    db.expunge(task)

    logger.info("task_updated", task_id=task_id, fields=sorted(changes))
    result = MutationResult(entity=task)

    await run_secondary(
        db, result, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.updated, "task",
            f"Updated task #{task_id}", entity_id=task_id,
        ),
    )

    if contact and contact[0]:
        await notification_service.notify_task_assigned(
            contact[0], contact[1], task.title, task.priority, task.due_date
        )
    return result


async def delete_task(db: AsyncSession, actor: Actor, task_id: int) -> MutationResult:
    """Delete a task with its comments and checklist. Ledger entries referencing it stay."""
    require_admin(actor, "delete tasks")
    task = await get_task(db, task_id)

    await db.execute(delete(TaskComment).where(TaskComment.task_id == task_id))
    await db.execute(delete(ChecklistItem).where(ChecklistItem.task_id == task_id))
    await db.delete(task)
    await _commit_primary(db, "delete_task")

    logger.info("task_deleted", task_id=task_id)
    result = MutationResult(entity=task_id)
    await run_secondary(
        db, result, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.deleted, "task",
            f"Deleted task #{task_id}", entity_id=task_id,
        ),
    )
    return result


async def reorder_tasks(
    db: AsyncSession,
    actor: Actor,
    ordered_ids: list[int],
) -> MutationResult:
    """Set each task's sort_order to its position in ``ordered_ids``. Admin only."""
    require_admin(actor, "reorder tasks")
    if not ordered_ids:
        raise ValidationError("ordered_ids", "must not be empty")
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ValidationError("ordered_ids", "must not contain duplicates")

    result = await db.execute(select(Task).where(Task.id.in_(ordered_ids)))
    tasks = {t.id: t for t in result.scalars().all()}
    for task_id in ordered_ids:
        if task_id not in tasks:
            raise NotFoundError("task", task_id)

    for position, task_id in enumerate(ordered_ids):
        tasks[task_id].sort_order = position
    await _commit_primary(db, "reorder_tasks")

    mutation = MutationResult(entity=list(ordered_ids))
    await run_secondary(
        db, mutation, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.reordered, "task",
            f"Reordered {len(ordered_ids)} tasks",
        ),
    )
    return mutation


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


async def update_task_status(
    db: AsyncSession,
    actor: Actor,
    task_id: int,
    new_status: str,
    now: datetime | None = None,
) -> StatusChangeResult:
    """
    Move a task to ``new_status``. Allowed for the assignee or an admin.

    Entering ``completed`` stamps completed_at and scores the task; the
    task row is committed first, then the assignee is granted the points,
    badges are evaluated, and the change is logged, in that order. Leaving
    ``completed`` clears completed_at and points_awarded but keeps the
    ledger entry. When two requests complete the same task, only the one
    whose UPDATE claims the row scores it.
    """
    new_status = _validate_status(new_status)
    task = await get_task(db, task_id)
    if task.assignee_id != actor.user_id and not actor.is_admin:
        raise ForbiddenError(actor.user_id, f"change the status of task {task_id}")

    now = ensure_utc(now) or utcnow()
    previous_status = task.status
    completing = (
        new_status == TaskStatus.completed.value
        and previous_status != TaskStatus.completed.value
    )

    points = 0
    if completing:
        points = calculate_points(task.priority, is_on_time(task.due_date, now))
        # Only one request may move the row into completed.
        claimed = await db.execute(
            update(Task)
            .where(Task.id == task_id, Task.status != TaskStatus.completed.value)
            .values(status=new_status, completed_at=now, points_awarded=points)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount == 0:
            logger.warning("task_already_completed", task_id=task_id, actor_id=actor.user_id)
            completing = False
            points = 0
            previous_status = TaskStatus.completed.value
        await db.refresh(task)
    else:
        task.status = new_status
        if new_status != TaskStatus.completed.value:
            task.completed_at = None
            task.points_awarded = 0

    await _commit_primary(db, "update_task_status")
    db.expunge(task)

    logger.info(
        "task_status_changed",
        task_id=task_id,
        previous_status=previous_status,
        new_status=new_status,
        points_awarded=points,
        actor_id=actor.user_id,
    )
    result = StatusChangeResult(
        entity=task, previous_status=previous_status, points_awarded=points
    )

    assignee_id = task.assignee_id
    if completing and assignee_id is not None:
        await run_secondary(
            db, result, "points_grant",
            lambda: grant_points(
                db, assignee_id, points, f'Completed task "{task.title}"', task_id=task_id
            ),
        )
        badges = await run_secondary(
            db, result, "badge_evaluation", lambda: evaluate_badges(db, assignee_id)
        )
        result.new_badges = badges or []
        for badge in result.new_badges:
            db.expunge(badge)

    await run_secondary(
        db, result, "activity_log",
        lambda: _log_status_change(db, actor, task, result.new_badges),
    )

    await _notify_status_change(db, actor, task)
    return result


async def _log_status_change(
    db: AsyncSession,
    actor: Actor,
    task: Task,
    new_badges: list[Badge],
) -> None:
    await log_activity(
        db, actor.user_id, ActivityAction.status_changed, "task",
        f'Changed status to "{STATUS_LABELS[task.status]}"', entity_id=task.id,
    )
    for badge in new_badges:
        await log_activity(
            db, task.assignee_id, ActivityAction.earned_badge, "badge",
            f'Earned the "{badge.name}" badge', entity_id=badge.id,
        )


async def _notify_status_change(db: AsyncSession, actor: Actor, task: Task) -> None:
    if task.assignee_id is None or task.assignee_id == actor.user_id:
        return
    try:
        assignee = await db.get(User, task.assignee_id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("notification_lookup_failed", task_id=task.id, error=str(e))
        return
    if assignee is None or not assignee.phone:
        return
    await notification_service.notify_status_changed(
        assignee.phone, assignee.name, task.title, task.status, actor.name or f"user {actor.user_id}"
    )


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------


async def add_comment(
    db: AsyncSession,
    actor: Actor,
    task_id: int,
    content: str,
) -> MutationResult:
    content = (content or "").strip()
    if not content:
        raise ValidationError("content", "must not be empty")
    if len(content) > MAX_COMMENT_LENGTH:
        raise ValidationError("content", f"must be at most {MAX_COMMENT_LENGTH} characters")
    await get_task(db, task_id)

    comment = TaskComment(task_id=task_id, user_id=actor.user_id, content=content)
    db.add(comment)
    await _commit_primary(db, "add_comment")
    db.expunge(comment)

    result = MutationResult(entity=comment)
    await run_secondary(
        db, result, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.commented, "task",
            f"Commented on task #{task_id}", entity_id=task_id,
        ),
    )
    return result


async def list_comments(db: AsyncSession, task_id: int) -> list[tuple[TaskComment, str | None]]:
    """Comments on a task with their author's name, newest first."""
    await get_task(db, task_id)
    result = await db.execute(
        select(TaskComment, User.name)
        .outerjoin(User, User.id == TaskComment.user_id)
        .where(TaskComment.task_id == task_id)
        .order_by(TaskComment.created_at.desc(), TaskComment.id.desc())
    )
    return [(row[0], row[1]) for row in result.all()]


async def delete_comment(db: AsyncSession, actor: Actor, comment_id: int) -> None:
    """Delete a comment. Allowed for its author or an admin."""
    comment = await db.get(TaskComment, comment_id)
    if comment is None:
        raise NotFoundError("comment", comment_id)
    if comment.user_id != actor.user_id and not actor.is_admin:
        raise ForbiddenError(actor.user_id, f"delete comment {comment_id}")
    await db.delete(comment)
    await _commit_primary(db, "delete_comment")


# ---------------------------------------------------------------------------
# Checklist
# ---------------------------------------------------------------------------


def _validate_checklist_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("title", "must not be empty")
    if len(title) > MAX_CHECKLIST_TITLE_LENGTH:
        raise ValidationError(
            "title", f"must be at most {MAX_CHECKLIST_TITLE_LENGTH} characters"
        )
    return title


async def _get_checklist_item(db: AsyncSession, item_id: int) -> ChecklistItem:
    item = await db.get(ChecklistItem, item_id)
    if item is None:
        raise NotFoundError("checklist item", item_id)
    return item


async def list_checklist(db: AsyncSession, task_id: int) -> list[ChecklistItem]:
    await get_task(db, task_id)
    result = await db.execute(
        select(ChecklistItem)
        .where(ChecklistItem.task_id == task_id)
        .order_by(ChecklistItem.sort_order.asc(), ChecklistItem.id.asc())
    )
    return list(result.scalars().all())


async def add_checklist_item(
    db: AsyncSession,
    actor: Actor,
    task_id: int,
    title: str,
) -> MutationResult:
    """Append an item to the end of a task's checklist. Any authenticated user."""
    title = _validate_checklist_title(title)
    await get_task(db, task_id)

    last = await db.execute(
        select(func.max(ChecklistItem.sort_order)).where(ChecklistItem.task_id == task_id)
    )
    position = last.scalar()
    item = ChecklistItem(
        task_id=task_id,
        title=title,
        is_completed=False,
        sort_order=0 if position is None else position + 1,
    )
    db.add(item)
    await _commit_primary(db, "add_checklist_item")
    db.expunge(item)

    result = MutationResult(entity=item)
    await run_secondary(
        db, result, "activity_log",
        lambda: log_activity(
            db, actor.user_id, ActivityAction.checklist_added, "task",
            f'Added checklist item "{title}"', entity_id=task_id,
        ),
    )
    return result


async def update_checklist_item(
    db: AsyncSession,
    actor: Actor,
    item_id: int,
    fields: dict[str, Any],
) -> ChecklistItem:
    """Rename, tick/untick or move a checklist item. Not logged."""
    unknown = set(fields) - CHECKLIST_FIELDS
    if unknown:
        raise ValidationError("fields", f"cannot edit {sorted(unknown)}")
    item = await _get_checklist_item(db, item_id)

    if "title" in fields:
        item.title = _validate_checklist_title(fields["title"])
    if fields.get("is_completed") is not None:
        item.is_completed = bool(fields["is_completed"])
    if fields.get("sort_order") is not None:
        item.sort_order = int(fields["sort_order"])
    await _commit_primary(db, "update_checklist_item")

    logger.info(
        "checklist_item_updated", item_id=item_id, task_id=item.task_id, actor_id=actor.user_id
    )
    return item


async def delete_checklist_item(db: AsyncSession, actor: Actor, item_id: int) -> None:
    item = await _get_checklist_item(db, item_id)
    await db.delete(item)
    await _commit_primary(db, "delete_checklist_item")
    logger.info("checklist_item_deleted", item_id=item_id, actor_id=actor.user_id)
