"""Task endpoints: board CRUD, status transitions, comments and checklists."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import Actor, get_current_actor
from taskflow.database import get_db
from taskflow.exceptions import TaskflowError, raise_http_exception
from taskflow.logging_config import get_logger
from taskflow.schemas import (
    ActivityLogResponse,
    BadgeResponse,
    ChecklistItemCreate,
    ChecklistItemResponse,
    ChecklistItemUpdate,
    CommentCreate,
    CommentResponse,
    MessageResponse,
    PaginatedResponse,
    StatusChangeResponse,
    TaskCreate,
    TaskMutationResponse,
    TaskReorderRequest,
    TaskResponse,
    TaskStatusUpdate,
    TaskUpdate,
)
from taskflow.services import task_service
from taskflow.services.activity_service import list_task_activity

logger = get_logger(__name__)
router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.get("", response_model=PaginatedResponse)
async def list_tasks(
    status: str | None = Query(None),
    priority: str | None = Query(None),
    assignee_id: int | None = Query(None),
    search: str | None = Query(None, max_length=255),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """List tasks in board order with optional filters."""
    try:
        tasks, total = await task_service.list_tasks(
            db, status=status, priority=priority, assignee_id=assignee_id,
            search=search, limit=limit, offset=offset,
        )
    except TaskflowError as e:
        raise_http_exception(e)

    return PaginatedResponse(
        items=[TaskResponse.model_validate(t) for t in tasks],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=TaskMutationResponse, status_code=201)
async def create_task(
    body: TaskCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Create a task. Admin only."""
    try:
        result = await task_service.create_task(
            db, actor,
            title=body.title,
            priority=body.priority,
            description=body.description,
            assignee_id=body.assignee_id,
            due_date=body.due_date,
            checklist=body.checklist,
        )
    except TaskflowError as e:
        raise_http_exception(e)

    return TaskMutationResponse(
        task=TaskResponse.model_validate(result.entity), warnings=result.warnings
    )


@router.post("/reorder", response_model=MessageResponse)
async def reorder_tasks(
    body: TaskReorderRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Persist a new board order. Admin only."""
    try:
        await task_service.reorder_tasks(db, actor, body.ordered_ids)
    except TaskflowError as e:
        raise_http_exception(e)
    return MessageResponse(message=f"Reordered {len(body.ordered_ids)} tasks")


@router.delete("/comments/{comment_id}", response_model=MessageResponse)
async def delete_comment(
    comment_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Delete a comment. Author or admin."""
    try:
        await task_service.delete_comment(db, actor, comment_id)
    except TaskflowError as e:
        raise_http_exception(e)
    return MessageResponse(message="Comment deleted")


@router.patch("/checklist/{item_id}", response_model=ChecklistItemResponse)
async def update_checklist_item(
    item_id: int,
    body: ChecklistItemUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Rename, tick or move a checklist item."""
    try:
        item = await task_service.update_checklist_item(
            db, actor, item_id, body.model_dump(exclude_unset=True)
        )
    except TaskflowError as e:
        raise_http_exception(e)
    return ChecklistItemResponse.model_validate(item)


@router.delete("/checklist/{item_id}", response_model=MessageResponse)
async def delete_checklist_item(
    item_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        await task_service.delete_checklist_item(db, actor, item_id)
    except TaskflowError as e:
        raise_http_exception(e)
    return MessageResponse(message="Checklist item deleted")


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        task = await task_service.get_task(db, task_id)
    except TaskflowError as e:
        raise_http_exception(e)
    return TaskResponse.model_validate(task)


@router.patch("/{task_id}", response_model=TaskMutationResponse)
async def update_task(
    task_id: int,
    body: TaskUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Edit task fields. Admin only; status has its own endpoint."""
    try:
        result = await task_service.update_task_fields(
            db, actor, task_id, body.model_dump(exclude_unset=True)
        )
    except TaskflowError as e:
        raise_http_exception(e)

    return TaskMutationResponse(
        task=TaskResponse.model_validate(result.entity), warnings=result.warnings
    )


@router.patch("/{task_id}/status", response_model=StatusChangeResponse)
async def update_task_status(
    task_id: int,
    body: TaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """
    Move a task between pending, in_progress and completed.

    Completing a task awards its points and evaluates badges for the
    assignee. Follow-up failures are reported in ``warnings``; the status
    change itself is already saved.
    """
    try:
        result = await task_service.update_task_status(db, actor, task_id, body.status)
    except TaskflowError as e:
        raise_http_exception(e)

    return StatusChangeResponse(
        task=TaskResponse.model_validate(result.task),
        previous_status=result.previous_status,
        points_awarded=result.points_awarded,
        new_badges=[BadgeResponse.model_validate(b) for b in result.new_badges],
        warnings=result.warnings,
    )


@router.delete("/{task_id}", response_model=MessageResponse)
async def delete_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Delete a task and its comments. Admin only."""
    try:
        await task_service.delete_task(db, actor, task_id)
    except TaskflowError as e:
        raise_http_exception(e)
    return MessageResponse(message=f"Task {task_id} deleted")


@router.get("/{task_id}/comments", response_model=list[CommentResponse])
async def list_comments(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        rows = await task_service.list_comments(db, task_id)
    except TaskflowError as e:
        raise_http_exception(e)

    return [
        CommentResponse(
            id=c.id,
            task_id=c.task_id,
            user_id=c.user_id,
            user_name=user_name,
            content=c.content,
            created_at=c.created_at,
        )
        for c, user_name in rows
    ]


@router.post("/{task_id}/comments", response_model=CommentResponse, status_code=201)
async def add_comment(
    task_id: int,
    body: CommentCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        result = await task_service.add_comment(db, actor, task_id, body.content)
    except TaskflowError as e:
        raise_http_exception(e)

    comment = result.entity
    return CommentResponse(
        id=comment.id,
        task_id=comment.task_id,
        user_id=comment.user_id,
        user_name=actor.name,
        content=comment.content,
        created_at=comment.created_at,
    )


@router.get("/{task_id}/activity", response_model=list[ActivityLogResponse])
async def task_activity(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Activity recorded against one task, newest first."""
    try:
        await task_service.get_task(db, task_id)
    except TaskflowError as e:
        raise_http_exception(e)

    entries = await list_task_activity(db, task_id)
    return [ActivityLogResponse.model_validate(e) for e in entries]


@router.get("/{task_id}/checklist", response_model=list[ChecklistItemResponse])
async def list_checklist(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Checklist items in display order."""
    try:
        items = await task_service.list_checklist(db, task_id)
    except TaskflowError as e:
        raise_http_exception(e)
    return [ChecklistItemResponse.model_validate(i) for i in items]


@router.post("/{task_id}/checklist", response_model=ChecklistItemResponse, status_code=201)
async def add_checklist_item(
    task_id: int,
    body: ChecklistItemCreate,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    try:
        result = await task_service.add_checklist_item(db, actor, task_id, body.title)
    except TaskflowError as e:
        raise_http_exception(e)
    return ChecklistItemResponse.model_validate(result.entity)
