"""Pydantic v2 request/response schemas for all endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=320)
    password: str | None = Field(default=None, min_length=8, max_length=128)
    phone: str | None = Field(default=None, max_length=20)
    role: str = Field(default="user", pattern=r"^(user|admin)$")


class UserUpdate(BaseModel):
    """Admin edit; only fields present in the request body are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: str | None = Field(default=None, min_length=3, max_length=320)
    phone: str | None = Field(default=None, max_length=20)
    role: str | None = Field(default=None, pattern=r"^(user|admin)$")


class ProfileUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    phone: str | None = Field(default=None, max_length=20)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    phone: str | None
    role: str
    total_points: int
    created_at: datetime


class UserMutationResponse(BaseModel):
    user: UserResponse
    warnings: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    priority: str = Field(default="medium", pattern=r"^(low|medium|high|urgent)$")
    assignee_id: int | None = None
    due_date: datetime | None = None
    checklist: list[str] = Field(default_factory=list, max_length=100)


class TaskUpdate(BaseModel):
    """Partial edit; only fields present in the request body are applied."""

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    priority: str | None = Field(default=None, pattern=r"^(low|medium|high|urgent)$")
    assignee_id: int | None = None
    due_date: datetime | None = None


class TaskStatusUpdate(BaseModel):
    status: str = Field(..., pattern=r"^(pending|in_progress|completed)$")


class TaskReorderRequest(BaseModel):
    ordered_ids: list[int] = Field(..., min_length=1)


class TaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str | None
    status: str
    priority: str
    assignee_id: int | None
    created_by_id: int | None
    due_date: datetime | None
    completed_at: datetime | None
    points_awarded: int
    sort_order: int
    created_at: datetime
    updated_at: datetime


class TaskMutationResponse(BaseModel):
    task: TaskResponse
    warnings: list[str] = Field(default_factory=list)


class PaginatedResponse(BaseModel):
    items: list = Field(default_factory=list)
    total: int = 0
    limit: int = 50
    offset: int = 0


class CommentCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=2000)


class CommentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    user_id: int
    user_name: str | None = None
    content: str
    created_at: datetime


class ChecklistItemCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=500)


class ChecklistItemUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    is_completed: bool | None = None
    sort_order: int | None = None


class ChecklistItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    task_id: int
    title: str
    is_completed: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime


# ---------------------------------------------------------------------------
# Gamification
# ---------------------------------------------------------------------------


class BadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    icon: str
    requirement: str
    threshold: int


class UserBadgeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    badge: BadgeResponse
    earned_at: datetime


class StatusChangeResponse(BaseModel):
    success: bool = True
    task: TaskResponse
    previous_status: str
    points_awarded: int = 0
    new_badges: list[BadgeResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class PointsAdjustRequest(BaseModel):
    user_id: int
    points: int = Field(..., description="Positive to award, negative to deduct")
    reason: str = Field(..., min_length=1, max_length=255)


class PointsAdjustResponse(BaseModel):
    success: bool = True
    user_id: int
    new_total: int
    new_badges: list[BadgeResponse] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class PointsLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    points: int
    reason: str
    task_id: int | None
    created_at: datetime


class PointsSummaryResponse(BaseModel):
    user_id: int
    total_points: int
    history: list[PointsLogResponse] = Field(default_factory=list)


class RankingEntry(BaseModel):
    position: int
    user_id: int
    name: str
    email: str
    role: str
    total_points: int
    completed_tasks: int
    on_time_tasks: int
    total_assigned: int


# ---------------------------------------------------------------------------
# Dashboard
# ---------------------------------------------------------------------------


class DashboardStatsResponse(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    overdue: int
    completion_rate: int


class CompletionEntry(BaseModel):
    task_id: int
    completed_at: datetime
    assignee_id: int | None
    points_awarded: int


# ---------------------------------------------------------------------------
# Activity
# ---------------------------------------------------------------------------


class ActivityLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    action: str
    entity_type: str
    entity_id: int | None
    details: str | None
    created_at: datetime


class MessageResponse(BaseModel):
    message: str
