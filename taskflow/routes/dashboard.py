"""Dashboard endpoints derived from task state."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import Actor, get_current_actor
from taskflow.database import get_db
from taskflow.schemas import CompletionEntry, DashboardStatsResponse
from taskflow.services.stats_service import dashboard_stats, recent_completions

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStatsResponse)
async def stats(
    user_id: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Task counts, overdue count and completion rate, globally or per assignee."""
    return DashboardStatsResponse(**await dashboard_stats(db, user_id=user_id))


@router.get("/recent-completions", response_model=list[CompletionEntry])
async def completions(
    days: int = Query(30, ge=1, le=365),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Completed tasks inside the window, oldest first."""
    return [CompletionEntry(**row) for row in await recent_completions(db, days=days)]
