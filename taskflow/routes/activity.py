"""Activity feed endpoint."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import Actor, get_current_actor
from taskflow.database import get_db
from taskflow.schemas import ActivityLogResponse
from taskflow.services.activity_service import list_activity

router = APIRouter(prefix="/api/activity", tags=["activity"])


@router.get("", response_model=list[ActivityLogResponse])
async def activity_feed(
    user_id: int | None = Query(None),
    limit: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Latest activity, newest first. ``limit`` is capped server-side."""
    entries = await list_activity(db, user_id=user_id, limit=limit)
    return [ActivityLogResponse.model_validate(e) for e in entries]
