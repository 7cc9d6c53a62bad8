"""Gamification endpoints: points, badges and ranking."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import Actor, get_current_actor
from taskflow.config import get_settings
from taskflow.database import get_db
from taskflow.exceptions import TaskflowError, raise_http_exception
from taskflow.logging_config import get_logger
from taskflow.schemas import (
    BadgeResponse,
    PointsAdjustRequest,
    PointsAdjustResponse,
    PointsLogResponse,
    PointsSummaryResponse,
    RankingEntry,
    UserBadgeResponse,
)
from taskflow.services import badge_service, points_service
from taskflow.services.gamification_service import adjust_points
from taskflow.services.stats_service import get_ranking

logger = get_logger(__name__)
router = APIRouter(prefix="/api/gamification", tags=["gamification"])


async def _points_summary(db: AsyncSession, user_id: int, limit: int | None) -> PointsSummaryResponse:
    try:
        total = await points_service.get_total_points(db, user_id)
    except TaskflowError as e:
        raise_http_exception(e)

    history = await points_service.get_points_history(
        db, user_id, limit=limit or get_settings().points_history_limit
    )
    return PointsSummaryResponse(
        user_id=user_id,
        total_points=total,
        history=[PointsLogResponse.model_validate(entry) for entry in history],
    )


@router.post("/points/adjust", response_model=PointsAdjustResponse)
async def adjust_user_points(
    body: PointsAdjustRequest,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Award or deduct points by hand. Admin only."""
    try:
        result = await adjust_points(db, actor, body.user_id, body.points, body.reason)
    except TaskflowError as e:
        raise_http_exception(e)

    return PointsAdjustResponse(
        user_id=body.user_id,
        new_total=result.new_total,
        new_badges=[BadgeResponse.model_validate(b) for b in result.new_badges],
        warnings=result.warnings,
    )


@router.get("/points/me", response_model=PointsSummaryResponse)
async def my_points(
    limit: int | None = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return await _points_summary(db, actor.user_id, limit)


@router.get("/points/{user_id}", response_model=PointsSummaryResponse)
async def user_points(
    user_id: int,
    limit: int | None = Query(None, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return await _points_summary(db, user_id, limit)


@router.get("/ranking", response_model=list[RankingEntry])
async def ranking(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """Users ordered by total points, highest first."""
    rows = await get_ranking(db)
    return [RankingEntry(position=i, **row) for i, row in enumerate(rows, start=1)]


@router.get("/badges", response_model=list[BadgeResponse])
async def badges(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    """The full badge catalog."""
    return [BadgeResponse.model_validate(b) for b in await badge_service.list_badges(db)]


@router.get("/badges/me", response_model=list[UserBadgeResponse])
async def my_badges(
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    earned = await badge_service.list_user_badges(db, actor.user_id)
    return [UserBadgeResponse.model_validate(ub) for ub in earned]


@router.get("/badges/{user_id}", response_model=list[UserBadgeResponse])
async def user_badges(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    earned = await badge_service.list_user_badges(db, user_id)
    return [UserBadgeResponse.model_validate(ub) for ub in earned]
