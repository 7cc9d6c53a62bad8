"""Manual point adjustments by admins."""

from dataclasses import dataclass, field

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.auth import Actor, require_admin
from taskflow.exceptions import PersistenceError, ValidationError
from taskflow.logging_config import get_logger
from taskflow.models import ActivityAction, Badge
from taskflow.services.activity_service import log_activity
from taskflow.services.badge_service import evaluate_badges
from taskflow.services.points_service import grant_points
from taskflow.services.side_effects import MutationResult, run_secondary

logger = get_logger(__name__)


@dataclass
class PointsAdjustmentResult(MutationResult):
    new_total: int = 0
    new_badges: list[Badge] = field(default_factory=list)


async def adjust_points(
    db: AsyncSession,
    actor: Actor,
    user_id: int,
    delta: int,
    reason: str,
) -> PointsAdjustmentResult:
    """
    Grant (or deduct, with a negative delta) points by hand. Admin only.

    History is never edited: a correction is a new offsetting entry.
    """
    require_admin(actor, "adjust points")
    if delta == 0:
        raise ValidationError("points", "must not be zero")

    try:
        new_total = await grant_points(db, user_id, delta, reason)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("primary_write_failed", operation="adjust_points", error=str(e))
        raise PersistenceError("adjust_points", str(e)) from e

    result = PointsAdjustmentResult(entity=user_id, new_total=new_total)

    badges = await run_secondary(
        db, result, "badge_evaluation", lambda: evaluate_badges(db, user_id)
    )
    result.new_badges = badges or []
    for badge in result.new_badges:
        db.expunge(badge)

    await run_secondary(
        db, result, "activity_log",
        lambda: _log_adjustment(db, actor, user_id, delta, reason.strip(), result.new_badges),
    )

    logger.info(
        "points_adjusted",
        actor_id=actor.user_id,
        user_id=user_id,
        delta=delta,
        new_total=new_total,
        new_badges=[b.name for b in result.new_badges],
    )
    return result


async def _log_adjustment(
    db: AsyncSession,
    actor: Actor,
    user_id: int,
    delta: int,
    reason: str,
    new_badges: list[Badge],
) -> None:
    if delta > 0:
        action, verb = ActivityAction.awarded_points, "Awarded"
    else:
        action, verb = ActivityAction.deducted_points, "Deducted"
    await log_activity(
        db, actor.user_id, action, "user",
        f"{verb} {abs(delta)} points: {reason}", entity_id=user_id,
    )
    for badge in new_badges:
        await log_activity(
            db, user_id, ActivityAction.earned_badge, "badge",
            f'Earned the "{badge.name}" badge', entity_id=badge.id,
        )
