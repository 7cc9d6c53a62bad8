"""Tests for manual point adjustments."""

from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from taskflow.exceptions import ForbiddenError, NotFoundError, ValidationError
from taskflow.models import ActivityLog
from taskflow.services.gamification_service import adjust_points
from taskflow.services.points_service import get_total_points, ledger_sum


class TestAdjustPoints:
    """Tests for adjust_points."""

    @pytest.mark.asyncio
    async def test_award_and_badge(self, seeded_db, admin_actor, member_user):
        result = await adjust_points(seeded_db, admin_actor, member_user.id, 120, "Hackathon win")

        assert result.new_total == 120
        assert result.warnings == []
        assert [b.name for b in result.new_badges] == ["Rookie"]
        assert await ledger_sum(seeded_db, member_user.id) == 120

        entries = (await seeded_db.execute(select(ActivityLog))).scalars().all()
        actions = sorted(e.action for e in entries)
        assert actions == ["awarded_points", "earned_badge"]

    @pytest.mark.asyncio
    async def test_deduction_is_new_entry(self, seeded_db, admin_actor, member_user):
        await adjust_points(seeded_db, admin_actor, member_user.id, 30, "bonus")
        result = await adjust_points(seeded_db, admin_actor, member_user.id, -10, "correction")

        assert result.new_total == 20
        assert await get_total_points(seeded_db, member_user.id) == 20
        assert await ledger_sum(seeded_db, member_user.id) == 20

        deducted = (
            await seeded_db.execute(
                select(ActivityLog).where(ActivityLog.action == "deducted_points")
            )
        ).scalars().all()
        assert deducted[0].details == "Deducted 10 points: correction"

    @pytest.mark.asyncio
    async def test_requires_admin(self, seeded_db, member_actor, other_user):
        with pytest.raises(ForbiddenError):
            await adjust_points(seeded_db, member_actor, other_user.id, 10, "gift")

    @pytest.mark.asyncio
    async def test_zero_rejected(self, seeded_db, admin_actor, member_user):
        with pytest.raises(ValidationError):
            await adjust_points(seeded_db, admin_actor, member_user.id, 0, "nothing")

    @pytest.mark.asyncio
    async def test_unknown_user(self, seeded_db, admin_actor):
        with pytest.raises(NotFoundError):
            await adjust_points(seeded_db, admin_actor, 4242, 10, "ghost")

    @pytest.mark.asyncio
    async def test_badge_evaluation_failure_keeps_grant(self, seeded_db, admin_actor, member_user):
        member_id = member_user.id
        with patch(
            "taskflow.services.gamification_service.evaluate_badges",
            new=AsyncMock(side_effect=SQLAlchemyError("deadlock detected")),
        ):
            result = await adjust_points(seeded_db, admin_actor, member_id, 120, "Hackathon win")

        assert result.new_total == 120
        assert result.new_badges == []
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("badge_evaluation failed")
        assert await get_total_points(seeded_db, member_id) == 120
        assert await ledger_sum(seeded_db, member_id) == 120

        actions = (await seeded_db.execute(select(ActivityLog.action))).scalars().all()
        assert actions == ["awarded_points"]

    @pytest.mark.asyncio
    async def test_activity_log_failure_keeps_grant(self, seeded_db, admin_actor, member_user):
        member_id = member_user.id
        with patch(
            "taskflow.services.gamification_service.log_activity",
            new=AsyncMock(side_effect=SQLAlchemyError("audit table missing")),
        ):
            result = await adjust_points(seeded_db, admin_actor, member_id, -15, "correction")

        assert result.new_total == -15
        assert len(result.warnings) == 1
        assert result.warnings[0].startswith("activity_log failed")
        assert await get_total_points(seeded_db, member_id) == -15
        assert await ledger_sum(seeded_db, member_id) == -15
        assert (await seeded_db.execute(select(ActivityLog))).scalars().all() == []
