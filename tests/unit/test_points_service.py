"""Tests for the points calculator and ledger."""

import pytest

from taskflow.exceptions import NotFoundError, ValidationError
from taskflow.models import PointsLog, TaskPriority
from taskflow.services.points_service import (
    calculate_points,
    get_points_history,
    get_total_points,
    grant_points,
    ledger_sum,
)


class TestCalculatePoints:
    """Tests for calculate_points."""

    @pytest.mark.parametrize("priority", [p.value for p in TaskPriority])
    def test_on_time_adds_five(self, priority):
        assert calculate_points(priority, True) == calculate_points(priority, False) + 5

    def test_urgent_on_time(self):
        assert calculate_points("urgent", True) == 35

    def test_low_late(self):
        assert calculate_points("low", False) == 5

    def test_high_on_time(self):
        assert calculate_points("high", True) == 25

    def test_unknown_priority_uses_default_base(self):
        assert calculate_points("whenever", False) == 10


class TestGrantPoints:
    """Tests for the append-only ledger and cached total."""

    @pytest.mark.asyncio
    async def test_grant_updates_total_and_appends_entry(self, db_session, member_user):
        total = await grant_points(db_session, member_user.id, 25, "Completed task", task_id=7)
        await db_session.commit()

        assert total == 25
        assert await get_total_points(db_session, member_user.id) == 25
        history = await get_points_history(db_session, member_user.id)
        assert len(history) == 1
        assert history[0].points == 25
        assert history[0].task_id == 7

    @pytest.mark.asyncio
    async def test_total_matches_ledger_sum_after_mixed_grants(self, db_session, member_user):
        for delta in (10, 35, -5, 20, -15):
            await grant_points(db_session, member_user.id, delta, "adjustment")
            await db_session.commit()

        total = await get_total_points(db_session, member_user.id)
        assert total == 45
        assert total == await ledger_sum(db_session, member_user.id)

    @pytest.mark.asyncio
    async def test_total_may_go_negative(self, db_session, member_user):
        await grant_points(db_session, member_user.id, -10, "penalty")
        await db_session.commit()
        assert await get_total_points(db_session, member_user.id) == -10

    @pytest.mark.asyncio
    async def test_grant_to_missing_user_raises(self, db_session):
        with pytest.raises(NotFoundError):
            await grant_points(db_session, 9999, 10, "ghost")

    @pytest.mark.asyncio
    async def test_empty_reason_rejected(self, db_session, member_user):
        with pytest.raises(ValidationError):
            await grant_points(db_session, member_user.id, 10, "   ")

    @pytest.mark.asyncio
    async def test_rollback_discards_entry_and_total(self, db_session, member_user):
        user_id = member_user.id
        await grant_points(db_session, user_id, 30, "not kept")
        await db_session.rollback()

        assert await get_total_points(db_session, user_id) == 0
        assert await ledger_sum(db_session, user_id) == 0

    @pytest.mark.asyncio
    async def test_history_is_newest_first_and_limited(self, db_session, member_user):
        for delta in (1, 2, 3):
            await grant_points(db_session, member_user.id, delta, f"grant {delta}")
            await db_session.commit()

        history = await get_points_history(db_session, member_user.id, limit=2)
        assert [entry.points for entry in history] == [3, 2]
        assert all(isinstance(entry, PointsLog) for entry in history)
