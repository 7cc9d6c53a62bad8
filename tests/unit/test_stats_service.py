"""Tests for dashboard stats and ranking."""

from datetime import timedelta

import pytest

from taskflow.datetime_utils import utcnow
from taskflow.services.points_service import grant_points
from taskflow.services.stats_service import (
    completion_rate,
    dashboard_stats,
    get_ranking,
    recent_completions,
)
from tests.factories import TaskFactory, UserFactory


class TestCompletionRate:
    def test_zero_tasks(self):
        assert completion_rate(0, 0) == 0

    def test_rounds(self):
        assert completion_rate(1, 3) == 33
        assert completion_rate(2, 3) == 67

    def test_halves_round_up(self):
        assert completion_rate(1, 8) == 13
        assert completion_rate(5, 8) == 63
        assert completion_rate(1, 200) == 1
        assert completion_rate(8, 8) == 100


class TestDashboardStats:
    """Tests for dashboard_stats."""

    @pytest.mark.asyncio
    async def test_empty_board(self, db_session):
        stats = await dashboard_stats(db_session)
        assert stats == {
            "total": 0,
            "pending": 0,
            "in_progress": 0,
            "completed": 0,
            "overdue": 0,
            "completion_rate": 0,
        }

    @pytest.mark.asyncio
    async def test_counts_and_overdue(self, db_session, admin_user, member_user):
        now = utcnow()
        yesterday = now - timedelta(days=1)
        await TaskFactory.create(db_session, admin_user.id, due_date=yesterday)
        await TaskFactory.create(
            db_session, admin_user.id, status="in_progress", due_date=now + timedelta(days=3)
        )
        await TaskFactory.create(
            db_session, admin_user.id,
            status="completed",
            due_date=yesterday,
            completed_at=now,
            assignee_id=member_user.id,
        )
        await TaskFactory.create(db_session, admin_user.id, assignee_id=member_user.id)

        stats = await dashboard_stats(db_session, now=now)
        assert stats["total"] == 4
        assert stats["pending"] == 2
        assert stats["in_progress"] == 1
        assert stats["completed"] == 1
        # Completed tasks are never overdue.
        assert stats["overdue"] == 1
        assert stats["completion_rate"] == 25

        mine = await dashboard_stats(db_session, user_id=member_user.id, now=now)
        assert mine["total"] == 2
        assert mine["completion_rate"] == 50

    @pytest.mark.asyncio
    async def test_completion_rate_half_rounds_up(self, db_session, admin_user):
        await TaskFactory.create(
            db_session, admin_user.id, status="completed", completed_at=utcnow()
        )
        for _ in range(7):
            await TaskFactory.create(db_session, admin_user.id)

        stats = await dashboard_stats(db_session)
        assert stats["total"] == 8
        assert stats["completion_rate"] == 13


class TestRanking:
    """Tests for get_ranking."""

    @pytest.mark.asyncio
    async def test_ordered_by_points_then_id(self, db_session, admin_user):
        alice = await UserFactory.create(db_session, name="Alice")
        bob = await UserFactory.create(db_session, name="Bob")
        carol = await UserFactory.create(db_session, name="Carol")
        for user, points in ((alice, 40), (bob, 90), (carol, 40)):
            await grant_points(db_session, user.id, points, "seed")
        await db_session.commit()

        ranking = await get_ranking(db_session)
        ids = [row["user_id"] for row in ranking]
        assert ids[:3] == [bob.id, alice.id, carol.id]
        assert ids[-1] == admin_user.id

    @pytest.mark.asyncio
    async def test_task_counters(self, db_session, admin_user, member_user):
        now = utcnow()
        await TaskFactory.create(
            db_session, admin_user.id, status="completed", assignee_id=member_user.id,
            due_date=now + timedelta(days=1), completed_at=now,
        )
        await TaskFactory.create(
            db_session, admin_user.id, status="completed", assignee_id=member_user.id,
            due_date=now - timedelta(days=1), completed_at=now,
        )
        await TaskFactory.create(db_session, admin_user.id, assignee_id=member_user.id)

        rows = {row["user_id"]: row for row in await get_ranking(db_session)}
        mine = rows[member_user.id]
        assert mine["completed_tasks"] == 2
        assert mine["on_time_tasks"] == 1
        assert mine["total_assigned"] == 3
        assert rows[admin_user.id]["total_assigned"] == 0


class TestRecentCompletions:
    @pytest.mark.asyncio
    async def test_window_and_order(self, db_session, admin_user):
        now = utcnow()
        old = await TaskFactory.create(
            db_session, admin_user.id, status="completed", completed_at=now - timedelta(days=40)
        )
        later = await TaskFactory.create(
            db_session, admin_user.id, status="completed", completed_at=now - timedelta(days=1)
        )
        earlier = await TaskFactory.create(
            db_session, admin_user.id, status="completed", completed_at=now - timedelta(days=5)
        )

        rows = await recent_completions(db_session, days=30, now=now)
        assert [r["task_id"] for r in rows] == [earlier.id, later.id]
        assert old.id not in {r["task_id"] for r in rows}
