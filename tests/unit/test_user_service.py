"""Tests for account management."""

import pytest
from sqlalchemy import func, select

from taskflow.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from taskflow.models import ActivityLog, PointsLog, Task, TaskComment, User, UserBadge
from taskflow.services import task_service, user_service
from taskflow.services.gamification_service import adjust_points
from tests.factories import TaskFactory, UserFactory


async def _actions(db, entity_type="user"):
    result = await db.execute(
        select(ActivityLog.action).where(ActivityLog.entity_type == entity_type)
    )
    return list(result.scalars().all())


class TestCreateUser:
    @pytest.mark.asyncio
    async def test_creates_and_logs(self, db_session, admin_actor):
        result = await user_service.create_user(
            db_session, admin_actor, name=" Nina ", email="Nina@Example.com", password="pw123456"
        )

        user = result.entity
        assert result.warnings == []
        assert user.name == "Nina"
        assert user.email == "nina@example.com"
        assert user.total_points == 0
        assert user.password_hash and user.password_hash != "pw123456"
        assert await _actions(db_session) == ["created"]

    @pytest.mark.asyncio
    async def test_rejects_bad_role(self, db_session, admin_actor):
        with pytest.raises(ValidationError):
            await user_service.create_user(
                db_session, admin_actor, name="X", email="x@example.com", role="owner"
            )


class TestUpdateUser:
    """Tests for admin edits and self-service profile edits."""

    @pytest.mark.asyncio
    async def test_admin_edits_and_logs(self, db_session, admin_actor, member_user):
        result = await user_service.update_user(
            db_session, admin_actor, member_user.id,
            {"name": "Maya M.", "email": "MAYA@example.com", "role": "admin"},
        )

        user = result.entity
        assert user.name == "Maya M."
        assert user.email == "maya@example.com"
        assert user.role == "admin"
        entries = (await db_session.execute(select(ActivityLog))).scalars().all()
        assert [(e.action, e.entity_id) for e in entries] == [("updated", user.id)]
        assert entries[0].details == 'Updated user "Maya M."'

    @pytest.mark.asyncio
    async def test_email_taken_by_someone_else(self, db_session, admin_actor, member_user):
        other = await UserFactory.create(db_session, email="taken@example.com")

        with pytest.raises(ConflictError):
            await user_service.update_user(
                db_session, admin_actor, member_user.id, {"email": other.email}
            )

        # Keeping one's own email is not a conflict.
        result = await user_service.update_user(
            db_session, admin_actor, other.id, {"email": "taken@example.com", "phone": "119"}
        )
        assert result.entity.phone == "119"

    @pytest.mark.asyncio
    async def test_points_are_not_editable(self, db_session, admin_actor, member_user):
        with pytest.raises(ValidationError):
            await user_service.update_user(
                db_session, admin_actor, member_user.id, {"total_points": 999}
            )

    @pytest.mark.asyncio
    async def test_members_cannot_edit_others(self, db_session, member_actor, other_user):
        with pytest.raises(ForbiddenError):
            await user_service.update_user(db_session, member_actor, other_user.id, {"name": "x"})

    @pytest.mark.asyncio
    async def test_profile_edit_is_self_only_and_unlogged(self, db_session, member_actor):
        user = await user_service.update_profile(
            db_session, member_actor, {"name": "Maya", "phone": "+55 11 98888-7777"}
        )

        assert user.id == member_actor.user_id
        assert user.name == "Maya"
        assert user.phone == "+55 11 98888-7777"
        assert await _actions(db_session) == []

    @pytest.mark.asyncio
    async def test_profile_cannot_change_role(self, db_session, member_actor):
        with pytest.raises(ValidationError):
            await user_service.update_profile(db_session, member_actor, {"role": "admin"})


class TestDeleteUser:
    """Tests for delete_user."""

    @pytest.mark.asyncio
    async def test_detaches_tasks_and_drops_owned_rows(
        self, seeded_db, admin_user, admin_actor, member_user, member_actor
    ):
        member_id = member_user.id
        task = await TaskFactory.create(seeded_db, admin_user.id, assignee_id=member_id)
        own = await TaskFactory.create(seeded_db, member_id)
        await task_service.update_task_status(seeded_db, member_actor, task.id, "completed")
        await task_service.add_comment(seeded_db, member_actor, task.id, "done!")
        await adjust_points(seeded_db, admin_actor, member_id, 5, "thanks")

        result = await user_service.delete_user(seeded_db, admin_actor, member_id)

        assert result.warnings == []
        assert await seeded_db.get(User, member_id) is None
        assigned = await seeded_db.get(Task, task.id)
        await seeded_db.refresh(assigned)
        assert assigned.assignee_id is None
        assert assigned.status == "completed"
        created = await seeded_db.get(Task, own.id)
        await seeded_db.refresh(created)
        assert created.created_by_id is None
        for model in (TaskComment, UserBadge, PointsLog):
            remaining = (
                await seeded_db.execute(
                    select(func.count()).select_from(model).where(model.user_id == member_id)
                )
            ).scalar()
            assert remaining == 0

        # History written by the deleted user stays.
        status_changes = (
            await seeded_db.execute(
                select(ActivityLog).where(
                    ActivityLog.user_id == member_id, ActivityLog.action == "status_changed"
                )
            )
        ).scalars().all()
        assert len(status_changes) == 1
        assert "deleted" in await _actions(seeded_db)

    @pytest.mark.asyncio
    async def test_admin_cannot_delete_self(self, db_session, admin_user, admin_actor):
        with pytest.raises(ValidationError):
            await user_service.delete_user(db_session, admin_actor, admin_user.id)
        assert await db_session.get(User, admin_user.id) is not None

    @pytest.mark.asyncio
    async def test_requires_admin(self, db_session, member_actor, other_user):
        with pytest.raises(ForbiddenError):
            await user_service.delete_user(db_session, member_actor, other_user.id)

    @pytest.mark.asyncio
    async def test_unknown_user(self, db_session, admin_actor):
        with pytest.raises(NotFoundError):
            await user_service.delete_user(db_session, admin_actor, 9999)
