"""Test data factories."""

from tests.factories.task_factory import TaskFactory
from tests.factories.user_factory import UserFactory, auth_headers

__all__ = ["TaskFactory", "UserFactory", "auth_headers"]
