"""Post-commit side effects that are reported, not rolled back.

Once a mutation's primary write is committed, follow-up writes (points,
badges, activity) run one at a time through ``run_secondary``. A failing
step is rolled back on its own, logged, and recorded as a warning on the
result; the primary write stays committed. Steps are not retried.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from taskflow.exceptions import TaskflowError
from taskflow.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class MutationResult:
    entity: Any = None
    warnings: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        return bool(self.warnings)


async def run_secondary(
    db: AsyncSession,
    result: MutationResult,
    step: str,
    action: Callable[[], Awaitable[T]],
) -> T | None:
    """Run and commit one secondary step. Returns None if it failed."""
    try:
        value = await action()
        await db.commit()
        return value
    except (SQLAlchemyError, TaskflowError) as e:
        await db.rollback()
        logger.error("secondary_effect_failed", step=step, error=str(e))
        result.warnings.append(f"{step} failed: {getattr(e, 'message', None) or type(e).__name__}")
        return None
