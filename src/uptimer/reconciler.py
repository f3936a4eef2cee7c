"""
Read-time clean-up of test runs abandoned by their client.

A run whose client went away never reports a terminal status. There is no
sweeper job: whenever such a run is read and has been "running" for longer
than its threshold, it is flipped to "abandoned" with a conditional update,
so a completion that landed first always wins.
"""
import logging
from datetime import datetime, timedelta

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer.config import get_settings
from uptimer.models.test_run import TestRun
from uptimer.utils import as_utc, utcnow

logger = logging.getLogger("uptimer.reconciler")
settings = get_settings()

RUNNING = "running"
ABANDONED = "abandoned"


def stale_threshold(test_type: str) -> timedelta:
    if test_type == "browser":
        return timedelta(minutes=settings.browser_test_stale_minutes)
    return timedelta(minutes=settings.load_test_stale_minutes)


async def mark_abandoned(db: AsyncSession, run_id: str, now: datetime | None = None) -> bool:
    """Flip a run to abandoned if it is still running. Returns True if this call flipped it."""
    result = await db.execute(
        update(TestRun)
        .where(TestRun.id == run_id, TestRun.status == RUNNING)
        .values(status=ABANDONED, updated_at=now or utcnow())
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount == 1


async def reconcile_stale_run(
    db: AsyncSession, run: TestRun, now: datetime | None = None
) -> TestRun:
    if run.status != RUNNING:
        return run

    now = now or utcnow()
    if now - as_utc(run.created_at) <= stale_threshold(run.test_type):
        return run

    if await mark_abandoned(db, run.id, now):
        logger.info(f"Test run {run.id} ({run.test_type}) marked abandoned after going stale")
    await db.refresh(run)
    return run
