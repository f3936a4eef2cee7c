import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest
from fastapi import BackgroundTasks

from uptimer import dispatcher as dispatcher_module
from uptimer.dispatcher import SideEffectDispatcher, get_dispatcher, run_task
from uptimer.notifications import NewIncidentTask, ResolvedTask

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _new_task(kind="monitor"):
    return NewIncidentTask(
        incident_id="inc-1",
        owner_id="user-1",
        kind=kind,
        resource_id="res-1",
        cause="timeout",
        http_status=None,
        started_at=NOW,
    )


def _resolved_task():
    return ResolvedTask(
        incident_id="inc-1",
        owner_id="user-1",
        kind="monitor",
        resource_id="res-1",
        cause="timeout",
        http_status=None,
        started_at=NOW,
        resolved_at=NOW,
    )


@pytest.mark.asyncio
async def test_new_monitor_incident_emails_and_screenshots():
    with patch("uptimer.dispatcher.send_incident_email", new_callable=AsyncMock) as send, \
            patch("uptimer.dispatcher.capture_incident_screenshot", new_callable=AsyncMock) as capture:
        await run_task(_new_task())

    send.assert_awaited_once()
    capture.assert_awaited_once_with("inc-1")


@pytest.mark.asyncio
async def test_cron_incident_gets_no_screenshot():
    with patch("uptimer.dispatcher.send_incident_email", new_callable=AsyncMock) as send, \
            patch("uptimer.dispatcher.capture_incident_screenshot", new_callable=AsyncMock) as capture:
        await run_task(_new_task(kind="cron"))

    send.assert_awaited_once()
    capture.assert_not_awaited()


@pytest.mark.asyncio
async def test_resolved_task_only_emails():
    with patch("uptimer.dispatcher.send_incident_email", new_callable=AsyncMock) as send, \
            patch("uptimer.dispatcher.capture_incident_screenshot", new_callable=AsyncMock) as capture:
        await run_task(_resolved_task())

    send.assert_awaited_once()
    capture.assert_not_awaited()


@pytest.mark.asyncio
async def test_email_failure_is_swallowed_and_screenshot_still_runs(caplog):
    with patch(
        "uptimer.dispatcher.send_incident_email",
        new_callable=AsyncMock,
        side_effect=aiosmtplib.SMTPException("connection refused"),
    ), patch("uptimer.dispatcher.capture_incident_screenshot", new_callable=AsyncMock) as capture:
        await run_task(_new_task())

    capture.assert_awaited_once()
    assert "connection refused" in caplog.text


@pytest.mark.asyncio
async def test_screenshot_crash_is_swallowed(caplog):
    with patch("uptimer.dispatcher.send_incident_email", new_callable=AsyncMock), \
            patch(
                "uptimer.dispatcher.capture_incident_screenshot",
                new_callable=AsyncMock,
                side_effect=RuntimeError("boom"),
            ):
        await run_task(_new_task())

    assert "Screenshot task crashed" in caplog.text


def test_schedule_on_background_tasks():
    background_tasks = BackgroundTasks()
    get_dispatcher(background_tasks).schedule(_new_task())

    assert len(background_tasks.tasks) == 1
    assert background_tasks.tasks[0].func is run_task


@pytest.mark.asyncio
async def test_schedule_detached():
    with patch("uptimer.dispatcher.run_task", new_callable=AsyncMock) as run:
        SideEffectDispatcher().schedule(_resolved_task())
        assert len(dispatcher_module._detached_tasks) == 1
        await asyncio.gather(*list(dispatcher_module._detached_tasks))

    run.assert_awaited_once()
    await asyncio.sleep(0)
    assert not dispatcher_module._detached_tasks
