from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from uptimer import notifications
from uptimer.notifications import (
    NewIncidentTask,
    ResolvedTask,
    build_incident_message,
    build_resolved_message,
    format_cause,
    send_incident_email,
)

STARTED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _new_task(owner_id, resource_id, kind="monitor", cause="timeout", http_status=None):
    return NewIncidentTask(
        incident_id="inc-1",
        owner_id=owner_id,
        kind=kind,
        resource_id=resource_id,
        cause=cause,
        http_status=http_status,
        started_at=STARTED,
    )


def _resolved_task(owner_id, resource_id):
    return ResolvedTask(
        incident_id="inc-1",
        owner_id=owner_id,
        kind="monitor",
        resource_id=resource_id,
        cause="timeout",
        http_status=None,
        started_at=STARTED,
        resolved_at=STARTED + timedelta(hours=1, minutes=5),
    )


@pytest.fixture
def smtp_configured(monkeypatch):
    monkeypatch.setattr(notifications.settings, "smtp_username", "mailer")
    monkeypatch.setattr(notifications.settings, "smtp_password", "secret")


def test_format_cause():
    assert format_cause("timeout", None) == "Connection Timeout"
    assert format_cause("http_error", 502) == "HTTP 502 Error"
    assert format_cause(None, None) == "Unknown Error"
    assert format_cause("tls_expired", None) == "tls_expired"


def test_incident_message():
    msg = build_incident_message(
        _new_task("u1", "m1", cause="http_error", http_status=500), "owner@example.com", "API"
    )
    assert msg["Subject"] == "[Uptimer] Incident Alert: API"
    assert msg["To"] == "owner@example.com"
    text = msg.get_payload()[0].get_payload()
    assert "HTTP 500 Error" in text
    assert "/incidents/inc-1" in text


def test_incident_message_for_cron_job():
    msg = build_incident_message(_new_task("u1", "c1", kind="cron"), "owner@example.com", "Backup")
    assert "cron job 'Backup'" in msg.get_payload()[0].get_payload()


def test_resolved_message_includes_downtime():
    msg = build_resolved_message(_resolved_task("u1", "m1"), "owner@example.com", "API")
    assert msg["Subject"] == "[Uptimer] Incident Resolved: API"
    assert "Downtime: 1h 5m" in msg.get_payload()[0].get_payload()


@pytest.mark.asyncio
async def test_send_new_incident_email(make_user, make_monitor, smtp_configured):
    owner = await make_user()
    monitor = await make_monitor(owner)

    with patch("uptimer.notifications.aiosmtplib.send", new_callable=AsyncMock) as send:
        sent = await send_incident_email(_new_task(owner.id, monitor.id))

    assert sent is True
    send.assert_awaited_once()
    msg = send.call_args.args[0]
    assert msg["To"] == "owner@example.com"
    assert msg["Subject"] == "[Uptimer] Incident Alert: API"
    assert send.call_args.kwargs["username"] == "mailer"


@pytest.mark.asyncio
async def test_send_resolved_email(make_user, make_monitor, smtp_configured):
    owner = await make_user()
    monitor = await make_monitor(owner)

    with patch("uptimer.notifications.aiosmtplib.send", new_callable=AsyncMock) as send:
        sent = await send_incident_email(_resolved_task(owner.id, monitor.id))

    assert sent is True
    assert send.call_args.args[0]["Subject"] == "[Uptimer] Incident Resolved: API"


@pytest.mark.asyncio
async def test_no_smtp_credentials_only_logs(make_user, make_monitor):
    owner = await make_user()
    monitor = await make_monitor(owner)

    with patch("uptimer.notifications.aiosmtplib.send", new_callable=AsyncMock) as send:
        sent = await send_incident_email(_new_task(owner.id, monitor.id))

    assert sent is False
    send.assert_not_awaited()


@pytest.mark.asyncio
async def test_missing_owner_is_skipped(smtp_configured):
    with patch("uptimer.notifications.aiosmtplib.send", new_callable=AsyncMock) as send:
        assert await send_incident_email(_new_task(None, "m1")) is False
        assert await send_incident_email(_new_task("no-such-user", "m1")) is False
    send.assert_not_awaited()


@pytest.mark.asyncio
async def test_deleted_resource_still_notifies(make_user, smtp_configured):
    owner = await make_user()

    with patch("uptimer.notifications.aiosmtplib.send", new_callable=AsyncMock) as send:
        sent = await send_incident_email(_new_task(owner.id, "gone"))

    assert sent is True
    assert send.call_args.args[0]["Subject"] == "[Uptimer] Incident Alert: Unknown"


@pytest.mark.asyncio
async def test_transport_errors_propagate(make_user, make_monitor, smtp_configured):
    owner = await make_user()
    monitor = await make_monitor(owner)

    with patch(
        "uptimer.notifications.aiosmtplib.send",
        new_callable=AsyncMock,
        side_effect=aiosmtplib.SMTPException("connection refused"),
    ):
        with pytest.raises(aiosmtplib.SMTPException):
            await send_incident_email(_new_task(owner.id, monitor.id))


def test_resource_name_is_escaped_in_html():
    name = '<img src=x onerror="alert(1)">'
    for msg in (
        build_incident_message(_new_task("u1", "m1"), "owner@example.com", name),
        build_resolved_message(_resolved_task("u1", "m1"), "owner@example.com", name),
    ):
        html_part = msg.get_payload()[1].get_payload()
        assert "<img" not in html_part
        assert "&lt;img src=x" in html_part
