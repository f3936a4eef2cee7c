"""
Incident email notifications.

Tasks carry everything needed to describe the incident, so sending only has
to look up the owner's address and the resource name.
"""
import html
import logging
from dataclasses import dataclass
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import aiosmtplib
from sqlalchemy import select

from uptimer.config import get_settings
from uptimer.database import get_session_factory
from uptimer.errors import NotFound
from uptimer.models.incident import Incident
from uptimer.models.user import User
from uptimer.ownership import ResourceKind, resolve_resource
from uptimer.utils import as_utc, format_duration

logger = logging.getLogger("uptimer.notifications")
settings = get_settings()


@dataclass(frozen=True)
class NewIncidentTask:
    incident_id: str
    owner_id: str | None
    kind: str
    resource_id: str
    cause: str | None
    http_status: int | None
    started_at: datetime

    @classmethod
    def from_incident(cls, incident: Incident) -> "NewIncidentTask":
        return cls(
            incident_id=incident.id,
            owner_id=incident.owner_id,
            kind=incident.kind,
            resource_id=incident.resource_id,
            cause=incident.cause,
            http_status=incident.http_status,
            started_at=as_utc(incident.started_at),
        )


@dataclass(frozen=True)
class ResolvedTask:
    incident_id: str
    owner_id: str | None
    kind: str
    resource_id: str
    cause: str | None
    http_status: int | None
    started_at: datetime
    resolved_at: datetime

    @classmethod
    def from_incident(cls, incident: Incident) -> "ResolvedTask":
        return cls(
            incident_id=incident.id,
            owner_id=incident.owner_id,
            kind=incident.kind,
            resource_id=incident.resource_id,
            cause=incident.cause,
            http_status=incident.http_status,
            started_at=as_utc(incident.started_at),
            resolved_at=as_utc(incident.resolved_at),
        )


NotificationTask = NewIncidentTask | ResolvedTask

_CAUSE_LABELS = {
    "timeout": "Connection Timeout",
    "keyword_missing": "Keyword Not Found",
    "unknown": "Unknown Error",
}


def format_cause(cause: str | None, http_status: int | None) -> str:
    if cause == "http_error" and http_status:
        return f"HTTP {http_status} Error"
    if not cause:
        return "Unknown Error"
    return _CAUSE_LABELS.get(cause, cause)


def _kind_label(kind: str) -> str:
    return "Monitor" if kind == ResourceKind.monitor.value else "Cron Job"


def incident_url(incident_id: str) -> str:
    return f"{settings.base_url}/incidents/{incident_id}"


def _wrap_html(color: str, heading: str, intro: str, rows: list[tuple[str, str]], incident_id: str) -> str:
    table = "".join(
        f'<tr><td style="padding: 8px 0; color: #6b7280; font-size: 14px;">{label}</td>'
        f'<td style="padding: 8px 0; font-size: 14px;">{value}</td></tr>'
        for label, value in rows
    )
    return f"""
    <div style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; max-width: 600px; margin: 0 auto;">
        <div style="background: {color}; color: white; padding: 20px 24px; border-radius: 12px 12px 0 0;">
            <h2 style="margin: 0; font-size: 18px;">{heading}</h2>
        </div>
        <div style="background: white; padding: 24px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 12px 12px;">
            <p style="margin: 0 0 16px; font-size: 15px; color: #374151;">{intro}</p>
            <table style="width: 100%; border-collapse: collapse; margin-bottom: 16px;">{table}</table>
            <a href="{incident_url(incident_id)}" style="color: {color}; font-size: 14px;">View incident details</a>
        </div>
    </div>
    """


def build_incident_message(task: NewIncidentTask, to_email: str, source_name: str) -> MIMEMultipart:
    kind_label = _kind_label(task.kind)
    cause = format_cause(task.cause, task.http_status)
    started = task.started_at.strftime("%Y-%m-%d %H:%M:%S UTC")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = f"[{settings.app_name}] Incident Alert: {source_name}"
    msg["From"] = settings.smtp_from_email
    msg["To"] = to_email

    rows = [("Type", kind_label), ("Cause", cause)]
    if task.http_status:
        rows.append(("HTTP Status", str(task.http_status)))
    rows.append(("Time", started))

    text_body = (
        f"A new incident has been detected for your {kind_label.lower()} '{source_name}'.\n\n"
        + "".join(f"{label}: {value}\n" for label, value in rows)
        + f"\nDetails: {incident_url(task.incident_id)}\n\n"
        f"We'll notify you when it recovers.\n\n"
        f"- {settings.app_name}"
    )
    html_body = _wrap_html(
        "#ef4444",
        "Incident Alert",
        f"A new incident has been detected for your {kind_label.lower()} <strong>{html.escape(source_name)}</strong>.",
        rows,
        task.incident_id,
    )

    msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))
    return msg


def build_resolved_message(task: ResolvedTask, to_email: str, source_name: str) -> MIMEMultipart:
    kind_label = _kind_label(task.kind)
    downtime = format_duration(task.resolved_at - task.started_at)
    resolved = task.resolved_at.strftime("%Y-%m-%d %H:%M:%S UTC")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = f"[{settings.app_name}] Incident Resolved: {source_name}"
    msg["From"] = settings.smtp_from_email
    msg["To"] = to_email

    rows = [("Type", kind_label), ("Resolved at", resolved), ("Downtime", downtime)]

    text_body = (
        f"The incident on your {kind_label.lower()} '{source_name}' has been resolved.\n\n"
        + "".join(f"{label}: {value}\n" for label, value in rows)
        + f"\nDetails: {incident_url(task.incident_id)}\n\n"
        f"- {settings.app_name}"
    )
    html_body = _wrap_html(
        "#10b981",
        "Incident Resolved",
        f"The incident on your {kind_label.lower()} <strong>{html.escape(source_name)}</strong> has been resolved.",
        rows,
        task.incident_id,
    )

    msg.attach(MIMEText(text_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))
    return msg


async def _load_recipient(task: NotificationTask) -> tuple[str | None, str]:
    async with get_session_factory()() as db:
        result = await db.execute(select(User.email).where(User.id == task.owner_id))
        email = result.scalar_one_or_none()
        try:
            resource = await resolve_resource(db, task.kind, task.resource_id)
            source_name = resource.name
        except NotFound:
            source_name = "Unknown"
    return email, source_name


async def send_incident_email(task: NotificationTask) -> bool:
    """
    Email the incident owner about a new or resolved incident.

    Returns True only when a message was handed to the SMTP server. Transport
    errors propagate to the caller.
    """
    if task.owner_id is None:
        logger.warning(f"Incident {task.incident_id} has no owner, skipping email")
        return False

    to_email, source_name = await _load_recipient(task)
    if not to_email:
        logger.warning(f"No email address for user {task.owner_id}, skipping email")
        return False

    if isinstance(task, ResolvedTask):
        msg = build_resolved_message(task, to_email, source_name)
        logger.info(
            f"RESOLVED -> {to_email}: {source_name} recovered "
            f"after {format_duration(task.resolved_at - task.started_at)}"
        )
    else:
        msg = build_incident_message(task, to_email, source_name)
        logger.info(
            f"ALERT -> {to_email}: {source_name} incident opened. "
            f"Cause: {format_cause(task.cause, task.http_status)}"
        )

    # Only attempt SMTP if credentials are configured
    if not (settings.smtp_username and settings.smtp_password):
        return False

    await aiosmtplib.send(
        msg,
        hostname=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
    )
    logger.info(f"Email sent to {to_email} for incident {task.incident_id}")
    return True
