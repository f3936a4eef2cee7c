"""
Incident timeline: system lifecycle markers and user comments.

System events are written only by the lifecycle engine through append_event.
Comments can be edited or deleted, and only by the user who wrote them.
"""
import logging
from datetime import timedelta
from enum import Enum

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer.errors import Forbidden, InvalidInput, InvalidState, NotFound
from uptimer.models.incident import Incident
from uptimer.models.incident_event import IncidentEvent
from uptimer.ownership import load_owned_incident
from uptimer.utils import as_utc, utcnow

logger = logging.getLogger("uptimer.timeline")

_PAST_TENSE = {"edit": "edited", "delete": "deleted"}


class EventType(str, Enum):
    started = "started"
    resolved = "resolved"
    auto_resolved = "auto_resolved"
    comment = "comment"


async def _next_timestamp(db: AsyncSession, incident_id: str):
    # Events of one incident get strictly increasing created_at values so
    # their chronological order never depends on clock resolution.
    now = utcnow()
    latest = await db.scalar(
        select(func.max(IncidentEvent.created_at)).where(
            IncidentEvent.incident_id == incident_id
        )
    )
    if latest is not None:
        latest = as_utc(latest)
        if now <= latest:
            now = latest + timedelta(microseconds=1)
    return now


async def append_event(
    db: AsyncSession,
    incident: Incident,
    event_type: EventType,
    content: str,
    actor_id: str | None = None,
) -> IncidentEvent:
    """Add an event to the session. The caller commits."""
    event = IncidentEvent(
        incident_id=incident.id,
        actor_id=actor_id,
        event_type=EventType(event_type).value,
        content=content,
        created_at=await _next_timestamp(db, incident.id),
    )
    db.add(event)
    return event


async def list_events(
    db: AsyncSession, incident_id: str, actor_id: str | None
) -> list[IncidentEvent]:
    """Return the incident's events, newest first."""
    await load_owned_incident(db, incident_id, actor_id)
    result = await db.execute(
        select(IncidentEvent)
        .where(IncidentEvent.incident_id == incident_id)
        .order_by(IncidentEvent.created_at.desc())
    )
    return list(result.scalars().all())


async def add_comment(
    db: AsyncSession, incident_id: str, actor_id: str, content: str
) -> IncidentEvent:
    incident = await load_owned_incident(db, incident_id, actor_id)

    content = (content or "").strip()
    if not content:
        raise InvalidInput("content is required")

    event = await append_event(db, incident, EventType.comment, content, actor_id=actor_id)
    incident.last_update_at = event.created_at
    await db.commit()
    await db.refresh(event)
    return event


async def _load_comment(
    db: AsyncSession, event_id: str, actor_id: str, incident_id: str | None, action: str
) -> IncidentEvent:
    if incident_id is not None:
        await load_owned_incident(db, incident_id, actor_id)

    query = select(IncidentEvent).where(IncidentEvent.id == event_id)
    if incident_id is not None:
        query = query.where(IncidentEvent.incident_id == incident_id)
    result = await db.execute(query)
    event = result.scalar_one_or_none()
    if event is None:
        raise NotFound("Event not found")

    if incident_id is None:
        try:
            await load_owned_incident(db, event.incident_id, actor_id)
        except NotFound:
            raise NotFound("Event not found")

    if event.event_type != EventType.comment.value:
        raise InvalidState(f"Only comments can be {_PAST_TENSE[action]}")
    if event.actor_id != actor_id:
        raise Forbidden(f"You can only {action} your own comments")
    return event


async def edit_comment(
    db: AsyncSession,
    event_id: str,
    actor_id: str,
    content: str,
    incident_id: str | None = None,
) -> IncidentEvent:
    event = await _load_comment(db, event_id, actor_id, incident_id, "edit")

    content = (content or "").strip()
    if not content:
        raise InvalidInput("content is required")

    event.content = content
    event.updated_at = utcnow()
    await db.commit()
    await db.refresh(event)
    return event


async def delete_comment(
    db: AsyncSession, event_id: str, actor_id: str, incident_id: str | None = None
) -> None:
    event = await _load_comment(db, event_id, actor_id, incident_id, "delete")
    await db.execute(delete(IncidentEvent).where(IncidentEvent.id == event.id))
    await db.commit()
    logger.info(f"Comment {event.id} deleted from incident {event.incident_id}")
