"""
Incident lifecycle: open, resolve, reopen and delete.

An incident is open while resolved_at is NULL and there is at most one open
incident per (kind, resource_id). The existence check before insert gives a
friendly Conflict; the partial unique index on the table closes the race
between two concurrent opens.

actor_id identifies a human caller and is checked against the resource
owner on every call. actor_id None is a trusted internal caller such as the
probing engine.
"""
import logging
from enum import Enum

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer.dispatcher import SideEffectDispatcher
from uptimer.errors import Conflict, InvalidInput, InvalidState, NotFound
from uptimer.models.incident import Incident
from uptimer.models.incident_event import IncidentEvent
from uptimer.notifications import NewIncidentTask, ResolvedTask
from uptimer.ownership import (
    ResourceKind,
    ensure_owner,
    load_owned_incident,
    owned_by,
    resolve_owner,
    select_with_source,
)
from uptimer.timeline import EventType, append_event
from uptimer.utils import utcnow

logger = logging.getLogger("uptimer.lifecycle")

ALREADY_OPEN = "An open incident already exists for this resource"


class ResolveMode(str, Enum):
    manual = "manual"
    auto = "auto"


_RESOLVE_EVENTS = {
    ResolveMode.manual: (EventType.resolved, "Incident resolved manually"),
    ResolveMode.auto: (EventType.auto_resolved, "Resource recovered automatically"),
}


def _parse_kind(kind: ResourceKind | str) -> ResourceKind:
    try:
        return ResourceKind(kind)
    except ValueError:
        raise InvalidInput('kind must be "monitor" or "cron"')


async def find_open_incident(
    db: AsyncSession, kind: ResourceKind | str, resource_id: str
) -> Incident | None:
    result = await db.execute(
        select(Incident).where(
            Incident.kind == _parse_kind(kind).value,
            Incident.resource_id == resource_id,
            Incident.resolved_at.is_(None),
        )
    )
    return result.scalars().first()


async def open_incident(
    db: AsyncSession,
    kind: ResourceKind | str,
    resource_id: str,
    *,
    actor_id: str | None = None,
    owner_id: str | None = None,
    cause: str | None = None,
    http_status: int | None = None,
    dispatcher: SideEffectDispatcher | None = None,
) -> Incident:
    kind = _parse_kind(kind)

    if actor_id is not None:
        await ensure_owner(db, kind, resource_id, actor_id)
        owner_id = actor_id
    elif owner_id is None:
        owner_id = await resolve_owner(db, kind, resource_id)

    if await find_open_incident(db, kind, resource_id) is not None:
        raise Conflict(ALREADY_OPEN)

    now = utcnow()
    incident = Incident(
        kind=kind.value,
        resource_id=resource_id,
        owner_id=owner_id,
        cause=cause,
        http_status=http_status,
        started_at=now,
        last_update_at=now,
        resolved_at=None,
    )
    db.add(incident)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict(ALREADY_OPEN)

    await append_event(
        db, incident, EventType.started, cause or "Incident started", actor_id=actor_id
    )
    await db.commit()
    await db.refresh(incident)

    logger.warning(
        f"INCIDENT: {kind.value} {resource_id} opened "
        f"(cause={cause or 'unknown'}, http_status={http_status})"
    )
    (dispatcher or SideEffectDispatcher()).schedule(NewIncidentTask.from_incident(incident))
    return incident


async def resolve_incident(
    db: AsyncSession,
    incident_id: str,
    *,
    actor_id: str | None = None,
    mode: ResolveMode | str = ResolveMode.manual,
    dispatcher: SideEffectDispatcher | None = None,
) -> Incident:
    mode = ResolveMode(mode)
    incident = await load_owned_incident(db, incident_id, actor_id)
    if incident.resolved_at is not None:
        raise InvalidState("Incident is already resolved")

    now = utcnow()
    incident.resolved_at = now
    incident.last_update_at = now

    event_type, content = _RESOLVE_EVENTS[mode]
    await append_event(db, incident, event_type, content, actor_id=actor_id)
    await db.commit()
    await db.refresh(incident)

    logger.info(f"RESOLVED: {incident.kind} {incident.resource_id} incident {incident.id} ({mode.value})")
    (dispatcher or SideEffectDispatcher()).schedule(ResolvedTask.from_incident(incident))
    return incident


async def resolve_open_incident(
    db: AsyncSession,
    kind: ResourceKind | str,
    resource_id: str,
    *,
    dispatcher: SideEffectDispatcher | None = None,
) -> Incident:
    """Auto-resolve whatever incident is open for a recovered resource."""
    incident = await find_open_incident(db, kind, resource_id)
    if incident is None:
        raise NotFound("No open incident for this resource")
    return await resolve_incident(
        db, incident.id, actor_id=None, mode=ResolveMode.auto, dispatcher=dispatcher
    )


async def reopen_incident(
    db: AsyncSession, incident_id: str, *, actor_id: str | None = None
) -> Incident:
    # No notification is sent when an incident is reopened.
    incident = await load_owned_incident(db, incident_id, actor_id)
    if incident.resolved_at is None:
        raise InvalidState("Incident is already open")

    other = await find_open_incident(db, incident.kind, incident.resource_id)
    if other is not None:
        raise Conflict(ALREADY_OPEN)

    incident.resolved_at = None
    incident.last_update_at = utcnow()
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise Conflict(ALREADY_OPEN)

    await append_event(db, incident, EventType.started, "Incident reopened", actor_id=actor_id)
    await db.commit()
    await db.refresh(incident)
    logger.info(f"REOPENED: {incident.kind} {incident.resource_id} incident {incident.id}")
    return incident


async def delete_incident(db: AsyncSession, incident_id: str, *, actor_id: str | None) -> None:
    incident = await load_owned_incident(db, incident_id, actor_id)
    await db.execute(delete(IncidentEvent).where(IncidentEvent.incident_id == incident.id))
    await db.execute(delete(Incident).where(Incident.id == incident.id))
    await db.commit()
    logger.info(f"Incident {incident_id} deleted")


async def delete_resource_incidents(
    db: AsyncSession, kind: ResourceKind | str, resource_id: str
) -> None:
    """Remove every incident of a resource that is being deleted. The caller commits."""
    incident_ids = select(Incident.id).where(
        Incident.kind == _parse_kind(kind).value, Incident.resource_id == resource_id
    )
    await db.execute(delete(IncidentEvent).where(IncidentEvent.incident_id.in_(incident_ids)))
    await db.execute(
        delete(Incident).where(
            Incident.kind == _parse_kind(kind).value, Incident.resource_id == resource_id
        )
    )


async def get_incident(db: AsyncSession, incident_id: str, actor_id: str | None):
    """Return (incident, source_name, source_url)."""
    await load_owned_incident(db, incident_id, actor_id)
    result = await db.execute(select_with_source().where(Incident.id == incident_id))
    return result.one()


async def list_incidents(
    db: AsyncSession,
    actor_id: str,
    *,
    status: str = "all",
    kind: str = "all",
    limit: int = 50,
    offset: int = 0,
):
    """Return ([(incident, source_name, source_url), ...], total)."""
    conditions = [owned_by(actor_id)]
    if status == "ongoing":
        conditions.append(Incident.resolved_at.is_(None))
    elif status == "resolved":
        conditions.append(Incident.resolved_at.is_not(None))
    if kind and kind != "all":
        conditions.append(Incident.kind == _parse_kind(kind).value)

    result = await db.execute(
        select_with_source()
        .where(*conditions)
        .order_by(Incident.started_at.desc())
        .limit(limit)
        .offset(offset)
    )
    rows = result.all()

    total = await db.scalar(select(func.count(Incident.id)).where(*conditions))
    return rows, total or 0
