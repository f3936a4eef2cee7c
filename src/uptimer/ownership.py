"""
Resource ownership resolution for the two monitored resource kinds.

Incidents point at either a monitor or a cron job through (kind, resource_id).
Everything that needs to know who owns an incident goes through this module,
which is the only place that branches on the kind. Nothing is cached: a
resource can be deleted or change hands between two calls.
"""
from enum import Enum

from sqlalchemy import and_, case, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer.errors import NotFound
from uptimer.models.cron_job import CronJob
from uptimer.models.incident import Incident
from uptimer.models.monitor import Monitor


class ResourceKind(str, Enum):
    monitor = "monitor"
    cron = "cron"


_RESOURCE_MODELS = {
    ResourceKind.monitor: Monitor,
    ResourceKind.cron: CronJob,
}

_NOT_FOUND_DETAIL = {
    ResourceKind.monitor: "Monitor not found",
    ResourceKind.cron: "Cron job not found",
}


def _model_for(kind: ResourceKind | str):
    try:
        return _RESOURCE_MODELS[ResourceKind(kind)]
    except ValueError:
        raise NotFound(f"Unknown resource kind: {kind}")


async def resolve_resource(
    db: AsyncSession, kind: ResourceKind | str, resource_id: str
) -> Monitor | CronJob:
    """Load the monitor or cron job an incident refers to."""
    model = _model_for(kind)
    result = await db.execute(select(model).where(model.id == resource_id))
    resource = result.scalar_one_or_none()
    if resource is None:
        raise NotFound(_NOT_FOUND_DETAIL[ResourceKind(kind)])
    return resource


async def resolve_owner(db: AsyncSession, kind: ResourceKind | str, resource_id: str) -> str:
    """Return the id of the account owning the resource."""
    model = _model_for(kind)
    result = await db.execute(select(model.user_id).where(model.id == resource_id))
    owner_id = result.scalar_one_or_none()
    if owner_id is None:
        raise NotFound(_NOT_FOUND_DETAIL[ResourceKind(kind)])
    return owner_id


async def ensure_owner(
    db: AsyncSession, kind: ResourceKind | str, resource_id: str, actor_id: str
) -> None:
    """Raise NotFound unless actor_id owns the resource."""
    owner_id = await resolve_owner(db, kind, resource_id)
    if owner_id != actor_id:
        raise NotFound(_NOT_FOUND_DETAIL[ResourceKind(kind)])


def owned_by(actor_id: str):
    """SQL clause matching incidents whose resource belongs to actor_id."""
    return or_(
        and_(
            Incident.kind == ResourceKind.monitor.value,
            Incident.resource_id.in_(select(Monitor.id).where(Monitor.user_id == actor_id)),
        ),
        and_(
            Incident.kind == ResourceKind.cron.value,
            Incident.resource_id.in_(select(CronJob.id).where(CronJob.user_id == actor_id)),
        ),
    )


async def load_owned_incident(
    db: AsyncSession, incident_id: str, actor_id: str | None
) -> Incident:
    """
    Load an incident, checking the caller owns its resource.

    actor_id None means a trusted internal caller and skips the check.
    """
    result = await db.execute(select(Incident).where(Incident.id == incident_id))
    incident = result.scalar_one_or_none()
    if incident is None:
        raise NotFound("Incident not found")
    if actor_id is not None:
        try:
            await ensure_owner(db, incident.kind, incident.resource_id, actor_id)
        except NotFound:
            raise NotFound("Incident not found")
    return incident


def select_with_source():
    """Select incidents together with the name and URL of their resource."""
    source_name = case(
        (Incident.kind == ResourceKind.monitor.value, Monitor.name),
        else_=CronJob.name,
    ).label("source_name")
    source_url = case(
        (Incident.kind == ResourceKind.monitor.value, Monitor.url),
        else_=CronJob.url,
    ).label("source_url")
    return (
        select(Incident, source_name, source_url)
        .outerjoin(
            Monitor,
            and_(Incident.kind == ResourceKind.monitor.value, Incident.resource_id == Monitor.id),
        )
        .outerjoin(
            CronJob,
            and_(Incident.kind == ResourceKind.cron.value, Incident.resource_id == CronJob.id),
        )
    )
