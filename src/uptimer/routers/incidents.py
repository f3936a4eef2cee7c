from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer import lifecycle, timeline
from uptimer.auth import get_current_user_api
from uptimer.database import get_db
from uptimer.dispatcher import SideEffectDispatcher, get_dispatcher
from uptimer.models.user import User
from uptimer.schemas import (
    EventResponse,
    IncidentAction,
    IncidentCreate,
    IncidentDetailResponse,
    IncidentListResponse,
    IncidentResponse,
)

router = APIRouter(prefix="/api/incidents", tags=["incidents"])


def incident_response(row) -> IncidentResponse:
    """Build a response from an (incident, source_name, source_url) row."""
    incident, source_name, source_url = row
    return IncidentResponse.model_validate(incident).model_copy(
        update={"source_name": source_name, "source_url": source_url}
    )


@router.get("", response_model=IncidentListResponse)
async def list_incidents(
    status: str = Query("all", pattern="^(all|ongoing|resolved)$"),
    kind: str = Query("all", alias="type", pattern="^(all|monitor|cron)$"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await lifecycle.list_incidents(
        db, user.id, status=status, kind=kind, limit=limit, offset=offset
    )
    return IncidentListResponse(
        incidents=[incident_response(row) for row in rows],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("", response_model=IncidentResponse, status_code=201)
async def create_incident(
    body: IncidentCreate,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
):
    incident = await lifecycle.open_incident(
        db,
        body.kind,
        body.resource_id,
        actor_id=user.id,
        cause=body.cause,
        http_status=body.http_status,
        dispatcher=dispatcher,
    )
    return incident_response(await lifecycle.get_incident(db, incident.id, user.id))


@router.get("/{incident_id}", response_model=IncidentDetailResponse)
async def get_incident(
    incident_id: str,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    row = await lifecycle.get_incident(db, incident_id, user.id)
    events = await timeline.list_events(db, incident_id, user.id)
    return IncidentDetailResponse(
        incident=incident_response(row),
        events=[EventResponse.model_validate(e) for e in events],
    )


@router.patch("/{incident_id}", response_model=IncidentResponse)
async def update_incident(
    incident_id: str,
    body: IncidentAction,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
):
    if body.action == "resolve":
        await lifecycle.resolve_incident(
            db, incident_id, actor_id=user.id, dispatcher=dispatcher
        )
    else:
        await lifecycle.reopen_incident(db, incident_id, actor_id=user.id)
    return incident_response(await lifecycle.get_incident(db, incident_id, user.id))


@router.delete("/{incident_id}", status_code=204)
async def delete_incident(
    incident_id: str,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    await lifecycle.delete_incident(db, incident_id, actor_id=user.id)
