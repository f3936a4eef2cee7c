"""Endpoints for the probing engine. Callers are trusted, there is no end-user identity."""
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer import lifecycle
from uptimer.auth import require_internal_token
from uptimer.database import get_db
from uptimer.dispatcher import SideEffectDispatcher, get_dispatcher
from uptimer.errors import InvalidState
from uptimer.ownership import ResourceKind, load_owned_incident
from uptimer.schemas import (
    IncidentResponse,
    InternalIncidentCreate,
    ResourceRef,
    ScreenshotResponse,
)
from uptimer.screenshots import capture_incident_screenshot

logger = logging.getLogger("uptimer.internal")

router = APIRouter(
    prefix="/api/internal/incidents",
    tags=["internal"],
    dependencies=[Depends(require_internal_token)],
)


@router.post("", response_model=IncidentResponse, status_code=201)
async def open_incident(
    body: InternalIncidentCreate,
    db: AsyncSession = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
):
    incident = await lifecycle.open_incident(
        db,
        body.kind,
        body.resource_id,
        owner_id=body.owner_id,
        cause=body.cause,
        http_status=body.http_status,
        dispatcher=dispatcher,
    )
    return IncidentResponse.model_validate(incident)


@router.post("/resolve", response_model=IncidentResponse)
async def resolve_incident(
    body: ResourceRef,
    db: AsyncSession = Depends(get_db),
    dispatcher: SideEffectDispatcher = Depends(get_dispatcher),
):
    incident = await lifecycle.resolve_open_incident(
        db, body.kind, body.resource_id, dispatcher=dispatcher
    )
    return IncidentResponse.model_validate(incident)


@router.post("/{incident_id}/screenshot", response_model=ScreenshotResponse)
async def capture_screenshot(incident_id: str, db: AsyncSession = Depends(get_db)):
    incident = await load_owned_incident(db, incident_id, None)
    if incident.kind != ResourceKind.monitor.value:
        raise InvalidState("Screenshots are only available for monitor incidents")
    # Release the request's connection before the browser runs
    await db.close()
    reference = await capture_incident_screenshot(incident_id)
    return ScreenshotResponse(success=reference is not None, screenshot_ref=reference)
