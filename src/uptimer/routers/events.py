from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer import timeline
from uptimer.auth import get_current_user_api
from uptimer.database import get_db
from uptimer.models.user import User
from uptimer.schemas import CommentRequest, EventResponse

router = APIRouter(prefix="/api/incidents/{incident_id}/events", tags=["incident events"])


@router.get("", response_model=list[EventResponse])
async def list_events(
    incident_id: str,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    events = await timeline.list_events(db, incident_id, user.id)
    return [EventResponse.model_validate(e) for e in events]


@router.post("", response_model=EventResponse, status_code=201)
async def add_comment(
    incident_id: str,
    body: CommentRequest,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    event = await timeline.add_comment(db, incident_id, user.id, body.content)
    return EventResponse.model_validate(event)


@router.patch("/{event_id}", response_model=EventResponse)
async def edit_comment(
    incident_id: str,
    event_id: str,
    body: CommentRequest,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    event = await timeline.edit_comment(
        db, event_id, user.id, body.content, incident_id=incident_id
    )
    return EventResponse.model_validate(event)


@router.delete("/{event_id}", status_code=204)
async def delete_comment(
    incident_id: str,
    event_id: str,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    await timeline.delete_comment(db, event_id, user.id, incident_id=incident_id)
