from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer.auth import get_current_user_api
from uptimer.database import get_db
from uptimer.lifecycle import delete_resource_incidents
from uptimer.models.monitor import Monitor
from uptimer.models.user import User
from uptimer.ownership import ResourceKind
from uptimer.schemas import MonitorCreate, MonitorResponse

router = APIRouter(prefix="/api/monitors", tags=["monitors"])


async def _get_owned_monitor(db: AsyncSession, monitor_id: str, user: User) -> Monitor:
    result = await db.execute(
        select(Monitor).where(Monitor.id == monitor_id, Monitor.user_id == user.id)
    )
    monitor = result.scalar_one_or_none()
    if not monitor:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Monitor not found",
        )
    return monitor


@router.get("", response_model=list[MonitorResponse])
async def list_monitors(
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Monitor)
        .where(Monitor.user_id == user.id)
        .order_by(Monitor.created_at.desc())
    )
    monitors = result.scalars().all()
    return [MonitorResponse.model_validate(m) for m in monitors]


@router.post("", response_model=MonitorResponse, status_code=201)
async def create_monitor(
    body: MonitorCreate,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    monitor = Monitor(
        user_id=user.id,
        name=body.name,
        url=body.url,
        method=body.method,
        check_interval=body.check_interval,
        timeout=body.timeout,
        expected_status_code=body.expected_status_code,
    )
    db.add(monitor)
    await db.commit()
    await db.refresh(monitor)
    return MonitorResponse.model_validate(monitor)


@router.get("/{monitor_id}", response_model=MonitorResponse)
async def get_monitor(
    monitor_id: str,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    monitor = await _get_owned_monitor(db, monitor_id, user)
    return MonitorResponse.model_validate(monitor)


@router.delete("/{monitor_id}", status_code=204)
async def delete_monitor(
    monitor_id: str,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    monitor = await _get_owned_monitor(db, monitor_id, user)

    # Incidents only reference the monitor by id, remove them with it
    await delete_resource_incidents(db, ResourceKind.monitor, monitor.id)
    await db.delete(monitor)
    await db.commit()
