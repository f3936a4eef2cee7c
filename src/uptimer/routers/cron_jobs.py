from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from uptimer.auth import get_current_user_api
from uptimer.database import get_db
from uptimer.lifecycle import delete_resource_incidents
from uptimer.models.cron_job import CronJob
from uptimer.models.user import User
from uptimer.ownership import ResourceKind
from uptimer.schemas import CronJobCreate, CronJobResponse

router = APIRouter(prefix="/api/cron-jobs", tags=["cron-jobs"])


@router.get("", response_model=list[CronJobResponse])
async def list_cron_jobs(
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(CronJob)
        .where(CronJob.user_id == user.id)
        .order_by(CronJob.created_at.desc())
    )
    return [CronJobResponse.model_validate(job) for job in result.scalars().all()]


@router.post("", response_model=CronJobResponse, status_code=201)
async def create_cron_job(
    body: CronJobCreate,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    if body.cron_expr is None and body.interval_sec is None:
        raise HTTPException(
            status_code=422,
            detail="Either cron_expr or interval_sec is required",
        )

    job = CronJob(
        user_id=user.id,
        name=body.name,
        url=body.url,
        method=body.method,
        cron_expr=body.cron_expr,
        interval_sec=body.interval_sec,
        timeout=body.timeout,
    )
    db.add(job)
    await db.commit()
    await db.refresh(job)
    return CronJobResponse.model_validate(job)


@router.get("/{job_id}", response_model=CronJobResponse)
async def get_cron_job(
    job_id: str,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(CronJob).where(CronJob.id == job_id, CronJob.user_id == user.id)
    )
    job = result.scalar_one_or_none()
    if not job:
        raise HTTPException(status_code=404, detail="Cron job not found")
    return CronJobResponse.model_validate(job)


@router.delete("/{job_id}", status_code=204)
async def delete_cron_job(
    job_id: str,
    user: User = Depends(get_current_user_api),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(CronJob).where(CronJob.id == job_id, CronJob.user_id == user.id)
    )
    job = result.scalar_one_or_none()
    if not job:
        raise HTTPException(status_code=404, detail="Cron job not found")

    await delete_resource_incidents(db, ResourceKind.cron, job.id)
    await db.delete(job)
    await db.commit()
