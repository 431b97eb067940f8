"""Jobs router - view background jobs (admin only)."""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from aris.core.deps import get_db, require_roles
from aris.db.enums import ROLES_CAN_MANAGE_INTEGRATIONS, JobStatus, JobType
from aris.schemas.auth import UserSession
from aris.schemas.job import JobListItem, JobRead
from aris.services import job_service

router = APIRouter()


@router.get("", response_model=list[JobListItem])
def list_jobs(
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = Query(50, ge=1, le=100),
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_INTEGRATIONS)),
):
    """List recent jobs for the organization."""
    return job_service.list_jobs(
        db,
        org_id=session.org_id,
        status=status,
        job_type=job_type,
        limit=limit,
    )


@router.get("/{job_id}", response_model=JobRead)
def get_job(
    job_id: UUID,
    db: Session = Depends(get_db),
    session: UserSession = Depends(require_roles(ROLES_CAN_MANAGE_INTEGRATIONS)),
):
    job = job_service.get_job(db, job_id, org_id=session.org_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job
