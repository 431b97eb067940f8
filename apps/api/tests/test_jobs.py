"""Background jobs: scheduling, registry and the worker loop."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from aris import worker
from aris.core.structured_logging import build_log_context
from aris.db.enums import JobStatus, JobType
from aris.db.models import Job, Notification
from aris.jobs.registry import JOB_HANDLERS, resolve_job_handler
from aris.jobs.utils import mask_email
from aris.services import job_service, metakocka_credentials_service


def test_every_job_type_has_a_handler():
    assert set(JOB_HANDLERS) == {job_type.value for job_type in JobType}


def test_unknown_job_type_is_rejected():
    with pytest.raises(ValueError, match="Unknown job type: bogus"):
        resolve_job_handler("bogus")


def test_mask_email():
    assert mask_email("customer@example.com") == "cus...@example.com"
    assert mask_email("no-domain") == "no-..."
    assert mask_email(None) == ""


def test_log_context_keeps_known_non_empty_keys():
    job_id = uuid.uuid4()

    assert build_log_context(job_id=job_id, org_id=None, route="email_sync") == {
        "job_id": str(job_id),
        "route": "email_sync",
    }
    with pytest.raises(TypeError, match="email"):
        build_log_context(email="a@b.test")


def test_schedule_job_is_idempotent(db, test_org):
    first = job_service.schedule_job(
        db, test_org.id, JobType.NOTIFICATION, {"message": "hi"}, idempotency_key="once"
    )
    second = job_service.schedule_job(
        db, test_org.id, JobType.NOTIFICATION, {"message": "again"}, idempotency_key="once"
    )

    assert first.id == second.id
    assert second.payload == {"message": "hi"}


def test_pending_jobs_exclude_future_runs(db, test_org):
    due = job_service.schedule_job(db, test_org.id, JobType.NOTIFICATION, {})
    job_service.schedule_job(
        db, test_org.id, JobType.NOTIFICATION, {},
        run_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )

    assert [job.id for job in job_service.get_pending_jobs(db)] == [due.id]


@pytest.mark.asyncio
async def test_worker_runs_notification_job(db, test_org, test_user):
    job = job_service.schedule_job(
        db,
        test_org.id,
        JobType.NOTIFICATION,
        {"user_id": str(test_user.id), "title": "Hello", "message": "From the worker"},
    )

    picked = await worker.run_pending_jobs(db)

    assert picked == 1
    db.refresh(job)
    assert job.status == JobStatus.COMPLETED.value
    assert job.attempts == 1
    notification = db.query(Notification).one()
    assert notification.type == "system_update"
    assert notification.message == "From the worker"


@pytest.mark.asyncio
async def test_failed_job_is_retried_until_max_attempts(db, test_org):
    job = Job(
        organization_id=test_org.id,
        job_type="bogus",
        payload={},
        run_at=datetime.now(timezone.utc),
        status=JobStatus.PENDING.value,
        max_attempts=2,
    )
    db.add(job)
    db.commit()

    await worker.run_pending_jobs(db)
    db.refresh(job)
    assert job.status == JobStatus.PENDING.value
    assert job.last_error == "Unknown job type: bogus"

    await worker.run_pending_jobs(db)
    db.refresh(job)
    assert job.status == JobStatus.FAILED.value
    assert job.attempts == 2


@pytest.mark.asyncio
async def test_final_metakocka_failure_notifies_admins(db, test_org, test_user):
    job = job_service.schedule_job(
        db, test_org.id, JobType.METAKOCKA_SYNC, {"entity": "products"}, max_attempts=1
    )

    await worker.run_pending_jobs(db)

    db.refresh(job)
    assert job.status == JobStatus.FAILED.value
    assert job.last_error == "Metakocka credentials not found or inactive"
    notification = db.query(Notification).one()
    assert notification.user_id == test_user.id
    assert notification.type == "metakocka_sync_failed"
    assert notification.title == "Metakocka products sync failed"


@pytest.mark.asyncio
async def test_inventory_cannot_be_exported(db, test_org):
    metakocka_credentials_service.save_credentials(db, test_org.id, "1234", "secret")
    job = job_service.schedule_job(
        db, test_org.id, JobType.METAKOCKA_SYNC,
        {"entity": "inventory", "direction": "crm_to_metakocka"},
    )

    await worker.run_pending_jobs(db)

    db.refresh(job)
    assert job.last_error == "inventory cannot be exported to Metakocka"


# =============================================================================
# API
# =============================================================================


@pytest.mark.asyncio
async def test_list_and_get_jobs(authed_client, db, test_org):
    job = job_service.schedule_job(db, test_org.id, JobType.EMAIL_QUEUE_PROCESS, {"batch_size": 5})

    listed = await authed_client.get("/jobs", params={"job_type": "email_queue_process"})
    assert listed.status_code == 200
    assert [item["id"] for item in listed.json()] == [str(job.id)]

    detail = await authed_client.get(f"/jobs/{job.id}")
    assert detail.json()["payload"] == {"batch_size": 5}


@pytest.mark.asyncio
async def test_members_cannot_list_jobs(member_client):
    response = await member_client.get("/jobs")

    assert response.status_code == 403
