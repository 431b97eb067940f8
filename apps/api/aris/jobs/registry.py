"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from aris.db.enums import JobType
from aris.jobs.handlers import email, metakocka, notifications

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.EMAIL_SYNC.value: email.process_email_sync,
    JobType.EMAIL_QUEUE_PROCESS.value: email.process_email_queue,
    JobType.METAKOCKA_SYNC.value: metakocka.process_metakocka_sync,
    JobType.NOTIFICATION.value: notifications.process_notification,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
