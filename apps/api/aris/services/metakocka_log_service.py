"""
Persistent Metakocka integration log.

Sync failures are written here so admins can review and resolve them later.
"""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from aris.db.enums import LogCategory, LogLevel
from aris.db.models import MetakockaIntegrationLog
from aris.services.metakocka_client import MetakockaError, MetakockaErrorType

logger = logging.getLogger(__name__)


class IntegrationLogNotFoundError(Exception):
    pass


def log_error(
    db: Session,
    org_id: UUID,
    message: str,
    category: LogCategory = LogCategory.API,
    level: LogLevel = LogLevel.ERROR,
    context: dict[str, Any] | None = None,
    user_id: UUID | None = None,
) -> MetakockaIntegrationLog:
    entry = MetakockaIntegrationLog(
        organization_id=org_id,
        user_id=user_id,
        level=level.value,
        category=category.value,
        message=message,
        context=context or {},
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.log(
        logging.ERROR if level == LogLevel.ERROR else logging.INFO,
        "Metakocka %s %s: %s",
        category.value,
        level.value,
        message,
    )
    return entry


def category_for_error(error: MetakockaError) -> LogCategory:
    if error.type == MetakockaErrorType.AUTHENTICATION:
        return LogCategory.AUTH
    if error.type == MetakockaErrorType.VALIDATION:
        return LogCategory.MAPPING
    return LogCategory.API


def log_metakocka_error(
    db: Session,
    org_id: UUID,
    error: MetakockaError,
    context: dict[str, Any] | None = None,
    user_id: UUID | None = None,
) -> MetakockaIntegrationLog:
    return log_error(
        db,
        org_id,
        error.message,
        category=category_for_error(error),
        context={**(context or {}), "error_type": error.type.value, "error_code": error.code},
        user_id=user_id,
    )


def log_sync_event(
    db: Session,
    org_id: UUID,
    message: str,
    context: dict[str, Any] | None = None,
    level: LogLevel = LogLevel.INFO,
    user_id: UUID | None = None,
) -> MetakockaIntegrationLog:
    return log_error(
        db, org_id, message, category=LogCategory.SYNC, level=level, context=context, user_id=user_id
    )


def list_logs(
    db: Session,
    org_id: UUID,
    level: str | None = None,
    category: str | None = None,
    resolved: bool | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[MetakockaIntegrationLog], int]:
    query = db.query(MetakockaIntegrationLog).filter(
        MetakockaIntegrationLog.organization_id == org_id
    )
    if level:
        query = query.filter(MetakockaIntegrationLog.level == level)
    if category:
        query = query.filter(MetakockaIntegrationLog.category == category)
    if resolved is not None:
        query = query.filter(MetakockaIntegrationLog.resolved.is_(resolved))
    total = query.count()
    items = (
        query.order_by(MetakockaIntegrationLog.created_at.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return items, total


def resolve_log(
    db: Session,
    org_id: UUID,
    log_id: UUID,
    resolved_by: UUID,
    notes: str | None = None,
) -> MetakockaIntegrationLog:
    entry = db.query(MetakockaIntegrationLog).filter(
        MetakockaIntegrationLog.id == log_id,
        MetakockaIntegrationLog.organization_id == org_id,
    ).first()
    if not entry:
        raise IntegrationLogNotFoundError("Log entry not found")
    entry.resolved = True
    entry.resolution_notes = notes
    entry.resolved_at = datetime.now(timezone.utc)
    entry.resolved_by = resolved_by
    db.commit()
    db.refresh(entry)
    return entry


def get_error_statistics(db: Session, org_id: UUID) -> dict[str, Any]:
    base = db.query(MetakockaIntegrationLog).filter(
        MetakockaIntegrationLog.organization_id == org_id
    )
    by_category = dict(
        base.with_entities(MetakockaIntegrationLog.category, func.count(MetakockaIntegrationLog.id))
        .group_by(MetakockaIntegrationLog.category)
        .all()
    )
    by_level = dict(
        base.with_entities(MetakockaIntegrationLog.level, func.count(MetakockaIntegrationLog.id))
        .group_by(MetakockaIntegrationLog.level)
        .all()
    )
    return {
        "total": sum(by_level.values()),
        "unresolved": base.filter(MetakockaIntegrationLog.resolved.is_(False)).count(),
        "by_category": {c.value: by_category.get(c.value, 0) for c in LogCategory},
        "by_level": {lvl.value: by_level.get(lvl.value, 0) for lvl in LogLevel},
    }
