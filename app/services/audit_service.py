# /app/services/audit_service.py

"""
The audit sink.

Records are written on a session of their own, after the business
transaction has committed or rolled back, so an audit row never rides on (or
blocks) the operation it describes. A failed audit write is logged and
dropped; it must never fail the business operation.
"""

import uuid
from contextlib import contextmanager
from datetime import date, datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.logging_config import get_logger
from app.db.models.audit_models import AuditLog
from .database_service import DatabaseService

logger = get_logger("audit_service")


def _json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return value


def snapshot(obj, fields: Iterable[str]) -> Optional[Dict[str, Any]]:
    """A JSON-safe dict of selected attributes of an ORM row."""
    if obj is None:
        return None
    return {field: _json_safe(getattr(obj, field, None)) for field in fields}


def record_audit(
    db: DatabaseService,
    actor,
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    before: Optional[dict] = None,
    after: Optional[dict] = None,
    outcome: str = "success",
    error_message: Optional[str] = None,
    metadata: Optional[dict] = None,
    school_id: Optional[str] = None,
) -> Optional[str]:
    """Appends one audit record. Returns its id, or None if the write failed."""
    session = db.session_factory()
    try:
        entry = AuditLog(
            id=f"aud_{uuid.uuid4().hex[:12]}",
            school_id=school_id or getattr(actor, "school_id", None),
            actor_id=getattr(actor, "id", None),
            actor_email=getattr(actor, "email", None),
            actor_role=getattr(actor, "role", None),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            before=_json_safe(before),
            after=_json_safe(after),
            outcome=outcome,
            error_message=error_message,
            meta=_json_safe(metadata),
        )
        session.add(entry)
        session.commit()
        return entry.id
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Could not write audit record %s for %s %s", action, resource_type, resource_id)
        return None
    finally:
        session.close()


class AuditTrail:
    """Mutable handle yielded by `audit_trail`; the operation fills in what it learns."""

    def __init__(self, resource_id: Optional[str] = None, before: Optional[dict] = None):
        self.resource_id = resource_id
        self.before = before
        self.after = None
        self.metadata: Dict[str, Any] = {}


@contextmanager
def audit_trail(
    db: DatabaseService,
    actor,
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    before: Optional[dict] = None,
) -> Iterator[AuditTrail]:
    """Records a success or failure audit entry around the wrapped operation."""
    trail = AuditTrail(resource_id, before)
    try:
        yield trail
    except Exception as exc:
        record_audit(
            db, actor, action, resource_type,
            resource_id=trail.resource_id,
            before=trail.before,
            outcome="failure",
            error_message=getattr(exc, "message", None) or str(exc),
            metadata={**trail.metadata, "errorCode": getattr(exc, "code", exc.__class__.__name__)},
        )
        raise
    record_audit(
        db, actor, action, resource_type,
        resource_id=trail.resource_id,
        before=trail.before,
        after=trail.after,
        metadata=trail.metadata or None,
    )


def list_audit_logs(
    db: DatabaseService,
    school_id: str,
    actor_id: Optional[str] = None,
    resource_id: Optional[str] = None,
    action_prefix: Optional[str] = None,
    limit: int = 100,
) -> List[AuditLog]:
    limit = max(1, min(limit, 500))
    return db.list_audit_logs(
        school_id, actor_id=actor_id, resource_id=resource_id, action_prefix=action_prefix, limit=limit
    )
