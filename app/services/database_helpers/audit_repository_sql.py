# /app/services/database_helpers/audit_repository_sql.py

from typing import List, Optional

from sqlalchemy.orm import Session

from app.db.models.audit_models import AuditLog


class AuditRepositorySQL:
    def __init__(self, db_session: Session):
        self.db = db_session

    def add_audit_log(self, entry: AuditLog) -> AuditLog:
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_audit_logs(
        self,
        school_id: str,
        actor_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        action_prefix: Optional[str] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        query = self.db.query(AuditLog).filter(AuditLog.school_id == school_id)
        if actor_id:
            query = query.filter(AuditLog.actor_id == actor_id)
        if resource_id:
            query = query.filter(AuditLog.resource_id == resource_id)
        if action_prefix:
            query = query.filter(AuditLog.action.like(f"{action_prefix}%"))
        return query.order_by(AuditLog.created_at.desc()).limit(limit).all()
