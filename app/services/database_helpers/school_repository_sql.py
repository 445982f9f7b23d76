# /app/services/database_helpers/school_repository_sql.py

"""
Raw SQLAlchemy queries for the tenant directory and the workspace registry.

Writes only `flush()`; committing is the job of the transaction wrapper, so
everything a repository does inside a unit of work commits or rolls back
together.
"""

from typing import Optional

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.db.models.school_models import School, Workspace


class SchoolRepositorySQL:
    def __init__(self, db_session: Session):
        self.db = db_session

    # --- School Methods ---

    def get_school_by_id(self, school_id: str) -> Optional[School]:
        return self.db.query(School).filter(School.id == school_id).first()

    def get_school_by_name(self, school_name: str) -> Optional[School]:
        """Case-insensitive lookup on the trimmed name."""
        key = (school_name or "").strip().lower()
        return self.db.query(School).filter(School.school_name_key == key).first()

    def school_code_exists(self, school_code: str) -> bool:
        return self.db.query(School.id).filter(School.school_code == school_code).first() is not None

    def add_school(self, school: School) -> School:
        self.db.add(school)
        self.db.flush()
        return school

    def adjust_counters(self, school_id: str, **deltas: int) -> None:
        """
        Applies `total_* += delta` in a single UPDATE so concurrent writers
        never overwrite each other's increments. Counters are floored at 0.
        """
        values = {}
        for name, delta in deltas.items():
            column = getattr(School, name)
            values[name] = case((column + delta < 0, 0), else_=column + delta)
        if not values:
            return
        self.db.execute(
            update(School).where(School.id == school_id).values(**values),
            execution_options={"synchronize_session": False},
        )
        # The in-memory copy is stale now; the next access reloads it.
        school = self.db.identity_map.get(self.db.identity_key(School, school_id))
        if school is not None:
            self.db.expire(school, list(values))

    # --- Workspace Methods ---

    def get_workspace_by_id(self, workspace_id: str) -> Optional[Workspace]:
        if not workspace_id:
            return None
        return self.db.query(Workspace).filter(Workspace.id == workspace_id).first()

    def find_workspace(self, school_id: str, workspace_type: str, linked_entity_id: str) -> Optional[Workspace]:
        return (
            self.db.query(Workspace)
            .filter(
                Workspace.school_id == school_id,
                Workspace.type == workspace_type,
                Workspace.linked_entity_id == linked_entity_id,
            )
            .first()
        )

    def workspace_code_taken(self, school_id: str, code: str, exclude_id: Optional[str] = None) -> bool:
        query = self.db.query(Workspace.id).filter(Workspace.school_id == school_id, Workspace.code == code)
        if exclude_id:
            query = query.filter(Workspace.id != exclude_id)
        return query.first() is not None

    def add_workspace(self, workspace: Workspace) -> Workspace:
        self.db.add(workspace)
        self.db.flush()
        return workspace

    def delete_workspace(self, workspace: Workspace) -> None:
        self.db.delete(workspace)
        self.db.flush()
