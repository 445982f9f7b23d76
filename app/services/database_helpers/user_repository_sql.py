# /app/services/database_helpers/user_repository_sql.py

"""
Queries for the User table. Every lookup is scoped by `school_id`, which is
the final point of enforcement for tenant isolation.
"""

from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.db.models.user_models import User
from .paging import paginate


class UserRepositorySQL:
    def __init__(self, db_session: Session):
        self.db = db_session

    def get_user_by_id(self, user_id: str, school_id: Optional[str] = None) -> Optional[User]:
        query = self.db.query(User).filter(User.id == user_id)
        if school_id is not None:
            query = query.filter(User.school_id == school_id)
        return query.first()

    def find_user_by_login(self, school_id: str, identifier: str) -> Optional[User]:
        """Matches either the username or the email inside one school."""
        identifier = (identifier or "").strip()
        return (
            self.db.query(User)
            .filter(User.school_id == school_id)
            .filter(or_(User.username == identifier, User.email == identifier.lower()))
            .first()
        )

    def email_taken(self, school_id: str, email: str, exclude_user_id: Optional[str] = None) -> bool:
        query = self.db.query(User.id).filter(User.school_id == school_id, User.email == email)
        if exclude_user_id:
            query = query.filter(User.id != exclude_user_id)
        return query.first() is not None

    def username_taken(self, school_id: str, username: str) -> bool:
        return (
            self.db.query(User.id)
            .filter(User.school_id == school_id, User.username == username)
            .first()
            is not None
        )

    def count_users_in_school(self, school_id: str) -> int:
        return self.db.query(func.count(User.id)).filter(User.school_id == school_id).scalar() or 0

    def _users_query(
        self,
        school_id: str,
        role: Optional[str] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ):
        query = self.db.query(User).filter(User.school_id == school_id)
        if role:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active == is_active)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(User.full_name.ilike(pattern), User.email.ilike(pattern), User.username.ilike(pattern))
            )
        return query.order_by(User.created_at.desc(), User.id)

    def list_users(self, school_id: str, **filters) -> List[User]:
        return self._users_query(school_id, **filters).all()

    def page_users(self, school_id: str, offset: int, limit: int, **filters) -> Tuple[List[User], int]:
        return paginate(self._users_query(school_id, **filters), offset, limit)

    def get_users_by_ids(self, school_id: str, user_ids: Iterable[str]) -> List[User]:
        ids = list(user_ids)
        if not ids:
            return []
        return self.db.query(User).filter(User.school_id == school_id, User.id.in_(ids)).all()

    def get_user_ids_for_students(self, student_ids: Iterable[str]) -> List[str]:
        ids = list(student_ids)
        if not ids:
            return []
        return [row.id for row in self.db.query(User.id).filter(User.student_id.in_(ids)).all()]

    def count_users_by_role(self, school_id: str) -> dict:
        rows = (
            self.db.query(User.role, func.count(User.id))
            .filter(User.school_id == school_id)
            .group_by(User.role)
            .all()
        )
        return {role: count for role, count in rows}

    def add_user(self, user: User) -> User:
        self.db.add(user)
        self.db.flush()
        return user

    def delete_user(self, user: User) -> None:
        self.db.delete(user)
        self.db.flush()
