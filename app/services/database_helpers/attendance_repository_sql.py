# /app/services/database_helpers/attendance_repository_sql.py

"""Queries for class attendance marks."""

from datetime import date
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from app.db.models.attendance_models import Attendance
from .paging import paginate


class AttendanceRepositorySQL:
    def __init__(self, db_session: Session):
        self.db = db_session

    def get_attendance_by_id(self, attendance_id: str, school_id: str) -> Optional[Attendance]:
        return (
            self.db.query(Attendance)
            .filter(Attendance.id == attendance_id, Attendance.school_id == school_id)
            .first()
        )

    def _attendances_query(
        self,
        school_id: str,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        status: Optional[str] = None,
        session: Optional[str] = None,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ):
        query = self.db.query(Attendance).filter(Attendance.school_id == school_id)
        if student_id:
            query = query.filter(Attendance.student_id == student_id)
        if class_id:
            query = query.filter(Attendance.class_id == class_id)
        if status:
            query = query.filter(Attendance.status == status)
        if session:
            query = query.filter(Attendance.session == session)
        if date_from:
            query = query.filter(Attendance.date >= date_from)
        if date_to:
            query = query.filter(Attendance.date <= date_to)
        return query.order_by(Attendance.date.desc(), Attendance.created_at.desc(), Attendance.id)

    def list_attendances(self, school_id: str, **filters) -> List[Attendance]:
        return self._attendances_query(school_id, **filters).all()

    def page_attendances(self, school_id: str, offset: int, limit: int, **filters) -> Tuple[List[Attendance], int]:
        return paginate(self._attendances_query(school_id, **filters), offset, limit)

    def list_attendances_with_class(self, school_id: str, date_from: date, date_to: date, class_id: Optional[str] = None) -> List[Attendance]:
        query = (
            self.db.query(Attendance)
            .filter(Attendance.school_id == school_id, Attendance.date >= date_from, Attendance.date <= date_to)
            .options(joinedload(Attendance.class_))
        )
        if class_id:
            query = query.filter(Attendance.class_id == class_id)
        return query.all()

    def get_marks_for_day(
        self,
        school_id: str,
        class_id: str,
        on: date,
        session: Optional[str] = None,
        student_ids: Optional[Iterable[str]] = None,
    ) -> List[Attendance]:
        query = self.db.query(Attendance).filter(
            Attendance.school_id == school_id,
            Attendance.class_id == class_id,
            Attendance.date == on,
        )
        if session:
            query = query.filter(Attendance.session == session)
        if student_ids is not None:
            query = query.filter(Attendance.student_id.in_(list(student_ids)))
        return query.order_by(Attendance.period).all()

    def add_attendance(self, attendance: Attendance) -> Attendance:
        self.db.add(attendance)
        self.db.flush()
        return attendance

    def delete_attendance(self, attendance: Attendance) -> None:
        self.db.delete(attendance)
        self.db.flush()

    def delete_attendance_for_student(self, school_id: str, student_id: str) -> int:
        rows = self.db.query(Attendance).filter(Attendance.school_id == school_id, Attendance.student_id == student_id).all()
        for row in rows:
            self.db.delete(row)
        self.db.flush()
        return len(rows)

    def delete_attendance_for_class(self, school_id: str, class_id: str) -> int:
        rows = self.db.query(Attendance).filter(Attendance.school_id == school_id, Attendance.class_id == class_id).all()
        for row in rows:
            self.db.delete(row)
        self.db.flush()
        return len(rows)
