# /app/services/database_helpers/class_student_repository_sql.py

"""
This module contains all the raw SQLAlchemy queries for the Class, Student
and transfer-log tables. Every method that reads tenant data requires a
`school_id`, so a row from another school is indistinguishable from a
missing one.
"""

from typing import List, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.db.models.class_student_models import Class, Student, TransferRecord
from .paging import paginate


class ClassStudentRepositorySQL:
    def __init__(self, db_session: Session):
        self.db = db_session

    # --- Class Methods ---

    def get_class_by_id(self, class_id: str, school_id: str) -> Optional[Class]:
        if not class_id:
            return None
        return self.db.query(Class).filter(Class.id == class_id, Class.school_id == school_id).first()

    def get_class_by_code(self, school_id: str, class_code: str) -> Optional[Class]:
        return self.db.query(Class).filter(Class.school_id == school_id, Class.class_code == class_code).first()

    def list_classes(
        self,
        school_id: str,
        grade: Optional[int] = None,
        academic_year: Optional[str] = None,
        status: Optional[str] = None,
        homeroom_teacher_id: Optional[str] = None,
    ) -> List[Class]:
        query = self.db.query(Class).filter(Class.school_id == school_id)
        if grade is not None:
            query = query.filter(Class.grade == grade)
        if academic_year:
            query = query.filter(Class.academic_year == academic_year)
        if status:
            query = query.filter(Class.status == status)
        if homeroom_teacher_id:
            query = query.filter(Class.homeroom_teacher_id == homeroom_teacher_id)
        return query.order_by(Class.grade, Class.name).all()

    def count_classes(self, school_id: str) -> int:
        return self.db.query(func.count(Class.id)).filter(Class.school_id == school_id).scalar() or 0

    def count_classes_for_teacher(self, school_id: str, teacher_id: str) -> int:
        return (
            self.db.query(func.count(Class.id))
            .filter(Class.school_id == school_id, Class.homeroom_teacher_id == teacher_id)
            .scalar()
            or 0
        )

    def add_class(self, class_obj: Class) -> Class:
        self.db.add(class_obj)
        self.db.flush()
        return class_obj

    def delete_class(self, class_obj: Class) -> None:
        self.db.delete(class_obj)
        self.db.flush()

    # --- Student Methods ---

    def get_student_by_id(self, student_id: str, school_id: str) -> Optional[Student]:
        if not student_id:
            return None
        return self.db.query(Student).filter(Student.id == student_id, Student.school_id == school_id).first()

    def get_student_by_code(self, school_id: str, student_code: str) -> Optional[Student]:
        return (
            self.db.query(Student)
            .filter(Student.school_id == school_id, Student.student_code == student_code)
            .first()
        )

    def _students_query(
        self,
        school_id: str,
        class_id: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        academic_year: Optional[str] = None,
    ):
        query = self.db.query(Student).filter(Student.school_id == school_id)
        if class_id:
            query = query.filter(Student.class_id == class_id)
        if status:
            query = query.filter(Student.status == status)
        if academic_year:
            query = query.filter(Student.academic_year == academic_year)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.filter(or_(Student.full_name.ilike(pattern), Student.student_code.ilike(pattern)))
        return query.order_by(Student.full_name, Student.id)

    def list_students(self, school_id: str, **filters) -> List[Student]:
        return self._students_query(school_id, **filters).all()

    def page_students(self, school_id: str, offset: int, limit: int, **filters) -> Tuple[List[Student], int]:
        return paginate(self._students_query(school_id, **filters), offset, limit)

    def get_student_ids_in_class(self, school_id: str, class_id: str) -> List[str]:
        rows = self.db.query(Student.id).filter(Student.school_id == school_id, Student.class_id == class_id).all()
        return [row.id for row in rows]

    def count_students(self, school_id: str, status: Optional[str] = None) -> int:
        query = self.db.query(func.count(Student.id)).filter(Student.school_id == school_id)
        if status:
            query = query.filter(Student.status == status)
        return query.scalar() or 0

    def add_student(self, student: Student) -> Student:
        self.db.add(student)
        self.db.flush()
        return student

    def delete_student(self, student: Student) -> None:
        self.db.delete(student)
        self.db.flush()

    # --- Transfer Log ---

    def add_transfer_record(self, record: TransferRecord) -> TransferRecord:
        self.db.add(record)
        self.db.flush()
        return record
