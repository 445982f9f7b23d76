# /app/services/database_service.py

"""
The single facade the service layer talks to.

`DatabaseService` owns one request-scoped SQLAlchemy session, builds every
repository on top of it and delegates to them. Multi-row state changes go
through `run_in_transaction`, which hands the facade itself to the unit of
work so the callback can use the same repositories it uses everywhere else.
"""

from typing import Callable, Dict, Generator, Iterable, List, Optional, Tuple, TypeVar

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from app.db.database import SessionLocal, get_db

# --- Repository Imports ---
from .database_helpers.academic_repository_sql import AcademicRepositorySQL
from .database_helpers.attendance_repository_sql import AttendanceRepositorySQL
from .database_helpers.audit_repository_sql import AuditRepositorySQL
from .database_helpers.class_student_repository_sql import ClassStudentRepositorySQL
from .database_helpers.finance_repository_sql import FinanceRepositorySQL
from .database_helpers.school_repository_sql import SchoolRepositorySQL
from .database_helpers.unit_of_work import run_in_transaction
from .database_helpers.user_repository_sql import UserRepositorySQL

T = TypeVar("T")


class DatabaseService:
    def __init__(self, db_session: Session, session_factory: Optional[sessionmaker] = None):
        """
        `session_factory` opens side sessions that must not share the
        request's transaction (the audit sink writes through one).
        """
        self.session = db_session
        self.session_factory = session_factory or SessionLocal

        # --- Initialize ALL SQL Repositories ---
        self.school_repo = SchoolRepositorySQL(db_session)
        self.user_repo = UserRepositorySQL(db_session)
        self.class_student_repo = ClassStudentRepositorySQL(db_session)
        self.academic_repo = AcademicRepositorySQL(db_session)
        self.finance_repo = FinanceRepositorySQL(db_session)
        self.attendance_repo = AttendanceRepositorySQL(db_session)
        self.audit_repo = AuditRepositorySQL(db_session)

    # --- TRANSACTIONS ---
    def run_in_transaction(self, work: Callable[["DatabaseService"], T], max_attempts: Optional[int] = None, label: Optional[str] = None) -> T:
        return run_in_transaction(
            self.session,
            lambda _session: work(self),
            max_attempts=max_attempts,
            label=label or getattr(work, "__name__", None),
        )

    # --- SCHOOL & WORKSPACE METHODS (DELEGATED) ---
    def get_school_by_id(self, school_id: str): return self.school_repo.get_school_by_id(school_id)
    def get_school_by_name(self, school_name: str): return self.school_repo.get_school_by_name(school_name)
    def school_code_exists(self, school_code: str) -> bool: return self.school_repo.school_code_exists(school_code)
    def add_school(self, school): return self.school_repo.add_school(school)
    def adjust_school_counters(self, school_id: str, **deltas: int) -> None: return self.school_repo.adjust_counters(school_id, **deltas)
    def get_workspace_by_id(self, workspace_id: str): return self.school_repo.get_workspace_by_id(workspace_id)
    def find_workspace(self, school_id: str, workspace_type: str, linked_entity_id: str): return self.school_repo.find_workspace(school_id, workspace_type, linked_entity_id)
    def workspace_code_taken(self, school_id: str, code: str, exclude_id: Optional[str] = None) -> bool: return self.school_repo.workspace_code_taken(school_id, code, exclude_id)
    def add_workspace(self, workspace): return self.school_repo.add_workspace(workspace)
    def delete_workspace(self, workspace): return self.school_repo.delete_workspace(workspace)

    # --- USER METHODS (DELEGATED) ---
    def get_user_by_id(self, user_id: str, school_id: Optional[str] = None): return self.user_repo.get_user_by_id(user_id, school_id)
    def find_user_by_login(self, school_id: str, identifier: str): return self.user_repo.find_user_by_login(school_id, identifier)
    def email_taken(self, school_id: str, email: str, exclude_user_id: Optional[str] = None) -> bool: return self.user_repo.email_taken(school_id, email, exclude_user_id)
    def username_taken(self, school_id: str, username: str) -> bool: return self.user_repo.username_taken(school_id, username)
    def count_users_in_school(self, school_id: str) -> int: return self.user_repo.count_users_in_school(school_id)
    def count_users_by_role(self, school_id: str) -> Dict[str, int]: return self.user_repo.count_users_by_role(school_id)
    def list_users(self, school_id: str, **filters) -> List: return self.user_repo.list_users(school_id, **filters)
    def page_users(self, school_id: str, offset: int, limit: int, **filters) -> Tuple[List, int]: return self.user_repo.page_users(school_id, offset, limit, **filters)
    def get_users_by_ids(self, school_id: str, user_ids: Iterable[str]) -> List: return self.user_repo.get_users_by_ids(school_id, user_ids)
    def get_user_ids_for_students(self, student_ids: Iterable[str]) -> List[str]: return self.user_repo.get_user_ids_for_students(student_ids)
    def add_user(self, user): return self.user_repo.add_user(user)
    def delete_user(self, user): return self.user_repo.delete_user(user)

    # --- CLASS & STUDENT METHODS (DELEGATED) ---
    def get_class_by_id(self, class_id: str, school_id: str): return self.class_student_repo.get_class_by_id(class_id, school_id)
    def get_class_by_code(self, school_id: str, class_code: str): return self.class_student_repo.get_class_by_code(school_id, class_code)
    def list_classes(self, school_id: str, **filters) -> List: return self.class_student_repo.list_classes(school_id, **filters)
    def count_classes(self, school_id: str) -> int: return self.class_student_repo.count_classes(school_id)
    def count_classes_for_teacher(self, school_id: str, teacher_id: str) -> int: return self.class_student_repo.count_classes_for_teacher(school_id, teacher_id)
    def add_class(self, class_obj): return self.class_student_repo.add_class(class_obj)
    def delete_class(self, class_obj): return self.class_student_repo.delete_class(class_obj)
    def get_student_by_id(self, student_id: str, school_id: str): return self.class_student_repo.get_student_by_id(student_id, school_id)
    def get_student_by_code(self, school_id: str, student_code: str): return self.class_student_repo.get_student_by_code(school_id, student_code)
    def list_students(self, school_id: str, **filters) -> List: return self.class_student_repo.list_students(school_id, **filters)
    def page_students(self, school_id: str, offset: int, limit: int, **filters) -> Tuple[List, int]: return self.class_student_repo.page_students(school_id, offset, limit, **filters)
    def get_student_ids_in_class(self, school_id: str, class_id: str) -> List[str]: return self.class_student_repo.get_student_ids_in_class(school_id, class_id)
    def count_students(self, school_id: str, status: Optional[str] = None) -> int: return self.class_student_repo.count_students(school_id, status)
    def add_student(self, student): return self.class_student_repo.add_student(student)
    def delete_student(self, student): return self.class_student_repo.delete_student(student)
    def add_transfer_record(self, record): return self.class_student_repo.add_transfer_record(record)

    # --- SUBJECT & SCORE METHODS (DELEGATED) ---
    def get_subject_by_id(self, subject_id: str, school_id: str): return self.academic_repo.get_subject_by_id(subject_id, school_id)
    def get_subject_by_code(self, school_id: str, subject_code: str): return self.academic_repo.get_subject_by_code(school_id, subject_code)
    def list_subjects(self, school_id: str, active_only: bool = False) -> List: return self.academic_repo.list_subjects(school_id, active_only)
    def add_subject(self, subject): return self.academic_repo.add_subject(subject)
    def get_score_by_id(self, score_id: str, school_id: str): return self.academic_repo.get_score_by_id(score_id, school_id)
    def get_cohort_scores(self, school_id: str, class_id: str, subject_id: str, semester: int, academic_year: str, **filters) -> List: return self.academic_repo.get_cohort_scores(school_id, class_id, subject_id, semester, academic_year, **filters)
    def list_scores(self, school_id: str, **filters) -> List: return self.academic_repo.list_scores(school_id, **filters)
    def recent_scores_for_student(self, school_id: str, student_id: str, limit: int = 10) -> List: return self.academic_repo.recent_scores_for_student(school_id, student_id, limit)
    def add_score(self, score): return self.academic_repo.add_score(score)
    def delete_score(self, score): return self.academic_repo.delete_score(score)
    def delete_scores_for_student(self, school_id: str, student_id: str) -> int: return self.academic_repo.delete_scores_for_student(school_id, student_id)

    # --- FEE & PAYMENT METHODS (DELEGATED) ---
    def get_fee_by_id(self, fee_id: str, school_id: str): return self.finance_repo.get_fee_by_id(fee_id, school_id)
    def list_fees(self, school_id: str, **filters) -> List: return self.finance_repo.list_fees(school_id, **filters)
    def add_fee(self, fee): return self.finance_repo.add_fee(fee)
    def get_payment_by_id(self, payment_id: str, school_id: str): return self.finance_repo.get_payment_by_id(payment_id, school_id)
    def find_payment(self, student_id: str, fee_id: str): return self.finance_repo.find_payment(student_id, fee_id)
    def list_payments(self, school_id: str, **filters) -> List: return self.finance_repo.list_payments(school_id, **filters)
    def page_payments(self, school_id: str, offset: int, limit: int, **filters) -> Tuple[List, int]: return self.finance_repo.page_payments(school_id, offset, limit, **filters)
    def count_payments_for_fee(self, school_id: str, fee_id: str) -> int: return self.finance_repo.count_payments_for_fee(school_id, fee_id)
    def list_overdue_payments(self, school_id: str, today, class_ids: Optional[List[str]] = None) -> List: return self.finance_repo.list_overdue_payments(school_id, today, class_ids)
    def list_payments_with_fees(self, school_id: str, **filters) -> List: return self.finance_repo.list_payments_with_fees(school_id, **filters)
    def payment_totals(self, school_id: str) -> Dict[str, float]: return self.finance_repo.payment_totals(school_id)
    def add_payment(self, payment): return self.finance_repo.add_payment(payment)
    def delete_payment(self, payment): return self.finance_repo.delete_payment(payment)
    def delete_payments_for_student(self, school_id: str, student_id: str) -> int: return self.finance_repo.delete_payments_for_student(school_id, student_id)

    # --- ATTENDANCE METHODS (DELEGATED) ---
    def get_attendance_by_id(self, attendance_id: str, school_id: str): return self.attendance_repo.get_attendance_by_id(attendance_id, school_id)
    def list_attendances(self, school_id: str, **filters) -> List: return self.attendance_repo.list_attendances(school_id, **filters)
    def page_attendances(self, school_id: str, offset: int, limit: int, **filters) -> Tuple[List, int]: return self.attendance_repo.page_attendances(school_id, offset, limit, **filters)
    def list_attendances_with_class(self, school_id: str, date_from, date_to, class_id: Optional[str] = None) -> List: return self.attendance_repo.list_attendances_with_class(school_id, date_from, date_to, class_id)
    def get_marks_for_day(self, school_id: str, class_id: str, on, session: Optional[str] = None, student_ids: Optional[Iterable[str]] = None) -> List: return self.attendance_repo.get_marks_for_day(school_id, class_id, on, session, student_ids)
    def add_attendance(self, attendance): return self.attendance_repo.add_attendance(attendance)
    def delete_attendance(self, attendance): return self.attendance_repo.delete_attendance(attendance)
    def delete_attendance_for_student(self, school_id: str, student_id: str) -> int: return self.attendance_repo.delete_attendance_for_student(school_id, student_id)
    def delete_attendance_for_class(self, school_id: str, class_id: str) -> int: return self.attendance_repo.delete_attendance_for_class(school_id, class_id)

    # --- AUDIT METHODS (DELEGATED) ---
    def add_audit_log(self, entry): return self.audit_repo.add_audit_log(entry)
    def list_audit_logs(self, school_id: str, **filters) -> List: return self.audit_repo.list_audit_logs(school_id, **filters)


# --- Dependency Provider ---
def get_db_service(db: Session = Depends(get_db)) -> Generator[DatabaseService, None, None]:
    yield DatabaseService(db_session=db)
