# /app/services/student_service.py

"""
Business logic for students: enrolment, profile edits, transfers between
classes, deletion and bulk import.

Every change of a student's class goes through `_move_student` inside a
unit of work. It re-reads the classes involved, takes a seat in the target
(rejecting a full class), gives the seat back in the source, appends to the
transfer log and points `class_workspace_id` at the new class's workspace.
All of it commits together or not at all.
"""

import uuid
from typing import List, Optional, Tuple

import pandas as pd

from app.core.cache import CacheService, invalidate_school_metrics, invalidate_user_overview
from app.core.clock import utcnow
from app.core.exceptions import AppError, ConflictError, NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.class_student_models import Class, Student, TransferRecord
from ..models import student_model
from ..models.common_model import Page, PageParams
from . import invariants, workspace_service
from .audit_service import audit_trail, record_audit, snapshot
from .class_service import get_class
from .database_service import DatabaseService

logger = get_logger("student_service")

SNAPSHOT_FIELDS = ("student_code", "full_name", "class_id", "class_workspace_id", "status", "academic_year")
PROFILE_FIELDS = (
    "student_code", "full_name", "date_of_birth", "gender", "address",
    "parent_name", "parent_phone", "academic_year", "status",
)


def get_student(db: DatabaseService, school_id: str, student_id: str) -> Student:
    student = db.get_student_by_id(student_id, school_id)
    if student is None:
        raise NotFoundError("STUDENT_NOT_FOUND", f"Student with ID {student_id} not found")
    return student


def list_students(
    db: DatabaseService,
    school_id: str,
    class_id: Optional[str] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    academic_year: Optional[str] = None,
) -> List[Student]:
    return db.list_students(school_id, class_id=class_id, status=status, search=search, academic_year=academic_year)


def page_students(db: DatabaseService, school_id: str, params: PageParams, **filters) -> Page[student_model.Student]:
    students, total = db.page_students(school_id, params.offset, params.limit, **filters)
    return Page[student_model.Student].build([student_model.Student.model_validate(s) for s in students], total, params)


def get_student_statistics(
    db: DatabaseService,
    school_id: str,
    academic_year: Optional[str] = None,
    class_id: Optional[str] = None,
) -> student_model.StudentStatistics:
    """
    Counts by status, gender and class. Students without a gender are counted
    as "unknown" and students without a class under "Unassigned".
    """
    students = db.list_students(school_id, academic_year=academic_year, class_id=class_id)
    if not students:
        return student_model.StudentStatistics(total=0, by_status={}, by_gender={}, by_class=[])

    class_names = {c.id: c.name for c in db.list_classes(school_id)}
    df = pd.DataFrame([
        {"status": s.status, "gender": s.gender or "unknown", "class_id": s.class_id or ""}
        for s in students
    ])
    by_class = df.groupby("class_id").size()
    return student_model.StudentStatistics(
        total=len(df),
        by_status={k: int(v) for k, v in df.groupby("status").size().items()},
        by_gender={k: int(v) for k, v in df.groupby("gender").size().items()},
        by_class=[
            student_model.ClassCount(
                class_id=cid or None,
                class_name=class_names.get(cid, "Unassigned"),
                count=int(count),
            )
            for cid, count in sorted(by_class.items(), key=lambda item: (-item[1], class_names.get(item[0], "Unassigned")))
        ],
    )


def _enum_value(value):
    return getattr(value, "value", value)


def _move_student(
    tx: DatabaseService,
    student: Student,
    new_class_id: Optional[str],
    actor_id: Optional[str],
    reason: Optional[str] = None,
) -> Tuple[Optional[Class], Optional[Class]]:
    """
    Moves `student` to `new_class_id` (or out of any class when None) and
    keeps both enrolment counters and the workspace pointer in step.
    Returns `(old_class, new_class)`.
    """
    old_class = tx.get_class_by_id(student.class_id, student.school_id) if student.class_id else None
    new_class = None
    if new_class_id:
        new_class = get_class(tx, student.school_id, new_class_id)
        # Raises CLASS_FULL before anything is written.
        invariants.reserve_seat(new_class)
    if old_class is not None:
        invariants.release_seat(old_class)

    if new_class is not None:
        student.class_id = new_class.id
        student.class_workspace_id = workspace_service.ensure_class_workspace_id(tx, new_class)
        tx.add_transfer_record(TransferRecord(
            id=f"trf_{uuid.uuid4().hex[:12]}",
            student_id=student.id,
            from_class_id=old_class.id if old_class else None,
            to_class_id=new_class.id,
            transfer_date=utcnow(),
            reason=reason,
            transferred_by=actor_id,
        ))
    else:
        student.class_id = None
        student.class_workspace_id = None
    tx.session.flush()
    return old_class, new_class


def _linked_user_ids(db: DatabaseService, student_id: str) -> List[str]:
    return db.get_user_ids_for_students([student_id])


# --- Create ---

def _insert_student(tx: DatabaseService, school_id: str, data: student_model.StudentCreate) -> Student:
    if tx.get_student_by_code(school_id, data.student_code) is not None:
        raise ConflictError("STUDENT_CODE_EXISTS", f"Student code {data.student_code} already exists in this school.")
    student = tx.add_student(Student(
        id=f"stu_{uuid.uuid4().hex[:12]}",
        school_id=school_id,
        student_code=data.student_code,
        full_name=data.full_name.strip(),
        date_of_birth=data.date_of_birth,
        gender=_enum_value(data.gender),
        address=data.address,
        parent_name=data.parent_name,
        parent_phone=data.parent_phone,
        academic_year=data.academic_year,
        status=student_model.StudentStatus.STUDYING.value,
    ))
    if data.class_id:
        class_obj = get_class(tx, school_id, data.class_id)
        invariants.reserve_seat(class_obj)
        student.class_id = class_obj.id
        student.class_workspace_id = workspace_service.ensure_class_workspace_id(tx, class_obj)
        if not student.academic_year:
            student.academic_year = class_obj.academic_year
    tx.adjust_school_counters(school_id, total_students=1)
    return student


def create_student(
    student_data: student_model.StudentCreate,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Student:
    school_id = actor.school_id
    if student_data.class_id:
        # Fail fast on an unknown class; the capacity check itself happens inside the transaction.
        get_class(db, school_id, student_data.class_id)

    with audit_trail(db, actor, "STUDENT_CREATE", "Student") as trail:
        student = db.run_in_transaction(lambda tx: _insert_student(tx, school_id, student_data), label="create_student")
        trail.resource_id = student.id
        trail.after = snapshot(student, SNAPSHOT_FIELDS)

    invalidate_school_metrics(cache, school_id)
    return student


# --- Update ---

def update_student(
    student_id: str,
    student_update: student_model.StudentUpdate,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Student:
    school_id = actor.school_id
    changes = student_update.model_dump(exclude_unset=True)
    for required in ("student_code", "full_name", "status"):
        if required in changes and changes[required] is None:
            raise ValidationError("INVALID_FIELD", f"{required} cannot be cleared.")
    class_change = "class_id" in changes
    new_class_id = changes.pop("class_id", None)

    def work(tx: DatabaseService):
        student = get_student(tx, school_id, student_id)
        before = snapshot(student, SNAPSHOT_FIELDS)
        new_code = changes.get("student_code")
        if new_code and new_code != student.student_code and tx.get_student_by_code(school_id, new_code) is not None:
            raise ConflictError("STUDENT_CODE_EXISTS", f"Student code {new_code} already exists in this school.")
        for field in PROFILE_FIELDS:
            if field in changes:
                setattr(student, field, _enum_value(changes[field]))
        if class_change and new_class_id != student.class_id:
            _move_student(tx, student, new_class_id, actor.id, reason="Class changed from student profile")
        tx.session.flush()
        return student, before

    with audit_trail(db, actor, "STUDENT_UPDATE", "Student", resource_id=student_id) as trail:
        student, before = db.run_in_transaction(work, label="update_student")
        trail.before = before
        trail.after = snapshot(student, SNAPSHOT_FIELDS)

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, *_linked_user_ids(db, student_id))
    return student


# --- Transfer ---

def transfer_student(
    transfer: student_model.TransferRequest,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Student:
    """
    Moves an enrolled student to another class atomically. A full target
    class raises CLASS_FULL and leaves the source class count untouched.
    """
    if not transfer.student_id or not transfer.new_class_id:
        raise ValidationError("MISSING_TRANSFER_FIELDS", "Both studentId and newClassId are required.")
    school_id = actor.school_id

    # Fail fast on anything that does not need the transaction's snapshot.
    student = get_student(db, school_id, transfer.student_id)
    if not student.class_id:
        raise ValidationError("STUDENT_NOT_ENROLLED", "The student is not enrolled in any class.")
    if student.class_id == transfer.new_class_id:
        raise ValidationError("ALREADY_IN_CLASS", "The student is already in this class.")
    get_class(db, school_id, transfer.new_class_id)

    def work(tx: DatabaseService):
        fresh = get_student(tx, school_id, transfer.student_id)
        if fresh.class_id == transfer.new_class_id:
            raise ValidationError("ALREADY_IN_CLASS", "The student is already in this class.")
        before = snapshot(fresh, SNAPSHOT_FIELDS)
        old_class, new_class = _move_student(tx, fresh, transfer.new_class_id, actor.id, transfer.reason)
        return fresh, before, old_class, new_class

    with audit_trail(db, actor, "STUDENT_TRANSFER", "Student", resource_id=transfer.student_id) as trail:
        student, before, old_class, new_class = db.run_in_transaction(work, label="transfer_student")
        trail.before = before
        trail.after = snapshot(student, SNAPSHOT_FIELDS)
        trail.metadata = {"fromClassId": old_class.id if old_class else None, "toClassId": new_class.id}

    logger.info(
        "Transferred student %s from %s to %s",
        student.id, old_class.id if old_class else None, new_class.id,
    )
    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, *_linked_user_ids(db, student.id))
    return student


# --- Delete ---

def delete_student(student_id: str, db: DatabaseService, actor, cache: Optional[CacheService] = None) -> None:
    """Deletes a student with their scores, attendance marks and payment records, and frees their seat."""
    school_id = actor.school_id
    linked_users = _linked_user_ids(db, student_id)

    def work(tx: DatabaseService) -> dict:
        student = get_student(tx, school_id, student_id)
        before = snapshot(student, SNAPSHOT_FIELDS)
        if student.class_id:
            class_obj = tx.get_class_by_id(student.class_id, school_id)
            if class_obj is not None:
                invariants.release_seat(class_obj)
        tx.delete_scores_for_student(school_id, student_id)
        tx.delete_attendance_for_student(school_id, student_id)
        tx.delete_payments_for_student(school_id, student_id)
        tx.delete_student(student)
        tx.adjust_school_counters(school_id, total_students=-1)
        return before

    with audit_trail(db, actor, "STUDENT_DELETE", "Student", resource_id=student_id) as trail:
        trail.before = db.run_in_transaction(work, label="delete_student")

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, *linked_users)


# --- Bulk import ---

def bulk_import_students(
    rows: List[student_model.StudentCreate],
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> student_model.BulkImportResult:
    """
    Creates students row by row. Each row is its own unit of work, so one bad
    row (duplicate code, full class) is reported without undoing the others.
    """
    school_id = actor.school_id
    created = 0
    errors: List[student_model.BulkImportRowError] = []

    for index, row in enumerate(rows, start=1):
        try:
            db.run_in_transaction(lambda tx, row=row: _insert_student(tx, school_id, row), label="import_student")
            created += 1
        except AppError as exc:
            errors.append(student_model.BulkImportRowError(
                row=index, student_code=row.student_code, code=exc.code, message=exc.message,
            ))

    if created:
        invalidate_school_metrics(cache, school_id)
    record_audit(
        db, actor, "STUDENT_BULK_IMPORT", "Student",
        after={"created": created, "failed": len(errors)},
        outcome="success" if created or not errors else "failure",
    )
    logger.info("Bulk import into school %s: %d created, %d failed", school_id, created, len(errors))
    return student_model.BulkImportResult(created=created, failed=len(errors), errors=errors)
