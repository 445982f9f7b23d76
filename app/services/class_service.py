# /app/services/class_service.py

"""
This service module is the business logic layer for classes.

Creating, editing and deleting a class each run as one unit of work that
also synchronises the class workspace, so a class never exists without its
workspace and a failed sync leaves no class behind. The enrolment counter is
owned by the student operations; nothing here writes it.
"""

import uuid
from typing import List, Optional

import pandas as pd

from app.core.cache import CacheService, invalidate_school_metrics, invalidate_user_overview
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.class_student_models import Class
from ..models import class_model
from . import invariants, workspace_service
from .audit_service import audit_trail, snapshot
from .database_service import DatabaseService

logger = get_logger("class_service")

SNAPSHOT_FIELDS = (
    "name", "class_code", "grade", "academic_year", "homeroom_teacher_id",
    "capacity", "current_students", "classroom", "status", "workspace_id",
)
HOMEROOM_ROLES = ("teacher", "admin", "subadmin")


def _normalise_code(code: str) -> str:
    return code.strip().upper()


def _check_homeroom_teacher(db: DatabaseService, school_id: str, teacher_id: Optional[str]) -> None:
    if not teacher_id:
        return
    teacher = db.get_user_by_id(teacher_id, school_id)
    if teacher is None:
        raise NotFoundError("TEACHER_NOT_FOUND", "Homeroom teacher not found in this school.")
    if teacher.role not in HOMEROOM_ROLES:
        raise ValidationError("INVALID_HOMEROOM_TEACHER", "The homeroom teacher must be a teacher account.")


def get_class(db: DatabaseService, school_id: str, class_id: str) -> Class:
    class_obj = db.get_class_by_id(class_id, school_id)
    if class_obj is None:
        raise NotFoundError("CLASS_NOT_FOUND", f"Class with ID {class_id} not found")
    return class_obj


def list_classes(
    db: DatabaseService,
    school_id: str,
    grade: Optional[int] = None,
    academic_year: Optional[str] = None,
    status: Optional[str] = None,
    homeroom_teacher_id: Optional[str] = None,
) -> List[Class]:
    return db.list_classes(
        school_id, grade=grade, academic_year=academic_year, status=status, homeroom_teacher_id=homeroom_teacher_id
    )


def create_class(
    class_data: class_model.ClassCreate,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Class:
    school_id = actor.school_id
    code = _normalise_code(class_data.class_code)
    _check_homeroom_teacher(db, school_id, class_data.homeroom_teacher_id)

    def work(tx: DatabaseService) -> Class:
        if tx.get_class_by_code(school_id, code) is not None:
            raise ConflictError("CLASS_CODE_EXISTS", f"Class code {code} already exists in this school.")
        class_obj = tx.add_class(Class(
            id=f"cls_{uuid.uuid4().hex[:12]}",
            school_id=school_id,
            class_code=code,
            name=class_data.name.strip(),
            grade=class_data.grade,
            academic_year=class_data.academic_year,
            homeroom_teacher_id=class_data.homeroom_teacher_id,
            capacity=class_data.capacity,
            current_students=0,
            classroom=class_data.classroom,
            status=class_data.status.value,
            notes=class_data.notes,
        ))
        # A class is only usable with its workspace; a failure here rolls the insert back.
        workspace_service.sync_class_workspace(tx, class_obj)
        tx.adjust_school_counters(school_id, total_classes=1)
        return class_obj

    with audit_trail(db, actor, "CLASS_CREATE", "Class") as trail:
        class_obj = db.run_in_transaction(work, label="create_class")
        trail.resource_id = class_obj.id
        trail.after = snapshot(class_obj, SNAPSHOT_FIELDS)

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, class_obj.homeroom_teacher_id)
    logger.info("Created class %s (%s) in school %s", class_obj.class_code, class_obj.id, school_id)
    return class_obj


def update_class(
    class_id: str,
    class_update: class_model.ClassUpdate,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Class:
    school_id = actor.school_id
    changes = class_update.model_dump(exclude_unset=True)
    if "current_students" in changes:
        raise ValidationError("READ_ONLY_FIELD", "currentStudents is maintained by enrolment operations.")
    if "class_code" in changes and changes["class_code"]:
        changes["class_code"] = _normalise_code(changes["class_code"])
    if "name" in changes and changes["name"]:
        changes["name"] = changes["name"].strip()
    if "status" in changes and changes["status"] is not None:
        changes["status"] = class_model.ClassStatus(changes["status"]).value
    for required in ("name", "class_code", "grade", "academic_year", "capacity", "status"):
        if required in changes and changes[required] is None:
            raise ValidationError("INVALID_FIELD", f"{required} cannot be cleared.")
    if "homeroom_teacher_id" in changes:
        _check_homeroom_teacher(db, school_id, changes["homeroom_teacher_id"])

    previous_teacher = {}

    def work(tx: DatabaseService):
        class_obj = get_class(tx, school_id, class_id)
        previous_teacher["id"] = class_obj.homeroom_teacher_id
        before = snapshot(class_obj, SNAPSHOT_FIELDS)
        if "capacity" in changes:
            invariants.ensure_capacity_fits(class_obj, changes["capacity"])
        new_code = changes.get("class_code")
        if new_code and new_code != class_obj.class_code and tx.get_class_by_code(school_id, new_code) is not None:
            raise ConflictError("CLASS_CODE_EXISTS", f"Class code {new_code} already exists in this school.")
        for field, value in changes.items():
            setattr(class_obj, field, value)
        tx.session.flush()
        workspace_service.sync_class_workspace(tx, class_obj)
        return class_obj, before

    with audit_trail(db, actor, "CLASS_UPDATE", "Class", resource_id=class_id) as trail:
        class_obj, before = db.run_in_transaction(work, label="update_class")
        trail.before = before
        trail.after = snapshot(class_obj, SNAPSHOT_FIELDS)

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, previous_teacher.get("id"), class_obj.homeroom_teacher_id)
    return class_obj


def delete_class(class_id: str, db: DatabaseService, actor, cache: Optional[CacheService] = None) -> None:
    """Deletes an empty class together with its workspace."""
    school_id = actor.school_id

    def work(tx: DatabaseService) -> dict:
        class_obj = get_class(tx, school_id, class_id)
        enrolled = len(tx.get_student_ids_in_class(school_id, class_id))
        if class_obj.current_students > 0 or enrolled > 0:
            raise ConflictError(
                "CLASS_NOT_EMPTY",
                f"Class still has {max(enrolled, class_obj.current_students)} students. Move them first.",
            )
        before = snapshot(class_obj, SNAPSHOT_FIELDS)
        workspace_service.remove_class_workspace(tx, class_obj)
        tx.delete_attendance_for_class(school_id, class_id)
        tx.delete_class(class_obj)
        tx.adjust_school_counters(school_id, total_classes=-1)
        return before

    with audit_trail(db, actor, "CLASS_DELETE", "Class", resource_id=class_id) as trail:
        trail.before = db.run_in_transaction(work, label="delete_class")

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, (trail.before or {}).get("homeroom_teacher_id"))


def get_class_statistics(db: DatabaseService, school_id: str, class_id: str) -> class_model.ClassStatistics:
    class_obj = get_class(db, school_id, class_id)
    students = db.list_students(school_id, class_id=class_id)
    df = pd.DataFrame(
        [{"gender": s.gender or "unknown", "status": s.status} for s in students],
        columns=["gender", "status"],
    )
    return class_model.ClassStatistics(
        class_id=class_obj.id,
        capacity=class_obj.capacity,
        current_students=class_obj.current_students,
        available_seats=max(0, class_obj.capacity - class_obj.current_students),
        by_gender={str(k): int(v) for k, v in df["gender"].value_counts().items()},
        by_status={str(k): int(v) for k, v in df["status"].value_counts().items()},
    )
