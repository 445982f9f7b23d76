# /app/services/workspace_service.py

"""
The workspace registry: a school -> class tree of stable identifiers.

Everything here runs inside the caller's unit of work and only flushes, so a
failure while syncing a workspace rolls back the class write that triggered
it. All functions are idempotent: calling them again with unchanged input
returns the same workspace with the same code and path.
"""

import re
import uuid

from app.core.exceptions import NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.class_student_models import Class
from app.db.models.school_models import School, Workspace
from .database_service import DatabaseService

logger = get_logger("workspace_service")

PATH_SEPARATOR = "::"

# Class status -> workspace status.
_STATUS_MAP = {
    "active": "active",
    "inactive": "inactive",
    "completed": "archived",
}


def _new_workspace_id() -> str:
    return f"wsp_{uuid.uuid4().hex[:12]}"


def build_code(prefix: str, identifier: str, fallback: str) -> str:
    """`PREFIX-IDENTIFIER` with every non-alphanumeric character stripped."""
    sanitized = re.sub(r"[^A-Za-z0-9]", "", identifier or "")
    if not sanitized:
        sanitized = re.sub(r"[^A-Za-z0-9]", "", fallback)[-6:]
    return f"{prefix}-{sanitized.upper()}"


def build_path(*segments: str) -> str:
    return PATH_SEPARATOR.join(segments)


def map_class_status(status: str) -> str:
    return _STATUS_MAP.get((status or "").lower(), "inactive")


def _unique_code(db: DatabaseService, school_id: str, code: str, entity_id: str, exclude_id: str = None) -> str:
    # Two class codes can sanitise to the same string ("10A-1", "10A1").
    if not db.workspace_code_taken(school_id, code, exclude_id):
        return code
    suffix = re.sub(r"[^A-Za-z0-9]", "", entity_id)[-6:].upper()
    return f"{code}-{suffix}"


def ensure_school_workspace(db: DatabaseService, school: School) -> Workspace:
    """
    Returns the school's workspace, creating it on first use, and back-fills
    the denormalised reference on the school row.
    """
    if school is None:
        raise NotFoundError("SCHOOL_NOT_FOUND", "School not found for workspace creation.")

    workspace = db.get_workspace_by_id(school.workspace_id)
    if workspace is None:
        workspace = db.find_workspace(school.id, "school", school.id)

    if workspace is None:
        code = build_code("SCH", school.school_code or school.school_name, school.id)
        workspace = db.add_workspace(Workspace(
            id=_new_workspace_id(),
            school_id=school.id,
            type="school",
            linked_entity_id=school.id,
            name=school.school_name,
            code=code,
            path=build_path(f"school:{school.id}"),
            meta={
                "schoolCode": school.school_code,
                "plan": school.subscription_plan,
                "timezone": (school.settings or {}).get("timezone"),
            },
            status="active" if school.is_active else "inactive",
        ))
        logger.info("Created workspace %s for school %s", workspace.code, school.id)

    if (school.workspace_id, school.workspace_code, school.workspace_path) != (workspace.id, workspace.code, workspace.path):
        school.workspace_id = workspace.id
        school.workspace_code = workspace.code
        school.workspace_path = workspace.path
        db.session.flush()
    return workspace


def sync_class_workspace(db: DatabaseService, class_obj: Class) -> Workspace:
    """
    Upserts the workspace of a class under its school's workspace and copies
    the reference onto the class. Code, path, name and metadata are
    recomputed on every call so renames propagate.
    """
    if class_obj is None:
        raise NotFoundError("CLASS_NOT_FOUND", "Class not found for workspace sync.")
    if not class_obj.name:
        raise ValidationError("WORKSPACE_SYNC_FAILED", f"Class {class_obj.id} has no name; cannot create its workspace.")

    school = db.get_school_by_id(class_obj.school_id)
    school_workspace = ensure_school_workspace(db, school)

    workspace = db.find_workspace(class_obj.school_id, "class", class_obj.id)
    code = _unique_code(
        db,
        class_obj.school_id,
        build_code("CLS", class_obj.class_code or class_obj.name, class_obj.id),
        class_obj.id,
        exclude_id=workspace.id if workspace else None,
    )
    values = {
        "parent_workspace_id": school_workspace.id,
        "name": class_obj.name,
        "code": code,
        "path": build_path(school_workspace.path, f"class:{class_obj.id}"),
        "meta": {
            "grade": class_obj.grade,
            "academicYear": class_obj.academic_year,
            "capacity": class_obj.capacity,
            "classroom": class_obj.classroom or "",
        },
        "status": map_class_status(class_obj.status),
    }

    if workspace is None:
        workspace = db.add_workspace(Workspace(
            id=_new_workspace_id(),
            school_id=class_obj.school_id,
            type="class",
            linked_entity_id=class_obj.id,
            **values,
        ))
    else:
        changed = False
        for field, value in values.items():
            if getattr(workspace, field) != value:
                setattr(workspace, field, value)
                changed = True
        if changed:
            db.session.flush()

    if (class_obj.workspace_id, class_obj.workspace_code, class_obj.workspace_path) != (workspace.id, workspace.code, workspace.path):
        class_obj.workspace_id = workspace.id
        class_obj.workspace_code = workspace.code
        class_obj.workspace_path = workspace.path
        db.session.flush()
    return workspace


def ensure_class_workspace_id(db: DatabaseService, class_obj: Class) -> str:
    """The class's workspace id, syncing the workspace first if it is missing."""
    if class_obj.workspace_id and db.get_workspace_by_id(class_obj.workspace_id) is not None:
        return class_obj.workspace_id
    return sync_class_workspace(db, class_obj).id


def remove_class_workspace(db: DatabaseService, class_obj: Class) -> bool:
    """Deletes the class workspace only; the school workspace is left alone."""
    workspace = db.find_workspace(class_obj.school_id, "class", class_obj.id)
    if workspace is None:
        return False
    db.delete_workspace(workspace)
    return True
