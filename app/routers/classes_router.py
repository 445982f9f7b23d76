# /app/routers/classes_router.py

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.cache import CacheService, get_cache
from app.core.deps import require_permission
from app.db.models.user_models import User
from ..models import class_model, student_model
from ..services import class_service, student_service
from ..services.database_service import DatabaseService, get_db_service

router = APIRouter()

# --- CLASS COLLECTION ENDPOINTS (/api/classes) ---

@router.get("", response_model=List[class_model.ClassRead], summary="List Classes")
def list_classes(
    grade: Optional[int] = Query(default=None, ge=10, le=12),
    academic_year: Optional[str] = Query(default=None, alias="academicYear"),
    class_status: Optional[class_model.ClassStatus] = Query(default=None, alias="status"),
    homeroom_teacher_id: Optional[str] = Query(default=None, alias="homeroomTeacherId"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return class_service.list_classes(
        db, current_user.school_id,
        grade=grade,
        academic_year=academic_year,
        status=class_status.value if class_status else None,
        homeroom_teacher_id=homeroom_teacher_id,
    )


@router.post("", response_model=class_model.ClassRead, status_code=status.HTTP_201_CREATED, summary="Create a Class")
def create_class(
    class_create: class_model.ClassCreate,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return class_service.create_class(class_create, db, current_user, cache)

# --- INDIVIDUAL CLASS RESOURCE ENDPOINTS (/api/classes/{class_id}) ---

@router.get("/{class_id}", response_model=class_model.ClassRead, summary="Get a Single Class")
def get_class(
    class_id: str,
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return class_service.get_class(db, current_user.school_id, class_id)


@router.put("/{class_id}", response_model=class_model.ClassRead, summary="Update a Class")
def update_class(
    class_id: str,
    class_update: class_model.ClassUpdate,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return class_service.update_class(class_id, class_update, db, current_user, cache)


@router.delete("/{class_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an Empty Class")
def delete_class(
    class_id: str,
    current_user: User = Depends(require_permission("can_delete")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    class_service.delete_class(class_id, db, current_user, cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{class_id}/statistics", response_model=class_model.ClassStatistics, summary="Class Enrolment Statistics")
def get_class_statistics(
    class_id: str,
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return class_service.get_class_statistics(db, current_user.school_id, class_id)

# --- STUDENT SUB-RESOURCE ENDPOINTS ---

@router.get("/{class_id}/students", response_model=List[student_model.Student], summary="Students of a Class")
def list_class_students(
    class_id: str,
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    class_service.get_class(db, current_user.school_id, class_id)
    return student_service.list_students(db, current_user.school_id, class_id=class_id)
