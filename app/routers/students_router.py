# /app/routers/students_router.py

from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.cache import CacheService, get_cache
from app.core.deps import page_params, require_permission
from app.db.models.user_models import User
from ..models import student_model
from ..models.common_model import Page, PageParams
from ..services import student_service
from ..services.database_service import DatabaseService, get_db_service

router = APIRouter()


@router.get("", response_model=Page[student_model.Student], summary="List Students")
def list_students(
    class_id: Optional[str] = Query(default=None, alias="classId"),
    student_status: Optional[student_model.StudentStatus] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    academic_year: Optional[str] = Query(default=None, alias="academicYear"),
    params: PageParams = Depends(page_params()),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return student_service.page_students(
        db, current_user.school_id, params,
        class_id=class_id,
        status=student_status.value if student_status else None,
        search=search,
        academic_year=academic_year,
    )


@router.post("", response_model=student_model.Student, status_code=status.HTTP_201_CREATED, summary="Create a Student")
def create_student(
    student_create: student_model.StudentCreate,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return student_service.create_student(student_create, db, current_user, cache)


@router.post("/transfer", response_model=student_model.Student, summary="Transfer a Student to Another Class")
def transfer_student(
    transfer: student_model.TransferRequest,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return student_service.transfer_student(transfer, db, current_user, cache)


@router.post("/bulk-import", response_model=student_model.BulkImportResult, summary="Import Students")
def bulk_import_students(
    body: student_model.BulkImportRequest,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return student_service.bulk_import_students(body.students, db, current_user, cache)


@router.get("/statistics", response_model=student_model.StudentStatistics, summary="Student Headcounts")
def get_student_statistics(
    academic_year: Optional[str] = Query(default=None, alias="academicYear"),
    class_id: Optional[str] = Query(default=None, alias="classId"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return student_service.get_student_statistics(db, current_user.school_id, academic_year=academic_year, class_id=class_id)


@router.get("/{student_id}", response_model=student_model.Student, summary="Get a Single Student")
def get_student(
    student_id: str,
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return student_service.get_student(db, current_user.school_id, student_id)


@router.put("/{student_id}", response_model=student_model.Student, summary="Update a Student")
def update_student(
    student_id: str,
    student_update: student_model.StudentUpdate,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return student_service.update_student(student_id, student_update, db, current_user, cache)


@router.delete("/{student_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a Student")
def delete_student(
    student_id: str,
    current_user: User = Depends(require_permission("can_delete")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    student_service.delete_student(student_id, db, current_user, cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
