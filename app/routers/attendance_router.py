# /app/routers/attendance_router.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.cache import CacheService, get_cache
from app.core.deps import page_params, require_permission
from app.db.models.user_models import User
from ..models import attendance_model
from ..models.common_model import Page, PageParams
from ..services import attendance_service
from ..services.database_service import DatabaseService, get_db_service

router = APIRouter()


@router.get("", response_model=Page[attendance_model.AttendanceRead], summary="List Attendance Marks")
def list_attendances(
    student_id: Optional[str] = Query(default=None, alias="studentId"),
    class_id: Optional[str] = Query(default=None, alias="classId"),
    attendance_status: Optional[attendance_model.AttendanceStatus] = Query(default=None, alias="status"),
    session: Optional[attendance_model.AttendanceSession] = None,
    on: Optional[date] = Query(default=None, alias="date"),
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    params: PageParams = Depends(page_params(default_limit=50)),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return attendance_service.page_attendances(
        db, current_user.school_id, params,
        student_id=student_id,
        class_id=class_id,
        status=attendance_status.value if attendance_status else None,
        session=session.value if session else None,
        on=on,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/statistics", response_model=attendance_model.AttendanceStatistics, summary="Attendance Statistics")
def get_statistics(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    class_id: Optional[str] = Query(default=None, alias="classId"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return attendance_service.get_statistics(db, current_user.school_id, start_date, end_date, class_id=class_id)


@router.get("/class", response_model=List[attendance_model.ClassDayRow], summary="A Class's Marks for One Day")
def class_attendance_by_date(
    class_id: str = Query(..., alias="classId"),
    on: date = Query(..., alias="date"),
    session: Optional[attendance_model.AttendanceSession] = None,
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return attendance_service.class_attendance_by_date(
        db, current_user.school_id, class_id, on, session=session.value if session else None,
    )


@router.post("/mark", response_model=attendance_model.MarkResult, summary="Mark a Class")
def mark_class_attendance(
    request: attendance_model.MarkAttendanceRequest,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return attendance_service.mark_class_attendance(request, db, current_user, cache)


@router.get("/student/{student_id}/report", response_model=attendance_model.StudentAttendanceReport, summary="Student Attendance Report")
def student_report(
    student_id: str,
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return attendance_service.student_report(db, current_user.school_id, student_id, start_date, end_date)


@router.get("/class/{class_id}/report", response_model=attendance_model.ClassAttendanceReport, summary="Class Attendance Report")
def class_report(
    class_id: str,
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return attendance_service.class_report(db, current_user.school_id, class_id, start_date, end_date)


@router.delete("/{attendance_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an Attendance Mark")
def delete_attendance(
    attendance_id: str,
    current_user: User = Depends(require_permission("can_delete")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    attendance_service.delete_attendance(attendance_id, db, current_user, cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
