# /app/routers/payments_router.py

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.cache import CacheService, get_cache
from app.core.deps import page_params, require_permission
from app.db.models.user_models import User
from ..models import payment_model
from ..models.common_model import Page, PageParams
from ..services import payment_service
from ..services.database_service import DatabaseService, get_db_service

router = APIRouter()

# --- Fees (/api/fees) ---

fees_router = APIRouter()


@fees_router.get("", response_model=List[payment_model.FeeRead], summary="List Fees")
def list_fees(
    academic_year: Optional[str] = Query(default=None, alias="academicYear"),
    semester: Optional[int] = Query(default=None, ge=1, le=3),
    fee_type: Optional[str] = Query(default=None, alias="feeType"),
    is_active: Optional[bool] = Query(default=None, alias="isActive"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.list_fees(
        db, current_user.school_id,
        academic_year=academic_year, semester=semester, fee_type=fee_type, is_active=is_active,
    )


@fees_router.post("", response_model=payment_model.FeeRead, status_code=status.HTTP_201_CREATED, summary="Create a Fee")
def create_fee(
    fee_create: payment_model.FeeCreate,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.create_fee(fee_create, db, current_user)


@fees_router.get("/{fee_id}", response_model=payment_model.FeeRead, summary="Get a Fee")
def get_fee(
    fee_id: str,
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.get_fee(db, current_user.school_id, fee_id)


@fees_router.put("/{fee_id}", response_model=payment_model.FeeRead, summary="Update a Fee")
def update_fee(
    fee_id: str,
    fee_update: payment_model.FeeUpdate,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.update_fee(fee_id, fee_update, db, current_user)


@fees_router.delete("/{fee_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Deactivate a Fee")
def delete_fee(
    fee_id: str,
    current_user: User = Depends(require_permission("can_delete")),
    db: DatabaseService = Depends(get_db_service),
):
    payment_service.delete_fee(fee_id, db, current_user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# --- Payments (/api/payments) ---

@router.get("", response_model=Page[payment_model.PaymentRead], summary="List Payment Records")
def list_payments(
    student_id: Optional[str] = Query(default=None, alias="studentId"),
    fee_id: Optional[str] = Query(default=None, alias="feeId"),
    payment_status: Optional[payment_model.PaymentStatus] = Query(default=None, alias="status"),
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    params: PageParams = Depends(page_params(default_limit=50)),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.page_payments(
        db, current_user.school_id, params,
        student_id=student_id,
        fee_id=fee_id,
        status=payment_status.value if payment_status else None,
        start_date=start_date,
        end_date=end_date,
    )


@router.post("", response_model=payment_model.PaymentRead, status_code=status.HTTP_201_CREATED, summary="Create a Payment Record")
def create_payment_record(
    payment_create: payment_model.PaymentCreate,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    payment = payment_service.create_payment_record(payment_create, db, current_user, cache)
    return payment_service.to_read_model(payment)


@router.post("/bulk-create", response_model=payment_model.BulkPaymentResult, summary="Create Records for a Whole Class or School")
def bulk_create_payments(
    request: payment_model.BulkPaymentCreate,
    current_user: User = Depends(require_permission("can_create")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return payment_service.bulk_create_payments(request, db, current_user, cache)


@router.get("/overdue", response_model=payment_model.OverdueReport, summary="Overdue Payment Records")
def get_overdue_payments(
    class_id: Optional[str] = Query(default=None, alias="classId"),
    grade: Optional[int] = Query(default=None, ge=1, le=12),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.get_overdue_payments(db, current_user.school_id, class_id=class_id, grade=grade)


@router.get("/statistics", response_model=payment_model.FinancialStatistics, summary="Financial Statistics")
def get_financial_statistics(
    academic_year: Optional[str] = Query(default=None, alias="academicYear"),
    start_date: Optional[date] = Query(default=None, alias="startDate"),
    end_date: Optional[date] = Query(default=None, alias="endDate"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.get_financial_statistics(
        db, current_user.school_id, academic_year=academic_year, start_date=start_date, end_date=end_date,
    )


@router.get("/report", response_model=payment_model.PaymentReport, summary="Collections Report")
def get_payment_report(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    fee_type: Optional[str] = Query(default=None, alias="feeType"),
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.get_payment_report(db, current_user.school_id, start_date, end_date, fee_type=fee_type)


@router.get("/students/{student_id}", response_model=payment_model.StudentPaymentStatus, summary="Payment Status of a Student")
def get_student_payment_status(
    student_id: str,
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
):
    return payment_service.get_student_payment_status(db, current_user.school_id, student_id)


@router.post("/{payment_id}/record", response_model=payment_model.PaymentRead, summary="Record a Collection")
def record_payment(
    payment_id: str,
    request: payment_model.RecordPaymentRequest,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    payment = payment_service.record_payment(payment_id, request, db, current_user, cache)
    return payment_service.to_read_model(payment)


@router.post("/{payment_id}/discount", response_model=payment_model.PaymentRead, summary="Apply a Discount")
def apply_discount(
    payment_id: str,
    request: payment_model.ApplyDiscountRequest,
    current_user: User = Depends(require_permission("can_update")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    payment = payment_service.apply_discount(payment_id, request, db, current_user, cache)
    return payment_service.to_read_model(payment)


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a Payment Record")
def delete_payment(
    payment_id: str,
    current_user: User = Depends(require_permission("can_delete")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    payment_service.delete_payment(payment_id, db, current_user, cache)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
