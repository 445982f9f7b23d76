# /app/services/payment_service.py

"""
Fees and the per-student payment records that collect them.

`status` on a payment is always recomputed from its amounts and never
accepted from the client. Collections re-read the payment inside the unit
of work and are checked against the remaining balance there; two cashiers
collecting on the same record collide on its version column, and the retry
re-checks the balance on fresh data.
"""

import uuid
from datetime import date
from typing import List, Optional

import pandas as pd

from app.core.cache import CacheService, invalidate_school_metrics, invalidate_user_overview
from app.core.clock import as_utc, day_range, utc_today, utcnow
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.finance_models import Fee, Payment
from ..models import payment_model
from ..models.common_model import Page, PageParams
from . import invariants, tenant_service
from .audit_service import audit_trail, snapshot
from .class_service import get_class
from .database_service import DatabaseService
from .student_service import get_student

logger = get_logger("payment_service")

SNAPSHOT_FIELDS = ("student_id", "fee_id", "amount_due", "discount", "amount_paid", "status", "paid_date")
FEE_SNAPSHOT_FIELDS = ("fee_name", "fee_type", "amount", "academic_year", "semester", "due_date", "is_active")


def get_fee(db: DatabaseService, school_id: str, fee_id: str) -> Fee:
    fee = db.get_fee_by_id(fee_id, school_id)
    if fee is None:
        raise NotFoundError("FEE_NOT_FOUND", f"Fee with ID {fee_id} not found")
    return fee


def get_payment(db: DatabaseService, school_id: str, payment_id: str) -> Payment:
    payment = db.get_payment_by_id(payment_id, school_id)
    if payment is None:
        raise NotFoundError("PAYMENT_NOT_FOUND", f"Payment with ID {payment_id} not found")
    return payment


def list_fees(db: DatabaseService, school_id: str, **filters) -> List[Fee]:
    return db.list_fees(school_id, **{k: v for k, v in filters.items() if v is not None})


def list_payments(
    db: DatabaseService,
    school_id: str,
    student_id: Optional[str] = None,
    fee_id: Optional[str] = None,
    status: Optional[str] = None,
) -> List[Payment]:
    return db.list_payments(school_id, student_id=student_id, fee_id=fee_id, status=status)


def page_payments(
    db: DatabaseService,
    school_id: str,
    params: PageParams,
    student_id: Optional[str] = None,
    fee_id: Optional[str] = None,
    status: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> Page[payment_model.PaymentRead]:
    """One page of records, newest first; the date range applies to when a record was created."""
    filters = {"student_id": student_id, "fee_id": fee_id, "status": status}
    if start_date and end_date:
        filters["created_from"], filters["created_to"] = day_range(start_date, end_date)
    payments, total = db.page_payments(school_id, params.offset, params.limit, **filters)
    return Page[payment_model.PaymentRead].build([to_read_model(p) for p in payments], total, params)


def to_read_model(payment: Payment) -> payment_model.PaymentRead:
    read = payment_model.PaymentRead.model_validate(payment)
    read.remaining = payment.remaining
    return read


def _new_payment(school_id: str, student_id: str, fee: Fee, discount: float = 0, note: Optional[str] = None) -> Payment:
    invariants.validate_discount(fee.amount, discount)
    return Payment(
        id=f"pay_{uuid.uuid4().hex[:12]}",
        school_id=school_id,
        student_id=student_id,
        fee_id=fee.id,
        amount_due=fee.amount,
        discount=discount,
        amount_paid=0,
        status=invariants.derive_payment_status(fee.amount, discount, 0),
        note=note,
    )


# --- Fees ---

def create_fee(fee_data: payment_model.FeeCreate, db: DatabaseService, actor) -> Fee:
    school_id = actor.school_id
    tenant_service.ensure_semester_allowed(db, school_id, fee_data.semester)

    def work(tx: DatabaseService) -> Fee:
        return tx.add_fee(Fee(
            id=f"fee_{uuid.uuid4().hex[:12]}",
            school_id=school_id,
            fee_name=fee_data.fee_name.strip(),
            fee_type=fee_data.fee_type,
            amount=fee_data.amount,
            academic_year=fee_data.academic_year,
            semester=fee_data.semester,
            due_date=fee_data.due_date,
            description=fee_data.description,
        ))

    with audit_trail(db, actor, "FEE_CREATE", "Fee") as trail:
        fee = db.run_in_transaction(work, label="create_fee")
        trail.resource_id = fee.id
        trail.after = snapshot(fee, FEE_SNAPSHOT_FIELDS)
    return fee


def update_fee(fee_id: str, fee_update: payment_model.FeeUpdate, db: DatabaseService, actor) -> Fee:
    """Existing payment records keep the amount due they were created with."""
    school_id = actor.school_id
    changes = fee_update.model_dump(exclude_unset=True)
    if "semester" in changes:
        tenant_service.ensure_semester_allowed(db, school_id, changes["semester"])

    def work(tx: DatabaseService):
        fee = get_fee(tx, school_id, fee_id)
        before = snapshot(fee, FEE_SNAPSHOT_FIELDS)
        for field, value in changes.items():
            if field == "fee_name" and value:
                value = value.strip()
            if value is None and field in ("fee_name", "fee_type", "amount", "is_active"):
                continue
            setattr(fee, field, value)
        tx.session.flush()
        return fee, before

    with audit_trail(db, actor, "FEE_UPDATE", "Fee", resource_id=fee_id) as trail:
        fee, before = db.run_in_transaction(work, label="update_fee")
        trail.before = before
        trail.after = snapshot(fee, FEE_SNAPSHOT_FIELDS)
    return fee


def delete_fee(fee_id: str, db: DatabaseService, actor) -> None:
    """Deactivates the fee; its payment records stay collectable."""
    school_id = actor.school_id

    def work(tx: DatabaseService) -> dict:
        fee = get_fee(tx, school_id, fee_id)
        before = snapshot(fee, FEE_SNAPSHOT_FIELDS)
        fee.is_active = False
        tx.session.flush()
        return before

    with audit_trail(db, actor, "FEE_DELETE", "Fee", resource_id=fee_id) as trail:
        trail.before = db.run_in_transaction(work, label="delete_fee")
        trail.after = {**trail.before, "is_active": False}
        trail.metadata = {"paymentRecords": db.count_payments_for_fee(school_id, fee_id)}


def _ensure_fee_active(fee: Fee) -> None:
    if not fee.is_active:
        raise ConflictError("FEE_INACTIVE", "This fee has been deactivated; no new records can be created for it.")


# --- Payment records ---

def create_payment_record(
    payment_data: payment_model.PaymentCreate,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Payment:
    school_id = actor.school_id
    fee = get_fee(db, school_id, payment_data.fee_id)
    _ensure_fee_active(fee)
    get_student(db, school_id, payment_data.student_id)
    invariants.validate_discount(fee.amount, payment_data.discount)

    def work(tx: DatabaseService) -> Payment:
        if tx.find_payment(payment_data.student_id, fee.id) is not None:
            raise ConflictError("PAYMENT_EXISTS", "A payment record for this student and fee already exists.")
        return tx.add_payment(_new_payment(school_id, payment_data.student_id, fee, payment_data.discount, payment_data.note))

    with audit_trail(db, actor, "PAYMENT_CREATE", "Payment") as trail:
        payment = db.run_in_transaction(work, label="create_payment_record")
        trail.resource_id = payment.id
        trail.after = snapshot(payment, SNAPSHOT_FIELDS)

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, *db.get_user_ids_for_students([payment.student_id]))
    return payment


def bulk_create_payments(
    request: payment_model.BulkPaymentCreate,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> payment_model.BulkPaymentResult:
    """Creates a record of `fee` for every studying student (of one class, when given) that lacks one."""
    school_id = actor.school_id
    fee = get_fee(db, school_id, request.fee_id)
    _ensure_fee_active(fee)
    if request.class_id:
        get_class(db, school_id, request.class_id)

    def work(tx: DatabaseService) -> payment_model.BulkPaymentResult:
        students = tx.list_students(school_id, class_id=request.class_id, status="studying")
        existing = {payment.student_id for payment in tx.list_payments(school_id, fee_id=fee.id)}
        created = 0
        for student in students:
            if student.id in existing:
                continue
            tx.add_payment(_new_payment(school_id, student.id, fee))
            created += 1
        return payment_model.BulkPaymentResult(created=created, skipped=len(students) - created)

    with audit_trail(db, actor, "PAYMENT_BULK_CREATE", "Payment", resource_id=fee.id) as trail:
        result = db.run_in_transaction(work, label="bulk_create_payments")
        trail.after = result.model_dump()
        trail.metadata = {"classId": request.class_id}

    if result.created:
        invalidate_school_metrics(cache, school_id)
    logger.info("Created %d payment records for fee %s (%d skipped)", result.created, fee.id, result.skipped)
    return result


def record_payment(
    payment_id: str,
    request: payment_model.RecordPaymentRequest,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Payment:
    """Adds a collection to a payment record and recomputes its status."""
    school_id = actor.school_id

    def work(tx: DatabaseService):
        payment = get_payment(tx, school_id, payment_id)
        before = snapshot(payment, SNAPSHOT_FIELDS)
        invariants.ensure_payment_within_balance(payment.amount_due, payment.discount, payment.amount_paid, request.amount)
        payment.amount_paid = round((payment.amount_paid or 0) + request.amount, 2)
        payment.status = invariants.derive_payment_status(payment.amount_due, payment.discount, payment.amount_paid)
        payment.payment_method = request.payment_method.value
        if request.transaction_ref:
            payment.transaction_ref = request.transaction_ref
        if request.note:
            payment.note = request.note
        payment.collected_by = actor.id
        payment.last_collected_at = utcnow()
        if payment.status == invariants.PAYMENT_PAID and payment.paid_date is None:
            payment.paid_date = utcnow()
        tx.session.flush()
        return payment, before

    with audit_trail(db, actor, "PAYMENT_RECORD", "Payment", resource_id=payment_id) as trail:
        payment, before = db.run_in_transaction(work, label="record_payment")
        trail.before = before
        trail.after = snapshot(payment, SNAPSHOT_FIELDS)
        trail.metadata = {"amount": request.amount, "method": request.payment_method.value}

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, *db.get_user_ids_for_students([payment.student_id]))
    return payment


def apply_discount(
    payment_id: str,
    request: payment_model.ApplyDiscountRequest,
    db: DatabaseService,
    actor,
    cache: Optional[CacheService] = None,
) -> Payment:
    """
    Replaces the discount on a record. The record is re-read inside the unit
    of work so the check runs against the amount collected at commit time;
    a collection racing the discount collides on the version column.
    """
    school_id = actor.school_id

    def work(tx: DatabaseService):
        payment = get_payment(tx, school_id, payment_id)
        before = snapshot(payment, SNAPSHOT_FIELDS)
        invariants.ensure_discount_fits(payment.amount_due, payment.amount_paid, request.discount)
        payment.discount = request.discount
        payment.status = invariants.derive_payment_status(payment.amount_due, payment.discount, payment.amount_paid)
        if payment.status == invariants.PAYMENT_PAID and payment.paid_date is None:
            payment.paid_date = utcnow()
        tx.session.flush()
        return payment, before

    with audit_trail(db, actor, "PAYMENT_DISCOUNT", "Payment", resource_id=payment_id) as trail:
        payment, before = db.run_in_transaction(work, label="apply_discount")
        trail.before = before
        trail.after = snapshot(payment, SNAPSHOT_FIELDS)
        trail.metadata = {"reason": request.reason}

    invalidate_school_metrics(cache, school_id)
    invalidate_user_overview(cache, *db.get_user_ids_for_students([payment.student_id]))
    return payment


def get_student_payment_status(db: DatabaseService, school_id: str, student_id: str) -> payment_model.StudentPaymentStatus:
    get_student(db, school_id, student_id)
    payments = db.list_payments(school_id, student_id=student_id)
    total_due = sum(p.amount_due or 0 for p in payments)
    total_discount = sum(p.discount or 0 for p in payments)
    total_paid = sum(p.amount_paid or 0 for p in payments)
    return payment_model.StudentPaymentStatus(
        student_id=student_id,
        total_due=total_due,
        total_discount=total_discount,
        total_paid=total_paid,
        total_remaining=invariants.remaining_balance(total_due, total_discount, total_paid),
        payments=[to_read_model(p) for p in payments],
    )


def delete_payment(payment_id: str, db: DatabaseService, actor, cache: Optional[CacheService] = None) -> None:
    school_id = actor.school_id

    def work(tx: DatabaseService) -> dict:
        payment = get_payment(tx, school_id, payment_id)
        before = snapshot(payment, SNAPSHOT_FIELDS)
        tx.delete_payment(payment)
        return before

    with audit_trail(db, actor, "PAYMENT_DELETE", "Payment", resource_id=payment_id) as trail:
        trail.before = db.run_in_transaction(work, label="delete_payment")

    invalidate_school_metrics(cache, school_id)


# --- Reports ---

def _group_amounts(df: pd.DataFrame, key: str, value: str) -> List[payment_model.AmountGroup]:
    """Count and sum of `value` per `key`, largest total first."""
    if df.empty:
        return []
    grouped = (
        df.fillna({key: "unspecified"})
        .groupby(key)[value]
        .agg(["count", "sum"])
        .reset_index()
        .sort_values(["sum", key], ascending=[False, True])
    )
    return [
        payment_model.AmountGroup(key=str(row[key]), count=int(row["count"]), total=round(float(row["sum"]), 2))
        for _, row in grouped.iterrows()
    ]


def get_overdue_payments(
    db: DatabaseService,
    school_id: str,
    class_id: Optional[str] = None,
    grade: Optional[int] = None,
    today: Optional[date] = None,
) -> payment_model.OverdueReport:
    """Unsettled records of active fees past their due date, optionally for one class or grade."""
    today = today or utc_today()
    class_ids = None
    if class_id:
        get_class(db, school_id, class_id)
        class_ids = [class_id]
    elif grade:
        class_ids = [c.id for c in db.list_classes(school_id, grade=grade)]

    rows = []
    for payment in db.list_overdue_payments(school_id, today, class_ids):
        read = to_read_model(payment)
        rows.append(payment_model.OverduePayment(
            **read.model_dump(),
            student_code=payment.student.student_code if payment.student else None,
            full_name=payment.student.full_name if payment.student else None,
            fee_name=payment.fee.fee_name,
            fee_type=payment.fee.fee_type,
            due_date=payment.fee.due_date,
            days_overdue=(today - payment.fee.due_date).days,
        ))

    df = pd.DataFrame([{"fee_type": r.fee_type, "remaining": r.remaining} for r in rows])
    return payment_model.OverdueReport(
        total_overdue=len(rows),
        total_amount_overdue=round(sum(r.remaining for r in rows), 2),
        by_fee_type=_group_amounts(df, "fee_type", "remaining"),
        payments=rows,
    )


def get_financial_statistics(
    db: DatabaseService,
    school_id: str,
    academic_year: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> payment_model.FinancialStatistics:
    """
    The overview and status breakdown cover every record of the school. The
    collection breakdowns cover records with money collected, narrowed to the
    academic year of their fee and to the range of their last collection when
    given.
    """
    if not academic_year and not (start_date and end_date):
        raise ValidationError("MISSING_RANGE", "Provide an academic year or both a start and an end date.")

    payments = db.list_payments_with_fees(school_id)
    df = pd.DataFrame([
        {
            "status": p.status,
            "payable": (p.amount_due or 0) - (p.discount or 0),
            "amount_due": p.amount_due or 0,
            "discount": p.discount or 0,
            "amount_paid": p.amount_paid or 0,
            "payment_method": p.payment_method,
            "fee_type": p.fee.fee_type if p.fee else None,
            "academic_year": p.fee.academic_year if p.fee else None,
            "collected_at": as_utc(p.last_collected_at),
        }
        for p in payments
    ])
    if df.empty:
        overview = payment_model.FinancialOverview(total_due=0, total_paid=0, total_discount=0, total_remaining=0)
        return payment_model.FinancialStatistics(
            overview=overview, by_fee_type=[], by_payment_method=[],
            by_month=[] if start_date and end_date else None, by_status=[],
        )

    total_due = round(float(df["payable"].sum()), 2)
    total_paid = round(float(df["amount_paid"].sum()), 2)
    overview = payment_model.FinancialOverview(
        total_due=total_due,
        total_paid=total_paid,
        total_discount=round(float(df["discount"].sum()), 2),
        total_remaining=round(total_due - total_paid, 2),
    )

    collected = df[df["amount_paid"] > 0].copy()
    if academic_year:
        collected = collected[collected["academic_year"] == academic_year]
    by_month = None
    if start_date and end_date:
        collected_at = pd.to_datetime(collected["collected_at"], utc=True)
        low, high = day_range(start_date, end_date)
        collected = collected[(collected_at >= pd.Timestamp(low)) & (collected_at <= pd.Timestamp(high))].copy()
        collected["month"] = pd.to_datetime(collected["collected_at"], utc=True).dt.strftime("%Y-%m")
        by_month = sorted(_group_amounts(collected, "month", "amount_paid"), key=lambda g: g.key)

    return payment_model.FinancialStatistics(
        overview=overview,
        by_fee_type=_group_amounts(collected, "fee_type", "amount_paid"),
        by_payment_method=_group_amounts(collected, "payment_method", "amount_paid"),
        by_month=by_month,
        by_status=_group_amounts(df, "status", "payable"),
    )


def get_payment_report(
    db: DatabaseService,
    school_id: str,
    start_date: date,
    end_date: date,
    fee_type: Optional[str] = None,
) -> payment_model.PaymentReport:
    """Records whose last collection falls inside the range, oldest first."""
    if end_date < start_date:
        raise ValidationError("INVALID_RANGE", "The end date cannot be before the start date.")
    collected_from, collected_to = day_range(start_date, end_date)
    payments = db.list_payments_with_fees(school_id, collected_from=collected_from, collected_to=collected_to, collected_only=True)
    if fee_type:
        payments = [p for p in payments if p.fee and p.fee.fee_type == fee_type]

    df = pd.DataFrame([
        {"fee_type": p.fee.fee_type if p.fee else None, "payment_method": p.payment_method, "amount_paid": p.amount_paid or 0}
        for p in payments
    ])
    return payment_model.PaymentReport(
        total_collected=round(float(df["amount_paid"].sum()), 2) if not df.empty else 0.0,
        total_transactions=len(payments),
        by_fee_type=_group_amounts(df, "fee_type", "amount_paid"),
        by_payment_method=_group_amounts(df, "payment_method", "amount_paid"),
        payments=[to_read_model(p) for p in payments],
    )
