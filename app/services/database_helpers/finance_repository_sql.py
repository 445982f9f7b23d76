# /app/services/database_helpers/finance_repository_sql.py

"""Queries for fees and payment records."""

from datetime import date, datetime
from typing import List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from app.db.models.class_student_models import Student
from app.db.models.finance_models import Fee, Payment
from .paging import paginate


class FinanceRepositorySQL:
    def __init__(self, db_session: Session):
        self.db = db_session

    # --- Fee Methods ---

    def get_fee_by_id(self, fee_id: str, school_id: str) -> Optional[Fee]:
        if not fee_id:
            return None
        return self.db.query(Fee).filter(Fee.id == fee_id, Fee.school_id == school_id).first()

    def list_fees(
        self,
        school_id: str,
        academic_year: Optional[str] = None,
        semester: Optional[int] = None,
        fee_type: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> List[Fee]:
        query = self.db.query(Fee).filter(Fee.school_id == school_id)
        if academic_year:
            query = query.filter(Fee.academic_year == academic_year)
        if semester:
            query = query.filter(Fee.semester == semester)
        if fee_type:
            query = query.filter(Fee.fee_type == fee_type)
        if is_active is not None:
            query = query.filter(Fee.is_active.is_(is_active))
        return query.order_by(Fee.created_at.desc()).all()

    def add_fee(self, fee: Fee) -> Fee:
        self.db.add(fee)
        self.db.flush()
        return fee

    # --- Payment Methods ---

    def get_payment_by_id(self, payment_id: str, school_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.id == payment_id, Payment.school_id == school_id).first()

    def find_payment(self, student_id: str, fee_id: str) -> Optional[Payment]:
        return self.db.query(Payment).filter(Payment.student_id == student_id, Payment.fee_id == fee_id).first()

    def _payments_query(
        self,
        school_id: str,
        student_id: Optional[str] = None,
        fee_id: Optional[str] = None,
        status: Optional[str] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ):
        query = self.db.query(Payment).filter(Payment.school_id == school_id)
        if student_id:
            query = query.filter(Payment.student_id == student_id)
        if fee_id:
            query = query.filter(Payment.fee_id == fee_id)
        if status:
            query = query.filter(Payment.status == status)
        if created_from:
            query = query.filter(Payment.created_at >= created_from)
        if created_to:
            query = query.filter(Payment.created_at <= created_to)
        return query.order_by(Payment.created_at.desc(), Payment.id)

    def list_payments(self, school_id: str, **filters) -> List[Payment]:
        return self._payments_query(school_id, **filters).all()

    def page_payments(self, school_id: str, offset: int, limit: int, **filters) -> Tuple[List[Payment], int]:
        return paginate(self._payments_query(school_id, **filters), offset, limit)

    def count_payments_for_fee(self, school_id: str, fee_id: str) -> int:
        return (
            self.db.query(func.count(Payment.id))
            .filter(Payment.school_id == school_id, Payment.fee_id == fee_id)
            .scalar()
            or 0
        )

    def list_overdue_payments(self, school_id: str, today: date, class_ids: Optional[List[str]] = None) -> List[Payment]:
        """Unsettled records of active fees whose due date has passed, oldest due date first."""
        query = (
            self.db.query(Payment)
            .join(Fee, Fee.id == Payment.fee_id)
            .filter(
                Payment.school_id == school_id,
                Payment.status != "paid",
                Fee.is_active.is_(True),
                Fee.due_date.isnot(None),
                Fee.due_date < today,
            )
            .options(joinedload(Payment.fee), joinedload(Payment.student))
        )
        if class_ids is not None:
            query = query.join(Student, Student.id == Payment.student_id).filter(Student.class_id.in_(class_ids))
        return query.order_by(Fee.due_date, Payment.id).all()

    def list_payments_with_fees(
        self,
        school_id: str,
        collected_from: Optional[datetime] = None,
        collected_to: Optional[datetime] = None,
        collected_only: bool = False,
    ) -> List[Payment]:
        query = (
            self.db.query(Payment)
            .filter(Payment.school_id == school_id)
            .options(joinedload(Payment.fee), joinedload(Payment.student))
        )
        if collected_only:
            query = query.filter(Payment.amount_paid > 0)
        if collected_from:
            query = query.filter(Payment.last_collected_at >= collected_from)
        if collected_to:
            query = query.filter(Payment.last_collected_at <= collected_to)
        return query.order_by(Payment.last_collected_at, Payment.id).all()

    def payment_totals(self, school_id: str) -> dict:
        row = (
            self.db.query(
                func.coalesce(func.sum(Payment.amount_due), 0),
                func.coalesce(func.sum(Payment.discount), 0),
                func.coalesce(func.sum(Payment.amount_paid), 0),
            )
            .filter(Payment.school_id == school_id)
            .one()
        )
        return {"amount_due": float(row[0]), "discount": float(row[1]), "amount_paid": float(row[2])}

    def add_payment(self, payment: Payment) -> Payment:
        self.db.add(payment)
        self.db.flush()
        return payment

    def delete_payment(self, payment: Payment) -> None:
        self.db.delete(payment)
        self.db.flush()

    def delete_payments_for_student(self, school_id: str, student_id: str) -> int:
        payments = self.list_payments(school_id, student_id=student_id)
        for payment in payments:
            self.db.delete(payment)
        self.db.flush()
        return len(payments)
