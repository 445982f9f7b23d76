# /app/db/models/finance_models.py

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from app.core.clock import utcnow
from ..base_class import Base


class Fee(Base):
    __tablename__ = "fees"

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False, index=True)
    fee_name = Column(String, nullable=False)
    fee_type = Column(String, nullable=False, default="tuition")
    amount = Column(Float, nullable=False)
    academic_year = Column(String, nullable=False)
    semester = Column(Integer, nullable=True)
    due_date = Column(Date, nullable=True)
    description = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)


class Payment(Base):
    """
    What one student owes for one fee and how much has been collected.

    `status` is derived from the three amounts on every write and is never
    taken from a client. `amount_paid` can never exceed
    `amount_due - discount`.
    """
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("student_id", "fee_id", name="uq_payments_student_fee"),
    )

    id = Column(String, primary_key=True, index=True)
    school_id = Column(String, ForeignKey("schools.id"), nullable=False, index=True)
    student_id = Column(String, ForeignKey("students.id"), nullable=False, index=True)
    fee_id = Column(String, ForeignKey("fees.id"), nullable=False, index=True)

    amount_due = Column(Float, nullable=False)
    amount_paid = Column(Float, nullable=False, default=0)
    discount = Column(Float, nullable=False, default=0)
    status = Column(String, nullable=False, default="unpaid")

    payment_method = Column(String, nullable=True)
    transaction_ref = Column(String, nullable=True)
    paid_date = Column(DateTime(timezone=True), nullable=True)
    last_collected_at = Column(DateTime(timezone=True), nullable=True)
    note = Column(String, nullable=True)
    collected_by = Column(String, nullable=True)

    version = Column(Integer, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    fee = relationship("Fee")
    student = relationship("Student")

    __mapper_args__ = {"version_id_col": version}

    @property
    def remaining(self) -> float:
        return max(0.0, (self.amount_due or 0) - (self.discount or 0) - (self.amount_paid or 0))
