# /app/models/payment_model.py

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import Field, field_validator

from .common_model import CamelModel


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"
    OTHER = "other"


class FeeCreate(CamelModel):
    fee_name: str = Field(..., min_length=2)
    fee_type: str = "tuition"
    amount: float = Field(..., gt=0)
    academic_year: str
    semester: Optional[int] = Field(default=None, ge=1, le=3)
    due_date: Optional[date] = None
    description: Optional[str] = None


class FeeRead(CamelModel):
    id: str
    fee_name: str
    fee_type: str
    amount: float
    academic_year: str
    semester: Optional[int] = None
    due_date: Optional[date] = None
    description: Optional[str] = None
    is_active: bool


class PaymentCreate(CamelModel):
    student_id: str
    fee_id: str
    discount: float = Field(default=0, ge=0)
    note: Optional[str] = None


class BulkPaymentCreate(CamelModel):
    fee_id: str
    class_id: Optional[str] = Field(default=None, description="Limit to one class; all studying students otherwise.")


class BulkPaymentResult(CamelModel):
    created: int
    skipped: int


class RecordPaymentRequest(CamelModel):
    amount: float = Field(..., gt=0, description="Amount collected now; at most two decimal places.")
    payment_method: PaymentMethod = PaymentMethod.CASH
    transaction_ref: Optional[str] = None
    note: Optional[str] = None

    @field_validator("amount")
    @classmethod
    def whole_cents(cls, value: float) -> float:
        if abs(round(value, 2) - value) > 1e-9:
            raise ValueError("Amount cannot have more than two decimal places")
        return value


class PaymentRead(CamelModel):
    id: str
    student_id: str
    fee_id: str
    amount_due: float
    amount_paid: float
    discount: float
    status: PaymentStatus
    remaining: float = 0
    payment_method: Optional[str] = None
    transaction_ref: Optional[str] = None
    paid_date: Optional[datetime] = None
    last_collected_at: Optional[datetime] = None
    note: Optional[str] = None
    collected_by: Optional[str] = None


class StudentPaymentStatus(CamelModel):
    student_id: str
    total_due: float
    total_discount: float
    total_paid: float
    total_remaining: float
    payments: List[PaymentRead]


class FeeUpdate(CamelModel):
    """Amount changes apply to records created afterwards; existing records keep their amount due."""
    fee_name: Optional[str] = Field(default=None, min_length=2)
    fee_type: Optional[str] = None
    amount: Optional[float] = Field(default=None, gt=0)
    semester: Optional[int] = Field(default=None, ge=1, le=3)
    due_date: Optional[date] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class ApplyDiscountRequest(CamelModel):
    discount: float = Field(..., ge=0)
    reason: Optional[str] = None


class AmountGroup(CamelModel):
    key: str
    count: int
    total: float


class OverduePayment(PaymentRead):
    student_code: Optional[str] = None
    full_name: Optional[str] = None
    fee_name: str
    fee_type: str
    due_date: date
    days_overdue: int


class OverdueReport(CamelModel):
    total_overdue: int
    total_amount_overdue: float
    by_fee_type: List[AmountGroup]
    payments: List[OverduePayment]


class FinancialOverview(CamelModel):
    total_due: float
    total_paid: float
    total_discount: float
    total_remaining: float


class FinancialStatistics(CamelModel):
    overview: FinancialOverview
    by_fee_type: List[AmountGroup]
    by_payment_method: List[AmountGroup]
    by_month: Optional[List[AmountGroup]] = None
    by_status: List[AmountGroup]


class PaymentReport(CamelModel):
    total_collected: float
    total_transactions: int
    by_fee_type: List[AmountGroup]
    by_payment_method: List[AmountGroup]
    payments: List[PaymentRead]
