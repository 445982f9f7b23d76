# /tests/test_payments.py

from datetime import date, timedelta

import pytest
from pydantic import ValidationError as PydanticValidationError

from app.core.clock import utc_today
from app.core.exceptions import ConflictError, ValidationError
from app.models.common_model import PageParams
from app.models.payment_model import (
    ApplyDiscountRequest, BulkPaymentCreate, FeeCreate, FeeUpdate, PaymentCreate, PaymentMethod, RecordPaymentRequest,
)
from app.services import invariants, payment_service
from conftest import ACADEMIC_YEAR


@pytest.fixture
def fee(db, admin):
    return payment_service.create_fee(
        FeeCreate(fee_name="Tuition S1", amount=1000, academic_year=ACADEMIC_YEAR, semester=1), db, admin,
    )


@pytest.fixture
def payment(db, admin, fee, make_student):
    student = make_student()
    return payment_service.create_payment_record(
        PaymentCreate(student_id=student.id, fee_id=fee.id, discount=100), db, admin,
    )


def _pay(db, admin, payment_id, amount, method=PaymentMethod.CASH):
    return payment_service.record_payment(payment_id, RecordPaymentRequest(amount=amount, payment_method=method), db, admin)


@pytest.mark.parametrize("due, discount, paid, expected", [
    (1000, 0, 0, "unpaid"),
    (1000, 0, 400, "partial"),
    (1000, 200, 800, "paid"),
    (1000, 0, 1000, "paid"),
    (500, 500, 0, "paid"),
])
def test_status_is_derived_from_amounts(due, discount, paid, expected):
    assert invariants.derive_payment_status(due, discount, paid) == expected


def test_discount_cannot_exceed_fee(db, admin, fee, make_student):
    student = make_student()
    with pytest.raises(ValidationError) as excinfo:
        payment_service.create_payment_record(
            PaymentCreate(student_id=student.id, fee_id=fee.id, discount=1500), db, admin,
        )
    assert excinfo.value.code == "INVALID_DISCOUNT"


def test_new_record_starts_unpaid(payment):
    assert (payment.amount_due, payment.discount, payment.amount_paid, payment.status) == (1000, 100, 0, "unpaid")
    assert payment_service.to_read_model(payment).remaining == 900


def test_one_record_per_student_and_fee(db, admin, fee, payment):
    with pytest.raises(ConflictError) as excinfo:
        payment_service.create_payment_record(PaymentCreate(student_id=payment.student_id, fee_id=fee.id), db, admin)
    assert excinfo.value.code == "PAYMENT_EXISTS"


def test_partial_then_full_payment(db, admin, payment):
    partial = _pay(db, admin, payment.id, 400)
    assert (partial.amount_paid, partial.status, partial.paid_date) == (400, "partial", None)

    full = _pay(db, admin, payment.id, 500, PaymentMethod.BANK_TRANSFER)
    assert (full.amount_paid, full.status) == (900, "paid")
    assert full.paid_date is not None
    assert full.payment_method == "bank_transfer"
    assert full.collected_by == admin.id


def test_payment_above_balance_is_rejected(db, admin, payment):
    """
    GIVEN a record with 900 left to pay and 400 already collected
    WHEN 600 is recorded
    THEN PAYMENT_EXCEEDS_BALANCE is raised and the amount paid is unchanged.
    """
    _pay(db, admin, payment.id, 400)

    with pytest.raises(ConflictError) as excinfo:
        _pay(db, admin, payment.id, 600)

    assert excinfo.value.code == "PAYMENT_EXCEEDS_BALANCE"
    assert excinfo.value.details == {"remaining": 500}
    db.session.expire_all()
    stored = payment_service.get_payment(db, admin.school_id, payment.id)
    assert (stored.amount_paid, stored.status) == (400, "partial")


@pytest.mark.parametrize("amount", [0, -50, 33.333])
def test_request_rejects_non_positive_or_sub_cent_amounts(amount):
    with pytest.raises(PydanticValidationError):
        RecordPaymentRequest(amount=amount)


def test_request_accepts_two_decimal_amounts():
    assert RecordPaymentRequest(amount=33.35).amount == 33.35


@pytest.mark.parametrize("amount", [0, -50, 10.005])
def test_service_rechecks_amount_from_unvalidated_callers(db, admin, payment, amount):
    request = RecordPaymentRequest.model_construct(amount=amount, payment_method=PaymentMethod.CASH, transaction_ref=None, note=None)
    with pytest.raises(ValidationError) as excinfo:
        payment_service.record_payment(payment.id, request, db, admin)
    assert excinfo.value.code == "INVALID_AMOUNT"
    db.session.expire_all()
    assert payment_service.get_payment(db, admin.school_id, payment.id).amount_paid == 0


def test_bulk_create_skips_existing_records(db, admin, fee, make_class, make_student):
    class_obj = make_class(code="10A1")
    first = make_student(class_id=class_obj.id)
    make_student(class_id=class_obj.id)
    make_student()
    payment_service.create_payment_record(PaymentCreate(student_id=first.id, fee_id=fee.id), db, admin)

    in_class = payment_service.bulk_create_payments(BulkPaymentCreate(fee_id=fee.id, class_id=class_obj.id), db, admin)
    assert (in_class.created, in_class.skipped) == (1, 1)

    everyone = payment_service.bulk_create_payments(BulkPaymentCreate(fee_id=fee.id), db, admin)
    assert (everyone.created, everyone.skipped) == (1, 2)
    assert len(payment_service.list_payments(db, admin.school_id, fee_id=fee.id)) == 3


def test_student_payment_status_totals(db, admin, fee, payment):
    _pay(db, admin, payment.id, 300)

    status = payment_service.get_student_payment_status(db, admin.school_id, payment.student_id)

    assert (status.total_due, status.total_discount, status.total_paid, status.total_remaining) == (1000, 100, 300, 600)
    assert [p.status for p in status.payments] == ["partial"]


# --- Discounts ---

def _discount(db, admin, payment_id, discount):
    return payment_service.apply_discount(payment_id, ApplyDiscountRequest(discount=discount, reason="scholarship"), db, admin)


def test_discount_recomputes_status(db, admin, payment):
    _pay(db, admin, payment.id, 600)

    settled = _discount(db, admin, payment.id, 400)

    assert (settled.discount, settled.amount_paid, settled.status) == (400, 600, "paid")
    assert settled.paid_date is not None
    assert payment_service.to_read_model(settled).remaining == 0


def test_discount_cannot_exceed_amount_due(db, admin, payment):
    with pytest.raises(ConflictError) as excinfo:
        _discount(db, admin, payment.id, 1200)
    assert excinfo.value.code == "DISCOUNT_EXCEEDS_DUE"


def test_discount_cannot_undercut_collected_amount(db, admin, payment):
    """
    GIVEN a 1000 record with 700 already collected
    WHEN a 400 discount would make only 600 payable
    THEN DISCOUNT_BELOW_PAID is raised and the stored discount is unchanged.
    """
    _pay(db, admin, payment.id, 700)

    with pytest.raises(ConflictError) as excinfo:
        _discount(db, admin, payment.id, 400)

    assert excinfo.value.code == "DISCOUNT_BELOW_PAID"
    assert excinfo.value.details == {"amountPaid": 700, "maxDiscount": 300}
    db.session.expire_all()
    assert payment_service.get_payment(db, admin.school_id, payment.id).discount == 100


def test_discount_is_checked_against_collections_committed_meanwhile(db, new_db, admin, payment):
    """The check re-reads the record inside the unit of work, so a collection made elsewhere counts."""
    stale = payment_service.get_payment(db, admin.school_id, payment.id)
    assert stale.amount_paid == 0

    _pay(new_db(), admin, payment.id, 800)

    with pytest.raises(ConflictError) as excinfo:
        _discount(db, admin, payment.id, 300)
    assert excinfo.value.code == "DISCOUNT_BELOW_PAID"


# --- Fees ---

def test_fee_update_leaves_existing_records_alone(db, admin, fee, payment):
    updated = payment_service.update_fee(fee.id, FeeUpdate(amount=1200, fee_name=" Tuition S1 (revised) "), db, admin)

    assert (updated.amount, updated.fee_name) == (1200, "Tuition S1 (revised)")
    db.session.expire_all()
    assert payment_service.get_payment(db, admin.school_id, payment.id).amount_due == 1000


def test_fee_semester_must_exist_in_the_school(db, admin):
    with pytest.raises(ValidationError) as excinfo:
        payment_service.create_fee(
            FeeCreate(fee_name="Summer term", amount=300, academic_year=ACADEMIC_YEAR, semester=3), db, admin,
        )
    assert excinfo.value.code == "INVALID_SEMESTER"


def test_deactivated_fee_accepts_no_new_records(db, admin, fee, make_student):
    payment_service.delete_fee(fee.id, db, admin)

    assert payment_service.get_fee(db, admin.school_id, fee.id).is_active is False
    assert payment_service.list_fees(db, admin.school_id, is_active=True) == []
    with pytest.raises(ConflictError) as excinfo:
        payment_service.create_payment_record(PaymentCreate(student_id=make_student().id, fee_id=fee.id), db, admin)
    assert excinfo.value.code == "FEE_INACTIVE"


# --- Listing and reports ---

def test_payment_pages(db, admin, fee, make_student):
    for index in range(5):
        student = make_student(code=f"HS{index:03d}")
        payment_service.create_payment_record(PaymentCreate(student_id=student.id, fee_id=fee.id), db, admin)

    first = payment_service.page_payments(db, admin.school_id, PageParams(page=1, limit=2))
    last = payment_service.page_payments(db, admin.school_id, PageParams(page=3, limit=2))

    assert (first.total, first.total_pages, len(first.items)) == (5, 3, 2)
    assert len(last.items) == 1
    seen = {p.id for p in first.items} | {p.id for p in last.items}
    assert len(seen) == 3


def test_overdue_payments_skip_settled_and_future_fees(db, admin, make_student):
    past = payment_service.create_fee(
        FeeCreate(fee_name="Books", fee_type="materials", amount=200, academic_year=ACADEMIC_YEAR, due_date=date(2026, 9, 1)),
        db, admin,
    )
    future = payment_service.create_fee(
        FeeCreate(fee_name="Trip", fee_type="activity", amount=50, academic_year=ACADEMIC_YEAR, due_date=date(2026, 12, 1)),
        db, admin,
    )
    owing, settled = make_student(code="HS001"), make_student(code="HS002")
    late = payment_service.create_payment_record(PaymentCreate(student_id=owing.id, fee_id=past.id), db, admin)
    _pay(db, admin, late.id, 50)
    done = payment_service.create_payment_record(PaymentCreate(student_id=settled.id, fee_id=past.id), db, admin)
    _pay(db, admin, done.id, 200)
    payment_service.create_payment_record(PaymentCreate(student_id=owing.id, fee_id=future.id), db, admin)

    report = payment_service.get_overdue_payments(db, admin.school_id, today=date(2026, 10, 1))

    assert (report.total_overdue, report.total_amount_overdue) == (1, 150)
    assert report.payments[0].days_overdue == 30
    assert report.payments[0].student_code == "HS001"
    assert [(g.key, g.count, g.total) for g in report.by_fee_type] == [("materials", 1, 150)]


def test_financial_statistics_and_report(db, admin, fee, make_student):
    first = payment_service.create_payment_record(PaymentCreate(student_id=make_student(code="HS001").id, fee_id=fee.id), db, admin)
    second = payment_service.create_payment_record(
        PaymentCreate(student_id=make_student(code="HS002").id, fee_id=fee.id, discount=200), db, admin,
    )
    _pay(db, admin, first.id, 1000, PaymentMethod.BANK_TRANSFER)
    _pay(db, admin, second.id, 300)
    today = utc_today()

    stats = payment_service.get_financial_statistics(
        db, admin.school_id, academic_year=ACADEMIC_YEAR, start_date=today - timedelta(days=1), end_date=today,
    )

    assert stats.overview.model_dump() == {"total_due": 1800, "total_paid": 1300, "total_discount": 200, "total_remaining": 500}
    assert [(g.key, g.count, g.total) for g in stats.by_payment_method] == [("bank_transfer", 1, 1000), ("cash", 1, 300)]
    assert [(g.key, g.total) for g in stats.by_fee_type] == [("tuition", 1300)]
    assert [g.count for g in stats.by_month] == [2]
    assert {g.key: g.total for g in stats.by_status} == {"paid": 1000, "partial": 800}

    report = payment_service.get_payment_report(db, admin.school_id, today - timedelta(days=1), today)
    assert (report.total_collected, report.total_transactions) == (1300, 2)
    assert payment_service.get_payment_report(db, admin.school_id, date(2020, 1, 1), date(2020, 1, 31)).total_transactions == 0


def test_financial_statistics_need_a_year_or_range(db, admin):
    with pytest.raises(ValidationError) as excinfo:
        payment_service.get_financial_statistics(db, admin.school_id)
    assert excinfo.value.code == "MISSING_RANGE"
