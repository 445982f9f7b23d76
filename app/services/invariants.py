# /app/services/invariants.py

"""
Checks for the invariants most prone to races: class capacity, score locks
and payment balances.

The seat helpers mutate the class row through the ORM so the optimistic
`version` column is bumped; two transactions that enrol into the same class
from the same snapshot collide, and the retry re-evaluates the capacity on
fresh data.
"""

from app.core.exceptions import ConflictError, ValidationError
from app.db.models.academic_models import Score
from app.db.models.class_student_models import Class

SCORE_MIN = 0.0
SCORE_MAX = 10.0

PAYMENT_UNPAID = "unpaid"
PAYMENT_PARTIAL = "partial"
PAYMENT_PAID = "paid"


# --- Class capacity ---

def reserve_seat(class_obj: Class) -> None:
    """Takes one seat in `class_obj`; must be called inside a transaction on a freshly read row."""
    if class_obj.current_students >= class_obj.capacity:
        raise ConflictError(
            "CLASS_FULL",
            f"Class {class_obj.name} is full ({class_obj.current_students}/{class_obj.capacity}).",
            {"classId": class_obj.id, "capacity": class_obj.capacity, "currentStudents": class_obj.current_students},
        )
    class_obj.current_students += 1


def release_seat(class_obj: Class) -> None:
    class_obj.current_students = max(0, class_obj.current_students - 1)


def ensure_capacity_fits(class_obj: Class, new_capacity: int) -> None:
    if new_capacity < 1:
        raise ValidationError("INVALID_CAPACITY", "Capacity must be at least 1.")
    if new_capacity < class_obj.current_students:
        raise ConflictError(
            "CAPACITY_BELOW_ENROLLMENT",
            f"Capacity {new_capacity} is below the {class_obj.current_students} students already enrolled.",
        )


# --- Scores ---

def validate_score_value(value) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("INVALID_SCORE", f"Score must be a number, got {value!r}.")
    if not SCORE_MIN <= number <= SCORE_MAX:
        raise ValidationError("INVALID_SCORE", f"Score must be between {SCORE_MIN:g} and {SCORE_MAX:g}.")
    return number


def ensure_score_unlocked(score: Score) -> None:
    if score.is_locked:
        raise ConflictError(
            "SCORE_LOCKED",
            "This score is locked and cannot be changed until an administrator unlocks it.",
            {"scoreId": score.id},
        )


# --- Payments ---

def derive_payment_status(amount_due: float, discount: float, amount_paid: float) -> str:
    """Pure function of the three amounts."""
    payable = max(0.0, (amount_due or 0) - (discount or 0))
    paid = amount_paid or 0
    if paid <= 0 and payable > 0:
        return PAYMENT_UNPAID
    if paid >= payable:
        return PAYMENT_PAID
    return PAYMENT_PARTIAL


def remaining_balance(amount_due: float, discount: float, amount_paid: float) -> float:
    return max(0.0, (amount_due or 0) - (discount or 0) - (amount_paid or 0))


def has_whole_cents(value: float) -> bool:
    return abs(round(value, 2) - value) <= 1e-9


def validate_discount(amount_due: float, discount: float) -> None:
    if discount < 0:
        raise ValidationError("INVALID_DISCOUNT", "Discount cannot be negative.")
    if discount > amount_due:
        raise ValidationError("INVALID_DISCOUNT", "Discount cannot exceed the amount due.")


def ensure_payment_within_balance(amount_due: float, discount: float, amount_paid: float, amount: float) -> None:
    if amount <= 0:
        raise ValidationError("INVALID_AMOUNT", "Payment amount must be greater than zero.")
    if not has_whole_cents(amount):
        raise ValidationError("INVALID_AMOUNT", "Payment amount cannot have more than two decimal places.")
    remaining = remaining_balance(amount_due, discount, amount_paid)
    if amount > remaining + 1e-9:
        raise ConflictError(
            "PAYMENT_EXCEEDS_BALANCE",
            f"Payment of {amount:g} exceeds the remaining balance of {remaining:g}.",
            {"remaining": remaining},
        )


def ensure_discount_fits(amount_due: float, amount_paid: float, discount: float) -> None:
    """A discount may not exceed the amount due nor leave less to pay than was already collected."""
    if discount < 0 or not has_whole_cents(discount):
        raise ValidationError("INVALID_DISCOUNT", "Discount must be a non-negative amount with at most two decimal places.")
    if discount > amount_due + 1e-9:
        raise ConflictError(
            "DISCOUNT_EXCEEDS_DUE",
            f"Discount of {discount:g} exceeds the amount due of {amount_due:g}.",
            {"amountDue": amount_due},
        )
    if (amount_due - discount) < (amount_paid or 0) - 1e-9:
        raise ConflictError(
            "DISCOUNT_BELOW_PAID",
            f"A discount of {discount:g} would leave less to pay than the {amount_paid:g} already collected.",
            {"amountPaid": amount_paid, "maxDiscount": round(amount_due - (amount_paid or 0), 2)},
        )
