# /app/services/tenant_service.py

"""
The tenant directory: finds or creates schools and gates access on their
subscription.
"""

import math
import random
import re
import uuid
from datetime import datetime, timedelta
from typing import Optional, Tuple

from app.core.cache import CacheService, invalidate_school_metrics
from app.core.clock import as_utc, utcnow
from app.core.config import settings
from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from app.core.logging_config import get_logger
from app.db.models.school_models import School, default_school_settings
from .audit_service import audit_trail, snapshot
from .database_service import DatabaseService

logger = get_logger("tenant_service")

SUBSCRIPTION_PLANS = ("free", "basic", "premium", "enterprise")
EDITABLE_SCHOOL_FIELDS = ("address", "phone", "email", "principal_name")
EDITABLE_SETTINGS = {"academicYearStart", "semestersPerYear", "gradesOffered", "currency", "timezone"}
AUDITED_SCHOOL_FIELDS = EDITABLE_SCHOOL_FIELDS + ("settings",)


def normalize_school_name(school_name: str) -> str:
    return re.sub(r"\s+", " ", (school_name or "").strip())


def generate_school_code(db: DatabaseService, school_name: str) -> str:
    """Initials of the name's words plus three random digits, e.g. `THS042`."""
    initials = "".join(word[0] for word in re.findall(r"[A-Za-z0-9]+", school_name)).upper() or "SCH"
    for _ in range(20):
        code = f"{initials}{random.randint(0, 999):03d}"
        if not db.school_code_exists(code):
            return code
    # The three-digit space is crowded for these initials.
    return f"{initials}{uuid.uuid4().hex[:6].upper()}"


def find_or_create_school(db: DatabaseService, school_name: str) -> Tuple[School, bool]:
    """
    Resolves a school by case-insensitive name, creating it (with a trial
    subscription) when it does not exist yet. Returns `(school, is_new)`.
    Must run inside a unit of work.
    """
    name = normalize_school_name(school_name)
    if len(name) < 3:
        raise ValidationError("INVALID_SCHOOL_NAME", "School name must be at least 3 characters long.")

    school = db.get_school_by_name(name)
    if school is not None:
        return school, False

    school = db.add_school(School(
        id=f"sch_{uuid.uuid4().hex[:12]}",
        school_name=name,
        school_name_key=name.lower(),
        school_code=generate_school_code(db, name),
        subscription_plan="free",
        subscription_expires_at=utcnow() + timedelta(days=settings.TRIAL_PERIOD_DAYS),
        settings=default_school_settings(),
        is_active=True,
    ))
    logger.info("Created school %s (%s)", school.school_name, school.id)
    return school, True


def is_subscription_active(school: School, now: Optional[datetime] = None) -> bool:
    now = now or utcnow()
    return bool(school.is_active) and as_utc(school.subscription_expires_at) > now


def remaining_subscription_days(school: School, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    remaining = (as_utc(school.subscription_expires_at) - now).total_seconds() / 86400
    return max(0, math.ceil(remaining))


def check_subscription(school: School, now: Optional[datetime] = None) -> None:
    if not school.is_active:
        raise PermissionDeniedError("SCHOOL_INACTIVE", "This school has been deactivated.")
    if not is_subscription_active(school, now):
        raise PermissionDeniedError(
            "SUBSCRIPTION_EXPIRED",
            "The school's subscription has expired. Please contact the administrator.",
        )


def get_school(db: DatabaseService, school_id: str) -> School:
    school = db.get_school_by_id(school_id)
    if school is None:
        raise NotFoundError("SCHOOL_NOT_FOUND", "School not found.")
    return school


def get_school_settings(db: DatabaseService, school_id: str) -> dict:
    """The school's settings map with defaults filled in for keys it never set."""
    school = get_school(db, school_id)
    return {**default_school_settings(), **(school.settings or {})}


def update_school_settings(
    db: DatabaseService,
    actor,
    updates: dict,
    cache: Optional[CacheService] = None,
) -> School:
    """
    Updates contact fields and the `settings` map. Counters, code, name and
    subscription are not editable here.
    """
    updates = dict(updates)
    settings_update = dict(updates.pop("settings", None) or {})
    unknown = set(settings_update) - EDITABLE_SETTINGS
    if unknown:
        raise ValidationError("INVALID_SETTINGS", f"Unknown settings: {', '.join(sorted(unknown))}")
    if "semestersPerYear" in settings_update and settings_update["semestersPerYear"] not in range(1, MAX_SEMESTERS_PER_YEAR + 1):
        raise ValidationError("INVALID_SETTINGS", "semestersPerYear must be 1, 2 or 3.")
    if "academicYearStart" in settings_update and not 1 <= int(settings_update["academicYearStart"]) <= 12:
        raise ValidationError("INVALID_SETTINGS", "academicYearStart must be a month number.")

    def work(tx: DatabaseService) -> School:
        school = get_school(tx, actor.school_id)
        for field in EDITABLE_SCHOOL_FIELDS:
            if field in updates:
                setattr(school, field, updates[field])
        if settings_update:
            merged = dict(school.settings or default_school_settings())
            merged.update(settings_update)
            school.settings = merged
        tx.session.flush()
        return school

    with audit_trail(db, actor, "SCHOOL_SETTINGS_UPDATE", "School", resource_id=actor.school_id) as trail:
        trail.before = snapshot(get_school(db, actor.school_id), AUDITED_SCHOOL_FIELDS)
        school = db.run_in_transaction(work, label="update_school_settings")
        trail.after = snapshot(school, AUDITED_SCHOOL_FIELDS)

    invalidate_school_metrics(cache, school.id)
    return school


MAX_SEMESTERS_PER_YEAR = 3


def ensure_semester_allowed(db: DatabaseService, school_id: str, semester: Optional[int]) -> None:
    """Rejects a semester number beyond the school's `semestersPerYear`."""
    if semester is None:
        return
    per_year = int(get_school_settings(db, school_id).get("semestersPerYear") or 2)
    if not 1 <= semester <= per_year:
        raise ValidationError(
            "INVALID_SEMESTER",
            f"Semester must be between 1 and {per_year} for this school.",
            {"semestersPerYear": per_year},
        )
