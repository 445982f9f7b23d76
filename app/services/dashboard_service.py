# /app/services/dashboard_service.py

"""
Aggregate reads for the dashboard. Both results are memoised in the injected
cache; the writes that change them drop the keys before returning, so a
cached value never survives a write it depends on.
"""

from typing import Optional

from app.core.cache import CacheService, dashboard_stats_key, user_overview_key
from app.core.config import settings
from app.core.logging_config import get_logger
from ..models.dashboard_model import DashboardStats, UserOverview
from ..models.score_model import ScoreRead
from . import tenant_service
from .database_service import DatabaseService

logger = get_logger("dashboard_service")

RECENT_SCORE_LIMIT = 10


def compute_dashboard_stats(db: DatabaseService, school_id: str) -> DashboardStats:
    school = tenant_service.get_school(db, school_id)
    classes = db.list_classes(school_id)
    totals = db.payment_totals(school_id)
    users_by_role = db.count_users_by_role(school_id)
    return DashboardStats(
        school_id=school_id,
        user_count=sum(users_by_role.values()),
        users_by_role=users_by_role,
        pending_approvals=len(db.list_users(school_id, is_active=False)),
        class_count=len(classes),
        student_count=db.count_students(school_id),
        studying_count=db.count_students(school_id, status="studying"),
        total_capacity=sum(c.capacity for c in classes),
        total_enrolled=sum(c.current_students for c in classes),
        payments_due=max(0.0, totals["amount_due"] - totals["discount"]),
        payments_collected=totals["amount_paid"],
        subscription_days_left=tenant_service.remaining_subscription_days(school),
    )


def get_dashboard_stats(db: DatabaseService, cache: Optional[CacheService], school_id: str) -> DashboardStats:
    if cache is None:
        return compute_dashboard_stats(db, school_id)
    return cache.wrap(
        dashboard_stats_key(school_id),
        lambda: compute_dashboard_stats(db, school_id),
        ttl=settings.DASHBOARD_STATS_TTL_SECONDS,
    )


def compute_user_overview(db: DatabaseService, user) -> UserOverview:
    overview = UserOverview(user_id=user.id, role=user.role, full_name=user.full_name)
    if user.role in ("teacher", "admin", "subadmin"):
        overview.managed_class_count = db.count_classes_for_teacher(user.school_id, user.id)
    if user.student_id:
        student = db.get_student_by_id(user.student_id, user.school_id)
        if student is not None:
            overview.student_id = student.id
            overview.class_id = student.class_id
            overview.recent_scores = [
                ScoreRead.model_validate(score)
                for score in db.recent_scores_for_student(user.school_id, student.id, RECENT_SCORE_LIMIT)
            ]
    return overview


def get_user_overview(db: DatabaseService, cache: Optional[CacheService], user) -> UserOverview:
    if cache is None:
        return compute_user_overview(db, user)
    return cache.wrap(
        user_overview_key(user.id),
        lambda: compute_user_overview(db, user),
        ttl=settings.USER_OVERVIEW_TTL_SECONDS,
    )
