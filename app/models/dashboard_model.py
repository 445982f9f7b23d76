# /app/models/dashboard_model.py

from typing import Dict, List, Optional

from pydantic import Field

from .common_model import CamelModel
from .score_model import ScoreRead


class DashboardStats(CamelModel):
    """
    School-wide numbers for the admin home page. Served from the cache for a
    short TTL and invalidated by every write that changes one of them.
    """
    school_id: str
    user_count: int = Field(..., examples=[42])
    users_by_role: Dict[str, int]
    pending_approvals: int
    class_count: int
    student_count: int
    studying_count: int
    total_capacity: int
    total_enrolled: int
    payments_due: float
    payments_collected: float
    subscription_days_left: int


class UserOverview(CamelModel):
    user_id: str
    role: str
    full_name: str
    managed_class_count: Optional[int] = None
    student_id: Optional[str] = None
    class_id: Optional[str] = None
    recent_scores: List[ScoreRead] = Field(default_factory=list)
