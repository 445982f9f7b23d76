# /app/routers/dashboard_router.py

# --- Core FastAPI Imports ---
from fastapi import APIRouter, Depends

from app.core.cache import CacheService, get_cache
from app.core.deps import get_current_active_user, require_permission
from app.db.models.user_models import User
from ..models.dashboard_model import DashboardStats, UserOverview
from ..services import dashboard_service
from ..services.database_service import DatabaseService, get_db_service

router = APIRouter()


@router.get(
    "/stats",
    response_model=DashboardStats,
    summary="Get School Statistics",
    description="High-level counts for the school home page. Cached for a minute and dropped on every relevant write.",
)
def get_dashboard_stats(
    current_user: User = Depends(require_permission("can_view_all")),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return dashboard_service.get_dashboard_stats(db, cache, current_user.school_id)


@router.get("/overview", response_model=UserOverview, summary="Get the Caller's Overview")
def get_user_overview(
    current_user: User = Depends(get_current_active_user),
    db: DatabaseService = Depends(get_db_service),
    cache: CacheService = Depends(get_cache),
):
    return dashboard_service.get_user_overview(db, cache, current_user)
