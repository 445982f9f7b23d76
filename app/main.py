# /app/main.py

# --- Core FastAPI Imports ---
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .core.cache import CacheService
from .core.config import settings
from .core.error_handlers import register_exception_handlers
from .core.logging_config import setup_logging

# --- Application-specific Router Imports ---
from .routers import (
    admin_router,
    attendance_router,
    auth_router,
    classes_router,
    dashboard_router,
    payments_router,
    scores_router,
    students_router,
)


# --- Application Lifecycle Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    # This code runs ONCE when the application starts up.
    logger = setup_logging()
    app.state.cache = CacheService(
        default_ttl=settings.CACHE_DEFAULT_TTL_SECONDS,
        max_size=settings.CACHE_MAX_ENTRIES,
    )
    if settings.AUTO_CREATE_TABLES:
        from .db.base import Base
        from .db.database import engine
        Base.metadata.create_all(bind=engine)
    logger.info("School admin API started (environment: %s)", settings.ENVIRONMENT)
    yield
    # This code runs ONCE when the application shuts down.
    app.state.cache.clear()


# --- FastAPI Application Instance Creation ---
app = FastAPI(
    title="School Admin API",
    description="Multi-tenant school administration: users, classes, students, attendance, scores and fees.",
    version="1.0.0",
    lifespan=lifespan,
)

# --- Middleware Configuration ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# --- API Router Inclusion ---
app.include_router(auth_router.router, prefix="/api/auth", tags=["Auth"])
app.include_router(admin_router.router, prefix="/api/admin", tags=["Admin"])
app.include_router(dashboard_router.router, prefix="/api/dashboard", tags=["Dashboard"])
app.include_router(classes_router.router, prefix="/api/classes", tags=["Classes"])
app.include_router(students_router.router, prefix="/api/students", tags=["Students"])
app.include_router(attendance_router.router, prefix="/api/attendance", tags=["Attendance"])
app.include_router(scores_router.subjects_router, prefix="/api/subjects", tags=["Subjects"])
app.include_router(scores_router.router, prefix="/api/scores", tags=["Scores"])
app.include_router(payments_router.fees_router, prefix="/api/fees", tags=["Fees"])
app.include_router(payments_router.router, prefix="/api/payments", tags=["Payments"])


# --- Root / Health Check Endpoint ---
@app.get("/", tags=["Health Check"])
async def read_root():
    """A simple health check endpoint to confirm the API is online."""
    return {"status": "School admin API is running", "version": app.version}
