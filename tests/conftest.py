# /tests/conftest.py

import os

# Must be set before anything under `app` is imported: settings are read once.
os.environ["ENVIRONMENT"] = "test"
os.environ["AUTO_CREATE_TABLES"] = "false"
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("TRANSACTION_RETRY_WAIT_MS", "0")
os.environ.setdefault("DATABASE_URL", "sqlite:///./test_school_admin.db")

from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.core.cache import CacheService
from app.db.base import Base
from app.models.class_model import ClassCreate
from app.models.student_model import StudentCreate
from app.services import auth_service, class_service, student_service
from app.services.database_service import DatabaseService

SCHOOL_NAME = "Test High School"
ACADEMIC_YEAR = "2025-2026"


@pytest.fixture
def engine(tmp_path):
    """A fresh SQLite file per test, so independent sessions really are independent connections."""
    engine = create_engine(f"sqlite:///{tmp_path / 'school_admin.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield DatabaseService(session, session_factory=session_factory)
    session.close()


@pytest.fixture
def new_db(session_factory):
    """Opens extra DatabaseService instances on their own sessions (one per simulated client)."""
    opened = []

    def _open() -> DatabaseService:
        service = DatabaseService(session_factory(), session_factory=session_factory)
        opened.append(service)
        return service

    yield _open
    for service in opened:
        service.session.close()


@pytest.fixture
def cache():
    return CacheService(default_ttl=60, max_size=100)


def as_actor(user) -> SimpleNamespace:
    """A detached copy of the identity fields the services read from the caller."""
    return SimpleNamespace(id=user.id, school_id=user.school_id, email=user.email, role=user.role)


def register(db, username, email, school_name=SCHOOL_NAME, requested_role="user", cache=None):
    payload = {
        "username": username,
        "email": email,
        "password": "secret123",
        "full_name": username.title(),
        "school_name": school_name,
        "requested_role": requested_role,
    }
    return auth_service.register(db, payload, cache=cache)


@pytest.fixture
def admin(db):
    result, _ = register(db, "principal", "principal@ths.edu")
    return as_actor(result.user)


@pytest.fixture
def make_class(db, admin):
    def _make(code="10A1", capacity=40, name=None, grade=10):
        data = ClassCreate(
            name=name or code, class_code=code, grade=grade, academic_year=ACADEMIC_YEAR, capacity=capacity,
        )
        return class_service.create_class(data, db, admin)

    return _make


@pytest.fixture
def make_student(db, admin):
    counter = {"n": 0}

    def _make(class_id=None, code=None, full_name=None):
        counter["n"] += 1
        data = StudentCreate(
            student_code=code or f"HS{counter['n']:04d}",
            full_name=full_name or f"Student {counter['n']}",
            class_id=class_id,
            academic_year=ACADEMIC_YEAR,
        )
        return student_service.create_student(data, db, admin)

    return _make


def fresh_class(db, class_id, school_id):
    """Re-reads a class straight from the database."""
    db.session.expire_all()
    return db.get_class_by_id(class_id, school_id)
