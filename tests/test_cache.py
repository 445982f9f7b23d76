# /tests/test_cache.py

import pytest

from app.core.cache import (
    CacheService, dashboard_stats_key, invalidate_school_metrics, invalidate_user_overview, user_overview_key,
)
from app.models.student_model import StudentCreate
from app.services import dashboard_service, student_service


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


def test_entries_expire_after_their_ttl(clock):
    cache = CacheService(default_ttl=60, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2, ttl=5)

    clock.advance(5)
    assert cache.get("b") is None
    assert cache.get("a") == 1

    clock.advance(55)
    assert "a" not in cache
    assert len(cache) == 0


def test_oldest_entry_is_evicted_when_full(clock):
    cache = CacheService(max_size=2, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("a", 10)  # re-set moves "a" to the back
    cache.set("c", 3)

    assert cache.get("b") is None
    assert (cache.get("a"), cache.get("c")) == (10, 3)


def test_wrap_calls_loader_once_per_ttl(clock):
    cache = CacheService(default_ttl=30, clock=clock)
    calls = []

    def loader():
        calls.append(1)
        return len(calls)

    assert cache.wrap("k", loader) == 1
    assert cache.wrap("k", loader) == 1
    clock.advance(31)
    assert cache.wrap("k", loader) == 2


def test_wrap_caches_falsy_values(clock):
    cache = CacheService(clock=clock)
    cache.wrap("empty", lambda: [])
    assert cache.wrap("empty", lambda: ["recomputed"]) == []


def test_invalid_size_is_refused():
    with pytest.raises(ValueError):
        CacheService(max_size=0)


def test_invalidation_helpers():
    cache = CacheService()
    cache.set(dashboard_stats_key("sch_1"), "stats")
    cache.set(user_overview_key("usr_1"), "overview")
    cache.set(user_overview_key("usr_2"), "overview")

    invalidate_school_metrics(cache, "sch_1")
    invalidate_user_overview(cache, "usr_1", None)

    assert dashboard_stats_key("sch_1") not in cache
    assert user_overview_key("usr_1") not in cache
    assert user_overview_key("usr_2") in cache
    # A missing cache is tolerated.
    invalidate_school_metrics(None, "sch_1")
    invalidate_user_overview(None, "usr_2")


def test_dashboard_stats_are_cached_until_a_write_invalidates_them(db, admin, cache, make_class):
    """
    GIVEN cached school statistics
    WHEN a student is created through the service layer
    THEN the cached entry is dropped and the next read sees the new count.
    """
    class_obj = make_class(code="10A1", capacity=30)
    stats = dashboard_service.get_dashboard_stats(db, cache, admin.school_id)
    assert (stats.student_count, stats.class_count, stats.total_capacity) == (0, 1, 30)
    assert dashboard_stats_key(admin.school_id) in cache

    student_service.create_student(
        StudentCreate(student_code="HS0001", full_name="Cached Student", class_id=class_obj.id), db, admin, cache,
    )

    assert dashboard_stats_key(admin.school_id) not in cache
    refreshed = dashboard_service.get_dashboard_stats(db, cache, admin.school_id)
    assert (refreshed.student_count, refreshed.total_enrolled) == (1, 1)


def test_user_overview_for_admin(db, admin, cache, make_class):
    make_class(code="10A1")
    user = db.get_user_by_id(admin.id, admin.school_id)

    overview = dashboard_service.get_user_overview(db, cache, user)

    assert (overview.user_id, overview.role) == (admin.id, "admin")
    assert user_overview_key(admin.id) in cache
