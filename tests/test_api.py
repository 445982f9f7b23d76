# /tests/test_api.py

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.services.database_service import DatabaseService, get_db_service
from conftest import ACADEMIC_YEAR, SCHOOL_NAME


@pytest.fixture
def client(session_factory):
    """A TestClient whose requests each get their own session on the test database."""
    def override_db_service():
        session = session_factory()
        try:
            yield DatabaseService(session, session_factory=session_factory)
        finally:
            session.close()

    app.dependency_overrides[get_db_service] = override_db_service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _register(client, username, requested_role="user", school_name=SCHOOL_NAME):
    return client.post("/api/auth/register", json={
        "username": username,
        "email": f"{username}@ths.edu",
        "password": "secret123",
        "confirmPassword": "secret123",
        "fullName": username.title(),
        "schoolName": school_name,
        "requestedRole": requested_role,
    })


def _bearer(response):
    return {"Authorization": f"Bearer {response.json()['tokens']['accessToken']}"}


@pytest.fixture
def admin_headers(client):
    return _bearer(_register(client, "principal"))


def test_health_check(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["version"] == "1.0.0"


def test_register_then_read_profile(client):
    """
    GIVEN a brand-new school
    WHEN the first user registers and calls /me with the returned token
    THEN they are the active admin and the payload uses camelCase keys.
    """
    registered = _register(client, "principal")
    assert registered.status_code == 201
    body = registered.json()
    assert body["isNewSchool"] is True
    assert body["user"]["role"] == "admin"
    assert body["user"]["permissions"]["canManageUsers"] is True

    me = client.get("/api/auth/me", headers=_bearer(registered))
    assert me.status_code == 200
    assert me.json()["username"] == "principal"
    print("\n✅ SUCCESS: Registration and /me round trip worked.")


def test_missing_token_gets_error_envelope(client):
    response = client.get("/api/classes")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Bearer"
    assert response.json() == {
        "error": {"code": "NO_TOKEN", "message": "Authentication token is missing.", "details": {}},
    }


def test_garbage_token_is_rejected(client):
    response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["error"]["code"] == "INVALID_TOKEN"


def test_pending_registrant_gets_no_tokens_and_cannot_log_in(client, admin_headers):
    registered = _register(client, "teacher1", requested_role="teacher")
    assert registered.status_code == 201
    assert registered.json()["requiresApproval"] is True
    assert registered.json()["tokens"] is None

    login = client.post("/api/auth/login", json={"username": "teacher1", "password": "secret123", "schoolName": SCHOOL_NAME})
    assert login.status_code == 401
    assert login.json()["error"]["code"] == "ACCOUNT_DISABLED"


def test_user_without_capabilities_is_forbidden(client, admin_headers):
    plain_user = _register(client, "visitor")

    response = client.get("/api/classes", headers=_bearer(plain_user))

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_PERMISSIONS"
    assert response.json()["error"]["details"] == {"required": ["can_view_all"]}


def test_request_validation_uses_the_envelope(client, admin_headers):
    response = client.post("/api/classes", headers=admin_headers, json={"name": "10A1", "classCode": "10A1", "grade": 9})

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert {item["field"] for item in error["details"]["errors"]} >= {"grade", "academicYear"}


def test_class_and_student_flow(client, admin_headers):
    created = client.post("/api/classes", headers=admin_headers, json={
        "name": "10A1", "classCode": "10a1", "grade": 10, "academicYear": ACADEMIC_YEAR, "capacity": 1,
    })
    assert created.status_code == 201
    class_body = created.json()
    assert class_body["classCode"] == "10A1"
    assert class_body["workspaceCode"] == "CLS-10A1"

    duplicate = client.post("/api/classes", headers=admin_headers, json={
        "name": "10A1 again", "classCode": "10A1", "grade": 10, "academicYear": ACADEMIC_YEAR,
    })
    assert duplicate.status_code == 409
    assert duplicate.json()["error"]["code"] == "CLASS_CODE_EXISTS"

    first = client.post("/api/students", headers=admin_headers, json={
        "studentCode": "HS0001", "fullName": "An Nguyen", "classId": class_body["id"],
    })
    assert first.status_code == 201
    full = client.post("/api/students", headers=admin_headers, json={
        "studentCode": "HS0002", "fullName": "Binh Tran", "classId": class_body["id"],
    })
    assert full.status_code == 409
    assert full.json()["error"]["code"] == "CLASS_FULL"

    stats = client.get(f"/api/classes/{class_body['id']}/statistics", headers=admin_headers)
    assert stats.json()["currentStudents"] == 1
    assert stats.json()["availableSeats"] == 0

    dashboard = client.get("/api/dashboard/stats", headers=admin_headers)
    assert dashboard.status_code == 200
    assert dashboard.json()["studentCount"] == 1


def test_only_admins_unlock_scores(client, admin_headers):
    """A teacher may lock a cohort but the unlock route is reserved to the admin role."""
    pending = _register(client, "teacher1", requested_role="teacher").json()["user"]
    approved = client.post(f"/api/admin/users/{pending['id']}/approve", headers=admin_headers)
    assert approved.status_code == 200
    assert approved.json()["isActive"] is True

    login = client.post("/api/auth/login", json={"username": "teacher1", "password": "secret123", "schoolName": SCHOOL_NAME})
    teacher_headers = _bearer(login)

    response = client.post("/api/scores/unlock", headers=teacher_headers, json={
        "classId": "cls_any", "subjectId": "sub_any", "semester": 1, "academicYear": ACADEMIC_YEAR,
    })
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "INSUFFICIENT_ROLE"

    not_admin = client.get("/api/admin/users", headers=teacher_headers)
    assert not_admin.status_code == 403


def test_admin_cannot_demote_self_over_http(client, admin_headers):
    me = client.get("/api/auth/me", headers=admin_headers).json()

    response = client.put(
        f"/api/admin/users/{me['id']}/permissions",
        headers=admin_headers,
        json={"permissions": {"canManageUsers": False}},
    )

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "CANNOT_MODIFY_SELF"


def test_school_settings_round_trip(client, admin_headers):
    updated = client.put("/api/admin/school-settings", headers=admin_headers, json={
        "phone": "028 1234 5678", "settings": {"currency": "USD"},
    })
    assert updated.status_code == 200

    current = client.get("/api/admin/school-settings", headers=admin_headers).json()
    assert current["phone"] == "028 1234 5678"
    assert current["settings"]["currency"] == "USD"
    assert current["settings"]["semestersPerYear"] == 2


def test_list_endpoints_return_pages(client, admin_headers):
    created = client.post("/api/classes", headers=admin_headers, json={
        "name": "10A1", "classCode": "10A1", "grade": 10, "academicYear": ACADEMIC_YEAR,
    }).json()
    for code, name in (("HS0001", "An Nguyen"), ("HS0002", "Binh Tran"), ("HS0003", "Cuong Le")):
        client.post("/api/students", headers=admin_headers, json={"studentCode": code, "fullName": name, "classId": created["id"]})

    page = client.get("/api/students", headers=admin_headers, params={"page": 2, "limit": 2}).json()
    assert [s["fullName"] for s in page["items"]] == ["Cuong Le"]
    assert (page["page"], page["limit"], page["total"], page["totalPages"]) == (2, 2, 3, 2)

    too_big = client.get("/api/students", headers=admin_headers, params={"limit": 1000})
    assert too_big.status_code == 422

    users = client.get("/api/admin/users", headers=admin_headers).json()
    assert users["total"] == 1
    assert users["items"][0]["username"] == "principal"

    stats = client.get("/api/students/statistics", headers=admin_headers).json()
    assert stats["byClass"] == [{"classId": created["id"], "className": "10A1", "count": 3}]


def test_profile_can_be_read_and_edited(client, admin_headers):
    updated = client.put("/api/auth/profile", headers=admin_headers, json={"fullName": "Head Teacher", "phone": "0901"})
    assert updated.status_code == 200

    profile = client.get("/api/auth/profile", headers=admin_headers).json()
    assert (profile["fullName"], profile["phone"], profile["role"]) == ("Head Teacher", "0901", "admin")


def test_attendance_over_http(client, admin_headers):
    class_id = client.post("/api/classes", headers=admin_headers, json={
        "name": "10A1", "classCode": "10A1", "grade": 10, "academicYear": ACADEMIC_YEAR,
    }).json()["id"]
    student = client.post("/api/students", headers=admin_headers, json={
        "studentCode": "HS0001", "fullName": "An Nguyen", "classId": class_id,
    }).json()

    marked = client.post("/api/attendance/mark", headers=admin_headers, json={
        "classId": class_id, "date": "2026-03-02", "entries": [{"studentId": student["id"], "status": "absent_excused"}],
    })
    assert marked.status_code == 200
    assert marked.json() == {"marked": 1, "notified": 1}

    empty = client.post("/api/attendance/mark", headers=admin_headers, json={
        "classId": class_id, "date": "2026-03-02", "entries": [],
    })
    assert empty.status_code == 422

    page = client.get("/api/attendance", headers=admin_headers, params={"classId": class_id}).json()
    assert (page["limit"], page["total"]) == (50, 1)
    assert page["items"][0]["period"] is None

    day = client.get("/api/attendance/class", headers=admin_headers, params={"classId": class_id, "date": "2026-03-02"}).json()
    assert day[0]["attendance"][0]["status"] == "absent_excused"

    report = client.get(
        f"/api/attendance/student/{student['id']}/report", headers=admin_headers,
        params={"startDate": "2026-03-01", "endDate": "2026-03-31"},
    ).json()
    assert report["stats"]["absentExcused"] == 1
    assert report["stats"]["attendanceRate"] == 0

    deleted = client.delete(f"/api/attendance/{page['items'][0]['id']}", headers=admin_headers)
    assert deleted.status_code == 204
