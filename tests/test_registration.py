# /tests/test_registration.py

from datetime import timedelta

import pytest

from app.core.clock import utcnow
from app.core.exceptions import AuthenticationError, ConflictError, PermissionDeniedError, ValidationError
from app.services import auth_service, tenant_service
from app.services.database_service import DatabaseService
from conftest import SCHOOL_NAME, register


@pytest.mark.parametrize("is_new, existing, requested, expected", [
    (True, 0, "student", ("admin", True)),
    (False, 0, "user", ("admin", True)),
    (False, 3, "admin", ("user", False)),
    (False, 3, "teacher", ("teacher", False)),
    (False, 3, "parent", ("parent", False)),
    (False, 3, "user", ("user", True)),
])
def test_decide_registration_role(is_new, existing, requested, expected):
    assert auth_service.decide_registration_role(is_new, existing, requested) == expected


def test_first_user_becomes_active_admin(db):
    """
    GIVEN a school name nobody has registered yet
    WHEN the first user registers
    THEN the school is created, the user is its active admin with every
         capability, and the school counts one teacher.
    """
    result, tokens = register(db, "principal", "Principal@THS.edu")

    assert result.is_new_school is True
    assert result.requires_approval is False
    assert result.user.role == "admin"
    assert result.user.is_active is True
    assert result.user.email == "principal@ths.edu"
    assert all(result.user.permissions.values())
    assert tokens is not None and tokens.access_token
    assert result.school.total_teachers == 1
    assert result.school.workspace_id is not None
    print("\n✅ SUCCESS: First registrant became the school admin.")


def test_later_student_registration_waits_for_approval(db, admin):
    result, tokens = register(db, "student1", "student1@ths.edu", school_name=SCHOOL_NAME.upper(), requested_role="student")

    assert result.is_new_school is False
    assert result.school.id == admin.school_id
    assert (result.user.role, result.user.is_active, result.requires_approval) == ("student", False, True)
    assert tokens is None
    assert db.get_school_by_id(admin.school_id).total_teachers == 1


def test_duplicate_email_in_same_school_is_rejected(db, admin):
    with pytest.raises(ConflictError) as excinfo:
        register(db, "someone", "principal@ths.edu")
    assert excinfo.value.code == "EMAIL_EXISTS"


def test_same_email_is_allowed_in_another_school(db, admin):
    result, _ = register(db, "principal", "principal@ths.edu", school_name="Riverside Academy")
    assert result.is_new_school is True
    assert result.user.school_id != admin.school_id


def test_failed_registration_does_not_leave_a_school_behind(db, mocker):
    """
    GIVEN a registration for a new school whose user insert will conflict
    WHEN the registration fails
    THEN neither the school nor its workspace is persisted.
    """
    mocker.patch.object(DatabaseService, "email_taken", return_value=True)

    with pytest.raises(ConflictError) as excinfo:
        register(db, "ghost", "ghost@nowhere.edu", school_name="Ghost Academy")

    assert excinfo.value.code == "EMAIL_EXISTS"
    db.session.expire_all()
    assert db.get_school_by_name("Ghost Academy") is None


def test_invalid_requested_role_is_rejected(db):
    with pytest.raises(ValidationError):
        register(db, "hacker", "hacker@ths.edu", requested_role="subadmin")


def test_short_school_name_is_rejected(db):
    with pytest.raises(ValidationError) as excinfo:
        register(db, "tiny", "tiny@ths.edu", school_name="  A ")
    assert excinfo.value.code == "INVALID_SCHOOL_NAME"


# --- Sessions ---

def test_login_refresh_and_logout(db, admin):
    user, tokens = auth_service.login(db, SCHOOL_NAME, "principal", "secret123")
    assert user.id == admin.id

    refreshed = auth_service.refresh(db, tokens.refresh_token)
    assert refreshed.refresh_token

    auth_service.logout(db, user)
    with pytest.raises(AuthenticationError) as excinfo:
        auth_service.refresh(db, refreshed.refresh_token)
    assert excinfo.value.code == "INVALID_REFRESH_TOKEN"


def test_login_by_email_and_wrong_password(db, admin):
    user, _ = auth_service.login(db, SCHOOL_NAME, "principal@ths.edu", "secret123")
    assert user.id == admin.id

    with pytest.raises(AuthenticationError) as excinfo:
        auth_service.login(db, SCHOOL_NAME, "principal", "wrong-password")
    assert excinfo.value.code == "INVALID_CREDENTIALS"


def test_pending_user_cannot_log_in(db, admin):
    register(db, "teacher1", "teacher1@ths.edu", requested_role="teacher")

    with pytest.raises(AuthenticationError) as excinfo:
        auth_service.login(db, SCHOOL_NAME, "teacher1", "secret123")
    assert excinfo.value.code == "ACCOUNT_DISABLED"


def test_change_password(db, admin):
    user = db.get_user_by_id(admin.id, admin.school_id)

    with pytest.raises(AuthenticationError):
        auth_service.change_password(db, user, "not-it", "brand-new-pass")
    auth_service.change_password(db, user, "secret123", "brand-new-pass")

    logged_in, _ = auth_service.login(db, SCHOOL_NAME, "principal", "brand-new-pass")
    assert logged_in.id == admin.id


def test_profile_update_keeps_emails_unique(db, admin):
    register(db, "teacher1", "teacher1@ths.edu", requested_role="teacher")

    with pytest.raises(ConflictError) as excinfo:
        auth_service.update_profile(db, admin, {"email": "Teacher1@THS.edu"})
    assert excinfo.value.code == "EMAIL_EXISTS"

    user = auth_service.update_profile(db, admin, {"full_name": "Head Teacher", "email": "Head@THS.edu", "role": "user"})

    assert (user.full_name, user.email, user.role) == ("Head Teacher", "head@ths.edu", "admin")
    logged_in, _ = auth_service.login(db, SCHOOL_NAME, "head@ths.edu", "secret123")
    assert logged_in.id == admin.id


# --- Subscription gate ---

def test_expired_subscription_blocks_access(db, admin):
    school = db.get_school_by_id(admin.school_id)
    later = utcnow() + timedelta(days=365)

    assert tenant_service.is_subscription_active(school)
    assert tenant_service.remaining_subscription_days(school) > 0
    assert tenant_service.remaining_subscription_days(school, now=later) == 0
    with pytest.raises(PermissionDeniedError) as excinfo:
        tenant_service.check_subscription(school, now=later)
    assert excinfo.value.code == "SUBSCRIPTION_EXPIRED"


def test_school_settings_merge_with_defaults(db, admin):
    school = tenant_service.update_school_settings(
        db, admin, {"phone": "0123", "settings": {"currency": "USD"}},
    )

    assert school.phone == "0123"
    settings = tenant_service.get_school_settings(db, admin.school_id)
    assert settings["currency"] == "USD"
    assert settings["semestersPerYear"] == 2
