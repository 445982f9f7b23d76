# /tests/test_permissions.py

from types import SimpleNamespace

import pytest

from app.core import deps
from app.core.exceptions import PermissionDeniedError
from app.services import permission_service
from app.services.permission_service import CapabilitySet


def _user(role="teacher", **capabilities):
    values = {cap: False for cap in permission_service.CAPABILITIES}
    values.update(capabilities)
    return SimpleNamespace(role=role, permissions_overridden=False, **values)


def test_every_preset_covers_all_capabilities():
    for preset in permission_service.list_role_presets():
        assert set(preset.capabilities.to_dict()) == set(permission_service.CAPABILITIES)


def test_preset_table():
    assert all(permission_service.derive_permissions("admin").to_dict().values())
    teacher = permission_service.derive_permissions("teacher")
    assert (teacher.can_create, teacher.can_update, teacher.can_delete, teacher.can_manage_users) == (True, True, False, False)
    subadmin = permission_service.derive_permissions("subadmin")
    assert subadmin.can_manage_users and not subadmin.can_manage_school
    assert not any(permission_service.derive_permissions("student").to_dict().values())


def test_unknown_role_falls_back_to_user_preset():
    assert permission_service.derive_permissions("janitor") == permission_service.derive_permissions("user")
    assert permission_service.derive_permissions(None) == CapabilitySet()


def test_capability_set_rejects_unknown_names():
    with pytest.raises(ValueError):
        CapabilitySet().replace(can_fly=True)
    with pytest.raises(ValueError):
        CapabilitySet.from_mapping({"can_fly": True})
    with pytest.raises(ValueError):
        CapabilitySet().has("can_fly")


def test_assign_role_applies_preset_and_clears_override():
    user = _user(role="user", can_delete=True)
    user.permissions_overridden = True

    permission_service.assign_role(user, "teacher")

    assert user.role == "teacher"
    assert permission_service.capabilities_of(user) == permission_service.derive_permissions("teacher")
    assert user.permissions_overridden is False
    assert permission_service.matches_role_preset(user)


def test_assign_role_with_explicit_set_is_flagged():
    user = _user()
    custom = permission_service.derive_permissions("teacher").replace(can_delete=True)

    permission_service.assign_role(user, "teacher", custom)

    assert user.can_delete is True
    assert user.permissions_overridden is True
    assert not permission_service.matches_role_preset(user)


def test_explicit_set_equal_to_preset_is_not_an_override():
    user = _user()
    permission_service.assign_role(user, "teacher", permission_service.derive_permissions("teacher"))
    assert user.permissions_overridden is False


def test_assign_unknown_role_is_refused():
    with pytest.raises(ValueError):
        permission_service.assign_role(_user(), "janitor")


# --- Route guards ---

def test_require_permission_denies_missing_capability():
    guard = deps.require_permission("can_delete")

    with pytest.raises(PermissionDeniedError) as excinfo:
        guard(current_user=_user(can_create=True))

    assert excinfo.value.code == "INSUFFICIENT_PERMISSIONS"
    assert excinfo.value.details == {"required": ["can_delete"]}


def test_require_permission_passes_user_through():
    user = _user(can_delete=True)
    assert deps.require_permission("can_delete")(current_user=user) is user


def test_require_permission_rejects_unknown_capability_at_definition():
    with pytest.raises(ValueError):
        deps.require_permission("can_fly")


def test_any_and_all_guards():
    user = _user(can_create=True)

    assert deps.require_any_permission("can_delete", "can_create")(current_user=user) is user
    with pytest.raises(PermissionDeniedError) as excinfo:
        deps.require_all_permissions("can_create", "can_delete")(current_user=user)
    assert excinfo.value.details == {"required": ["can_delete"]}


def test_require_admin_checks_role_not_capabilities():
    everything_but_admin = _user(role="subadmin", **permission_service.derive_permissions("admin").to_dict())

    with pytest.raises(PermissionDeniedError) as excinfo:
        deps.require_admin(current_user=everything_but_admin)
    assert excinfo.value.code == "INSUFFICIENT_ROLE"
