# /app/services/permission_service.py

"""
Role presets and the capability model.

A user's capability set is six booleans. `derive_permissions(role)` is a pure
lookup into the preset table; `assign_role` writes either the preset or an
explicit admin-supplied set onto a user and records which one it was in
`permissions_overridden`.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Mapping, Optional

from app.db.models.user_models import CAPABILITY_COLUMNS

CAPABILITIES = CAPABILITY_COLUMNS


@dataclass(frozen=True)
class CapabilitySet:
    can_create: bool = False
    can_update: bool = False
    can_delete: bool = False
    can_view_all: bool = False
    can_manage_users: bool = False
    can_manage_school: bool = False

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)

    def has(self, capability: str) -> bool:
        if capability not in CAPABILITIES:
            raise ValueError(f"Unknown capability '{capability}'")
        return getattr(self, capability)

    def replace(self, **changes) -> "CapabilitySet":
        values = self.to_dict()
        for key, value in changes.items():
            if key not in CAPABILITIES:
                raise ValueError(f"Unknown capability '{key}'")
            values[key] = bool(value)
        return CapabilitySet(**values)

    @classmethod
    def from_mapping(cls, data: Mapping[str, bool]) -> "CapabilitySet":
        unknown = set(data) - set(CAPABILITIES)
        if unknown:
            raise ValueError(f"Unknown capabilities: {', '.join(sorted(unknown))}")
        return cls(**{key: bool(value) for key, value in data.items()})


@dataclass(frozen=True)
class RolePreset:
    role: str
    display_name: str
    description: str
    capabilities: CapabilitySet


_ALL = CapabilitySet(True, True, True, True, True, True)
_NONE = CapabilitySet()

ROLE_PRESETS: Dict[str, RolePreset] = {
    "admin": RolePreset("admin", "Administrator", "Full control over the school, its users and its data.", _ALL),
    "teacher": RolePreset(
        "teacher", "Teacher", "Manages students and scores of the classes they teach.",
        CapabilitySet(can_create=True, can_update=True, can_view_all=True),
    ),
    "student": RolePreset("student", "Student", "Reads their own scores and profile.", _NONE),
    "parent": RolePreset("parent", "Parent", "Reads their children's results and payments.", _NONE),
    "user": RolePreset("user", "User", "Basic account waiting for a role.", _NONE),
    "staff": RolePreset(
        "staff", "Staff", "Handles fees and payment collection.",
        CapabilitySet(can_create=True, can_update=True, can_view_all=True),
    ),
    "subadmin": RolePreset(
        "subadmin", "Deputy administrator", "Manages users but cannot change school settings.",
        _ALL.replace(can_manage_school=False),
    ),
}

DEFAULT_ROLE = "user"
# Roles a registrant may ask for.
REGISTRATION_ROLES = ("admin", "teacher", "student", "parent", "user")


def is_valid_role(role: Optional[str]) -> bool:
    return role in ROLE_PRESETS


def derive_permissions(role: Optional[str]) -> CapabilitySet:
    """The preset capability set for `role`; unknown roles get the `user` preset."""
    preset = ROLE_PRESETS.get(role) or ROLE_PRESETS[DEFAULT_ROLE]
    return preset.capabilities


def list_role_presets() -> List[RolePreset]:
    return list(ROLE_PRESETS.values())


# --- Reading and writing a user's capabilities ---

def capabilities_of(user) -> CapabilitySet:
    return CapabilitySet(**{cap: bool(getattr(user, cap)) for cap in CAPABILITIES})


def has_permission(user, capability: str) -> bool:
    return capabilities_of(user).has(capability)


def matches_role_preset(user) -> bool:
    return capabilities_of(user) == derive_permissions(user.role)


def apply_capabilities(user, capabilities: CapabilitySet, overridden: bool) -> None:
    for cap, value in capabilities.to_dict().items():
        setattr(user, cap, value)
    user.permissions_overridden = overridden


def assign_role(user, role: str, permissions: Optional[CapabilitySet] = None) -> CapabilitySet:
    """
    Sets `user.role` and its capability set.

    Without `permissions` the preset of `role` is applied. Passing an explicit
    set is an admin override; it is stored as given and flagged, unless it
    happens to equal the preset.
    """
    if not is_valid_role(role):
        raise ValueError(f"Unknown role '{role}'")
    user.role = role
    preset = derive_permissions(role)
    if permissions is None:
        apply_capabilities(user, preset, overridden=False)
        return preset
    apply_capabilities(user, permissions, overridden=permissions != preset)
    return permissions
