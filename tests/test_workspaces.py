# /tests/test_workspaces.py

import pytest

from app.core.exceptions import ConflictError
from app.models.class_model import ClassUpdate
from app.services import class_service, workspace_service
from conftest import fresh_class


def test_build_code_sanitises_identifiers():
    assert workspace_service.build_code("CLS", "10a-1 (B)", "cls_abcdef123456") == "CLS-10A1B"
    # Nothing usable in the identifier: fall back to the tail of the entity id.
    assert workspace_service.build_code("CLS", "--", "cls_abcdef123456") == "CLS-123456"


def test_map_class_status():
    assert workspace_service.map_class_status("completed") == "archived"
    assert workspace_service.map_class_status("ACTIVE") == "active"
    assert workspace_service.map_class_status("mystery") == "inactive"


def test_school_workspace_is_created_at_registration(db, admin):
    school = db.get_school_by_id(admin.school_id)

    workspace = db.get_workspace_by_id(school.workspace_id)

    assert workspace.type == "school"
    assert workspace.code == f"SCH-{school.school_code}"
    assert workspace.path == f"school:{school.id}"
    assert school.workspace_path == workspace.path


def test_class_workspace_is_nested_under_school(db, admin, make_class):
    class_obj = make_class(code="10A1")
    school = db.get_school_by_id(admin.school_id)

    workspace = db.get_workspace_by_id(class_obj.workspace_id)

    assert workspace.parent_workspace_id == school.workspace_id
    assert workspace.path == f"school:{school.id}::class:{class_obj.id}"
    assert workspace.code == "CLS-10A1"
    assert workspace.meta["capacity"] == class_obj.capacity
    assert class_obj.workspace_code == workspace.code


def test_sync_is_idempotent(db, admin, make_class):
    """
    GIVEN a class whose workspace already exists
    WHEN the workspace is synced again without any change
    THEN the same id, code and path come back and no new workspace appears.
    """
    class_obj = make_class(code="10A1")
    before = (class_obj.workspace_id, class_obj.workspace_code, class_obj.workspace_path)

    again = db.run_in_transaction(
        lambda tx: workspace_service.sync_class_workspace(tx, tx.get_class_by_id(class_obj.id, admin.school_id))
    )

    assert (again.id, again.code, again.path) == before
    assert db.find_workspace(admin.school_id, "class", class_obj.id).id == before[0]


def test_colliding_codes_get_a_suffix(db, admin, make_class):
    first = make_class(code="10A-1")
    second = make_class(code="10A1")

    assert first.workspace_code == "CLS-10A1"
    assert second.workspace_code.startswith("CLS-10A1-")
    assert second.workspace_code != first.workspace_code


def test_rename_and_status_change_propagate(db, admin, make_class):
    class_obj = make_class(code="10A1", name="10A1")

    class_service.update_class(class_obj.id, ClassUpdate(name="10A1 Science", status="completed"), db, admin)

    reloaded = fresh_class(db, class_obj.id, admin.school_id)
    workspace = db.get_workspace_by_id(reloaded.workspace_id)
    assert workspace.id == class_obj.workspace_id
    assert workspace.name == "10A1 Science"
    assert workspace.status == "archived"


def test_duplicate_class_code_leaves_no_workspace(db, admin, make_class):
    make_class(code="10A1")

    with pytest.raises(ConflictError) as excinfo:
        make_class(code="10a1")

    assert excinfo.value.code == "CLASS_CODE_EXISTS"
    assert len(db.list_classes(admin.school_id)) == 1


def test_deleting_class_removes_only_its_workspace(db, admin, make_class):
    class_obj = make_class(code="10A1")
    school_workspace_id = db.get_school_by_id(admin.school_id).workspace_id

    class_service.delete_class(class_obj.id, db, admin)

    db.session.expire_all()
    assert db.find_workspace(admin.school_id, "class", class_obj.id) is None
    assert db.get_workspace_by_id(school_workspace_id) is not None
