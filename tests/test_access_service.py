"""Tests for organization access resolution."""
import uuid

import pytest

from orgtree.core.errors import ForbiddenError
from orgtree.db.enums import OrgRole
from orgtree.services import access_service


def test_true_owner_resolves_to_owner(db, org_setup):
    access = access_service.resolve_org_access(db, org_setup.org.id, org_setup.owner.id)

    assert access.has_access
    assert access.role == OrgRole.OWNER
    assert access.is_owner
    assert access.is_true_owner
    assert access.has_admin_access


def test_superuser_bypass_is_not_true_owner(db, org_setup):
    access = access_service.resolve_org_access(db, org_setup.org.id, org_setup.superuser.id)

    assert access.has_access
    assert access.role == OrgRole.OWNER
    assert access.is_owner is False
    assert access.has_admin_access
    assert access.is_true_owner is False


def test_superuser_bypass_applies_to_unknown_org(db, org_setup):
    access = access_service.resolve_org_access(db, uuid.uuid4(), org_setup.superuser.id)

    assert access.has_access
    assert access.role == OrgRole.OWNER


@pytest.mark.parametrize(
    "attr, role",
    [("admin", OrgRole.ADMIN), ("editor", OrgRole.EDITOR), ("viewer", OrgRole.VIEWER)],
)
def test_membership_role(db, org_setup, attr, role):
    user = getattr(org_setup, attr)
    access = access_service.resolve_org_access(db, org_setup.org.id, user.id)

    assert access.has_access
    assert access.role == role
    assert access.is_owner is False


def test_outsider_and_unknown_org_have_no_access(db, org_setup):
    assert access_service.resolve_org_access(db, org_setup.org.id, org_setup.outsider.id) == (
        access_service.NO_ACCESS
    )
    assert access_service.resolve_org_access(db, uuid.uuid4(), org_setup.owner.id) == (
        access_service.NO_ACCESS
    )


def test_role_hierarchy():
    assert OrgRole.OWNER.at_least(OrgRole.ADMIN)
    assert OrgRole.ADMIN.at_least(OrgRole.EDITOR)
    assert OrgRole.EDITOR.at_least(OrgRole.VIEWER)
    assert not OrgRole.VIEWER.at_least(OrgRole.EDITOR)
    assert not OrgRole.ADMIN.at_least(OrgRole.OWNER)


def test_require_permission_passes_at_or_above_minimum(db, org_setup):
    access = access_service.require_org_permission(
        db, org_setup.org.id, org_setup.editor.id, OrgRole.EDITOR
    )
    assert access.role == OrgRole.EDITOR

    access = access_service.require_org_permission(
        db, org_setup.org.id, org_setup.admin.id, OrgRole.EDITOR
    )
    assert access.role == OrgRole.ADMIN


def test_require_permission_below_minimum_is_forbidden(db, org_setup):
    with pytest.raises(ForbiddenError) as exc:
        access_service.require_org_permission(
            db, org_setup.org.id, org_setup.viewer.id, OrgRole.ADMIN
        )
    assert exc.value.message == "Insufficient permissions. Admin role or higher required."
    assert exc.value.status_code == 403


def test_require_permission_without_access_is_forbidden(db, org_setup):
    with pytest.raises(ForbiddenError):
        access_service.require_org_permission(db, org_setup.org.id, org_setup.outsider.id)


def test_helper_predicates(db, org_setup):
    org_id = org_setup.org.id

    assert access_service.is_true_owner(db, org_id, org_setup.owner.id)
    assert not access_service.is_true_owner(db, org_id, org_setup.superuser.id)
    assert not access_service.is_true_owner(db, org_id, org_setup.admin.id)

    assert access_service.has_admin_access(db, org_id, org_setup.admin.id)
    assert access_service.has_admin_access(db, org_id, org_setup.superuser.id)
    assert not access_service.has_admin_access(db, org_id, org_setup.editor.id)
