"""
Tests for the RBAC evaluator.
"""

from datetime import timedelta

import pytest

from core.context import ResourceDescriptor, Subject
from core.rbac_engine import RBACEngine, permission_matches, required_permission
from core.stores import RoleGrant, SQLIdentityStore

from conftest import WEDNESDAY_11

STUDENT_10 = ResourceDescriptor(type="student", id=10, sensitivity="personal")


class TestPermissionMatching:
    """Test permission string matching."""

    def test_required_permission_format(self):
        assert required_permission(STUDENT_10, "view") == "student:10:view"

    @pytest.mark.parametrize("granted,required,expected", [
        ("student:10:view", "student:10:view", True),
        ("student:10:view", "student:10:edit", False),
        ("student:10:view", "student:11:view", False),
        ("student:*", "student:10:view", True),
        ("student:10:*", "student:10:edit", True),
        ("staff:*", "student:10:view", False),
        ("*", "payroll:7:delete", True),
        ("student", "student:10:view", False),
    ])
    def test_permission_matches(self, granted, required, expected):
        assert permission_matches(granted, required) is expected


class TestRBACEngine:
    """Test RBAC evaluation over an identity store."""

    @pytest.fixture
    def engine(self, identity_store):
        return RBACEngine(identity_store)

    def test_exact_permission_allows(self, engine, identity_store, teacher):
        identity_store.add_subject(teacher, RoleGrant(1, "TEACHER", frozenset({"student:10:view"})))

        result = engine.evaluate(teacher, STUDENT_10, "view")

        assert result.allowed is True
        assert result.details["requiredPermission"] == "student:10:view"
        assert result.details["matchedPermission"] == "student:10:view"
        assert result.attributes["roles"] == ["TEACHER"]
        assert result.attributes["permissions"] == ["student:10:view"]

    def test_missing_permission_denies(self, engine, identity_store, teacher):
        identity_store.add_subject(teacher, RoleGrant(1, "TEACHER", frozenset({"student:10:view"})))

        result = engine.evaluate(teacher, STUDENT_10, "edit")

        assert result.allowed is False
        assert result.details["matchedPermission"] is None

    def test_inherited_permission_allows(self, engine, identity_store, teacher):
        staff = RoleGrant(2, "STAFF", frozenset({"notice:1:view"}))
        role = RoleGrant(1, "TEACHER", frozenset())
        identity_store.add_subject(teacher, role)
        identity_store.add_parent(role, staff)

        result = engine.evaluate(teacher, ResourceDescriptor(type="notice", id=1), "view")

        assert result.allowed is True
        assert result.attributes["roles"] == ["TEACHER", "STAFF"]

    def test_cyclic_hierarchy_terminates(self, engine, identity_store, teacher):
        a = RoleGrant(1, "A", frozenset({"student:10:view"}))
        b = RoleGrant(2, "B", frozenset({"class:5:view"}))
        identity_store.add_subject(teacher, a)
        identity_store.add_parent(a, b)
        identity_store.add_parent(b, a)

        result = engine.evaluate(teacher, ResourceDescriptor(type="class", id=5), "view")

        assert result.allowed is True
        assert result.attributes["roles"] == ["A", "B"]
        assert engine.get_effective_permissions(teacher.id) == {"student:10:view", "class:5:view"}

    def test_wildcard_permission(self, engine, identity_store):
        admin = Subject(id=2, username="principal", roles=("ADMIN",))
        identity_store.add_subject(admin, RoleGrant(3, "ADMIN", frozenset({"student:*"})))

        assert engine.evaluate(admin, STUDENT_10, "delete").allowed is True
        assert engine.evaluate(admin, ResourceDescriptor(type="payroll", id=7), "view").allowed is False

    def test_inactive_subject_denied(self, engine, identity_store):
        inactive = Subject(id=3, username="former", roles=("TEACHER",), is_active=False)
        identity_store.add_subject(inactive, RoleGrant(1, "TEACHER", frozenset({"student:10:view"})))

        result = engine.evaluate(inactive, STUDENT_10, "view")

        assert result.allowed is False
        assert result.details["reason"] == "Subject account is inactive"

    def test_unknown_subject_denied(self, engine):
        ghost = Subject(id=404, username="ghost")

        result = engine.evaluate(ghost, STUDENT_10, "view")

        assert result.allowed is False
        assert result.details["reason"] == "Subject not found"

    def test_role_hierarchy_depths(self, engine, identity_store):
        staff = RoleGrant(1, "STAFF")
        teacher = RoleGrant(2, "TEACHER")
        head = RoleGrant(3, "HEAD_TEACHER")
        identity_store.add_parent(head, teacher)
        identity_store.add_parent(teacher, staff)

        hierarchy = engine.get_role_hierarchy(head.id)

        assert hierarchy["ancestors"] == [
            {"id": 2, "name": "TEACHER", "depth": 1},
            {"id": 1, "name": "STAFF", "depth": 2},
        ]


class TestRBACOverSQL:
    """RBAC against the SQLAlchemy identity store."""

    def test_expired_assignment_ignored(self, session):
        assigned_at = WEDNESDAY_11 - timedelta(days=30)
        writer = SQLIdentityStore(session, clock=lambda: assigned_at)
        writer.create_role("SUBSTITUTE")
        writer.grant_permission("SUBSTITUTE", "class:5:view")
        user = writer.create_user("sub_teacher")
        writer.assign_role(user.id, "SUBSTITUTE", valid_until=WEDNESDAY_11 - timedelta(days=1))

        store = SQLIdentityStore(session, clock=lambda: WEDNESDAY_11)
        subject = store.get_subject(user.id)
        result = RBACEngine(store).evaluate(subject, ResourceDescriptor(type="class", id=5), "view")

        assert subject.roles == ()
        assert result.allowed is False

    def test_hierarchy_through_sql(self, session):
        store = SQLIdentityStore(session, clock=lambda: WEDNESDAY_11)
        store.create_role("STAFF")
        store.create_role("TEACHER")
        store.add_role_parent("TEACHER", "STAFF")
        store.grant_permission("STAFF", "notice:1:view")
        user = store.create_user("ms_rivera", hierarchy_level=1)
        store.assign_role(user.id, "TEACHER")

        engine = RBACEngine(store)
        result = engine.evaluate(store.get_subject(user.id), ResourceDescriptor(type="notice", id=1), "view")

        assert result.allowed is True
        assert engine.get_effective_roles(user.id) == ["TEACHER", "STAFF"]
