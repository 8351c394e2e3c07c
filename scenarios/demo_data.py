"""
Demo Data Loader
================

Creates sample data for a small school:

- Staff with different roles and seniority
- A role hierarchy: STAFF -> TEACHER -> HEAD_TEACHER -> ADMIN
- Record-level permissions (student:10:view, class:5:view, ...)
- ABAC policies for student records, payroll and notices
- Recent activity and failed logins feeding behavior and risk checks

All seeded timestamps are anchored on DEMO_NOW (a Wednesday morning) so
scenarios evaluated at that instant are reproducible.
"""

from datetime import datetime, timedelta
from typing import Optional

from models.database import init_db, get_session
from models.entities import (
    User, Role, Permission, UserRole, RolePermission, RoleHierarchy,
    AccessPolicy, PolicyCondition, UserActivity, LoginAttempt, AuditLog
)
from core.stores import SQLActivityLog, SQLIdentityStore, SQLPolicyStore

# Wednesday 18 September 2024, 11:00
DEMO_NOW = datetime(2024, 9, 18, 11, 0)


ROLES = {
    'STAFF': "Any school employee",
    'TEACHER': "Classroom teacher",
    'HEAD_TEACHER': "Head of department, inherits TEACHER",
    'ADMIN': "School administrator, inherits HEAD_TEACHER",
    'FINANCE': "Bursar's office",
    'PARENT': "Parent or guardian with portal access",
}

HIERARCHY = [
    # (child, parent)
    ('TEACHER', 'STAFF'),
    ('HEAD_TEACHER', 'TEACHER'),
    ('ADMIN', 'HEAD_TEACHER'),
]

ROLE_PERMISSIONS = {
    'STAFF': ['notice:1:view', 'notice:2:view'],
    'TEACHER': ['student:10:view', 'class:5:view', 'monthly_test:3:write'],
    'HEAD_TEACHER': ['student:10:edit', 'class:5:edit'],
    'ADMIN': ['student:*', 'staff:*'],
    'FINANCE': ['payroll:*', 'notice:1:view'],
    'PARENT': ['student:10:view'],
}

USERS = [
    # (username, full name, roles, hierarchy level, last known location)
    ('principal', "Margaret Okafor", ['ADMIN'], 4, 'office'),
    ('ms_rivera', "Elena Rivera", ['TEACHER'], 1, 'office'),
    ('mr_chen', "David Chen", ['HEAD_TEACHER'], 2, 'home'),
    ('bursar', "Priya Nair", ['FINANCE'], 2, 'office'),
    ('parent_jones', "Sam Jones", ['PARENT'], 0, None),
]

POLICIES = [
    {
        'name': 'staff-view-student-records',
        'description': "Staff of any seniority may view student records",
        'resource_type': 'student',
        'action': 'view',
        'effect': 'ALLOW',
        'priority': 0,
        'attributes': {'scope': 'school'},
        'conditions': [
            {'target': 'USER', 'attribute': 'hierarchy_level', 'operator': '>=', 'value': 1},
        ],
    },
    {
        'name': 'parents-view-own-child',
        'description': "Parents may view the record of their own child",
        'resource_type': 'student',
        'action': 'view',
        'effect': 'ALLOW',
        'priority': 0,
        'attributes': {'scope': 'guardian'},
        'conditions': [
            {'target': 'USER', 'attribute': 'roles', 'operator': 'contains', 'value': 'PARENT'},
            {'target': 'CONTEXT', 'attribute': 'guardianOf', 'operator': '==', 'value': 10},
        ],
    },
    {
        'name': 'block-student-records-on-public-network',
        'description': "Student records are never served to public networks",
        'resource_type': 'student',
        'action': 'view',
        'effect': 'DENY',
        'priority': 10,
        'attributes': {'reason': 'public-network'},
        'conditions': [
            {'target': 'CONTEXT', 'attribute': 'networkType', 'operator': '==', 'value': 'public'},
        ],
    },
    {
        'name': 'senior-staff-edit-students',
        'description': "Only heads of department and above edit student records",
        'resource_type': 'student',
        'action': 'edit',
        'effect': 'ALLOW',
        'priority': 0,
        'attributes': {},
        'conditions': [
            {'target': 'USER', 'attribute': 'hierarchy_level', 'operator': '>=', 'value': 2},
        ],
    },
    {
        'name': 'finance-view-payroll',
        'description': "Payroll is visible to finance and administrators",
        'resource_type': 'payroll',
        'action': 'view',
        'effect': 'ALLOW',
        'priority': 0,
        'attributes': {'audit': True},
        'conditions': [
            {'target': 'USER', 'attribute': 'role', 'operator': 'in', 'value': ['FINANCE', 'ADMIN']},
        ],
    },
    {
        'name': 'notices-open-to-staff',
        'description': "Notices are readable by anyone who holds the permission",
        'resource_type': 'notice',
        'action': 'view',
        'effect': 'ALLOW',
        'priority': 0,
        'attributes': {},
        'conditions': [],
    },
]


def _clear(session):
    for model in (AuditLog, LoginAttempt, UserActivity, PolicyCondition, AccessPolicy,
                  RoleHierarchy, RolePermission, UserRole, Permission, Role, User):
        session.query(model).delete()
    session.commit()


def seed(session, now: Optional[datetime] = None):
    """
    Insert the demo data into an open session.

    Args:
        session: SQLAlchemy session (schema must exist)
        now: Anchor for seeded timestamps (DEMO_NOW by default)

    Returns:
        Mapping of username to user id
    """
    now = now or DEMO_NOW
    assigned_at = now - timedelta(days=30)

    identity = SQLIdentityStore(session, clock=lambda: assigned_at)
    policies = SQLPolicyStore(session)
    activity = SQLActivityLog(session, clock=lambda: now)

    for name, description in ROLES.items():
        identity.create_role(name, description)
    for child, parent in HIERARCHY:
        identity.add_role_parent(child, parent)
    for role_name, permission_names in ROLE_PERMISSIONS.items():
        for permission_name in permission_names:
            identity.grant_permission(role_name, permission_name)

    user_ids = {}
    for username, full_name, roles, level, location in USERS:
        user = identity.create_user(
            username=username,
            full_name=full_name,
            email=f"{username}@school.example",
            hierarchy_level=level,
            last_known_location=location
        )
        user_ids[username] = user.id
        for role_name in roles:
            identity.assign_role(user.id, role_name)

    for policy in POLICIES:
        policies.create_policy(**policy)

    # Mostly read-only activity for staff: 8 views out of 10
    for username in ('principal', 'ms_rivera', 'mr_chen', 'bursar'):
        for i in range(10):
            action = 'view' if i < 8 else 'edit'
            activity.record_activity(
                user_ids[username], action, 'student', 10,
                at=now - timedelta(minutes=15 * (i + 1))
            )

    # The parent mostly edits profile data and recently failed to log in
    for i in range(5):
        activity.record_activity(
            user_ids['parent_jones'], 'view' if i == 0 else 'update', 'student', 10,
            at=now - timedelta(hours=i + 1)
        )
    for i in range(3):
        activity.record_login(user_ids['parent_jones'], False, '203.0.113.7', at=now - timedelta(hours=2, minutes=i))
    activity.record_login(user_ids['parent_jones'], True, '203.0.113.7', at=now - timedelta(hours=1))

    session.flush()
    return user_ids


def load_demo_data(now: Optional[datetime] = None):
    """Create the schema if needed, wipe existing rows and seed the demo school."""
    init_db()

    with get_session() as session:
        _clear(session)
        seed(session, now)
