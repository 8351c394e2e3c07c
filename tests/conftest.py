"""
Pytest configuration and shared fixtures for the access policy engine tests.
"""

from datetime import datetime
from typing import Dict, List

import pytest
from sqlalchemy.orm import sessionmaker

from config.settings import Settings
from core.context import Subject
from core.exceptions import SubjectNotFound
from core.stores import ActivityRecord, LoginRecord, PolicySpec, RoleGrant
from models.database import init_db, make_engine

# Wednesday 18 September 2024, 11:00
WEDNESDAY_11 = datetime(2024, 9, 18, 11, 0)


# ============================================================================
# In-memory stores
# ============================================================================

class FakeIdentityStore:
    """Identity store over plain dicts."""

    def __init__(self):
        self.subjects: Dict[int, Subject] = {}
        self.grants: Dict[int, List[RoleGrant]] = {}
        self.parents: Dict[int, List[RoleGrant]] = {}
        self.calls = 0

    def add_subject(self, subject: Subject, *grants: RoleGrant):
        self.subjects[subject.id] = subject
        self.grants[subject.id] = list(grants)

    def add_parent(self, child: RoleGrant, parent: RoleGrant):
        self.parents.setdefault(child.id, []).append(parent)

    def get_subject(self, subject_id):
        if subject_id not in self.subjects:
            raise SubjectNotFound(subject_id)
        return self.subjects[subject_id]

    def get_roles_with_permissions(self, subject_id):
        self.calls += 1
        if subject_id not in self.subjects:
            raise SubjectNotFound(subject_id)
        return list(self.grants.get(subject_id, []))

    def get_parent_roles(self, role_id):
        return list(self.parents.get(role_id, []))


class FakePolicyStore:
    def __init__(self, *policies: PolicySpec):
        self.policies = list(policies)

    def find_active_policies(self, resource_type, action):
        matching = [
            p for p in self.policies
            if p.resource_type == resource_type and p.action == action and p.is_active
        ]
        return sorted(matching, key=lambda p: (p.priority, p.id))


class FakeActivityLog:
    def __init__(self):
        self.activities: Dict[int, List[ActivityRecord]] = {}
        self.logins: Dict[int, List[LoginRecord]] = {}

    def add_activity(self, subject_id, action, created_at):
        self.activities.setdefault(subject_id, []).append(ActivityRecord(action=action, created_at=created_at))

    def add_failed_login(self, subject_id, created_at):
        self.logins.setdefault(subject_id, []).append(LoginRecord(success=False, created_at=created_at))

    def get_recent_activity(self, subject_id, since, limit=10):
        rows = [a for a in self.activities.get(subject_id, []) if a.created_at >= since]
        rows.sort(key=lambda a: a.created_at, reverse=True)
        return rows[:limit]

    def get_failed_logins(self, subject_id, since):
        return [l for l in self.logins.get(subject_id, []) if not l.success and l.created_at >= since]


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Default settings, isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def clock():
    """Fixed clock on a Wednesday morning."""
    return lambda: WEDNESDAY_11


@pytest.fixture
def identity_store():
    return FakeIdentityStore()


@pytest.fixture
def policy_store():
    return FakePolicyStore()


@pytest.fixture
def activity_log():
    return FakeActivityLog()


@pytest.fixture
def db_engine():
    """Fresh in-memory SQLite database with the full schema."""
    engine = make_engine("sqlite:///:memory:")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session(db_engine):
    """Session bound to the in-memory database."""
    Session = sessionmaker(bind=db_engine, autoflush=False)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture
def teacher():
    """A teacher allowed to view student 10."""
    return Subject(id=1, username="ms_rivera", roles=("TEACHER",), hierarchy_level=1, last_known_location="office")
