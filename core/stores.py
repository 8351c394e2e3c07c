"""
Policy Information Stores
=========================

The policy decision engine reads everything it needs through three
collaborators:

- IdentityStore: subjects, their roles and role parents
- PolicyStore: active ABAC policies for a resource type and action
- ActivityLog: recent user activity and failed logins

Each is a Protocol so callers can plug in any backend. The SQL*
classes implement them over a SQLAlchemy session and also carry the
administrative writes used by the CLI and demo data. Stores return
plain frozen records, never ORM instances, so results can be cached
and shared safely.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Protocol, Sequence, Tuple

from loguru import logger
from sqlalchemy.orm import Session

from models.entities import (
    User, Role, Permission, UserRole, RolePermission, RoleHierarchy,
    AccessPolicy, PolicyCondition, UserActivity, LoginAttempt,
    PolicyEffect, ConditionTarget
)
from .cache import Cache
from .context import Subject
from .exceptions import SubjectNotFound


# ============================================================================
# Records
# ============================================================================

@dataclass(frozen=True)
class RoleGrant:
    """A role together with the permission names it grants directly."""
    id: int
    name: str
    permissions: FrozenSet[str] = frozenset()


@dataclass(frozen=True)
class PolicyConditionSpec:
    target: str
    attribute: str
    operator: str
    value: Any = None


@dataclass(frozen=True)
class PolicySpec:
    id: int
    name: str
    resource_type: str
    action: str
    effect: str
    priority: int = 0
    is_active: bool = True
    attributes: Dict[str, Any] = field(default_factory=dict)
    conditions: Tuple[PolicyConditionSpec, ...] = ()


@dataclass(frozen=True)
class ActivityRecord:
    action: str
    created_at: datetime
    resource_type: Optional[str] = None


@dataclass(frozen=True)
class LoginRecord:
    success: bool
    created_at: datetime


# ============================================================================
# Protocols
# ============================================================================

class IdentityStore(Protocol):
    def get_subject(self, subject_id: int) -> Subject:
        ...

    def get_roles_with_permissions(self, subject_id: int) -> List[RoleGrant]:
        ...

    def get_parent_roles(self, role_id: int) -> List[RoleGrant]:
        ...


class PolicyStore(Protocol):
    def find_active_policies(self, resource_type: str, action: str) -> List[PolicySpec]:
        ...


class ActivityLog(Protocol):
    def get_recent_activity(self, subject_id: int, since: datetime, limit: int = 10) -> List[ActivityRecord]:
        ...

    def get_failed_logins(self, subject_id: int, since: datetime) -> List[LoginRecord]:
        ...


# ============================================================================
# SQLAlchemy implementations
# ============================================================================

class SQLIdentityStore:
    """
    Identity store backed by the users/roles/permissions tables.

    Only role assignments valid at the time of the query and active
    roles are returned.
    """

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        self.session = session
        self._clock = clock

    def _get_user(self, subject_id: int) -> User:
        user = self.session.query(User).filter(User.id == subject_id).first()
        if not user:
            raise SubjectNotFound(subject_id)
        return user

    def _active_roles(self, user_id: int) -> List[Role]:
        now = self._clock()
        return self.session.query(Role).join(UserRole, UserRole.role_id == Role.id).filter(
            UserRole.user_id == user_id,
            UserRole.valid_from <= now,
            (UserRole.valid_until.is_(None) | (UserRole.valid_until > now)),
            Role.is_active == True  # noqa: E712
        ).order_by(UserRole.id).all()

    def _grant(self, role: Role) -> RoleGrant:
        names = frozenset(rp.permission.name for rp in role.permissions if rp.permission)
        return RoleGrant(id=role.id, name=role.name, permissions=names)

    def get_subject(self, subject_id: int) -> Subject:
        user = self._get_user(subject_id)
        return Subject(
            id=user.id,
            username=user.username,
            roles=tuple(role.name for role in self._active_roles(user.id)),
            hierarchy_level=user.hierarchy_level or 0,
            last_known_location=user.last_known_location,
            is_active=bool(user.is_active)
        )

    def get_subject_by_username(self, username: str) -> Subject:
        user = self.session.query(User).filter(User.username == username).first()
        if not user:
            raise SubjectNotFound(username)
        return self.get_subject(user.id)

    def get_roles_with_permissions(self, subject_id: int) -> List[RoleGrant]:
        user = self._get_user(subject_id)
        return [self._grant(role) for role in self._active_roles(user.id)]

    def get_parent_roles(self, role_id: int) -> List[RoleGrant]:
        parents = self.session.query(Role).join(
            RoleHierarchy, RoleHierarchy.parent_role_id == Role.id
        ).filter(
            RoleHierarchy.child_role_id == role_id,
            Role.is_active == True  # noqa: E712
        ).order_by(RoleHierarchy.id).all()
        return [self._grant(role) for role in parents]

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def create_user(
        self,
        username: str,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
        hierarchy_level: int = 0,
        last_known_location: Optional[str] = None
    ) -> User:
        user = User(
            username=username,
            full_name=full_name,
            email=email,
            hierarchy_level=hierarchy_level,
            last_known_location=last_known_location
        )
        self.session.add(user)
        self.session.flush()
        return user

    def get_role(self, name: str) -> Optional[Role]:
        return self.session.query(Role).filter(Role.name == name).first()

    def create_role(self, name: str, description: Optional[str] = None) -> Role:
        role = Role(name=name, description=description)
        self.session.add(role)
        self.session.flush()
        return role

    def _require_role(self, name: str) -> Role:
        role = self.get_role(name)
        if not role:
            raise LookupError(f"Role '{name}' not found")
        return role

    def get_or_create_permission(self, name: str, description: Optional[str] = None) -> Permission:
        permission = self.session.query(Permission).filter(Permission.name == name).first()
        if permission:
            return permission
        permission = Permission(name=name, description=description)
        self.session.add(permission)
        self.session.flush()
        return permission

    def grant_permission(self, role_name: str, permission_name: str) -> RolePermission:
        role = self._require_role(role_name)
        permission = self.get_or_create_permission(permission_name)
        existing = self.session.query(RolePermission).filter(
            RolePermission.role_id == role.id,
            RolePermission.permission_id == permission.id
        ).first()
        if existing:
            return existing
        grant = RolePermission(role_id=role.id, permission_id=permission.id)
        self.session.add(grant)
        self.session.flush()
        logger.info("Granted permission {} to role {}", permission_name, role_name)
        return grant

    def assign_role(
        self,
        user_id: int,
        role_name: str,
        assigned_by: Optional[int] = None,
        valid_until: Optional[datetime] = None
    ) -> UserRole:
        self._get_user(user_id)
        role = self._require_role(role_name)
        user_role = UserRole(
            user_id=user_id,
            role_id=role.id,
            assigned_by=assigned_by,
            valid_from=self._clock(),
            valid_until=valid_until
        )
        self.session.add(user_role)
        self.session.flush()
        logger.info("Assigned role {} to user {}", role_name, user_id)
        return user_role

    def revoke_role(self, user_id: int, role_name: str) -> bool:
        role = self._require_role(role_name)
        deleted = self.session.query(UserRole).filter(
            UserRole.user_id == user_id,
            UserRole.role_id == role.id
        ).delete()
        return deleted > 0

    def add_role_parent(self, child_name: str, parent_name: str) -> RoleHierarchy:
        """Make child_name inherit every permission of parent_name."""
        child = self._require_role(child_name)
        parent = self._require_role(parent_name)
        hierarchy = RoleHierarchy(parent_role_id=parent.id, child_role_id=child.id)
        self.session.add(hierarchy)
        self.session.flush()
        return hierarchy

    def set_last_known_location(self, user_id: int, location: Optional[str]) -> User:
        user = self._get_user(user_id)
        user.last_known_location = location
        self.session.flush()
        return user


class SQLPolicyStore:
    """Policy store backed by the access_policies/policy_conditions tables."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _to_spec(policy: AccessPolicy) -> PolicySpec:
        return PolicySpec(
            id=policy.id,
            name=policy.name,
            resource_type=policy.resource_type,
            action=policy.action,
            effect=policy.effect,
            priority=policy.priority or 0,
            is_active=bool(policy.is_active),
            attributes=dict(policy.attributes or {}),
            conditions=tuple(
                PolicyConditionSpec(
                    target=c.target,
                    attribute=c.attribute,
                    operator=c.operator,
                    value=c.value
                )
                for c in policy.conditions
            )
        )

    def find_active_policies(self, resource_type: str, action: str) -> List[PolicySpec]:
        """
        Active policies for the resource type and action, in application
        order: ascending priority, then ascending id.
        """
        policies = self.session.query(AccessPolicy).filter(
            AccessPolicy.resource_type == resource_type,
            AccessPolicy.action == action,
            AccessPolicy.is_active == True  # noqa: E712
        ).order_by(AccessPolicy.priority.asc(), AccessPolicy.id.asc()).all()
        return [self._to_spec(p) for p in policies]

    def list_policies(self) -> List[PolicySpec]:
        policies = self.session.query(AccessPolicy).order_by(
            AccessPolicy.resource_type, AccessPolicy.action,
            AccessPolicy.priority, AccessPolicy.id
        ).all()
        return [self._to_spec(p) for p in policies]

    def get_policy(self, name: str) -> Optional[PolicySpec]:
        policy = self.session.query(AccessPolicy).filter(AccessPolicy.name == name).first()
        return self._to_spec(policy) if policy else None

    def create_policy(
        self,
        name: str,
        resource_type: str,
        action: str,
        effect: str = 'ALLOW',
        priority: int = 0,
        attributes: Optional[Dict[str, Any]] = None,
        conditions: Sequence[Dict[str, Any]] = (),
        description: Optional[str] = None,
        is_active: bool = True
    ) -> AccessPolicy:
        """
        Create a policy and its conditions.

        Args:
            conditions: Mappings with target, attribute, operator and value keys

        Raises:
            ValueError: Unknown effect, target or operator
        """
        effect = PolicyEffect(effect.upper()).value
        policy = AccessPolicy(
            name=name,
            description=description,
            resource_type=resource_type,
            action=action,
            effect=effect,
            priority=priority,
            is_active=is_active,
            attributes=attributes or {}
        )
        self.session.add(policy)
        self.session.flush()
        for condition in conditions:
            self._add_condition(policy, **condition)
        self.session.flush()
        return policy

    def add_condition(self, policy_name: str, target: str, attribute: str, operator: str, value: Any) -> PolicyCondition:
        policy = self.session.query(AccessPolicy).filter(AccessPolicy.name == policy_name).first()
        if not policy:
            raise LookupError(f"Policy '{policy_name}' not found")
        condition = self._add_condition(policy, target, attribute, operator, value)
        self.session.flush()
        return condition

    def _add_condition(self, policy: AccessPolicy, target: str, attribute: str, operator: str, value: Any = None) -> PolicyCondition:
        from .abac_engine import OPERATORS

        target = ConditionTarget(target.upper()).value
        if operator not in OPERATORS:
            raise ValueError(f"Unsupported operator '{operator}'. Must be one of: {sorted(OPERATORS)}")
        condition = PolicyCondition(target=target, attribute=attribute, operator=operator, value=value)
        policy.conditions.append(condition)
        return condition

    def set_active(self, policy_name: str, is_active: bool) -> bool:
        updated = self.session.query(AccessPolicy).filter(
            AccessPolicy.name == policy_name
        ).update({AccessPolicy.is_active: is_active})
        return updated > 0


class SQLActivityLog:
    """Activity log backed by the user_activities/login_attempts tables."""

    def __init__(self, session: Session, clock: Callable[[], datetime] = datetime.now):
        self.session = session
        self._clock = clock

    def get_recent_activity(self, subject_id: int, since: datetime, limit: int = 10) -> List[ActivityRecord]:
        """Most recent activities first, bounded to `limit` entries."""
        rows = self.session.query(UserActivity).filter(
            UserActivity.user_id == subject_id,
            UserActivity.created_at >= since
        ).order_by(UserActivity.created_at.desc(), UserActivity.id.desc()).limit(limit).all()
        return [
            ActivityRecord(action=row.action, created_at=row.created_at, resource_type=row.resource_type)
            for row in rows
        ]

    def get_failed_logins(self, subject_id: int, since: datetime) -> List[LoginRecord]:
        rows = self.session.query(LoginAttempt).filter(
            LoginAttempt.user_id == subject_id,
            LoginAttempt.success == False,  # noqa: E712
            LoginAttempt.created_at >= since
        ).order_by(LoginAttempt.created_at.desc()).all()
        return [LoginRecord(success=row.success, created_at=row.created_at) for row in rows]

    def record_activity(
        self,
        user_id: int,
        action: str,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> UserActivity:
        activity = UserActivity(
            user_id=user_id,
            action=action,
            resource_type=resource_type,
            resource_id=None if resource_id is None else str(resource_id),
            created_at=at or self._clock()
        )
        self.session.add(activity)
        self.session.flush()
        return activity

    def record_login(
        self,
        user_id: int,
        success: bool,
        ip_address: Optional[str] = None,
        at: Optional[datetime] = None
    ) -> LoginAttempt:
        attempt = LoginAttempt(
            user_id=user_id,
            success=success,
            ip_address=ip_address,
            created_at=at or self._clock()
        )
        self.session.add(attempt)
        self.session.flush()
        return attempt


# ============================================================================
# Caching wrapper
# ============================================================================

class CachedIdentityStore:
    """
    Identity store decorator caching each subject's role grants.

    Writes through the wrapped store must be followed by
    `invalidate_subject` (or `invalidate_all` after hierarchy changes).
    """

    KEY_PREFIX = "user_permissions"

    def __init__(self, inner: IdentityStore, cache: Cache, ttl: Optional[int] = 3600):
        self.inner = inner
        self.cache = cache
        self.ttl = ttl
        self._keys = set()

    def _key(self, subject_id: int) -> str:
        return f"{self.KEY_PREFIX}:{subject_id}"

    def get_subject(self, subject_id: int) -> Subject:
        return self.inner.get_subject(subject_id)

    def get_roles_with_permissions(self, subject_id: int) -> List[RoleGrant]:
        key = self._key(subject_id)
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Permission cache hit for subject {}", subject_id)
            return list(cached)

        grants = self.inner.get_roles_with_permissions(subject_id)
        self.cache.set(key, tuple(grants), ttl=self.ttl)
        self._keys.add(key)
        return grants

    def get_parent_roles(self, role_id: int) -> List[RoleGrant]:
        return self.inner.get_parent_roles(role_id)

    def invalidate_subject(self, subject_id: int):
        key = self._key(subject_id)
        self.cache.delete(key)
        self._keys.discard(key)

    def invalidate_all(self):
        for key in list(self._keys):
            self.cache.delete(key)
        self._keys.clear()
