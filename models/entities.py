"""
Entity Models for the School Access Policy Engine
==================================================

Persistent data consumed by the policy decision engine:

RBAC Components:
- Users: School staff, teachers, parents and administrators
- Roles: Named collections of permissions (e.g., TEACHER, FINANCE)
- Permissions: Capability strings of the form category:entity:action
- Role Hierarchy: Inheritance relationships between roles

ABAC Components:
- Access Policies: ALLOW/DENY rules scoped to a resource type and action
- Policy Conditions: Attribute tests over user, resource or request context

Signals:
- User Activity: Recent actions, used for behavioral analysis
- Login Attempts: Failed logins feed the risk score

Audit:
- Audit Log: One row per access decision taken through the engine

All timestamps are naive local datetimes, matching the clock the engine
uses for business-hours checks.
"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, DateTime, Boolean,
    ForeignKey, Text, JSON, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
import enum

from .database import Base


class AccessDecision(enum.Enum):
    """Possible outcomes recorded for an access control decision."""
    PERMIT = "PERMIT"
    DENY = "DENY"


class PolicyEffect(str, enum.Enum):
    """Effect applied when all of a policy's conditions hold."""
    ALLOW = "ALLOW"
    DENY = "DENY"


class ConditionTarget(str, enum.Enum):
    """Which attribute source a policy condition reads from."""
    USER = "USER"
    RESOURCE = "RESOURCE"
    CONTEXT = "CONTEXT"


# ============================================================================
# RBAC Models
# ============================================================================

class User(Base):
    """
    User entity representing an acting principal (teacher, admin, parent...).

    hierarchy_level orders staff seniority; last_known_location is used
    when a request does not carry its own location.
    """
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True)
    full_name = Column(String(255))
    is_active = Column(Boolean, default=True)
    hierarchy_level = Column(Integer, default=0)
    last_known_location = Column(String(100))
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    roles = relationship(
        "UserRole",
        back_populates="user",
        foreign_keys="UserRole.user_id",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}')>"


class Role(Base):
    """
    Role entity representing a named collection of permissions.

    Examples: SUPER_ADMIN, ADMIN, FINANCE, TEACHER, STAFF, PARENT
    """
    __tablename__ = 'roles'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    description = Column(Text)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.now)

    # Relationships
    users = relationship("UserRole", back_populates="role", cascade="all, delete-orphan")
    permissions = relationship("RolePermission", back_populates="role", cascade="all, delete-orphan")

    # Roles this role inherits from
    parent_roles = relationship(
        "RoleHierarchy",
        foreign_keys="RoleHierarchy.child_role_id",
        back_populates="child_role",
        cascade="all, delete-orphan"
    )

    # Roles that inherit from this role
    child_roles = relationship(
        "RoleHierarchy",
        foreign_keys="RoleHierarchy.parent_role_id",
        back_populates="parent_role",
        cascade="all, delete-orphan"
    )

    def __repr__(self):
        return f"<Role(id={self.id}, name='{self.name}')>"


class Permission(Base):
    """
    Permission entity.

    Format: category:entity:action (e.g., 'student:10:view', 'payroll:*').
    Resource checks build the required name from the resource type, the
    resource id and the action.
    """
    __tablename__ = 'permissions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(150), unique=True, nullable=False, index=True)
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.now)

    # Relationships
    roles = relationship("RolePermission", back_populates="permission", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Permission(id={self.id}, name='{self.name}')>"


# ============================================================================
# RBAC Junction Tables
# ============================================================================

class UserRole(Base):
    """
    Association between users and roles.

    valid_from / valid_until bound temporary assignments (e.g. a
    substitute teacher for one term).
    """
    __tablename__ = 'user_roles'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    role_id = Column(Integer, ForeignKey('roles.id'), nullable=False)
    assigned_by = Column(Integer, ForeignKey('users.id'))
    assigned_at = Column(DateTime, default=datetime.now)
    valid_from = Column(DateTime, default=datetime.now)
    valid_until = Column(DateTime)  # NULL = no expiration

    # Relationships
    user = relationship("User", back_populates="roles", foreign_keys=[user_id])
    role = relationship("Role", back_populates="users")

    def __repr__(self):
        return f"<UserRole(user_id={self.user_id}, role_id={self.role_id})>"


class RolePermission(Base):
    """Association between roles and permissions."""
    __tablename__ = 'role_permissions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    role_id = Column(Integer, ForeignKey('roles.id'), nullable=False)
    permission_id = Column(Integer, ForeignKey('permissions.id'), nullable=False)
    granted_at = Column(DateTime, default=datetime.now)

    # Relationships
    role = relationship("Role", back_populates="permissions")
    permission = relationship("Permission", back_populates="roles")

    def __repr__(self):
        return f"<RolePermission(role_id={self.role_id}, permission_id={self.permission_id})>"


class RoleHierarchy(Base):
    """
    Role inheritance: the child role inherits every permission of the parent.

    Nothing prevents cycles at write time; the RBAC engine stops on
    roles it has already visited.
    """
    __tablename__ = 'role_hierarchy'

    id = Column(Integer, primary_key=True, autoincrement=True)
    parent_role_id = Column(Integer, ForeignKey('roles.id'), nullable=False)
    child_role_id = Column(Integer, ForeignKey('roles.id'), nullable=False)
    created_at = Column(DateTime, default=datetime.now)

    # Relationships
    parent_role = relationship("Role", foreign_keys=[parent_role_id], back_populates="child_roles")
    child_role = relationship("Role", foreign_keys=[child_role_id], back_populates="parent_roles")

    def __repr__(self):
        return f"<RoleHierarchy(parent={self.parent_role_id}, child={self.child_role_id})>"


# ============================================================================
# ABAC Models
# ============================================================================

class AccessPolicy(Base):
    """
    Attribute-based policy scoped to one resource type and action.

    Matching policies are applied in (priority, id) ascending order and
    the last one whose conditions all hold decides, so a higher priority
    overrides a lower one.
    """
    __tablename__ = 'access_policies'

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(Text)
    resource_type = Column(String(100), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    effect = Column(String(10), nullable=False, default=PolicyEffect.ALLOW.value)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, default=True)
    attributes = Column(JSON, default=dict)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    # Relationships
    conditions = relationship(
        "PolicyCondition",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="PolicyCondition.id"
    )

    def __repr__(self):
        return f"<AccessPolicy(id={self.id}, name='{self.name}', effect='{self.effect}')>"


class PolicyCondition(Base):
    """
    One attribute test of a policy.

    Example: target=USER, attribute='hierarchy_level', operator='>=', value=3
    """
    __tablename__ = 'policy_conditions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    policy_id = Column(Integer, ForeignKey('access_policies.id'), nullable=False)
    target = Column(String(20), nullable=False)
    attribute = Column(String(100), nullable=False)
    operator = Column(String(20), nullable=False)
    value = Column(JSON)

    # Relationships
    policy = relationship("AccessPolicy", back_populates="conditions")

    def __repr__(self):
        return f"<PolicyCondition({self.target}.{self.attribute} {self.operator} {self.value!r})>"


# ============================================================================
# Behavioral and Risk Signals
# ============================================================================

class UserActivity(Base):
    """An action a user performed, e.g. 'view' on 'student'."""
    __tablename__ = 'user_activities'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    action = Column(String(50), nullable=False)
    resource_type = Column(String(100))
    resource_id = Column(String(100))
    created_at = Column(DateTime, default=datetime.now, index=True)

    def __repr__(self):
        return f"<UserActivity(user_id={self.user_id}, action='{self.action}')>"


class LoginAttempt(Base):
    """A login attempt; failed ones raise the user's risk score."""
    __tablename__ = 'login_attempts'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    success = Column(Boolean, nullable=False)
    ip_address = Column(String(45))
    created_at = Column(DateTime, default=datetime.now, index=True)

    def __repr__(self):
        return f"<LoginAttempt(user_id={self.user_id}, success={self.success})>"


# ============================================================================
# Audit Logging
# ============================================================================

class AuditLog(Base):
    """
    Audit record of one access decision.

    Written by the caller-facing check_access path; the evaluation
    itself never persists anything.
    """
    __tablename__ = 'audit_logs'

    id = Column(Integer, primary_key=True, autoincrement=True)
    timestamp = Column(DateTime, default=datetime.now, index=True)

    # Who
    user_id = Column(Integer, ForeignKey('users.id'))
    username = Column(String(100))  # Denormalized for query performance

    # What
    action = Column(String(100), nullable=False)
    resource_type = Column(String(100))
    resource_id = Column(String(100))
    sensitivity = Column(String(20))

    # Decision
    decision = Column(SQLEnum(AccessDecision), nullable=False)
    decision_reason = Column(Text)
    strategy = Column(String(20))
    policy_results = Column(JSON)  # {"RBAC": true, "ABAC": false, ...}
    risk_score = Column(Integer)

    # Context
    client_ip = Column(String(45))
    session_id = Column(String(100))
    request_details = Column(JSON)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, user='{self.username}', action='{self.action}', decision={self.decision})>"
