# Access Policy Engine - Database Models
# Persistent subjects, roles, policies and behavioral signals

from .database import Base, engine, get_session, init_db, make_engine
from .entities import (
    AccessDecision,
    PolicyEffect,
    ConditionTarget,
    User,
    Role,
    Permission,
    UserRole,
    RolePermission,
    RoleHierarchy,
    AccessPolicy,
    PolicyCondition,
    UserActivity,
    LoginAttempt,
    AuditLog
)

__all__ = [
    'Base',
    'engine',
    'get_session',
    'init_db',
    'make_engine',
    'AccessDecision',
    'PolicyEffect',
    'ConditionTarget',
    'User',
    'Role',
    'Permission',
    'UserRole',
    'RolePermission',
    'RoleHierarchy',
    'AccessPolicy',
    'PolicyCondition',
    'UserActivity',
    'LoginAttempt',
    'AuditLog'
]
