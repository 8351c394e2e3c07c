"""
Role-Based Access Control (RBAC) Evaluator
==========================================

Answers one question: does the subject's effective permission set
contain `<resource type>:<resource id>:<action>`?

- Core RBAC: subjects hold roles, roles hold permissions
- Hierarchical RBAC: a role inherits every permission of its parents,
  resolved transitively
- Explicit wildcards: a stored permission of `*` grants everything and
  `prefix:*` grants anything under that prefix

Role graphs are walked breadth-first with a visited set, so a
misconfigured (cyclic) hierarchy terminates instead of looping.
"""

from collections import deque
from typing import Any, Dict, List, Optional, Set

from loguru import logger

from .context import EvaluationResult, ResourceDescriptor, Subject
from .exceptions import SubjectNotFound
from .stores import IdentityStore, RoleGrant


def required_permission(resource: ResourceDescriptor, action: str) -> str:
    """Permission name needed to perform `action` on `resource`."""
    return f"{resource.type}:{resource.id}:{action}"


def permission_matches(granted: str, required: str) -> bool:
    """
    Check a granted permission against a required one.

    'student:10:view' matches only itself; '*' matches everything;
    'student:*' matches every permission starting with 'student:'.
    """
    if granted == required or granted == '*':
        return True
    if granted.endswith(':*'):
        return required.startswith(granted[:-1])
    return False


class RBACEngine:
    """
    RBAC evaluator over an identity store.

    Nothing is cached here; every evaluation reads fresh role state from
    the store. Wrap the store in CachedIdentityStore to cache.
    """

    def __init__(self, identity_store: IdentityStore):
        self.identity_store = identity_store

    def evaluate(self, subject: Subject, resource: ResourceDescriptor, action: str) -> EvaluationResult:
        """
        Evaluate whether the subject holds the permission for the request.

        Returns:
            EvaluationResult whose attributes carry the subject's roles and
            effective permissions
        """
        required = required_permission(resource, action)

        if not subject.is_active:
            return EvaluationResult(
                allowed=False,
                attributes={'roles': list(subject.roles), 'permissions': []},
                details={'requiredPermission': required, 'reason': 'Subject account is inactive'}
            )

        try:
            roles, permissions = self._resolve(subject.id)
        except SubjectNotFound:
            logger.warning("RBAC: subject {} not found, denying", subject.id)
            return EvaluationResult(
                allowed=False,
                attributes={'roles': list(subject.roles), 'permissions': []},
                details={'requiredPermission': required, 'reason': 'Subject not found'}
            )

        matched = self._match(permissions, required)
        if matched:
            reason = f"Permission '{required}' granted via '{matched}'"
        else:
            reason = f"Permission '{required}' not granted"

        return EvaluationResult(
            allowed=matched is not None,
            attributes={
                'roles': roles,
                'permissions': sorted(permissions)
            },
            details={
                'requiredPermission': required,
                'matchedPermission': matched,
                'reason': reason
            }
        )

    def get_effective_permissions(self, subject_id: int) -> Set[str]:
        """
        All permissions reachable from the subject's roles.

        Raises:
            SubjectNotFound: Unknown subject
        """
        _, permissions = self._resolve(subject_id)
        return permissions

    def get_effective_roles(self, subject_id: int) -> List[str]:
        """Assigned roles followed by every inherited role, in discovery order."""
        roles, _ = self._resolve(subject_id)
        return roles

    def _resolve(self, subject_id: int):
        """
        Breadth-first walk from assigned roles up through their parents.

        Returns:
            (role names in discovery order, set of permission names)
        """
        queue = deque(self.identity_store.get_roles_with_permissions(subject_id))
        visited: Set[int] = set()
        roles: List[str] = []
        permissions: Set[str] = set()

        while queue:
            grant: RoleGrant = queue.popleft()
            if grant.id in visited:
                continue
            visited.add(grant.id)
            roles.append(grant.name)
            permissions.update(grant.permissions)

            for parent in self.identity_store.get_parent_roles(grant.id):
                if parent.id not in visited:
                    queue.append(parent)

        return roles, permissions

    @staticmethod
    def _match(permissions: Set[str], required: str) -> Optional[str]:
        if required in permissions:
            return required
        # Deterministic pick among wildcards
        for granted in sorted(permissions):
            if permission_matches(granted, required):
                return granted
        return None

    def get_role_hierarchy(self, role_id: int) -> Dict[str, Any]:
        """
        Ancestors of a role, level by level.

        Returns:
            {'role_id': ..., 'ancestors': [{'id', 'name', 'depth'}, ...]}
        """
        ancestors = []
        visited = {role_id}
        frontier = [(role_id, 0)]
        while frontier:
            current, depth = frontier.pop(0)
            for parent in self.identity_store.get_parent_roles(current):
                if parent.id in visited:
                    continue
                visited.add(parent.id)
                ancestors.append({'id': parent.id, 'name': parent.name, 'depth': depth + 1})
                frontier.append((parent.id, depth + 1))
        return {'role_id': role_id, 'ancestors': ancestors}
