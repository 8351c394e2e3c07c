"""
Hybrid Policy Decision Engine
=============================

Combines four independent evaluators into one access decision:

1. RBAC: does the subject hold `<type>:<id>:<action>`?
2. ABAC: do the active attribute policies allow the request?
3. DYNAMIC: time, location, device, network and behavior conditions
4. RISK: is the request's risk score within the resource's tolerance?

The verdicts are combined with a selectable strategy:
- ALL: every evaluator must allow (default, strictest)
- ANY: one allowing evaluator is enough
- MAJORITY: more than half must allow
- WEIGHTED: at least `weighted_threshold` (default 2) must allow

The engine is fail-closed. Any error raised while evaluating turns into
a deny with reason "Policy evaluation failed"; it never escapes to the
caller. Only contract violations (missing resource type or action,
malformed context, unknown strategy) raise InvalidAccessRequest, and
they do so before evaluation starts.
"""

import enum
from datetime import datetime
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

from loguru import logger
from sqlalchemy.orm import Session

from config.settings import Settings, get_settings
from .abac_engine import ABACEngine
from .audit import AuditLogger
from .cache import Cache
from .conditions import DynamicConditionEvaluator
from .context import (
    AccessContext, Decision, PolicyTrailEntry,
    ResourceDescriptor, Subject
)
from .exceptions import InvalidAccessRequest, SubjectNotFound
from .rbac_engine import RBACEngine
from .risk import RiskScorer
from .stores import (
    ActivityLog, CachedIdentityStore, IdentityStore, PolicyStore,
    SQLActivityLog, SQLIdentityStore, SQLPolicyStore
)

EVALUATION_FAILED = "Policy evaluation failed"


class CombinationStrategy(str, enum.Enum):
    ALL = "ALL"
    ANY = "ANY"
    MAJORITY = "MAJORITY"
    WEIGHTED = "WEIGHTED"


def combine_policy_results(
    verdicts: Sequence[bool],
    strategy: Union[CombinationStrategy, str] = CombinationStrategy.ALL,
    weighted_threshold: int = 2
) -> bool:
    """
    Combine individual allow/deny verdicts into one.

    Args:
        verdicts: One boolean per evaluator
        strategy: ALL, ANY, MAJORITY or WEIGHTED
        weighted_threshold: Minimum number of allowing verdicts for WEIGHTED

    Raises:
        ValueError: Unknown strategy
    """
    strategy = CombinationStrategy(strategy)
    passed = sum(1 for v in verdicts if v)

    if strategy == CombinationStrategy.ALL:
        return len(verdicts) > 0 and passed == len(verdicts)
    if strategy == CombinationStrategy.ANY:
        return passed > 0
    if strategy == CombinationStrategy.MAJORITY:
        return passed > len(verdicts) / 2
    return passed >= weighted_threshold


class HybridAccessControl:
    """
    Policy decision point combining RBAC, ABAC, dynamic conditions and risk.

    The engine holds no per-request state; concurrent evaluations only
    share the (read-only) stores.
    """

    def __init__(
        self,
        identity_store: IdentityStore,
        policy_store: PolicyStore,
        activity_log: ActivityLog,
        strategy: Union[CombinationStrategy, str, None] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
        audit: Optional[AuditLogger] = None
    ):
        """
        Initialize the engine.

        Args:
            identity_store: Subjects, roles and permissions
            policy_store: ABAC policies
            activity_log: Recent activity and failed logins
            strategy: Combination strategy (settings default when omitted)
            settings: Engine settings (process settings when omitted)
            clock: Time source for business hours and risk windows
            audit: Audit logger used by check_access; None disables auditing
        """
        self.settings = settings or get_settings()
        self.identity_store = identity_store
        self.clock = clock
        self.audit = audit
        self.weighted_threshold = self.settings.weighted_threshold
        self.strategy = self._coerce_strategy(strategy or self.settings.combination_strategy)

        self.rbac = RBACEngine(identity_store)
        self.abac = ABACEngine(policy_store)
        self.dynamic = DynamicConditionEvaluator(activity_log, self.settings, clock)
        self.risk = RiskScorer(activity_log, clock, self.settings.activity_window_hours)

    @classmethod
    def from_session(
        cls,
        session: Session,
        strategy: Union[CombinationStrategy, str, None] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.now,
        cache: Optional[Cache] = None,
        audit: bool = True
    ) -> 'HybridAccessControl':
        """
        Build an engine over SQL stores bound to one session.

        Args:
            cache: When given, role grants are cached for settings.permission_cache_ttl
            audit: Write an audit entry for every check_access call
        """
        settings = settings or get_settings()
        identity: IdentityStore = SQLIdentityStore(session, clock)
        if cache is not None and settings.permission_cache_ttl > 0:
            identity = CachedIdentityStore(identity, cache, ttl=settings.permission_cache_ttl)
        return cls(
            identity_store=identity,
            policy_store=SQLPolicyStore(session),
            activity_log=SQLActivityLog(session, clock),
            strategy=strategy,
            settings=settings,
            clock=clock,
            audit=AuditLogger(session) if audit else None
        )

    @staticmethod
    def _coerce_strategy(strategy: Union[CombinationStrategy, str]) -> CombinationStrategy:
        try:
            return CombinationStrategy(str(getattr(strategy, 'value', strategy)).upper())
        except ValueError:
            valid = [s.value for s in CombinationStrategy]
            raise InvalidAccessRequest(f"Invalid strategy '{strategy}'. Must be one of: {valid}") from None

    def set_strategy(self, strategy: Union[CombinationStrategy, str]):
        """Change the default combination strategy."""
        self.strategy = self._coerce_strategy(strategy)

    def evaluate_access_policy(
        self,
        subject: Subject,
        resource: Union[ResourceDescriptor, Mapping[str, Any]],
        action: str,
        context: Union[AccessContext, Mapping[str, Any], None] = None,
        strategy: Union[CombinationStrategy, str, None] = None
    ) -> Decision:
        """
        Evaluate an access request.

        Args:
            subject: Acting principal
            resource: Resource descriptor or mapping with type/id/sensitivity
            action: Requested action (e.g. 'view', 'write')
            context: Request context or mapping
            strategy: Per-call override of the combination strategy

        Returns:
            Decision with the composite verdict and the per-evaluator trail

        Raises:
            InvalidAccessRequest: Malformed request (raised before evaluation)
        """
        resource = ResourceDescriptor.parse(resource)
        context = AccessContext.parse(context)
        if not isinstance(action, str) or not action.strip():
            raise InvalidAccessRequest("Action is required")
        strategy = self._coerce_strategy(strategy) if strategy else self.strategy

        try:
            now = self.clock()
            trail = (
                PolicyTrailEntry('RBAC', self.rbac.evaluate(subject, resource, action)),
                PolicyTrailEntry('ABAC', self.abac.evaluate(subject, resource, action, context)),
                PolicyTrailEntry('DYNAMIC', self.dynamic.evaluate(subject, context, now)),
                PolicyTrailEntry('RISK', self.risk.evaluate(subject, resource, action, context, now)),
            )

            allowed = combine_policy_results(
                [entry.result.allowed for entry in trail],
                strategy,
                self.weighted_threshold
            )

            attributes: Dict[str, Any] = {}
            for entry in trail:
                attributes.update(entry.result.attributes)

            decision = Decision(
                allowed=allowed,
                reason=self._explain(allowed, strategy, trail),
                strategy=strategy.value,
                policies=trail,
                attributes=attributes,
                conditions=dict(trail[2].result.attributes)
            )
        except Exception:
            logger.exception(
                "Policy evaluation failed for subject {} on {}:{}:{}",
                getattr(subject, 'id', None), resource.type, resource.id, action
            )
            return Decision(allowed=False, reason=EVALUATION_FAILED, strategy=strategy.value)

        logger.debug(
            "Access {} for subject {} on {}:{}:{} ({})",
            "granted" if decision.allowed else "denied",
            subject.id, resource.type, resource.id, action, decision.verdicts
        )
        return decision

    @staticmethod
    def _explain(allowed: bool, strategy: CombinationStrategy, trail: Sequence[PolicyTrailEntry]) -> str:
        passed = [entry.type for entry in trail if entry.result.allowed]
        failed = [entry.type for entry in trail if not entry.result.allowed]
        if allowed:
            return f"Access granted under {strategy.value} ({len(passed)}/{len(trail)} checks passed)"
        return f"Access denied under {strategy.value}: {', '.join(failed)} denied"

    def check_access(
        self,
        user_id: int,
        resource: Union[ResourceDescriptor, Mapping[str, Any]],
        action: str,
        context: Union[AccessContext, Mapping[str, Any], None] = None,
        strategy: Union[CombinationStrategy, str, None] = None,
        client_ip: Optional[str] = None,
        session_id: Optional[str] = None
    ) -> Decision:
        """
        Caller-facing entry point: resolve the subject, evaluate, audit.

        An unknown user yields a deny decision rather than an error.
        """
        resource = ResourceDescriptor.parse(resource)
        context = AccessContext.parse(context)
        effective_strategy = self._coerce_strategy(strategy) if strategy else self.strategy

        subject: Optional[Subject] = None
        try:
            subject = self.identity_store.get_subject(user_id)
        except SubjectNotFound:
            decision = Decision(allowed=False, reason="Subject not found", strategy=effective_strategy.value)
        except Exception:
            logger.exception("Subject lookup failed for user {}", user_id)
            decision = Decision(allowed=False, reason=EVALUATION_FAILED, strategy=effective_strategy.value)
        else:
            decision = self.evaluate_access_policy(subject, resource, action, context, effective_strategy)

        if self.audit is not None:
            self._audit_decision(user_id, subject, action, resource, context, decision, client_ip, session_id)

        return decision

    def _audit_decision(
        self,
        user_id: int,
        subject: Optional[Subject],
        action: str,
        resource: ResourceDescriptor,
        context: AccessContext,
        decision: Decision,
        client_ip: Optional[str],
        session_id: Optional[str]
    ) -> None:
        """Best-effort audit write; a failure is logged and rolled back to a savepoint."""
        try:
            details = {'context': context.model_dump(mode='json', by_alias=True, exclude_none=True)}
            with self.audit.session.begin_nested():
                self.audit.log_access_decision(
                    user_id=user_id,
                    username=subject.username if subject else None,
                    action=action,
                    resource=resource,
                    decision=decision,
                    client_ip=client_ip,
                    session_id=session_id,
                    request_details=details
                )
        except Exception:
            logger.exception(
                "Audit write failed for user {} on {}:{}:{}", user_id, resource.type, resource.id, action
            )

    def get_user_permissions_summary(self, user_id: int) -> Dict[str, Any]:
        """
        Summary of a user's roles and effective permissions for access reviews.
        """
        try:
            subject = self.identity_store.get_subject(user_id)
        except SubjectNotFound:
            return {'error': 'User not found'}

        return {
            'user': {
                'id': subject.id,
                'username': subject.username,
                'hierarchy_level': subject.hierarchy_level,
                'last_known_location': subject.last_known_location,
                'is_active': subject.is_active
            },
            'rbac': {
                'roles': list(subject.roles),
                'effective_roles': self.rbac.get_effective_roles(user_id),
                'effective_permissions': sorted(self.rbac.get_effective_permissions(user_id))
            }
        }
