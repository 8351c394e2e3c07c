"""
Risk Scorer
===========

Scores a request from 0 (safe) to 100 by summing four independent
contributions:

- User: 5 per failed login in the last 24h, +20 for sensitive roles
- Resource: +25 for financial, personal or confidential data
- Action: fixed weight per action (unknown actions weigh 10)
- Context: +15 outside 06:00-22:59, +20 for unknown location,
  +10 for mobile or tablet devices

The request is allowed when the score does not exceed the threshold for
the resource class.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .context import AccessContext, EvaluationResult, ResourceDescriptor, Sensitivity, Subject
from .stores import ActivityLog

MAX_RISK_SCORE = 100

FAILED_LOGIN_WEIGHT = 5
SENSITIVE_ROLES = frozenset({'ADMIN', 'SUPER_ADMIN', 'FINANCE'})
SENSITIVE_ROLE_RISK = 20

SENSITIVE_RESOURCES = frozenset({Sensitivity.FINANCIAL, Sensitivity.PERSONAL, Sensitivity.CONFIDENTIAL})
SENSITIVE_RESOURCE_RISK = 25

ACTION_RISK = {
    'read': 5,
    'write': 15,
    'delete': 25,
    'admin': 30,
    'export': 20,
    'share': 15
}
DEFAULT_ACTION_RISK = 10

OFF_HOURS_RISK = 15
UNKNOWN_LOCATION_RISK = 20
MOBILE_DEVICE_RISK = 10
MOBILE_DEVICES = frozenset({'mobile', 'tablet'})

RISK_THRESHOLDS = {
    'financial': 30,
    'personal': 40,
    'confidential': 50,
    'public': 70
}
DEFAULT_RISK_THRESHOLD = 60


class RiskScorer:
    """Risk-based access evaluator."""

    def __init__(
        self,
        activity_log: ActivityLog,
        clock: Callable[[], datetime] = datetime.now,
        window_hours: int = 24
    ):
        self.activity_log = activity_log
        self.clock = clock
        self.window_hours = window_hours

    def calculate_user_risk(self, subject: Subject, now: datetime) -> int:
        since = now - timedelta(hours=self.window_hours)
        failed = self.activity_log.get_failed_logins(subject.id, since)
        risk = len(failed) * FAILED_LOGIN_WEIGHT
        if any(role.upper() in SENSITIVE_ROLES for role in subject.roles):
            risk += SENSITIVE_ROLE_RISK
        return risk

    @staticmethod
    def calculate_resource_risk(resource: ResourceDescriptor) -> int:
        return SENSITIVE_RESOURCE_RISK if resource.sensitivity in SENSITIVE_RESOURCES else 0

    @staticmethod
    def calculate_action_risk(action: str) -> int:
        return ACTION_RISK.get(action, DEFAULT_ACTION_RISK)

    @staticmethod
    def calculate_context_risk(context: AccessContext, now: datetime) -> int:
        risk = 0
        if now.hour < 6 or now.hour > 22:
            risk += OFF_HOURS_RISK
        if not context.location or context.location == 'unknown':
            risk += UNKNOWN_LOCATION_RISK
        if context.device_type in MOBILE_DEVICES:
            risk += MOBILE_DEVICE_RISK
        return risk

    def _components(
        self,
        subject: Subject,
        resource: ResourceDescriptor,
        action: str,
        context: AccessContext,
        now: datetime
    ) -> Dict[str, int]:
        return {
            'userRisk': self.calculate_user_risk(subject, now),
            'resourceRisk': self.calculate_resource_risk(resource),
            'actionRisk': self.calculate_action_risk(action),
            'contextRisk': self.calculate_context_risk(context, now)
        }

    def calculate_risk_score(
        self,
        subject: Subject,
        resource: ResourceDescriptor,
        action: str,
        context: AccessContext,
        now: Optional[datetime] = None
    ) -> int:
        """Total risk for the request, clamped to [0, 100]."""
        now = now or self.clock()
        components = self._components(subject, resource, action, context, now)
        return max(0, min(sum(components.values()), MAX_RISK_SCORE))

    @staticmethod
    def get_risk_threshold(resource: ResourceDescriptor) -> int:
        """
        Tolerated risk for the resource.

        Looked up by resource type first, then by sensitivity class, so a
        'student' record marked 'personal' gets the personal threshold.
        """
        if resource.type in RISK_THRESHOLDS:
            return RISK_THRESHOLDS[resource.type]
        return RISK_THRESHOLDS.get(resource.sensitivity.value, DEFAULT_RISK_THRESHOLD)

    def get_risk_factors(self, subject: Subject, context: AccessContext, now: datetime) -> Dict[str, Any]:
        return {
            'userRole': subject.role,
            'location': context.location,
            'device': context.device_type,
            'time': now.isoformat()
        }

    def evaluate(
        self,
        subject: Subject,
        resource: ResourceDescriptor,
        action: str,
        context: AccessContext,
        now: Optional[datetime] = None
    ) -> EvaluationResult:
        now = now or self.clock()
        components = self._components(subject, resource, action, context, now)
        score = max(0, min(sum(components.values()), MAX_RISK_SCORE))
        threshold = self.get_risk_threshold(resource)
        return EvaluationResult(
            allowed=score <= threshold,
            attributes={
                'riskScore': score,
                'threshold': threshold,
                'riskFactors': self.get_risk_factors(subject, context, now)
            },
            details=components
        )
