"""
Dynamic Condition Evaluators
============================

Context-aware checks applied to every request, independent of policies:

- Time: request falls within business hours on a business day
- Location: request location is an allowed location
- Device: request device type is an allowed device
- Network: request network type is an allowed network
- Behavior: the subject's recent activity is mostly read-only

The first four are pure functions of the context and a clock. The
behavioral check reads the activity log. `DynamicConditionEvaluator`
requires all five to be met.
"""

from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional, Sequence

from .context import AccessContext, ConditionResult, EvaluationResult, Subject
from .stores import ActivityLog, ActivityRecord

DEFAULT_ALLOWED_LOCATIONS = ('office', 'home')
DEFAULT_ALLOWED_DEVICES = ('desktop', 'laptop', 'mobile')
DEFAULT_ALLOWED_NETWORKS = ('wifi', 'ethernet')
DEFAULT_BUSINESS_DAYS = (0, 1, 2, 3, 4)  # Monday .. Friday

NORMAL_ACTIONS = ('read', 'view')


def evaluate_time_condition(
    now: datetime,
    start_hour: int = 9,
    end_hour: int = 17,
    business_days: Iterable[int] = DEFAULT_BUSINESS_DAYS
) -> ConditionResult:
    """Met when start_hour <= hour <= end_hour on a business day."""
    business_hours = start_hour <= now.hour <= end_hour
    business_day = now.weekday() in set(business_days)
    return ConditionResult(
        met=business_hours and business_day,
        details={
            'currentHour': now.hour,
            'currentDay': now.strftime('%A'),
            'businessHours': business_hours,
            'businessDays': business_day
        }
    )


def evaluate_location_condition(
    subject: Subject,
    context: AccessContext,
    default_allowed: Sequence[str] = DEFAULT_ALLOWED_LOCATIONS
) -> ConditionResult:
    """
    Met when the request location (or the subject's last known location
    if the request carries none) is allowed.
    """
    location = context.location or subject.last_known_location
    allowed = list(context.allowed_locations) if context.allowed_locations is not None else list(default_allowed)
    return ConditionResult(
        met=location in allowed,
        details={'userLocation': location, 'allowedLocations': allowed}
    )


def evaluate_device_condition(
    context: AccessContext,
    default_allowed: Sequence[str] = DEFAULT_ALLOWED_DEVICES
) -> ConditionResult:
    device = context.device_type or 'unknown'
    allowed = list(context.allowed_devices) if context.allowed_devices is not None else list(default_allowed)
    return ConditionResult(
        met=device in allowed,
        details={'deviceType': device, 'allowedDevices': allowed}
    )


def evaluate_network_condition(
    context: AccessContext,
    default_allowed: Sequence[str] = DEFAULT_ALLOWED_NETWORKS
) -> ConditionResult:
    network = context.network_type or 'unknown'
    allowed = list(context.allowed_networks) if context.allowed_networks is not None else list(default_allowed)
    return ConditionResult(
        met=network in allowed,
        details={'networkType': network, 'allowedNetworks': allowed}
    )


def calculate_behavior_score(activities: Sequence[ActivityRecord]) -> float:
    """Share of read/view actions among the activities; 0 when there are none."""
    if not activities:
        return 0.0
    normal = sum(1 for a in activities if a.action in NORMAL_ACTIONS)
    return normal / len(activities)


def evaluate_behavioral_condition(
    subject: Subject,
    activity_log: ActivityLog,
    now: datetime,
    threshold: float = 0.7,
    window_hours: int = 24,
    limit: int = 10
) -> ConditionResult:
    """Met when the behavior score over the recent window reaches the threshold."""
    since = now - timedelta(hours=window_hours)
    activities = activity_log.get_recent_activity(subject.id, since, limit=limit)
    score = calculate_behavior_score(activities)
    return ConditionResult(
        met=score >= threshold,
        details={
            'behaviorScore': round(score, 4),
            'threshold': threshold,
            'recentActivityCount': len(activities)
        }
    )


class DynamicConditionEvaluator:
    """
    Runs all five dynamic conditions; access needs every one of them met.

    Limits come from Settings when one is passed, otherwise from the
    module defaults.
    """

    def __init__(
        self,
        activity_log: ActivityLog,
        settings=None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.activity_log = activity_log
        self.clock = clock
        self.start_hour = settings.business_hours_start if settings else 9
        self.end_hour = settings.business_hours_end if settings else 17
        self.business_days = tuple(settings.business_days) if settings else DEFAULT_BUSINESS_DAYS
        self.allowed_locations = tuple(settings.allowed_locations) if settings else DEFAULT_ALLOWED_LOCATIONS
        self.allowed_devices = tuple(settings.allowed_devices) if settings else DEFAULT_ALLOWED_DEVICES
        self.allowed_networks = tuple(settings.allowed_networks) if settings else DEFAULT_ALLOWED_NETWORKS
        self.behavior_threshold = settings.behavior_threshold if settings else 0.7
        self.window_hours = settings.activity_window_hours if settings else 24
        self.activity_limit = settings.activity_limit if settings else 10

    def evaluate(self, subject: Subject, context: AccessContext, now: Optional[datetime] = None) -> EvaluationResult:
        now = now or self.clock()
        conditions = {
            'timeCondition': evaluate_time_condition(
                now, self.start_hour, self.end_hour, self.business_days
            ),
            'locationCondition': evaluate_location_condition(subject, context, self.allowed_locations),
            'deviceCondition': evaluate_device_condition(context, self.allowed_devices),
            'networkCondition': evaluate_network_condition(context, self.allowed_networks),
            'behavioralCondition': evaluate_behavioral_condition(
                subject, self.activity_log, now,
                threshold=self.behavior_threshold,
                window_hours=self.window_hours,
                limit=self.activity_limit
            ),
        }

        failed = [name for name, result in conditions.items() if not result.met]
        return EvaluationResult(
            allowed=not failed,
            attributes={name: result.to_dict() for name, result in conditions.items()},
            details={'failedConditions': failed}
        )
