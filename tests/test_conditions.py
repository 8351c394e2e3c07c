"""
Tests for the dynamic (contextual and behavioral) conditions.
"""

from datetime import datetime, timedelta

import pytest

from config.settings import Settings
from core.conditions import (
    DynamicConditionEvaluator,
    calculate_behavior_score,
    evaluate_behavioral_condition,
    evaluate_device_condition,
    evaluate_location_condition,
    evaluate_network_condition,
    evaluate_time_condition
)
from core.context import AccessContext, Subject

from conftest import WEDNESDAY_11

OFFICE_LAPTOP = AccessContext.parse({"location": "office", "deviceType": "laptop", "networkType": "wifi"})


class TestTimeCondition:
    """Business hours are 09:00-17:59 Monday to Friday."""

    @pytest.mark.parametrize("moment,met", [
        (datetime(2024, 9, 18, 10, 0), True),    # Wednesday
        (datetime(2024, 9, 18, 9, 0), True),
        (datetime(2024, 9, 18, 17, 59), True),
        (datetime(2024, 9, 18, 8, 59), False),
        (datetime(2024, 9, 18, 22, 0), False),
        (datetime(2024, 9, 21, 10, 0), False),   # Saturday
        (datetime(2024, 9, 22, 10, 0), False),   # Sunday
    ])
    def test_business_hours(self, moment, met):
        assert evaluate_time_condition(moment).met is met

    def test_details(self):
        result = evaluate_time_condition(datetime(2024, 9, 21, 10, 0))

        assert result.details["currentDay"] == "Saturday"
        assert result.details["businessHours"] is True
        assert result.details["businessDays"] is False

    def test_custom_window(self):
        assert evaluate_time_condition(datetime(2024, 9, 21, 7, 0), 6, 12, range(7)).met is True


class TestContextConditions:
    """Location, device and network checks."""

    def test_request_location(self, teacher):
        assert evaluate_location_condition(teacher, OFFICE_LAPTOP).met is True
        assert evaluate_location_condition(teacher, AccessContext(location="cafe")).met is False

    def test_falls_back_to_last_known_location(self):
        at_home = Subject(id=1, username="mr_chen", last_known_location="home")
        nowhere = Subject(id=2, username="parent_jones")

        assert evaluate_location_condition(at_home, AccessContext()).met is True
        assert evaluate_location_condition(nowhere, AccessContext()).met is False

    def test_context_overrides_allowed_locations(self, teacher):
        context = AccessContext.parse({"location": "cafe", "allowedLocations": ["cafe"]})
        result = evaluate_location_condition(teacher, context)

        assert result.met is True
        assert result.details["allowedLocations"] == ["cafe"]

    def test_device(self):
        assert evaluate_device_condition(OFFICE_LAPTOP).met is True
        assert evaluate_device_condition(AccessContext(device_type="smart_tv")).met is False

    def test_missing_device_is_unknown(self):
        result = evaluate_device_condition(AccessContext())

        assert result.met is False
        assert result.details["deviceType"] == "unknown"

    def test_network(self):
        assert evaluate_network_condition(AccessContext(network_type="ethernet")).met is True
        assert evaluate_network_condition(AccessContext(network_type="public")).met is False
        assert evaluate_network_condition(AccessContext()).details["networkType"] == "unknown"


class TestBehavioralCondition:
    """Recent activity must be mostly read-only."""

    def seed(self, activity_log, actions, start=WEDNESDAY_11):
        for i, action in enumerate(actions):
            activity_log.add_activity(1, action, start - timedelta(minutes=10 * (i + 1)))

    def test_score_of_no_activity_is_zero(self):
        assert calculate_behavior_score([]) == 0.0

    def test_threshold_reached(self, activity_log, teacher):
        self.seed(activity_log, ["view"] * 7 + ["edit"] * 3)

        result = evaluate_behavioral_condition(teacher, activity_log, WEDNESDAY_11)

        assert result.met is True
        assert result.details["behaviorScore"] == 0.7
        assert result.details["recentActivityCount"] == 10

    def test_below_threshold(self, activity_log, teacher):
        self.seed(activity_log, ["view"] * 6 + ["edit"] * 4)
        assert evaluate_behavioral_condition(teacher, activity_log, WEDNESDAY_11).met is False

    def test_read_counts_as_normal(self, activity_log, teacher):
        self.seed(activity_log, ["read", "view", "read"])
        assert evaluate_behavioral_condition(teacher, activity_log, WEDNESDAY_11).met is True

    def test_only_most_recent_entries_count(self, activity_log, teacher):
        self.seed(activity_log, ["view"] * 10 + ["delete"] * 10)

        result = evaluate_behavioral_condition(teacher, activity_log, WEDNESDAY_11)

        assert result.details["behaviorScore"] == 1.0

    def test_activity_outside_window_ignored(self, activity_log, teacher):
        self.seed(activity_log, ["view"] * 10, start=WEDNESDAY_11 - timedelta(days=2))

        result = evaluate_behavioral_condition(teacher, activity_log, WEDNESDAY_11)

        assert result.met is False
        assert result.details["recentActivityCount"] == 0


class TestDynamicConditionEvaluator:
    """All five conditions together."""

    @pytest.fixture
    def busy_log(self, activity_log):
        for i in range(10):
            activity_log.add_activity(1, "view", WEDNESDAY_11 - timedelta(minutes=i + 1))
        return activity_log

    def test_all_conditions_met(self, busy_log, teacher, settings, clock):
        result = DynamicConditionEvaluator(busy_log, settings, clock).evaluate(teacher, OFFICE_LAPTOP)

        assert result.allowed is True
        assert result.details["failedConditions"] == []
        assert set(result.attributes) == {
            "timeCondition", "locationCondition", "deviceCondition",
            "networkCondition", "behavioralCondition"
        }

    def test_failed_conditions_listed(self, busy_log, teacher, settings, clock):
        context = AccessContext.parse({"location": "office", "deviceType": "laptop", "networkType": "public"})

        result = DynamicConditionEvaluator(busy_log, settings, clock).evaluate(teacher, context)

        assert result.allowed is False
        assert result.details["failedConditions"] == ["networkCondition"]
        assert result.attributes["networkCondition"]["met"] is False

    def test_settings_tune_business_hours(self, busy_log, teacher, clock):
        early = Settings(_env_file=None, business_hours_start=12, business_hours_end=18)

        result = DynamicConditionEvaluator(busy_log, early, clock).evaluate(teacher, OFFICE_LAPTOP)

        assert result.details["failedConditions"] == ["timeCondition"]

    def test_explicit_now_overrides_clock(self, busy_log, teacher, settings, clock):
        saturday = datetime(2024, 9, 21, 11, 0)
        result = DynamicConditionEvaluator(busy_log, settings, clock).evaluate(teacher, OFFICE_LAPTOP, saturday)

        assert "timeCondition" in result.details["failedConditions"]
