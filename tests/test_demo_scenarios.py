"""
Decisions over the seeded demo school.

Each case mirrors a row of the interactive scenario runner.
"""

import pytest

from core.hybrid_engine import HybridAccessControl
from scenarios.demo_data import DEMO_NOW, seed
from scenarios.test_scenarios import CLASS_5, HOME_LAPTOP, NOTICE_1, OFFICE_LAPTOP, PAYROLL_7, STUDENT_10


@pytest.fixture
def users(session):
    return seed(session)


def check(session, settings, users, username, resource, action, context, strategy="ALL"):
    engine = HybridAccessControl.from_session(
        session, strategy=strategy, settings=settings, clock=lambda: DEMO_NOW, audit=False
    )
    return engine.check_access(users[username], resource, action, context)


class TestDemoSchool:
    """End-to-end decisions for the demo users."""

    @pytest.mark.parametrize("username,resource,action,context,expected", [
        ("ms_rivera", STUDENT_10, "view", OFFICE_LAPTOP, True),
        ("ms_rivera", STUDENT_10, "edit", OFFICE_LAPTOP, False),
        ("ms_rivera", STUDENT_10, "view", {**OFFICE_LAPTOP, "networkType": "public"}, False),
        ("ms_rivera", CLASS_5, "view", {**OFFICE_LAPTOP, "location": "cafe"}, False),
        ("ms_rivera", NOTICE_1, "view", OFFICE_LAPTOP, True),
        ("mr_chen", STUDENT_10, "view", HOME_LAPTOP, True),
        ("mr_chen", STUDENT_10, "edit", HOME_LAPTOP, True),
        ("principal", NOTICE_1, "view", OFFICE_LAPTOP, True),
        ("principal", STUDENT_10, "view", OFFICE_LAPTOP, False),
        ("bursar", PAYROLL_7, "view", OFFICE_LAPTOP, False),
    ])
    def test_decisions_under_all(self, session, settings, users, username, resource, action, context, expected):
        decision = check(session, settings, users, username, resource, action, context)
        assert decision.allowed is expected, decision.reason

    def test_parent_blocked_by_behavior_and_risk(self, session, settings, users):
        context = {"location": "home", "deviceType": "mobile", "networkType": "wifi", "guardianOf": 10}

        decision = check(session, settings, users, "parent_jones", STUDENT_10, "view", context)

        assert decision.verdicts == {"RBAC": True, "ABAC": True, "DYNAMIC": False, "RISK": False}
        assert decision.attributes["riskScore"] == 60
        assert decision.conditions["behavioralCondition"]["met"] is False
        assert "parents-view-own-child" in decision.attributes["policies"]

    @pytest.mark.parametrize("username,resource,action,expected", [
        ("principal", STUDENT_10, "view", {"ALL": False, "MAJORITY": True, "WEIGHTED": True, "ANY": True}),
        ("bursar", PAYROLL_7, "view", {"ALL": False, "MAJORITY": True, "WEIGHTED": True, "ANY": True}),
        ("ms_rivera", STUDENT_10, "edit", {"ALL": False, "MAJORITY": False, "WEIGHTED": True, "ANY": True}),
    ])
    def test_strategies(self, session, settings, users, username, resource, action, expected):
        for strategy, allowed in expected.items():
            decision = check(session, settings, users, username, resource, action, OFFICE_LAPTOP, strategy)
            assert decision.allowed is allowed, f"{strategy}: {decision.reason}"
