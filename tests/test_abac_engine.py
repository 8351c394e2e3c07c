"""
Tests for the ABAC evaluator.
"""

import pytest

from core.abac_engine import MISSING, ABACEngine, OPERATORS
from core.context import AccessContext, ResourceDescriptor
from core.stores import PolicyConditionSpec, PolicySpec

from conftest import FakePolicyStore

STUDENT_10 = ResourceDescriptor(type="student", id=10, sensitivity="personal")
OFFICE = AccessContext(location="office", device_type="laptop", network_type="wifi")


def policy(id, effect="ALLOW", priority=0, conditions=(), name=None, attributes=None):
    return PolicySpec(
        id=id,
        name=name or f"policy-{id}",
        resource_type="student",
        action="view",
        effect=effect,
        priority=priority,
        attributes=attributes or {},
        conditions=tuple(PolicyConditionSpec(*c) for c in conditions)
    )


class TestABACEngine:
    """Test policy selection and the last-applying-wins rule."""

    def evaluate(self, subject, *policies, context=OFFICE, resource=STUDENT_10):
        return ABACEngine(FakePolicyStore(*policies)).evaluate(subject, resource, "view", context)

    def test_no_policy_denies(self, teacher):
        result = self.evaluate(teacher)

        assert result.allowed is False
        assert result.details["decidingPolicy"] is None
        assert result.details["evaluatedPolicies"] == 0

    def test_policy_without_conditions_applies(self, teacher):
        result = self.evaluate(teacher, policy(1, attributes={"scope": "school"}))

        assert result.allowed is True
        assert result.attributes == {"policies": {"policy-1": {"scope": "school"}}}

    def test_last_applying_policy_wins(self, teacher):
        assert self.evaluate(teacher, policy(1, "DENY"), policy(2, "ALLOW")).allowed is True
        assert self.evaluate(teacher, policy(1, "ALLOW"), policy(2, "DENY")).allowed is False

    def test_higher_priority_overrides(self, teacher):
        result = self.evaluate(teacher, policy(1, "DENY", priority=10), policy(2, "ALLOW", priority=0))

        assert result.allowed is False
        assert result.details["decidingPolicy"] == "policy-1"

    def test_non_applying_policy_does_not_override(self, teacher):
        result = self.evaluate(
            teacher,
            policy(1, "ALLOW"),
            policy(2, "DENY", priority=10, conditions=[("CONTEXT", "networkType", "==", "public")])
        )

        assert result.allowed is True
        assert [m["name"] for m in result.details["matchedPolicies"]] == ["policy-1"]

    def test_conditions_are_a_conjunction(self, teacher):
        conditions = [
            ("USER", "role", "==", "TEACHER"),
            ("USER", "hierarchy_level", ">=", 2),
        ]
        assert self.evaluate(teacher, policy(1, conditions=conditions)).allowed is False
        assert self.evaluate(teacher, policy(1, conditions=conditions[:1])).allowed is True

    def test_context_extension_attribute(self, teacher):
        rule = policy(1, conditions=[("CONTEXT", "guardianOf", "==", 10)])

        assert self.evaluate(teacher, rule, context=AccessContext.parse({"guardianOf": 10})).allowed is True
        assert self.evaluate(teacher, rule, context=AccessContext.parse({"guardianOf": 11})).allowed is False

    def test_unknown_operator_fails_condition(self, teacher):
        result = self.evaluate(teacher, policy(1, conditions=[("USER", "role", "~=", "TEACHER")]))
        assert result.allowed is False

    @pytest.mark.parametrize("condition", [
        ("TENANT", "id", "!=", "other"),
        ("CONTEXT", "networkType", "not_in", ["public"]),
        ("CONTEXT", "guardianOf", "!=", 10),
        ("USER", "department", "!=", "finance"),
        ("RESOURCE", "owner", "not_in", [1, 2]),
    ])
    def test_unavailable_attribute_never_applies(self, teacher, condition):
        result = self.evaluate(teacher, policy(1, conditions=[condition]), context=AccessContext())

        assert result.allowed is False
        assert result.details["matchedPolicies"] == []

    def test_role_list_membership(self, teacher):
        assert self.evaluate(teacher, policy(1, conditions=[("USER", "roles", "in", ["TEACHER", "ADMIN"])])).allowed
        assert not self.evaluate(teacher, policy(1, conditions=[("USER", "roles", "not_in", ["TEACHER"])])).allowed

    def test_policy_named_like_engine_attribute(self, teacher):
        result = self.evaluate(teacher, policy(1, name="riskScore", attributes={"tier": 2}))

        assert result.attributes == {"policies": {"riskScore": {"tier": 2}}}

    def test_other_action_policies_ignored(self, teacher):
        edit_policy = PolicySpec(id=1, name="edit", resource_type="student", action="edit", effect="ALLOW")
        assert self.evaluate(teacher, edit_policy).allowed is False


class TestAttributeResolution:
    """Test how condition targets resolve attribute values."""

    def test_user_attributes(self, teacher):
        assert ABACEngine.resolve_attribute("USER", "roles", teacher, STUDENT_10, OFFICE) == ["TEACHER"]
        assert ABACEngine.resolve_attribute("user", "hierarchy_level", teacher, STUDENT_10, OFFICE) == 1

    def test_resource_sensitivity_is_plain_string(self, teacher):
        assert ABACEngine.resolve_attribute("RESOURCE", "sensitivity", teacher, STUDENT_10, OFFICE) == "personal"
        assert ABACEngine.resolve_attribute("RESOURCE", "id", teacher, STUDENT_10, OFFICE) == 10

    def test_context_by_alias_or_field_name(self, teacher):
        assert ABACEngine.resolve_attribute("CONTEXT", "deviceType", teacher, STUDENT_10, OFFICE) == "laptop"
        assert ABACEngine.resolve_attribute("CONTEXT", "device_type", teacher, STUDENT_10, OFFICE) == "laptop"

    def test_unknown_target(self, teacher):
        assert ABACEngine.resolve_attribute("TENANT", "id", teacher, STUDENT_10, OFFICE) is MISSING


class TestOperators:
    """Test the condition operators."""

    @pytest.mark.parametrize("operator,actual,expected,result", [
        ("==", "TEACHER", "TEACHER", True),
        ("==", None, 1, False),
        ("!=", "TEACHER", "ADMIN", True),
        (">", 5, 3, True),
        (">", "5", 3, True),
        (">", "abc", 3, False),
        ("<", 2, 3, True),
        (">=", 3, 3, True),
        ("<=", 4, 3, False),
        (">=", None, 3, False),
        ("in", "office", ["office", "home"], True),
        ("in", "cafe", ["office", "home"], False),
        ("not_in", "cafe", ["office", "home"], True),
        ("in", ["TEACHER", "STAFF"], ["ADMIN", "TEACHER"], True),
        ("in", ["TEACHER"], ["ADMIN"], False),
        ("not_in", ["TEACHER"], ["ADMIN"], True),
        ("not_in", ["TEACHER", "STAFF"], ["STAFF"], False),
        ("contains", ["TEACHER", "STAFF"], "STAFF", True),
        ("contains", "Head of maths", "maths", True),
        ("contains", None, "x", False),
        ("starts_with", "student-records", "student", True),
        ("ends_with", "report.pdf", ".pdf", True),
        ("ends_with", None, ".pdf", False),
    ])
    def test_operator(self, operator, actual, expected, result):
        assert OPERATORS[operator](actual, expected) is result
