"""
Attribute-Based Access Control (ABAC) Evaluator
===============================================

Policies are scoped to one (resource type, action) pair and carry an
effect (ALLOW or DENY) plus a list of attribute conditions.

Evaluation:
- Load the active policies for the request's resource type and action,
  in (priority, id) ascending order
- A policy applies when all of its conditions hold (conjunction); a
  policy without conditions always applies
- Each applying policy overwrites the running verdict with its effect
  and contributes its attributes, so the last applying policy wins
- No applying policy means deny

Condition format:
    {"target": "USER", "attribute": "hierarchy_level", "operator": ">=", "value": 3}

Targets read from the subject (USER), the resource descriptor
(RESOURCE) or the request context (CONTEXT).
"""

import enum
from typing import Any, Callable, Dict, List, Optional

from loguru import logger

from models.entities import ConditionTarget, PolicyEffect
from .context import AccessContext, EvaluationResult, ResourceDescriptor, Subject
from .stores import PolicyConditionSpec, PolicySpec, PolicyStore


# Resolved value of an unknown target or of an attribute its source lacks
MISSING = object()

_COLLECTIONS = (list, tuple, set, frozenset)


def _as_list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, _COLLECTIONS) else [value]


def _in(actual: Any, expected: Any) -> bool:
    allowed = _as_list(expected)
    if isinstance(actual, _COLLECTIONS):
        return any(item in allowed for item in actual)
    return actual in allowed


def _not_in(actual: Any, expected: Any) -> bool:
    excluded = _as_list(expected)
    if isinstance(actual, _COLLECTIONS):
        return not any(item in excluded for item in actual)
    return actual not in excluded


def _numeric(op: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def compare(actual: Any, expected: Any) -> bool:
        if actual is None or expected is None:
            return False
        try:
            return op(float(actual), float(expected))
        except (TypeError, ValueError):
            return False
    return compare


def _contains(actual: Any, expected: Any) -> bool:
    if actual is None:
        return False
    if isinstance(actual, (list, tuple, set, frozenset)):
        return expected in actual
    return str(expected) in str(actual)


def _starts_with(actual: Any, expected: Any) -> bool:
    return actual is not None and str(actual).startswith(str(expected))


def _ends_with(actual: Any, expected: Any) -> bool:
    return actual is not None and str(actual).endswith(str(expected))


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    '==': lambda actual, expected: actual == expected,
    '!=': lambda actual, expected: actual != expected,
    '>': _numeric(lambda a, b: a > b),
    '<': _numeric(lambda a, b: a < b),
    '>=': _numeric(lambda a, b: a >= b),
    '<=': _numeric(lambda a, b: a <= b),
    'in': _in,
    'not_in': _not_in,
    'contains': _contains,
    'starts_with': _starts_with,
    'ends_with': _ends_with,
}


class ABACEngine:
    """
    ABAC evaluator over a policy store.

    Supports the comparison operators in OPERATORS. An unknown operator,
    an unknown target or an attribute absent from its source makes the
    condition fail under every operator, which keeps the policy from
    applying. For list attributes such as `roles`, `in` holds when any
    element is listed and `not_in` when none is.
    """

    def __init__(self, policy_store: PolicyStore):
        self.policy_store = policy_store

    def evaluate(
        self,
        subject: Subject,
        resource: ResourceDescriptor,
        action: str,
        context: AccessContext
    ) -> EvaluationResult:
        """
        Evaluate the active policies for the request.

        Returns:
            EvaluationResult; attributes['policies'] maps each applying
            policy name to its attributes, details lists which policies applied
        """
        policies = self.policy_store.find_active_policies(resource.type, action)

        allowed = False
        attributes: Dict[str, Any] = {}
        matched: List[Dict[str, Any]] = []
        deciding: Optional[str] = None

        for policy in policies:
            if not self.policy_applies(policy, subject, resource, context):
                continue
            allowed = policy.effect == PolicyEffect.ALLOW.value
            attributes[policy.name] = dict(policy.attributes)
            matched.append({'name': policy.name, 'effect': policy.effect, 'priority': policy.priority})
            deciding = policy.name

        if deciding is None:
            reason = f"No applicable policy for {resource.type}:{action}"
        else:
            reason = f"Policy '{deciding}' decided {'ALLOW' if allowed else 'DENY'}"
        logger.debug("ABAC {}:{} -> {} ({})", resource.type, action, allowed, reason)

        return EvaluationResult(
            allowed=allowed,
            attributes={'policies': attributes},
            details={
                'evaluatedPolicies': len(policies),
                'matchedPolicies': matched,
                'decidingPolicy': deciding,
                'reason': reason
            }
        )

    def policy_applies(
        self,
        policy: PolicySpec,
        subject: Subject,
        resource: ResourceDescriptor,
        context: AccessContext
    ) -> bool:
        """True when every condition of the policy holds."""
        return all(
            self.evaluate_condition(condition, subject, resource, context)
            for condition in policy.conditions
        )

    def evaluate_condition(
        self,
        condition: PolicyConditionSpec,
        subject: Subject,
        resource: ResourceDescriptor,
        context: AccessContext
    ) -> bool:
        compare = OPERATORS.get(condition.operator)
        if compare is None:
            logger.warning("Unsupported ABAC operator '{}'", condition.operator)
            return False

        actual = self.resolve_attribute(condition.target, condition.attribute, subject, resource, context)
        if actual is MISSING:
            logger.debug("ABAC attribute {}.{} not available", condition.target, condition.attribute)
            return False
        return compare(actual, condition.value)

    @staticmethod
    def resolve_attribute(
        target: str,
        attribute: str,
        subject: Subject,
        resource: ResourceDescriptor,
        context: AccessContext
    ) -> Any:
        """
        Resolve a condition's left-hand value.

        Args:
            target: USER, RESOURCE or CONTEXT
            attribute: Attribute name within the target
        """
        target = (target or '').upper()
        if target == ConditionTarget.USER.value:
            return subject.as_attributes().get(attribute, MISSING)
        if target == ConditionTarget.RESOURCE.value:
            value = resource.model_dump().get(attribute, MISSING)
            return value.value if isinstance(value, enum.Enum) else value
        if target == ConditionTarget.CONTEXT.value:
            return context.get(attribute, MISSING)
        return MISSING
