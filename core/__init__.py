# Access Policy Engine - Core Modules
# RBAC, ABAC, dynamic conditions and risk combined into one decision

from .abac_engine import ABACEngine
from .audit import AuditLogger
from .cache import Cache, MemoryCache
from .conditions import DynamicConditionEvaluator
from .context import (
    AccessContext,
    Decision,
    EvaluationResult,
    ResourceDescriptor,
    Sensitivity,
    Subject
)
from .exceptions import AccessControlError, InvalidAccessRequest, SubjectNotFound
from .hybrid_engine import CombinationStrategy, HybridAccessControl, combine_policy_results
from .rbac_engine import RBACEngine
from .risk import RiskScorer

__all__ = [
    'ABACEngine',
    'AuditLogger',
    'Cache',
    'MemoryCache',
    'DynamicConditionEvaluator',
    'AccessContext',
    'Decision',
    'EvaluationResult',
    'ResourceDescriptor',
    'Sensitivity',
    'Subject',
    'AccessControlError',
    'InvalidAccessRequest',
    'SubjectNotFound',
    'CombinationStrategy',
    'HybridAccessControl',
    'combine_policy_results',
    'RBACEngine',
    'RiskScorer'
]
