"""
Evaluation Types
================

Value objects passed into and returned from the policy decision engine.

Inputs crossing the caller boundary (resource descriptor, request
context) are pydantic models so malformed requests are rejected before
evaluation. Everything the engine produces is an immutable dataclass.
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .exceptions import InvalidAccessRequest


class Sensitivity(str, enum.Enum):
    """Data sensitivity class of a resource."""
    PUBLIC = "public"
    PERSONAL = "personal"
    FINANCIAL = "financial"
    CONFIDENTIAL = "confidential"


class ResourceDescriptor(BaseModel):
    """
    The resource an access request targets.

    Example: {"type": "student", "id": 10, "sensitivity": "personal"}
    """
    model_config = ConfigDict(frozen=True)

    type: str = Field(min_length=1)
    id: Union[int, str]
    sensitivity: Sensitivity = Sensitivity.PUBLIC

    @classmethod
    def parse(cls, value: Union['ResourceDescriptor', Mapping[str, Any]]) -> 'ResourceDescriptor':
        """Build a descriptor from a mapping, raising InvalidAccessRequest on bad input."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise InvalidAccessRequest(f"Resource must be a mapping, got {type(value).__name__}")
        try:
            return cls.model_validate(dict(value))
        except ValidationError as e:
            raise InvalidAccessRequest(f"Invalid resource descriptor: {e}") from e


class AccessContext(BaseModel):
    """
    Contextual signals of one request.

    Recognized fields accept both snake_case and the camelCase names used
    by HTTP callers (deviceType, networkType, allowedLocations...). Any
    other key is kept in `extensions` and stays visible to ABAC
    conditions that target CONTEXT.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra='forbid')

    location: Optional[str] = None
    device_type: Optional[str] = Field(default=None, alias='deviceType')
    network_type: Optional[str] = Field(default=None, alias='networkType')
    allowed_locations: Optional[List[str]] = Field(default=None, alias='allowedLocations')
    allowed_devices: Optional[List[str]] = Field(default=None, alias='allowedDevices')
    allowed_networks: Optional[List[str]] = Field(default=None, alias='allowedNetworks')
    extensions: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode='before')
    @classmethod
    def _collect_extensions(cls, data: Any) -> Any:
        if not isinstance(data, Mapping):
            return data

        known = set()
        for name, info in cls.model_fields.items():
            known.add(name)
            if info.alias:
                known.add(info.alias)

        raw = data.get('extensions') or {}
        if not isinstance(raw, Mapping):
            raise ValueError('extensions must be a mapping')
        extensions = dict(raw)
        payload = {}
        for key, value in data.items():
            if key == 'extensions':
                continue
            if key in known:
                payload[key] = value
            else:
                extensions[key] = value
        payload['extensions'] = extensions
        return payload

    @classmethod
    def parse(cls, value: Union['AccessContext', Mapping[str, Any], None]) -> 'AccessContext':
        """Build a context from a mapping (or None), raising InvalidAccessRequest on bad input."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if not isinstance(value, Mapping):
            raise InvalidAccessRequest(f"Context must be a mapping, got {type(value).__name__}")
        try:
            return cls.model_validate(dict(value))
        except ValidationError as e:
            raise InvalidAccessRequest(f"Invalid access context: {e}") from e

    def get(self, name: str, default: Any = None) -> Any:
        """
        Look up a context attribute by field name, alias or extension key.

        Args:
            name: e.g. 'location', 'deviceType', 'schoolId'
            default: Returned when the attribute is absent
        """
        for field_name, info in type(self).model_fields.items():
            if field_name == 'extensions':
                continue
            if name == field_name or name == info.alias:
                value = getattr(self, field_name)
                return default if value is None else value
        return self.extensions.get(name, default)


@dataclass(frozen=True)
class Subject:
    """The acting principal, as supplied by the identity store."""
    id: int
    username: str
    roles: Tuple[str, ...] = ()
    hierarchy_level: int = 0
    last_known_location: Optional[str] = None
    is_active: bool = True

    @property
    def role(self) -> Optional[str]:
        """Primary (first assigned) role name."""
        return self.roles[0] if self.roles else None

    def as_attributes(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'username': self.username,
            'role': self.role,
            'roles': list(self.roles),
            'hierarchy_level': self.hierarchy_level,
            'last_known_location': self.last_known_location,
            'is_active': self.is_active
        }


@dataclass(frozen=True)
class ConditionResult:
    """Outcome of one dynamic condition."""
    met: bool
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {'met': self.met, 'details': dict(self.details)}


@dataclass(frozen=True)
class EvaluationResult:
    """Verdict of one sub-evaluator (RBAC, ABAC, DYNAMIC or RISK)."""
    allowed: bool
    attributes: Dict[str, Any] = field(default_factory=dict)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed': self.allowed,
            'attributes': dict(self.attributes),
            'details': dict(self.details)
        }


@dataclass(frozen=True)
class PolicyTrailEntry:
    """One step of a decision's audit trail."""
    type: str
    result: EvaluationResult


@dataclass(frozen=True)
class Decision:
    """
    Composite access decision.

    `policies` lists every sub-evaluator verdict in evaluation order
    (RBAC, ABAC, DYNAMIC, RISK). It is empty when evaluation failed
    before any verdict was produced.
    """
    allowed: bool
    reason: str
    strategy: Optional[str] = None
    policies: Tuple[PolicyTrailEntry, ...] = ()
    attributes: Dict[str, Any] = field(default_factory=dict)
    conditions: Dict[str, Any] = field(default_factory=dict)

    @property
    def verdicts(self) -> Dict[str, bool]:
        return {entry.type: entry.result.allowed for entry in self.policies}

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed': self.allowed,
            'reason': self.reason,
            'strategy': self.strategy,
            'policies': [
                {'type': entry.type, 'result': entry.result.to_dict()}
                for entry in self.policies
            ],
            'attributes': dict(self.attributes),
            'conditions': dict(self.conditions)
        }
