"""
Policy Matching
===============

Selects the SLA policy that applies to a ticket.

Conditions are field/operator/value triples joined with AND. Fields may be
dotted paths into the ticket snapshot ("customer.email"). A path that does
not resolve, a condition without field or operator, and an unknown
operator all evaluate to False.
"""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Mapping, Optional, Sequence

if TYPE_CHECKING:
    from supportdesk.sla.domain.entities import SLAPolicy


class _Missing:
    """Marker for a field path that does not resolve."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


class ConditionOperator(str, Enum):
    EQUALS = "equals"
    STRICT_EQUALS = "=="
    CONTAINS = "contains"
    IN = "in"
    HAS = "has"


def resolve_field(source: Any, path: str) -> Any:
    """Follow a dotted path through mappings and attributes."""
    current = source
    for segment in path.split("."):
        if current is None or current is MISSING:
            return MISSING
        if isinstance(current, Mapping):
            current = current.get(segment, MISSING)
        else:
            current = getattr(current, segment, MISSING)
    return current


def _stringify(value: Any) -> str:
    """String form used by substring matching."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _stringify(item) for item in value)
    if isinstance(value, Mapping):
        return "[object Object]"
    return str(value)


def _strict_equals(left: Any, right: Any) -> bool:
    """Equality that does not treat booleans as numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if type(left) is not type(right):
        return False
    if isinstance(left, (list, dict)):
        # Containers compare by identity
        return left is right
    return left == right


def _contains_strictly(items: Any, needle: Any) -> bool:
    if not isinstance(items, (list, tuple)):
        return False
    return any(_strict_equals(item, needle) for item in items)


@dataclass(frozen=True)
class PolicyCondition:
    """One field/operator/value test."""
    field: Optional[str]
    operator: Optional[str]
    value: Any = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicyCondition":
        return cls(field=data.get("field"), operator=data.get("operator"), value=data.get("value"))

    def to_dict(self) -> dict:
        return {"field": self.field, "operator": self.operator, "value": self.value}

    def evaluate(self, ticket: Any) -> bool:
        if not self.field or not self.operator:
            return False

        actual = resolve_field(ticket, self.field)
        if actual is MISSING:
            return False

        try:
            operator = ConditionOperator(self.operator)
        except ValueError:
            return False

        if operator in (ConditionOperator.EQUALS, ConditionOperator.STRICT_EQUALS):
            return _strict_equals(actual, self.value)
        if operator is ConditionOperator.CONTAINS:
            return _stringify(self.value).lower() in _stringify(actual).lower()
        if operator is ConditionOperator.IN:
            return _contains_strictly(self.value, actual)
        if operator is ConditionOperator.HAS:
            return _contains_strictly(actual, self.value)
        return False


class PolicyMatcher:
    """
    First-match policy selection.

    Policies are considered in creation order; the first active policy
    whose conditions all hold wins. When none match, the first active
    policy is the fallback.
    """

    @staticmethod
    def matches(policy: "SLAPolicy", ticket: Any) -> bool:
        return all(condition.evaluate(ticket) for condition in policy.conditions)

    def select_policy(
        self,
        ticket: Any,
        policies: Sequence["SLAPolicy"],
    ) -> Optional["SLAPolicy"]:
        active = sorted(
            (policy for policy in policies if policy.is_active),
            key=lambda policy: policy.created_at,
        )
        for policy in active:
            if self.matches(policy, ticket):
                return policy
        return active[0] if active else None
