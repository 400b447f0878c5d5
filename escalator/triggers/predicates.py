"""Declarative trigger predicates.

A Trigger's predicate is built from Conditions that read only fields of a
ComplexityProfile, so evaluating it has no side effects and no hidden state.
"""

import operator
from enum import Enum
from typing import Any, Callable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from escalator.config import Severity
from escalator.schemas import ComplexityProfile

INT_SIGNALS = frozenset({"step_count", "decision_points", "affected_systems"})
BOOL_SIGNALS = frozenset({"is_production"})
SET_SIGNALS = frozenset({"domain_tags"})
ENUM_SIGNALS = frozenset({"severity"})


class ConditionOp(str, Enum):
    """Comparison applied to a profile signal."""

    GE = ">="
    GT = ">"
    LE = "<="
    LT = "<"
    EQ = "=="
    NE = "!="
    CONTAINS = "contains"
    IN = "in"


class MatchMode(str, Enum):
    """How a trigger combines its conditions."""

    ALL = "all"
    ANY = "any"


_COMPARATORS: dict[ConditionOp, Callable[[Any, Any], bool]] = {
    ConditionOp.GE: operator.ge,
    ConditionOp.GT: operator.gt,
    ConditionOp.LE: operator.le,
    ConditionOp.LT: operator.lt,
    ConditionOp.EQ: operator.eq,
    ConditionOp.NE: operator.ne,
}

_NUMERIC_OPS = frozenset(
    {ConditionOp.GE, ConditionOp.GT, ConditionOp.LE, ConditionOp.LT}
)


class Condition(BaseModel):
    """A single signal comparison, e.g. decision_points >= 2."""

    model_config = ConfigDict(frozen=True)

    signal: str
    op: ConditionOp = ConditionOp.GE
    value: Any

    @model_validator(mode="after")
    def check_signal_and_value(self) -> "Condition":
        """Reject conditions that could raise or never be meaningful at evaluation time."""
        if self.signal in INT_SIGNALS:
            if self.op in (ConditionOp.CONTAINS, ConditionOp.IN):
                raise ValueError(f"'{self.op.value}' is not valid for integer signal '{self.signal}'")
            if isinstance(self.value, bool) or not isinstance(self.value, int):
                raise ValueError(f"Signal '{self.signal}' must be compared to an integer")
        elif self.signal in BOOL_SIGNALS:
            if self.op not in (ConditionOp.EQ, ConditionOp.NE):
                raise ValueError(f"Only == and != are valid for boolean signal '{self.signal}'")
            if not isinstance(self.value, bool):
                raise ValueError(f"Signal '{self.signal}' must be compared to true or false")
        elif self.signal in SET_SIGNALS:
            if self.op != ConditionOp.CONTAINS or not isinstance(self.value, str):
                raise ValueError(f"Signal '{self.signal}' only supports 'contains' with a string")
        elif self.signal in ENUM_SIGNALS:
            allowed = {s.value for s in Severity}
            if self.op == ConditionOp.IN:
                values = self.value if isinstance(self.value, (list, tuple)) else None
                if not values or not set(values) <= allowed:
                    raise ValueError(f"Signal '{self.signal}' 'in' needs a list drawn from {sorted(allowed)}")
                object.__setattr__(self, "value", tuple(values))
            elif self.op in (ConditionOp.EQ, ConditionOp.NE):
                if self.value not in allowed:
                    raise ValueError(f"Signal '{self.signal}' must be one of {sorted(allowed)}")
            else:
                raise ValueError(f"'{self.op.value}' is not valid for signal '{self.signal}'")
        else:
            raise ValueError(f"Unknown profile signal: '{self.signal}'")
        return self

    def test(self, profile: ComplexityProfile) -> bool:
        actual = getattr(profile, self.signal)
        if self.op == ConditionOp.CONTAINS:
            return self.value in actual
        if self.op == ConditionOp.IN:
            return actual in self.value
        return _COMPARATORS[self.op](actual, self.value)


class Trigger(BaseModel):
    """A rule mapping a complexity predicate to a candidate workflow template."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    domain: str = Field(min_length=1)
    priority: int = 0
    template_ref: str = Field(validation_alias=AliasChoices("template_ref", "template"))
    when: tuple[Condition, ...] = Field(min_length=1)
    match: MatchMode = MatchMode.ALL

    @property
    def key(self) -> tuple[str, str]:
        return (self.domain, self.template_ref)

    def predicate(self, profile: ComplexityProfile) -> bool:
        """True if the profile satisfies this trigger's conditions."""
        results = (condition.test(profile) for condition in self.when)
        if self.match == MatchMode.ANY:
            return any(results)
        return all(results)
