"""Trigger evaluation against a ComplexityProfile."""

from escalator.schemas import ComplexityProfile
from escalator.triggers.predicates import Trigger
from escalator.triggers.registry import Registry


def evaluate(registry: Registry, profile: ComplexityProfile) -> tuple[Trigger, ...]:
    """Match every registered trigger against a profile.

    Args:
        registry: Loaded trigger registry
        profile: Complexity signals for the task

    Returns:
        Matching triggers ordered by priority (highest first), ties broken by
        domain name ascending. Empty when nothing matched.
    """
    matched = [trigger for trigger in registry.triggers if trigger.predicate(profile)]
    matched.sort(key=lambda t: (-t.priority, t.domain, t.template_ref))
    return tuple(matched)
