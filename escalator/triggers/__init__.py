"""Trigger registry and evaluation for Escalator."""

from escalator.triggers.defaults import DEFAULT_REGISTRY_CONFIG
from escalator.triggers.evaluator import evaluate
from escalator.triggers.predicates import Condition, ConditionOp, MatchMode, Trigger
from escalator.triggers.registry import (
    ConfigError,
    JsonFileSource,
    NoDefaultTemplate,
    Registry,
    load,
)

__all__ = [
    "Condition",
    "ConditionOp",
    "ConfigError",
    "DEFAULT_REGISTRY_CONFIG",
    "JsonFileSource",
    "MatchMode",
    "NoDefaultTemplate",
    "Registry",
    "Trigger",
    "evaluate",
    "load",
]
