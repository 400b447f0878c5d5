"""Shared fixtures for Escalator tests."""

import copy

import pytest

BASE_REGISTRY_CONFIG = {
    "default_template": "basic",
    "stages": {
        "s1": {"kind": "semantic-context", "capability": "semantic", "timeout": 5},
        "s2": {"kind": "reasoning", "capability": "reasoner", "timeout": 5},
        "s3": {"kind": "consensus", "capability": "consensus", "timeout": 5},
        "scan": {"kind": "validation", "capability": "scanner", "timeout": 5},
    },
    "templates": [
        {"id": "basic", "domain": "general", "stages": ["s1"], "max_escalations": 1},
        {"id": "A", "domain": "a", "stages": ["s1", "s2"], "max_escalations": 1},
        {"id": "B", "domain": "b", "stages": ["s2", "s3"], "max_escalations": 2},
        {"id": "secure", "domain": "security", "stages": ["s1", "scan"]},
    ],
    "triggers": [],
}


@pytest.fixture
def registry_config() -> dict:
    """A fresh, mutable copy of a small valid registry table."""
    return copy.deepcopy(BASE_REGISTRY_CONFIG)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep engine configuration independent of the developer's environment."""
    monkeypatch.delenv("ESCALATOR_REGISTRY", raising=False)
    monkeypatch.delenv("ESCALATOR_CAPABILITY_KEY", raising=False)
