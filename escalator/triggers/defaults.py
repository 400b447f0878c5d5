"""Built-in trigger/template table used when no registry file is configured."""

from typing import Any

DEFAULT_REGISTRY_CONFIG: dict[str, Any] = {
    "default_template": "baseline",
    "stages": {
        "context": {
            "kind": "semantic-context",
            "capability": "semantic-search",
            "timeout": 30,
            "fallback": "context-lite",
        },
        "context-lite": {
            "kind": "semantic-context",
            "capability": "text-search",
            "timeout": 15,
        },
        "reasoning": {
            "kind": "reasoning",
            "capability": "deep-reasoning",
            "timeout": 120,
            "fallback": "reasoning-lite",
        },
        "reasoning-lite": {
            "kind": "reasoning",
            "capability": "fast-reasoning",
            "timeout": 60,
        },
        "validation": {
            "kind": "validation",
            "capability": "validator",
            "timeout": 60,
        },
        "security-review": {
            "kind": "validation",
            "capability": "security-scanner",
            "timeout": 90,
            "fallback": "validation",
        },
        "profiling": {
            "kind": "validation",
            "capability": "profiler",
            "timeout": 90,
            "fallback": "reasoning-lite",
        },
        "consensus": {
            "kind": "consensus",
            "capability": "multi-model",
            "timeout": 180,
            "fallback": "validation",
        },
    },
    "templates": [
        {"id": "baseline", "domain": "general", "stages": ["context"], "max_escalations": 2},
        {
            "id": "multi-step",
            "domain": "reasoning",
            "stages": ["context", "reasoning"],
            "max_escalations": 2,
        },
        {
            "id": "architecture",
            "domain": "architecture",
            "stages": ["context", "reasoning", "consensus"],
            "max_escalations": 1,
        },
        {
            "id": "security",
            "domain": "security",
            "stages": ["context", "security-review", "reasoning", "consensus"],
            "max_escalations": 1,
        },
        {
            "id": "performance",
            "domain": "performance",
            "stages": ["context", "profiling", "reasoning"],
            "max_escalations": 1,
        },
        {
            "id": "production",
            "domain": "production",
            "stages": ["context", "reasoning", "validation", "consensus"],
            "max_escalations": 1,
        },
    ],
    "triggers": [
        # 3+ distinct steps
        {
            "domain": "reasoning",
            "priority": 5,
            "template": "multi-step",
            "when": [{"signal": "step_count", "op": ">=", "value": 3}],
        },
        # 2+ branching decisions or 5+ components
        {
            "domain": "architecture",
            "priority": 10,
            "template": "architecture",
            "match": "any",
            "when": [
                {"signal": "decision_points", "op": ">=", "value": 2},
                {"signal": "affected_systems", "op": ">=", "value": 5},
            ],
        },
        {
            "domain": "performance",
            "priority": 15,
            "template": "performance",
            "when": [{"signal": "severity", "op": "==", "value": "performance"}],
        },
        {
            "domain": "security",
            "priority": 20,
            "template": "security",
            "when": [{"signal": "severity", "op": "==", "value": "security"}],
        },
        {
            "domain": "production",
            "priority": 20,
            "template": "production",
            "when": [
                {"signal": "is_production", "op": "==", "value": True},
                {"signal": "affected_systems", "op": ">=", "value": 2},
            ],
        },
    ],
}
