"""Developer CLI for Escalator.

Minimal interface for inspecting trigger selection and running tasks against
HTTP capabilities. No persistence, no color.
"""

import argparse
import asyncio
import logging
import sys
from typing import Optional

from escalator import ConfigError, EngineConfig, Escalator, ExecutionResult
from escalator.capabilities import HttpCapability
from escalator.executor.pipeline import Plan

MAX_PREVIEW_LEN = 200


def _truncate(text: str, max_len: int = MAX_PREVIEW_LEN) -> str:
    """Truncate text with ellipsis if too long."""
    text = text.replace("\n", " ").strip()
    if len(text) <= max_len:
        return text
    return text[:max_len] + "..."


def _parse_pairs(pairs: Optional[list[str]], flag: str) -> dict[str, str]:
    """Parse repeated key=value arguments."""
    parsed: dict[str, str] = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise SystemExit(f"Error: {flag} expects key=value, got {pair!r}")
        parsed[key.strip()] = value.strip()
    return parsed


def _read_task(text: str) -> str:
    if text == "-":
        return sys.stdin.read()
    return text


def _print_plan(plan: Plan) -> None:
    """Print profile, matched triggers and selected template."""
    profile = plan.profile
    print("=" * 60)
    print("COMPLEXITY PROFILE")
    print("=" * 60)
    print(f"Steps:            {profile.step_count}")
    print(f"Decision points:  {profile.decision_points}")
    print(f"Affected systems: {profile.affected_systems}")
    print(f"Production:       {'yes' if profile.is_production else 'no'}")
    print(f"Severity:         {profile.severity.value.upper()}")
    print(f"Domains:          {', '.join(sorted(profile.domain_tags)) or '-'}")
    print()
    print("Matched triggers:")
    if not plan.matched:
        print("  (none, default template)")
    for trigger in plan.matched:
        print(f"  - {trigger.domain} (priority {trigger.priority}) -> {trigger.template_ref}")
    print()
    print(f"Template: {plan.template.id} (max escalations {plan.template.max_escalations})")
    for i, stage in enumerate(plan.template.stages, start=1):
        fallback = f" [fallback: {stage.fallback.name}]" if stage.fallback else ""
        print(f"  {i}. {stage.name} ({stage.kind.value}, {stage.capability}){fallback}")
    print()


def _print_result(result: ExecutionResult) -> None:
    """Print execution outcome and artifacts."""
    print("=" * 60)
    print("EXECUTION RESULT")
    print("=" * 60)
    print(f"Status:      {result.status.value.upper()}")
    if result.failure_reason:
        print(f"Reason:      {result.failure_reason.value}")
        print(f"Detail:      {_truncate(result.failure_detail or '')}")
    print(f"Template:    {result.template_id}")
    print(f"Escalations: {result.escalation_count}")
    print()
    for i, artifact in enumerate(result.artifacts, start=1):
        marker = " (degraded)" if artifact.degraded else ""
        print(f"[{i}] {artifact.stage.name}{marker}")
        print(f"  {_truncate(artifact.error or artifact.output)}")
    print()


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Escalator CLI - complexity-triggered workflow orchestration",
    )
    parser.add_argument(
        "--registry",
        metavar="PATH",
        help="JSON trigger/template table (default: ESCALATOR_REGISTRY or built-in)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable info logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Show which workflow a task selects")
    run_parser = subparsers.add_parser("run", help="Execute a task against HTTP capabilities")
    for sub in (plan_parser, run_parser):
        sub.add_argument("task", help="Task description, or '-' to read stdin")
        sub.add_argument(
            "--hint",
            action="append",
            metavar="KEY=VALUE",
            help="Caller hint, e.g. environment=production (repeatable)",
        )
    run_parser.add_argument(
        "--capability",
        action="append",
        metavar="NAME=URL",
        help="HTTP endpoint serving a capability (repeatable)",
    )
    run_parser.add_argument(
        "--task-timeout",
        type=float,
        default=300.0,
        metavar="SECONDS",
        help="Global per-task timeout (default: 300)",
    )
    return parser.parse_args(argv)


async def _run(engine: Escalator, text: str, hints: dict[str, str], capabilities: list[HttpCapability]) -> ExecutionResult:
    try:
        return await engine.run(text, hints)
    finally:
        for capability in capabilities:
            await capability.aclose()


def main(argv: Optional[list[str]] = None) -> None:
    """Run the Escalator CLI."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    hints = _parse_pairs(args.hint, "--hint")
    endpoints = _parse_pairs(getattr(args, "capability", None), "--capability")
    text = _read_task(args.task)

    try:
        config = EngineConfig(
            registry_path=args.registry,
            task_timeout=getattr(args, "task_timeout", 300.0),
        )
        capabilities = {
            name: HttpCapability(url, api_key=config.capability_api_key)
            for name, url in endpoints.items()
        }
        engine = Escalator(config=config, capabilities=capabilities)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(2)

    plan = engine.plan(text, hints)
    _print_plan(plan)
    if args.command == "plan":
        return

    result = asyncio.run(_run(engine, text, hints, list(capabilities.values())))
    _print_result(result)
    if not result.succeeded:
        sys.exit(1)


if __name__ == "__main__":
    main()
