"""Tests for the pipeline executor."""

import asyncio
from typing import Optional

import pytest

from escalator.capabilities import CapabilityError, CapabilityUnavailableError, FunctionCapability
from escalator.config import ExecutionStatus, FailureReason, Severity
from escalator.executor.pipeline import InvalidTransition, PipelineExecutor, transition
from escalator.executor.resilience import ResilienceManager
from escalator.schemas import CapabilityResponse, ExecutionState, SignalUpdate, TaskDescription
from escalator.signals import SignalExtractor
from escalator.triggers import load

S = ExecutionStatus


def echo(stage, context):
    return f"{stage.name} done"


def surfacing(**signals):
    """Capability handler that reports new signals about the task."""

    def handler(stage, context):
        return CapabilityResponse(output=f"{stage.name} done", signals=SignalUpdate(**signals))

    return handler


class Down:
    async def invoke(self, stage, context, timeout):
        raise CapabilityUnavailableError("down")


def make_executor(config: dict, capabilities: dict, **kwargs) -> PipelineExecutor:
    resilience = ResilienceManager(capabilities, base_delay=0.0)
    return PipelineExecutor(load(config), resilience, SignalExtractor(), **kwargs)


async def run_task(
    executor: PipelineExecutor,
    text: str = "",
    hints: Optional[dict] = None,
) -> ExecutionState:
    state = executor.prepare(TaskDescription(text=text, hints=hints or {}))
    return await executor.run(state)


def names(state: ExecutionState) -> list[str]:
    return [a.stage.name for a in state.artifacts]


def all_echo(*capabilities: str) -> dict:
    return {name: FunctionCapability(echo) for name in capabilities}


SECURITY_TRIGGER = {
    "domain": "security",
    "priority": 20,
    "template": "secure",
    "when": [{"signal": "severity", "op": "==", "value": "security"}],
}


class TestScenarios:
    """End-to-end executor scenarios."""

    @pytest.mark.asyncio
    async def test_minimal_task(self, registry_config):
        """Zero signals run only the default template."""
        executor = make_executor(registry_config, all_echo("semantic"))
        state = await run_task(executor, "")

        assert state.status == S.COMPLETED
        assert state.template.id == "basic"
        assert state.escalation_count == 0
        assert names(state) == ["s1"]
        assert state.artifacts[0].output == "s1 done"
        assert state.transitions == [S.PENDING, S.RUNNING, S.SUSPENDED, S.RUNNING, S.COMPLETED]

    @pytest.mark.asyncio
    async def test_stages_run_in_template_order(self, registry_config):
        """Stages of the selected template run in order."""
        registry_config["default_template"] = "B"
        executor = make_executor(registry_config, all_echo("reasoner", "consensus"))
        state = await run_task(executor)
        assert names(state) == ["s2", "s3"]
        assert state.current_stage_index == 2

    @pytest.mark.asyncio
    async def test_outage_with_fallback_completes(self, registry_config):
        """An unavailable capability with a fallback completes on the fallback artifact."""
        registry_config["stages"]["s1-lite"] = {"kind": "semantic-context", "capability": "grep"}
        registry_config["stages"]["s1"]["fallback"] = "s1-lite"
        capabilities = {"semantic": Down(), "grep": FunctionCapability(echo)}
        state = await run_task(make_executor(registry_config, capabilities))

        assert state.status == S.COMPLETED
        assert names(state) == ["s1-lite"]
        assert state.artifacts[0].degraded

    @pytest.mark.asyncio
    async def test_outage_without_fallback_fails(self, registry_config):
        """Without a fallback the task fails with CapabilityUnavailable."""
        state = await run_task(make_executor(registry_config, {"semantic": Down()}))

        assert state.status == S.FAILED
        assert state.failure_reason == FailureReason.CAPABILITY_UNAVAILABLE
        assert state.artifacts[-1].failed
        assert "CapabilityUnavailable" in state.artifacts[-1].error
        assert state.transitions[-2:] == [S.SUSPENDED, S.FAILED]

    @pytest.mark.asyncio
    async def test_capability_error_fails(self, registry_config):
        """A capability-reported error is not recoverable."""

        def broken(stage, context):
            raise CapabilityError("quota exhausted")

        state = await run_task(make_executor(registry_config, {"semantic": FunctionCapability(broken)}))
        assert state.status == S.FAILED
        assert state.failure_reason == FailureReason.CAPABILITY_ERROR
        assert state.failure_detail == "quota exhausted"


class TestEscalation:
    """Tests for mid-flight escalation."""

    @pytest.mark.asyncio
    async def test_escalates_on_new_trigger(self, registry_config):
        """A stage surfacing a security signal splices the security template's new stages."""
        registry_config["triggers"] = [SECURITY_TRIGGER]
        capabilities = {
            "semantic": FunctionCapability(surfacing(severity=Severity.SECURITY)),
            "scanner": FunctionCapability(echo),
        }
        state = await run_task(make_executor(registry_config, capabilities))

        assert state.status == S.COMPLETED
        assert names(state) == ["s1", "scan"]
        assert state.escalation_count == 1
        assert state.template.id == "basic>secure"
        assert state.profile.severity == Severity.SECURITY
        assert S.ESCALATED in state.transitions

    @pytest.mark.asyncio
    async def test_splice_after_current_stage(self, registry_config):
        """Escalated stages run right after the stage that surfaced them."""
        registry_config["default_template"] = "A"
        registry_config["triggers"] = [SECURITY_TRIGGER]
        capabilities = {
            "semantic": FunctionCapability(surfacing(severity=Severity.SECURITY)),
            "reasoner": FunctionCapability(echo),
            "scanner": FunctionCapability(echo),
        }
        state = await run_task(make_executor(registry_config, capabilities))
        assert names(state) == ["s1", "scan", "s2"]

    @pytest.mark.asyncio
    async def test_already_matched_trigger_does_not_escalate(self, registry_config):
        """Re-surfacing a signal that selected the template changes nothing."""
        registry_config["triggers"] = [SECURITY_TRIGGER]
        capabilities = {
            "semantic": FunctionCapability(surfacing(severity=Severity.SECURITY)),
            "scanner": FunctionCapability(echo),
        }
        state = await run_task(make_executor(registry_config, capabilities), "Fix the XSS exploit")

        assert state.status == S.COMPLETED
        assert state.template.id == "secure"
        assert state.escalation_count == 0
        assert names(state) == ["s1", "scan"]

    @pytest.mark.asyncio
    async def test_no_new_stages_is_not_an_escalation(self, registry_config):
        """A newly matched template whose stages are already planned adds nothing."""
        registry_config["templates"].append({"id": "same", "domain": "ui", "stages": ["s1"]})
        registry_config["triggers"] = [
            {"domain": "ui", "priority": 1, "template": "same",
             "when": [{"signal": "domain_tags", "op": "contains", "value": "ui"}]},
        ]
        capabilities = {"semantic": FunctionCapability(surfacing(domain_tags=frozenset({"ui"})))}
        state = await run_task(make_executor(registry_config, capabilities))

        assert state.status == S.COMPLETED
        assert state.escalation_count == 0

    @pytest.mark.asyncio
    async def test_escalation_limit_exceeded(self, registry_config):
        """Escalation beyond max_escalations fails the task instead of looping."""
        registry_config["templates"][0]["max_escalations"] = 0
        registry_config["triggers"] = [SECURITY_TRIGGER]
        capabilities = {
            "semantic": FunctionCapability(surfacing(severity=Severity.SECURITY)),
            "scanner": FunctionCapability(echo),
        }
        state = await run_task(make_executor(registry_config, capabilities))

        assert state.status == S.FAILED
        assert state.failure_reason == FailureReason.ESCALATION_LIMIT_EXCEEDED
        assert state.escalation_count == 0
        assert names(state) == ["s1", "s1"]
        assert not state.artifacts[0].failed
        assert state.artifacts[1].failed

    @pytest.mark.asyncio
    async def test_escalation_is_bounded(self, registry_config):
        """The second warranted escalation fails once the budget of one is spent."""
        registry_config["default_template"] = "A"
        registry_config["stages"]["design"] = {"kind": "validation", "capability": "designer"}
        registry_config["stages"]["qa"] = {"kind": "validation", "capability": "tester"}
        registry_config["templates"] += [
            {"id": "ui", "domain": "ui", "stages": ["design"]},
            {"id": "qa", "domain": "testing", "stages": ["qa"]},
        ]
        registry_config["triggers"] = [
            {"domain": "ui", "priority": 5, "template": "ui",
             "when": [{"signal": "domain_tags", "op": "contains", "value": "ui"}]},
            {"domain": "testing", "priority": 5, "template": "qa",
             "when": [{"signal": "domain_tags", "op": "contains", "value": "testing"}]},
        ]
        capabilities = {
            "semantic": FunctionCapability(surfacing(domain_tags=frozenset({"ui"}))),
            "designer": FunctionCapability(echo),
            "reasoner": FunctionCapability(surfacing(domain_tags=frozenset({"testing"}))),
            "tester": FunctionCapability(echo),
        }
        state = await run_task(make_executor(registry_config, capabilities))

        assert state.status == S.FAILED
        assert state.failure_reason == FailureReason.ESCALATION_LIMIT_EXCEEDED
        assert state.escalation_count == 1
        assert state.escalation_count <= state.template.max_escalations
        assert names(state)[:3] == ["s1", "design", "s2"]


class TestAppendOnlyArtifacts:
    """Artifacts only ever grow."""

    @pytest.mark.asyncio
    async def test_context_snapshots_are_prefixes(self, registry_config):
        """Every stage sees a prefix of the final artifact list."""
        snapshots = []

        def recording(stage, context):
            snapshots.append(context.artifacts)
            return f"{stage.name} done"

        def escalating(stage, context):
            snapshots.append(context.artifacts)
            return CapabilityResponse(signals=SignalUpdate(severity=Severity.SECURITY))

        registry_config["default_template"] = "B"
        registry_config["triggers"] = [SECURITY_TRIGGER]
        capabilities = {
            "reasoner": FunctionCapability(escalating),
            "consensus": FunctionCapability(recording),
            "semantic": FunctionCapability(recording),
            "scanner": FunctionCapability(recording),
        }
        state = await run_task(make_executor(registry_config, capabilities))

        assert state.status == S.COMPLETED
        final = tuple(state.artifacts)
        assert len(snapshots) == len(final)
        for snapshot in snapshots:
            assert final[: len(snapshot)] == snapshot
        assert [len(s) for s in snapshots] == list(range(len(final)))


class TestCancellationAndTimeout:
    """Tests for cancellation and the global task timeout."""

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, registry_config):
        """A task cancelled while pending fails without running anything."""
        executor = make_executor(registry_config, all_echo("semantic"), is_cancelled=lambda: True)
        state = await run_task(executor)

        assert state.status == S.FAILED
        assert state.failure_reason == FailureReason.CANCELLED
        assert state.artifacts == []
        assert state.transitions == [S.PENDING, S.FAILED]

    @pytest.mark.asyncio
    async def test_cancel_discards_in_flight_result(self, registry_config):
        """Cancelling mid-stage lets the call finish but drops its result."""
        registry_config["default_template"] = "A"
        cancelled = {"flag": False}
        reasoner_calls = []

        def first(stage, context):
            cancelled["flag"] = True
            return "should be discarded"

        def second(stage, context):
            reasoner_calls.append(stage.name)
            return "never reached"

        capabilities = {
            "semantic": FunctionCapability(first),
            "reasoner": FunctionCapability(second),
        }
        executor = make_executor(
            registry_config, capabilities, is_cancelled=lambda: cancelled["flag"]
        )
        state = await run_task(executor)

        assert state.status == S.FAILED
        assert state.failure_reason == FailureReason.CANCELLED
        assert all(a.output != "should be discarded" for a in state.artifacts)
        assert reasoner_calls == []

    @pytest.mark.asyncio
    async def test_cancel_stops_retry_and_fallback(self, registry_config):
        """A cancel during a failing call starts neither the retry nor the fallback."""
        registry_config["stages"]["s1-lite"] = {"kind": "semantic-context", "capability": "grep"}
        registry_config["stages"]["s1"]["fallback"] = "s1-lite"
        cancelled = {"flag": False}
        calls = []

        def failing(stage, context):
            calls.append(stage.capability)
            cancelled["flag"] = True
            raise CapabilityUnavailableError("down")

        def lite(stage, context):
            calls.append(stage.capability)
            return "lite"

        capabilities = {
            "semantic": FunctionCapability(failing),
            "grep": FunctionCapability(lite),
        }
        executor = make_executor(
            registry_config, capabilities, is_cancelled=lambda: cancelled["flag"]
        )
        state = await run_task(executor)

        assert calls == ["semantic"]
        assert state.status == S.FAILED
        assert state.failure_reason == FailureReason.CANCELLED
        assert state.artifacts[-1].failed
        assert state.artifacts[-1].stage.name == "s1"

    @pytest.mark.asyncio
    async def test_task_timeout(self, registry_config):
        """The global deadline fails the task independent of stage timeouts."""

        async def slow(stage, context):
            await asyncio.sleep(1.0)
            return "late"

        executor = make_executor(
            registry_config, {"semantic": FunctionCapability(slow)}, task_timeout=0.05
        )
        state = await run_task(executor)

        assert state.status == S.FAILED
        assert state.failure_reason == FailureReason.TASK_TIMEOUT


class TestStateMachine:
    """Tests for transition()."""

    @pytest.mark.asyncio
    async def test_terminal_states_are_final(self, registry_config):
        """Nothing leaves Completed."""
        state = await run_task(make_executor(registry_config, all_echo("semantic")))
        with pytest.raises(InvalidTransition):
            transition(state, S.RUNNING)

    def test_pending_cannot_suspend(self, registry_config):
        """Suspension only happens while running."""
        executor = make_executor(registry_config, all_echo("semantic"))
        state = executor.prepare(TaskDescription(text=""))
        with pytest.raises(InvalidTransition, match="pending -> suspended"):
            transition(state, S.SUSPENDED)
