"""Pipeline executor: runs a WorkflowTemplate as a finite state machine."""

import asyncio
import logging
from typing import Callable, Optional

from pydantic import BaseModel

from escalator.capabilities.base import CapabilityError
from escalator.config import ExecutionStatus, FailureReason
from escalator.executor.resilience import (
    CapabilityUnavailable,
    ResilienceManager,
    StageCancelled,
)
from escalator.executor.selector import select
from escalator.schemas import (
    ComplexityProfile,
    ExecutionResult,
    ExecutionState,
    ResultArtifact,
    StageContext,
    TaskDescription,
    WorkflowTemplate,
)
from escalator.signals.extractor import SignalExtractor
from escalator.triggers.evaluator import evaluate
from escalator.triggers.predicates import Trigger
from escalator.triggers.registry import Registry

logger = logging.getLogger(__name__)

_ALLOWED_TRANSITIONS: dict[ExecutionStatus, frozenset[ExecutionStatus]] = {
    ExecutionStatus.PENDING: frozenset({ExecutionStatus.RUNNING, ExecutionStatus.FAILED}),
    ExecutionStatus.RUNNING: frozenset(
        {
            ExecutionStatus.SUSPENDED,
            ExecutionStatus.ESCALATED,
            ExecutionStatus.COMPLETED,
            ExecutionStatus.FAILED,
        }
    ),
    ExecutionStatus.SUSPENDED: frozenset({ExecutionStatus.RUNNING, ExecutionStatus.FAILED}),
    ExecutionStatus.ESCALATED: frozenset({ExecutionStatus.RUNNING}),
    ExecutionStatus.COMPLETED: frozenset(),
    ExecutionStatus.FAILED: frozenset(),
}


class InvalidTransition(RuntimeError):
    """Executor attempted a state change outside the state machine."""

    pass


class EscalationLimitExceeded(Exception):
    """Escalation was warranted but max_escalations was already reached."""

    reason = FailureReason.ESCALATION_LIMIT_EXCEEDED


class Plan(BaseModel):
    """Outcome of the selection phase, before any stage runs."""

    profile: ComplexityProfile
    matched: tuple[Trigger, ...]
    template: WorkflowTemplate


def transition(state: ExecutionState, status: ExecutionStatus) -> None:
    """Move state to status, enforcing the executor state machine."""
    if status not in _ALLOWED_TRANSITIONS[state.status]:
        raise InvalidTransition(f"{state.status.value} -> {status.value}")
    state.status = status
    state.transitions.append(status)


def build_result(state: ExecutionState, observability: bool = False) -> ExecutionResult:
    """Snapshot a terminal ExecutionState into the caller-facing result."""
    return ExecutionResult(
        status=state.status,
        failure_reason=state.failure_reason,
        failure_detail=state.failure_detail,
        artifacts=list(state.artifacts),
        escalation_count=state.escalation_count,
        template_id=state.template.id,
        profile=state.profile if observability else None,
        transitions=list(state.transitions) if observability else None,
    )


class PipelineExecutor:
    """Run one task's stages in order, escalating when new complexity surfaces.

    One executor owns one ExecutionState. Stages run strictly sequentially;
    the only await points are capability calls, during which the state is
    Suspended. After every stage the profile is re-derived from the stage's
    surfaced signals and the triggers are re-evaluated. Triggers that were not
    matched before may splice extra stages after the current one, at most
    template.max_escalations times.
    """

    def __init__(
        self,
        registry: Registry,
        resilience: ResilienceManager,
        extractor: SignalExtractor,
        task_timeout: Optional[float] = None,
        is_cancelled: Callable[[], bool] = lambda: False,
    ):
        """Initialize the executor.

        Args:
            registry: Registry snapshot this task runs against
            resilience: Wrapper for stage invocations
            extractor: Signal extractor used for initial and re-derived profiles
            task_timeout: Global deadline in seconds for the whole task
            is_cancelled: Polled at every suspension boundary
        """
        self._registry = registry
        self._resilience = resilience
        self._extractor = extractor
        self._task_timeout = task_timeout
        self._is_cancelled = is_cancelled
        self._seen: set[tuple[str, str]] = set()

    def plan(self, task: TaskDescription) -> Plan:
        """Extract signals, match triggers and select the initial template."""
        profile = self._extractor.extract(task)
        matched = evaluate(self._registry, profile)
        template = select(matched, self._registry)
        logger.info(
            f"Selected template '{template.id}' "
            f"(matched: {', '.join(t.domain for t in matched) or 'none'})"
        )
        return Plan(profile=profile, matched=matched, template=template)

    def prepare(self, task: TaskDescription) -> ExecutionState:
        """Create the Pending state for a task."""
        plan = self.plan(task)
        return ExecutionState(task=task, profile=plan.profile, template=plan.template)

    async def run(self, state: ExecutionState) -> ExecutionState:
        """Drive a Pending state to Completed or Failed.

        Never raises for per-task failures; the reason is recorded on the
        state and in a final failure artifact.
        """
        if self._is_cancelled():
            self._fail(state, FailureReason.CANCELLED, "Cancelled before start")
            return state

        transition(state, ExecutionStatus.RUNNING)
        self._seen = {trigger.key for trigger in evaluate(self._registry, state.profile)}

        try:
            if self._task_timeout is None:
                await self._run_stages(state)
            else:
                await asyncio.wait_for(self._run_stages(state), timeout=self._task_timeout)
        except asyncio.TimeoutError:
            self._fail(
                state,
                FailureReason.TASK_TIMEOUT,
                f"Task exceeded {self._task_timeout}s",
            )
        return state

    async def _run_stages(self, state: ExecutionState) -> None:
        while state.current_stage_index < len(state.template.stages):
            if self._is_cancelled():
                self._fail(state, FailureReason.CANCELLED, "Cancelled by caller")
                return

            stage = state.template.stages[state.current_stage_index]
            context = StageContext(
                task=state.task,
                profile=state.profile,
                artifacts=tuple(state.artifacts),
                stage_index=state.current_stage_index,
            )

            transition(state, ExecutionStatus.SUSPENDED)
            try:
                artifact = await self._resilience.run(stage, context, self._is_cancelled)
            except (CapabilityUnavailable, StageCancelled) as e:
                self._fail(state, e.reason, str(e))
                return
            except CapabilityError as e:
                self._fail(state, FailureReason.CAPABILITY_ERROR, e.detail)
                return

            if self._is_cancelled():
                # In-flight result is discarded
                self._fail(state, FailureReason.CANCELLED, "Cancelled by caller")
                return

            transition(state, ExecutionStatus.RUNNING)
            state.artifacts.append(artifact)

            try:
                self._maybe_escalate(state, artifact)
            except EscalationLimitExceeded as e:
                self._fail(state, e.reason, str(e))
                return

            state.current_stage_index += 1

        transition(state, ExecutionStatus.COMPLETED)
        logger.info(
            f"Completed '{state.template.id}': {len(state.artifacts)} stages, "
            f"{state.escalation_count} escalations"
        )

    def _maybe_escalate(self, state: ExecutionState, artifact: ResultArtifact) -> None:
        """Splice stages from newly matched triggers after the current stage."""
        profile = self._extractor.rederive(state.profile, artifact.signals)
        if profile == state.profile:
            return
        state.profile = profile

        fresh = [t for t in evaluate(self._registry, profile) if t.key not in self._seen]
        if not fresh:
            return
        self._seen.update(t.key for t in fresh)

        candidate = select(fresh, self._registry)
        planned = {stage.identity for stage in state.template.stages}
        additions = tuple(s for s in candidate.stages if s.identity not in planned)
        if not additions:
            logger.debug(f"Template '{candidate.id}' adds no new stages; not escalating")
            return

        if state.escalation_count >= state.template.max_escalations:
            raise EscalationLimitExceeded(
                f"Escalation to '{candidate.id}' warranted but max_escalations="
                f"{state.template.max_escalations} already reached"
            )

        transition(state, ExecutionStatus.ESCALATED)
        split = state.current_stage_index + 1
        stages = state.template.stages[:split] + additions + state.template.stages[split:]
        state.template = state.template.model_copy(
            update={"id": f"{state.template.id}>{candidate.id}", "stages": stages}
        )
        state.escalation_count += 1
        logger.info(
            f"Escalated to '{candidate.id}' after stage {state.current_stage_index}: "
            f"+{len(additions)} stages ({state.escalation_count}/{state.template.max_escalations})"
        )
        transition(state, ExecutionStatus.RUNNING)

    def _fail(self, state: ExecutionState, reason: FailureReason, detail: str) -> None:
        """Mark the task Failed and record the reason as the final artifact."""
        if state.status != ExecutionStatus.PENDING:
            index = min(state.current_stage_index, len(state.template.stages) - 1)
            state.artifacts.append(
                ResultArtifact(
                    stage=state.template.stages[index],
                    error=f"{reason.value}: {detail}",
                )
            )
        state.failure_reason = reason
        state.failure_detail = detail
        transition(state, ExecutionStatus.FAILED)
        logger.warning(f"Task failed ({reason.value}): {detail}")
