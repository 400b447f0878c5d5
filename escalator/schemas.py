"""Data structures for Escalator."""

from typing import Iterator, Optional

from pydantic import BaseModel, ConfigDict, Field

from escalator.config import (
    TERMINAL_STATUSES,
    ExecutionStatus,
    FailureReason,
    Severity,
    StageKind,
)


class TaskDescription(BaseModel):
    """Raw task text plus caller-supplied hints (e.g. environment=production)."""

    model_config = ConfigDict(frozen=True)

    text: str = ""
    hints: dict[str, str] = Field(default_factory=dict)


class ComplexityProfile(BaseModel):
    """Countable complexity signals derived from a task."""

    model_config = ConfigDict(frozen=True)

    step_count: int = Field(default=0, ge=0)
    decision_points: int = Field(default=0, ge=0)
    affected_systems: int = Field(default=0, ge=0)
    is_production: bool = False
    domain_tags: frozenset[str] = frozenset()
    severity: Severity = Severity.NORMAL


class SignalUpdate(BaseModel):
    """Signals a stage surfaced about the task; None means no new information."""

    model_config = ConfigDict(frozen=True)

    step_count: Optional[int] = Field(default=None, ge=0)
    decision_points: Optional[int] = Field(default=None, ge=0)
    affected_systems: Optional[int] = Field(default=None, ge=0)
    is_production: Optional[bool] = None
    domain_tags: frozenset[str] = frozenset()
    severity: Optional[Severity] = None

    def is_empty(self) -> bool:
        return self == SignalUpdate()


class StageSpec(BaseModel):
    """One unit of pipeline work bound to a single capability."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: StageKind
    capability: str = Field(min_length=1)
    timeout: float = Field(default=30.0, gt=0.0, description="Seconds per capability call")
    fallback: Optional["StageSpec"] = None

    @property
    def identity(self) -> tuple[StageKind, str]:
        """Deduplication key: two stages are the same work if kind and capability match."""
        return (self.kind, self.capability)

    def fallback_chain(self) -> Iterator["StageSpec"]:
        """Yield the fallbacks of this stage, nearest first."""
        current = self.fallback
        while current is not None:
            yield current
            current = current.fallback


class WorkflowTemplate(BaseModel):
    """Ordered, reusable list of stages associated with a domain."""

    model_config = ConfigDict(frozen=True)

    id: str
    domain: str
    stages: tuple[StageSpec, ...] = Field(min_length=1)
    max_escalations: int = Field(default=0, ge=0)


class CapabilityResponse(BaseModel):
    """What a capability returns for one stage."""

    output: str = ""
    signals: SignalUpdate = Field(default_factory=SignalUpdate)


class ResultArtifact(BaseModel):
    """Immutable output of one stage."""

    model_config = ConfigDict(frozen=True)

    stage: StageSpec
    output: str = ""
    signals: SignalUpdate = Field(default_factory=SignalUpdate)
    degraded: bool = Field(
        default=False,
        description="True if the output came from a fallback stage",
    )
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class StageContext(BaseModel):
    """Input handed to a capability alongside the stage."""

    model_config = ConfigDict(frozen=True)

    task: TaskDescription
    profile: ComplexityProfile
    artifacts: tuple[ResultArtifact, ...] = ()
    stage_index: int = 0


class ExecutionState(BaseModel):
    """Mutable per-task state owned by exactly one PipelineExecutor."""

    task: TaskDescription
    profile: ComplexityProfile
    template: WorkflowTemplate
    current_stage_index: int = 0
    status: ExecutionStatus = ExecutionStatus.PENDING
    artifacts: list[ResultArtifact] = Field(default_factory=list)
    escalation_count: int = 0
    failure_reason: Optional[FailureReason] = None
    failure_detail: Optional[str] = None
    transitions: list[ExecutionStatus] = Field(
        default_factory=lambda: [ExecutionStatus.PENDING]
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ExecutionResult(BaseModel):
    """Result delivered to the caller once a task is terminal."""

    status: ExecutionStatus
    failure_reason: Optional[FailureReason] = None
    failure_detail: Optional[str] = None
    artifacts: list[ResultArtifact]
    escalation_count: int
    template_id: str
    profile: Optional[ComplexityProfile] = None
    transitions: Optional[list[ExecutionStatus]] = None

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.COMPLETED
