"""Engine configuration and enums."""

import os
from enum import Enum
from typing import TYPE_CHECKING, Optional, Protocol

from pydantic import BaseModel, Field, model_validator

if TYPE_CHECKING:
    from escalator.schemas import CapabilityResponse, StageContext, StageSpec


class Severity(str, Enum):
    """Severity flag surfaced by signal extraction."""

    NORMAL = "normal"
    SECURITY = "security"
    PERFORMANCE = "performance"


class StageKind(str, Enum):
    """Kind of analysis a pipeline stage performs."""

    SEMANTIC_CONTEXT = "semantic-context"
    REASONING = "reasoning"
    VALIDATION = "validation"
    CONSENSUS = "consensus"


class ExecutionStatus(str, Enum):
    """Pipeline executor state."""

    PENDING = "pending"
    RUNNING = "running"
    SUSPENDED = "suspended"
    ESCALATED = "escalated"
    COMPLETED = "completed"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Reason recorded on a failed task."""

    CONFIG_ERROR = "ConfigError"
    NO_DEFAULT_TEMPLATE = "NoDefaultTemplate"
    CAPABILITY_UNAVAILABLE = "CapabilityUnavailable"
    STAGE_TIMEOUT = "StageTimeout"
    CAPABILITY_ERROR = "CapabilityError"
    ESCALATION_LIMIT_EXCEEDED = "EscalationLimitExceeded"
    TASK_TIMEOUT = "TaskTimeout"
    CANCELLED = "Cancelled"


TERMINAL_STATUSES = frozenset({ExecutionStatus.COMPLETED, ExecutionStatus.FAILED})


class Capability(Protocol):
    """Protocol for external analysis providers.

    Semantic context, reasoning and consensus providers all implement this
    one interface; the executor never inspects what happens behind it.

    Implementations must raise:
    - CapabilityTimeout when the provider did not answer in time
    - CapabilityUnavailableError when the provider cannot be reached
    - CapabilityError for any other provider-reported failure
    """

    async def invoke(
        self,
        stage: "StageSpec",
        context: "StageContext",
        timeout: float,
    ) -> "CapabilityResponse":
        """Run one stage against the provider.

        Args:
            stage: The stage being executed
            context: Task, current profile and prior artifacts
            timeout: Seconds the provider has to answer

        Returns:
            CapabilityResponse with output text and any surfaced signals
        """
        ...


class EngineConfig(BaseModel):
    """Configuration for the Escalator engine."""

    worker_pool_size: int = Field(
        default=4,
        ge=1,
        description="Number of tasks executed concurrently by the worker pool",
    )
    retry_base_delay: float = Field(
        default=0.5,
        ge=0.0,
        description="Base delay in seconds for the single retry after a capability failure",
    )
    task_timeout: float = Field(
        default=300.0,
        gt=0.0,
        description="Global per-task deadline in seconds, independent of stage timeouts",
    )
    registry_path: Optional[str] = Field(
        default=None,
        description="JSON trigger/template table; built-in defaults are used when unset",
    )
    capability_api_key: Optional[str] = None
    observability: bool = False

    @model_validator(mode="after")
    def resolve_registry_path(self) -> "EngineConfig":
        """Resolve registry path from explicit value or ESCALATOR_REGISTRY environment variable."""
        if self.registry_path and self.registry_path.strip():
            return self
        env_path = os.environ.get("ESCALATOR_REGISTRY")
        if env_path and env_path.strip():
            object.__setattr__(self, "registry_path", env_path)
        return self

    @model_validator(mode="after")
    def resolve_api_key(self) -> "EngineConfig":
        """Resolve capability API key from explicit value or ESCALATOR_CAPABILITY_KEY."""
        if self.capability_api_key and self.capability_api_key.strip():
            return self
        env_key = os.environ.get("ESCALATOR_CAPABILITY_KEY")
        if env_key and env_key.strip():
            object.__setattr__(self, "capability_api_key", env_key)
        return self
