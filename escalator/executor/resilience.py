"""Resilience wrapper around a single stage invocation."""

import asyncio
import logging
from collections.abc import Mapping
from typing import Awaitable, Callable, Optional

from escalator.capabilities.base import CapabilityTimeout, CapabilityUnavailableError
from escalator.config import Capability, FailureReason
from escalator.schemas import CapabilityResponse, ResultArtifact, StageContext, StageSpec

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 2  # first call plus exactly one retry


class CapabilityUnavailable(Exception):
    """Stage capability unreachable after retry, and no fallback was configured."""

    reason = FailureReason.CAPABILITY_UNAVAILABLE

    def __init__(self, message: str, stage: StageSpec):
        super().__init__(message)
        self.stage = stage


class StageTimeout(CapabilityUnavailable):
    """Same as CapabilityUnavailable, but the last attempt timed out."""

    reason = FailureReason.STAGE_TIMEOUT


class StageCancelled(Exception):
    """Caller cancelled the task while the stage was retrying or falling back."""

    reason = FailureReason.CANCELLED


class ResilienceManager:
    """Run one stage with timeout, one retry and fallback.

    Timeouts and unavailability are retried once after an exponential
    backoff delay. A second failure switches to the stage's fallback, which
    is itself run resiliently; without a fallback the failure propagates.
    CapabilityError is never retried. Once is_cancelled() reports true no
    further call is started: neither the retry nor the fallback.
    """

    def __init__(
        self,
        capabilities: Mapping[str, Capability],
        base_delay: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize the resilience manager.

        Args:
            capabilities: Capability name -> provider
            base_delay: Seconds before the retry (doubles per attempt)
            sleep: Awaitable sleep, replaceable in tests
        """
        self._capabilities = capabilities
        self._base_delay = base_delay
        self._sleep = sleep

    async def run(
        self,
        stage: StageSpec,
        context: StageContext,
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> ResultArtifact:
        """Execute a stage and return its artifact.

        Raises:
            StageCancelled: Cancelled after a failed call, before the next one
            CapabilityUnavailable: Retry exhausted and no fallback
            StageTimeout: As above, last failure was a timeout
            CapabilityError: Provider reported a non-recoverable error
        """
        return await self._run(stage, context, is_cancelled, degraded=False)

    async def _run(
        self,
        stage: StageSpec,
        context: StageContext,
        is_cancelled: Callable[[], bool],
        degraded: bool,
    ) -> ResultArtifact:
        last_error: Optional[Exception] = None

        for attempt in range(MAX_ATTEMPTS):
            if last_error is not None and is_cancelled():
                raise StageCancelled(f"Cancelled before retrying '{stage.name}'") from last_error
            try:
                response = await self._invoke(stage, context)
            except (CapabilityTimeout, CapabilityUnavailableError) as e:
                last_error = e
                if attempt + 1 < MAX_ATTEMPTS and not is_cancelled():
                    delay = self._base_delay * (2**attempt)
                    logger.warning(
                        f"Stage '{stage.name}' ({stage.capability}) failed: {e}. "
                        f"Retrying in {delay:.2f}s."
                    )
                    await self._sleep(delay)
                continue

            return ResultArtifact(
                stage=stage,
                output=response.output,
                signals=response.signals,
                degraded=degraded,
            )

        if is_cancelled():
            raise StageCancelled(f"Cancelled after '{stage.name}' failed: {last_error}") from last_error

        if stage.fallback is not None:
            logger.warning(
                f"Stage '{stage.name}' unavailable after retry: {last_error}. "
                f"Falling back to '{stage.fallback.name}' ({stage.fallback.capability})."
            )
            return await self._run(stage.fallback, context, is_cancelled, degraded=True)

        message = f"Stage '{stage.name}' ({stage.capability}) unavailable after retry: {last_error}"
        if isinstance(last_error, CapabilityTimeout):
            raise StageTimeout(message, stage) from last_error
        raise CapabilityUnavailable(message, stage) from last_error

    async def _invoke(self, stage: StageSpec, context: StageContext) -> CapabilityResponse:
        capability = self._capabilities.get(stage.capability)
        if capability is None:
            raise CapabilityUnavailableError(
                f"No capability registered as '{stage.capability}'"
            )
        try:
            return await asyncio.wait_for(
                capability.invoke(stage, context, stage.timeout),
                timeout=stage.timeout,
            )
        except asyncio.TimeoutError as e:
            raise CapabilityTimeout(
                f"{stage.capability} did not answer within {stage.timeout}s"
            ) from e
