"""Errors shared by capability implementations, plus the in-process adapter."""

import inspect
from typing import Any, Awaitable, Callable, Union

from escalator.schemas import CapabilityResponse, StageContext, StageSpec


class CapabilityTimeout(Exception):
    """Capability did not answer within the stage timeout."""

    pass


class CapabilityUnavailableError(Exception):
    """Capability could not be reached or reported itself unavailable."""

    pass


class CapabilityError(Exception):
    """Capability-reported failure that retrying will not fix."""

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


StageHandler = Callable[
    [StageSpec, StageContext],
    Union[Awaitable[Union[CapabilityResponse, str]], CapabilityResponse, str],
]


class FunctionCapability:
    """Capability backed by a Python callable.

    Useful for in-process providers (a project-memory key/value store, a
    local heuristic validator) and for tests. The callable may be sync or
    async and may return a CapabilityResponse or plain output text.
    """

    def __init__(self, handler: StageHandler):
        self._handler = handler

    async def invoke(
        self,
        stage: StageSpec,
        context: StageContext,
        timeout: float,
    ) -> CapabilityResponse:
        result: Any = self._handler(stage, context)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, CapabilityResponse):
            return result
        if isinstance(result, str):
            return CapabilityResponse(output=result)
        raise CapabilityError(
            f"Handler for stage '{stage.name}' returned {type(result).__name__}, "
            "expected CapabilityResponse or str"
        )
