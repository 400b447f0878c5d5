"""Escalator public adapter."""

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Callable, Optional, Union

from escalator.config import Capability, EngineConfig
from escalator.executor.pipeline import Plan, PipelineExecutor, build_result
from escalator.executor.pool import TaskHandle, WorkerPool
from escalator.executor.resilience import ResilienceManager
from escalator.schemas import ExecutionResult, TaskDescription
from escalator.signals.extractor import SignalExtractor
from escalator.triggers.defaults import DEFAULT_REGISTRY_CONFIG
from escalator.triggers.registry import ConfigSource, Registry, load

logger = logging.getLogger(__name__)


class Escalator:
    """Public interface to Escalator.

    Usage:
        from escalator import Escalator, EngineConfig
        from escalator.capabilities import HttpCapability

        engine = Escalator(
            config=EngineConfig(registry_path="triggers.json"),
            capabilities={"deep-reasoning": HttpCapability("http://reasoner/invoke")},
        )

        result = await engine.run("Refactor auth, then migrate the database")
        print(result.status, result.template_id)

    For many tasks at once, use the engine as an async context manager and
    submit() tasks to the worker pool.
    """

    def __init__(
        self,
        config: EngineConfig,
        capabilities: Mapping[str, Capability],
        registry: Optional[Registry] = None,
    ):
        """Initialize the engine.

        Args:
            config: EngineConfig with pool, retry and timeout settings
            capabilities: Capability name -> provider, as referenced by stages
            registry: Preloaded registry; otherwise loaded from
                config.registry_path, or the built-in defaults

        Raises:
            ConfigError: If the registry fails validation
        """
        self._config = config
        self._extractor = SignalExtractor()
        self._resilience = ResilienceManager(
            capabilities=dict(capabilities),
            base_delay=config.retry_base_delay,
        )
        if registry is None:
            registry = load(config.registry_path or DEFAULT_REGISTRY_CONFIG)
        self._registry = registry
        self._pool = WorkerPool(config.worker_pool_size)

    @property
    def registry(self) -> Registry:
        return self._registry

    def reload(self, source: Union[Mapping[str, Any], str, Path, ConfigSource]) -> Registry:
        """Load a new registry and swap it in.

        Tasks already submitted keep the registry they started with. If the
        new source fails validation, ConfigError propagates and the current
        registry stays in place.
        """
        registry = load(source)
        self._registry = registry
        logger.info("Registry reloaded")
        return registry

    def plan(self, text: str, hints: Optional[dict[str, str]] = None) -> Plan:
        """Dry run: profile, matched triggers and selected template, no stages executed."""
        task = TaskDescription(text=text, hints=hints or {})
        return self._executor(self._registry).plan(task)

    async def run(
        self,
        text: str,
        hints: Optional[dict[str, str]] = None,
    ) -> ExecutionResult:
        """Run one task to completion in the current event loop.

        Args:
            text: Raw task description
            hints: Optional caller hints (e.g. {"environment": "production"})

        Returns:
            ExecutionResult with status, failure reason and ordered artifacts
        """
        task = TaskDescription(text=text, hints=hints or {})
        return await self._execute(task, self._registry)

    def run_sync(
        self,
        text: str,
        hints: Optional[dict[str, str]] = None,
    ) -> ExecutionResult:
        """Synchronous wrapper for run()."""
        return asyncio.run(self.run(text, hints))

    async def start(self) -> None:
        self._pool.start()

    async def stop(self) -> None:
        await self._pool.shutdown()

    async def __aenter__(self) -> "Escalator":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    def submit(self, text: str, hints: Optional[dict[str, str]] = None) -> TaskHandle:
        """Queue a task on the worker pool.

        Returns:
            TaskHandle; await handle.result() or call handle.cancel()

        Raises:
            RuntimeError: If the engine has not been started
        """
        task = TaskDescription(text=text, hints=hints or {})
        registry = self._registry

        async def job(handle: TaskHandle) -> ExecutionResult:
            return await self._execute(
                handle.task,
                registry,
                is_cancelled=lambda: handle.cancel_requested,
            )

        return self._pool.submit(task, job)

    def _executor(
        self,
        registry: Registry,
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> PipelineExecutor:
        return PipelineExecutor(
            registry=registry,
            resilience=self._resilience,
            extractor=self._extractor,
            task_timeout=self._config.task_timeout,
            is_cancelled=is_cancelled,
        )

    async def _execute(
        self,
        task: TaskDescription,
        registry: Registry,
        is_cancelled: Callable[[], bool] = lambda: False,
    ) -> ExecutionResult:
        executor = self._executor(registry, is_cancelled)
        state = executor.prepare(task)
        state = await executor.run(state)
        return build_result(state, observability=self._config.observability)
