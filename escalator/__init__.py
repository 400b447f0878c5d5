"""Escalator: complexity-triggered workflow orchestration.

Public exports:
- Escalator: The public interface for planning and running tasks
- EngineConfig: Configuration for the engine
- ExecutionResult: Result type returned by Escalator.run()
- ConfigError: Raised when a trigger registry fails validation
"""

from escalator.config import EngineConfig
from escalator.engine import Escalator
from escalator.schemas import ExecutionResult
from escalator.triggers.registry import ConfigError

__all__ = ["ConfigError", "EngineConfig", "Escalator", "ExecutionResult"]
