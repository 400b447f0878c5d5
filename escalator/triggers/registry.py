"""Trigger registry: loaded once, validated, then read-only."""

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from types import MappingProxyType
from typing import Any, Optional, Protocol, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from escalator.config import FailureReason, StageKind
from escalator.schemas import StageSpec, WorkflowTemplate
from escalator.triggers.predicates import Trigger

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Registry failed validation at load."""

    reason = FailureReason.CONFIG_ERROR


class NoDefaultTemplate(ConfigError):
    """Registry lacks the mandatory default template."""

    reason = FailureReason.NO_DEFAULT_TEMPLATE


class ConfigSource(Protocol):
    """Anything that can supply the declarative trigger/template table."""

    def read(self) -> Mapping[str, Any]:
        ...


class JsonFileSource:
    """Configuration source backed by a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def read(self) -> Mapping[str, Any]:
        try:
            with self.path.open(encoding="utf-8") as f:
                return json.load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read registry file {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Registry file {self.path} is not valid JSON: {e}") from e


class _StageConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: StageKind
    capability: str = Field(min_length=1)
    timeout: float = Field(default=30.0, gt=0.0)
    fallback: Optional[str] = None


class _TemplateConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    domain: str
    stages: list[str]
    max_escalations: int = Field(default=0, ge=0)


class _RegistryConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    default_template: Optional[str] = None
    stages: dict[str, _StageConfig]
    templates: list[_TemplateConfig]
    triggers: list[Trigger] = Field(default_factory=list)


class Registry:
    """Immutable table of triggers and workflow templates.

    Shared read-only by every in-flight execution. To change it, load a new
    Registry and swap the reference; never mutate one in place.
    """

    def __init__(
        self,
        templates: Mapping[str, WorkflowTemplate],
        triggers: tuple[Trigger, ...],
        default_template_id: str,
    ):
        if default_template_id not in templates:
            raise NoDefaultTemplate(
                f"Default template '{default_template_id}' is not defined"
            )
        self._templates = MappingProxyType(dict(templates))
        self._triggers = tuple(triggers)
        self._default_template_id = default_template_id

    @property
    def templates(self) -> Mapping[str, WorkflowTemplate]:
        return self._templates

    @property
    def triggers(self) -> tuple[Trigger, ...]:
        return self._triggers

    @property
    def default_template(self) -> WorkflowTemplate:
        return self._templates[self._default_template_id]

    def template(self, template_id: str) -> WorkflowTemplate:
        return self._templates[template_id]


def _read_source(source: Union[Mapping[str, Any], str, Path, ConfigSource]) -> Mapping[str, Any]:
    if isinstance(source, Mapping):
        return source
    if isinstance(source, (str, Path)):
        source = JsonFileSource(source)
    data = source.read()
    if not isinstance(data, Mapping):
        raise ConfigError(f"Registry source must produce a mapping, got {type(data).__name__}")
    return data


def _check_fallbacks(stages: Mapping[str, _StageConfig]) -> None:
    """Raise ConfigError on unknown fallbacks, fallback cycles or repeated capabilities."""
    for name, stage in stages.items():
        path = [name]
        capabilities = {stage.capability}
        current = stage
        while current.fallback is not None:
            target = current.fallback
            if target not in stages:
                raise ConfigError(
                    f"Stage '{path[-1]}' falls back to unknown stage '{target}'"
                )
            if target in path:
                cycle = " -> ".join(path + [target])
                raise ConfigError(f"Fallback cycle detected: {cycle}")
            current = stages[target]
            if current.capability in capabilities:
                raise ConfigError(
                    f"Fallback chain of stage '{name}' requires capability "
                    f"'{current.capability}' more than once"
                )
            capabilities.add(current.capability)
            path.append(target)


def _build_stages(stages: Mapping[str, _StageConfig]) -> dict[str, StageSpec]:
    """Resolve fallback names into nested StageSpecs (chains are acyclic by now)."""
    built: dict[str, StageSpec] = {}

    def build(name: str) -> StageSpec:
        if name not in built:
            config = stages[name]
            fallback = build(config.fallback) if config.fallback else None
            built[name] = StageSpec(
                name=name,
                kind=config.kind,
                capability=config.capability,
                timeout=config.timeout,
                fallback=fallback,
            )
        return built[name]

    for name in stages:
        build(name)
    return built


def load(source: Union[Mapping[str, Any], str, Path, ConfigSource]) -> Registry:
    """Load and validate a Registry from a declarative configuration source.

    Args:
        source: A mapping, a path to a JSON file, or an object with read()

    Returns:
        A validated, immutable Registry

    Raises:
        ConfigError: If the table is malformed, references unknown templates
            or stages, has an empty template, or contains a fallback cycle
        NoDefaultTemplate: If the default template is missing
    """
    data = _read_source(source)

    try:
        config = _RegistryConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid registry configuration: {e}") from e

    _check_fallbacks(config.stages)
    stages = _build_stages(config.stages)

    templates: dict[str, WorkflowTemplate] = {}
    for entry in config.templates:
        if entry.id in templates:
            raise ConfigError(f"Duplicate template id '{entry.id}'")
        if not entry.stages:
            raise ConfigError(f"Template '{entry.id}' has no stages")
        unknown = [name for name in entry.stages if name not in stages]
        if unknown:
            raise ConfigError(
                f"Template '{entry.id}' references unknown stages: {', '.join(unknown)}"
            )
        templates[entry.id] = WorkflowTemplate(
            id=entry.id,
            domain=entry.domain,
            stages=tuple(stages[name] for name in entry.stages),
            max_escalations=entry.max_escalations,
        )

    if not config.default_template:
        raise NoDefaultTemplate("Registry does not designate a default_template")
    if config.default_template not in templates:
        raise NoDefaultTemplate(
            f"Default template '{config.default_template}' is not defined"
        )

    trigger_keys: set[tuple[str, str]] = set()
    for trigger in config.triggers:
        if trigger.template_ref not in templates:
            raise ConfigError(
                f"Trigger '{trigger.domain}' references unknown template '{trigger.template_ref}'"
            )
        if trigger.key in trigger_keys:
            raise ConfigError(
                f"Duplicate trigger for domain '{trigger.domain}' and template '{trigger.template_ref}'"
            )
        trigger_keys.add(trigger.key)

    logger.info(
        f"Loaded registry: {len(templates)} templates, {len(config.triggers)} triggers, "
        f"default={config.default_template}"
    )
    return Registry(
        templates=templates,
        triggers=tuple(config.triggers),
        default_template_id=config.default_template,
    )
