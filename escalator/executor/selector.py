"""Workflow selection from matched triggers."""

import logging
from typing import Iterable, Sequence

from escalator.schemas import StageSpec, WorkflowTemplate
from escalator.triggers.predicates import Trigger
from escalator.triggers.registry import Registry

logger = logging.getLogger(__name__)


def merge_stages(*stage_lists: Iterable[StageSpec]) -> tuple[StageSpec, ...]:
    """Union stage lists in first-occurrence order, dropping same kind + capability repeats."""
    seen: set = set()
    merged: list[StageSpec] = []
    for stages in stage_lists:
        for stage in stages:
            if stage.identity in seen:
                continue
            seen.add(stage.identity)
            merged.append(stage)
    return tuple(merged)


def select(matched: Sequence[Trigger], registry: Registry) -> WorkflowTemplate:
    """Resolve matched triggers into one concrete WorkflowTemplate.

    Policy:
    1. No matches: the registry's default template
    2. One template at the top priority: that template, unchanged
    3. Several templates tied at the top priority: their stages stacked into
       one merged template (union, first occurrence wins); the merged
       template allows the largest max_escalations among them
    Lower-priority matches never contribute.

    Args:
        matched: Triggers ordered as returned by evaluate()
        registry: Registry the triggers came from

    Returns:
        The WorkflowTemplate to execute
    """
    if not matched:
        return registry.default_template

    top_priority = matched[0].priority
    template_ids: list[str] = []
    for trigger in matched:
        if trigger.priority != top_priority:
            break
        if trigger.template_ref not in template_ids:
            template_ids.append(trigger.template_ref)

    templates = [registry.template(template_id) for template_id in template_ids]
    if len(templates) == 1:
        return templates[0]

    merged = WorkflowTemplate(
        id="+".join(t.id for t in templates),
        domain="+".join(t.domain for t in templates),
        stages=merge_stages(*(t.stages for t in templates)),
        max_escalations=max(t.max_escalations for t in templates),
    )
    logger.info(
        f"Merged {len(templates)} templates tied at priority {top_priority}: {merged.id}"
    )
    return merged
