"""Signal extraction: task description -> ComplexityProfile."""

import logging
import re
from typing import Optional

from escalator.config import Severity
from escalator.schemas import ComplexityProfile, SignalUpdate, TaskDescription
from escalator.signals.keywords import (
    DECISION_MARKERS,
    DOMAIN_STEMS,
    PRODUCTION_ENVIRONMENTS,
    PRODUCTION_MARKERS,
    SEQUENCE_MARKERS,
    SYSTEM_STEMS,
)

logger = logging.getLogger(__name__)

_LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+\S", re.MULTILINE)
_WORD = re.compile(r"[^\W_]")

_SEVERITY_RANK: dict[Severity, int] = {
    Severity.NORMAL: 0,
    Severity.PERFORMANCE: 1,
    Severity.SECURITY: 2,
}


def _word_pattern(words: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(w) for w in sorted(words, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})\b")


def _stem_pattern(stems: tuple[str, ...]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(s) for s in sorted(stems, key=len, reverse=True))
    return re.compile(rf"\b(?:{alternatives})")


def _more_severe(current: Severity, candidate: Optional[Severity]) -> Severity:
    if candidate is None:
        return current
    if _SEVERITY_RANK[candidate] > _SEVERITY_RANK[current]:
        return candidate
    return current


class SignalExtractor:
    """Derive countable complexity signals from task text and hints.

    Extraction is a pure function of the TaskDescription: no randomness, no
    clock, no external lookups. Blank or unrecognisable text yields the zero
    profile rather than an error.
    """

    def __init__(
        self,
        domain_stems: Optional[dict[str, tuple[str, ...]]] = None,
        system_stems: Optional[dict[str, tuple[str, ...]]] = None,
    ):
        """Initialize the extractor.

        Args:
            domain_stems: Domain tag -> keyword stems (defaults to DOMAIN_STEMS)
            system_stems: System name -> keyword stems (defaults to SYSTEM_STEMS)
        """
        self._sequence = _word_pattern(SEQUENCE_MARKERS)
        self._decision = _word_pattern(DECISION_MARKERS)
        self._production = _word_pattern(PRODUCTION_MARKERS)
        self._domains = {
            tag: _stem_pattern(stems)
            for tag, stems in sorted((domain_stems or DOMAIN_STEMS).items())
        }
        self._systems = {
            name: _stem_pattern(stems)
            for name, stems in sorted((system_stems or SYSTEM_STEMS).items())
        }

    def extract(self, task: TaskDescription) -> ComplexityProfile:
        """Convert a task description into a ComplexityProfile.

        Args:
            task: Task text and caller hints

        Returns:
            ComplexityProfile; all signals at minimum when nothing is detected
            or the text has no letter or digit at all
        """
        text = task.text.lower()
        if not _WORD.search(text):
            return self._apply_hints(ComplexityProfile(), task.hints)

        list_items = len(_LIST_ITEM.findall(text))
        sequence_markers = len(self._sequence.findall(text))
        step_count = max(list_items, sequence_markers + 1)

        domain_tags = frozenset(
            tag for tag, pattern in self._domains.items() if pattern.search(text)
        )
        affected_systems = sum(
            1 for pattern in self._systems.values() if pattern.search(text)
        )

        if "security" in domain_tags:
            severity = Severity.SECURITY
        elif "performance" in domain_tags:
            severity = Severity.PERFORMANCE
        else:
            severity = Severity.NORMAL

        profile = ComplexityProfile(
            step_count=step_count,
            decision_points=len(self._decision.findall(text)),
            affected_systems=affected_systems,
            is_production=bool(self._production.search(text)),
            domain_tags=domain_tags,
            severity=severity,
        )
        return self._apply_hints(profile, task.hints)

    def rederive(
        self,
        profile: ComplexityProfile,
        update: SignalUpdate,
    ) -> ComplexityProfile:
        """Build a new profile that folds in signals surfaced by a stage.

        Counts take the larger value, tags are unioned, production is sticky
        and severity only ever rises (normal < performance < security).
        """
        if update.is_empty():
            return profile
        return ComplexityProfile(
            step_count=max(profile.step_count, update.step_count or 0),
            decision_points=max(profile.decision_points, update.decision_points or 0),
            affected_systems=max(profile.affected_systems, update.affected_systems or 0),
            is_production=profile.is_production or bool(update.is_production),
            domain_tags=profile.domain_tags | update.domain_tags,
            severity=_more_severe(profile.severity, update.severity),
        )

    def _apply_hints(
        self,
        profile: ComplexityProfile,
        hints: dict[str, str],
    ) -> ComplexityProfile:
        """Fold recognised caller hints into the profile; unknown or bad hints are ignored."""
        if not hints:
            return profile

        normalized = {k.strip().lower(): v.strip() for k, v in hints.items()}
        updates: dict = {}

        environment = normalized.get("environment") or normalized.get("env")
        if environment and environment.lower() in PRODUCTION_ENVIRONMENTS:
            updates["is_production"] = True

        domains = normalized.get("domains")
        if domains:
            extra = frozenset(d.strip().lower() for d in domains.split(",") if d.strip())
            updates["domain_tags"] = profile.domain_tags | extra

        systems = normalized.get("affected_systems")
        if systems:
            try:
                floor = int(systems)
            except ValueError:
                logger.debug(f"Ignoring non-integer affected_systems hint: {systems!r}")
            else:
                if floor >= 0:
                    updates["affected_systems"] = max(profile.affected_systems, floor)

        severity = normalized.get("severity")
        if severity:
            try:
                updates["severity"] = Severity(severity.lower())
            except ValueError:
                logger.debug(f"Ignoring unknown severity hint: {severity!r}")

        if not updates:
            return profile
        return profile.model_copy(update=updates)
