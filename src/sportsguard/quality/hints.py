"""Adaptive prompt hints derived from the rolling quality history.

Both engines average a fixed set of metrics over the most recent snapshots
and emit one corrective hint per metric whose average is below its
threshold. With fewer than ``hints.min_history`` snapshots no hints are
produced at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from ..config import HintConfig, default_config
from ..models import HintSet
from ..utils import is_number, log_event, round_ratio

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HintRule:
    metric: str
    threshold: float
    hint: str
    # Only emitted when some other rule of the same engine also fires.
    requires_companion: bool = False


EDITORIAL_HINT_RULES = (
    HintRule(
        "must_watch_coverage",
        0.6,
        "CORRECTION: Recent outputs missed must-watch events. You MUST include ALL events "
        "with importance ≥4. This is the highest-priority fix.",
    ),
    HintRule(
        "sport_diversity",
        0.4,
        "CORRECTION: Recent outputs were too focused on one sport. Include events from at "
        "least 2 different sports when available.",
    ),
    HintRule(
        "block_type_balance",
        0.6,
        "CORRECTION: Recent outputs used too many of the same block type. Mix headlines, "
        "event-lines, narratives, and dividers.",
    ),
    HintRule(
        "text_quality",
        0.7,
        "CORRECTION: Recent blocks exceeded word limits. headline: max 15 words, "
        "event-line: max 20, narrative: max 40.",
    ),
    HintRule(
        "block_count_target",
        0.6,
        "CORRECTION: Keep total block count between 3 and 8. Recent outputs were outside "
        "this range.",
    ),
    HintRule(
        "quiet_day_compliance",
        0.5,
        "CORRECTION: On quiet days (<3 events), use only 3-4 blocks. Don't pad with "
        "low-importance events.",
    ),
)

RESULTS_HINT_RULES = (
    HintRule(
        "recap_headline_rate",
        0.5,
        "CORRECTION: Recent results narration ignored available recap headlines. Use the "
        "recap headline when one exists for a match.",
        requires_companion=True,
    ),
    HintRule(
        "goal_scorer_coverage",
        0.6,
        "CORRECTION: Recent results omitted goal scorers. Name the scorers for every match "
        "that had goals.",
    ),
    HintRule(
        "favorite_coverage",
        0.5,
        "CORRECTION: Recent results skipped the user's favorite teams and players. Always "
        "report results involving favorites first.",
    ),
    HintRule(
        "freshness_score",
        0.5,
        "CORRECTION: Recent results were stale. Only describe results from the last 48 hours "
        "and say when data is outdated.",
    ),
)


def _section(entry: Any, name: str) -> Mapping[str, Any] | None:
    if isinstance(entry, Mapping):
        section = entry.get(name)
    else:
        section = getattr(entry, name, None)
    return section if isinstance(section, Mapping) else None


def _averages(recent: list[Any], section: str, rules: Iterable[HintRule]) -> dict[str, float | None]:
    averages: dict[str, float | None] = {}
    for rule in rules:
        values = []
        for entry in recent:
            data = _section(entry, section)
            if data is not None and is_number(data.get(rule.metric)):
                values.append(float(data[rule.metric]))
        averages[rule.metric] = round_ratio(sum(values) / len(values)) if values else None
    return averages


def _build_hints(
    history: Any,
    section: str,
    rules: tuple[HintRule, ...],
    config: HintConfig | None,
) -> HintSet:
    cfg = config or default_config().hints
    if not isinstance(history, (list, tuple)) or len(history) < cfg.min_history:
        return HintSet(hints=[], metrics={})

    recent = list(history)[-cfg.window :]
    averages = _averages(recent, section, rules)

    def is_low(rule: HintRule) -> bool:
        avg = averages.get(rule.metric)
        return avg is not None and avg < rule.threshold

    low = [rule for rule in rules if is_low(rule)]
    independent = [rule for rule in low if not rule.requires_companion]
    hints = []
    for rule in low:
        if rule.requires_companion and not independent:
            log_event(logger, logging.DEBUG, "hint_suppressed", section=section, metric=rule.metric)
            continue
        hints.append(rule.hint)

    if hints:
        log_event(
            logger,
            logging.INFO,
            "hints_built",
            section=section,
            count=len(hints),
            window=len(recent),
        )
    return HintSet(hints=hints, metrics=averages)


def build_adaptive_hints(history: Any, config: HintConfig | None = None) -> HintSet:
    return _build_hints(history, "editorial", EDITORIAL_HINT_RULES, config)


def build_results_hints(history: Any, config: HintConfig | None = None) -> HintSet:
    """Results hints; a low recap headline rate on its own is a feed artifact and stays silent."""
    return _build_hints(history, "results", RESULTS_HINT_RULES, config)


def collect_hints(history: Any, config: HintConfig | None = None) -> list[str]:
    return build_adaptive_hints(history, config).hints + build_results_hints(history, config).hints
