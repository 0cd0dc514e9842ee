from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from ..models import Issue, critical, warning
from ..utils import is_number, log_event
from .hints import EDITORIAL_HINT_RULES, RESULTS_HINT_RULES

logger = logging.getLogger(__name__)

SCORE_DROP_LIMITS = {"enrichment": 15, "featured": 20, "results": 15}
COLLAPSE_RATIO = 0.5
TREND_WINDOW = 3
FATIGUE_WINDOW = 20
FATIGUE_MIN_HISTORY = 5
FATIGUE_MIN_FIRES = 5
FATIGUE_HIGH_FIRES = 10


@dataclass
class RegressionReport:
    issues: list[Issue] = field(default_factory=list)

    @property
    def has_regression(self) -> bool:
        return bool(self.issues)

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_regression": self.has_regression,
            "issues": [issue.to_dict() for issue in self.issues],
        }


def _value(snapshot: Any, section: str, key: str) -> float | None:
    """Read ``section.key`` from a snapshot, falling back to ``section.metrics.key``."""
    if not isinstance(snapshot, Mapping):
        return None
    data = snapshot.get(section)
    if not isinstance(data, Mapping):
        return None
    value = data.get(key)
    if value is None and isinstance(data.get("metrics"), Mapping):
        value = data["metrics"].get(key)
    return value if is_number(value) else None


def _collapse(current: float | None, previous: float | None) -> float | None:
    if current is None or previous is None or previous <= 0:
        return None
    ratio = (previous - current) / previous
    return ratio if ratio > COLLAPSE_RATIO else None


def detect_quality_regression(current: Any, previous: Any) -> RegressionReport:
    """Compare this run's snapshot with the previous one."""
    report = RegressionReport()
    if not isinstance(current, Mapping):
        report.issues.append(warning("quality_missing", "Current quality snapshot is missing"))
        return report
    if not isinstance(previous, Mapping):
        return report

    for section, limit in SCORE_DROP_LIMITS.items():
        now_score = _value(current, section, "score")
        prev_score = _value(previous, section, "score")
        if now_score is None or prev_score is None:
            continue
        drop = prev_score - now_score
        if drop > limit:
            report.issues.append(
                warning(
                    f"{section}_regression",
                    f"{section.capitalize()} score dropped from {prev_score:g} to {now_score:g} (-{drop:g})",
                )
            )

    prev_events = _value(previous, "enrichment", "total_events")
    now_events = _value(current, "enrichment", "total_events")
    ratio = _collapse(now_events, prev_events)
    if ratio is not None:
        report.issues.append(
            critical(
                "event_count_collapse",
                f"Event count dropped from {prev_events:g} to {now_events:g} (-{round(ratio * 100)}%)",
            )
        )

    now_failed = _value(current, "enrichment", "failed_batches") or 0
    prev_failed = _value(previous, "enrichment", "failed_batches") or 0
    if now_failed > prev_failed:
        report.issues.append(
            warning(
                "failed_batches_increase",
                f"Failed batches increased from {prev_failed:g} to {now_failed:g}",
            )
        )

    prev_football = _value(previous, "results", "football_count")
    now_football = _value(current, "results", "football_count")
    ratio = _collapse(now_football, prev_football)
    if ratio is not None:
        report.issues.append(
            critical(
                "football_count_collapse",
                f"Football results dropped from {prev_football:g} to {now_football:g} (-{round(ratio * 100)}%)",
            )
        )

    prev_fav = _value(previous, "results", "favorite_coverage")
    now_fav = _value(current, "results", "favorite_coverage")
    if prev_fav is not None and now_fav is not None and prev_fav > 0.5 and now_fav < 0.3:
        report.issues.append(
            warning(
                "favorite_coverage_drop",
                f"Favorite coverage dropped from {round(prev_fav * 100)}% to {round(now_fav * 100)}%",
            )
        )

    if report.has_regression:
        log_event(logger, logging.WARNING, "quality_regression", codes=",".join(i.code for i in report.issues))
    return report


def _mean(entries: list[Any], accessor: Callable[[Any], float | None]) -> float | None:
    values = [value for value in (accessor(entry) for entry in entries) if value is not None]
    return sum(values) / len(values) if values else None


def detect_trend_regression(history: Any) -> RegressionReport:
    """Compare the last three snapshots against the three before them."""
    report = RegressionReport()
    if not isinstance(history, (list, tuple)) or len(history) < TREND_WINDOW * 2:
        return report

    recent = list(history[-TREND_WINDOW:])
    before = list(history[-TREND_WINDOW * 2 : -TREND_WINDOW])

    checks = (
        ("editorial", "score", 15, "editorial_trend_regression", "Editorial score"),
        ("editorial", "must_watch_coverage", 0.25, "must_watch_trend_regression", "Must-watch coverage"),
        ("results", "score", 15, "results_trend_regression", "Results quality"),
    )
    for section, key, limit, code, label in checks:
        now_avg = _mean(recent, lambda entry: _value(entry, section, key))
        prev_avg = _mean(before, lambda entry: _value(entry, section, key))
        if now_avg is None or prev_avg is None:
            continue
        drop = prev_avg - now_avg
        if drop <= limit:
            continue
        if key == "score":
            message = f"{label} trend dropped from avg {round(prev_avg)} to {round(now_avg)} (-{round(drop)})"
        else:
            message = (
                f"{label} trend dropped from avg {round(prev_avg * 100)}% to "
                f"{round(now_avg * 100)}% (-{round(drop * 100)}%)"
            )
        report.issues.append(warning(code, message))

    if report.has_regression:
        log_event(logger, logging.WARNING, "quality_trend_regression", count=len(report.issues))
    return report


def _hint_targets() -> dict[str, tuple[str, str]]:
    targets = {rule.hint: ("editorial", rule.metric) for rule in EDITORIAL_HINT_RULES}
    targets.update({rule.hint: ("results", rule.metric) for rule in RESULTS_HINT_RULES})
    return targets


def detect_hint_fatigue(history: Any) -> RegressionReport:
    """Flag hints that keep firing while the metric they target does not improve.

    Looks at the last 20 snapshots. A hint applied at least 5 times whose
    metric is not higher in the newest snapshot than in the oldest one is a
    warning; at 10 or more fires it is critical.
    """
    report = RegressionReport()
    if not isinstance(history, (list, tuple)) or len(history) < FATIGUE_MIN_HISTORY:
        return report

    recent = list(history[-FATIGUE_WINDOW:])
    counts: dict[str, int] = {}
    for entry in recent:
        hints = entry.get("hints_applied") if isinstance(entry, Mapping) else None
        if not isinstance(hints, list):
            continue
        for hint in hints:
            if isinstance(hint, str):
                counts[hint] = counts.get(hint, 0) + 1

    targets = _hint_targets()
    for hint, fires in counts.items():
        if fires < FATIGUE_MIN_FIRES:
            continue
        section, metric = targets.get(hint, (None, None))
        first = _value(recent[0], section, metric) if section else None
        last = _value(recent[-1], section, metric) if section else None
        if first is not None and last is not None and last > first:
            continue
        label = f"{section}.{metric}" if section else "its metric"
        message = f'Hint "{hint[:80]}" fired {fires} times without improving {label}'
        if fires >= FATIGUE_HIGH_FIRES:
            report.issues.append(critical("hint_fatigue", message))
        else:
            report.issues.append(warning("hint_fatigue", message))

    if report.has_regression:
        log_event(logger, logging.WARNING, "hint_fatigue", count=len(report.issues))
    return report
