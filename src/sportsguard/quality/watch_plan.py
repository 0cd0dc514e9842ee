from __future__ import annotations

from typing import Any, Mapping

from ..models import MetricResult, warning
from ..utils import clamp, is_number, round_ratio


def _has_entries(pick: Mapping[str, Any], key: str) -> bool:
    value = pick.get(key)
    return isinstance(value, list) and len(value) > 0


def evaluate_watch_plan_quality(watch_plan: Any) -> MetricResult:
    picks = watch_plan.get("picks") if isinstance(watch_plan, Mapping) else None
    picks = [pick for pick in picks if isinstance(pick, Mapping)] if isinstance(picks, list) else []

    pick_count = len(picks)
    if pick_count == 0:
        return MetricResult(
            score=0,
            metrics={
                "pick_count": 0,
                "avg_score": 0,
                "streaming_coverage": 0,
                "reason_coverage": 0,
            },
            issues=[warning("watch_plan_empty", "Watch plan has no picks.")],
        )

    total = sum(pick["score"] for pick in picks if is_number(pick.get("score")))
    avg_score = round(total / pick_count)
    streaming = round_ratio(sum(1 for pick in picks if _has_entries(pick, "streaming")) / pick_count)
    reasons = round_ratio(sum(1 for pick in picks if _has_entries(pick, "reasons")) / pick_count)

    score = 40 + streaming * 30 + reasons * 30
    return MetricResult(
        score=int(clamp(round(score), 0, 100)),
        metrics={
            "pick_count": pick_count,
            "avg_score": avg_score,
            "streaming_coverage": streaming,
            "reason_coverage": reasons,
        },
    )
