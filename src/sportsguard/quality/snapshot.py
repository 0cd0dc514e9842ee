from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from ..models import MetricResult
from ..utils import ensure_utc
from .blocks import upgrade_featured_content
from .editorial import EDITORIAL_WEIGHTS

RESULTS_SNAPSHOT_METRICS = (
    "integrity_rate",
    "recap_headline_rate",
    "goal_scorer_coverage",
    "favorite_coverage",
    "freshness_score",
    "football_count",
)


def _as_dict(result: Any) -> dict[str, Any] | None:
    if result is None:
        return None
    if isinstance(result, MetricResult):
        return result.to_dict()
    if isinstance(result, Mapping):
        return dict(result)
    return None


def _metrics(result: Mapping[str, Any]) -> Mapping[str, Any]:
    metrics = result.get("metrics")
    return metrics if isinstance(metrics, Mapping) else {}


def _featured_block_count(featured: Mapping[str, Any] | None, payload: Any) -> int:
    normalized = (featured or {}).get("normalized")
    if isinstance(normalized, Mapping) and isinstance(normalized.get("blocks"), list):
        return len(normalized["blocks"])
    if payload is not None:
        return len(upgrade_featured_content(payload))
    if featured is not None:
        count = _metrics(featured).get("block_count")
        if isinstance(count, int):
            return count
    return 0


def build_quality_snapshot(
    editorial: Any,
    enrichment: Any,
    featured: Any,
    watch_plan: Any,
    *,
    hints_applied: Iterable[str] | None = None,
    results: Any = None,
    featured_payload: Any = None,
    token_usage: Mapping[str, Any] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Compress one run's evaluator outputs into a storable snapshot.

    Every section is either a plain dict or ``None``. The editorial block
    count comes from the featured deck the editorial score was computed on,
    so it is read from ``featured`` (its normalized blocks) or from
    ``featured_payload`` when the raw payload is passed.
    """
    editorial_d = _as_dict(editorial)
    enrichment_d = _as_dict(enrichment)
    featured_d = _as_dict(featured)
    watch_plan_d = _as_dict(watch_plan)
    results_d = _as_dict(results)

    block_count = _featured_block_count(featured_d, featured_payload)

    snapshot: dict[str, Any] = {
        "timestamp": ensure_utc(now).isoformat(),
        "editorial": None,
        "enrichment": None,
        "featured": None,
        "watch_plan": None,
        "results": None,
        "hints_applied": list(hints_applied or []),
        "token_usage": dict(token_usage) if isinstance(token_usage, Mapping) else None,
    }

    if editorial_d is not None:
        metrics = _metrics(editorial_d)
        section: dict[str, Any] = {"score": editorial_d.get("score")}
        for name in EDITORIAL_WEIGHTS:
            section[name] = metrics.get(name)
        section["block_count"] = block_count
        snapshot["editorial"] = section

    if enrichment_d is not None:
        metrics = _metrics(enrichment_d)
        snapshot["enrichment"] = {
            "score": enrichment_d.get("score"),
            "total_events": enrichment_d.get("total_events"),
            "importance_coverage": metrics.get("importance_coverage"),
            "summary_coverage": metrics.get("summary_coverage"),
            "relevance_coverage": metrics.get("relevance_coverage"),
            "tags_coverage": metrics.get("tags_coverage"),
            "failed_batches": enrichment_d.get("failed_batches"),
        }

    if featured_d is not None:
        snapshot["featured"] = {
            "score": featured_d.get("score"),
            "block_count": block_count,
            "provider": featured_d.get("provider"),
            "valid": featured_d.get("valid"),
        }

    if watch_plan_d is not None:
        metrics = _metrics(watch_plan_d)
        snapshot["watch_plan"] = {
            "score": watch_plan_d.get("score"),
            "pick_count": metrics.get("pick_count"),
            "avg_score": metrics.get("avg_score"),
            "streaming_coverage": metrics.get("streaming_coverage"),
        }

    if results_d is not None:
        metrics = _metrics(results_d)
        section = {"score": results_d.get("score")}
        for name in RESULTS_SNAPSHOT_METRICS:
            section[name] = metrics.get(name)
        snapshot["results"] = section

    return snapshot
