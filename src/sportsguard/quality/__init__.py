from .blocks import (
    is_major_event_active,
    looks_like_major_event,
    upgrade_featured_content,
    validate_blocks_content,
    validate_featured_content,
)
from .editorial import evaluate_editorial_quality
from .enrichment import enforce_enrichment_quality, evaluate_enrichment_quality, get_enrichment_coverage
from .hints import build_adaptive_hints, build_results_hints, collect_hints
from .regression import detect_hint_fatigue, detect_quality_regression, detect_trend_regression
from .results import evaluate_results_quality
from .snapshot import build_quality_snapshot
from .watch_plan import evaluate_watch_plan_quality

__all__ = [
    "build_adaptive_hints",
    "build_quality_snapshot",
    "build_results_hints",
    "collect_hints",
    "detect_hint_fatigue",
    "detect_quality_regression",
    "detect_trend_regression",
    "enforce_enrichment_quality",
    "evaluate_editorial_quality",
    "evaluate_enrichment_quality",
    "evaluate_results_quality",
    "evaluate_watch_plan_quality",
    "get_enrichment_coverage",
    "is_major_event_active",
    "looks_like_major_event",
    "upgrade_featured_content",
    "validate_blocks_content",
    "validate_featured_content",
]
