from __future__ import annotations

import copy
import re
from datetime import datetime
from typing import Any, Iterable, Mapping

from ..config import EnrichmentConfig, default_config
from ..models import MetricResult, error
from ..utils import clamp, ensure_utc, is_number, normalize_line, round_ratio
from .blocks import MAJOR_EVENT_RE, looks_like_major_event

_FINAL_RE = re.compile(r"final|decider|title", re.IGNORECASE)
_DERBY_RE = re.compile(r"derby|rivalry", re.IGNORECASE)

RELEVANT_SPORTS = {"football", "golf", "tennis", "f1", "formula1", "chess"}
MAX_TAGS = 10
MAX_SUMMARY_CHARS = 300


def _event_text(event: Mapping[str, Any]) -> str:
    return " ".join(str(event.get(key) or "") for key in ("title", "tournament", "context"))


def sanitize_tags(tags: Any) -> list[str]:
    out: list[str] = []
    for tag in tags if isinstance(tags, list) else []:
        if not isinstance(tag, str):
            continue
        cleaned = tag.strip().lower()
        if not cleaned or cleaned in out:
            continue
        out.append(cleaned)
        if len(out) >= MAX_TAGS:
            break
    return out


def infer_importance(event: Mapping[str, Any]) -> int:
    text = _event_text(event)
    score = 3 if event.get("norwegian") else 2
    if MAJOR_EVENT_RE.search(text):
        score = max(score, 4)
    if _FINAL_RE.search(text):
        score = max(score, 5)
    if event.get("sport") == "football" and _DERBY_RE.search(text):
        score = max(score, 4)
    return int(clamp(score, 1, 5))


def infer_importance_reason(event: Mapping[str, Any], importance: float) -> str:
    if importance >= 5:
        return "Major event with high stakes and broad viewer appeal."
    if importance >= 4:
        return "Strong storyline with meaningful stakes for fans."
    if event.get("norwegian"):
        return "Norwegian relevance increases importance for the target audience."
    return "Regular fixture with moderate impact and viewing interest."


def infer_summary(event: Mapping[str, Any]) -> str:
    sport = normalize_line(event.get("sport") or "sport")
    tournament = normalize_line(event.get("tournament"))
    suffix = f" in {tournament}" if tournament else ""
    if event.get("homeTeam") and event.get("awayTeam"):
        return f"{event['homeTeam']} vs {event['awayTeam']}{suffix}."
    players = event.get("norwegianPlayers")
    if isinstance(players, list) and players:
        first = players[0]
        name = first.get("name") if isinstance(first, Mapping) else None
        return f"{name or 'Norwegian player'} competes{suffix} with Norwegian interest."
    return f"{event.get('title') or 'Upcoming event'}{suffix} ({sport})."


def infer_norwegian_relevance(event: Mapping[str, Any]) -> int:
    if event.get("norwegian"):
        return 5
    players = event.get("norwegianPlayers")
    if isinstance(players, list) and players:
        return 4
    if event.get("sport") in RELEVANT_SPORTS:
        return 3
    return 2


def infer_tags(event: Mapping[str, Any], importance: float) -> list[str]:
    tags = []
    text = _event_text(event).lower()
    if importance >= 4:
        tags.append("must-watch")
    if "final" in text:
        tags.append("final")
    if looks_like_major_event(event):
        tags.append("major")
    if event.get("norwegian"):
        if event.get("homeTeam") or event.get("awayTeam"):
            tags.append("norwegian-team")
        else:
            tags.append("norwegian-player")
    if not tags:
        tags.append("watchlist")
    return sanitize_tags(tags)


def _has_field(event: Any, field: str) -> bool:
    if not isinstance(event, Mapping):
        return False
    value = event.get(field)
    if field == "tags":
        return isinstance(value, list) and len(value) > 0
    if field in ("summary", "importanceReason"):
        return isinstance(value, str) and bool(value.strip())
    return is_number(value)


def _coverage(events: list[Any], field: str) -> float:
    if not events:
        return 1.0
    return sum(1 for event in events if _has_field(event, field)) / len(events)


def get_enrichment_coverage(events: Iterable[Any] | None) -> dict[str, Any]:
    items = list(events) if isinstance(events, (list, tuple)) else []
    return {
        "total_events": len(items),
        "importance_coverage": round_ratio(_coverage(items, "importance")),
        "summary_coverage": round_ratio(_coverage(items, "summary")),
        "relevance_coverage": round_ratio(_coverage(items, "norwegianRelevance")),
        "tags_coverage": round_ratio(_coverage(items, "tags")),
    }


def apply_enrichment_fallback(event: Any, now: datetime | None = None) -> int:
    """Fill missing enrichment fields in place; returns the number of fields set."""
    if not isinstance(event, dict):
        return 0
    changed = 0
    if not is_number(event.get("importance")):
        event["importance"] = infer_importance(event)
        changed += 1
    if not _has_field(event, "importanceReason"):
        event["importanceReason"] = infer_importance_reason(event, event["importance"])
        changed += 1
    if not _has_field(event, "summary"):
        event["summary"] = infer_summary(event)[:MAX_SUMMARY_CHARS]
        changed += 1

    existing = sanitize_tags(event.get("tags"))
    if existing:
        event["tags"] = existing
    else:
        event["tags"] = infer_tags(event, event["importance"])
        changed += 1

    if not is_number(event.get("norwegianRelevance")):
        event["norwegianRelevance"] = infer_norwegian_relevance(event)
        changed += 1

    event["importance"] = int(clamp(round(event["importance"]), 1, 5))
    event["norwegianRelevance"] = int(clamp(round(event["norwegianRelevance"]), 1, 5))
    event["enrichedAt"] = ensure_utc(now).isoformat()
    return changed


def _coverage_score(coverage: Mapping[str, Any]) -> int:
    total = (
        coverage["importance_coverage"]
        + coverage["summary_coverage"]
        + coverage["relevance_coverage"]
        + coverage["tags_coverage"]
    )
    return int(clamp(round(total * 25), 0, 100))


def _coverage_issues(coverage: Mapping[str, Any], cfg: EnrichmentConfig) -> list:
    issues = []
    if coverage["importance_coverage"] < cfg.min_importance_coverage:
        issues.append(
            error(
                "importance_coverage_low",
                f"Importance coverage {coverage['importance_coverage']} below {cfg.min_importance_coverage}.",
            )
        )
    if coverage["summary_coverage"] < cfg.min_summary_coverage:
        issues.append(
            error(
                "summary_coverage_low",
                f"Summary coverage {coverage['summary_coverage']} below {cfg.min_summary_coverage}.",
            )
        )
    if coverage["relevance_coverage"] < cfg.min_relevance_coverage:
        issues.append(
            error(
                "relevance_coverage_low",
                f"Norwegian relevance coverage {coverage['relevance_coverage']} below {cfg.min_relevance_coverage}.",
            )
        )
    return issues


def evaluate_enrichment_quality(
    events: Iterable[Any] | None,
    config: EnrichmentConfig | None = None,
) -> MetricResult:
    cfg = config or default_config().enrichment
    coverage = get_enrichment_coverage(events)
    metrics = {key: value for key, value in coverage.items() if key != "total_events"}
    return MetricResult(
        score=_coverage_score(coverage),
        metrics=metrics,
        issues=_coverage_issues(coverage, cfg),
        extra={"total_events": coverage["total_events"]},
    )


def enforce_enrichment_quality(
    events: Iterable[Any] | None,
    config: EnrichmentConfig | None = None,
    now: datetime | None = None,
) -> MetricResult:
    cfg = config or default_config().enrichment
    enriched = copy.deepcopy(list(events) if isinstance(events, (list, tuple)) else [])
    before = get_enrichment_coverage(enriched)
    changed = sum(apply_enrichment_fallback(event, now) for event in enriched)
    after = get_enrichment_coverage(enriched)
    metrics = {key: value for key, value in after.items() if key != "total_events"}
    return MetricResult(
        score=_coverage_score(after),
        metrics=metrics,
        issues=_coverage_issues(after, cfg),
        extra={
            "events": enriched,
            "before": before,
            "after": after,
            "changed_count": changed,
            "total_events": after["total_events"],
        },
    )
