from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from ..config import ResultsConfig, default_config
from ..models import MetricResult, error, warning
from ..utils import as_list, clamp, ensure_utc, is_number, parse_iso, round_ratio

RESULTS_WEIGHTS = {
    "integrity_rate": 25,
    "recap_headline_rate": 15,
    "goal_scorer_coverage": 20,
    "favorite_coverage": 20,
    "freshness_score": 20,
}


def _football(results: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    matches = results.get("football")
    if not isinstance(matches, list):
        return []
    return [match for match in matches if isinstance(match, Mapping)]


def _golf_tours(results: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    golf = results.get("golf")
    if not isinstance(golf, Mapping):
        return []
    return [tour for tour in golf.values() if isinstance(tour, Mapping)]


def integrity_rate(results: Mapping[str, Any]) -> float:
    validation = results.get("validationMetrics")
    if not isinstance(validation, Mapping):
        return 1.0
    total = validation.get("totalResults")
    valid = validation.get("validResults")
    if not is_number(total) or total <= 0 or not is_number(valid):
        return 1.0
    return clamp(valid / total, 0.0, 1.0)


def recap_headline_rate(matches: list[Mapping[str, Any]]) -> float:
    if not matches:
        return 1.0
    with_headline = sum(
        1
        for match in matches
        if isinstance(match.get("recapHeadline"), str) and match["recapHeadline"].strip()
    )
    return with_headline / len(matches)


def _total_goals(match: Mapping[str, Any]) -> float:
    home = match.get("homeScore")
    away = match.get("awayScore")
    return (home if is_number(home) else 0) + (away if is_number(away) else 0)


def goal_scorer_coverage(matches: list[Mapping[str, Any]]) -> float:
    scoring = [match for match in matches if _total_goals(match) > 0]
    if not scoring:
        return 1.0
    covered = sum(
        1
        for match in scoring
        if isinstance(match.get("goalScorers"), list) and match["goalScorers"]
    )
    return covered / len(scoring)


def _names(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    out = []
    for value in values:
        if isinstance(value, str) and value.strip():
            out.append(value.strip())
        elif isinstance(value, Mapping) and isinstance(value.get("name"), str):
            out.append(value["name"].strip())
    return out


def _event_haystack(events: Iterable[Any] | None) -> str:
    parts = []
    for event in as_list(events):
        if not isinstance(event, Mapping):
            continue
        for key in ("title", "homeTeam", "awayTeam"):
            if isinstance(event.get(key), str):
                parts.append(event[key])
        parts.extend(_names(event.get("norwegianPlayers")))
        parts.extend(_names(event.get("participants")))
    return " ".join(parts).lower()


def _results_haystack(results: Mapping[str, Any]) -> str:
    parts = []
    for match in _football(results):
        parts.extend(str(match.get(key) or "") for key in ("homeTeam", "awayTeam"))
        for scorer in as_list(match.get("goalScorers")):
            if isinstance(scorer, Mapping):
                parts.append(str(scorer.get("player") or ""))
    for tour in _golf_tours(results):
        for player in as_list(tour.get("topPlayers")):
            if isinstance(player, Mapping):
                parts.append(str(player.get("player") or ""))
    return " ".join(parts).lower()


def favorite_coverage(
    results: Mapping[str, Any],
    events: Iterable[Any] | None,
    user_context: Mapping[str, Any] | None,
) -> float:
    """Share of user favorites that show up in the results.

    When fetched events are given, only favorites that actually played (appear
    in some event) are expected to have a result.
    """
    context = user_context if isinstance(user_context, Mapping) else {}
    favorites = _names(context.get("favoriteTeams")) + _names(context.get("favoritePlayers"))
    if not favorites:
        return 1.0
    scheduled = _event_haystack(events)
    if scheduled:
        favorites = [name for name in favorites if name.lower() in scheduled]
        if not favorites:
            return 1.0
    found = _results_haystack(results)
    covered = sum(1 for name in favorites if name.lower() in found)
    return covered / len(favorites)


def freshness_score(last_updated: Any, now: datetime, cfg: ResultsConfig) -> float:
    updated = parse_iso(last_updated)
    if updated is None:
        return 0.0
    age_hours = max(0.0, (now - updated).total_seconds() / 3600)
    if age_hours <= cfg.fresh_hours:
        return 1.0
    if age_hours >= cfg.stale_hours:
        return 0.0
    return 1.0 - (age_hours - cfg.fresh_hours) / (cfg.stale_hours - cfg.fresh_hours)


def evaluate_results_quality(
    results: Any,
    events: Iterable[Any] | None = None,
    user_context: Mapping[str, Any] | None = None,
    now: datetime | None = None,
    config: ResultsConfig | None = None,
) -> MetricResult:
    if not isinstance(results, Mapping):
        return MetricResult(
            score=0,
            metrics={},
            issues=[error("results_missing", "Results payload is missing or malformed.")],
        )
    cfg = config or default_config().results
    ref = ensure_utc(now)
    matches = _football(results)

    metrics = {
        "integrity_rate": round_ratio(integrity_rate(results)),
        "recap_headline_rate": round_ratio(recap_headline_rate(matches)),
        "goal_scorer_coverage": round_ratio(goal_scorer_coverage(matches)),
        "favorite_coverage": round_ratio(favorite_coverage(results, events, user_context)),
        "freshness_score": round_ratio(freshness_score(results.get("lastUpdated"), ref, cfg)),
    }
    score = sum(metrics[key] * weight for key, weight in RESULTS_WEIGHTS.items())
    metrics["football_count"] = len(matches)
    metrics["golf_count"] = len(_golf_tours(results))

    issues = []
    if metrics["integrity_rate"] < 0.8:
        issues.append(
            warning(
                "results_integrity_low",
                f"Only {round(metrics['integrity_rate'] * 100)}% of results passed validation",
            )
        )
    if results.get("lastUpdated") is None:
        issues.append(warning("results_timestamp_missing", "Results have no lastUpdated timestamp"))
    elif metrics["freshness_score"] < 0.5:
        issues.append(
            warning("results_stale", f"Results freshness is {round(metrics['freshness_score'] * 100)}%")
        )
    if metrics["goal_scorer_coverage"] < 0.5:
        issues.append(
            warning(
                "goal_scorers_missing",
                f"Goal scorers present for {round(metrics['goal_scorer_coverage'] * 100)}% of scoring matches",
            )
        )

    return MetricResult(score=int(clamp(round(score), 0, 100)), metrics=metrics, issues=issues)
