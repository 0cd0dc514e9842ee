from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from ..config import EditorialConfig, default_config
from ..models import Block, MetricResult, error, warning
from ..utils import as_list, clamp, count_words, ensure_utc, is_number, parse_iso, round_ratio
from .blocks import EVENT_BLOCK_TYPES, block_word_limit, looks_like_major_event, upgrade_featured_content

SPORT_EMOJIS = {
    "football": "⚽",
    "golf": "⛳",
    "tennis": "🎾",
    "formula1": "🏎",
    "chess": "♟",
    "esports": "🎮",
    "olympics": "🏅",
}
SPORT_ALIASES = {"f1": "formula1", "soccer": "football"}

EDITORIAL_WEIGHTS = {
    "must_watch_coverage": 30,
    "sport_diversity": 20,
    "block_type_balance": 15,
    "text_quality": 15,
    "quiet_day_compliance": 10,
    "block_count_target": 10,
}


def canonical_sport(sport: Any) -> str:
    value = str(sport or "").strip().lower()
    return SPORT_ALIASES.get(value, value)


def day_offset(event: Mapping[str, Any], now: datetime) -> int | None:
    start = parse_iso(event.get("time"))
    if start is None:
        return None
    offset = (start.date() - now.date()).days
    if offset < 0:
        end = parse_iso(event.get("endTime"))
        today_start = datetime(now.year, now.month, now.day, tzinfo=now.tzinfo)
        if end is not None and end >= today_start:
            return 0
    return offset


def filter_window_events(
    events: Iterable[Any] | None,
    now: datetime | None = None,
    days: int = 3,
) -> list[Mapping[str, Any]]:
    ref = ensure_utc(now)
    window = []
    for event in as_list(events):
        if not isinstance(event, Mapping):
            continue
        offset = day_offset(event, ref)
        if offset is not None and 0 <= offset < days:
            window.append(event)
    return window


def _event_needles(event: Mapping[str, Any]) -> list[str]:
    needles = [event.get("title"), event.get("homeTeam"), event.get("awayTeam")]
    return [needle.lower() for needle in needles if isinstance(needle, str) and needle.strip()]


def _importance(event: Mapping[str, Any]) -> float:
    value = event.get("importance")
    return float(value) if is_number(value) else 0.0


def must_watch_coverage(blocks: list[Block], events: list[Mapping[str, Any]], min_importance: int) -> float:
    must_watch = [event for event in events if _importance(event) >= min_importance]
    if not must_watch:
        return 1.0
    all_text = " ".join(block.all_text().lower() for block in blocks)
    covered = sum(
        1 for event in must_watch if any(needle in all_text for needle in _event_needles(event))
    )
    return covered / len(must_watch)


def sport_diversity(blocks: list[Block], events: list[Mapping[str, Any]]) -> float:
    sports = {canonical_sport(event.get("sport")) for event in events if event.get("sport")}
    if not sports:
        return 1.0
    event_text = " ".join(
        block.all_text() for block in blocks if block.type in EVENT_BLOCK_TYPES
    )
    lowered = event_text.lower()
    found = set()
    for sport in sports:
        emoji = SPORT_EMOJIS.get(sport)
        if emoji and emoji in event_text:
            found.add(sport)
            continue
        for event in events:
            if canonical_sport(event.get("sport")) != sport:
                continue
            if any(needle in lowered for needle in _event_needles(event)):
                found.add(sport)
                break
    return min(len(found) / len(sports), 1.0)


def block_type_balance(blocks: list[Block]) -> float:
    if not blocks:
        return 1.0
    counts: dict[str, int] = {}
    for block in blocks:
        counts[block.type] = counts.get(block.type, 0) + 1
    max_ratio = max(counts.values()) / len(blocks)
    return 0.5 if max_ratio > 0.8 else 1.0


def text_quality(blocks: list[Block], limits: Mapping[str, int]) -> float:
    checked = 0
    within = 0
    for block in blocks:
        limited = block_word_limit(block, limits)
        if limited is None:
            continue
        limit, text = limited
        checked += 1
        if count_words(text) <= limit:
            within += 1
    return 1.0 if checked == 0 else within / checked


def event_line_count(blocks: list[Block]) -> int:
    total = 0
    for block in blocks:
        if block.type == "event-line":
            total += 1
        elif block.type == "event-group":
            total += len(block.items)
    return total


def quiet_day_compliance(
    blocks: list[Block],
    today_events: list[Mapping[str, Any]],
    cfg: EditorialConfig,
) -> float:
    notable = any(
        _importance(event) >= cfg.must_watch_importance or looks_like_major_event(event)
        for event in today_events
    )
    if not notable and event_line_count(blocks) > cfg.quiet_day_max_event_lines:
        return cfg.quiet_day_penalty
    return 1.0


def block_count_target(blocks: list[Block], cfg: EditorialConfig) -> float:
    count = len(blocks)
    if cfg.min_blocks <= count <= 8:
        return 1.0
    if count < cfg.min_blocks or count > cfg.max_blocks:
        return 0.4
    return 0.7


def evaluate_editorial_quality(
    featured: Any,
    events: Iterable[Any] | None,
    now: datetime | None = None,
    config: EditorialConfig | None = None,
) -> MetricResult:
    """Score a featured deck against the events it was generated from.

    ``featured`` may be a block list, a ``{"blocks": [...]}`` payload or the
    legacy sectioned payload. Only events in the next ``window_days`` calendar
    days count toward must-watch coverage and sport diversity.
    """
    cfg = config or default_config().editorial
    ref = ensure_utc(now)
    blocks = upgrade_featured_content(featured)
    if not blocks:
        return MetricResult(
            score=0,
            metrics={},
            issues=[error("editorial_blocks_empty", "Featured content has no usable blocks.")],
        )

    window = filter_window_events(events, ref, cfg.window_days)
    today = [event for event in window if day_offset(event, ref) == 0]

    metrics = {
        "must_watch_coverage": round_ratio(
            must_watch_coverage(blocks, window, cfg.must_watch_importance)
        ),
        "sport_diversity": round_ratio(sport_diversity(blocks, window)),
        "block_type_balance": round_ratio(block_type_balance(blocks)),
        "text_quality": round_ratio(text_quality(blocks, cfg.word_limits)),
        "quiet_day_compliance": round_ratio(quiet_day_compliance(blocks, today, cfg)),
        "block_count_target": round_ratio(block_count_target(blocks, cfg)),
    }

    score = sum(metrics[key] * weight for key, weight in EDITORIAL_WEIGHTS.items())
    score = int(clamp(round(score), 0, 100))

    issues = []
    if metrics["must_watch_coverage"] < 0.5:
        issues.append(
            warning(
                "must_watch_missed",
                f"Only {round(metrics['must_watch_coverage'] * 100)}% of must-watch events covered in blocks",
            )
        )
    if metrics["sport_diversity"] < 0.3:
        issues.append(
            warning(
                "low_sport_diversity",
                f"Sport diversity is {round(metrics['sport_diversity'] * 100)}%",
            )
        )
    if metrics["block_count_target"] < 0.5:
        issues.append(
            warning(
                "block_count_out_of_range",
                f"Block count {len(blocks)} is outside ideal range ({cfg.min_blocks}-8)",
            )
        )
    if metrics["quiet_day_compliance"] < 1:
        issues.append(
            warning(
                "quiet_day_padding",
                f"{event_line_count(blocks)} event lines listed on a quiet day",
            )
        )

    return MetricResult(
        score=score,
        metrics=metrics,
        issues=issues,
        extra={"block_count": len(blocks), "window_event_count": len(window)},
    )
