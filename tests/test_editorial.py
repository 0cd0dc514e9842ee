from datetime import datetime, timezone

from conftest import NOW

from sportsguard.quality.editorial import day_offset, evaluate_editorial_quality, filter_window_events

DECK = [
    {"type": "headline", "text": "Derby night in Oslo"},
    {"type": "event-line", "text": "⚽ Norway vs Sweden, Saturday 18:00"},
    {"type": "event-line", "text": "⛳ Hovland at Pebble Beach"},
]


def _must_watch(time):
    return {"sport": "football", "title": "Norway vs Sweden", "time": time, "importance": 5}


def test_must_watch_outside_window_is_vacuous_pass():
    events = [_must_watch("2026-02-16T18:00:00Z")]
    omitted = [DECK[0], {"type": "event-line", "text": "⛳ Hovland at Pebble Beach"}, DECK[2]]
    result = evaluate_editorial_quality({"blocks": omitted}, events, now=NOW)
    assert result.metrics["must_watch_coverage"] == 1


def test_must_watch_inside_window_covered_and_missed():
    events = [_must_watch("2026-02-14T18:00:00Z")]

    covered = evaluate_editorial_quality({"blocks": DECK}, events, now=NOW)
    assert covered.metrics["must_watch_coverage"] == 1

    omitted = [DECK[0], DECK[2], {"type": "event-line", "text": "🎾 Ruud in Rotterdam"}]
    missed = evaluate_editorial_quality({"blocks": omitted}, events, now=NOW)
    assert missed.metrics["must_watch_coverage"] == 0
    assert "must_watch_missed" in missed.issue_codes()
    assert missed.valid is True


def test_well_formed_deck_scores_full_marks():
    events = [_must_watch("2026-02-14T18:00:00Z")]
    result = evaluate_editorial_quality(DECK, events, now=NOW)
    assert result.score == 100
    assert result.issues == []
    assert result.extra["block_count"] == 3
    assert result.extra["window_event_count"] == 1


def test_quiet_day_with_many_event_lines_is_penalized():
    events = [
        {"sport": "football", "title": f"Club {index} vs Club {index + 10}", "time": "2026-02-12T18:00:00Z", "importance": 2}
        for index in range(7)
    ]
    blocks = [{"type": "event-line", "text": f"⚽ Club {index} vs Club {index + 10}"} for index in range(7)]
    result = evaluate_editorial_quality({"blocks": blocks}, events, now=NOW)
    assert result.metrics["quiet_day_compliance"] == 0.3
    assert result.metrics["block_type_balance"] == 0.5
    assert "quiet_day_padding" in result.issue_codes()


def test_quiet_day_rule_skipped_when_major_event_today():
    events = [
        {"sport": "football", "title": "Cup final", "time": "2026-02-12T18:00:00Z", "importance": 2}
    ]
    blocks = [{"type": "event-line", "text": f"⚽ Match {index}"} for index in range(7)]
    result = evaluate_editorial_quality({"blocks": blocks}, events, now=NOW)
    assert result.metrics["quiet_day_compliance"] == 1


def test_sport_diversity_counts_represented_sports():
    events = [
        {"sport": "football", "title": "Norway vs Sweden", "time": "2026-02-12T18:00:00Z"},
        {"sport": "golf", "title": "Pebble Beach Pro-Am", "time": "2026-02-13T15:00:00Z"},
        {"sport": "tennis", "title": "Rotterdam Open", "time": "2026-02-13T10:00:00Z"},
        {"sport": "chess", "title": "Freestyle Chess", "time": "2026-02-13T14:00:00Z"},
    ]
    result = evaluate_editorial_quality({"blocks": DECK}, events, now=NOW)
    assert result.metrics["sport_diversity"] == 0.5


def test_block_count_target_bands():
    lines = [{"type": "event-line", "text": f"⚽ Match {index}"} for index in range(10)]
    mixed = [{"type": "headline", "text": "Busy day"}] + lines[:8]
    assert evaluate_editorial_quality(mixed, [], now=NOW).metrics["block_count_target"] == 0.7
    too_many = [{"type": "headline", "text": "Busy day"}] + lines
    result = evaluate_editorial_quality(too_many, [], now=NOW)
    assert result.metrics["block_count_target"] == 0.4
    assert "block_count_out_of_range" in result.issue_codes()


def test_text_quality_counts_blocks_over_limit():
    blocks = [
        {"type": "headline", "text": " ".join(["long"] * 20)},
        {"type": "event-line", "text": "⚽ Lyn - Brann"},
        {"type": "narrative", "text": "A quiet one."},
        {"type": "event-line", "text": "⛳ Hovland"},
    ]
    result = evaluate_editorial_quality(blocks, [], now=NOW)
    assert result.metrics["text_quality"] == 0.75


def test_no_blocks_is_an_error():
    result = evaluate_editorial_quality({"blocks": []}, [], now=NOW)
    assert result.score == 0
    assert result.issue_codes() == ["editorial_blocks_empty"]
    assert result.valid is False


def test_window_includes_events_still_running():
    ongoing = {"title": "Stage race", "time": "2026-02-10T08:00:00Z", "endTime": "2026-02-13T18:00:00Z"}
    finished = {"title": "Old match", "time": "2026-02-11T18:00:00Z", "endTime": "2026-02-11T20:00:00Z"}
    later = {"title": "Far away", "time": "2026-02-15T00:00:00Z"}
    assert day_offset(ongoing, NOW) == 0
    assert filter_window_events([ongoing, finished, later, "junk", {"title": "no time"}], NOW, 3) == [ongoing]


def test_window_uses_utc_calendar_days():
    late = datetime(2026, 2, 12, 23, 30, tzinfo=timezone.utc)
    assert day_offset({"time": "2026-02-13T00:30:00Z"}, late) == 1
    assert day_offset({"time": "2026-02-15T00:30:00+00:00"}, late) == 3


def test_non_list_events_are_ignored():
    assert filter_window_events(5, NOW, 3) == []
    result = evaluate_editorial_quality({"blocks": DECK}, {"events": "x"}, now=NOW)
    assert result.metrics["must_watch_coverage"] == 1
