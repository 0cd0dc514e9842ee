from sportsguard.models import Block
from sportsguard.quality.blocks import (
    is_major_event_active,
    looks_like_major_event,
    upgrade_featured_content,
    validate_blocks_content,
    validate_featured_content,
)


def _event_lines(count):
    return [{"type": "event-line", "text": f"⚽ Match {index} at 18:00"} for index in range(count)]


def test_deck_without_event_blocks_is_invalid():
    blocks = [
        {"type": "headline", "text": "A big sporting weekend"},
        {"type": "narrative", "text": "Plenty to watch."},
        {"type": "divider", "text": "Later"},
    ]
    result = validate_blocks_content(blocks)
    assert result.valid is False
    assert "blocks_missing_events" in result.issue_codes()


def test_too_many_blocks_is_a_warning_with_penalty():
    result = validate_blocks_content(_event_lines(12))
    assert "blocks_too_many" in result.issue_codes()
    assert result.score < 100
    assert result.score == 90
    assert result.valid is True


def test_overflow_penalty_is_capped():
    result = validate_blocks_content(_event_lines(30))
    assert result.score == 70
    assert result.valid is True


def test_empty_or_non_list_blocks():
    for payload in ([], None, {"blocks": []}):
        result = validate_blocks_content(payload)
        assert result.valid is False
        assert result.score == 0
        assert result.issue_codes() == ["blocks_empty"]


def test_normalizes_text_and_drops_unusable_blocks():
    blocks = [
        {"type": "headline", "text": "  Big   night  "},
        {"type": "event-group", "label": " Champions  League ", "items": ["  Lyn - Brann ", "", 42]},
        {"type": "event-line", "text": "   "},
        {"type": "mystery", "text": "ignored"},
        {"type": "narrative", "text": "Worth staying up for."},
    ]
    result = validate_blocks_content(blocks)
    assert result.normalized == [
        Block(type="headline", text="Big night"),
        Block(type="event-group", label="Champions League", items=("Lyn - Brann",)),
        Block(type="narrative", text="Worth staying up for."),
    ]
    assert result.metrics["block_count"] == 3
    assert result.to_dict()["normalized"]["blocks"][1]["items"] == ["Lyn - Brann"]


def test_too_few_blocks():
    result = validate_blocks_content(_event_lines(2))
    assert "blocks_too_few" in result.issue_codes()
    assert result.valid is False
    assert result.score == 65


def test_word_limits_and_narrative_count():
    blocks = [
        {"type": "headline", "text": " ".join(["word"] * 16)},
        *_event_lines(2),
        *[{"type": "narrative", "text": "Short story."} for _ in range(4)],
    ]
    result = validate_blocks_content(blocks)
    codes = result.issue_codes()
    assert codes.count("block_text_too_long") == 1
    assert "too_many_narratives" in codes
    assert result.valid is True
    assert result.score == 85


def test_major_event_requires_event_group():
    events = [{"sport": "football", "title": "Lyn - Brann", "tournament": "Champions League"}]
    result = validate_blocks_content(_event_lines(3), events=events)
    assert "major_event_section_missing" in result.issue_codes()
    assert result.valid is True

    with_group = _event_lines(2) + [
        {"type": "event-group", "label": "Champions League", "items": ["Lyn - Brann"]}
    ]
    result = validate_blocks_content(with_group, events=events)
    assert "major_event_section_missing" not in result.issue_codes()


def test_major_event_detector():
    assert looks_like_major_event({"title": "Men's 50 km", "context": "olympics"})
    assert looks_like_major_event({"tournament": "The Masters"})
    assert not looks_like_major_event({"title": "Lyn - Brann", "tournament": "Eliteserien"})
    assert not looks_like_major_event(None)
    assert is_major_event_active([{"title": "x"}, {"title": "World Cup qualifier"}])
    assert not is_major_event_active(None)


def test_upgrade_legacy_featured_content():
    legacy = {
        "today": ["⚽ Lyn - Brann, 18:00", "  "],
        "sections": [
            {
                "title": "Olympics",
                "emoji": "🏅",
                "items": [{"text": "Klæbo in the sprint"}, ""],
                "expandItems": ["Johaug in the 10 km"],
            },
            {"title": "Empty", "items": []},
        ],
        "thisWeek": ["⛳ Hovland at Pebble Beach"],
    }
    blocks = upgrade_featured_content(legacy)
    assert [block.type for block in blocks] == ["event-line", "event-group", "divider", "event-line"]
    assert blocks[1].label == "🏅 Olympics"
    assert blocks[1].items == ("Klæbo in the sprint", "Johaug in the 10 km")
    assert blocks[2].text == "This Week"


def test_upgrade_current_and_unknown_shapes():
    assert upgrade_featured_content({"blocks": _event_lines(1)}) == [
        Block(type="event-line", text="⚽ Match 0 at 18:00")
    ]
    assert upgrade_featured_content(_event_lines(1))[0].type == "event-line"
    assert upgrade_featured_content({"something": "else"}) == []
    assert upgrade_featured_content("blocks") == []


def test_validate_featured_content_upgrades_legacy_sections():
    legacy = {"sections": [{"type": "section", "title": "Golf", "emoji": "⛳", "items": ["Hovland"]}]}
    blocks_payload = {
        "blocks": [
            {"type": "headline", "text": "Golf day"},
            {"type": "section", "title": "Golf", "emoji": "⛳", "items": ["Hovland"]},
            {"type": "event-line", "text": "⛳ Hovland tees off"},
        ]
    }
    result = validate_featured_content(blocks_payload)
    assert result.valid is True
    assert result.normalized[1] == Block(type="event-group", label="⛳ Golf", items=("Hovland",))
    assert validate_featured_content(legacy).issue_codes() == ["blocks_too_few"]


def test_non_list_nested_values_are_ignored():
    blocks = [{"type": "section", "title": "X", "items": 5}, {"type": "headline", "text": "Busy day"}]
    result = validate_blocks_content(blocks + _event_lines(2))
    assert [block.type for block in result.normalized] == ["headline", "event-line", "event-line"]

    assert upgrade_featured_content({"today": 5, "sections": "x", "thisWeek": {"a": 1}}) == []
    legacy = {"sections": [{"title": "Golf", "items": ["Hovland"], "expandItems": 3}]}
    assert upgrade_featured_content(legacy)[0].items == ("Hovland",)
    assert not is_major_event_active(7)
