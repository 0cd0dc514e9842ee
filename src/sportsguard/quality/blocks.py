"""Block sanitizing, featured-content upgrade and the blocks validator.

Featured content arrives in two shapes. The current one is
``{"blocks": [...]}``; the legacy one is ``{"today": [...], "sections": [...],
"thisWeek": [...]}``. Both are upgraded to a list of :class:`Block` by
:func:`upgrade_featured_content` so evaluators only ever see blocks.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping

from ..config import EditorialConfig, default_config
from ..models import Block, MetricResult, error, warning
from ..utils import as_list, clamp, count_words, normalize_line

BLOCK_TYPES = ("headline", "event-line", "event-group", "narrative", "divider")
EVENT_BLOCK_TYPES = ("event-line", "event-group")
LEGACY_SECTION_TYPE = "section"

MAJOR_EVENT_RE = re.compile(
    r"olympics|world cup|champions league|grand slam|masters|major|playoff|final",
    re.IGNORECASE,
)


def looks_like_major_event(event: Mapping[str, Any] | None) -> bool:
    if not isinstance(event, Mapping):
        return False
    haystack = " ".join(
        str(event.get(key) or "") for key in ("context", "tournament", "title")
    )
    return bool(MAJOR_EVENT_RE.search(haystack))


def is_major_event_active(events: Iterable[Any] | None) -> bool:
    return any(looks_like_major_event(event) for event in as_list(events))


def _item_text(item: Any) -> str:
    if isinstance(item, str):
        return normalize_line(item)
    if isinstance(item, Mapping):
        return normalize_line(item.get("text"))
    return ""


def _group_from_section(section: Mapping[str, Any]) -> Block | None:
    title = normalize_line(section.get("title"))
    emoji = normalize_line(section.get("emoji"))
    label = normalize_line(f"{emoji} {title}")
    items = [_item_text(item) for item in as_list(section.get("items"))]
    items.extend(_item_text(item) for item in as_list(section.get("expandItems")))
    items = [item for item in items if item]
    if not items:
        return None
    return Block(type="event-group", label=label, items=tuple(items))


def sanitize_block(block: Any) -> Block | None:
    if isinstance(block, Block):
        block = block.to_dict()
    if not isinstance(block, Mapping):
        return None
    block_type = block.get("type")
    block_type = block_type.strip() if isinstance(block_type, str) else ""

    if block_type == LEGACY_SECTION_TYPE:
        return _group_from_section(block)
    if block_type not in BLOCK_TYPES:
        return None

    if block_type == "event-group":
        raw_items = block.get("items")
        items = [_item_text(item) for item in raw_items] if isinstance(raw_items, list) else []
        items = [item for item in items if item]
        if not items:
            return None
        return Block(type=block_type, label=normalize_line(block.get("label")), items=tuple(items))

    text = normalize_line(block.get("text"))
    if block_type != "divider" and not text:
        return None
    return Block(type=block_type, text=text)


def sanitize_blocks(blocks: Iterable[Any]) -> list[Block]:
    sanitized = (sanitize_block(block) for block in blocks)
    return [block for block in sanitized if block is not None]


def upgrade_featured_content(featured: Any) -> list[Block]:
    if isinstance(featured, list):
        return sanitize_blocks(featured)
    if not isinstance(featured, Mapping):
        return []
    if isinstance(featured.get("blocks"), list):
        return sanitize_blocks(featured["blocks"])

    legacy_keys = ("today", "sections", "thisWeek")
    if not any(key in featured for key in legacy_keys):
        return []

    blocks: list[Block] = []
    for line in as_list(featured.get("today")):
        text = _item_text(line)
        if text:
            blocks.append(Block(type="event-line", text=text))
    for section in as_list(featured.get("sections")):
        if isinstance(section, Mapping):
            group = _group_from_section(section)
            if group is not None:
                blocks.append(group)
    week_lines = [_item_text(line) for line in as_list(featured.get("thisWeek"))]
    week_lines = [line for line in week_lines if line]
    if week_lines:
        blocks.append(Block(type="divider", text="This Week"))
        blocks.extend(Block(type="event-line", text=line) for line in week_lines)
    return blocks


def block_word_limit(block: Block, limits: Mapping[str, int]) -> tuple[int, str] | None:
    limit = limits.get(block.type)
    if not limit:
        return None
    text = block.label if block.type == "event-group" else block.text
    if not text:
        return None
    return limit, text


def validate_blocks_content(
    blocks: Any,
    events: Iterable[Any] | None = None,
    config: EditorialConfig | None = None,
) -> MetricResult:
    cfg = config or default_config().editorial
    if not isinstance(blocks, list) or not blocks:
        return MetricResult(
            score=0,
            metrics={"block_count": 0},
            issues=[error("blocks_empty", "Blocks array is empty.")],
            normalized=[],
        )

    sanitized = sanitize_blocks(blocks)
    issues = []
    score = 100

    if len(sanitized) < cfg.min_blocks:
        issues.append(
            error(
                "blocks_too_few",
                f"Only {len(sanitized)} valid blocks (min {cfg.min_blocks}).",
            )
        )
        score -= 35

    if len(sanitized) > cfg.max_blocks:
        overflow = len(sanitized) - cfg.max_blocks
        issues.append(
            warning(
                "blocks_too_many",
                f"{len(sanitized)} blocks exceeds recommended max of {cfg.max_blocks}.",
            )
        )
        score -= min(overflow * cfg.overflow_penalty_per_block, cfg.overflow_penalty_cap)

    event_blocks = [block for block in sanitized if block.type in EVENT_BLOCK_TYPES]
    if not event_blocks:
        issues.append(
            error(
                "blocks_missing_events",
                "At least 1 event-line or event-group block is required.",
            )
        )
        score -= 25

    narratives = sum(1 for block in sanitized if block.type == "narrative")
    if narratives > cfg.max_narratives:
        issues.append(
            warning(
                "too_many_narratives",
                f"{narratives} narratives exceeds max of {cfg.max_narratives}.",
            )
        )
        score -= 10

    for block in sanitized:
        checked = block_word_limit(block, cfg.word_limits)
        if checked is None:
            continue
        limit, text = checked
        if count_words(text) > limit:
            issues.append(
                warning(
                    "block_text_too_long",
                    f'{block.type} block exceeds {limit} words: "{text[:50]}..."',
                )
            )
            score -= 5

    if is_major_event_active(events) and not any(b.type == "event-group" for b in sanitized):
        issues.append(
            warning(
                "major_event_section_missing",
                "A major event is active but no event-group section covers it.",
            )
        )
        score -= 10

    return MetricResult(
        score=int(clamp(score, 0, 100)),
        metrics={"block_count": len(sanitized), "event_block_count": len(event_blocks)},
        issues=issues,
        normalized=sanitized,
    )


def validate_featured_content(
    featured: Any,
    events: Iterable[Any] | None = None,
    config: EditorialConfig | None = None,
) -> MetricResult:
    blocks = [block.to_dict() for block in upgrade_featured_content(featured)]
    return validate_blocks_content(blocks, events=events, config=config)
