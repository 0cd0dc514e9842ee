"""Resolve the autopilot runtime parameters for the next run.

The quota tier's model wins over the configured model, the per-tier turn
budget wins over the flat one, and every field falls back to ``DEFAULTS``
when its input is missing or invalid.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from .models import AutopilotConfig
from .utils import is_number, log_event

logger = logging.getLogger(__name__)

DEFAULTS = AutopilotConfig(
    model="claude-opus-4-6",
    max_turns=300,
    allowed_tools=(
        "Read,Write,Edit,Glob,Grep,Bash(npm:*),Bash(node:*),Bash(git:*),"
        "Bash(gh:*),Bash(date:*),Bash(jq:*)"
    ),
)

VALID_MODELS = (
    "claude-opus-4-6",
    "claude-sonnet-4-6",
    "claude-haiku-4-5-20251001",
)

MAX_TURNS_CAP = 1000


def _pick(cfg: Mapping[str, Any], *keys: str) -> Any:
    # autopilot-config.json is edited by hand and by the autopilot; accept either spelling.
    for key in keys:
        if key in cfg:
            return cfg[key]
    return None


def _resolve_model(cfg: Mapping[str, Any], evaluation: Mapping[str, Any]) -> str:
    tier_model = evaluation.get("model")
    if isinstance(tier_model, str) and tier_model in VALID_MODELS:
        return tier_model
    configured = _pick(cfg, "model")
    if isinstance(configured, str) and configured in VALID_MODELS:
        return configured
    return DEFAULTS.model


def _resolve_max_turns(cfg: Mapping[str, Any], evaluation: Mapping[str, Any]) -> int:
    raw_tier = evaluation.get("tier")
    tier: int | None = 0
    if is_number(raw_tier):
        # A fractional tier matches no per-tier slot.
        tier = int(raw_tier) if float(raw_tier).is_integer() else None
    per_tier = _pick(cfg, "max_turns_per_tier", "maxTurnsPerTier")
    flat = _pick(cfg, "max_turns", "maxTurns")

    slot = None
    if isinstance(per_tier, list) and tier is not None and 0 <= tier < len(per_tier):
        slot = per_tier[tier]
    if is_number(slot):
        turns = slot
    elif is_number(flat):
        turns = flat
    else:
        turns = DEFAULTS.max_turns
    return int(max(0, min(turns, MAX_TURNS_CAP)))


def resolve_autopilot_config(config: Any, quota_status: Any) -> AutopilotConfig:
    cfg = config if isinstance(config, Mapping) else {}
    quota = quota_status if isinstance(quota_status, Mapping) else {}
    evaluation = quota.get("evaluation")
    evaluation = evaluation if isinstance(evaluation, Mapping) else {}

    tools = _pick(cfg, "allowed_tools", "allowedTools")
    resolved = AutopilotConfig(
        model=_resolve_model(cfg, evaluation),
        max_turns=_resolve_max_turns(cfg, evaluation),
        allowed_tools=tools if isinstance(tools, str) and tools else DEFAULTS.allowed_tools,
    )
    log_event(
        logger,
        logging.INFO,
        "autopilot_config_resolved",
        model=resolved.model,
        max_turns=resolved.max_turns,
        tier=evaluation.get("tier"),
    )
    return resolved
