from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Iterable, Mapping

from .config import UsageConfig, default_config
from .models import GateDecision
from .quota import parse_usage_payload
from .utils import ensure_utc, is_number, log_event, parse_iso

logger = logging.getLogger(__name__)

RUN_CONTEXTS = ("pipeline", "autopilot")
TOKEN_PHASES = {
    "enrichment": "enrichment",
    "featured": "featured",
    "discovery": "discovery",
    "multiDay": "multi_day",
}


def _run_time(run: Any) -> datetime | None:
    if not isinstance(run, Mapping):
        return None
    return parse_iso(run.get("timestamp"))


def _runs_since(runs: Iterable[Any], cutoff: datetime) -> list[Mapping[str, Any]]:
    out = []
    for run in runs:
        stamp = _run_time(run)
        if stamp is not None and stamp > cutoff:
            out.append(run)
    return out


def calculate_delta(before: Any, after: Any) -> dict[str, float]:
    """Utilization change between two usage API payloads, in percentage points."""
    if not before or not after:
        return {"delta_5h": 0.0, "delta_7d": 0.0}

    def util(payload: Any, window: str) -> float:
        section = payload.get(window) if isinstance(payload, Mapping) else None
        value = section.get("utilization") if isinstance(section, Mapping) else None
        return float(value) if is_number(value) else 0.0

    return {
        "delta_5h": round(util(after, "five_hour") - util(before, "five_hour"), 2),
        "delta_7d": round(util(after, "seven_day") - util(before, "seven_day"), 2),
    }


def prune_old_runs(
    runs: Any,
    now: datetime | None = None,
    config: UsageConfig | None = None,
) -> list[dict[str, Any]]:
    """Keep runs newer than the retention window; runs without a timestamp are dropped."""
    if not isinstance(runs, list):
        return []
    cfg = config or default_config().usage
    cutoff = ensure_utc(now) - timedelta(days=cfg.retention_days)
    return [dict(run) for run in _runs_since(runs, cutoff)]


def calculate_share(runs: Any) -> dict[str, Any]:
    share: dict[str, Any] = {
        "total_runs": 0,
        "pipeline_runs": 0,
        "autopilot_runs": 0,
        "total_duration_ms": 0,
        "seven_day": 0.0,
    }
    if not isinstance(runs, list):
        return share
    seven_day = 0.0
    for run in runs:
        if not isinstance(run, Mapping):
            continue
        share["total_runs"] += 1
        context = run.get("context")
        if context in RUN_CONTEXTS:
            share[f"{context}_runs"] += 1
        if is_number(run.get("duration_ms")):
            share["total_duration_ms"] += run["duration_ms"]
        if is_number(run.get("delta_7d")):
            seven_day += run["delta_7d"]
    share["seven_day"] = round(seven_day, 2)
    return share


def aggregate_internal_tokens(quality: Any) -> dict[str, int] | None:
    """Sum per-phase ``tokenUsage.total`` from a pipeline quality document."""
    if not isinstance(quality, Mapping):
        return None
    totals: dict[str, int] = {}
    run_total = 0
    for wire_key, name in TOKEN_PHASES.items():
        phase = quality.get(wire_key)
        usage = phase.get("tokenUsage") if isinstance(phase, Mapping) else None
        total = usage.get("total") if isinstance(usage, Mapping) else None
        value = int(total) if is_number(total) else 0
        totals[name] = value
        run_total += value
    totals["run_total"] = run_total
    return totals


def run_tokens(run: Mapping[str, Any]) -> int:
    total = run.get("tokens") if is_number(run.get("tokens")) else 0
    session = run.get("session_tokens")
    if isinstance(session, Mapping) and is_number(session.get("total")):
        total += session["total"]
    return int(total)


def calculate_budget(
    runs: Any,
    now: datetime | None = None,
    config: UsageConfig | None = None,
) -> dict[str, int]:
    cfg = config or default_config().usage
    ref = ensure_utc(now)
    items = runs if isinstance(runs, list) else []
    daily = sum(run_tokens(run) for run in _runs_since(items, ref - timedelta(hours=24)))
    weekly = sum(run_tokens(run) for run in _runs_since(items, ref - timedelta(days=7)))
    return {
        "daily_used": daily,
        "weekly_used": weekly,
        "daily_budget": cfg.daily_token_budget,
        "weekly_budget": cfg.weekly_token_budget,
        "daily_pct": round(daily / cfg.daily_token_budget * 100) if cfg.daily_token_budget else 0,
        "weekly_pct": round(weekly / cfg.weekly_token_budget * 100) if cfg.weekly_token_budget else 0,
    }


def _state(available: bool | None) -> str | None:
    if available is None:
        return None
    return "available" if available else "unavailable"


def track_api_status(
    api_available: bool,
    previous_status: Mapping[str, Any] | None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Advance the usage API availability state machine.

    ``since`` only moves on a real transition; repeated observations of the
    same state keep the timestamp of the original change.
    """
    stamp = ensure_utc(now).isoformat()
    previous = previous_status if isinstance(previous_status, Mapping) else {}
    prev_available = previous.get("available")
    if not isinstance(prev_available, bool):
        prev_available = None
    available = bool(api_available)
    transitioned = prev_available is not None and prev_available != available

    since = previous.get("since")
    if transitioned or prev_available is None or not isinstance(since, str):
        since = stamp

    if transitioned:
        log_event(
            logger,
            logging.WARNING if not available else logging.INFO,
            "usage_api_transition",
            state=_state(available),
            previous=_state(prev_available),
        )
    return {
        "available": available,
        "since": since,
        "previous_state": _state(prev_available),
        "transitioned": transitioned,
        "checked_at": stamp,
    }


def should_gate(
    runs: Any,
    utilization: Any,
    now: datetime | None = None,
    config: UsageConfig | None = None,
) -> GateDecision:
    """Decide whether the next automated run may start.

    Checks run in order and the first match blocks. Missing runs or an
    unknown utilization never block on their own.
    """
    cfg = config or default_config().usage
    ref = ensure_utc(now)

    if is_number(utilization) and utilization > cfg.gate_utilization_threshold:
        decision = GateDecision(
            True,
            f"utilization {utilization:g}% exceeds {cfg.gate_utilization_threshold:g}% threshold",
        )
        log_event(logger, logging.WARNING, "gate_blocked", rule="utilization", utilization=utilization)
        return decision

    items = runs if isinstance(runs, list) else []
    week = _runs_since(items, ref - timedelta(days=cfg.retention_days))
    autopilot = sum(1 for run in week if run.get("context") == "autopilot")
    if autopilot >= cfg.autopilot_weekly_max_runs:
        log_event(logger, logging.WARNING, "gate_blocked", rule="autopilot_frequency", runs=autopilot)
        return GateDecision(
            True,
            f"autopilot ran {autopilot} times in the last {cfg.retention_days} days "
            f"(limit {cfg.autopilot_weekly_max_runs})",
        )

    burst = len(_runs_since(items, ref - timedelta(hours=cfg.burst_window_hours)))
    if burst >= cfg.burst_max_runs:
        log_event(logger, logging.WARNING, "gate_blocked", rule="burst", runs=burst)
        return GateDecision(
            True,
            f"{burst} runs in the last {cfg.burst_window_hours} hours (limit {cfg.burst_max_runs})",
        )

    log_event(logger, logging.DEBUG, "gate_passed", utilization=utilization, runs=len(items))
    return GateDecision(False, "ok")


def build_run(
    context: str,
    *,
    duration_ms: int | None = None,
    tokens: int | None = None,
    session_tokens: Mapping[str, Any] | None = None,
    before: Any = None,
    after: Any = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    if context not in RUN_CONTEXTS:
        raise ValueError(f"unknown run context: {context}")
    run: dict[str, Any] = {
        "timestamp": ensure_utc(now).isoformat(),
        "context": context,
        "duration_ms": int(duration_ms) if is_number(duration_ms) else 0,
        "tokens": int(tokens) if is_number(tokens) else 0,
    }
    if isinstance(session_tokens, Mapping):
        run["session_tokens"] = dict(session_tokens)
    if before is not None and after is not None:
        run.update(calculate_delta(before, after))
    return run


def build_usage_report(
    runs: Any,
    current_usage: Any = None,
    *,
    api_status: Mapping[str, Any] | None = None,
    now: datetime | None = None,
    config: UsageConfig | None = None,
) -> dict[str, Any]:
    """The persisted usage tracking document."""
    cfg = config or default_config().usage
    ref = ensure_utc(now)
    kept = prune_old_runs(runs, ref, cfg)
    current = parse_usage_payload(current_usage)
    utilization = current.get("seven_day") if current else None
    return {
        "last_updated": ref.isoformat(),
        "current": current,
        "share": calculate_share(kept),
        "budget": calculate_budget(kept, ref, cfg),
        "gate_threshold": cfg.gate_utilization_threshold,
        "gate": should_gate(kept, utilization, ref, cfg).to_dict(),
        "api_status": dict(api_status) if api_status else None,
        "runs": kept,
    }
