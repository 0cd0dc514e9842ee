from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any

from .autopilot import resolve_autopilot_config
from .config import ConfigError, GovernanceConfig, load_config
from .models import SEVERITY_CRITICAL
from .quality import (
    build_adaptive_hints,
    build_quality_snapshot,
    build_results_hints,
    detect_hint_fatigue,
    detect_quality_regression,
    detect_trend_regression,
    evaluate_editorial_quality,
    evaluate_enrichment_quality,
    evaluate_results_quality,
    evaluate_watch_plan_quality,
    validate_featured_content,
)
from .quota import build_quota_status, fetch_usage, parse_usage_payload, probe_quota
from .storage import StoreError, quality_history_store, read_json, usage_store, write_json
from .usage import (
    build_run,
    build_usage_report,
    calculate_budget,
    calculate_share,
    prune_old_runs,
    should_gate,
    track_api_status,
)
from .utils import configure_logging, json_dumps, log_event

TOKEN_ENV = "CLAUDE_CODE_OAUTH_TOKEN"


def _print(payload: Any) -> None:
    print(json_dumps(payload, indent=2))


def _read_optional(path: str | None) -> Any:
    if not path:
        return None
    return read_json(path)


def _current_usage(args: argparse.Namespace, config: GovernanceConfig) -> dict[str, Any] | None:
    if not getattr(args, "fetch", False):
        return None
    return fetch_usage(os.environ.get(TOKEN_ENV), config=config.quota)


def _cmd_gate(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    runs = usage_store(config).load()
    utilization = args.utilization
    if utilization is None:
        current = parse_usage_payload(_current_usage(args, config))
        utilization = current.get("seven_day") if current else None
    decision = should_gate(runs, utilization, config=config.usage)
    log_event(
        logger,
        logging.INFO,
        "gate_decision",
        blocked=decision.blocked,
        utilization=utilization,
        runs=len(runs),
    )
    _print(decision)
    return 1 if decision.blocked else 0


def _cmd_report(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    store = usage_store(config)
    tracking_path = config.paths.resolve("usage_tracking")
    previous = read_json(tracking_path)
    previous_status = previous.get("api_status") if isinstance(previous, dict) else None

    before = _read_optional(args.before)
    current = _current_usage(args, config)
    session_tokens = {"total": args.session_tokens} if args.session_tokens is not None else None
    run = build_run(
        args.context,
        duration_ms=args.duration_ms,
        tokens=args.tokens,
        session_tokens=session_tokens,
        before=before,
        after=current,
    )
    store.append(run)
    store.prune(lambda records: prune_old_runs(records, config=config.usage))

    # Carried over unchanged when not fetching.
    api_status = previous_status if isinstance(previous_status, dict) else None
    if args.fetch:
        api_status = track_api_status(current is not None, previous_status)
    report = build_usage_report(
        store.load(),
        current,
        api_status=api_status,
        config=config.usage,
    )
    write_json(tracking_path, report)
    log_event(
        logger,
        logging.INFO,
        "usage_reported",
        context=args.context,
        runs=len(report["runs"]),
        path=tracking_path,
    )
    _print({"run": run, "share": report["share"], "budget": report["budget"]})
    return 0


def _cmd_budget(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    runs = prune_old_runs(usage_store(config).load(), config=config.usage)
    _print({"budget": calculate_budget(runs, config=config.usage), "share": calculate_share(runs)})
    return 0


def _cmd_hints(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    history = quality_history_store(config).load()
    editorial = build_adaptive_hints(history, config.hints)
    results = build_results_hints(history, config.hints)
    if args.plain:
        for hint in editorial.hints + results.hints:
            print(hint)
        return 0
    _print({"editorial": editorial, "results": results, "history_size": len(history)})
    return 0


def _cmd_resolve_config(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    autopilot_path = args.autopilot_config or config.paths.resolve("autopilot_config")
    quota_path = args.quota_status or config.paths.resolve("quota_status")
    autopilot_cfg = None
    quota_status = None
    try:
        autopilot_cfg = read_json(autopilot_path)
    except StoreError as exc:
        log_event(logger, logging.WARNING, "autopilot_config_unreadable", error=exc)
    try:
        quota_status = read_json(quota_path)
    except StoreError as exc:
        log_event(logger, logging.WARNING, "quota_status_unreadable", error=exc)
    if autopilot_cfg is None:
        log_event(logger, logging.WARNING, "autopilot_config_missing", path=autopilot_path)
    if quota_status is None:
        log_event(logger, logging.WARNING, "quota_status_missing", path=quota_path, assumed_tier=0)
    resolved = resolve_autopilot_config(autopilot_cfg, quota_status)
    print(resolved.to_github_output())
    return 0


def _cmd_quota(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    token = os.environ.get(TOKEN_ENV)
    if args.probe:
        quota = probe_quota(token, config=config.quota)
    else:
        quota = parse_usage_payload(fetch_usage(token, config=config.quota))
    status = build_quota_status(quota)
    path = config.paths.resolve("quota_status")
    write_json(path, status)
    evaluation = status["evaluation"]
    log_event(
        logger,
        logging.INFO,
        "quota_evaluated",
        tier=evaluation["tier"],
        tier_name=evaluation["tier_name"],
        model=evaluation["model"],
        reason=evaluation["reason"],
    )
    _print(status)
    return 0


def _cmd_regression(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    history = quality_history_store(config).load()
    current = history[-1] if history else None
    previous = history[-2] if len(history) > 1 else None
    run_report = detect_quality_regression(current, previous)
    trend_report = detect_trend_regression(history)
    fatigue_report = detect_hint_fatigue(history)
    _print({"run": run_report, "trend": trend_report, "hint_fatigue": fatigue_report})
    critical = any(
        issue.severity == SEVERITY_CRITICAL
        for issue in run_report.issues + trend_report.issues + fatigue_report.issues
    )
    if args.strict and critical:
        return 1
    return 0


def _cmd_snapshot(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    events = _read_optional(args.events) or []
    if isinstance(events, dict):
        events = events.get("events") or []
    featured = _read_optional(args.featured)
    enriched = _read_optional(args.enriched)
    watch_plan = _read_optional(args.watch_plan)
    results = _read_optional(args.results)
    user_context = _read_optional(args.user_context)
    store = quality_history_store(config)
    history = store.load()

    # The hints fed into this run are the ones derived from the history before it.
    hints_applied = (
        build_adaptive_hints(history, config.hints).hints
        + build_results_hints(history, config.hints).hints
    )
    snapshot = build_quality_snapshot(
        evaluate_editorial_quality(featured, events, config=config.editorial) if featured is not None else None,
        evaluate_enrichment_quality(enriched, config.enrichment) if enriched is not None else None,
        validate_featured_content(featured, events, config.editorial) if featured is not None else None,
        evaluate_watch_plan_quality(watch_plan) if watch_plan is not None else None,
        hints_applied=hints_applied,
        results=(
            evaluate_results_quality(results, events, user_context, config=config.results)
            if args.results
            else None
        ),
        featured_payload=featured,
    )
    store.append(snapshot)
    log_event(logger, logging.INFO, "quality_snapshot_saved", history_size=len(history) + 1)
    _print(snapshot)
    return 0


def _cmd_serve(args: argparse.Namespace, config: GovernanceConfig, logger: logging.Logger) -> int:
    import uvicorn

    log_event(logger, logging.INFO, "status_api_starting", host=args.host, port=args.port)
    uvicorn.run("sportsguard.admin:app", host=args.host, port=args.port, log_level="info")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sportsguard", description="sportsguard CLI")
    parser.add_argument(
        "--config",
        dest="config",
        default=None,
        help="Path to config.yml (defaults to SG_CONFIG or built-in defaults)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    gate_parser = subparsers.add_parser("gate", help="Decide whether the next run may start")
    gate_parser.add_argument("--utilization", type=float, default=None, help="7-day utilization in percent")
    gate_parser.add_argument("--fetch", action="store_true", help="Read utilization from the usage API")
    gate_parser.set_defaults(func=_cmd_gate)

    report_parser = subparsers.add_parser("report", help="Record a finished run")
    report_parser.add_argument("context", choices=["pipeline", "autopilot"], help="Run context")
    report_parser.add_argument("--duration-ms", type=int, default=0, help="Run duration")
    report_parser.add_argument("--tokens", type=int, default=0, help="Internal pipeline tokens")
    report_parser.add_argument("--session-tokens", type=int, default=None, help="Agent session tokens")
    report_parser.add_argument("--before", default=None, help="Usage API payload captured before the run")
    report_parser.add_argument("--fetch", action="store_true", help="Read current usage from the usage API")
    report_parser.set_defaults(func=_cmd_report)

    budget_parser = subparsers.add_parser("budget", help="Show token budget utilization")
    budget_parser.set_defaults(func=_cmd_budget)

    hints_parser = subparsers.add_parser("hints", help="Show adaptive hints for the next run")
    hints_parser.add_argument("--plain", action="store_true", help="Print one hint per line")
    hints_parser.set_defaults(func=_cmd_hints)

    resolve_parser = subparsers.add_parser(
        "resolve-config", help="Print autopilot model/max_turns/allowed_tools lines"
    )
    resolve_parser.add_argument("--autopilot-config", default=None, help="Path to autopilot-config.json")
    resolve_parser.add_argument("--quota-status", default=None, help="Path to the quota status file")
    resolve_parser.set_defaults(func=_cmd_resolve_config)

    quota_parser = subparsers.add_parser("quota", help="Evaluate the quota tier and persist it")
    quota_parser.add_argument(
        "--probe", action="store_true", help="Read utilization from rate-limit headers instead"
    )
    quota_parser.set_defaults(func=_cmd_quota)

    regression_parser = subparsers.add_parser("regression", help="Check the quality history for regressions")
    regression_parser.add_argument("--strict", action="store_true", help="Exit 1 on critical regressions")
    regression_parser.set_defaults(func=_cmd_regression)

    snapshot_parser = subparsers.add_parser("snapshot", help="Score a run's artifacts and append a snapshot")
    snapshot_parser.add_argument("--events", default=None, help="events.json")
    snapshot_parser.add_argument("--featured", default=None, help="featured.json")
    snapshot_parser.add_argument("--enriched", default=None, help="Enriched events JSON")
    snapshot_parser.add_argument("--watch-plan", default=None, help="watch-plan.json")
    snapshot_parser.add_argument("--results", default=None, help="recent-results.json")
    snapshot_parser.add_argument("--user-context", default=None, help="user-context.json")
    snapshot_parser.set_defaults(func=_cmd_snapshot)

    serve_parser = subparsers.add_parser("serve", help="Run the status API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8080, help="Bind port")
    serve_parser.set_defaults(func=_cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = configure_logging("sportsguard")
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        log_event(logger, logging.ERROR, "config_error", error=str(exc))
        return 1
    try:
        return args.func(args, config, logger)
    except StoreError as exc:
        log_event(logger, logging.ERROR, "store_error", error=str(exc))
        return 1


if __name__ == "__main__":
    sys.exit(main())
