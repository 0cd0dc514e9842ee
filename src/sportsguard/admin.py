from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Literal

from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field

from .autopilot import resolve_autopilot_config
from .config import ConfigError, GovernanceConfig, load_config
from .quality import (
    build_adaptive_hints,
    build_results_hints,
    detect_hint_fatigue,
    detect_quality_regression,
    detect_trend_regression,
)
from .storage import StoreError, quality_history_store, read_json, usage_store
from .usage import build_run, calculate_budget, calculate_share, prune_old_runs, should_gate
from .utils import configure_logging, log_event

app = FastAPI(title="sportsguard status API")
logger = logging.getLogger("sportsguard.admin")


def _require_admin_token(request: Request) -> None:
    token = os.environ.get("SG_ADMIN_TOKEN")
    if not token:
        return
    if request.headers.get("X-Admin-Token") != token:
        raise HTTPException(status_code=401, detail="unauthorized")


def _get_config() -> GovernanceConfig:
    try:
        return load_config()
    except ConfigError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _load(store) -> list[dict[str, object]]:
    try:
        return store.load()
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def _get_version() -> str:
    try:
        from importlib.metadata import version

        return version("sportsguard")
    except Exception:  # noqa: BLE001
        return "unknown"


class RunReportRequest(BaseModel):
    context: Literal["pipeline", "autopilot"]
    duration_ms: int = Field(default=0, ge=0)
    tokens: int = Field(default=0, ge=0)
    session_tokens: int | None = Field(default=None, ge=0)


@app.on_event("startup")
def _startup() -> None:
    configure_logging("sportsguard")


@app.get("/health")
def health() -> dict[str, object]:
    return {
        "ok": True,
        "version": _get_version(),
        "time": datetime.now(tz=timezone.utc).isoformat(),
    }


@app.get("/quality/history")
def quality_history(limit: int = 20) -> dict[str, object]:
    history = _load(quality_history_store(_get_config()))
    entries = history[-limit:] if limit > 0 else []
    return {"total": len(history), "entries": entries}


@app.get("/quality/hints")
def quality_hints() -> dict[str, object]:
    config = _get_config()
    history = _load(quality_history_store(config))
    return {
        "editorial": build_adaptive_hints(history, config.hints).to_dict(),
        "results": build_results_hints(history, config.hints).to_dict(),
    }


@app.get("/quality/regression")
def quality_regression() -> dict[str, object]:
    history = _load(quality_history_store(_get_config()))
    current = history[-1] if history else None
    previous = history[-2] if len(history) > 1 else None
    return {
        "run": detect_quality_regression(current, previous).to_dict(),
        "trend": detect_trend_regression(history).to_dict(),
        "hint_fatigue": detect_hint_fatigue(history).to_dict(),
    }


@app.get("/usage/summary")
def usage_summary() -> dict[str, object]:
    config = _get_config()
    runs = prune_old_runs(_load(usage_store(config)), config=config.usage)
    return {
        "runs": len(runs),
        "share": calculate_share(runs),
        "budget": calculate_budget(runs, config=config.usage),
    }


@app.get("/usage/gate")
def usage_gate(utilization: float | None = None) -> dict[str, object]:
    config = _get_config()
    runs = _load(usage_store(config))
    return should_gate(runs, utilization, config=config.usage).to_dict()


@app.post("/usage/runs", dependencies=[Depends(_require_admin_token)])
def usage_runs_create(payload: RunReportRequest) -> dict[str, object]:
    config = _get_config()
    store = usage_store(config)
    session_tokens = {"total": payload.session_tokens} if payload.session_tokens is not None else None
    run = build_run(
        payload.context,
        duration_ms=payload.duration_ms,
        tokens=payload.tokens,
        session_tokens=session_tokens,
    )
    try:
        store.append(run)
        store.prune(lambda records: prune_old_runs(records, config=config.usage))
    except StoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    log_event(logger, logging.INFO, "usage_run_recorded", context=payload.context)
    return {"run": run}


def _read_optional(path) -> object:
    try:
        return read_json(path)
    except StoreError as exc:
        log_event(logger, logging.WARNING, "status_file_unreadable", path=path, error=exc)
        return None


@app.get("/autopilot/config")
def autopilot_config() -> dict[str, object]:
    config = _get_config()
    autopilot_cfg = _read_optional(config.paths.resolve("autopilot_config"))
    quota_status = _read_optional(config.paths.resolve("quota_status"))
    return resolve_autopilot_config(autopilot_cfg, quota_status).to_dict()
