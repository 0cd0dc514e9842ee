from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml


class ConfigError(ValueError):
    pass


@dataclass(frozen=True)
class PathsConfig:
    data_dir: str
    quality_history: str
    usage_tracking: str
    quota_status: str
    autopilot_config: str
    state_db: str

    def resolve(self, name: str) -> Path:
        return Path(self.data_dir) / getattr(self, name)


@dataclass(frozen=True)
class EditorialConfig:
    min_blocks: int
    max_blocks: int
    max_narratives: int
    overflow_penalty_per_block: int
    overflow_penalty_cap: int
    window_days: int
    must_watch_importance: int
    quiet_day_max_event_lines: int
    quiet_day_penalty: float
    word_limits: dict[str, int]


@dataclass(frozen=True)
class EnrichmentConfig:
    min_importance_coverage: float
    min_summary_coverage: float
    min_relevance_coverage: float


@dataclass(frozen=True)
class ResultsConfig:
    fresh_hours: float
    stale_hours: float


@dataclass(frozen=True)
class HintConfig:
    min_history: int
    window: int


@dataclass(frozen=True)
class UsageConfig:
    retention_days: int
    daily_token_budget: int
    weekly_token_budget: int
    gate_utilization_threshold: float
    autopilot_weekly_max_runs: int
    burst_window_hours: int
    burst_max_runs: int


@dataclass(frozen=True)
class HistoryConfig:
    backend: str
    max_entries: int


@dataclass(frozen=True)
class QuotaConfig:
    usage_api_url: str
    timeout_seconds: int


@dataclass(frozen=True)
class GovernanceConfig:
    paths: PathsConfig
    editorial: EditorialConfig
    enrichment: EnrichmentConfig
    results: ResultsConfig
    hints: HintConfig
    usage: UsageConfig
    history: HistoryConfig
    quota: QuotaConfig


DEFAULT_CONFIG: dict[str, Any] = {
    "paths": {
        "data_dir": "docs/data",
        "quality_history": "quality-history.json",
        "usage_tracking": "usage-tracking.json",
        "quota_status": ".quota-status.json",
        "autopilot_config": "autopilot-config.json",
        "state_db": "sportsguard.sqlite3",
    },
    "editorial": {
        "min_blocks": 3,
        "max_blocks": 10,
        "max_narratives": 3,
        "overflow_penalty_per_block": 5,
        "overflow_penalty_cap": 30,
        "window_days": 3,
        "must_watch_importance": 4,
        "quiet_day_max_event_lines": 5,
        "quiet_day_penalty": 0.3,
        "word_limits": {
            "headline": 15,
            "event-line": 20,
            "event-group": 20,
            "narrative": 40,
            "divider": 8,
        },
    },
    "enrichment": {
        "min_importance_coverage": 0.85,
        "min_summary_coverage": 0.6,
        "min_relevance_coverage": 0.85,
    },
    "results": {
        "fresh_hours": 6.0,
        "stale_hours": 48.0,
    },
    "hints": {
        "min_history": 3,
        "window": 5,
    },
    "usage": {
        "retention_days": 7,
        "daily_token_budget": 5_000_000,
        "weekly_token_budget": 25_000_000,
        "gate_utilization_threshold": 80.0,
        "autopilot_weekly_max_runs": 14,
        "burst_window_hours": 5,
        "burst_max_runs": 10,
    },
    "history": {
        "backend": "json",
        "max_entries": 100,
    },
    "quota": {
        "usage_api_url": "https://api.anthropic.com/api/oauth/usage",
        "timeout_seconds": 10,
    },
}

HISTORY_BACKENDS = ("json", "sqlite")


def load_config(path: str | os.PathLike[str] | None = None) -> GovernanceConfig:
    cfg = load_config_dict(path)
    errors = validate_config(cfg)
    if errors:
        raise ConfigError("Invalid config: " + "; ".join(errors))
    return build_config(cfg)


def load_config_dict(path: str | os.PathLike[str] | None = None) -> dict[str, Any]:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    config_path = path or os.environ.get("SG_CONFIG")
    if config_path:
        overrides = _read_yaml(Path(config_path))
        cfg = _deep_merge(cfg, overrides)
    data_dir = os.environ.get("SG_DATA_DIR")
    if data_dir:
        cfg["paths"]["data_dir"] = data_dir
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {path}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError("Config root must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def validate_config(cfg: dict[str, Any]) -> list[str]:
    errors: list[str] = []
    _validate_dict(cfg, DEFAULT_CONFIG, "config", errors)
    if not errors:
        backend = cfg["history"]["backend"]
        if backend not in HISTORY_BACKENDS:
            errors.append(f"config.history.backend must be one of {', '.join(HISTORY_BACKENDS)}")
        if cfg["hints"]["min_history"] < 1:
            errors.append("config.hints.min_history must be at least 1")
        if cfg["hints"]["window"] < cfg["hints"]["min_history"]:
            errors.append("config.hints.window must not be smaller than config.hints.min_history")
    return errors


def _validate_dict(value: dict[str, Any], schema: dict[str, Any], path: str, errors: list[str]) -> None:
    if not isinstance(value, dict):
        errors.append(f"{path} must be an object")
        return
    for key in schema.keys():
        if key not in value:
            errors.append(f"missing {path}.{key}")
    for key in value.keys():
        if key not in schema:
            errors.append(f"unknown {path}.{key}")
    for key, default in schema.items():
        if key not in value:
            continue
        _validate_value(value[key], default, f"{path}.{key}", errors)


def _validate_value(value: Any, default: Any, path: str, errors: list[str]) -> None:
    if isinstance(default, dict):
        _validate_dict(value, default, path, errors)
        return
    if isinstance(default, bool):
        if not isinstance(value, bool):
            errors.append(f"{path} must be a boolean")
        return
    if isinstance(default, int):
        if not isinstance(value, int) or isinstance(value, bool):
            errors.append(f"{path} must be an integer")
        return
    if isinstance(default, float):
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            errors.append(f"{path} must be a number")
        return
    if isinstance(default, str):
        if not isinstance(value, str):
            errors.append(f"{path} must be a string")
        return


def build_config(cfg: dict[str, Any]) -> GovernanceConfig:
    paths_cfg = cfg.get("paths") or {}
    editorial_cfg = cfg.get("editorial") or {}
    enrichment_cfg = cfg.get("enrichment") or {}
    results_cfg = cfg.get("results") or {}
    hints_cfg = cfg.get("hints") or {}
    usage_cfg = cfg.get("usage") or {}
    history_cfg = cfg.get("history") or {}
    quota_cfg = cfg.get("quota") or {}

    paths = PathsConfig(
        data_dir=str(paths_cfg.get("data_dir")),
        quality_history=str(paths_cfg.get("quality_history")),
        usage_tracking=str(paths_cfg.get("usage_tracking")),
        quota_status=str(paths_cfg.get("quota_status")),
        autopilot_config=str(paths_cfg.get("autopilot_config")),
        state_db=str(paths_cfg.get("state_db")),
    )

    editorial = EditorialConfig(
        min_blocks=int(editorial_cfg.get("min_blocks")),
        max_blocks=int(editorial_cfg.get("max_blocks")),
        max_narratives=int(editorial_cfg.get("max_narratives")),
        overflow_penalty_per_block=int(editorial_cfg.get("overflow_penalty_per_block")),
        overflow_penalty_cap=int(editorial_cfg.get("overflow_penalty_cap")),
        window_days=int(editorial_cfg.get("window_days")),
        must_watch_importance=int(editorial_cfg.get("must_watch_importance")),
        quiet_day_max_event_lines=int(editorial_cfg.get("quiet_day_max_event_lines")),
        quiet_day_penalty=float(editorial_cfg.get("quiet_day_penalty")),
        word_limits={
            str(key): int(value)
            for key, value in (editorial_cfg.get("word_limits") or {}).items()
        },
    )

    enrichment = EnrichmentConfig(
        min_importance_coverage=float(enrichment_cfg.get("min_importance_coverage")),
        min_summary_coverage=float(enrichment_cfg.get("min_summary_coverage")),
        min_relevance_coverage=float(enrichment_cfg.get("min_relevance_coverage")),
    )

    results = ResultsConfig(
        fresh_hours=float(results_cfg.get("fresh_hours")),
        stale_hours=float(results_cfg.get("stale_hours")),
    )

    hints = HintConfig(
        min_history=int(hints_cfg.get("min_history")),
        window=int(hints_cfg.get("window")),
    )

    usage = UsageConfig(
        retention_days=int(usage_cfg.get("retention_days")),
        daily_token_budget=int(usage_cfg.get("daily_token_budget")),
        weekly_token_budget=int(usage_cfg.get("weekly_token_budget")),
        gate_utilization_threshold=float(usage_cfg.get("gate_utilization_threshold")),
        autopilot_weekly_max_runs=int(usage_cfg.get("autopilot_weekly_max_runs")),
        burst_window_hours=int(usage_cfg.get("burst_window_hours")),
        burst_max_runs=int(usage_cfg.get("burst_max_runs")),
    )

    history = HistoryConfig(
        backend=str(history_cfg.get("backend")),
        max_entries=int(history_cfg.get("max_entries")),
    )

    quota = QuotaConfig(
        usage_api_url=str(quota_cfg.get("usage_api_url")),
        timeout_seconds=int(quota_cfg.get("timeout_seconds")),
    )

    return GovernanceConfig(
        paths=paths,
        editorial=editorial,
        enrichment=enrichment,
        results=results,
        hints=hints,
        usage=usage,
        history=history,
        quota=quota,
    )


@lru_cache(maxsize=1)
def default_config() -> GovernanceConfig:
    return build_config(copy.deepcopy(DEFAULT_CONFIG))
