from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone

import pytest

from sportsguard.config import DEFAULT_CONFIG, build_config

NOW = datetime(2026, 2, 12, 12, 0, tzinfo=timezone.utc)

_ENV_VARS = (
    "SG_CONFIG",
    "SG_DATA_DIR",
    "SG_ADMIN_TOKEN",
    "SG_LOG_FILE",
    "SG_LOG_LEVELS",
    "CLAUDE_CODE_OAUTH_TOKEN",
)


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SG_LOG_LEVEL", "CRITICAL")
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers = handlers
    root.setLevel(level)


@pytest.fixture
def data_dir(tmp_path, monkeypatch):
    path = tmp_path / "data"
    monkeypatch.setenv("SG_DATA_DIR", str(path))
    return path


def make_config(data_dir, **sections):
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg["paths"]["data_dir"] = str(data_dir)
    for name, values in sections.items():
        cfg[name].update(values)
    return build_config(cfg)
