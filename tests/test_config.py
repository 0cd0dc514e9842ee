import pytest

from sportsguard.config import DEFAULT_CONFIG, ConfigError, default_config, load_config, validate_config


def _write(tmp_path, text):
    path = tmp_path / "config.yml"
    path.write_text(text, encoding="utf-8")
    return path


def test_defaults_without_config_file():
    cfg = load_config()
    assert cfg.paths.data_dir == "docs/data"
    assert cfg.usage.gate_utilization_threshold == 80.0
    assert cfg.hints.min_history == 3
    assert cfg.history.backend == "json"
    assert validate_config(DEFAULT_CONFIG) == []


def test_yaml_overrides_are_merged(tmp_path):
    path = _write(tmp_path, "usage:\n  gate_utilization_threshold: 90\nhints:\n  window: 7\n")
    cfg = load_config(path)
    assert cfg.usage.gate_utilization_threshold == 90.0
    assert cfg.usage.retention_days == 7
    assert cfg.hints.window == 7
    assert cfg.hints.min_history == 3


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = _write(tmp_path, "history:\n  max_entries: 10\n")
    monkeypatch.setenv("SG_CONFIG", str(path))
    assert load_config().history.max_entries == 10


def test_data_dir_override(monkeypatch):
    monkeypatch.setenv("SG_DATA_DIR", "/tmp/sg-data")
    cfg = load_config()
    assert cfg.paths.data_dir == "/tmp/sg-data"
    assert str(cfg.paths.resolve("quality_history")) == "/tmp/sg-data/quality-history.json"
    assert default_config().paths.data_dir == "docs/data"


def test_unknown_key_is_rejected(tmp_path):
    path = _write(tmp_path, "usage:\n  bogus: 1\n")
    with pytest.raises(ConfigError) as excinfo:
        load_config(path)
    assert "unknown config.usage.bogus" in str(excinfo.value)


def test_wrong_type_is_rejected(tmp_path):
    path = _write(tmp_path, "hints:\n  min_history: three\n")
    with pytest.raises(ConfigError) as excinfo:
        load_config(path)
    assert "config.hints.min_history must be an integer" in str(excinfo.value)


def test_invalid_history_backend(tmp_path):
    path = _write(tmp_path, "history:\n  backend: postgres\n")
    with pytest.raises(ConfigError) as excinfo:
        load_config(path)
    assert "config.history.backend" in str(excinfo.value)


def test_window_smaller_than_min_history(tmp_path):
    path = _write(tmp_path, "hints:\n  min_history: 4\n  window: 2\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_missing_or_malformed_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "missing.yml")
    with pytest.raises(ConfigError):
        load_config(_write(tmp_path, "- just\n- a list\n"))
    assert load_config(_write(tmp_path, "")).usage.burst_max_runs == 10
