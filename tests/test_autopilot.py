from sportsguard.autopilot import DEFAULTS, resolve_autopilot_config


def _status(tier, model=None):
    return {"evaluation": {"tier": tier, "model": model}}


def test_defaults_without_inputs():
    assert resolve_autopilot_config(None, None) == DEFAULTS
    assert resolve_autopilot_config("garbage", ["x"]) == DEFAULTS


def test_max_turns_is_clamped():
    assert resolve_autopilot_config({"max_turns": 5000}, None).max_turns == 1000
    assert resolve_autopilot_config({"max_turns": -10}, None).max_turns == 0
    assert resolve_autopilot_config({"max_turns": "many"}, None).max_turns == DEFAULTS.max_turns


def test_per_tier_turns_win_over_flat_value():
    config = {"max_turns": 250, "max_turns_per_tier": [300, 200, 100, 0]}
    assert resolve_autopilot_config(config, _status(2)).max_turns == 100
    assert resolve_autopilot_config(config, _status(7)).max_turns == 250
    assert resolve_autopilot_config(config, None).max_turns == 300


def test_non_numeric_tier_counts_as_zero():
    config = {"max_turns_per_tier": [300, 200, 100, 0]}
    assert resolve_autopilot_config(config, _status(True)).max_turns == 300
    assert resolve_autopilot_config(config, _status("2")).max_turns == 300


def test_tier_model_overrides_configured_model():
    config = {"model": "claude-haiku-4-5-20251001"}
    assert resolve_autopilot_config(config, _status(1, "claude-sonnet-4-6")).model == "claude-sonnet-4-6"
    assert resolve_autopilot_config(config, _status(0)).model == "claude-haiku-4-5-20251001"
    assert resolve_autopilot_config({"model": "gpt-4"}, None).model == DEFAULTS.model


def test_camel_case_keys_are_accepted():
    config = {"maxTurnsPerTier": [50, 40], "allowedTools": "Read,Grep"}
    resolved = resolve_autopilot_config(config, _status(1))
    assert resolved.max_turns == 40
    assert resolved.allowed_tools == "Read,Grep"


def test_github_output_lines():
    resolved = resolve_autopilot_config({"max_turns": 120, "allowed_tools": "Read"}, None)
    assert resolved.to_github_output() == "model=claude-opus-4-6\nmax_turns=120\nallowed_tools=Read"


def test_fractional_tier_falls_back_to_flat_turns():
    config = {"max_turns": 250, "max_turns_per_tier": [300, 200, 100, 0]}
    assert resolve_autopilot_config(config, _status(1.5)).max_turns == 250
    assert resolve_autopilot_config(config, _status(2.0)).max_turns == 100
