from fastapi.testclient import TestClient

from sportsguard.admin import app
from sportsguard.storage import write_json


def test_health():
    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    payload = response.json()
    assert payload["ok"] is True
    assert "version" in payload


def test_record_run_requires_token(data_dir, monkeypatch):
    monkeypatch.setenv("SG_ADMIN_TOKEN", "secret")
    client = TestClient(app)

    response = client.post("/usage/runs", json={"context": "pipeline", "tokens": 100})
    assert response.status_code == 401

    response = client.post(
        "/usage/runs",
        json={"context": "autopilot", "tokens": 100, "session_tokens": 50},
        headers={"X-Admin-Token": "secret"},
    )
    assert response.status_code == 200
    assert response.json()["run"]["context"] == "autopilot"

    summary = client.get("/usage/summary").json()
    assert summary["runs"] == 1
    assert summary["share"]["autopilot_runs"] == 1
    assert summary["budget"]["daily_used"] == 150


def test_record_run_rejects_unknown_context(data_dir):
    client = TestClient(app)
    response = client.post("/usage/runs", json={"context": "manual"})
    assert response.status_code == 422


def test_gate_endpoint(data_dir):
    client = TestClient(app)
    assert client.get("/usage/gate", params={"utilization": 85}).json()["blocked"] is True
    assert client.get("/usage/gate").json() == {"blocked": False, "reason": "ok"}


def test_autopilot_config_defaults(data_dir):
    client = TestClient(app)
    payload = client.get("/autopilot/config").json()
    assert payload["model"] == "claude-opus-4-6"
    assert payload["max_turns"] == 300


def test_autopilot_config_ignores_unreadable_file(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "autopilot-config.json").write_text("{oops", encoding="utf-8")
    write_json(data_dir / ".quota-status.json", {"evaluation": {"tier": 2, "model": "claude-sonnet-4-6"}})
    payload = TestClient(app).get("/autopilot/config").json()
    assert payload["model"] == "claude-sonnet-4-6"
    assert payload["max_turns"] == 300


def test_quality_endpoints(data_dir):
    client = TestClient(app)
    assert client.get("/quality/history").json() == {"total": 0, "entries": []}
    assert client.get("/quality/hints").json() == {
        "editorial": {"hints": [], "metrics": {}},
        "results": {"hints": [], "metrics": {}},
    }

    history = [
        {"timestamp": f"2026-02-1{index}T12:00:00+00:00", "editorial": {"score": 90, "sport_diversity": 0.1}, "hints_applied": []}
        for index in range(4)
    ]
    write_json(data_dir / "quality-history.json", history)
    payload = client.get("/quality/history", params={"limit": 2}).json()
    assert payload["total"] == 4
    assert len(payload["entries"]) == 2
    hints = client.get("/quality/hints").json()
    assert len(hints["editorial"]["hints"]) == 1
    regression = client.get("/quality/regression").json()
    assert regression["run"]["has_regression"] is False
    assert regression["hint_fatigue"] == {"has_regression": False, "issues": []}


def test_invalid_config_returns_500(tmp_path, monkeypatch):
    monkeypatch.setenv("SG_CONFIG", str(tmp_path / "missing.yml"))
    response = TestClient(app).get("/usage/summary")
    assert response.status_code == 500
