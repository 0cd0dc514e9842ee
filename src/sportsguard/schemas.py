from __future__ import annotations

from typing import Any

import jsonschema

_NULLABLE_SECTION = {"type": ["object", "null"]}

QUALITY_SNAPSHOT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["timestamp", "hints_applied"],
    "properties": {
        "timestamp": {"type": "string", "minLength": 1},
        "editorial": _NULLABLE_SECTION,
        "enrichment": _NULLABLE_SECTION,
        "featured": _NULLABLE_SECTION,
        "watch_plan": _NULLABLE_SECTION,
        "results": _NULLABLE_SECTION,
        "token_usage": _NULLABLE_SECTION,
        "hints_applied": {"type": "array", "items": {"type": "string"}},
    },
}

USAGE_RUN_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["timestamp", "context"],
    "properties": {
        "timestamp": {"type": "string", "minLength": 1},
        "context": {"enum": ["pipeline", "autopilot"]},
        "duration_ms": {"type": "number", "minimum": 0},
        "tokens": {"type": "number", "minimum": 0},
        "session_tokens": {
            "type": "object",
            "properties": {"total": {"type": "number", "minimum": 0}},
        },
        "delta_5h": {"type": "number"},
        "delta_7d": {"type": "number"},
    },
}

SCHEMAS = {
    "quality_history": QUALITY_SNAPSHOT_SCHEMA,
    "usage_runs": USAGE_RUN_SCHEMA,
}


def validate_record(schema: dict[str, Any], payload: Any) -> dict[str, Any]:
    try:
        jsonschema.validate(payload, schema)
        return {"ok": True}
    except jsonschema.ValidationError as exc:
        return {"ok": False, "error": exc.message}
