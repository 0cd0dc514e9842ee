from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"
SEVERITY_CRITICAL = "critical"


@dataclass(frozen=True)
class Issue:
    severity: str
    code: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"severity": self.severity, "code": self.code, "message": self.message}


def error(code: str, message: str) -> Issue:
    return Issue(SEVERITY_ERROR, code, message)


def warning(code: str, message: str) -> Issue:
    return Issue(SEVERITY_WARNING, code, message)


def critical(code: str, message: str) -> Issue:
    return Issue(SEVERITY_CRITICAL, code, message)


@dataclass(frozen=True)
class Block:
    type: str
    text: str | None = None
    label: str | None = None
    items: tuple[str, ...] = ()

    def all_text(self) -> str:
        parts = [self.text or "", self.label or "", *self.items]
        return " ".join(part for part in parts if part)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type}
        if self.type == "event-group":
            out["label"] = self.label or ""
            out["items"] = list(self.items)
        else:
            out["text"] = self.text or ""
        return out


@dataclass
class MetricResult:
    score: int
    metrics: dict[str, float]
    issues: list[Issue] = field(default_factory=list)
    normalized: list[Block] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def valid(self) -> bool:
        return not any(issue.severity == SEVERITY_ERROR for issue in self.issues)

    def issue_codes(self) -> list[str]:
        return [issue.code for issue in self.issues]

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "score": self.score,
            "metrics": dict(self.metrics),
            "issues": [issue.to_dict() for issue in self.issues],
            "valid": self.valid,
        }
        if self.normalized is not None:
            out["normalized"] = {"blocks": [block.to_dict() for block in self.normalized]}
        out.update(self.extra)
        return out


@dataclass(frozen=True)
class HintSet:
    hints: list[str]
    metrics: dict[str, float | None]

    def to_dict(self) -> dict[str, Any]:
        return {"hints": list(self.hints), "metrics": dict(self.metrics)}


@dataclass(frozen=True)
class GateDecision:
    blocked: bool
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"blocked": self.blocked, "reason": self.reason}


@dataclass(frozen=True)
class AutopilotConfig:
    model: str
    max_turns: int
    allowed_tools: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_turns": self.max_turns,
            "allowed_tools": self.allowed_tools,
        }

    def to_github_output(self) -> str:
        return "\n".join(
            [
                f"model={self.model}",
                f"max_turns={self.max_turns}",
                f"allowed_tools={self.allowed_tools}",
            ]
        )
