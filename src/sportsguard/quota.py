"""Quota tiers and the usage API client.

Utilization is reported in percent (0-100). The higher of the five-hour and
seven-day windows picks the tier, so the most constrained window always wins.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from http.client import HTTPException
from typing import Any, Mapping
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .config import QuotaConfig, default_config
from .utils import ensure_utc, is_number, log_event, parse_iso

logger = logging.getLogger(__name__)

PROBE_URL = "https://api.anthropic.com/v1/messages"
PROBE_MODEL = "claude-haiku-4-5-20251001"
RESET_RELAX_MINUTES = 60
USER_AGENT = "sportsguard/1.0"


class QuotaProbeError(RuntimeError):
    pass


@dataclass(frozen=True)
class Tier:
    name: str
    max_priority: int
    model: str | None
    ceiling_5h: float
    ceiling_7d: float


TIERS = (
    Tier("green", 3, None, 50, 50),
    Tier("moderate", 2, "claude-sonnet-4-6", 70, 70),
    Tier("high", 1, "claude-sonnet-4-6", 85, 85),
    Tier("critical", 0, None, math.inf, math.inf),
)


def _percent(value: Any) -> float | None:
    if is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def parse_usage_payload(payload: Any) -> dict[str, Any] | None:
    """Normalize a usage API response (``five_hour``/``seven_day`` in percent)."""
    if not isinstance(payload, Mapping):
        return None
    five = payload.get("five_hour") if isinstance(payload.get("five_hour"), Mapping) else {}
    seven = payload.get("seven_day") if isinstance(payload.get("seven_day"), Mapping) else {}
    five_hour = _percent(five.get("utilization"))
    seven_day = _percent(seven.get("utilization"))
    if five_hour is None and seven_day is None:
        return None
    return {
        "five_hour": five_hour,
        "seven_day": seven_day,
        "five_hour_reset": five.get("resets_at"),
        "seven_day_reset": seven.get("resets_at"),
    }


def parse_rate_limit_headers(headers: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Read unified rate-limit headers; they carry ratios, converted here to percent."""
    if not headers:
        return None
    lowered = {str(key).lower(): value for key, value in headers.items()}
    raw_5h = lowered.get("anthropic-ratelimit-unified-5h-utilization")
    raw_7d = lowered.get("anthropic-ratelimit-unified-7d-utilization")
    if raw_5h is None and raw_7d is None:
        return None

    def to_percent(raw: Any) -> float | None:
        ratio = _percent(raw)
        return None if ratio is None else round(ratio * 100, 2)

    return {
        "five_hour": to_percent(raw_5h),
        "seven_day": to_percent(raw_7d),
        "five_hour_reset": lowered.get("anthropic-ratelimit-unified-5h-reset"),
        "seven_day_reset": lowered.get("anthropic-ratelimit-unified-7d-reset"),
    }


def minutes_until_reset(reset_at: Any, now: datetime | None = None) -> int | None:
    reset = parse_iso(reset_at)
    if reset is None:
        return None
    return max(0, round((reset - ensure_utc(now)).total_seconds() / 60))


def evaluate_quota(quota: Mapping[str, Any] | None, now: datetime | None = None) -> dict[str, Any]:
    if not quota:
        green = TIERS[0]
        return {
            "tier": 0,
            "tier_name": green.name,
            "max_priority": green.max_priority,
            "model": green.model,
            "constrained": False,
            "reason": "no quota data (permissive)",
            "reset_note": None,
        }

    five = quota.get("five_hour")
    seven = quota.get("seven_day")
    h5 = float(five) if is_number(five) else 0.0
    h7 = float(seven) if is_number(seven) else 0.0

    raw_tier = len(TIERS) - 1
    for index, tier in enumerate(TIERS[:-1]):
        if h5 <= tier.ceiling_5h and h7 <= tier.ceiling_7d:
            raw_tier = index
            break

    effective = raw_tier
    reset_note = None
    if raw_tier > 0:
        five_driving = h5 > h7
        window = "5h" if five_driving else "7d"
        minutes = minutes_until_reset(
            quota.get("five_hour_reset" if five_driving else "seven_day_reset"), now
        )
        if minutes is not None and minutes <= RESET_RELAX_MINUTES:
            effective = max(0, raw_tier - 1)
            reset_note = f"{window} resets in {minutes}min, tier relaxed from {raw_tier} to {effective}"

    tier = TIERS[effective]
    if effective == 0:
        reason = reset_note or "ok"
    else:
        reason = f"{tier.name}: 5h {h5:g}%, 7d {h7:g}%"
        if reset_note:
            reason += f" ({reset_note})"
    return {
        "tier": effective,
        "tier_name": tier.name,
        "max_priority": tier.max_priority,
        "model": tier.model,
        "constrained": effective > 0,
        "reason": reason,
        "reset_note": reset_note,
    }


def _request_json(request: Request, timeout_s: int) -> tuple[Any, Mapping[str, Any]]:
    try:
        with urlopen(request, timeout=timeout_s) as response:
            headers = dict(response.headers.items())
            body = response.read().decode("utf-8", errors="replace")
    except HTTPError as exc:
        raise QuotaProbeError(f"Usage API HTTP error {exc.code}") from exc
    except (URLError, OSError, HTTPException) as exc:
        raise QuotaProbeError(f"Usage API connection error: {exc}") from exc
    try:
        return json.loads(body), headers
    except json.JSONDecodeError as exc:
        raise QuotaProbeError("Usage API returned invalid JSON") from exc


def fetch_usage(
    token: str | None,
    *,
    url: str | None = None,
    timeout_s: int | None = None,
    config: QuotaConfig | None = None,
) -> dict[str, Any] | None:
    """Fetch the raw usage payload. Returns ``None`` when it cannot be read."""
    cfg = config or default_config().quota
    if not token:
        log_event(logger, logging.INFO, "usage_fetch_skipped", reason="no_token")
        return None
    request = Request(
        url or cfg.usage_api_url,
        headers={
            "Authorization": f"Bearer {token}",
            "User-Agent": USER_AGENT,
            "anthropic-beta": "oauth-2025-04-20",
        },
    )
    try:
        payload, _ = _request_json(request, timeout_s or cfg.timeout_seconds)
    except QuotaProbeError as exc:
        log_event(logger, logging.WARNING, "usage_fetch_failed", error=exc)
        return None
    if not isinstance(payload, dict):
        log_event(logger, logging.WARNING, "usage_fetch_failed", error="unexpected payload")
        return None
    return payload


def probe_quota(
    token: str | None,
    *,
    timeout_s: int | None = None,
    config: QuotaConfig | None = None,
) -> dict[str, Any] | None:
    """Send a one-token request and read utilization from the response headers."""
    cfg = config or default_config().quota
    if not token:
        log_event(logger, logging.INFO, "quota_probe_skipped", reason="no_token")
        return None
    body = json.dumps(
        {"model": PROBE_MODEL, "max_tokens": 1, "messages": [{"role": "user", "content": "."}]}
    ).encode("utf-8")
    request = Request(
        PROBE_URL,
        data=body,
        method="POST",
        headers={
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
            "anthropic-version": "2023-06-01",
            "anthropic-beta": "oauth-2025-04-20",
            "User-Agent": USER_AGENT,
        },
    )
    try:
        with urlopen(request, timeout=timeout_s or cfg.timeout_seconds) as response:
            return parse_rate_limit_headers(dict(response.headers.items()))
    except HTTPError as exc:
        # Error responses still carry the rate-limit headers.
        log_event(logger, logging.WARNING, "quota_probe_http_error", status=exc.code)
        return parse_rate_limit_headers(dict(exc.headers.items()) if exc.headers else None)
    except (URLError, OSError, HTTPException) as exc:
        log_event(logger, logging.WARNING, "quota_probe_failed", error=exc)
        return None


def build_quota_status(quota: Mapping[str, Any] | None, now: datetime | None = None) -> dict[str, Any]:
    """Persistable status document consumed by the autopilot resolver."""
    return {
        "probed_at": ensure_utc(now).isoformat(),
        "quota": dict(quota) if quota else None,
        "evaluation": evaluate_quota(quota, now),
        "tiers": [
            {
                "tier": index,
                "name": tier.name,
                "ceiling_5h": None if math.isinf(tier.ceiling_5h) else tier.ceiling_5h,
                "ceiling_7d": None if math.isinf(tier.ceiling_7d) else tier.ceiling_7d,
            }
            for index, tier in enumerate(TIERS)
        ],
    }
