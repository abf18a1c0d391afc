from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path

API_TOKEN_ENV_VAR = "DESK_STREAM_API_TOKEN"


@dataclass
class StreamConfig:
    base_url: str = "http://localhost:3000"
    company_id: str | None = None
    employee_id: str | None = None
    request_timeout_seconds: float = 30.0
    page_size: int = 100
    max_pages: int = 10
    reconcile_delay_seconds: float = 0.5
    reconcile_max_attempts: int = 2
    poll_interval_seconds: float = 2.0
    poll_max_attempts: int = 90
    poll_min_attempts_before_complete: int = 2
    status_poll_interval_seconds: float = 1.0
    status_watch_max_attempts: int = 3
    status_watch_retry_delay_seconds: float = 1.0
    log_level: str = "INFO"
    log_consumers: list | None = None


def load_json_config() -> dict:
    config_path = Path.cwd() / "config.json"
    if config_path.exists():
        with open(config_path) as f:
            return json.load(f)
    return {}


def _optional_str(value: object) -> str | None:
    return str(value or "").strip() or None


def parse_stream_config(config: dict) -> StreamConfig:
    return StreamConfig(
        base_url=str(config.get("BaseUrl", "http://localhost:3000")).rstrip("/"),
        company_id=_optional_str(config.get("CompanyId")),
        employee_id=_optional_str(config.get("EmployeeId")),
        request_timeout_seconds=float(config.get("RequestTimeoutSeconds", 30)),
        page_size=max(1, min(100, int(config.get("PageSize", 100)))),
        max_pages=max(1, int(config.get("MaxPages", 10))),
        reconcile_delay_seconds=max(0.0, float(config.get("ReconcileDelaySeconds", 0.5))),
        reconcile_max_attempts=max(1, int(config.get("ReconcileMaxAttempts", 2))),
        poll_interval_seconds=max(0.0, float(config.get("PollIntervalSeconds", 2.0))),
        poll_max_attempts=max(1, int(config.get("PollMaxAttempts", 90))),
        poll_min_attempts_before_complete=max(1, int(config.get("PollMinAttemptsBeforeComplete", 2))),
        status_poll_interval_seconds=max(0.05, float(config.get("StatusPollIntervalSeconds", 1.0))),
        status_watch_max_attempts=max(1, int(config.get("StatusWatchMaxAttempts", 3))),
        status_watch_retry_delay_seconds=max(0.0, float(config.get("StatusWatchRetryDelaySeconds", 1.0))),
        log_level=config.get("LogLevel", "INFO"),
        log_consumers=config.get("LogConsumers"),
    )


def resolve_api_token() -> str | None:
    return _optional_str(os.environ.get(API_TOKEN_ENV_VAR))
