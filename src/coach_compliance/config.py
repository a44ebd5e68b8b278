import os
from dataclasses import dataclass


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from None


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from None


@dataclass(frozen=True)
class Config:
    database_url: str | None = None
    request_timeout_seconds: float = 10.0
    max_retries: int = 1
    week_starts_on: int = 0
    history_weeks: int = 4
    calendar_days: int = 30
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> "Config":
        timeout = _env_float("COMPLIANCE_REQUEST_TIMEOUT", "10.0")
        if timeout <= 0:
            raise RuntimeError("COMPLIANCE_REQUEST_TIMEOUT must be positive")

        week_starts_on = _env_int("COMPLIANCE_WEEK_STARTS_ON", "0")
        if not 0 <= week_starts_on <= 6:
            raise RuntimeError("COMPLIANCE_WEEK_STARTS_ON must be 0 (Monday) .. 6 (Sunday)")

        log_format = os.environ.get("COMPLIANCE_LOG_FORMAT", "json")
        if log_format not in {"json", "text"}:
            raise RuntimeError("COMPLIANCE_LOG_FORMAT must be 'json' or 'text'")

        return cls(
            database_url=os.environ.get("COMPLIANCE_DATABASE_URL") or None,
            request_timeout_seconds=timeout,
            # One automatic retry at most; anything beyond is the caller's call.
            max_retries=min(max(_env_int("COMPLIANCE_MAX_RETRIES", "1"), 0), 1),
            week_starts_on=week_starts_on,
            history_weeks=max(_env_int("COMPLIANCE_HISTORY_WEEKS", "4"), 1),
            calendar_days=max(_env_int("COMPLIANCE_CALENDAR_DAYS", "30"), 1),
            log_format=log_format,
        )
