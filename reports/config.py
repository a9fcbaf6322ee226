from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime
from typing import Mapping, Optional

from reports.timeframe import DEFAULT_TIMEZONE, DEFAULT_WEEK_START_HOUR, parse_reference


class ConfigError(RuntimeError):
    pass


# Platform operator collective, excluded from donation/expense statistics.
OPERATOR_COLLECTIVE_ID = 1


@dataclass
class ReportConfig:
    database_url: str
    slack_webhook_url: Optional[str]
    slack_channel: Optional[str]
    app_env: str
    manual: bool
    start_date: Optional[datetime]
    timezone: str = DEFAULT_TIMEZONE
    week_start_hour: int = DEFAULT_WEEK_START_HOUR
    excluded_collective_id: int = OPERATOR_COLLECTIVE_ID
    debug: Optional[str] = None
    record: bool = False

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


def env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() not in ("", "0", "false", "no", "off")


def load_config_from_env(env: Optional[Mapping[str, str]] = None) -> ReportConfig:
    env = os.environ if env is None else env

    database_url = env.get("DATABASE_URL", "").strip()
    if not database_url:
        raise ConfigError("Missing DATABASE_URL")

    start_date = None
    raw_start = env.get("START_DATE", "").strip()
    if raw_start:
        try:
            start_date = parse_reference(raw_start)
        except ValueError as e:
            raise ConfigError(f"Invalid START_DATE: {e}") from e

    try:
        week_start_hour = int(env.get("REPORT_WEEK_START_HOUR", str(DEFAULT_WEEK_START_HOUR)))
        excluded = int(env.get("REPORT_EXCLUDED_COLLECTIVE_ID", str(OPERATOR_COLLECTIVE_ID)))
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e

    return ReportConfig(
        database_url=database_url,
        slack_webhook_url=env.get("SLACK_WEBHOOK_URL", "").strip() or None,
        slack_channel=env.get("SLACK_PRIVATE_ACTIVITY_CHANNEL", "").strip() or None,
        app_env=env.get("APP_ENV", "development").strip(),
        manual=env_flag(env.get("MANUAL")),
        start_date=start_date,
        timezone=env.get("REPORT_TIMEZONE", DEFAULT_TIMEZONE),
        week_start_hour=week_start_hour,
        excluded_collective_id=excluded,
        debug=env.get("DEBUG", "").strip() or None,
        record=env_flag(env.get("RECORD")),
    )
