# src/hoursync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time; Settings.validate() is called by the entrypoint.
- Names used by the previous deployment (HARVEST_TOKEN, NOTION_TOKEN, ...) still work.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ConfigError

ENV_PREFIX = "HOURSYNC"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except ImportError:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: List[str]) -> List[str]:
    """Comma separated list. Items may contain spaces (client names do)."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.split(",") if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def _env_mapping(name: str, default: Dict[str, str]) -> Dict[str, str]:
    """Parse "a=b;c=d" into {"a": "b", "c": "d"}. Keys are lowercased."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return dict(default)
    out: Dict[str, str] = {}
    for pair in raw.split(";"):
        if "=" not in pair:
            continue
        key, _, value = pair.partition("=")
        key = key.strip().lower()
        if key:
            out[key] = value.strip().lower()
    return out


# Known naming mismatches between the time tracker and the workspace.
DEFAULT_CLIENT_ALIASES: Dict[str, str] = {
    "reform internal tasks": "reform collective",
    "fluid (product)": "fluid",
    "jillion llc": "century",
    "inside milk": "milk inside",
}


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str
    data_dir: Path

    # ---- Harvest (time tracking) ----
    harvest_token: Optional[str]
    harvest_account_id: Optional[str]
    harvest_base_url: str
    harvest_user_agent: str
    harvest_rate: int
    harvest_interval_seconds: float

    # ---- Notion (workspace) ----
    notion_tokens: List[str]
    notion_base_url: str
    notion_version: str
    notion_rate: int
    notion_interval_seconds: float
    client_database_id: str
    task_database_id: str

    # ---- Workspace schema contract ----
    task_name_property: str
    parent_property: str
    subtasks_property: str
    project_property: str
    time_spent_property: str
    project_name_property: str
    time_spent_template: str
    ambiguity_marker: str

    # ---- Matching ----
    ignored_clients: List[str]
    client_aliases: Dict[str, str]

    # ---- Remote calls ----
    request_timeout_seconds: float
    retry_max_attempts: int
    retry_base_delay_seconds: float

    # ---- Caches ----
    page_cache_ttl_seconds: float
    query_cache_ttl_seconds: float
    hours_cache_ttl_seconds: float

    # ---- Loops ----
    realtime_interval_seconds: float
    realtime_lookback_hours: float
    bulk_interval_seconds: float
    bulk_window_days: int
    refresh_interval_seconds: float

    # ---- Watchdog ----
    watchdog_timeout_seconds: float
    watchdog_check_seconds: float

    # ---- Alerts / Matrix ----
    alert_cooldown_seconds: float
    alert_timeout_seconds: float
    matrix_homeserver: str
    matrix_user_id: str
    matrix_password: str
    alert_room_id: str
    matrix_store_path: Path

    @property
    def matrix_enabled(self) -> bool:
        return bool(self.matrix_homeserver and self.matrix_user_id and self.alert_room_id)

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "hoursync")
        log_level = _env(_k("LOG_LEVEL"), "INFO")
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/hoursync"))

        harvest_token = _first_env(_k("HARVEST_TOKEN"), "HARVEST_TOKEN", default=None)
        harvest_account_id = _first_env(_k("HARVEST_ACCOUNT_ID"), "ACCOUNT_ID", default=None)

        # A single token (legacy NOTION_TOKEN) or several for round-robin reads.
        notion_tokens = _env_list(_k("NOTION_TOKENS"), [])
        if not notion_tokens:
            single = _first_env(_k("NOTION_TOKEN"), "NOTION_TOKEN", default="") or ""
            notion_tokens = [single.strip()] if single.strip() else []

        client_database_id = (_first_env(_k("CLIENT_DATABASE"), "CLIENT_DATABASE", default="") or "").strip()
        task_database_id = (_first_env(_k("TASK_DATABASE"), "TASK_DATABASE", default="") or "").strip()

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            harvest_token=harvest_token,
            harvest_account_id=harvest_account_id,
            harvest_base_url=_env(_k("HARVEST_BASE_URL"), "https://api.harvestapp.com/v2"),
            harvest_user_agent=_env(_k("HARVEST_USER_AGENT"), f"{app_name} (hours rollup)"),
            harvest_rate=_env_int(_k("HARVEST_RATE"), 100),
            harvest_interval_seconds=_env_float(_k("HARVEST_INTERVAL_SECONDS"), 15.0),
            notion_tokens=notion_tokens,
            notion_base_url=_env(_k("NOTION_BASE_URL"), "https://api.notion.com/v1"),
            notion_version=_env(_k("NOTION_VERSION"), "2022-06-28"),
            notion_rate=_env_int(_k("NOTION_RATE"), 3),
            notion_interval_seconds=_env_float(_k("NOTION_INTERVAL_SECONDS"), 1.2),
            client_database_id=client_database_id,
            task_database_id=task_database_id,
            task_name_property=_env(_k("TASK_NAME_PROPERTY"), "Task name"),
            parent_property=_env(_k("PARENT_PROPERTY"), "Parent task"),
            subtasks_property=_env(_k("SUBTASKS_PROPERTY"), "Sub-tasks"),
            project_property=_env(_k("PROJECT_PROPERTY"), "Project"),
            time_spent_property=_env(_k("TIME_SPENT_PROPERTY"), "Time Spent"),
            project_name_property=_env(_k("PROJECT_NAME_PROPERTY"), "Project Name"),
            time_spent_template=_env(_k("TIME_SPENT_TEMPLATE"), "{hours} Hours Spent\t"),
            ambiguity_marker=_env(_k("AMBIGUITY_MARKER"), "Time Error: Multiple notion cards found."),
            ignored_clients=_env_list(_k("IGNORED_CLIENTS"), []),
            client_aliases=_env_mapping(_k("CLIENT_ALIASES"), DEFAULT_CLIENT_ALIASES),
            request_timeout_seconds=_env_float(_k("REQUEST_TIMEOUT_SECONDS"), 30.0),
            retry_max_attempts=_env_int(_k("RETRY_MAX_ATTEMPTS"), 10),
            retry_base_delay_seconds=_env_float(_k("RETRY_BASE_DELAY_SECONDS"), 1.0),
            page_cache_ttl_seconds=_env_float(_k("PAGE_CACHE_TTL_SECONDS"), 60.0),
            query_cache_ttl_seconds=_env_float(_k("QUERY_CACHE_TTL_SECONDS"), 60.0),
            hours_cache_ttl_seconds=_env_float(_k("HOURS_CACHE_TTL_SECONDS"), 5.0),
            realtime_interval_seconds=_env_float(_k("REALTIME_INTERVAL_SECONDS"), 5.0),
            realtime_lookback_hours=_env_float(_k("REALTIME_LOOKBACK_HOURS"), 24.0),
            bulk_interval_seconds=_env_float(_k("BULK_INTERVAL_SECONDS"), 3600.0),
            bulk_window_days=_env_int(_k("BULK_WINDOW_DAYS"), 90),
            refresh_interval_seconds=_env_float(_k("REFRESH_INTERVAL_SECONDS"), 3600.0),
            watchdog_timeout_seconds=_env_float(_k("WATCHDOG_TIMEOUT_SECONDS"), 180.0),
            watchdog_check_seconds=_env_float(_k("WATCHDOG_CHECK_SECONDS"), 30.0),
            alert_cooldown_seconds=_env_float(_k("ALERT_COOLDOWN_SECONDS"), 6 * 3600.0),
            alert_timeout_seconds=_env_float(_k("ALERT_TIMEOUT_SECONDS"), 10.0),
            matrix_homeserver=_env(_k("MATRIX_HOMESERVER"), "").strip(),
            matrix_user_id=_env(_k("MATRIX_USER_ID"), "").strip(),
            matrix_password=_env(_k("MATRIX_PASSWORD"), "").strip(),
            alert_room_id=_env(_k("ALERT_ROOM"), "").strip(),
            matrix_store_path=_env_path(_k("MATRIX_STORE_PATH"), data_dir / "matrix_store"),
        )

    def validate(self) -> None:
        """Raise ConfigError naming the first missing required variable."""
        required = [
            (self.harvest_token, _k("HARVEST_TOKEN")),
            (self.harvest_account_id, _k("HARVEST_ACCOUNT_ID")),
            (self.notion_tokens, _k("NOTION_TOKEN")),
            (self.client_database_id, _k("CLIENT_DATABASE")),
            (self.task_database_id, _k("TASK_DATABASE")),
        ]
        for value, name in required:
            if not value:
                raise ConfigError(f"Missing required setting: {name}")
        if self.harvest_rate <= 0 or self.notion_rate <= 0:
            raise ConfigError("Rate limits must be positive")


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
