# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets; keep them in .env (local, gitignored).

Names in parentheses are the older unprefixed variables, still honored when the
HOURSYNC_ one is unset.
"""

ENV_VARS = {
    # App / logging
    "HOURSYNC_APP_NAME": "App display name (default: hoursync).",
    "HOURSYNC_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    "HOURSYNC_DATA_DIR": "Local data directory for logs and the Matrix session (default: .local/hoursync).",
    # Harvest (required)
    "HOURSYNC_HARVEST_TOKEN": "Harvest personal access token (HARVEST_TOKEN).",
    "HOURSYNC_HARVEST_ACCOUNT_ID": "Harvest account id (ACCOUNT_ID).",
    "HOURSYNC_HARVEST_BASE_URL": "Harvest API root (default: https://api.harvestapp.com/v2).",
    "HOURSYNC_HARVEST_USER_AGENT": "User-Agent sent to Harvest.",
    "HOURSYNC_HARVEST_RATE": "Requests per window (default: 100).",
    "HOURSYNC_HARVEST_INTERVAL_SECONDS": "Window length in seconds (default: 15).",
    # Notion (required)
    "HOURSYNC_NOTION_TOKEN": "Notion integration token (NOTION_TOKEN).",
    "HOURSYNC_NOTION_TOKENS": "Comma separated list of tokens; reads rotate round-robin, one rate window each.",
    "HOURSYNC_CLIENT_DATABASE": "Database id of projects/clients (CLIENT_DATABASE).",
    "HOURSYNC_TASK_DATABASE": "Database id of tasks (TASK_DATABASE).",
    "HOURSYNC_NOTION_BASE_URL": "Notion API root (default: https://api.notion.com/v1).",
    "HOURSYNC_NOTION_VERSION": "Notion-Version header (default: 2022-06-28).",
    "HOURSYNC_NOTION_RATE": "Requests per window and token (default: 3).",
    "HOURSYNC_NOTION_INTERVAL_SECONDS": "Window length in seconds (default: 1.2).",
    # Workspace schema
    "HOURSYNC_TASK_NAME_PROPERTY": "Title property of a task (default: Task name).",
    "HOURSYNC_PARENT_PROPERTY": "Relation to parent tasks (default: Parent task).",
    "HOURSYNC_SUBTASKS_PROPERTY": "Relation to sub-tasks (default: Sub-tasks).",
    "HOURSYNC_PROJECT_PROPERTY": "Relation to the project (default: Project).",
    "HOURSYNC_TIME_SPENT_PROPERTY": "Rich text property that receives totals (default: Time Spent).",
    "HOURSYNC_PROJECT_NAME_PROPERTY": "Title property of a project (default: Project Name).",
    "HOURSYNC_TIME_SPENT_TEMPLATE": "Text written before the timestamp; {hours} is replaced.",
    "HOURSYNC_AMBIGUITY_MARKER": "Text written into every card when a time entry matches several.",
    # Matching
    "HOURSYNC_IGNORED_CLIENTS": "Comma separated client names whose entries are skipped.",
    "HOURSYNC_CLIENT_ALIASES": "Semicolon separated tracker=workspace client names (replaces the built-in list).",
    # Remote calls / caches
    "HOURSYNC_REQUEST_TIMEOUT_SECONDS": "Per request timeout (default: 30).",
    "HOURSYNC_RETRY_MAX_ATTEMPTS": "Attempts for timed out requests (default: 10).",
    "HOURSYNC_RETRY_BASE_DELAY_SECONDS": "Linear backoff step (default: 1).",
    "HOURSYNC_PAGE_CACHE_TTL_SECONDS": "Page cache lifetime (default: 60).",
    "HOURSYNC_QUERY_CACHE_TTL_SECONDS": "Database query cache lifetime (default: 60).",
    "HOURSYNC_HOURS_CACHE_TTL_SECONDS": "Measured hours cache lifetime (default: 5).",
    # Loops
    "HOURSYNC_REALTIME_INTERVAL_SECONDS": "Realtime poll pacing (default: 5).",
    "HOURSYNC_REALTIME_LOOKBACK_HOURS": "How far back the first realtime poll looks (default: 24).",
    "HOURSYNC_BULK_INTERVAL_SECONDS": "Bulk reconciliation period (default: 3600).",
    "HOURSYNC_BULK_WINDOW_DAYS": "Bulk reconciliation window (default: 90).",
    "HOURSYNC_REFRESH_INTERVAL_SECONDS": "Per-task background refresh period (default: 3600).",
    "HOURSYNC_WATCHDOG_TIMEOUT_SECONDS": "Exit with code 1 after this long without progress (default: 180).",
    "HOURSYNC_WATCHDOG_CHECK_SECONDS": "Watchdog check period (default: 30).",
    # Alerts / Matrix (optional; without them alerts only go to the log)
    "HOURSYNC_ALERT_COOLDOWN_SECONDS": "Identical alerts are sent at most once per window (default: 21600).",
    "HOURSYNC_ALERT_TIMEOUT_SECONDS": "Give up delivering one alert after this long; also bounds Matrix requests (default: 10).",
    "HOURSYNC_MATRIX_HOMESERVER": "Matrix homeserver URL.",
    "HOURSYNC_MATRIX_USER_ID": "Matrix user ID (bot).",
    "HOURSYNC_MATRIX_PASSWORD": "Password for first login (session stored locally).",
    "HOURSYNC_ALERT_ROOM": "Room id that receives alerts.",
    "HOURSYNC_MATRIX_STORE_PATH": "Where session.json lives (default: <data_dir>/matrix_store).",
}
