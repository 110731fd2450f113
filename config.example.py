# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Use a .env file (local, gitignored) for per-machine values.

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "TASKMIRROR_APP_NAME": "App display name (default: taskmirror).",
    "TASKMIRROR_LOG_LEVEL": "Console logging level (default: INFO).",
    # Connectors
    "TASKMIRROR_CONSOLE_ENABLED": "Enable the console REPL (true/false, default: true).",
    # Session
    "TASKMIRROR_USER_ID": "User whose tasks are mirrored at startup (default: local).",
    "TASKMIRROR_TASKS_COLLECTION": "Document collection holding tasks (default: tasks).",
    "TASKMIRROR_CATEGORIES_COLLECTION": "Document collection holding categories (default: categories).",
    "TASKMIRROR_ANALYTICS_COLLECTION": "Collection of per-user activity counters (default: analytics).",
    # Paths (gitignored)
    "TASKMIRROR_DATA_DIR": "Local data directory, also holds logs (default: .local/taskmirror).",
    "TASKMIRROR_STORE_DB_PATH": "SQLite document store path (default: <data_dir>/tasks.sqlite3).",
    # Cache
    "TASKMIRROR_CACHE_TTL_SECONDS": "Snapshot cache time-to-live (default: 300).",
    "TASKMIRROR_CACHE_CLEANUP_INTERVAL_SECONDS": "Expired-entry sweep interval (default: 60).",
    "TASKMIRROR_FILTER_MEMO_LIMIT": "Filter results kept before the memo is dropped (default: 10).",
    # Filters / pagination
    "TASKMIRROR_SEARCH_DEBOUNCE_MS": "Quiet period before a search query applies (default: 300).",
    "TASKMIRROR_PAGE_SIZE": "Tasks per page, at least 1 (default: 20).",
    "TASKMIRROR_LOAD_MORE_THRESHOLD": "Scroll distance from the end that loads a page (default: 200).",
}
