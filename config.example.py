# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
See src/worktimer/config.py for parsing and defaults.

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "WORKTIMER_APP_NAME": "App display name (default: worktimer).",
    "WORKTIMER_LOG_LEVEL": "Console logging level (default: INFO). The log file is always DEBUG.",
    # Identity
    "WORKTIMER_USER_ID": "User signed in at startup (default: local).",
    # Console
    "WORKTIMER_CONSOLE_ENABLED": "Run the console REPL (true/false, default: true).",
    "WORKTIMER_FINALIZE_ON_EXIT": (
        "Finish the active task with its displayed total when the app exits "
        "(true/false, default: false)."
    ),
    # Tuning
    "WORKTIMER_TICK_INTERVAL_MS": "Display redraw interval in ms (default: 250, minimum 50).",
    "WORKTIMER_HISTORY_PAGE_SIZE": "Rows per history page (default: 20).",
    # Paths (gitignored)
    "WORKTIMER_DATA_DIR": "Local data directory (default: .local/worktimer).",
    "WORKTIMER_STORE_DB_PATH": "Task/project SQLite path (default: <data_dir>/store.sqlite3).",
    "WORKTIMER_LOCAL_STATE_PATH": (
        "Anchor and active-task pointer JSON path (default: <data_dir>/local_state.json)."
    ),
}
