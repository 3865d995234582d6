# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
This file lists every TASKDECK_* variable the app reads.
"""

ENV_VARS = {
    # App / logging
    "TASKDECK_APP_NAME": "App display name (default: taskdeck).",
    "TASKDECK_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Paths (gitignored)
    "TASKDECK_DATA_DIR": "Local data directory, also holds taskdeck.log (default: .local/taskdeck).",
    "TASKDECK_DB_PATH": "SQLite document store (default: <data_dir>/taskdeck.sqlite3; ':memory:' keeps nothing).",
    # Alarms
    "TASKDECK_ALARM_INTERVAL_SECONDS": "Seconds between due-date checks (default: 30, minimum 1).",
    "TASKDECK_ALARM_LEAD_SECONDS": "Raise alarms this many seconds before the due time (default: 0).",
    "TASKDECK_SOUND_ENABLED": "Play audible cues; needs the 'audio' extra (true/false, default: false).",
    # Connectors
    "TASKDECK_CONSOLE_ENABLED": "Run the interactive console (true/false, default: true).",
    # Views
    "TASKDECK_PAGE_SIZE": "Tasks per page in /tasks (default: 10).",
    # Console operator identity
    "TASKDECK_OPERATOR_ID": "User id recorded as creator/commenter (default: operator).",
    "TASKDECK_OPERATOR_NAME": "Display name for the operator (default: Operator).",
    "TASKDECK_OPERATOR_IS_ADMIN": "Operator may delete anyone's comments (true/false, default: true).",
}
