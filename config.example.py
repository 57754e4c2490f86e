# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use:
- .env (local, gitignored)
- config_local.py (local safe overrides, gitignored)

This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "HEROIC_APP_NAME": "App display name (default: heroic-tasks).",
    "HEROIC_LOG_LEVEL": "Console logging level (default: INFO).",
    # Connectors
    "HEROIC_CONSOLE_ENABLED": "Enable console REPL (true/false).",
    "HEROIC_SOUND_MUTED": "Start with the terminal bell muted (true/false); /mute is remembered.",
    # Remote store (Firebase). Without these only guest mode is available.
    "HEROIC_FIREBASE_API_KEY": "Firebase web API key (auth + Firestore REST).",
    "HEROIC_FIREBASE_PROJECT_ID": "Firebase project id.",
    "HEROIC_FIREBASE_DATABASE": "Firestore database id (default: (default)).",
    "HEROIC_REMOTE_POLL_SECONDS": "Live task query polling interval (default: 2.0, min 0.5).",
    "HEROIC_HTTP_TIMEOUT_SECONDS": "HTTP timeout for Firebase calls (default: 10.0).",
    # Focus timer
    "HEROIC_FOCUS_WORK_MINUTES": "Work cycle length, 1..240 (default: 25).",
    "HEROIC_FOCUS_SHORT_BREAK_MINUTES": "Short break length (default: 5).",
    "HEROIC_FOCUS_LONG_BREAK_MINUTES": "Long break length (default: 15).",
    # Paths (gitignored)
    "HEROIC_DATA_DIR": "Local data directory (default: .local/heroic).",
    "HEROIC_GUEST_DB_PATH": "Guest slot SQLite path (default: <data_dir>/guest.sqlite3).",
    "HEROIC_SESSION_PATH": "Signed-in session file (default: <data_dir>/session.json).",
}
