"""
Configuration settings for the step replay engine and its HTTP server.

Every value can be overridden with a REPLAY_* environment variable.
"""

import os


def _env_bool(name, default):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name):
    value = os.environ.get(name, "").strip()
    return float(value) if value else None


# Page opened when a workflow does not name one
DEFAULT_URL = os.environ.get("REPLAY_DEFAULT_URL", "https://example.com")

# Browser headless mode
# False = browser window visible (handy when demoing a replay)
# True = browser runs in background
HEADLESS = _env_bool("REPLAY_HEADLESS", True)

# Delay between typed characters at speed 1, in milliseconds
BASE_CHAR_DELAY_MS = float(os.environ.get("REPLAY_BASE_CHAR_DELAY_MS", "50"))

# How long the mouse button is held down on each click, in milliseconds
CLICK_HOLD_MS = float(os.environ.get("REPLAY_CLICK_HOLD_MS", "50"))

# Navigation settings
NAVIGATION_TIMEOUT_MS = int(os.environ.get("REPLAY_NAVIGATION_TIMEOUT_MS", "60000"))
NAVIGATION_WAIT_UNTIL = os.environ.get("REPLAY_NAVIGATION_WAIT_UNTIL", "networkidle")

# Per-action timeout for element lookup, focus and clicks, in milliseconds
STEP_TIMEOUT_MS = int(os.environ.get("REPLAY_STEP_TIMEOUT_MS", "15000"))

# Seconds a finished session stays open for inspection before it is closed
# 0 = close as soon as the replay finishes
TEARDOWN_GRACE_SECONDS = float(os.environ.get("REPLAY_TEARDOWN_GRACE_SECONDS", "30"))

# Fail the whole run when more than this fraction of steps failed
# None = a run that reached the end is always ok
MAX_FAILED_RATIO = _env_optional_float("REPLAY_MAX_FAILED_RATIO")

# HTTP server
API_HOST = os.environ.get("REPLAY_API_HOST", "0.0.0.0")
API_PORT = int(os.environ.get("REPLAY_API_PORT", os.environ.get("PORT", "4000")))
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("REPLAY_CORS_ORIGINS", "*").split(",")
    if origin.strip()
]
MAX_BODY_BYTES = int(os.environ.get("REPLAY_MAX_BODY_BYTES", str(1024 * 1024)))

LOG_LEVEL = os.environ.get("REPLAY_LOG_LEVEL", "INFO").upper()
