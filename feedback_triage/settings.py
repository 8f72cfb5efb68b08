"""Configuration for the Slack feedback triage relay."""
import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base paths
BASE_DIR = Path(__file__).resolve().parent.parent
LOGS_DIR = BASE_DIR / "logs"
LOGS_DIR.mkdir(exist_ok=True)

# Runtime
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
IS_PRODUCTION = ENVIRONMENT == "production"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
BETTERSTACK_SOURCE_TOKEN = os.getenv("BETTERSTACK_SOURCE_TOKEN")
BETTERSTACK_INGEST_HOST = os.getenv("BETTERSTACK_INGEST_HOST")

# Slack
SLACK_BOT_TOKEN = os.getenv("SLACK_BOT_TOKEN")
SLACK_APP_TOKEN = os.getenv("SLACK_APP_TOKEN")
SLACK_SIGNING_SECRET = os.getenv("SLACK_SIGNING_SECRET")
SLACK_CHANNEL_ID = os.getenv("SLACK_CHANNEL_ID")

# Linear
LINEAR_API_KEY = os.getenv("LINEAR_API_KEY")
LINEAR_TEAM_ID = os.getenv("LINEAR_TEAM_ID")
LINEAR_PROJECT_ID = os.getenv("LINEAR_PROJECT_ID")
LINEAR_ORGANIZATION = os.getenv("LINEAR_ORGANIZATION")
LINEAR_CONNECT_ATTEMPTS = int(os.getenv("LINEAR_CONNECT_ATTEMPTS", "5"))
LINEAR_CONNECT_DELAY = float(os.getenv("LINEAR_CONNECT_DELAY", "2"))  # seconds, doubled per attempt

# Triager factory, as "package.module:callable"
TRIAGER_FACTORY = os.getenv("TRIAGER_FACTORY")

# Correlation state
OUTCOME_TTL_HOURS = int(os.getenv("OUTCOME_TTL_HOURS", "24"))
DEDUP_MAX_ENTRIES = int(os.getenv("DEDUP_MAX_ENTRIES", "1000"))
DEDUP_TRIM_ENTRIES = int(os.getenv("DEDUP_TRIM_ENTRIES", "500"))

# Recovery
MARKER_REACTION = os.getenv("MARKER_REACTION", "robot_face")
RECOVERY_LOOKBACK_DAYS = int(os.getenv("RECOVERY_LOOKBACK_DAYS", "7"))
HISTORY_PAGE_SIZE = 100
HISTORY_PAGE_DELAY = 0.2  # seconds between history pages

# Thread transcript sizes
THREAD_REPLY_CONTEXT_LIMIT = 20
THREAD_FOLLOWUP_CONTEXT_LIMIT = 30


REQUIRED_VARS = (
    "SLACK_BOT_TOKEN",
    "SLACK_APP_TOKEN",
    "SLACK_SIGNING_SECRET",
    "SLACK_CHANNEL_ID",
    "LINEAR_API_KEY",
    "LINEAR_TEAM_ID",
    "LINEAR_PROJECT_ID",
    "LINEAR_ORGANIZATION",
    "TRIAGER_FACTORY",
)


def validate_config():
    """Validate required configuration."""
    errors = []

    for name in REQUIRED_VARS:
        if not globals().get(name):
            errors.append(f"{name} is required")

    if TRIAGER_FACTORY and ":" not in TRIAGER_FACTORY:
        errors.append(f"TRIAGER_FACTORY must look like 'module:callable': {TRIAGER_FACTORY}")

    if DEDUP_TRIM_ENTRIES > DEDUP_MAX_ENTRIES:
        errors.append("DEDUP_TRIM_ENTRIES cannot exceed DEDUP_MAX_ENTRIES")

    if errors:
        raise ValueError("Config errors:\n  " + "\n  ".join(errors))
