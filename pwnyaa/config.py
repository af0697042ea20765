import os
import logging

from dotenv import load_dotenv


def load_env() -> None:
    """Load environment variables from a .env file next to the project root, if present."""
    env_path = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env"))
    load_dotenv(env_path if os.path.exists(env_path) else None)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Load env early
load_env()

# Logging configuration
log_level = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, log_level, logging.INFO),
)
logger = logging.getLogger("pwnyaa")

# Reduce noisy libraries
logging.getLogger("aiohttp").setLevel(logging.WARNING)
logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
logging.getLogger("slack_bolt").setLevel(logging.WARNING)
logging.getLogger("slack_sdk").setLevel(logging.WARNING)
logging.getLogger("slack_sdk.socket_mode").setLevel(logging.WARNING)
logging.getLogger("asyncio").setLevel(logging.WARNING)


class Config:
    """Application configuration read from the environment."""

    # Slack
    SLACK_BOT_TOKEN: str | None = os.getenv("SLACK_BOT_TOKEN")
    SLACK_APP_TOKEN: str | None = os.getenv("SLACK_APP_TOKEN")
    CHANNEL_PWNABLE: str = os.getenv("CHANNEL_PWNABLE", "").strip()
    BOT_NAME: str = os.getenv("BOT_NAME", "pwnyaa").strip()
    BOT_ICON: str = os.getenv("BOT_ICON", ":pwn:").strip()

    # pwnable.tw login
    TW_USER: str = os.getenv("TWUSER", "").strip()
    TW_PASSWORD: str = os.getenv("TWPW", "")

    # Remote sites
    TW_BASE_URL: str = os.getenv("TW_BASE_URL", "https://pwnable.tw").rstrip("/")
    XYZ_BASE_URL: str = os.getenv("XYZ_BASE_URL", "https://pwnable.xyz").rstrip("/")
    HTTP_TIMEOUT: int = int(os.getenv("HTTP_TIMEOUT", "25"))
    FETCH_RETRIES: int = int(os.getenv("FETCH_RETRIES", "3"))
    BACKOFF_MULTIPLIER: float = float(os.getenv("BACKOFF_MULTIPLIER", "2.0"))
    BACKOFF_BASE_SECS: float = float(os.getenv("BACKOFF_BASE_SECS", "1.0"))

    # Persistence
    STATE_FILE: str = os.getenv("STATE_FILE", "state.json")

    # Scheduling
    REFRESH_SECS: int = int(os.getenv("REFRESH_SECS", str(30 * 60)))
    TIMEZONE: str = os.getenv("TIMEZONE", "Asia/Tokyo").strip()
    DAILY_AT: str = os.getenv("DAILY_AT", "09:00").strip()
    WEEKLY_AT: str = os.getenv("WEEKLY_AT", "09:00").strip()
    WEEKLY_DAY: int = int(os.getenv("WEEKLY_DAY", "6"))  # Monday=0 ... Sunday=6

    # Contest lookups: exact match unless explicitly relaxed
    ALIAS_CASE_SENSITIVE: bool = _env_bool("ALIAS_CASE_SENSITIVE", True)

    @classmethod
    def validate_config(cls) -> None:
        if not cls.SLACK_BOT_TOKEN:
            raise ValueError("SLACK_BOT_TOKEN environment variable is required")
        if not cls.SLACK_APP_TOKEN:
            raise ValueError("SLACK_APP_TOKEN environment variable is required")
        if not (0 <= cls.WEEKLY_DAY <= 6):
            raise ValueError("WEEKLY_DAY must be between 0 (Monday) and 6 (Sunday)")
        if not cls.TW_USER or not cls.TW_PASSWORD:
            logger.warning("TWUSER/TWPW not configured - pwnable.tw profile lookups will fail")
        if not cls.CHANNEL_PWNABLE:
            logger.warning("CHANNEL_PWNABLE not configured - daily/weekly digests are disabled")


# Expose commonly used constants
config = Config()
BOT_NAME = config.BOT_NAME
STATE_FILE = config.STATE_FILE
REFRESH_SECS = config.REFRESH_SECS
