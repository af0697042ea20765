"""pwnyaa: Slack bot tracking wargame CTF sites.

Modules:
- config: environment, logging and constants
- http: session and request helpers
- parsers: per-site HTML scraping
- api: site registry, login and remote fetches
- state: data model and JSON (de)serialization
- storage: the persisted state store
- formatting: message building utilities
- achievements: achievement unlock announcements
- schedule_utils: calendar arithmetic for scheduled jobs
- watchers: refresh, daily/weekly digests and the scheduler
- commands: chat command handlers
- app: Slack wiring and bootstrap

Public facade (re-export) for callers and tests.
"""

from .config import Config, BOT_NAME, STATE_FILE, REFRESH_SECS
from .http import make_session, fetch_text, build_headers
from .parsers import parse_challenges_tw, parse_challenges_xyz, parse_profile_tw
from .api import (
    SITES,
    Site,
    get_site,
    site_for_contest,
    supports_profiles,
    login_tw,
    fetch_challenges,
    fetch_user_profile,
)
from .state import Challenge, Contest, Profile, SolvedInfo, State, UpsertResult, User
from .storage import StateStore, contest_matches
from .achievements import Achievements, achievement_name
from .watchers import (
    refresh_contest,
    refresh_all,
    solved_within,
    evaluate_achievements,
    rank_weekly,
    daily_job,
    weekly_job,
    Scheduler,
)
from .commands import handle_message, parse_command, list_cmd, join_cmd, check_cmd, help_cmd
from .app import main, build_app, startup_health_check

__all__ = [
    # Config / HTTP
    "Config", "BOT_NAME", "STATE_FILE", "REFRESH_SECS",
    "make_session", "fetch_text", "build_headers",
    # Sites
    "parse_challenges_tw", "parse_challenges_xyz", "parse_profile_tw",
    "SITES", "Site", "get_site", "site_for_contest", "supports_profiles",
    "login_tw", "fetch_challenges", "fetch_user_profile",
    # State
    "Challenge", "Contest", "Profile", "SolvedInfo", "State", "UpsertResult", "User",
    "StateStore", "contest_matches",
    # Jobs
    "Achievements", "achievement_name",
    "refresh_contest", "refresh_all", "solved_within", "evaluate_achievements", "rank_weekly",
    "daily_job", "weekly_job", "Scheduler",
    # Commands / App
    "handle_message", "parse_command", "list_cmd", "join_cmd", "check_cmd", "help_cmd",
    "main", "build_app", "startup_health_check",
]
