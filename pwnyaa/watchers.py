from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import pytz

from .achievements import Achievements, achievement_name
from .api import SITES, fetch_challenges, fetch_user_profile, get_site, site_for_contest
from .config import Config, logger
from .formatting import NOBODY_SOLVED_WEEKLY, fmt_daily_digest, fmt_weekly_ranking
from .schedule_utils import get_timezone, next_daily_run, next_weekly_run, parse_hhmm, seconds_until
from .state import Contest, Profile, SolvedInfo
from .storage import StateStore


DAILY_WINDOW_DAYS = 1
WEEKLY_WINDOW_DAYS = 7


# Reconciliation

async def refresh_contest(store: StateStore, site_key: str) -> Optional[Contest]:
    """Fetch a site's challenge list and merge its count into the store."""
    site = get_site(site_key)
    challs = await fetch_challenges(site_key)
    existing = store.get_contest(site.id)
    if not challs and existing is not None:
        logger.warning(f"{site.title}: empty challenge list, keeping {existing.num_challs} challs")
        return existing
    contest, result = await store.merge_challenge_snapshot(site.id, site.title, site.url, site.alias, challs)
    logger.info(f"{site.title} has {len(challs)} challs. ({result.value})")
    return contest


async def refresh_all(store: StateStore) -> None:
    for site_key in SITES:
        try:
            await refresh_contest(store, site_key)
        except Exception as e:
            logger.error(f"Failed to refresh {site_key}: {e!r}")


# Digest helpers

def solved_within(profile: Profile, now: datetime, days: int) -> List[SolvedInfo]:
    since = now - timedelta(days=days)
    return [s for s in profile.solved if since <= s.solved_at <= now]


def evaluate_achievements(solved_count: int, num_challs: int) -> List[str]:
    """Achievement kinds earned with ``solved_count`` of ``num_challs`` challenges."""
    if num_challs <= 0:
        return []
    kinds: List[str] = []
    if solved_count >= num_challs:
        kinds.append("complete")
    if solved_count >= num_challs / 2:
        kinds.append("half")
    return kinds


def rank_weekly(counts: Dict[str, int]) -> List[Tuple[str, int]]:
    """Sort members by solve count, highest first."""
    return sorted(counts.items(), key=lambda kv: kv[1], reverse=True)


async def post_channel_message(client: Any, text: str) -> None:
    if not Config.CHANNEL_PWNABLE:
        logger.warning("CHANNEL_PWNABLE not set; dropping digest message")
        return
    await client.chat_postMessage(
        channel=Config.CHANNEL_PWNABLE,
        text=text,
        username=Config.BOT_NAME,
        icon_emoji=Config.BOT_ICON,
    )


async def _fetch_member_profiles(contest: Contest) -> List[Tuple[str, Profile]]:
    """Fetch the profiles of all linked members of a profile-capable contest."""
    site = site_for_contest(contest.id)
    if site is None or site.parse_profile is None:
        return []
    profiles: List[Tuple[str, Profile]] = []
    for user in contest.joining_users:
        if not user.id_ctf:
            continue
        profile = await fetch_user_profile(site.key, user.id_ctf)
        if profile is None:
            logger.warning(f"{contest.title}: could not fetch profile of {user.id_ctf} ({user.slack_id})")
            continue
        profiles.append((user.slack_id, profile))
    return profiles


async def daily_job(
    store: StateStore,
    client: Any,
    achievements: Achievements,
    now: datetime | None = None,
) -> None:
    now = now or datetime.now(pytz.utc)
    for contest in store.snapshot().contests:
        profiles = await _fetch_member_profiles(contest)
        alias = contest.alias[0] if contest.alias else str(contest.id)

        solvers: List[Tuple[str, List[SolvedInfo]]] = []
        for slack_id, profile in profiles:
            recent = solved_within(profile, now, DAILY_WINDOW_DAYS)
            if recent:
                solvers.append((slack_id, recent))
            for kind in evaluate_achievements(len(profile.solved), contest.num_challs):
                await achievements.unlock(slack_id, achievement_name(alias, kind))

        if solvers:
            await post_channel_message(client, fmt_daily_digest(contest, solvers))
        else:
            logger.info(f"{contest.title}: nobody solved anything in the last day")


async def weekly_job(store: StateStore, client: Any, now: datetime | None = None) -> None:
    now = now or datetime.now(pytz.utc)
    rankings: Dict[str, List[Tuple[str, int]]] = {}
    for contest in store.snapshot().contests:
        profiles = await _fetch_member_profiles(contest)
        counts = {slack_id: len(solved_within(p, now, WEEKLY_WINDOW_DAYS)) for slack_id, p in profiles}
        if counts:
            rankings[contest.title] = rank_weekly(counts)

    if not any(count > 0 for rows in rankings.values() for _, count in rows):
        await post_channel_message(client, NOBODY_SOLVED_WEEKLY)
        return
    await post_channel_message(client, fmt_weekly_ranking(rankings))


# Scheduling

class Scheduler:
    """Runs the refresh, daily and weekly jobs.

    All three share ``job_lock``, so a digest never reads the store while a
    refresh is merging into it.
    """

    def __init__(self, store: StateStore, client: Any, achievements: Achievements | None = None):
        self.store = store
        self.client = client
        self.achievements = achievements or Achievements(client)
        self.job_lock = asyncio.Lock()
        self.tasks: List[asyncio.Task] = []
        self.tz = get_timezone(Config.TIMEZONE)
        self.daily_at = parse_hhmm(Config.DAILY_AT)
        self.weekly_at = parse_hhmm(Config.WEEKLY_AT)

    def start(self) -> None:
        if self.tasks:
            return
        self.tasks = [
            asyncio.create_task(self._periodic("refresh", Config.REFRESH_SECS, self.refresh)),
            asyncio.create_task(self._calendar("daily", self._next_daily, self.daily)),
            asyncio.create_task(self._calendar("weekly", self._next_weekly, self.weekly)),
        ]
        logger.info("Scheduler started")

    async def stop(self) -> None:
        for task in self.tasks:
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)
        self.tasks = []
        logger.info("Scheduler stopped")

    async def refresh(self) -> None:
        await refresh_all(self.store)

    async def daily(self) -> None:
        await daily_job(self.store, self.client, self.achievements)

    async def weekly(self) -> None:
        await weekly_job(self.store, self.client)

    async def run_job(self, name: str, job: Callable[[], Awaitable[None]]) -> None:
        async with self.job_lock:
            logger.info(f"Running {name} job")
            try:
                await job()
            except Exception:
                logger.exception(f"{name} job failed; waiting for the next run")

    def _next_daily(self, now: datetime) -> datetime:
        return next_daily_run(now, *self.daily_at, self.tz)

    def _next_weekly(self, now: datetime) -> datetime:
        return next_weekly_run(now, Config.WEEKLY_DAY, *self.weekly_at, self.tz)

    async def _periodic(self, name: str, interval: float, job: Callable[[], Awaitable[None]]) -> None:
        while True:
            await self.run_job(name, job)
            await asyncio.sleep(interval)

    async def _calendar(
        self,
        name: str,
        next_run: Callable[[datetime], datetime],
        job: Callable[[], Awaitable[None]],
    ) -> None:
        last: Optional[datetime] = None
        while True:
            now = datetime.now(pytz.utc)
            # sleep may wake slightly early; never hand back the slot just run
            after = now if last is None else max(now, last + timedelta(seconds=1))
            target = next_run(after)
            delay = seconds_until(target, now)
            logger.info(f"Next {name} job at {target.isoformat()} (in {delay:.0f}s)")
            await asyncio.sleep(delay)
            await self.run_job(name, job)
            last = target
