import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
import pytz

from pwnyaa import Config, Scheduler, daily_job, evaluate_achievements, rank_weekly, refresh_all, solved_within, weekly_job
from pwnyaa.achievements import Achievements, achievement_name
from pwnyaa.formatting import NOBODY_SOLVED_WEEKLY
from pwnyaa.state import Challenge, Profile, SolvedInfo


NOW = datetime(2024, 6, 10, 0, 0, tzinfo=timezone.utc)


def _solved(*hours_ago):
    return [SolvedInfo(f"chall{i}", 100, NOW - timedelta(hours=h)) for i, h in enumerate(hours_ago)]


@pytest_asyncio.fixture
async def tw_store(store):
    await store.merge_challenge_snapshot(0, "pwnable.tw", "https://pwnable.tw", "tw", [Challenge(i, f"c{i}", 100) for i in range(10)])
    await store.merge_challenge_snapshot(1, "pwnable.xyz", "https://pwnable.xyz", "xyz", [Challenge(1, "Welcome", 50)])
    return store


def _patch_profiles(monkeypatch, profiles):
    async def fake_fetch(site_key, external_id):
        return profiles.get(external_id)

    monkeypatch.setattr("pwnyaa.watchers.fetch_user_profile", fake_fetch)


# Pure helpers

def test_evaluate_achievements_thresholds():
    assert evaluate_achievements(5, 10) == ["half"]
    assert evaluate_achievements(4, 10) == []
    assert evaluate_achievements(10, 10) == ["complete", "half"]
    assert evaluate_achievements(12, 10) == ["complete", "half"]
    assert evaluate_achievements(3, 5) == ["half"]
    assert evaluate_achievements(0, 0) == []


def test_rank_weekly_descending():
    assert rank_weekly({"A": 3, "B": 5, "C": 0}) == [("B", 5), ("A", 3), ("C", 0)]
    assert rank_weekly({}) == []


def test_solved_within_windows():
    profile = Profile(username="alice", solved=_solved(1, 23, 25, 24 * 6, 24 * 8))

    assert [s.name for s in solved_within(profile, NOW, 1)] == ["chall0", "chall1"]
    assert [s.name for s in solved_within(profile, NOW, 7)] == ["chall0", "chall1", "chall2", "chall3"]


def test_achievement_name():
    assert achievement_name("tw", "half") == "pwnyaa-tw-half"


# Refresh

@pytest.mark.asyncio
async def test_refresh_all_merges_counts(store, monkeypatch):
    counts = {"tw": 48, "xyz": 0}

    async def fake_fetch(site_key):
        return [Challenge(i, f"c{i}", 100) for i in range(counts[site_key])]

    monkeypatch.setattr("pwnyaa.watchers.fetch_challenges", fake_fetch)

    await refresh_all(store)
    assert store.get_contest(0).num_challs == 48
    assert store.get_contest(1).num_challs == 0

    counts.update(tw=50, xyz=35)
    await refresh_all(store)
    assert store.get_contest(0).num_challs == 50
    assert store.get_contest(1).num_challs == 35
    assert len(store.state.contests) == 2


@pytest.mark.asyncio
async def test_refresh_keeps_count_on_empty_listing(tw_store, monkeypatch):
    async def fake_fetch(site_key):
        return []

    monkeypatch.setattr("pwnyaa.watchers.fetch_challenges", fake_fetch)

    await refresh_all(tw_store)
    assert tw_store.get_contest(0).num_challs == 10


@pytest.mark.asyncio
async def test_refresh_one_site_failing_does_not_stop_others(store, monkeypatch):
    async def fake_fetch(site_key):
        if site_key == "tw":
            raise RuntimeError("HTTP 503")
        return [Challenge(1, "Welcome", 50)]

    monkeypatch.setattr("pwnyaa.watchers.fetch_challenges", fake_fetch)

    await refresh_all(store)
    assert store.get_contest(0) is None
    assert store.get_contest(1).num_challs == 1


# Daily digest

@pytest.mark.asyncio
async def test_daily_job_digest_and_achievements(tw_store, slack_client, fake_achievements, monkeypatch):
    await tw_store.link_user("U1", 0, "alice")
    await tw_store.link_user("U2", 0, "bob")
    await tw_store.link_user("U3", 0, "")
    await tw_store.link_user("U4", 1, "xyzonly")
    _patch_profiles(monkeypatch, {
        "alice": Profile(username="alice", solved=_solved(2, 30, 50, 70, 90)),
        "bob": Profile(username="bob", solved=_solved(*([100] * 10))),
    })

    await daily_job(tw_store, slack_client, fake_achievements, now=NOW)

    assert fake_achievements.unlocked == [
        ("U1", "pwnyaa-tw-half"),
        ("U2", "pwnyaa-tw-complete"),
        ("U2", "pwnyaa-tw-half"),
    ]
    assert len(slack_client.messages) == 1
    digest = slack_client.messages[0]
    assert digest["channel"] == "CPWN"
    assert "pwnable.tw" in digest["text"]
    assert "<@U1> が 1問 解いたよ!" in digest["text"]
    assert "<@U2>" not in digest["text"]


@pytest.mark.asyncio
async def test_daily_job_fires_again_without_dedup(tw_store, slack_client, fake_achievements, monkeypatch):
    await tw_store.link_user("U1", 0, "alice")
    _patch_profiles(monkeypatch, {"alice": Profile(username="alice", solved=_solved(*([100] * 5)))})

    await daily_job(tw_store, slack_client, fake_achievements, now=NOW)
    await daily_job(tw_store, slack_client, fake_achievements, now=NOW)

    assert fake_achievements.unlocked == [("U1", "pwnyaa-tw-half")] * 2
    assert slack_client.messages == []


@pytest.mark.asyncio
async def test_daily_job_skips_unfetchable_profiles(tw_store, slack_client, fake_achievements, monkeypatch):
    await tw_store.link_user("U1", 0, "ghost")
    _patch_profiles(monkeypatch, {})

    await daily_job(tw_store, slack_client, fake_achievements, now=NOW)

    assert fake_achievements.unlocked == []
    assert slack_client.messages == []


# Weekly ranking

@pytest.mark.asyncio
async def test_weekly_job_ranking_order(tw_store, slack_client, monkeypatch):
    await tw_store.link_user("UA", 0, "a")
    await tw_store.link_user("UB", 0, "b")
    await tw_store.link_user("UC", 0, "c")
    _patch_profiles(monkeypatch, {
        "a": Profile(username="a", solved=_solved(1, 2, 3)),
        "b": Profile(username="b", solved=_solved(1, 2, 3, 4, 5)),
        "c": Profile(username="c", solved=_solved(24 * 9)),
    })

    await weekly_job(tw_store, slack_client, now=NOW)

    text = slack_client.texts[0]
    assert text.index("<@UB>") < text.index("<@UA>") < text.index("<@UC>")
    assert "1位: <@UB> (5問)" in text
    assert "3位: <@UC> (0問)" in text


@pytest.mark.asyncio
async def test_weekly_job_nobody_solved(tw_store, slack_client, monkeypatch):
    await tw_store.link_user("UA", 0, "a")
    _patch_profiles(monkeypatch, {"a": Profile(username="a", solved=_solved(24 * 30))})

    await weekly_job(tw_store, slack_client, now=NOW)

    assert slack_client.texts == [NOBODY_SOLVED_WEEKLY]


@pytest.mark.asyncio
async def test_weekly_job_without_channel_posts_nothing(tw_store, slack_client, monkeypatch):
    monkeypatch.setattr(Config, "CHANNEL_PWNABLE", "")
    await weekly_job(tw_store, slack_client, now=NOW)
    assert slack_client.messages == []


# Achievements collaborator

@pytest.mark.asyncio
async def test_achievements_announce_in_channel(slack_client):
    await Achievements(slack_client, channel="CPWN").unlock("U1", "pwnyaa-tw-complete")

    assert slack_client.messages[0]["channel"] == "CPWN"
    assert "<@U1>" in slack_client.texts[0]
    assert "pwnyaa-tw-complete" in slack_client.texts[0]


# Scheduler

@pytest.mark.asyncio
async def test_scheduler_jobs_never_interleave(store, slack_client):
    scheduler = Scheduler(store, slack_client)
    events = []

    def make_job(name):
        async def job():
            events.append(f"{name}:start")
            await asyncio.sleep(0.01)
            events.append(f"{name}:end")
        return job

    await asyncio.gather(
        scheduler.run_job("refresh", make_job("refresh")),
        scheduler.run_job("daily", make_job("daily")),
        scheduler.run_job("weekly", make_job("weekly")),
    )

    assert events == [
        "refresh:start", "refresh:end",
        "daily:start", "daily:end",
        "weekly:start", "weekly:end",
    ]


@pytest.mark.asyncio
async def test_scheduler_job_failure_is_contained(store, slack_client):
    scheduler = Scheduler(store, slack_client)

    async def broken():
        raise RuntimeError("boom")

    await scheduler.run_job("daily", broken)
    assert not scheduler.job_lock.locked()


@pytest.mark.asyncio
async def test_scheduler_start_runs_refresh_and_stops(store, slack_client, monkeypatch):
    refreshed = asyncio.Event()

    async def fake_refresh_all(s):
        refreshed.set()

    monkeypatch.setattr("pwnyaa.watchers.refresh_all", fake_refresh_all)
    scheduler = Scheduler(store, slack_client)
    scheduler.start()
    try:
        await asyncio.wait_for(refreshed.wait(), timeout=1)
        assert len(scheduler.tasks) == 3
    finally:
        await scheduler.stop()
    assert scheduler.tasks == []


@pytest.mark.asyncio
async def test_calendar_never_repeats_the_slot_it_just_ran(store, slack_client):
    scheduler = Scheduler(store, slack_client)
    slot = datetime.now(pytz.utc) + timedelta(milliseconds=50)
    asked = []
    ran = []

    def next_run(after):
        asked.append(after)
        return slot if len(asked) == 1 else after + timedelta(hours=1)

    async def job():
        ran.append(datetime.now(pytz.utc))

    task = asyncio.create_task(scheduler._calendar("daily", next_run, job))
    try:
        for _ in range(100):
            if len(asked) >= 2:
                break
            await asyncio.sleep(0.01)
    finally:
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    assert len(ran) == 1
    assert asked[1] >= slot + timedelta(seconds=1)
