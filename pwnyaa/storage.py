from __future__ import annotations

import asyncio
import json
import os
from typing import List, Optional, Tuple

from .config import Config, logger
from .state import Challenge, Contest, State, UpsertResult, User


def _normalize(name: str) -> str:
    return name if Config.ALIAS_CASE_SENSITIVE else name.strip().casefold()


def contest_matches(contest: Contest, name: str) -> bool:
    """True when ``name`` is the contest title or one of its aliases."""
    key = _normalize(name)
    return key == _normalize(contest.title) or any(key == _normalize(a) for a in contest.alias)


class StateStore:
    """Owner of the persisted bot state.

    Readers get deep copies through ``snapshot()``; every mutation runs under
    one asyncio lock and rewrites the whole file before returning.
    """

    def __init__(self, path: str | None = None):
        self.path = path or Config.STATE_FILE
        self.state = State()
        self._lock = asyncio.Lock()

    def load(self) -> None:
        try:
            if os.path.exists(self.path):
                with open(self.path, "r") as f:
                    self.state = State.from_dict(json.load(f))
                logger.info(f"Loaded state: {len(self.state.contests)} contests, {len(self.state.users)} users")
            else:
                logger.info("No existing state file found")
                self.state = State()
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.error(f"Could not load state from {self.path}: {e}")
            self._set_aside()
            self.state = State()
        self.save()

    def _set_aside(self) -> None:
        """Move an unreadable state file to ``<path>.corrupt`` so it is never overwritten."""
        corrupt = f"{self.path}.corrupt"
        try:
            os.replace(self.path, corrupt)
        except OSError as e:
            logger.error(f"Could not move {self.path} aside: {e}")
            raise
        logger.warning(f"Unreadable state file kept as {corrupt}")

    def save(self) -> None:
        tmp = f"{self.path}.tmp"
        try:
            with open(tmp, "w") as f:
                json.dump(self.state.to_dict(), f, indent=2, ensure_ascii=False)
            os.replace(tmp, self.path)
            logger.debug("State saved to file")
        except OSError as e:
            logger.error(f"Could not save state to {self.path}: {e}")
            raise

    def snapshot(self) -> State:
        return self.state.copy()

    # Lookups (read the live state; callers must not mutate the result)

    def get_contest(self, contest_id: int) -> Optional[Contest]:
        for contest in self.state.contests:
            if contest.id == contest_id:
                return contest
        return None

    def find_contest(self, name: str) -> Optional[Contest]:
        for contest in self.state.contests:
            if contest_matches(contest, name):
                return contest
        return None

    def find_membership(self, slack_id: str, name: str) -> Optional[Tuple[Contest, User]]:
        """Find the caller's membership in a contest named by title or alias."""
        for contest in self.state.contests:
            if not contest_matches(contest, name):
                continue
            user = contest.member(slack_id)
            if user is not None:
                return contest, user
        return None

    def memberships(self, slack_id: str) -> List[Tuple[Contest, User]]:
        return [(c, c.member(slack_id)) for c in self.state.contests if c.member(slack_id) is not None]

    # Mutations

    async def upsert_contest(self, contest: Contest) -> UpsertResult:
        async with self._lock:
            result = self._upsert(contest)
            self.save()
        return result

    def _upsert(self, contest: Contest) -> UpsertResult:
        for i, existing in enumerate(self.state.contests):
            if existing.id == contest.id:
                self.state.contests[i] = contest
                return UpsertResult.UPDATED
        self.state.contests.append(contest)
        return UpsertResult.INSERTED

    async def merge_challenge_snapshot(
        self,
        contest_id: int,
        title: str,
        url: str,
        default_alias: str,
        challenges: List[Challenge],
    ) -> Tuple[Contest, UpsertResult]:
        """Merge a freshly fetched challenge list into the stored contest.

        A new contest gets the default alias and no members. An existing one
        keeps its alias and members; only the challenge count changes.
        """
        async with self._lock:
            existing = next((c for c in self.state.contests if c.title == title), None)
            if existing is None:
                updated = Contest(
                    id=contest_id,
                    url=url,
                    title=title,
                    alias=[default_alias],
                    num_challs=len(challenges),
                )
            else:
                updated = Contest(
                    id=existing.id,
                    url=url,
                    title=title,
                    alias=list(existing.alias),
                    num_challs=len(challenges),
                    joining_users=list(existing.joining_users),
                )
            result = self._upsert(updated)
            self.save()
        return updated, result

    async def register_user(self, slack_id: str) -> bool:
        """Add a global (unlinked) user record. Returns False if already known."""
        async with self._lock:
            if any(u.slack_id == slack_id for u in self.state.users):
                return False
            self.state.users.append(User(slack_id=slack_id, id_ctf=""))
            self.save()
        return True

    async def link_user(self, slack_id: str, contest_id: int, external_id: str) -> None:
        """Attach ``external_id`` to the caller's membership, creating it if needed."""
        async with self._lock:
            contest = self.get_contest(contest_id)
            if contest is None:
                raise KeyError(f"Unknown contest id: {contest_id}")
            user = contest.member(slack_id)
            if user is not None:
                user.id_ctf = external_id
            else:
                contest.joining_users.append(User(slack_id=slack_id, id_ctf=external_id))
            self.save()
        logger.info(f"Linked {slack_id} to {external_id} on {contest.title}")
