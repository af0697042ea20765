from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List


class UpsertResult(Enum):
    """Outcome of a contest upsert."""
    INSERTED = "inserted"
    UPDATED = "updated"


@dataclass
class User:
    slack_id: str
    id_ctf: str = ""  # empty: registered with the bot but not linked to a CTF account

    def to_dict(self) -> Dict[str, Any]:
        return {"slackId": self.slack_id, "idCtf": self.id_ctf}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(slack_id=str(data.get("slackId", "")), id_ctf=str(data.get("idCtf") or ""))


@dataclass
class Contest:
    id: int
    url: str
    title: str
    alias: List[str] = field(default_factory=list)
    num_challs: int = 0
    joining_users: List[User] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "alias": list(self.alias),
            "numChalls": self.num_challs,
            "joiningUsers": [u.to_dict() for u in self.joining_users],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Contest":
        alias = data.get("alias") or []
        if isinstance(alias, str):
            alias = [alias]
        return cls(
            id=int(data["id"]),
            url=str(data.get("url", "")),
            title=str(data.get("title", "")),
            alias=[str(a) for a in alias],
            num_challs=int(data.get("numChalls", 0)),
            joining_users=[User.from_dict(u) for u in data.get("joiningUsers", [])],
        )

    def member(self, slack_id: str) -> User | None:
        for user in self.joining_users:
            if user.slack_id == slack_id:
                return user
        return None


@dataclass
class Challenge:
    """A challenge as listed on a site. Only the count is persisted."""
    id: int
    name: str
    score: int


@dataclass
class SolvedInfo:
    name: str
    score: int
    solved_at: datetime


@dataclass
class Profile:
    username: str
    country: str = ""
    rank: str = ""
    score: str = ""
    comment: str = ""
    registered_at: str = ""
    solved: List[SolvedInfo] = field(default_factory=list)


@dataclass
class State:
    users: List[User] = field(default_factory=list)
    contests: List[Contest] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "users": [u.to_dict() for u in self.users],
            "contests": [c.to_dict() for c in self.contests],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "State":
        return cls(
            users=[User.from_dict(u) for u in data.get("users", [])],
            contests=[Contest.from_dict(c) for c in data.get("contests", [])],
        )

    def copy(self) -> "State":
        return copy.deepcopy(self)
