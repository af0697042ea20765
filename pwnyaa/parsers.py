"""
HTML parsers for the tracked CTF sites.

Each site's pages are scraped by fixed CSS selector positions, so every parser
is a pure function from an HTML string to model objects. Entries that do not
match the expected structure are skipped; a page that does not match at all
produces an empty list (or None for a profile).
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import pytz
from bs4 import BeautifulSoup, Tag

from .config import logger
from .state import Challenge, Profile, SolvedInfo


TW_ID_PREFIX = "challenge-id-"
XYZ_ID_PREFIX = "#chalModal"
SCORE_SUFFIX = " pts"


def _text(node: Optional[Tag]) -> str:
    return node.get_text(strip=True) if node is not None else ""


def _strip_prefix(value: str, prefix: str) -> str:
    return value[len(prefix):] if value.startswith(prefix) else value


def parse_score(raw: str) -> int:
    """Parse a score cell such as ``"150 pts"`` or ``"50"``."""
    raw = raw.strip()
    if raw.endswith(SCORE_SUFFIX.strip()):
        raw = raw[: -len(SCORE_SUFFIX.strip())].strip()
    return int(raw)


def parse_timestamp(raw: str) -> datetime:
    dt = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = pytz.utc.localize(dt)
    return dt


def parse_challenges_tw(html: str) -> List[Challenge]:
    soup = BeautifulSoup(html, "html.parser")
    challs: List[Challenge] = []
    for entry in soup.select("li.challenge-entry"):
        name = _text(entry.select_one("div.challenge-info > .title > p > .tititle"))
        try:
            score = parse_score(_text(entry.select_one("div.challenge-info > .title > p > .score")))
            chall_id = int(_strip_prefix(entry.get("id", ""), TW_ID_PREFIX))
        except ValueError:
            logger.debug(f"Skipping malformed pwnable.tw entry: {name!r}")
            continue
        challs.append(Challenge(id=chall_id, name=name, score=score))
    return challs


def parse_challenges_xyz(html: str) -> List[Challenge]:
    soup = BeautifulSoup(html, "html.parser")
    challs: List[Challenge] = []
    for entry in soup.select("div.col-lg-2"):
        name = _text(entry.select_one("div.challenge > i"))
        link = entry.select_one("a[data-target]")
        try:
            score = parse_score(_text(entry.select_one("div.challenge > p")))
            chall_id = int(_strip_prefix(link.get("data-target", "") if link else "", XYZ_ID_PREFIX))
        except ValueError:
            logger.debug(f"Skipping malformed pwnable.xyz entry: {name!r}")
            continue
        challs.append(Challenge(id=chall_id, name=name, score=score))
    return challs


def _parse_solved_tw(column: Tag) -> List[SolvedInfo]:
    solved: List[SolvedInfo] = []
    for entry in column.select("li.challenge-entry"):
        name = _text(entry.select_one(".tititle"))
        stamp = entry.select_one("time[datetime]")
        try:
            score = parse_score(_text(entry.select_one(".score")))
            solved_at = parse_timestamp(stamp["datetime"] if stamp else "")
        except ValueError:
            logger.debug(f"Skipping malformed solved entry: {name!r}")
            continue
        solved.append(SolvedInfo(name=name, score=score, solved_at=solved_at))
    return solved


def parse_profile_tw(html: str) -> Optional[Profile]:
    soup = BeautifulSoup(html, "html.parser")
    block = soup.select_one("div.col-md-8 > div.row > div.col-md-9")
    if block is None:
        return None

    cells = [_text(c) for c in block.select("div.row > div.col-md-10")]
    if not cells or not cells[0]:
        return None
    cells += [""] * (6 - len(cells))

    column = block.find_parent("div", class_="col-md-8")
    return Profile(
        username=cells[0],
        country=cells[1],
        rank=cells[2],
        score=cells[3],
        comment=cells[4],
        registered_at=cells[5],
        solved=_parse_solved_tw(column) if column is not None else [],
    )
