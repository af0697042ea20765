from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional
from urllib.parse import quote

import aiohttp
from bs4 import BeautifulSoup

from .config import Config, logger
from .http import fetch_text, make_session
from .parsers import parse_challenges_tw, parse_challenges_xyz, parse_profile_tw
from .state import Challenge, Profile


@dataclass(frozen=True)
class Site:
    key: str
    id: int
    title: str
    url: str
    alias: str
    base_url_setting: str
    challenges_path: str
    parse_challenges: Callable[[str], List[Challenge]]
    profile_path: Optional[str] = None
    parse_profile: Optional[Callable[[str], Optional[Profile]]] = None
    requires_login: bool = False

    @property
    def base_url(self) -> str:
        return getattr(Config, self.base_url_setting)

    @property
    def challenges_url(self) -> str:
        return f"{self.base_url}{self.challenges_path}"

    def profile_url(self, external_id: str) -> str:
        if self.profile_path is None:
            raise ValueError(f"{self.title} has no profile pages")
        return f"{self.base_url}{self.profile_path.format(id=quote(external_id, safe=''))}"


SITES: Dict[str, Site] = {
    "tw": Site(
        key="tw",
        id=0,
        title="pwnable.tw",
        url="https://pwnable.tw",
        alias="tw",
        base_url_setting="TW_BASE_URL",
        challenges_path="/challenge/",
        parse_challenges=parse_challenges_tw,
        profile_path="/user/{id}",
        parse_profile=parse_profile_tw,
        requires_login=True,
    ),
    "xyz": Site(
        key="xyz",
        id=1,
        title="pwnable.xyz",
        url="https://pwnable.xyz",
        alias="xyz",
        base_url_setting="XYZ_BASE_URL",
        challenges_path="/challenges",
        parse_challenges=parse_challenges_xyz,
    ),
}


def get_site(site_key: str) -> Site:
    try:
        return SITES[site_key]
    except KeyError:
        raise ValueError(f"Unknown site: {site_key}") from None


def site_for_contest(contest_id: int) -> Optional[Site]:
    for site in SITES.values():
        if site.id == contest_id:
            return site
    return None


def supports_profiles(site_key: str) -> bool:
    return get_site(site_key).parse_profile is not None


async def login_tw(session: aiohttp.ClientSession) -> Optional[str]:
    """Log into pwnable.tw and return the session id cookie, or None on failure.

    The login form carries a CSRF token both as a hidden input and as the
    ``csrftoken`` cookie; both must be echoed back in the POST.
    """
    if not Config.TW_USER or not Config.TW_PASSWORD:
        logger.warning("pwnable.tw credentials not configured (TWUSER/TWPW)")
        return None

    login_url = f"{Config.TW_BASE_URL}/user/login"
    try:
        async with session.get(login_url) as r:
            if r.status != 200:
                logger.warning(f"pwnable.tw login page returned {r.status}")
                return None
            html = await r.text(errors="replace")
            csrf_cookie = r.cookies.get("csrftoken")

        token_input = BeautifulSoup(html, "html.parser").find("input", {"name": "csrfmiddlewaretoken"})
        if token_input is None or not token_input.get("value"):
            logger.warning("pwnable.tw login page has no csrfmiddlewaretoken")
            return None

        headers = {
            "Referer": f"{Config.TW_BASE_URL}/",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        if csrf_cookie is not None:
            headers["Cookie"] = f"csrftoken={csrf_cookie.value}"
        data = {
            "csrfmiddlewaretoken": token_input["value"],
            "username": Config.TW_USER,
            "password": Config.TW_PASSWORD,
        }
        async with session.post(login_url, data=data, headers=headers, allow_redirects=False) as r:
            session_cookie = r.cookies.get("sessionid")
    except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
        logger.warning(f"pwnable.tw login request failed: {e!r}")
        return None

    if session_cookie is None or not session_cookie.value:
        logger.warning("pwnable.tw login failed: no sessionid issued")
        return None
    logger.debug("pwnable.tw login succeeded")
    return session_cookie.value


async def fetch_challenges(site_key: str) -> List[Challenge]:
    """Fetch the challenge list of a site.

    Transport errors propagate once retries are exhausted; a page that does
    not parse yields an empty list.
    """
    site = get_site(site_key)
    async with make_session() as session:
        html = await fetch_text(session, site.challenges_url)
    if html is None:
        logger.warning(f"{site.title}: challenge page not found")
        return []
    challs = site.parse_challenges(html)
    if not challs:
        logger.warning(f"{site.title}: challenge page did not match the expected structure")
    return challs


async def fetch_user_profile(site_key: str, external_id: str) -> Optional[Profile]:
    """Fetch a user's profile, or None when it cannot be found.

    Sites requiring login get a fresh login on every call; their session
    cookie is short-lived and is never reused.
    """
    site = get_site(site_key)
    if site.parse_profile is None:
        return None
    if not external_id:
        return None

    async with make_session(cookie_jar=aiohttp.DummyCookieJar()) as session:
        headers: Dict[str, str] = {}
        if site.requires_login:
            session_id = await login_tw(session)
            if not session_id:
                return None
            headers["Cookie"] = f"sessionid={session_id}"
        try:
            html = await fetch_text(session, site.profile_url(external_id), headers=headers)
        except (aiohttp.ClientError, asyncio.TimeoutError, RuntimeError, ValueError) as e:
            logger.warning(f"{site.title}: profile fetch for {external_id} failed: {e!r}")
            return None

    if html is None:
        return None
    profile = site.parse_profile(html)
    if profile is None:
        logger.info(f"{site.title}: no profile found for {external_id}")
    return profile
