from __future__ import annotations

from typing import Any, Awaitable, Callable, Dict, List, Optional

from .api import fetch_user_profile, site_for_contest
from .config import Config, logger
from .formatting import (
    CHECK_USAGE,
    ERROR_REPLY,
    JOIN_USAGE,
    UNKNOWN_COMMAND,
    contests_summary,
    fmt_check_notice,
    fmt_contest_not_found,
    fmt_help,
    fmt_joined,
    fmt_joined_unverified,
    fmt_not_joined,
    fmt_profile_details,
    fmt_profile_unavailable,
    fmt_user_not_found,
)
from .storage import StateStore

Message = Dict[str, Any]
CommandHandler = Callable[[Message, List[str], Any, StateStore], Awaitable[None]]


# Slack reply helpers

async def post_message(client: Any, message: Message, text: str, in_thread: bool = False) -> None:
    kwargs: Dict[str, Any] = {
        "channel": message["channel"],
        "text": text,
        "username": Config.BOT_NAME,
        "icon_emoji": Config.BOT_ICON,
    }
    if in_thread:
        kwargs["thread_ts"] = message.get("thread_ts") or message["ts"]
    await client.chat_postMessage(**kwargs)


async def add_reaction(client: Any, message: Message, emoji: str) -> None:
    await client.reactions_add(name=emoji, channel=message["channel"], timestamp=message["ts"])


def parse_command(text: str, bot_user_id: Optional[str] = None) -> Optional[List[str]]:
    """Split a message addressed to the bot into its arguments, or None if it is not for us."""
    tokens = text.split()
    if not tokens:
        return None
    triggers = {f"@{Config.BOT_NAME}"}
    if bot_user_id:
        triggers.add(f"<@{bot_user_id}>")
    if tokens[0] not in triggers:
        return None
    return tokens[1:]


# Commands

async def list_cmd(message: Message, args: List[str], client: Any, store: StateStore) -> None:
    await post_message(client, message, contests_summary(store.snapshot().contests))


async def help_cmd(message: Message, args: List[str], client: Any, store: StateStore) -> None:
    await post_message(client, message, fmt_help())


async def join_cmd(message: Message, args: List[str], client: Any, store: StateStore) -> None:
    if len(args) < 2:
        await post_message(client, message, JOIN_USAGE)
        return

    contest_name, external_id = args[0], args[1]
    slack_id = message["user"]
    contest = store.find_contest(contest_name)
    if contest is None:
        await post_message(client, message, fmt_contest_not_found(contest_name))
        await post_message(client, message, contests_summary(store.snapshot().contests))
        return

    await store.register_user(slack_id)
    await add_reaction(client, message, "ok")

    site = site_for_contest(contest.id)
    if site is None or site.parse_profile is None:
        await store.link_user(slack_id, contest.id, external_id)
        await post_message(client, message, fmt_joined_unverified(contest, external_id))
        return

    profile = await fetch_user_profile(site.key, external_id)
    if profile is None:
        await post_message(client, message, fmt_user_not_found(external_id, contest))
        return

    await store.link_user(slack_id, contest.id, external_id)
    await post_message(client, message, fmt_joined(profile))


async def check_cmd(message: Message, args: List[str], client: Any, store: StateStore) -> None:
    if not args:
        await post_message(client, message, CHECK_USAGE)
        return

    contest_name = args[0]
    found = store.find_membership(message["user"], contest_name)
    if found is None:
        await post_message(client, message, fmt_not_joined(contest_name))
        return

    contest, user = found
    site = site_for_contest(contest.id)
    if site is None or site.parse_profile is None or not user.id_ctf:
        await post_message(client, message, fmt_profile_unavailable(contest))
        return

    profile = await fetch_user_profile(site.key, user.id_ctf)
    if profile is None:
        await post_message(client, message, fmt_user_not_found(user.id_ctf, contest))
        return

    await post_message(client, message, fmt_check_notice(profile))
    await post_message(client, message, fmt_profile_details(profile), in_thread=True)


async def unknown_cmd(message: Message, args: List[str], client: Any, store: StateStore) -> None:
    await post_message(client, message, UNKNOWN_COMMAND)


COMMANDS: Dict[str, CommandHandler] = {
    "list": list_cmd,
    "join": join_cmd,
    "check": check_cmd,
    "help": help_cmd,
}


async def handle_message(
    message: Message,
    client: Any,
    store: StateStore,
    bot_user_id: Optional[str] = None,
) -> bool:
    """Dispatch a Slack message event. Returns True if it was a command for the bot."""
    text = message.get("text")
    if not text or message.get("subtype") is not None:
        return False
    args = parse_command(text, bot_user_id)
    if args is None:
        return False

    name = args[0] if args else ""
    handler = COMMANDS.get(name, unknown_cmd)
    logger.debug(f"Command {name!r} from {message.get('user')}: {args[1:]}")
    try:
        await handler(message, args[1:], client, store)
    except Exception:
        logger.exception(f"Command {name!r} failed")
        await post_message(client, message, ERROR_REPLY)
    return True
