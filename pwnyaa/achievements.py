from __future__ import annotations

from typing import Any

from .config import Config, logger
from .formatting import fmt_achievement


def achievement_name(alias: str, kind: str) -> str:
    return f"pwnyaa-{alias}-{kind}"


class Achievements:
    """Unlocks achievements by announcing them in the digest channel.

    There is no record of past unlocks; firing the same achievement twice
    announces it twice.
    """

    def __init__(self, client: Any, channel: str | None = None):
        self.client = client
        self.channel = channel if channel is not None else Config.CHANNEL_PWNABLE

    async def unlock(self, slack_id: str, name: str) -> None:
        logger.info(f"Achievement {name} unlocked by {slack_id}")
        if not self.channel:
            return
        await self.client.chat_postMessage(
            channel=self.channel,
            text=fmt_achievement(slack_id, name),
            username=Config.BOT_NAME,
            icon_emoji=Config.BOT_ICON,
        )
