from __future__ import annotations

import asyncio
from typing import Optional

import aiohttp
from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp
from slack_sdk.errors import SlackApiError
from slack_sdk.web.async_client import AsyncWebClient

from .api import login_tw
from .commands import handle_message
from .config import Config, logger
from .http import make_session
from .storage import StateStore
from .watchers import Scheduler


async def startup_health_check() -> bool:
    """Check that the pwnable.tw credentials work."""
    logger.info("🏥 Running startup health check...")
    async with make_session(cookie_jar=aiohttp.DummyCookieJar()) as session:
        session_id = await login_tw(session)
    if session_id:
        logger.info("✅ pwnable.tw login successful")
        return True
    logger.error("❌ pwnable.tw login failed - profile lookups will report users as not found")
    logger.error("Check TWUSER/TWPW in your .env file")
    return False


def register_handlers(app: AsyncApp, store: StateStore, bot_user_id: Optional[str] = None) -> None:
    @app.event("message")
    async def on_message(event, client):
        await handle_message(event, client, store, bot_user_id=bot_user_id)


def build_app(store: StateStore, bot_user_id: Optional[str] = None) -> AsyncApp:
    app = AsyncApp(token=Config.SLACK_BOT_TOKEN)
    register_handlers(app, store, bot_user_id)
    return app


async def run() -> None:
    store = StateStore()
    store.load()

    bot_user_id: Optional[str] = None
    try:
        auth = await AsyncWebClient(token=Config.SLACK_BOT_TOKEN).auth_test()
        bot_user_id = auth.get("user_id")
        logger.info(f"✅ Connected to Slack as {auth.get('user')} ({bot_user_id})")
    except SlackApiError as e:
        logger.warning(f"Could not resolve bot user id, only @{Config.BOT_NAME} triggers commands: {e}")
    app = build_app(store, bot_user_id)

    await startup_health_check()

    scheduler = Scheduler(store, app.client)
    handler = AsyncSocketModeHandler(app, Config.SLACK_APP_TOKEN)
    await handler.connect_async()
    scheduler.start()
    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
        await handler.close_async()


def main():
    try:
        Config.validate_config()
    except ValueError as e:
        raise SystemExit(f"❌ {e}. Check your .env file.")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Shutting down")
