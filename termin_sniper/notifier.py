"""
Notification sink: local bell, webhook and optional Telegram message.

Уведомления отправляются по принципу "отправил и забыл": ошибки доставки
только логируются и никогда не возвращаются в цикл проверок.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Callable, Optional

import aiohttp
from aiogram import Bot

from .config import NotifyConfig

logger = logging.getLogger(__name__)


def ring_bell() -> None:
    """Terminal bell. Never raises."""
    try:
        sys.stdout.write("\a")
        sys.stdout.flush()
    except (OSError, ValueError):
        pass


def build_message(entry_url: str) -> str:
    return f"Found an Appointment, check {entry_url}"


async def deliver(
    session: aiohttp.ClientSession,
    endpoint: str,
    message: str,
    timeout: float = 10.0,
) -> int:
    """POST ``message`` as text/plain to ``endpoint`` and return the status code."""
    async with session.post(
        endpoint,
        data=message.encode("utf-8"),
        headers={"Content-Type": "text/plain"},
        timeout=aiohttp.ClientTimeout(total=timeout),
    ) as resp:
        return resp.status


class Notifier:
    """Delivers alerts through every configured channel."""

    def __init__(
        self,
        config: NotifyConfig,
        *,
        cue: Callable[[], None] = ring_bell,
        session: Optional[aiohttp.ClientSession] = None,
        bot: Optional[Bot] = None,
    ) -> None:
        self._config = config
        self._cue = cue
        self._session = session
        self._bot = bot

    @property
    def has_outbound(self) -> bool:
        return bool(self._config.webhook_url) or self._config.telegram_enabled

    async def notify(self, message: str) -> bool:
        """Local cue plus every outbound channel."""
        self._cue()
        return await self.send_outbound(message)

    async def send_outbound(self, message: str) -> bool:
        """
        Send ``message`` to the webhook and Telegram, whichever are configured.

        Returns True if at least one channel accepted the message.
        """
        delivered = False
        if self._config.webhook_url:
            delivered = await self._call_webhook(self._config.webhook_url, message) or delivered
        if self._config.telegram_enabled:
            delivered = await self._notify_admin_text(message) or delivered
        return delivered

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    async def _call_webhook(self, endpoint: str, message: str) -> bool:
        session = await self._get_session()
        try:
            status = await deliver(session, endpoint, message, self._config.webhook_timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning("webhook: request failed: %r", e)
            return False
        logger.info("webhook: called %s -> %d", endpoint, status)
        return 200 <= status < 300

    async def _notify_admin_text(self, message: str) -> bool:
        try:
            if self._bot is None:
                self._bot = Bot(self._config.bot_token)
            await self._bot.send_message(chat_id=self._config.admin_chat_id, text=message)
        except Exception as e:  # noqa: BLE001
            logger.warning("telegram: failed to send notification: %s", e)
            return False
        logger.info("telegram: notified chat %s", self._config.admin_chat_id)
        return True

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        if self._bot is not None:
            await self._bot.session.close()


__all__ = ["Notifier", "build_message", "deliver", "ring_bell"]
