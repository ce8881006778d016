"""Operator alert delivery (Telegram chat + SMTP e-mail)."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from datetime import datetime, timezone
from email.message import EmailMessage
from html import escape
from typing import Any

import config
from telegram import Bot

logger = logging.getLogger(__name__)


class TelegramChannel:
    name = "telegram"

    def __init__(self, token: str, chat_id: int) -> None:
        self.chat_id = int(chat_id)
        self.bot = Bot(token)
        self._initialized = False

    async def deliver(self, category: str, message: str) -> None:
        if not self._initialized:
            await self.bot.initialize()
            self._initialized = True
        text = (
            f"⚠️ <b>{escape(config.ALERT_SUBJECT_PREFIX)}: {escape(category)}</b>\n\n"
            f"{escape(message)}"
        )
        await self.bot.send_message(
            chat_id=self.chat_id,
            text=text,
            parse_mode="HTML",
            disable_web_page_preview=True,
        )

    async def close(self) -> None:
        if self._initialized:
            await self.bot.shutdown()
            self._initialized = False


class SmtpChannel:
    name = "smtp"

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        from_addr: str,
        to_addr: str,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.user = user
        self.password = password
        self.from_addr = from_addr
        self.to_addr = to_addr

    def _send_blocking(self, subject: str, body: str) -> None:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = self.to_addr
        msg.set_content(body)
        context = ssl.create_default_context()
        context.minimum_version = ssl.TLSVersion.TLSv1_2
        with smtplib.SMTP(self.host, self.port, timeout=config.SMTP_TIMEOUT_SECONDS) as smtp:
            smtp.starttls(context=context)
            if self.user:
                smtp.login(self.user, self.password)
            smtp.send_message(msg)

    async def deliver(self, category: str, message: str) -> None:
        subject = f"{config.ALERT_SUBJECT_PREFIX}: {category}"
        stamp = datetime.now(timezone.utc).isoformat()
        await asyncio.to_thread(self._send_blocking, subject, f"{message}\n\n-- {stamp}")

    async def close(self) -> None:
        return None


class Notifier:
    """Best-effort fan-out of categorized alerts; a failed channel is logged, never raised."""

    def __init__(self, channels: list[Any] | None = None) -> None:
        self.channels = list(channels or [])

    @classmethod
    def from_config(cls) -> "Notifier":
        channels: list[Any] = []
        if config.TELEGRAM_BOT_TOKEN and int(config.TELEGRAM_ALERT_CHAT_ID or 0) != 0:
            channels.append(TelegramChannel(config.TELEGRAM_BOT_TOKEN, config.TELEGRAM_ALERT_CHAT_ID))
        if config.SMTP_HOST and config.ALERT_FROM_EMAIL and config.ALERT_TO_EMAIL:
            channels.append(
                SmtpChannel(
                    config.SMTP_HOST,
                    config.SMTP_PORT,
                    config.SMTP_USER,
                    config.SMTP_PASS,
                    config.ALERT_FROM_EMAIL,
                    config.ALERT_TO_EMAIL,
                )
            )
        if not channels:
            logger.warning("ALERTS no channel configured; alerts will only be logged")
        return cls(channels)

    async def send(self, category: str, message: str) -> int:
        logger.warning("ALERT category=%s message=%s", category, message)
        delivered = 0
        for channel in self.channels:
            try:
                await channel.deliver(category, message)
                delivered += 1
            except Exception as exc:
                logger.warning("ALERT delivery failed channel=%s category=%s err=%s", channel.name, category, exc)
        return delivered

    async def close(self) -> None:
        for channel in self.channels:
            try:
                await channel.close()
            except Exception as exc:
                logger.warning("ALERT channel close failed channel=%s err=%s", channel.name, exc)
