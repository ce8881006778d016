from __future__ import annotations

import asyncio
import unittest

from monitor.notifier import Notifier, SmtpChannel, TelegramChannel
from tests.fakes import ConfigPatchMixin


class _Channel:
    def __init__(self, name: str, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.delivered: list[tuple[str, str]] = []
        self.closed = False

    async def deliver(self, category: str, message: str) -> None:
        if self.fail:
            raise ConnectionError(f"{self.name} unreachable")
        self.delivered.append((category, message))

    async def close(self) -> None:
        self.closed = True


class NotifierTests(ConfigPatchMixin, unittest.TestCase):
    def test_failed_channel_does_not_block_others(self) -> None:
        bad = _Channel("telegram", fail=True)
        good = _Channel("smtp")
        notifier = Notifier([bad, good])
        delivered = asyncio.run(notifier.send("Error", "rpc down"))
        self.assertEqual(delivered, 1)
        self.assertEqual(good.delivered, [("Error", "rpc down")])

    def test_no_channels_is_not_an_error(self) -> None:
        self.assertEqual(asyncio.run(Notifier().send("Error", "x")), 0)

    def test_close_reaches_every_channel(self) -> None:
        channels = [_Channel("a"), _Channel("b")]
        asyncio.run(Notifier(channels).close())
        self.assertTrue(all(c.closed for c in channels))

    def test_from_config_builds_configured_channels(self) -> None:
        self.patch_cfg(
            TELEGRAM_BOT_TOKEN="123456:ABCDEF",
            TELEGRAM_ALERT_CHAT_ID=42,
            SMTP_HOST="smtp.example.org",
            ALERT_FROM_EMAIL="bot@example.org",
            ALERT_TO_EMAIL="ops@example.org",
        )
        notifier = Notifier.from_config()
        kinds = [type(c) for c in notifier.channels]
        self.assertEqual(kinds, [TelegramChannel, SmtpChannel])

    def test_from_config_skips_incomplete_channels(self) -> None:
        self.patch_cfg(TELEGRAM_BOT_TOKEN="", SMTP_HOST="smtp.example.org", ALERT_TO_EMAIL="")
        self.assertEqual(Notifier.from_config().channels, [])


if __name__ == "__main__":
    unittest.main()
