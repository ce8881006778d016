"""Read-only HTTP status surface for the engine."""

import logging
from typing import Any, Callable

from aiohttp import web

import config

logger = logging.getLogger(__name__)


class StatusServer:
    def __init__(self, snapshot: Callable[[], dict[str, Any]], host: str | None = None, port: int | None = None) -> None:
        self.snapshot = snapshot
        self.host = host if host is not None else config.STATUS_HOST
        self.port = int(port if port is not None else config.STATUS_PORT)
        self.runner: web.AppRunner | None = None
        self.site: web.TCPSite | None = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/status", self._handle_status)
        app.router.add_get("/health", self._handle_health)
        return app

    async def start(self) -> None:
        self.runner = web.AppRunner(self.build_app())
        await self.runner.setup()
        self.site = web.TCPSite(self.runner, self.host, self.port)
        await self.site.start()
        logger.info("Status server listening on %s:%s", self.host, self.port)

    async def stop(self) -> None:
        if self.runner:
            await self.runner.cleanup()
            self.runner = None

    async def _handle_status(self, request: web.Request) -> web.Response:
        try:
            payload = self.snapshot()
        except Exception as exc:
            logger.exception("STATUS snapshot failed")
            return web.json_response({"status": "error", "error": str(exc)}, status=500)
        return web.json_response(payload)

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({"ok": True})
