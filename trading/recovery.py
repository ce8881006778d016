"""Bounded, delayed re-initialization after component failures."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import config
from trading.engine_state import EngineState

logger = logging.getLogger(__name__)

ESCALATION_MESSAGE = "Max retries reached. Manual intervention required."


class RecoverySupervisor:
    """Funnels every failure into one alert and, while budget remains, a delayed re-init.

    `recovery_attempts` is only reset by the engine after a full initialization
    succeeds; a good price tick or order does not count as recovery.
    """

    def __init__(
        self,
        state: EngineState,
        store: Any,
        notifier: Any,
        reinitialize: Callable[[], Awaitable[Any]] | None = None,
    ) -> None:
        self.state = state
        self.store = store
        self.notifier = notifier
        self.reinitialize = reinitialize
        self._tasks: set[asyncio.Task] = set()

    @property
    def max_retries(self) -> int:
        return max(0, int(config.RECOVERY_MAX_RETRIES))

    @property
    def pending(self) -> int:
        return sum(1 for t in self._tasks if not t.done())

    async def handle(self, error: BaseException) -> bool:
        """Returns True when a retry was scheduled."""
        message = str(error) or error.__class__.__name__
        await self.notifier.send("Error", message)

        attempts = int(self.state.recovery_attempts)
        if attempts >= self.max_retries:
            logger.error("RECOVERY exhausted attempts=%s max=%s err=%s", attempts, self.max_retries, message)
            return False

        attempts += 1
        self.state.recovery_attempts = attempts
        await self.store.save(self.state)
        logger.warning("RECOVERY scheduled attempt=%s/%s err=%s", attempts, self.max_retries, message)
        if attempts == self.max_retries:
            await self.notifier.send("Error", ESCALATION_MESSAGE)

        task = asyncio.create_task(self._retry_later(attempts))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _retry_later(self, attempt: int) -> None:
        await asyncio.sleep(float(config.RECOVERY_RETRY_DELAY_SECONDS))
        if self.reinitialize is None:
            return
        logger.info("RECOVERY reinitialize attempt=%s", attempt)
        # Initialization routes its own failures back through handle().
        await self.reinitialize()

    def cancel(self) -> None:
        for task in list(self._tasks):
            if task is not asyncio.current_task():
                task.cancel()
        self._tasks.clear()
