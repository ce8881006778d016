"""Price-move circuit breaker gating new orders.

Closed: orders permitted. Open: every order attempt is refused at the gate.

Closed -> Open when a price tick reports a relative move above
CIRCUIT_BREAKER_THRESHOLD. The trip persists the flag, alerts, and arms one
cooldown timer. When the timer fires the price is re-sampled and compared with
the price recorded at trip time; a move back under the threshold closes the
breaker. If it is still above, CIRCUIT_BREAKER_REPEAT_COOLDOWN decides whether
another cooldown is armed right away or the breaker waits for the next
qualifying tick to arm one.
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable

import config
from trading.engine_state import EngineState

logger = logging.getLogger(__name__)

PriceSampler = Callable[[], Awaitable[Decimal | None]]
ErrorHandler = Callable[[Exception], Awaitable[None]]


def relative_change(new_price: Decimal, reference: Decimal) -> float:
    if reference is None or reference <= 0:
        return 0.0
    return float(abs(Decimal(new_price) - reference) / reference)


class CircuitBreaker:
    def __init__(
        self,
        state: EngineState,
        store: Any,
        notifier: Any,
        sampler: PriceSampler,
        on_error: ErrorHandler | None = None,
    ) -> None:
        self.state = state
        self.store = store
        self.notifier = notifier
        self.sampler = sampler
        self.on_error = on_error
        self.trip_price: Decimal | None = None
        self._cooldown_task: asyncio.Task | None = None

    @property
    def is_open(self) -> bool:
        return bool(self.state.is_circuit_broken)

    @property
    def cooldown_pending(self) -> bool:
        return self._cooldown_task is not None and not self._cooldown_task.done()

    def allows_orders(self) -> bool:
        return not self.state.is_circuit_broken

    async def evaluate(self, price_change: float, current_price: Decimal) -> bool:
        """Feed one tick's price change. Returns True when this call tripped the breaker."""
        threshold = float(config.CIRCUIT_BREAKER_THRESHOLD)
        if price_change <= threshold:
            return False
        if self.state.is_circuit_broken:
            if not self.cooldown_pending:
                logger.warning(
                    "CIRCUIT_BREAKER rearm change=%.4f threshold=%.4f price=%s",
                    price_change,
                    threshold,
                    current_price,
                )
                self.arm_cooldown(current_price)
            return False

        self.state.is_circuit_broken = True
        await self.store.save(self.state)
        logger.warning(
            "CIRCUIT_BREAKER state=open change=%.4f threshold=%.4f price=%s",
            price_change,
            threshold,
            current_price,
        )
        await self.notifier.send(
            "Circuit Breaker",
            f"Trading halted due to price movement of {price_change * 100:.2f}%",
        )
        self.arm_cooldown(current_price)
        return True

    def arm_cooldown(self, reference_price: Decimal | None) -> None:
        self.trip_price = reference_price
        self.cancel()
        self._cooldown_task = asyncio.create_task(self._cooldown_after(float(config.CIRCUIT_BREAKER_COOLDOWN_SECONDS)))

    async def _cooldown_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # This task is finished as far as rearming is concerned.
        self._cooldown_task = None
        await self.check_cooldown()

    async def check_cooldown(self) -> bool:
        """Re-sample and close the breaker if the move settled. Returns True when closed."""
        if not self.state.is_circuit_broken:
            return True
        try:
            price = await self.sampler()
        except Exception as exc:
            logger.error("CIRCUIT_BREAKER cooldown sample failed err=%s", exc)
            if self.on_error is not None:
                await self.on_error(exc)
            price = None

        if price is not None and self.trip_price is not None:
            change = relative_change(price, self.trip_price)
            if change < float(config.CIRCUIT_BREAKER_THRESHOLD):
                self.state.is_circuit_broken = False
                await self.store.save(self.state)
                logger.warning("CIRCUIT_BREAKER state=closed change=%.4f price=%s", change, price)
                await self.notifier.send("Circuit Breaker", "Trading resumed after price stabilization")
                return True
            logger.warning("CIRCUIT_BREAKER still_open change=%.4f price=%s", change, price)
        elif price is not None and self.trip_price is None:
            # No trip reference (e.g. restored from disk without a price); measure from here.
            self.trip_price = price
            logger.warning("CIRCUIT_BREAKER still_open reason=no_reference price=%s", price)
        else:
            logger.warning("CIRCUIT_BREAKER still_open reason=no_price")

        if bool(config.CIRCUIT_BREAKER_REPEAT_COOLDOWN):
            self.arm_cooldown(self.trip_price)
        return False

    def cancel(self) -> None:
        task = self._cooldown_task
        self._cooldown_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
