"""Periodic pool price sampling.

One tick: resolve the pool, check both reserves are non-zero, quote one base
token for quote token, record the price and relative change, then hand the
change to the spread controller and the circuit breaker (in that order).
Ticks never overlap; a tick that finds the previous one still running is
dropped.
"""

from __future__ import annotations

import asyncio
import logging
import time
from decimal import Decimal
from typing import Any, Awaitable, Callable

import config
from trading.circuit_breaker import relative_change
from trading.engine_state import EngineState

logger = logging.getLogger(__name__)

ONE = Decimal("1")


class PriceMonitor:
    def __init__(
        self,
        chain: Any,
        state: EngineState,
        store: Any,
        notifier: Any,
        spread: Any = None,
        breaker: Any = None,
        on_error: Callable[[Exception], Awaitable[None]] | None = None,
    ) -> None:
        self.chain = chain
        self.state = state
        self.store = store
        self.notifier = notifier
        self.spread = spread
        self.breaker = breaker
        self.on_error = on_error
        self._lock = asyncio.Lock()
        self._liquidity_alerted = False

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def _liquidity_gone(self, reason: str) -> None:
        logger.warning("PRICE skip reason=%s", reason)
        if self._liquidity_alerted:
            return
        self._liquidity_alerted = True
        if reason == "no_pool":
            await self.notifier.send("Missing Liquidity Pool", "Pool does not exist for the configured token pair")
        else:
            await self.notifier.send("Zero Liquidity in Pool", "Pool exists but one of its reserves is zero")

    async def sample(self) -> Decimal | None:
        """Current pool price in quote units per base unit, or None when the pool is absent or empty."""
        base = config.BASE_TOKEN_ADDRESS
        quote = config.QUOTE_TOKEN_ADDRESS
        pool = await self.chain.get_pool_address(base, quote, int(config.UNISWAP_POOL_FEE))
        if not pool:
            await self._liquidity_gone("no_pool")
            return None
        reserve_base, reserve_quote = await self.chain.get_reserves(pool, base, quote)
        if reserve_base <= 0 or reserve_quote <= 0:
            await self._liquidity_gone("zero_liquidity")
            return None
        if self._liquidity_alerted:
            logger.info("PRICE liquidity restored pool=%s", pool)
        self._liquidity_alerted = False
        return await self.chain.quote(ONE, (base, quote))

    async def tick(self) -> bool:
        """Run one sample. Returns False when skipped because a tick is still in flight."""
        if self._lock.locked():
            logger.debug("PRICE tick skipped reason=busy")
            return False
        async with self._lock:
            try:
                await self._tick_once()
            except Exception as exc:
                logger.exception("PRICE tick failed")
                if self.on_error is not None:
                    await self.on_error(exc)
        return True

    async def _tick_once(self) -> None:
        price = await self.sample()
        if price is None:
            return
        previous = self.state.last_price
        change = relative_change(price, previous) if previous is not None else 0.0
        self.state.last_price = price
        self.state.last_price_update_time = time.time()
        await self.store.save(self.state)
        logger.info("PRICE price=%s prev=%s change=%.5f", price, previous, change)
        if previous is None:
            return
        if self.spread is not None:
            await self.spread.adjust(change)
        if self.breaker is not None:
            await self.breaker.evaluate(change, price)

