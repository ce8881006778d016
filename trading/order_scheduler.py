"""Randomized order attempts across the wallet pool.

Each attempt picks the next wallet, a side and a uniform amount, runs the
pre-flight gates and, if they all pass, swaps through the router and adds the
amount to the daily volume. The loop sleeps a uniform random delay between
attempts so the cadence has no fixed period.

Gates, in order (each failure is a log line, never an exception):
circuit breaker, known price, daily-volume cap, native gas balance, gas price
ceiling, source-token balance. The breaker is checked again right before the
swap is submitted. A missing router allowance is not a skip: an
approval is submitted and confirmed before the swap.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
import uuid
from decimal import ROUND_DOWN, Decimal
from typing import Any, Awaitable, Callable

import config
from trading.chain_client import SwapParams, swap_deadline
from trading.engine_state import EngineState

logger = logging.getLogger(__name__)

BUY = "buy"
SELL = "sell"
AMOUNT_STEP = Decimal("0.000001")


class OrderScheduler:
    def __init__(
        self,
        chain: Any,
        pool: Any,
        state: EngineState,
        store: Any,
        notifier: Any,
        breaker: Any,
        on_error: Callable[[Exception], Awaitable[None]] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.chain = chain
        self.pool = pool
        self.state = state
        self.store = store
        self.notifier = notifier
        self.breaker = breaker
        self.on_error = on_error
        self.rng = rng or random.Random()
        self._first_attempt = True
        self._task: asyncio.Task | None = None

    # ---- sampling ----

    def sample_amount(self) -> Decimal:
        low = Decimal(str(config.MIN_TRADE_AMOUNT))
        high = Decimal(str(config.MAX_TRADE_AMOUNT))
        raw = Decimal(str(self.rng.uniform(float(low), float(high))))
        amount = raw.quantize(AMOUNT_STEP, rounding=ROUND_DOWN)
        return min(high, max(low, amount))

    def sample_delay(self) -> float:
        return self.rng.uniform(float(config.MIN_TIME_DELAY), float(config.MAX_TIME_DELAY))

    def choose_side(self) -> str:
        if self._first_attempt:
            self._first_attempt = False
            return BUY
        return BUY if self.rng.random() < 0.5 else SELL

    @staticmethod
    def path_for(side: str) -> tuple[str, str]:
        if side == BUY:
            return config.QUOTE_TOKEN_ADDRESS, config.BASE_TOKEN_ADDRESS
        return config.BASE_TOKEN_ADDRESS, config.QUOTE_TOKEN_ADDRESS

    # ---- one attempt ----

    async def attempt(self) -> str:
        """Run one order attempt. Returns the outcome tag (`executed`, `error` or a skip reason)."""
        if not self.breaker.allows_orders():
            logger.info("ORDER_SKIP reason=circuit_open")
            return "circuit_open"
        if self.state.last_price is None:
            logger.info("ORDER_SKIP reason=no_price")
            return "no_price"
        max_volume = Decimal(str(config.MAX_DAILY_VOLUME))
        if self.state.daily_volume >= max_volume:
            logger.info("ORDER_SKIP reason=daily_cap volume=%s max=%s", self.state.daily_volume, max_volume)
            return "daily_cap"

        order_id: str | None = None
        try:
            wallet = self.pool.next()
            side = self.choose_side()
            amount = self.sample_amount()
            token_in, token_out = self.path_for(side)
            if self.state.daily_volume + amount > max_volume:
                logger.info(
                    "ORDER_SKIP reason=daily_cap volume=%s amount=%s max=%s",
                    self.state.daily_volume,
                    amount,
                    max_volume,
                )
                return "daily_cap"

            native = await self.chain.get_balance(wallet.address)
            if native < Decimal(str(config.LOW_BALANCE_THRESHOLD)):
                logger.info("ORDER_SKIP reason=low_native wallet=%s native=%s", wallet.address, native)
                return "low_native"
            gas_price = await self.chain.get_gas_price()
            if gas_price > Decimal(str(config.MAX_GAS_PRICE_GWEI)):
                logger.info("ORDER_SKIP reason=gas_price gwei=%s max=%s", gas_price, config.MAX_GAS_PRICE_GWEI)
                return "gas_price"
            balance = await self.chain.get_balance(wallet.address, token_in)
            if balance < amount:
                logger.info(
                    "ORDER_SKIP reason=balance wallet=%s side=%s need=%s have=%s",
                    wallet.address,
                    side,
                    amount,
                    balance,
                )
                return "balance"

            credential = self.pool.credential(wallet.address)
            allowance = await self.chain.get_allowance(token_in, wallet.address, config.UNISWAP_V3_ROUTER)
            if allowance < amount:
                receipt = await self.chain.approve(token_in, config.UNISWAP_V3_ROUTER, credential)
                logger.info("ORDER_APPROVE wallet=%s token=%s tx=%s", wallet.address, token_in, receipt.tx_hash)

            quoted = await self.chain.quote(amount, (token_in, token_out))
            min_out = quoted * (Decimal("1") - Decimal(str(config.MAX_SLIPPAGE)))
            params = SwapParams(
                token_in=token_in,
                token_out=token_out,
                fee=int(config.UNISWAP_POOL_FEE),
                recipient=wallet.address,
                deadline=swap_deadline(),
                amount_in=amount,
                amount_out_minimum=min_out,
                gas_limit=int(config.GAS_LIMIT),
            )

            # A price tick may have tripped the breaker while we awaited the chain.
            if not self.breaker.allows_orders():
                logger.info("ORDER_SKIP reason=circuit_open stage=pre_swap wallet=%s side=%s", wallet.address, side)
                return "circuit_open"

            order_id = uuid.uuid4().hex
            self.state.active_orders[order_id] = {
                "wallet": wallet.address,
                "side": side,
                "amount": str(amount),
                "submitted_at": time.time(),
            }
            await self.store.save(self.state)
            logger.info(
                "ORDER_SUBMIT id=%s wallet=%s side=%s amount=%s quote=%s min_out=%s",
                order_id,
                wallet.address,
                side,
                amount,
                quoted,
                min_out,
            )
            receipt = await self.chain.swap(params, credential)

            self.state.active_orders.pop(order_id, None)
            self.state.daily_volume += amount
            await self.store.save(self.state)
            logger.info(
                "ORDER_FILLED id=%s tx=%s gas_used=%s daily_volume=%s",
                order_id,
                receipt.tx_hash,
                receipt.gas_used,
                self.state.daily_volume,
            )
            await self._check_volume_alert()
            return "executed"
        except Exception as exc:
            logger.exception("ORDER_FAILED id=%s", order_id)
            if order_id is not None and self.state.active_orders.pop(order_id, None) is not None:
                await self.store.save(self.state)
            if self.on_error is not None:
                await self.on_error(exc)
            return "error"

    async def _check_volume_alert(self) -> None:
        max_volume = Decimal(str(config.MAX_DAILY_VOLUME))
        threshold = max_volume * Decimal(str(config.VOLUME_ALERT_THRESHOLD))
        if self.state.daily_volume < threshold or self.state.volume_alert_day == self.state.volume_day:
            return
        self.state.volume_alert_day = self.state.volume_day
        await self.store.save(self.state)
        await self.notifier.send(
            "Volume Alert",
            f"Daily volume ({self.state.daily_volume}) approaching maximum ({max_volume})",
        )

    # ---- loop ----

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self) -> None:
        while True:
            await self.attempt()
            delay = self.sample_delay()
            logger.debug("ORDER_NEXT delay=%.1fs", delay)
            await asyncio.sleep(delay)

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
