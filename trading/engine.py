"""Market-making engine: wires the components and owns their timers."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Awaitable, Callable

import config
from trading.circuit_breaker import CircuitBreaker
from trading.engine_state import EngineState, StateStore
from trading.order_scheduler import OrderScheduler
from trading.preflight import validate_settings
from trading.price_monitor import PriceMonitor
from trading.recovery import RecoverySupervisor
from trading.spread_controller import SpreadConfig, SpreadController
from trading.wallet_pool import WalletPool

logger = logging.getLogger(__name__)


class MarketMakerEngine:
    def __init__(
        self,
        chain: Any,
        key_store: Any,
        notifier: Any,
        store: StateStore,
        state: EngineState | None = None,
    ) -> None:
        self.chain = chain
        self.key_store = key_store
        self.notifier = notifier
        self.store = store
        self.state = state if state is not None else store.load()

        self.pool = WalletPool(key_store, chain, notifier)
        self.spread = SpreadController(SpreadConfig.from_config(), notifier)
        self.recovery = RecoverySupervisor(self.state, store, notifier, reinitialize=self.initialize)
        self.price_monitor = PriceMonitor(
            chain,
            self.state,
            store,
            notifier,
            spread=self.spread,
            on_error=self.recovery.handle,
        )
        self.breaker = CircuitBreaker(
            self.state,
            store,
            notifier,
            sampler=self.price_monitor.sample,
            on_error=self.recovery.handle,
        )
        self.price_monitor.breaker = self.breaker
        self.scheduler = OrderScheduler(
            chain,
            self.pool,
            self.state,
            store,
            notifier,
            self.breaker,
            on_error=self.recovery.handle,
        )

        self._balance_lock = asyncio.Lock()
        self._timers: list[asyncio.Task] = []
        self._ticks: set[asyncio.Task] = set()
        self._funded = False
        self.status = "initializing"

    # ---- lifecycle ----

    async def initialize(self) -> bool:
        """Full (re)initialization. Failures go to the recovery supervisor; never raises."""
        try:
            validate_settings()
            await self.chain.connect()
            self.key_store.initialize_storage()
            self.pool.load()
            self.pool.ensure_minimum(int(config.MIN_WALLETS))
            self.state.wallets = self.pool.addresses
            await self.store.save(self.state)
            if not self._funded:
                await self.pool.fund_from(
                    config.MASTER_WALLET_PRIVATE_KEY,
                    quote_token=config.QUOTE_TOKEN_ADDRESS,
                    native_floor=Decimal(str(config.FUND_NATIVE_PER_WALLET)),
                    quote_floor=Decimal(str(config.FUND_QUOTE_PER_WALLET)),
                )
                self._funded = True
            await self.pool.approve_spender(
                [config.BASE_TOKEN_ADDRESS, config.QUOTE_TOKEN_ADDRESS],
                config.UNISWAP_V3_ROUTER,
            )
        except Exception as exc:
            logger.exception("ENGINE init failed")
            self.status = "recovering"
            await self.recovery.handle(exc)
            return False

        self.state.recovery_attempts = 0
        await self.store.save(self.state)
        self._start_timers()
        if self.state.is_circuit_broken and not self.breaker.cooldown_pending:
            logger.warning("CIRCUIT_BREAKER restored open state; arming cooldown price=%s", self.state.last_price)
            self.breaker.arm_cooldown(self.state.last_price)
        self.status = "running"
        logger.info("ENGINE started wallets=%s network=%s", len(self.pool), config.NETWORK)
        return True

    def _start_timers(self) -> None:
        for task in self._timers:
            task.cancel()
        self._timers = [
            asyncio.create_task(self._every(float(config.PRICE_POLL_INTERVAL_SECONDS), self.price_monitor.tick)),
            asyncio.create_task(self._every(float(config.BALANCE_CHECK_INTERVAL_SECONDS), self.balance_tick)),
            asyncio.create_task(
                self._every(float(config.VOLUME_RESET_CHECK_INTERVAL_SECONDS), self.midnight_tick)
            ),
        ]
        self.scheduler.stop()
        self.scheduler.start()

    async def _every(self, interval: float, tick: Callable[[], Awaitable[Any]]) -> None:
        # Each firing is its own task; the tick's try-lock drops overlaps.
        while True:
            task = asyncio.create_task(tick())
            self._ticks.add(task)
            task.add_done_callback(self._ticks.discard)
            await asyncio.sleep(interval)

    async def stop(self) -> None:
        self.status = "stopped"
        self.scheduler.stop()
        self.breaker.cancel()
        self.recovery.cancel()
        pending = list(self._timers) + list(self._ticks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._timers = []
        self._ticks.clear()
        if self.state.active_orders:
            logger.warning("ENGINE stop with unconfirmed orders=%s", list(self.state.active_orders))
        await self.store.save(self.state)
        logger.info("ENGINE stopped daily_volume=%s", self.state.daily_volume)

    # ---- periodic routines ----

    async def balance_tick(self) -> bool:
        if self._balance_lock.locked():
            logger.debug("BALANCE tick skipped reason=busy")
            return False
        async with self._balance_lock:
            try:
                await self.pool.check_balances(
                    base_token=config.BASE_TOKEN_ADDRESS,
                    native_alert=Decimal(str(config.BALANCE_ALERT_NATIVE)),
                    base_alert=Decimal(str(config.BALANCE_ALERT_BASE_TOKEN)),
                    base_symbol=config.BASE_TOKEN_SYMBOL,
                )
            except Exception as exc:
                logger.exception("BALANCE tick failed")
                await self.recovery.handle(exc)
        return True

    async def midnight_tick(self, now: datetime | None = None) -> bool:
        """Reset the daily volume at 00:00 UTC, once per day. Returns True when reset."""
        now = now or datetime.now(timezone.utc)
        today = now.strftime("%Y-%m-%d")
        if now.hour != 0 or now.minute != 0 or self.state.volume_day == today:
            return False
        previous = self.state.daily_volume
        self.state.daily_volume = Decimal("0")
        self.state.volume_day = today
        await self.store.save(self.state)
        logger.info("VOLUME_RESET day=%s previous=%s", today, previous)
        return True

    # ---- status ----

    def snapshot(self) -> dict[str, Any]:
        state = self.state
        updated = None
        if state.last_price_update_time:
            updated = datetime.fromtimestamp(float(state.last_price_update_time), tz=timezone.utc).isoformat()
        return {
            "status": self.status,
            "dailyVolume": str(state.daily_volume),
            "isCircuitBroken": bool(state.is_circuit_broken),
            "lastPrice": (str(state.last_price) if state.last_price is not None else None),
            "lastUpdateTime": updated,
            "recoveryAttempts": int(state.recovery_attempts),
            "wallets": list(state.wallets),
            "minSpread": float(self.spread.spread.minimum),
            "activeOrders": len(state.active_orders),
        }
