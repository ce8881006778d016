"""Persisted engine state and its JSON-file store."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from utils.state_file import atomic_write_json, read_json_object

logger = logging.getLogger(__name__)


def current_day_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def _to_decimal(value: Any, default: Decimal | None) -> Decimal | None:
    if value is None or value == "":
        return default
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return default


@dataclass
class EngineState:
    daily_volume: Decimal = Decimal("0")
    last_price: Decimal | None = None
    last_price_update_time: float = field(default_factory=time.time)
    is_circuit_broken: bool = False
    recovery_attempts: int = 0
    active_orders: dict[str, dict[str, Any]] = field(default_factory=dict)
    wallets: list[str] = field(default_factory=list)
    volume_day: str = field(default_factory=current_day_id)
    volume_alert_day: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "daily_volume": str(self.daily_volume),
            "last_price": (str(self.last_price) if self.last_price is not None else None),
            "last_price_update_time": float(self.last_price_update_time),
            "is_circuit_broken": bool(self.is_circuit_broken),
            "recovery_attempts": int(self.recovery_attempts),
            "active_orders": dict(self.active_orders),
            "wallets": list(self.wallets),
            "volume_day": self.volume_day,
            "volume_alert_day": self.volume_alert_day,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "EngineState":
        state = cls()
        daily_volume = _to_decimal(payload.get("daily_volume"), Decimal("0")) or Decimal("0")
        state.daily_volume = max(Decimal("0"), daily_volume)
        last_price = _to_decimal(payload.get("last_price"), None)
        state.last_price = last_price if (last_price is not None and last_price > 0) else None
        state.last_price_update_time = float(payload.get("last_price_update_time", state.last_price_update_time) or 0.0)
        state.is_circuit_broken = bool(payload.get("is_circuit_broken", False))
        state.recovery_attempts = max(0, int(payload.get("recovery_attempts", 0) or 0))
        raw_orders = payload.get("active_orders") or {}
        if isinstance(raw_orders, dict):
            state.active_orders = {str(k): dict(v) for k, v in raw_orders.items() if isinstance(v, dict)}
        raw_wallets = payload.get("wallets") or []
        if isinstance(raw_wallets, list):
            # Older files stored {"address": ..., "balance": ...} rows.
            state.wallets = [
                str(row.get("address") if isinstance(row, dict) else row)
                for row in raw_wallets
                if row
            ]
        state.volume_day = str(payload.get("volume_day") or state.volume_day)
        alert_day = payload.get("volume_alert_day")
        state.volume_alert_day = str(alert_day) if alert_day else None
        return state


class StateStore:
    """Last-writer-wins JSON store; never raises into the caller."""

    def __init__(self, path: str, notifier: Any = None) -> None:
        self.path = path
        self.notifier = notifier

    def load(self) -> EngineState:
        try:
            payload = read_json_object(self.path)
        except Exception as exc:
            logger.warning("STATE_LOAD corrupt path=%s err=%s; using defaults", self.path, exc)
            return EngineState()
        if payload is None:
            logger.info("STATE_LOAD missing path=%s; using defaults", self.path)
            return EngineState()
        try:
            state = EngineState.from_payload(payload)
        except (TypeError, ValueError) as exc:
            logger.warning("STATE_LOAD invalid path=%s err=%s; using defaults", self.path, exc)
            return EngineState()
        logger.info(
            "STATE_LOAD ok daily_volume=%s last_price=%s circuit_broken=%s recovery_attempts=%s",
            state.daily_volume,
            state.last_price,
            state.is_circuit_broken,
            state.recovery_attempts,
        )
        return state

    async def save(self, state: EngineState) -> bool:
        try:
            atomic_write_json(self.path, state.to_payload())
            return True
        except Exception as exc:
            logger.error("STATE_SAVE failed path=%s err=%s", self.path, exc)
            if self.notifier is not None:
                await self.notifier.send("State Save Failed", f"Could not write {self.path}: {exc}")
            return False
