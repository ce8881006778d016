"""Volatility-driven minimum spread."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import config

logger = logging.getLogger(__name__)


@dataclass
class SpreadConfig:
    minimum: float
    target: float
    maximum: float

    @classmethod
    def from_config(cls) -> "SpreadConfig":
        return cls(
            minimum=float(config.MIN_SPREAD),
            target=float(config.TARGET_SPREAD),
            maximum=float(config.MAX_SPREAD),
        )


def widened_minimum(price_change: float, target: float, maximum: float, factor: float = 10.0) -> float:
    """target * (1 + change * factor), clamped into [target, maximum]."""
    raw = target * (1.0 + abs(float(price_change)) * float(factor))
    return min(maximum, max(target, raw))


class SpreadController:
    def __init__(self, spread: SpreadConfig, notifier: Any = None) -> None:
        self.spread = spread
        self.notifier = notifier

    async def adjust(self, price_change: float) -> float:
        previous = self.spread.minimum
        new_min = widened_minimum(
            price_change,
            self.spread.target,
            self.spread.maximum,
            float(config.SPREAD_VOLATILITY_FACTOR),
        )
        self.spread.minimum = new_min
        if abs(new_min - previous) > float(config.SPREAD_ALERT_SENSITIVITY):
            logger.info("SPREAD_ADJUST min=%.5f prev=%.5f change=%.5f", new_min, previous, price_change)
            if self.notifier is not None:
                await self.notifier.send(
                    "Spread Adjustment",
                    f"Spread adjusted to {new_min:.5f} due to price change of {price_change:.5f}",
                )
        return new_min
