"""Settings checks run before every engine initialization (no chain calls)."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from eth_account import Account

import config
from utils.addressing import is_valid_address

logger = logging.getLogger(__name__)


class SettingsError(ValueError):
    """Raised with every problem found in the loaded settings."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("invalid settings: " + "; ".join(self.problems))


@dataclass
class Report:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def error(self, message: str) -> None:
        self.errors.append(message)

    def warn(self, message: str) -> None:
        self.warnings.append(message)


def _check_range(report: Report, name: str, value: float, low: float, high: float) -> None:
    if not (low <= float(value) <= high):
        report.error(f"{name}={value} outside [{low}, {high}]")


def check_settings() -> Report:
    report = Report()

    if config.NETWORK not in ("mainnet", "testnet"):
        report.error(f"NETWORK must be mainnet or testnet, got {config.NETWORK!r}")
    if not config.active_rpc_url():
        report.error(f"RPC url is empty for NETWORK={config.NETWORK}")

    for name in (
        "BASE_TOKEN_ADDRESS",
        "QUOTE_TOKEN_ADDRESS",
        "UNISWAP_V3_ROUTER",
        "UNISWAP_V3_FACTORY",
        "UNISWAP_V3_QUOTER",
    ):
        value = str(getattr(config, name, "") or "")
        if not value:
            report.error(f"{name} is required")
        elif not is_valid_address(value):
            report.error(f"{name} is not a valid address: {value}")
    if config.BASE_TOKEN_ADDRESS and config.BASE_TOKEN_ADDRESS.lower() == config.QUOTE_TOKEN_ADDRESS.lower():
        report.error("BASE_TOKEN_ADDRESS and QUOTE_TOKEN_ADDRESS must differ")

    if not config.MASTER_WALLET_PRIVATE_KEY:
        report.error("MASTER_WALLET_PRIVATE_KEY is required")
    else:
        try:
            Account.from_key(config.MASTER_WALLET_PRIVATE_KEY)
        except Exception:
            report.error("MASTER_WALLET_PRIVATE_KEY is not a valid private key")

    if not (1 <= int(config.UNISWAP_POOL_FEE) <= 1_000_000):
        report.error(f"UNISWAP_POOL_FEE={config.UNISWAP_POOL_FEE} outside [1, 1000000]")
    _check_range(report, "MAX_SLIPPAGE", config.MAX_SLIPPAGE, 0.001, 0.1)
    for name in ("MIN_SPREAD", "TARGET_SPREAD", "MAX_SPREAD"):
        _check_range(report, name, getattr(config, name), 0.001, 0.1)
    if not (config.MIN_SPREAD <= config.TARGET_SPREAD <= config.MAX_SPREAD):
        report.error(
            f"spread bounds must satisfy MIN_SPREAD <= TARGET_SPREAD <= MAX_SPREAD, "
            f"got {config.MIN_SPREAD}/{config.TARGET_SPREAD}/{config.MAX_SPREAD}"
        )

    if float(config.MIN_TRADE_AMOUNT) <= 0:
        report.error("MIN_TRADE_AMOUNT must be > 0")
    if config.MIN_TRADE_AMOUNT > config.MAX_TRADE_AMOUNT:
        report.error(f"MIN_TRADE_AMOUNT={config.MIN_TRADE_AMOUNT} > MAX_TRADE_AMOUNT={config.MAX_TRADE_AMOUNT}")
    if config.MIN_TIME_DELAY > config.MAX_TIME_DELAY:
        report.error(f"MIN_TIME_DELAY={config.MIN_TIME_DELAY} > MAX_TIME_DELAY={config.MAX_TIME_DELAY}")
    if float(config.MAX_DAILY_VOLUME) <= 0:
        report.error("MAX_DAILY_VOLUME must be > 0")
    _check_range(report, "CIRCUIT_BREAKER_THRESHOLD", config.CIRCUIT_BREAKER_THRESHOLD, 0.001, 1.0)
    _check_range(report, "VOLUME_ALERT_THRESHOLD", config.VOLUME_ALERT_THRESHOLD, 0.0, 1.0)

    if config.MAX_TRADE_AMOUNT > config.MAX_DAILY_VOLUME:
        report.warn("MAX_TRADE_AMOUNT exceeds MAX_DAILY_VOLUME; a single order can exhaust the day")
    if not config.TELEGRAM_BOT_TOKEN and not config.SMTP_HOST:
        report.warn("no alert channel configured (TELEGRAM_BOT_TOKEN / SMTP_HOST)")
    return report


def validate_settings() -> Report:
    report = check_settings()
    for message in report.warnings:
        logger.warning("PREFLIGHT warning %s", message)
    if not report.ok:
        for message in report.errors:
            logger.error("PREFLIGHT error %s", message)
        raise SettingsError(report.errors)
    return report
