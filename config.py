"""Application configuration."""

import os
from pathlib import Path

from dotenv import load_dotenv


def _load_dotenv_safe(dotenv_path: str | None = None, *, override: bool = False) -> None:
    """Load dotenv using UTF-8-SIG so BOM-prefixed files don't break first key parsing."""
    try:
        load_dotenv(dotenv_path=dotenv_path, override=override, encoding="utf-8-sig")
    except TypeError:
        # Older python-dotenv versions may not expose the `encoding` argument.
        load_dotenv(dotenv_path=dotenv_path, override=override)


# Load base environment first, then optional per-instance override env file.
_load_dotenv_safe()
_BOT_ENV_FILE = os.getenv("BOT_ENV_FILE", "").strip()
if _BOT_ENV_FILE:
    _bot_env_path = Path(_BOT_ENV_FILE).expanduser()
    if not _bot_env_path.is_absolute():
        _bot_env_path = (Path.cwd() / _bot_env_path).resolve()
    if not _bot_env_path.exists():
        raise FileNotFoundError(f"BOT_ENV_FILE does not exist: {_bot_env_path}")
    if not _bot_env_path.is_file():
        raise IsADirectoryError(f"BOT_ENV_FILE is not a file: {_bot_env_path}")
    try:
        _load_dotenv_safe(str(_bot_env_path), override=True)
    except (OSError, UnicodeError, ValueError) as exc:
        raise RuntimeError(f"Failed to load BOT_ENV_FILE '{_bot_env_path}': {exc}") from exc


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Network
NETWORK = os.getenv("NETWORK", "mainnet").strip().lower()
RPC_MAINNET_URL = os.getenv("RPC_MAINNET_URL", os.getenv("ARBITRUM_MAINNET_RPC", "")).strip()
RPC_TESTNET_URL = os.getenv("RPC_TESTNET_URL", os.getenv("ARBITRUM_TESTNET_RPC", "")).strip()
RPC_TIMEOUT_SECONDS = max(3, int(os.getenv("RPC_TIMEOUT_SECONDS", "10")))
EVM_CHAIN_ID = int(os.getenv("EVM_CHAIN_ID", "42161"))

# Credentials
MASTER_WALLET_PRIVATE_KEY = os.getenv("MASTER_WALLET_PRIVATE_KEY", "").strip()
TELEGRAM_BOT_TOKEN = os.getenv("TELEGRAM_BOT_TOKEN", "").strip()
TELEGRAM_ALERT_CHAT_ID = int(os.getenv("TELEGRAM_ALERT_CHAT_ID", "0") or 0)
SMTP_USER = os.getenv("SMTP_USER", "").strip()
SMTP_PASS = os.getenv("SMTP_PASS", "")

# Pair / venue
BASE_TOKEN_ADDRESS = os.getenv("BASE_TOKEN_ADDRESS", os.getenv("MXTK_ADDRESS", "")).strip()
QUOTE_TOKEN_ADDRESS = os.getenv("QUOTE_TOKEN_ADDRESS", os.getenv("USDT_ADDRESS", "")).strip()
BASE_TOKEN_SYMBOL = os.getenv("BASE_TOKEN_SYMBOL", "MXTK").strip()
UNISWAP_V3_ROUTER = os.getenv("UNISWAP_V3_ROUTER", "").strip()
UNISWAP_V3_FACTORY = os.getenv("UNISWAP_V3_FACTORY", "").strip()
UNISWAP_V3_QUOTER = os.getenv("UNISWAP_V3_QUOTER", "").strip()
UNISWAP_POOL_FEE = int(os.getenv("UNISWAP_POOL_FEE", "3000"))

# Thresholds
MAX_DAILY_VOLUME = float(os.getenv("MAX_DAILY_VOLUME", "10"))
VOLUME_ALERT_THRESHOLD = float(os.getenv("VOLUME_ALERT_THRESHOLD", "0.8"))
CIRCUIT_BREAKER_THRESHOLD = float(os.getenv("CIRCUIT_BREAKER_THRESHOLD", "0.10"))
CIRCUIT_BREAKER_COOLDOWN_SECONDS = max(1.0, float(os.getenv("CIRCUIT_BREAKER_COOLDOWN_SECONDS", "900")))
# false = single-shot cooldown: a breaker still tripped after its cooldown waits for the next qualifying tick.
CIRCUIT_BREAKER_REPEAT_COOLDOWN = _env_bool("CIRCUIT_BREAKER_REPEAT_COOLDOWN", "true")
LOW_BALANCE_THRESHOLD = float(os.getenv("LOW_BALANCE_THRESHOLD", "0.002"))
BALANCE_ALERT_NATIVE = float(os.getenv("BALANCE_ALERT_NATIVE", "0.01"))
BALANCE_ALERT_BASE_TOKEN = float(os.getenv("BALANCE_ALERT_BASE_TOKEN", "0"))

# Trading
MIN_TRADE_AMOUNT = float(os.getenv("MIN_TRADE_AMOUNT", "0.1"))
MAX_TRADE_AMOUNT = float(os.getenv("MAX_TRADE_AMOUNT", "1.0"))
MIN_TIME_DELAY = max(1, int(os.getenv("MIN_TIME_DELAY", "30")))
MAX_TIME_DELAY = max(1, int(os.getenv("MAX_TIME_DELAY", "180")))
MAX_SLIPPAGE = float(os.getenv("MAX_SLIPPAGE", "0.02"))
SWAP_DEADLINE_SECONDS = max(30, int(os.getenv("SWAP_DEADLINE_SECONDS", "300")))
GAS_LIMIT = max(50_000, int(os.getenv("GAS_LIMIT", "300000")))
APPROVAL_GAS_LIMIT = max(30_000, int(os.getenv("APPROVAL_GAS_LIMIT", "100000")))
MAX_GAS_PRICE_GWEI = float(os.getenv("MAX_GAS_PRICE_GWEI", os.getenv("MAX_GAS_PRICE", "100")))
PRIORITY_FEE_GWEI = float(os.getenv("PRIORITY_FEE_GWEI", "0.01"))
TX_TIMEOUT_SECONDS = max(30, int(os.getenv("TX_TIMEOUT_SECONDS", "180")))

# Spread
MIN_SPREAD = float(os.getenv("MIN_SPREAD", "0.01"))
TARGET_SPREAD = float(os.getenv("TARGET_SPREAD", "0.015"))
MAX_SPREAD = float(os.getenv("MAX_SPREAD", "0.025"))
SPREAD_VOLATILITY_FACTOR = float(os.getenv("SPREAD_VOLATILITY_FACTOR", "10"))
SPREAD_ALERT_SENSITIVITY = float(os.getenv("SPREAD_ALERT_SENSITIVITY", "0.005"))

# Wallets
PERSISTENT_DIR = os.getenv("PERSISTENT_DIR", "data")
WALLET_DIR = os.getenv("WALLET_DIR", os.path.join(PERSISTENT_DIR, ".wallets"))
MIN_WALLETS = max(1, int(os.getenv("MIN_WALLETS", "3")))
FUND_NATIVE_PER_WALLET = float(os.getenv("FUND_NATIVE_PER_WALLET", "0.001"))
FUND_QUOTE_PER_WALLET = float(os.getenv("FUND_QUOTE_PER_WALLET", "1.0"))

# Scheduling
PRICE_POLL_INTERVAL_SECONDS = max(1.0, float(os.getenv("PRICE_POLL_INTERVAL_SECONDS", "30")))
BALANCE_CHECK_INTERVAL_SECONDS = max(5.0, float(os.getenv("BALANCE_CHECK_INTERVAL_SECONDS", "300")))
VOLUME_RESET_CHECK_INTERVAL_SECONDS = max(1.0, float(os.getenv("VOLUME_RESET_CHECK_INTERVAL_SECONDS", "60")))

# Recovery
RECOVERY_MAX_RETRIES = max(0, int(os.getenv("RECOVERY_MAX_RETRIES", "3")))
RECOVERY_RETRY_DELAY_SECONDS = max(0.0, float(os.getenv("RECOVERY_RETRY_DELAY_SECONDS", "5")))

# Alerts
SMTP_HOST = os.getenv("SMTP_HOST", "").strip()
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_TIMEOUT_SECONDS = max(3, int(os.getenv("SMTP_TIMEOUT_SECONDS", "15")))
ALERT_FROM_EMAIL = os.getenv("ALERT_FROM_EMAIL", "").strip()
ALERT_TO_EMAIL = os.getenv("ALERT_TO_EMAIL", "").strip()
ALERT_SUBJECT_PREFIX = os.getenv("ALERT_SUBJECT_PREFIX", "MXTK Market Maker")

# Runtime
STATE_FILE = os.getenv("STATE_FILE", os.path.join(PERSISTENT_DIR, "engine_state.json"))
STATUS_HOST = os.getenv("STATUS_HOST", "0.0.0.0")
STATUS_PORT = int(os.getenv("STATUS_PORT", os.getenv("PORT", "3000")))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")
APP_LOG_FILE = os.path.join(LOG_DIR, "app.log")


def active_rpc_url() -> str:
    return RPC_TESTNET_URL if NETWORK == "testnet" else RPC_MAINNET_URL
