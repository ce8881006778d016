"""Entry point for the DEX market-making engine."""

import asyncio
import logging
import os
import signal
from logging.handlers import RotatingFileHandler

import config
from config import APP_LOG_FILE, LOG_DIR, LOG_LEVEL
from monitor.notifier import Notifier
from monitor.status_server import StatusServer
from trading.chain_client import ChainClient
from trading.engine import MarketMakerEngine
from trading.engine_state import StateStore
from trading.key_store import KeyStore


def configure_logging() -> None:
    os.makedirs(LOG_DIR, exist_ok=True)
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = RotatingFileHandler(APP_LOG_FILE, maxBytes=1_000_000, backupCount=5, encoding="utf-8")
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(getattr(logging, LOG_LEVEL.upper(), logging.INFO))
    root.handlers.clear()
    root.addHandler(file_handler)
    root.addHandler(console_handler)

    # Avoid leaking bot token / RPC keys in verbose transport logs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("telegram").setLevel(logging.INFO)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


async def run() -> None:
    notifier = Notifier.from_config()
    store = StateStore(config.STATE_FILE, notifier)
    engine = MarketMakerEngine(
        chain=ChainClient(),
        key_store=KeyStore(config.WALLET_DIR),
        notifier=notifier,
        store=store,
    )
    status_server = StatusServer(engine.snapshot)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handler support; Ctrl+C still raises KeyboardInterrupt.
            pass

    await status_server.start()
    await engine.initialize()
    logger.info("Market maker running network=%s state_file=%s", config.NETWORK, config.STATE_FILE)
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down")
        await engine.stop()
        await status_server.stop()
        await notifier.close()


def main() -> None:
    configure_logging()
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()
