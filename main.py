"""
main.py — process entry point for the supplier search API.

  asyncio event loop
    ├── aiohttp web server   /api/search, /api/search/image, /api/contact-supplier, /health
    └── Playwright Chromium  launched on the first live scrape, shared via BrowserPool

Run with `python main.py` (or the `supplier-finder` console script).
"""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path

import config

logger = logging.getLogger(__name__)

# Chatty third-party loggers (the vision SDKs log every request through httpx)
_QUIET_LOGGERS = ("httpx", "httpcore", "aiohttp.access", "asyncio")


def setup_logging(data_dir: str = config.DATA_DIR) -> None:
    """Console + sourcing.log next to the database, so one volume mount keeps both."""
    log_dir = Path(data_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        level=logging.INFO,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(log_dir / "sourcing.log"), encoding="utf-8"),
        ],
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()

    def _request_stop() -> None:
        logger.info("Stop requested, finishing in-flight searches.")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop)
        except (NotImplementedError, RuntimeError):
            # no loop signal handlers on Windows; Ctrl+C still raises KeyboardInterrupt
            logger.debug("Signal handler for %s not available", sig)


async def run() -> None:
    import database as db
    from api_server import build_pipeline, start_api_server
    from catalog_sources.browser_pool import BrowserPool

    try:
        await db.init_db()
    except Exception:
        logger.critical("Cannot open the inquiry database at %s", db.DB_PATH, exc_info=True)
        raise

    pool = (
        BrowserPool(size=config.BROWSER_POOL_SIZE, headless=config.BROWSER_HEADLESS)
        if config.USE_LIVE_SCRAPE
        else None
    )
    runner = await start_api_server(build_pipeline(pool))

    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)
    logger.info("Supplier search API ready.")

    try:
        await stop_event.wait()
    finally:
        await runner.cleanup()
        if pool is not None:
            await pool.close()
        logger.info("Stopped.")


def main() -> None:
    setup_logging()
    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted.")


if __name__ == "__main__":
    main()
