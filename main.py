"""
Main entry point: one refresh run over all configured sources.

Usage: python main.py [source_id ...]

Exit codes: 0 completed, 1 majority of sources unavailable,
2 unusable data directory / configuration, 130 interrupted.
"""

import asyncio
import logging
import os
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

# Add project root to PYTHONPATH so imports work when running this script directly
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from core.config import load_settings
from core.errors import ConfigError, StoreUnavailableError
from core.infra.store import RecordStore
from core.orchestrator import Orchestrator
from core.plugin_loader import build_adapters, list_available, refresh_registry
from sinks.debug_sink import DebugDirectorySink

EXIT_OK = 0
EXIT_FATAL = 2
EXIT_INTERRUPTED = 130


async def main(argv: Optional[List[str]] = None) -> int:
    """Run every configured source once and return the process exit code."""
    load_dotenv()

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    )
    logger = logging.getLogger(__name__)

    logger.info("=" * 60)
    logger.info("NextReset data refresh")
    logger.info("=" * 60)

    try:
        settings = load_settings()
    except ConfigError as e:
        logger.error("❌ Fatal: %s", e)
        return EXIT_FATAL

    logger.info("Discovering source adapters...")
    refresh_registry()
    available = list_available()
    logger.info("Discovered %d adapter(s): %s", len(available), ", ".join(sorted(available)))

    source_ids = list(argv or []) or settings.sources
    try:
        adapters = build_adapters(source_ids)
    except KeyError as e:
        logger.error("❌ Fatal: %s", e.args[0])
        return EXIT_FATAL

    store = RecordStore(settings.data_dir, settings.lkg_dirname)
    diagnostics = DebugDirectorySink(settings.debug_dir) if settings.debug_dir else None
    orchestrator = Orchestrator(store, settings, diagnostics=diagnostics)

    run_task = asyncio.create_task(orchestrator.run_all(adapters), name="refresh-run")

    def signal_handler():
        logger.info("Received shutdown signal")
        run_task.cancel()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform / not the main thread.
            pass

    try:
        summary = await run_task
    except asyncio.CancelledError:
        logger.warning("Refresh interrupted")
        return EXIT_INTERRUPTED
    except StoreUnavailableError as e:
        logger.error("❌ Fatal: %s", e)
        return EXIT_FATAL

    if not summary.is_catastrophic:
        logger.info(
            "✓ Refresh completed (%d fresh, %d stale, %d unavailable)",
            summary.fresh,
            summary.stale,
            summary.unavailable,
        )
    return summary.exit_code


def run_refresh() -> None:
    """Console-script entry point."""
    sys.exit(asyncio.run(main(sys.argv[1:])))


if __name__ == "__main__":
    run_refresh()
