"""
Standalone payment indexer worker.

Runs the reconciliation loop outside the API process, for deployments that
scale the HTTP tier separately. Only one indexer should run per package.
"""
import asyncio
import signal
import sys
from typing import Optional

import structlog

from suipay.config import Settings, get_settings
from suipay.core.reconciler import Reconciler
from suipay.database.connection import (
    close_db,
    create_session_factory,
    get_engine,
    init_db,
)
from suipay.integrations.sui_client import SuiEventSource
from suipay.monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


async def run_indexer(settings: Optional[Settings] = None, once: bool = False) -> int:
    """
    Run the indexer until SIGINT/SIGTERM.

    Args:
        settings: Application settings (loaded from the environment if omitted)
        once: Run a single cycle and exit

    Returns:
        int: Process exit code
    """
    settings = settings or get_settings()
    setup_logging(settings)

    if not settings.indexing_enabled:
        logger.warning("indexer_worker_disabled", reason="suipay_package_id not configured")
        return 1

    engine = get_engine(settings)
    await init_db(engine)

    event_source = SuiEventSource.from_settings(settings)
    reconciler = Reconciler.from_settings(settings, event_source, create_session_factory(engine))

    logger.info(
        "indexer_worker_starting",
        rpc_url=settings.sui_rpc_url,
        package=settings.suipay_package_id,
        module=settings.indexer_module,
    )

    try:
        if once:
            result = await reconciler.run_cycle()
            logger.info("indexer_worker_cycle_completed", **result.to_dict())
            return 1 if result.fetch_failed else 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, reconciler.stop)

        await reconciler.start()
        return 0
    finally:
        await event_source.aclose()
        await close_db()
        logger.info("indexer_worker_stopped")


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="SuiPay payment indexer")
    parser.add_argument(
        "--once", action="store_true", help="Run a single reconciliation cycle and exit"
    )
    args = parser.parse_args()

    sys.exit(asyncio.run(run_indexer(once=args.once)))


if __name__ == "__main__":
    main()
