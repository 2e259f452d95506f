import argparse
import asyncio
import signal
import logging
from typing import Optional

from config import get_settings
from chain import ChainRPC
from database import init_db, close as db_close, MaterializedStore
from sync import SyncCoordinator
from monitor import RoundMonitor

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Set once the monitor exists so the signal handler can reach it
monitor: Optional[RoundMonitor] = None

def handle_shutdown(signum, frame):
    """Handle shutdown signals."""
    logger.info("Shutdown signal received, stopping after the current round...")
    if monitor:
        monitor.stop()

def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Index ARC-72, ARC-200 and MP-213 contract events")
    parser.add_argument('--sync', type=int, metavar='CONTRACT_ID', action='append', default=[],
                        help="sync a contract up to the current round and exit (repeatable)")
    parser.add_argument('--refresh', type=int, metavar='CONTRACT_ID', action='append', default=[],
                        help="re-read every token of a collection and exit (repeatable)")
    parser.add_argument('--force-recreate', action='store_true',
                        help="drop and recreate every table before starting")
    return parser.parse_args(argv)

async def main(argv=None):
    """Main entry point."""
    global monitor

    args = parse_args(argv)
    try:
        settings = get_settings()

        # Initialize database
        logger.info("Initializing database...")
        pool = await init_db(settings['db_url'], force_recreate=args.force_recreate)

        rpc = ChainRPC.from_settings(settings)
        store = MaterializedStore(pool)
        coordinator = SyncCoordinator.from_settings(rpc, store, settings)
        monitor = RoundMonitor.from_settings(rpc, store, coordinator, settings)

        if args.sync or args.refresh:
            for contract_id in args.sync:
                watermark = await monitor.register(contract_id)
                logger.info(f"Contract {contract_id} watermark: {watermark}")
            for contract_id in args.refresh:
                refreshed = await coordinator.refresh_collection(contract_id)
                logger.info(f"Collection {contract_id}: {refreshed} tokens refreshed")
            return

        # Register shutdown handlers
        signal.signal(signal.SIGINT, handle_shutdown)
        signal.signal(signal.SIGTERM, handle_shutdown)

        logger.info("Starting round monitor...")
        await monitor.run()

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        raise
    finally:
        await db_close()  # Close database connections

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
