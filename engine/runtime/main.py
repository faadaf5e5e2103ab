"""
Ingestion Service - Main Entry Point

Loads settings, connects PostgreSQL and NATS, and runs the coordinator until
the process is stopped.
"""

import asyncio
import logging

from dataflow.adapters.nats_client import NatsClient, NatsConfig
from dataflow.persistence.store import CandleStore
from engine.config.loader import Settings
from engine.runtime.coordinator import IngestionCoordinator

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


async def main():
    """
    Main entry point for the ingestion service.

    Environment Variables:
        See engine.config.loader.Settings.from_env, plus
        NATS_SERVERS: NATS server URLs (default: "nats://localhost:4222")
        NATS_CLIENT_NAME: NATS client name (default: "candle-ingest")
    """
    settings = Settings.from_env()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info("=" * 60)
    logger.info("Candle Ingestion Starting")
    logger.info("=" * 60)
    logger.info(f"Exchange: {settings.exchange}")
    logger.info(f"Instruments: {[i.symbol for i in settings.instruments]}")
    logger.info(f"Timeframes: {[t.label for t in settings.timeframes]}")
    logger.info(f"Alignment zone: {settings.align_timezone}")

    store = CandleStore(settings.database_url)
    await store.connect()
    await store.ensure_schema()

    nats_client = NatsClient(NatsConfig.from_env())
    await nats_client.connect()

    coordinator = IngestionCoordinator(settings, store, nats_client)
    try:
        await coordinator.start()

        logger.info("Ingestion running. Press Ctrl+C to stop.")
        while True:
            await asyncio.sleep(60)
            metrics = coordinator.get_metrics()
            logger.info(
                f"Metrics [{settings.exchange}]: "
                f"{metrics['routed']} routed, {metrics['dropped']} dropped, "
                f"{metrics['rollovers']} rollovers, "
                f"{metrics['flush_failures']} failed flush batches, "
                f"{metrics['pending_writes']} pending writes"
            )

    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Shutting down...")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        raise
    finally:
        await coordinator.stop()
        await nats_client.close()
        await store.close()

        logger.info("Ingestion stopped")


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
