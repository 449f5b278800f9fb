import asyncio
import logging
import os
import signal
import sys
from datetime import timedelta
from typing import Optional

# Add src to path
sys.path.append(os.path.join(os.path.dirname(__file__), '..'))

from src.common.config import FailoverConfig, load_config
from src.common.logger import setup_logging
from src.failover.errors import FailoverError
from src.failover.prober import Prober
from src.failover.record_store import CloudflareRecordStore, RecordStore
from src.failover.synchronizer import RecordSynchronizer
from src.failover.watcher import FailoverWatcher
from src.monitoring.alerting import AlertManager
from src.monitoring.metrics import FailoverMetrics
from src.monitoring.server import serve

logger = logging.getLogger("DNSFailover")


def build_watcher(
    config: FailoverConfig,
    metrics: FailoverMetrics,
    store: Optional[RecordStore] = None,
    zone_id: Optional[str] = None,
) -> FailoverWatcher:
    """
    Wire the record store, synchronizer and prober for a validated config.

    Must run on the event loop thread; resolve ``zone_id`` beforehand when
    the lookup should not block the loop.
    """
    if store is None:
        store = CloudflareRecordStore(config.cloudflare)
    if zone_id is None:
        zone_id = store.find_zone(config.domain)

    synchronizer = RecordSynchronizer(
        store,
        zone_id=zone_id,
        domain=config.domain,
        cooldown=timedelta(seconds=config.cooldown_seconds),
    )
    prober = Prober(config.health_url, timeout_seconds=config.probe_timeout_seconds)

    return FailoverWatcher(
        domain=config.domain,
        nodes=config.node_list,
        prober=prober,
        synchronizer=synchronizer,
        record_names=config.record_names,
        interval_seconds=config.interval_seconds,
        metrics=metrics,
        alert_manager=AlertManager(config.alertmanager_url),
    )


async def shutdown(sig, watcher: FailoverWatcher):
    """Cleanup tasks tied to the service's shutdown."""
    logger.info(f"Received exit signal {sig.name}...")
    watcher.stop_monitoring()
    tasks = [t for t in asyncio.all_tasks() if t is not asyncio.current_task()]

    for task in tasks:
        task.cancel()

    logger.info(f"Cancelling {len(tasks)} outstanding tasks")
    await asyncio.gather(*tasks, return_exceptions=True)


async def main(config_path=None) -> int:
    try:
        config = load_config(config_path)
        setup_logging(config.log_level, structured=config.structured_logs)
        config.validate()
    except FailoverError as e:
        setup_logging()
        logger.critical(f"Invalid configuration: {e}")
        return 1

    logger.info(f"Starting DNS failover controller for {config.domain}...")

    store = CloudflareRecordStore(config.cloudflare)
    try:
        zone_id = await asyncio.to_thread(store.find_zone, config.domain)
    except FailoverError as e:
        logger.critical(f"Failed to initialize record store: {e}")
        return 1

    metrics = FailoverMetrics()
    watcher = build_watcher(config, metrics, store=store, zone_id=zone_id)

    tasks = [
        asyncio.create_task(watcher.continuous_monitoring(), name="FailoverWatch"),
        asyncio.create_task(
            serve(lambda: watcher.ready, metrics, config.health_port, config.metrics_port),
            name="WebServers",
        ),
    ]

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    for s in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(s, lambda s=s: asyncio.create_task(shutdown(s, watcher)))
        except NotImplementedError:
            pass

    try:
        await asyncio.gather(*tasks, return_exceptions=True)
    except asyncio.CancelledError:
        logger.info("Services stopped.")
    return 0


def run():
    if os.name == 'nt':
        # Windows specific event loop policy
        asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

    try:
        sys.exit(asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else None)))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
