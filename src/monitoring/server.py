"""
Probe endpoints for the controller process

``/health`` answers as long as the event loop is alive; ``/ready`` only
after the first watch cycle finished. Prometheus scrapes ``/metrics`` on a
separate port.
"""

import asyncio
import logging
from typing import Callable, List

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .metrics import FailoverMetrics

logger = logging.getLogger(__name__)


def create_health_app(is_ready: Callable[[], bool]) -> web.Application:
    async def health(request):
        return web.Response(text="OK")

    async def ready(request):
        if not is_ready():
            return web.Response(text="waiting for first cycle", status=503)
        return web.Response(text="OK")

    app = web.Application()
    app.router.add_get('/health', health)
    app.router.add_get('/ready', ready)
    return app


def create_metrics_app(metrics: FailoverMetrics) -> web.Application:
    async def scrape(request):
        return web.Response(
            body=generate_latest(metrics.registry),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )

    app = web.Application()
    app.router.add_get('/metrics', scrape)
    return app


async def serve(
    is_ready: Callable[[], bool],
    metrics: FailoverMetrics,
    health_port: int = 8080,
    metrics_port: int = 9090,
    host: str = '0.0.0.0',
):
    """Serve both apps until cancelled"""
    runners: List[web.AppRunner] = []
    try:
        for name, app, port in (
            ("health", create_health_app(is_ready), health_port),
            ("metrics", create_metrics_app(metrics), metrics_port),
        ):
            runner = web.AppRunner(app)
            await runner.setup()
            runners.append(runner)
            await web.TCPSite(runner, host, port).start()
            logger.info(f"Serving {name} on port {port}")

        while True:
            await asyncio.sleep(3600)
    finally:
        for runner in runners:
            await runner.cleanup()
