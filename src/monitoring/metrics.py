"""
Prometheus metrics for the failover controller.
"""

import logging
from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

logger = logging.getLogger(__name__)


class FailoverMetrics:
    """
    Prometheus metrics for probes, cycles and record switches.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """
        Initialize failover metrics.

        Args:
            registry: Prometheus registry to use (default: a private registry)
        """
        self.registry = registry or CollectorRegistry()

        self.probe_total = Counter(
            'dns_failover_probe_total',
            'Total number of node health probes',
            ['node', 'result'],
            registry=self.registry
        )

        self.probe_latency = Gauge(
            'dns_failover_probe_latency_seconds',
            'Latency of the last successful probe',
            ['node'],
            registry=self.registry
        )

        self.node_healthy = Gauge(
            'dns_failover_node_healthy',
            'Node health from the last probe (1=healthy, 0=unhealthy)',
            ['node'],
            registry=self.registry
        )

        self.cycles_total = Counter(
            'dns_failover_cycles_total',
            'Total number of watch cycles',
            ['result'],
            registry=self.registry
        )

        self.switch_total = Counter(
            'dns_failover_switch_total',
            'Total number of record reconciliations',
            ['family', 'result'],
            registry=self.registry
        )

        self.cycle_duration = Histogram(
            'dns_failover_cycle_duration_seconds',
            'Duration of one watch cycle in seconds',
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
            registry=self.registry
        )

    def record_probe(self, node: str, healthy: bool, latency: float) -> None:
        self.probe_total.labels(node=node, result='healthy' if healthy else 'failed').inc()
        self.node_healthy.labels(node=node).set(1 if healthy else 0)
        if healthy:
            self.probe_latency.labels(node=node).set(latency)

    def record_cycle(self, result: str, duration: float) -> None:
        self.cycles_total.labels(result=result).inc()
        self.cycle_duration.observe(duration)

    def record_switch(self, family: str, result: str) -> None:
        self.switch_total.labels(family=family, result=result).inc()
