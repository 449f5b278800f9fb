"""
Failover Watcher

Drives the controller: every interval it resolves the published addresses,
probes all nodes, decides and reconciles the records. Cycles never overlap;
a cycle that overruns the interval just delays the next one.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..common.logger import CycleLoggerAdapter
from ..monitoring.alerting import Alert, AlertManager
from ..monitoring.metrics import FailoverMetrics
from .addressing import AddressFamily
from .decision import Decision, decide, format_probe_report
from .errors import FailoverError, GuardError, ReconcileError, WriteVerificationError
from .models import AdvertisedState, Node, ProbeResult
from .prober import Prober
from .resolver import resolve_advertised_async
from .synchronizer import RecordSynchronizer, SyncAction, SyncResult

logger = logging.getLogger(__name__)

Resolver = Callable[[str, Optional[float]], Awaitable[AdvertisedState]]


@dataclass
class CycleReport:
    """What happened during one watch cycle"""
    cycle: int
    advertised: Optional[AdvertisedState] = None
    results: List[ProbeResult] = field(default_factory=list)
    decision: Optional[Decision] = None
    switches: Dict[AddressFamily, SyncResult] = field(default_factory=dict)
    errors: Dict[AddressFamily, FailoverError] = field(default_factory=dict)
    error: Optional[FailoverError] = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None and not self.errors


class FailoverWatcher:
    """
    DNS Failover Watch Loop

    Holds the per-process collaborators (prober, synchronizer, metrics,
    alerts) and runs one full resolve/probe/decide/reconcile cycle at a time.
    """

    def __init__(
        self,
        domain: str,
        nodes: Sequence[Node],
        prober: Prober,
        synchronizer: RecordSynchronizer,
        record_names: Sequence[str],
        interval_seconds: float = 60.0,
        resolve_timeout_seconds: Optional[float] = None,
        metrics: Optional[FailoverMetrics] = None,
        alert_manager: Optional[AlertManager] = None,
        resolver: Resolver = resolve_advertised_async,
    ):
        self.domain = domain
        self.nodes = list(nodes)
        self.prober = prober
        self.synchronizer = synchronizer
        self.record_names = list(record_names)
        self.interval_seconds = interval_seconds
        self.resolve_timeout_seconds = resolve_timeout_seconds or prober.timeout_seconds
        self.metrics = metrics
        self.alert_manager = alert_manager
        self.resolver = resolver

        self.cycle_count = 0
        self.last_report: Optional[CycleReport] = None
        self.last_cycle_at: Optional[datetime] = None
        self._lock: Optional[asyncio.Lock] = None
        self._running = False

    async def probe_all(self) -> List[ProbeResult]:
        """Probe every node concurrently and wait for the whole batch"""
        results = await asyncio.gather(
            *(self.prober.probe_async(node.ipv4) for node in self.nodes),
            return_exceptions=True,
        )

        batch = []
        for node, result in zip(self.nodes, results):
            if isinstance(result, BaseException):
                logger.error(f"Probe of {node.name} raised: {result!r}")
                result = ProbeResult.failed(repr(result))
            if self.metrics:
                self.metrics.record_probe(node.name, result.healthy, result.latency)
            batch.append(result)
        return batch

    async def run_cycle(self) -> CycleReport:
        """Run one complete resolve → probe → decide → reconcile cycle"""
        if self._lock is None:
            # bound to the running loop on first use
            self._lock = asyncio.Lock()
        async with self._lock:
            self.cycle_count += 1
            report = CycleReport(cycle=self.cycle_count)
            log = CycleLoggerAdapter(logger, {'cycle': self.cycle_count})
            start_time = time.monotonic()
            completed = False

            try:
                await self._run(report, log)
                completed = True
            finally:
                report.duration_seconds = time.monotonic() - start_time
                self.last_report = report
                self.last_cycle_at = datetime.now(timezone.utc)
                if self.metrics:
                    if report.error:
                        result = 'aborted'
                    elif completed and report.ok:
                        result = 'ok'
                    else:
                        result = 'error'
                    self.metrics.record_cycle(result, report.duration_seconds)

            return report

    async def _run(self, report: CycleReport, log: logging.LoggerAdapter):
        try:
            report.advertised = await self.resolver(self.domain, self.resolve_timeout_seconds)
        except FailoverError as e:
            log.error(f"DNS lookup failure: {e}")
            report.error = e
            return

        report.results = await self.probe_all()
        log.info(format_probe_report(report.advertised, self.nodes, report.results))

        report.decision = decide(report.advertised, self.nodes, report.results)
        decision = report.decision

        if decision.is_noop:
            if not any(r.healthy for r in report.results):
                await self._alert(
                    "NoHealthyNodes", "critical",
                    f"No healthy node for {self.domain}, keeping current records",
                )
            return

        target = decision.target_node or "-"
        if decision.switch_ipv4 is not None:
            log.info(f"Switch IPv4 to {target} ({decision.switch_ipv4})")
            await self._reconcile(
                report, log, AddressFamily.IPV4,
                report.advertised.ipv4, decision.switch_ipv4,
            )
        if decision.switch_ipv6 is not None:
            log.info(f"Switch IPv6 to {target} ({decision.switch_ipv6 or 'none'})")
            await self._reconcile(
                report, log, AddressFamily.IPV6,
                report.advertised.ipv6, decision.switch_ipv6,
            )

    async def _reconcile(
        self,
        report: CycleReport,
        log: logging.LoggerAdapter,
        family: AddressFamily,
        source: str,
        target: str,
    ):
        extra = {'family': family.label}
        try:
            result = await asyncio.to_thread(
                self.synchronizer.reconcile, self.record_names, source, target, family
            )
        except GuardError as e:
            log.warning(f"{family.label} switch skipped: {e}", extra=extra)
            report.errors[family] = e
            self._count_switch(family, 'skipped')
            return
        except WriteVerificationError as e:
            log.critical(f"{family.label} write not applied: {e}", extra=extra)
            report.errors[family] = e
            self._count_switch(family, 'unverified')
            await self._alert(
                "DNSWriteVerificationFailed", "critical", str(e),
                {"family": family.label, "record": e.name},
            )
            return
        except FailoverError as e:
            unverified = isinstance(e, ReconcileError) and any(
                isinstance(f, WriteVerificationError) for f in e.failures
            )
            log.error(f"{family.label} switch failed: {e}", extra=extra)
            report.errors[family] = e
            self._count_switch(family, 'unverified' if unverified else 'failed')
            await self._alert(
                "DNSWriteVerificationFailed" if unverified else "DNSSwitchFailed",
                "critical",
                f"{family.label} switch to {target or 'none'} failed: {e}",
                {"family": family.label},
            )
            return

        report.switches[family] = result
        self._count_switch(family, result.action.value)
        log.info(f"{family.label} records {result.action.value}: {', '.join(result.names) or '-'}", extra=extra)
        if result.action is SyncAction.NOOP:
            return
        await self._alert(
            "DNSSwitch", "warning",
            f"{family.label} of {self.domain} moved from {source or 'none'} to {target or 'none'}",
            {"family": family.label, "target": target or "none"},
        )

    def _count_switch(self, family: AddressFamily, result: str):
        if self.metrics:
            self.metrics.record_switch(family.label, result)

    async def _alert(self, name: str, severity: str, message: str, labels: Optional[Dict[str, str]] = None):
        if self.alert_manager:
            await self.alert_manager.send_alert(Alert(
                name=name,
                severity=severity,
                message=message,
                labels={"domain": self.domain, **(labels or {})},
            ))

    async def continuous_monitoring(self):
        """Run cycles until stopped; errors are logged and the loop goes on"""
        self._running = True
        logger.info(
            f"Starting continuous monitoring of {self.domain} "
            f"({len(self.nodes)} nodes, interval: {self.interval_seconds}s)"
        )

        while self._running:
            try:
                await self.run_cycle()
            except Exception:
                logger.exception("Error in watch cycle")

            if self._running:
                await asyncio.sleep(self.interval_seconds)

    def stop_monitoring(self):
        """Stop after the current cycle"""
        self._running = False
        logger.info("Stopped continuous monitoring")

    @property
    def ready(self) -> bool:
        return self.last_report is not None
