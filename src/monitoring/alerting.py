"""
Alert Manager

Sends failover notifications to Prometheus Alertmanager.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

import aiohttp

logger = logging.getLogger(__name__)


@dataclass
class Alert:
    """Alert definition"""
    name: str
    severity: str  # critical, warning, info
    message: str
    labels: Dict[str, str] = field(default_factory=dict)
    triggered_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class AlertManager:
    """
    Failover Alert Manager

    Logs every alert, keeps a bounded history and forwards it to
    Alertmanager when a URL is configured. Delivery problems are logged,
    never raised into the watch loop.
    """

    def __init__(
        self,
        alertmanager_url: Optional[str] = None,
        timeout_seconds: float = 10.0,
        history_size: int = 100,
    ):
        self.alertmanager_url = alertmanager_url.rstrip('/') if alertmanager_url else None
        self.timeout_seconds = timeout_seconds
        self.history_size = history_size
        self.alert_history: List[Alert] = []

    async def send_alert(self, alert: Alert) -> bool:
        """Send alert notification; returns True when Alertmanager accepted it"""
        log = logger.error if alert.severity == 'critical' else logger.warning
        log(f"ALERT [{alert.severity}]: {alert.name} - {alert.message}")

        self.alert_history.append(alert)
        del self.alert_history[:-self.history_size]

        if not self.alertmanager_url:
            return False

        payload = [{
            "labels": {
                "alertname": alert.name,
                "severity": alert.severity,
                **alert.labels
            },
            "annotations": {
                "summary": alert.message
            },
            "startsAt": alert.triggered_at,
        }]

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                url = f"{self.alertmanager_url}/api/v2/alerts"
                async with session.post(url, json=payload) as response:
                    if response.status == 200:
                        logger.info(f"Alert sent successfully: {alert.name}")
                        return True
                    logger.error(f"Failed to send alert {alert.name}: HTTP {response.status}")

        except Exception as e:
            logger.error(f"Error sending alert {alert.name}: {e}")

        return False

    def get_alert_history(self, limit: Optional[int] = None) -> List[Alert]:
        """Get recent alerts"""
        if limit:
            return self.alert_history[-limit:]
        return list(self.alert_history)
