"""
Failover data model

Nodes come from configuration and are read-only for the core. Probe results
and the advertised state are produced fresh every cycle and never persisted.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Node:
    """A candidate node that can serve the published domain"""
    name: str
    ipv4: str = ""
    ipv6: str = ""


@dataclass(frozen=True)
class ProbeResult:
    """Outcome of one health probe; latency is only meaningful when healthy"""
    healthy: bool
    latency: float = 0.0  # seconds
    status_code: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def failed(cls, error: str, status_code: Optional[int] = None) -> "ProbeResult":
        return cls(healthy=False, latency=0.0, status_code=status_code, error=error)

    @property
    def latency_ms(self) -> int:
        return int(round(self.latency * 1000))


@dataclass(frozen=True)
class AdvertisedState:
    """Addresses currently published for the domain; empty means no record"""
    ipv4: str = ""
    ipv6: str = ""
