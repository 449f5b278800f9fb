"""
Decision Engine

Turns one batch of probe results into a switch decision. This module never
touches the network: ``decide`` is a pure function of the advertised state,
the node list and the probe results.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from .addressing import address_equal
from .models import AdvertisedState, Node, ProbeResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Decision:
    """
    Switch intents for one cycle.

    ``switch_ipv4`` / ``switch_ipv6`` are None when that family stays as is.
    An empty ``switch_ipv6`` asks for the AAAA records to be removed.
    """
    switch_ipv4: Optional[str] = None
    switch_ipv6: Optional[str] = None
    active_node: Optional[str] = None
    target_node: Optional[str] = None

    @property
    def is_noop(self) -> bool:
        return self.switch_ipv4 is None and self.switch_ipv6 is None

    @property
    def failover(self) -> bool:
        return self.switch_ipv4 is not None


def find_active_index(advertised: AdvertisedState, nodes: Sequence[Node]) -> Optional[int]:
    """Index of the node whose IPv4 is the advertised one"""
    for index, node in enumerate(nodes):
        if address_equal(node.ipv4, advertised.ipv4):
            return index
    return None


def select_fastest(
    nodes: Sequence[Node],
    results: Sequence[ProbeResult],
    exclude: Optional[int] = None,
) -> Optional[int]:
    """Index of the healthy node with the lowest latency; ties go to the earlier node"""
    best = None
    for index, (node, result) in enumerate(zip(nodes, results)):
        if index == exclude or not result.healthy or not node.ipv4:
            continue
        if best is None or result.latency < results[best].latency:
            best = index
    return best


def decide(
    advertised: AdvertisedState,
    nodes: Sequence[Node],
    results: Sequence[ProbeResult],
) -> Decision:
    """
    Decide whether the advertised records have to move.

    A healthy active node keeps IPv4 and only has its IPv6 synchronized.
    Otherwise the fastest healthy other node is promoted for both families.
    With no healthy candidate nothing changes.
    """
    if len(nodes) != len(results):
        raise ValueError(
            f"expected one probe result per node, got {len(results)} for {len(nodes)} nodes"
        )

    active = find_active_index(advertised, nodes)

    if active is not None and results[active].healthy:
        node = nodes[active]
        switch_ipv6 = None
        if not address_equal(node.ipv6, advertised.ipv6):
            switch_ipv6 = node.ipv6
        return Decision(
            switch_ipv6=switch_ipv6,
            active_node=node.name,
            target_node=node.name if switch_ipv6 is not None else None,
        )

    active_name = nodes[active].name if active is not None else None
    fastest = select_fastest(nodes, results, exclude=active)
    if fastest is None:
        logger.warning("No healthy node available, keeping current records")
        return Decision(active_node=active_name)

    target = nodes[fastest]
    switch_ipv6 = None
    if not address_equal(target.ipv6, advertised.ipv6):
        switch_ipv6 = target.ipv6
    return Decision(
        switch_ipv4=target.ipv4,
        switch_ipv6=switch_ipv6,
        active_node=active_name,
        target_node=target.name,
    )


def format_probe_report(
    advertised: AdvertisedState,
    nodes: Sequence[Node],
    results: Sequence[ProbeResult],
) -> str:
    """One status line per cycle, e.g. ``A (10.0.0.11) 50ms, B 30ms, C Fail``"""
    parts = []
    for node, result in zip(nodes, results):
        text = node.name
        if address_equal(node.ipv4, advertised.ipv4):
            addresses = node.ipv4
            if advertised.ipv6 and address_equal(advertised.ipv6, node.ipv6):
                addresses += ", " + node.ipv6
            text += f" ({addresses})"
        if result.healthy:
            text += f" {result.latency_ms}ms"
        else:
            text += " Fail"
        parts.append(text)
    return ", ".join(parts)
