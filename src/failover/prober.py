"""
Health Prober

Checks a single candidate node by dialing its address directly while
presenting the public hostname for SNI, certificate validation and the HTTP
Host header. Failures are expected and never raised.
"""

import asyncio
import logging
import time
from typing import Callable, Optional
from urllib.parse import urlsplit

import requests
from requests.adapters import HTTPAdapter

from .models import ProbeResult

logger = logging.getLogger(__name__)


class PinnedAddressAdapter(HTTPAdapter):
    """
    Transport adapter that connects to a fixed address.

    The URL host is kept for the TLS handshake so the certificate is
    validated against the public name, not the node address.
    """

    def __init__(self, address: str, server_hostname: Optional[str] = None, **kwargs):
        self.address = address
        self.server_hostname = server_hostname
        super().__init__(**kwargs)

    def build_connection_pool_key_attributes(self, request, verify, cert=None):
        host_params, pool_kwargs = super().build_connection_pool_key_attributes(
            request, verify, cert
        )
        hostname = self.server_hostname or host_params["host"]
        host_params["host"] = self.address
        if host_params["scheme"] == "https":
            pool_kwargs["server_hostname"] = hostname
            pool_kwargs["assert_hostname"] = hostname
        return host_params, pool_kwargs


class Prober:
    """Performs bounded health checks against individual nodes"""

    def __init__(
        self,
        health_url: str,
        timeout_seconds: float = 60.0,
        verify: bool = True,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ):
        self.health_url = health_url
        self.timeout_seconds = timeout_seconds
        self.verify = verify
        self.session_factory = session_factory

    def probe(
        self,
        target_address: str,
        hostname: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ProbeResult:
        """
        Fetch the health URL from ``target_address``.

        Args:
            target_address: Node address to dial, bypassing DNS
            hostname: Name used for SNI and the Host header (default: URL host)
            timeout: Seconds before the attempt counts as failed

        Returns:
            ProbeResult, healthy only on HTTP 200
        """
        if timeout is None:
            timeout = self.timeout_seconds
        if not target_address:
            return ProbeResult.failed("no address")

        parts = urlsplit(self.health_url)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            # misconfiguration, not a node failure
            logger.error(f"Bad health check URL: {self.health_url!r}")
            return ProbeResult.failed("bad url")

        host_header = hostname or parts.netloc.rsplit("@", 1)[-1]
        start_time = time.monotonic()
        deadline = start_time + timeout

        try:
            with self.session_factory() as session:
                session.mount(
                    f"{parts.scheme}://",
                    PinnedAddressAdapter(target_address, server_hostname=hostname),
                )
                response = session.get(
                    self.health_url,
                    headers={"Host": host_header},
                    timeout=timeout,
                    verify=self.verify,
                    allow_redirects=False,
                    stream=True,
                )
                try:
                    status_code = response.status_code
                    if status_code == 200:
                        # the requests timeout only bounds each read
                        for _chunk in response.iter_content(chunk_size=1024):
                            if time.monotonic() >= deadline:
                                break
                finally:
                    response.close()

        except requests.exceptions.Timeout:
            logger.debug(f"Probe {target_address}: timeout")
            return ProbeResult.failed("timeout")
        except requests.exceptions.RequestException as e:
            logger.debug(f"Probe {target_address}: {e}")
            return ProbeResult.failed(str(e) or e.__class__.__name__)
        except Exception as e:
            logger.debug(f"Probe {target_address}: unexpected {e!r}")
            return ProbeResult.failed(repr(e))

        latency = time.monotonic() - start_time
        if status_code != 200:
            logger.debug(f"Probe {target_address}: HTTP {status_code}")
            return ProbeResult.failed(f"HTTP {status_code}", status_code=status_code)
        if latency >= timeout:
            logger.debug(f"Probe {target_address}: no complete response within {timeout}s")
            return ProbeResult.failed("timeout")

        return ProbeResult(healthy=True, latency=latency, status_code=200)

    async def probe_async(
        self,
        target_address: str,
        hostname: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> ProbeResult:
        return await asyncio.to_thread(self.probe, target_address, hostname, timeout)
