"""Configuration management for the DNS failover controller."""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import yaml

from ..failover.addressing import ANCHOR_NAME, AddressFamily, address_family
from ..failover.errors import ConfigError
from ..failover.models import Node
from ..failover.record_store import CloudflareCredentials

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def parse_seconds(value: Any, default: float) -> float:
    """Parse a duration in seconds; zero, negative or garbage gives the default."""
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return default
    if seconds <= 0:
        return default
    return seconds


def parse_bool(value: Any, default: bool = False) -> bool:
    """Booleans from YAML or the environment; strings must read 'true'."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def parse_names(value: Any) -> List[str]:
    """Record names from a list or a comma-separated string."""
    if value is None:
        return [ANCHOR_NAME]
    if isinstance(value, str):
        value = value.split(",")
    names = []
    for name in value:
        name = str(name).strip()
        if name and name not in names:
            names.append(name)
    return names


@dataclass
class NodeConfig:
    """A candidate node as written in the configuration file."""
    name: str
    ipv4: str
    ipv6: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NodeConfig":
        return cls(
            name=str(data.get("name", "")).strip(),
            ipv4=str(data.get("ipv4") or data.get("ip") or "").strip(),
            ipv6=str(data.get("ipv6") or "").strip(),
        )

    def to_node(self) -> Node:
        return Node(name=self.name, ipv4=self.ipv4, ipv6=self.ipv6)


@dataclass
class FailoverConfig:
    """Central configuration for the watch loop and its collaborators."""

    domain: str = ""
    health_url: str = ""
    interval_seconds: float = 60.0
    probe_timeout_seconds: float = 60.0
    cooldown_seconds: float = 600.0
    record_names: List[str] = field(default_factory=lambda: [ANCHOR_NAME])
    nodes: List[NodeConfig] = field(default_factory=list)
    cloudflare: CloudflareCredentials = field(default_factory=CloudflareCredentials)
    health_port: int = 8080
    metrics_port: int = 9090
    alertmanager_url: Optional[str] = None
    log_level: str = "INFO"
    structured_logs: bool = False

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FailoverConfig":
        cloudflare = data.get("cloudflare") or {}
        return cls(
            domain=str(data.get("domain") or "").strip().rstrip("."),
            health_url=str(data.get("health_url") or data.get("url") or "").strip(),
            interval_seconds=parse_seconds(data.get("interval", data.get("ttl")), 60.0),
            probe_timeout_seconds=parse_seconds(data.get("timeout"), 60.0),
            cooldown_seconds=parse_seconds(data.get("cooldown"), 600.0),
            record_names=parse_names(data.get("names")),
            nodes=[NodeConfig.from_dict(n) for n in data.get("nodes") or []],
            cloudflare=CloudflareCredentials(
                email=str(cloudflare.get("email") or ""),
                api_key=str(cloudflare.get("api_key") or cloudflare.get("apikey") or ""),
                api_token=str(cloudflare.get("api_token") or ""),
                zone_id=str(cloudflare.get("zone_id") or ""),
                timeout_seconds=parse_seconds(cloudflare.get("timeout"), 15.0),
            ),
            health_port=int(data.get("health_port", 8080)),
            metrics_port=int(data.get("metrics_port", 9090)),
            alertmanager_url=data.get("alertmanager_url") or None,
            log_level=str(data.get("log_level") or "INFO"),
            structured_logs=parse_bool(data.get("structured_logs")),
        )

    @property
    def node_list(self) -> List[Node]:
        return [n.to_node() for n in self.nodes]

    def validate(self) -> bool:
        """Validate configuration."""
        if not self.domain:
            raise ConfigError("Required configuration field 'domain' is not set")
        if not self.health_url:
            raise ConfigError("Required configuration field 'health_url' is not set")
        if not self.nodes:
            raise ConfigError("At least one node must be configured")
        if ANCHOR_NAME not in self.record_names:
            raise ConfigError(f"Record names must include '{ANCHOR_NAME}'")
        if not self.cloudflare.configured:
            raise ConfigError("Cloudflare credentials are not set")

        seen = set()
        for node in self.nodes:
            if not node.name:
                raise ConfigError("Every node needs a name")
            if node.name in seen:
                raise ConfigError(f"Duplicate node name '{node.name}'")
            seen.add(node.name)
            if address_family(node.ipv4) is not AddressFamily.IPV4:
                raise ConfigError(f"Node '{node.name}' has an invalid ipv4 '{node.ipv4}'")
            if node.ipv6 and address_family(node.ipv6) is not AddressFamily.IPV6:
                raise ConfigError(f"Node '{node.name}' has an invalid ipv6 '{node.ipv6}'")

        return True


def _env_config(env: Mapping[str, str]) -> Dict[str, Any]:
    config: Dict[str, Any] = {
        "domain": env.get("FAILOVER_DOMAIN", ""),
        "health_url": env.get("FAILOVER_HEALTH_URL", ""),
        "interval": env.get("FAILOVER_INTERVAL"),
        "timeout": env.get("FAILOVER_TIMEOUT"),
        "names": env.get("FAILOVER_RECORD_NAMES"),
        "alertmanager_url": env.get("ALERTMANAGER_URL"),
        "log_level": env.get("LOG_LEVEL", "INFO"),
        "cloudflare": {
            "email": env.get("CF_EMAIL", ""),
            "api_key": env.get("CF_API_KEY", ""),
            "api_token": env.get("CF_API_TOKEN", ""),
            "zone_id": env.get("CF_ZONE_ID", ""),
        },
    }
    return {k: v for k, v in config.items() if v is not None}


def load_config(
    config_path: Optional[str] = None, env: Optional[Mapping[str, str]] = None
) -> FailoverConfig:
    """Load configuration from environment, overlaid by a YAML file when present."""
    env = os.environ if env is None else env
    config_path = config_path or env.get("FAILOVER_CONFIG", DEFAULT_CONFIG_PATH)
    config = _env_config(env)

    if os.path.exists(config_path):
        try:
            with open(config_path, 'r') as f:
                file_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to load config file {config_path}: {e}") from e

        if file_config:
            if not isinstance(file_config, dict):
                raise ConfigError(f"Config file {config_path} must contain a mapping")
            cloudflare = {**config.get("cloudflare", {}), **(file_config.pop("cloudflare", None) or {})}
            config.update(file_config)
            config["cloudflare"] = cloudflare
    else:
        logger.info(f"No config file at {config_path}, using environment only")

    try:
        return FailoverConfig.from_dict(config)
    except (AttributeError, TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
