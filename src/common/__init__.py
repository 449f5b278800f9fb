from .config import FailoverConfig, NodeConfig, load_config
from .logger import setup_logging

__all__ = ['FailoverConfig', 'NodeConfig', 'load_config', 'setup_logging']
