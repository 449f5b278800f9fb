from .alerting import Alert, AlertManager
from .metrics import FailoverMetrics
from .server import create_health_app, create_metrics_app, serve

__all__ = [
    'Alert',
    'AlertManager',
    'FailoverMetrics',
    'create_health_app',
    'create_metrics_app',
    'serve',
]
