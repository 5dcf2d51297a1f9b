"""Auth Sentry: streaming brute-force login detector.

Ingests authentication log lines, counts failed logins per source
identity in fixed-origin time windows and raises threshold alerts
with per-window suppression.
"""

__version__ = "0.1.0"

from auth_sentry.schema import Alert, LoginEvent, Outcome, Severity, WindowState
from auth_sentry.config import DetectorConfig, OverflowPolicy
from auth_sentry.engine import DetectionEngine, detect_alerts

__all__ = [
    "Alert",
    "LoginEvent",
    "Outcome",
    "Severity",
    "WindowState",
    "DetectorConfig",
    "OverflowPolicy",
    "DetectionEngine",
    "detect_alerts",
    "__version__",
]
