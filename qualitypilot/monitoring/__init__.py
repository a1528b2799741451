"""
Monitoring module exports.
"""

from qualitypilot.monitoring.logger import (
    JSONFormatter,
    RunContextFormatter,
    RunLogAdapter,
    SanitizingHandler,
    get_logger,
    log_performance_metric,
    log_run_event,
    setup_logging,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "log_run_event",
    "log_performance_metric",
    "JSONFormatter",
    "RunContextFormatter",
    "SanitizingHandler",
    "RunLogAdapter",
]
