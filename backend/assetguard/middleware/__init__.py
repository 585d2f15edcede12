"""Middleware modules for metrics and rate limiting"""
from assetguard.middleware.monitoring import (
    MonitoringMiddleware,
    record_auth_failure,
    record_transition,
)
from assetguard.middleware.rate_limit import limiter

__all__ = [
    "MonitoringMiddleware",
    "record_auth_failure",
    "record_transition",
    "limiter",
]
