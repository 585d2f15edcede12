"""Monitoring and observability middleware"""
import time
from typing import Callable
from fastapi import Request, Response
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from assetguard.utils.logger import logger


# ===== Prometheus Metrics =====

# Request metrics
http_requests_total = Counter(
    "assetguard_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)

http_request_duration_seconds = Histogram(
    "assetguard_http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"]
)

# Error metrics
http_errors_total = Counter(
    "assetguard_http_errors_total",
    "Total HTTP errors",
    ["method", "endpoint", "status"]
)

# Gate metrics
authentication_failures_total = Counter(
    "assetguard_authentication_failures_total",
    "Requests rejected by the authorization gate",
    ["reason"]  # missing_credential, expired_credential, revoked, role_not_allowed, ...
)

# Lifecycle metrics
lifecycle_transitions_total = Counter(
    "assetguard_lifecycle_transitions_total",
    "Applied lifecycle transitions",
    ["entity", "event"]
)


class MonitoringMiddleware(BaseHTTPMiddleware):
    """Middleware for monitoring and metrics collection"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and collect metrics"""
        start_time = time.time()

        method = request.method
        endpoint = request.url.path

        # Add request ID for tracing
        request_id = request.headers.get("x-request-id", f"req_{int(time.time() * 1000)}")
        request.state.request_id = request_id

        try:
            response = await call_next(request)
            status = response.status_code

            duration = time.time() - start_time
            http_requests_total.labels(
                method=method,
                endpoint=endpoint,
                status=status
            ).inc()

            http_request_duration_seconds.labels(
                method=method,
                endpoint=endpoint
            ).observe(duration)

            # Log slow requests
            if duration > 1.0:
                logger.warning(
                    f"Slow request detected: {method} {endpoint}",
                    extra={"request_id": request_id, "reason": f"{duration:.3f}s"}
                )

            if status >= 400:
                http_errors_total.labels(
                    method=method,
                    endpoint=endpoint,
                    status=status
                ).inc()

            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{duration:.3f}s"

            return response

        except Exception as e:
            http_errors_total.labels(
                method=method,
                endpoint=endpoint,
                status=500
            ).inc()

            logger.error(
                f"Request failed: {method} {endpoint}",
                extra={"request_id": request_id, "reason": str(e)},
                exc_info=True
            )
            raise


def record_auth_failure(reason: str):
    """Record a gate rejection"""
    authentication_failures_total.labels(reason=reason).inc()


def record_transition(entity: str, event: str):
    """Record an applied lifecycle transition"""
    lifecycle_transitions_total.labels(entity=entity, event=event).inc()
