"""Logging setup and the per-app Prometheus metrics collaborator."""

import logging
import time

from fastapi import Request
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"


def setup_logging(level: str = "INFO") -> logging.Logger:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    return logging.getLogger("shortlinks")


class Metrics:
    """Counters for one service, kept in a registry of their own.

    Built once at app startup and handed to request handlers through
    app.state, so several apps can live in one process.
    """

    def __init__(self, service: str, registry: CollectorRegistry | None = None):
        self.service = service
        self.registry = registry or CollectorRegistry()

        self.http_requests = Counter(
            "http_requests_total",
            "Total number of HTTP requests",
            ["method", "route", "status_code", "service"],
            registry=self.registry,
        )
        self.http_duration = Histogram(
            "http_request_duration_seconds",
            "Duration of HTTP requests in seconds",
            ["method", "route", "service"],
            buckets=[0.01, 0.05, 0.1, 0.5, 1, 5],
            registry=self.registry,
        )
        self.urls_created = Counter(
            "urls_created_total",
            "Total number of URLs created",
            ["user_type", "service"],
            registry=self.registry,
        )
        self.url_clicks = Counter(
            "url_clicks_total",
            "Total number of URL clicks",
            ["service"],
            registry=self.registry,
        )
        self.auth_attempts = Counter(
            "auth_attempts_total",
            "Registration and login attempts",
            ["operation", "outcome", "service"],
            registry=self.registry,
        )

    def observe_request(self, method: str, route: str, status_code: int, seconds: float) -> None:
        self.http_requests.labels(method, route, str(status_code), self.service).inc()
        self.http_duration.labels(method, route, self.service).observe(seconds)

    def url_created(self, authenticated: bool) -> None:
        user_type = "authenticated" if authenticated else "anonymous"
        self.urls_created.labels(user_type, self.service).inc()

    def url_clicked(self) -> None:
        self.url_clicks.labels(self.service).inc()

    def auth_attempt(self, operation: str, outcome: str) -> None:
        self.auth_attempts.labels(operation, outcome, self.service).inc()

    def render(self) -> tuple[bytes, str]:
        return generate_latest(self.registry), CONTENT_TYPE_LATEST


class RequestMetricsMiddleware(BaseHTTPMiddleware):
    """Log every request and feed the HTTP counters."""

    def __init__(self, app, metrics: Metrics, logger: logging.Logger | None = None):
        super().__init__(app)
        self.metrics = metrics
        self.logger = logger or logging.getLogger("shortlinks.web")

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # Label by route template to keep label cardinality bounded
        route = request.scope.get("route")
        route_path = getattr(route, "path", "unmatched")
        self.metrics.observe_request(request.method, route_path, response.status_code, duration)

        self.logger.info(
            "%s %s - %d - %.2fms",
            request.method, request.url.path, response.status_code, duration * 1000,
        )
        return response


def get_metrics(request: Request) -> Metrics:
    return request.app.state.metrics
