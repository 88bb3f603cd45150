"""
Prometheus metrics for the kube-gateway operator.

Collectors live in a registry of their own, so only operator metrics are
served and tests can import this module repeatedly without duplicate
registration errors.
"""

import logging
import time
from contextlib import asynccontextmanager, contextmanager

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

logger = logging.getLogger(__name__)

_registry = CollectorRegistry()

RECONCILIATION_TOTAL = Counter(
    "kube_gateway_operator_reconciliation_total",
    "GateServer reconciles by action and result",
    ["namespace", "action", "result"],
    registry=_registry,
)

RECONCILIATION_DURATION = Histogram(
    "kube_gateway_operator_reconciliation_duration_seconds",
    "Duration of GateServer reconciles",
    ["namespace", "action"],
    buckets=[0.05, 0.25, 1.0, 5.0, 15.0, 60.0],
    registry=_registry,
)

RECONCILIATION_ERRORS = Counter(
    "kube_gateway_operator_reconciliation_errors_total",
    "GateServer reconciles that raised",
    ["namespace", "error_type", "retryable"],
    registry=_registry,
)

PROVISIONING_FAILURES = Counter(
    "kube_gateway_operator_provisioning_failures_total",
    "Provisioning attempts recorded as FailedCreateServer conditions",
    ["namespace", "category"],
    registry=_registry,
)

TEARDOWN_FAILURES = Counter(
    "kube_gateway_operator_teardown_failures_total",
    "Dependent objects that could not be deleted during finalization",
    ["kind"],
    registry=_registry,
)

KEYPAIR_GENERATION_DURATION = Histogram(
    "kube_gateway_operator_keypair_generation_duration_seconds",
    "Time spent generating JWT signing keypairs",
    buckets=[0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
    registry=_registry,
)

READY_GATESERVERS = Gauge(
    "kube_gateway_operator_ready_gateservers",
    "GateServers that reached the Ready phase during this operator's lifetime",
    ["namespace"],
    registry=_registry,
)


def get_metrics_registry() -> CollectorRegistry:
    return _registry


class MetricsCollector:
    """Records operator events on the module's collectors."""

    @asynccontextmanager
    async def track_reconciliation(self, namespace: str, action: str = "noop"):
        """
        Count and time one reconcile.

        Args:
            namespace: Namespace of the GateServer
            action: What the reconcile is about to do (provision, teardown, noop)
        """
        started = time.monotonic()
        result = "error"
        try:
            yield
            result = "success"
        except Exception as e:
            RECONCILIATION_ERRORS.labels(
                namespace=namespace,
                error_type=type(e).__name__,
                retryable=str(bool(getattr(e, "retryable", False))).lower(),
            ).inc()
            raise
        finally:
            RECONCILIATION_TOTAL.labels(
                namespace=namespace, action=action, result=result
            ).inc()
            RECONCILIATION_DURATION.labels(namespace=namespace, action=action).observe(
                time.monotonic() - started
            )

    @contextmanager
    def time_keypair_generation(self):
        with KEYPAIR_GENERATION_DURATION.time():
            yield

    def record_provisioning_failure(self, namespace: str, category: str) -> None:
        PROVISIONING_FAILURES.labels(namespace=namespace, category=category).inc()

    def record_teardown_failure(self, kind: str) -> None:
        TEARDOWN_FAILURES.labels(kind=kind).inc()

    def record_ready(self, namespace: str) -> None:
        READY_GATESERVERS.labels(namespace=namespace).inc()


metrics_collector = MetricsCollector()


class MetricsServer:
    """
    aiohttp server for the metrics scrape and the operator's own probes.

    Routes:
        /metrics: Prometheus exposition of the operator registry
        /ready: 200 when every health check passes, 503 otherwise
        /healthz: 200 while the server runs
    """

    def __init__(self, port: int = 8081, host: str = "0.0.0.0"):
        self.port = port
        self.host = host
        self.app = web.Application()
        self.app.add_routes(
            [
                web.get("/metrics", self.serve_metrics),
                web.get("/ready", self.serve_ready),
                web.get("/healthz", self.serve_healthz),
            ]
        )
        self._runner: web.AppRunner | None = None

    async def serve_metrics(self, request: web.Request) -> web.Response:
        try:
            payload = generate_latest(_registry)
        except Exception as e:
            logger.error(f"Rendering metrics failed: {e}", exc_info=True)
            return web.Response(
                status=500, text=f"Rendering metrics failed: {type(e).__name__}"
            )
        return web.Response(body=payload, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def serve_ready(self, request: web.Request) -> web.Response:
        from .health import HealthChecker

        checker = HealthChecker()
        report = checker.to_dict(await checker.check_all())
        return web.json_response(
            report, status=200 if report["status"] == "healthy" else 503
        )

    async def serve_healthz(self, request: web.Request) -> web.Response:
        return web.Response(text="ok")

    async def start(self) -> None:
        self._runner = web.AppRunner(self.app)
        await self._runner.setup()
        await web.TCPSite(self._runner, self.host, self.port).start()
        logger.info(f"Serving metrics and probes on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
            logger.info("Metrics server stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()
