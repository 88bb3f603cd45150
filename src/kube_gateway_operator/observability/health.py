"""
Health checks for the kube-gateway operator.

The operator is only useful while it can reach the Kubernetes API and the
GateServer CRD is installed; both are checked here and reported through the
/ready endpoint and the kopf liveness probe.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..constants import GATESERVER_CRD_NAME

logger = logging.getLogger(__name__)

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """Outcome of one health check."""

    name: str
    status: str
    message: str
    details: dict[str, Any] | None = None
    duration: float = 0.0
    timestamp: float = field(default_factory=time.time)

    @property
    def healthy(self) -> bool:
        return self.status == HEALTHY


def _finish(
    name: str,
    healthy: bool,
    message: str,
    started: float,
    details: dict[str, Any] | None = None,
) -> HealthCheckResult:
    return HealthCheckResult(
        name=name,
        status=HEALTHY if healthy else UNHEALTHY,
        message=message,
        details=details,
        duration=time.time() - started,
    )


class HealthChecker:
    """Runs the operator's health checks."""

    def __init__(self, k8s_client: client.ApiClient | None = None):
        self._k8s_client = k8s_client

    @property
    def k8s_client(self) -> client.ApiClient:
        if self._k8s_client is None:
            from ..utils.kubernetes import get_kubernetes_client

            self._k8s_client = get_kubernetes_client()
        return self._k8s_client

    async def check_all(self) -> dict[str, HealthCheckResult]:
        """Run every check; a check that blows up is reported as unhealthy."""
        checks = {
            "kubernetes_api": self.check_kubernetes_api,
            "crds_installed": self.check_gateserver_crd,
        }

        results = {}
        for name, check in checks.items():
            started = time.time()
            try:
                results[name] = await check()
            except Exception as e:
                logger.warning(f"Health check {name} raised: {e}")
                results[name] = _finish(name, False, f"Health check failed: {e}", started)
        return results

    async def check_kubernetes_api(self) -> HealthCheckResult:
        started = time.time()
        core_api = client.CoreV1Api(self.k8s_client)
        try:
            await asyncio.to_thread(core_api.list_namespace, limit=1, timeout_seconds=5)
        except ApiException as e:
            return _finish(
                "kubernetes_api",
                False,
                f"Kubernetes API error: {e.reason}",
                started,
                {"status_code": e.status},
            )
        result = _finish("kubernetes_api", True, "Kubernetes API is reachable", started)
        result.details = {"response_time_ms": round(result.duration * 1000, 2)}
        return result

    async def check_gateserver_crd(self) -> HealthCheckResult:
        started = time.time()
        extensions_api = client.ApiextensionsV1Api(self.k8s_client)
        try:
            await asyncio.to_thread(
                extensions_api.read_custom_resource_definition, name=GATESERVER_CRD_NAME
            )
        except ApiException as e:
            if e.status == 404:
                message = f"Missing required CRD: {GATESERVER_CRD_NAME}"
            else:
                message = f"Failed to read CRD {GATESERVER_CRD_NAME}: {e.reason}"
            return _finish("crds_installed", False, message, started)
        return _finish(
            "crds_installed",
            True,
            f"CRD {GATESERVER_CRD_NAME} is installed",
            started,
            {"crd": GATESERVER_CRD_NAME},
        )

    @staticmethod
    def get_overall_health(results: dict[str, HealthCheckResult]) -> str:
        if not results:
            return "unknown"
        return HEALTHY if all(r.healthy for r in results.values()) else UNHEALTHY

    def to_dict(self, results: dict[str, HealthCheckResult]) -> dict[str, Any]:
        """Serialize check results for the /ready endpoint."""
        return {
            "status": self.get_overall_health(results),
            "timestamp": time.time(),
            "checks": {
                name: {
                    "status": r.status,
                    "message": r.message,
                    "details": r.details,
                    "duration": r.duration,
                    "timestamp": r.timestamp,
                }
                for name, r in results.items()
            },
        }
