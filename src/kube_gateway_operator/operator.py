#!/usr/bin/env python3
"""
kube-gateway operator entry point.

Each GateServer gets the ServiceAccount, JWT keypair Secret, ClusterRole,
binding and optional OpenShift OAuthClient that a kube-gateway proxy runs
with. The cluster scoped objects are deleted again when the GateServer is.

Run with ``kube-gateway-operator`` or ``kopf run -m kube_gateway_operator.operator``.
Configuration comes from the environment, see ``kube_gateway_operator.settings``.
"""

import logging
import random
import sys

import kopf
from kubernetes import config

# Registers the GateServer handlers with kopf
from kube_gateway_operator.handlers import gateserver  # noqa: F401
from kube_gateway_operator.observability.health import HealthChecker
from kube_gateway_operator.observability.logging import setup_structured_logging
from kube_gateway_operator.observability.metrics import MetricsServer
from kube_gateway_operator.settings import settings as operator_settings

LIVENESS_ENDPOINT = "http://0.0.0.0:8080/healthz"

logger = logging.getLogger(__name__)

_metrics_server: MetricsServer | None = None


def configure_logging() -> None:
    setup_structured_logging(
        log_level=operator_settings.log_level.upper(),
        json_logs=operator_settings.json_logs,
        correlation_ids=operator_settings.correlation_ids,
        log_health_probes=operator_settings.log_health_probes,
    )


def get_watched_namespaces() -> list[str] | None:
    return operator_settings.watched_namespaces


def load_kubernetes_config() -> None:
    try:
        config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes configuration")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Using kubeconfig")


@kopf.on.startup()
async def startup_handler(settings: kopf.OperatorSettings, **_) -> None:
    """Tune kopf, connect to the cluster and start serving metrics."""
    global _metrics_server

    settings.watching.reconnect_backoff = 1.0
    settings.peering.name = operator_settings.operator_name
    settings.peering.priority = random.randint(0, 32767)
    # kopf serializes handlers per object, so this only bounds parallel GateServers
    settings.execution.max_workers = operator_settings.max_workers

    namespaces = get_watched_namespaces()
    logger.info(
        f"Starting kube-gateway operator (peering priority "
        f"{settings.peering.priority}, watching "
        f"{', '.join(namespaces) if namespaces else 'all namespaces'})"
    )
    if operator_settings.strict_teardown:
        logger.info("Strict teardown: finalizers stay until every dependent is deleted")

    load_kubernetes_config()

    server = MetricsServer(
        port=operator_settings.metrics_port, host=operator_settings.metrics_host
    )
    try:
        await server.start()
    except OSError as e:
        logger.warning(f"Metrics server not started, continuing without it: {e}")
    else:
        _metrics_server = server


@kopf.on.cleanup()
async def cleanup_handler(**_) -> None:
    global _metrics_server

    logger.info("Stopping kube-gateway operator")
    if _metrics_server is None:
        return
    try:
        await _metrics_server.stop()
    except Exception as e:
        logger.error(f"Metrics server did not stop cleanly: {e}")
    finally:
        _metrics_server = None


@kopf.on.probe(id="healthz")
async def health_check(**_) -> dict[str, str]:
    """Liveness payload: the combined result of the operator's health checks."""
    payload = {"operator": operator_settings.operator_name}
    try:
        checker = HealthChecker()
        results = await checker.check_all()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {**payload, "status": "unhealthy", "error": str(e)}

    api_result = results.get("kubernetes_api")
    return {
        **payload,
        "status": checker.get_overall_health(results),
        "timestamp": str(api_result.timestamp) if api_result else "unknown",
    }


def main() -> None:
    configure_logging()

    namespaces = get_watched_namespaces()
    scope = {"namespaces": namespaces} if namespaces else {"clusterwide": True}
    try:
        kopf.run(liveness_endpoint=LIVENESS_ENDPOINT, **scope)
    except KeyboardInterrupt:
        logger.info("Interrupted, exiting")
        sys.exit(0)
    except Exception as e:
        logger.error(f"Operator stopped with an error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
