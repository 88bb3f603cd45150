"""
GateServer handlers - Manages the lifecycle of kube-gateway servers.

Every kopf event for a GateServer (create, resume, update, delete) is turned
into a single reconcile call. The reconciler re-reads the GateServer and
decides on its own whether to provision, tear down or do nothing.

The delete handler is mandatory, so kopf keeps its own finalizer on every
GateServer and deletion events reach the handler even after the operator's
finalizer is the only other one left.
"""

import logging
from typing import Any

import kopf

from ..constants import API_GROUP, API_VERSION, GATESERVER_PLURAL
from ..errors import OperatorError
from ..services import GateServerReconciler, ReconcileResult
from ..utils.handler_logging import log_handler_entry

logger = logging.getLogger(__name__)

_reconciler: GateServerReconciler | None = None


def get_reconciler() -> GateServerReconciler:
    """Get the shared reconciler, creating it on first use."""
    global _reconciler
    if _reconciler is None:
        _reconciler = GateServerReconciler()
    return _reconciler


def set_reconciler(reconciler: GateServerReconciler | None) -> None:
    """Replace the shared reconciler (None resets it)."""
    global _reconciler
    _reconciler = reconciler


async def _reconcile(name: str, namespace: str) -> ReconcileResult:
    try:
        return await get_reconciler().reconcile(name, namespace)
    except OperatorError as e:
        raise e.as_kopf_error() from e


@kopf.on.create(GATESERVER_PLURAL, group=API_GROUP, version=API_VERSION)
@kopf.on.resume(GATESERVER_PLURAL, group=API_GROUP, version=API_VERSION)
async def ensure_gateserver(name: str, namespace: str, **kwargs: Any) -> None:
    """
    Provision a GateServer that has not been provisioned yet.

    Also runs for every existing GateServer when the operator starts, which
    picks up GateServers created while it was down.
    """
    log_handler_entry("create/resume", "gateserver", name, namespace)
    await _reconcile(name, namespace)


@kopf.on.update(GATESERVER_PLURAL, group=API_GROUP, version=API_VERSION)
async def update_gateserver(
    name: str, namespace: str, diff: kopf.Diff, **kwargs: Any
) -> None:
    """
    Handle changes to a GateServer.

    Provisioned GateServers are not changed; a GateServer whose earlier
    provisioning failed is retried with the new spec.
    """
    log_handler_entry(
        "update", "gateserver", name, namespace, extra={"changes": len(diff)}
    )
    await _reconcile(name, namespace)


@kopf.on.delete(GATESERVER_PLURAL, group=API_GROUP, version=API_VERSION)
async def delete_gateserver(name: str, namespace: str, **kwargs: Any) -> None:
    """Tear down the cluster scoped dependents of a GateServer being deleted."""
    log_handler_entry("delete", "gateserver", name, namespace)
    result = await _reconcile(name, namespace)
    if result.failed_deletions:
        logger.warning(
            f"GateServer {namespace}/{name} deleted with leftover dependents: "
            f"{', '.join(result.failed_deletions)}"
        )
