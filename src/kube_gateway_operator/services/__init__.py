"""
Services package - reconciliation logic for GateServer resources.
"""

from .gateserver_reconciler import (
    GateServerReconciler,
    GateServerState,
    ReconcileAction,
    ReconcileResult,
)

__all__ = [
    "GateServerReconciler",
    "GateServerState",
    "ReconcileAction",
    "ReconcileResult",
]
