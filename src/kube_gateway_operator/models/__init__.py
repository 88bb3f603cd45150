"""
Models package - Pydantic models for type-safe resource handling.

Defines data models for the GateServer specification, its permission
scope and its status.
"""

from .gateserver import (
    GateServer,
    GateServerCondition,
    GateServerPhase,
    GateServerSpec,
    GateServerStatus,
    NonResourcePermissions,
    ResourcePermissions,
)

__all__ = [
    "GateServer",
    "GateServerCondition",
    "GateServerPhase",
    "GateServerSpec",
    "GateServerStatus",
    "NonResourcePermissions",
    "ResourcePermissions",
]
