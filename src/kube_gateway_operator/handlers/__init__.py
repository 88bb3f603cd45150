"""
Handlers package - Contains the kopf event handlers for GateServer resources.

- gateserver.py: GateServer provisioning and teardown
"""
