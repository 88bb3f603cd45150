"""
Kube Gateway Operator - A Kubernetes operator for kube-gateway proxy servers.

This operator reconciles GateServer resources into the objects a gateway
proxy needs to run:
- A service account identity for the proxy
- A JWT signing keypair secret
- RBAC permissions scoped by the GateServer spec
- An optional OpenShift OAuth client
"""

__version__ = "0.1.0"
