"""
Utilities package - keypair generation, object builders and Kubernetes access.
"""
