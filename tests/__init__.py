"""
Tests package - Test suite for the kube-gateway operator.

Contains:
- unit/: Unit tests for individual components
"""
