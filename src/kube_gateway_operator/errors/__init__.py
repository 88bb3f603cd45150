"""
Error handling module for the kube-gateway operator.

This module provides an error hierarchy that integrates with kopf
and provides clear categorization for different types of failures.
"""

from .operator_errors import (
    KeyGenerationError,
    OperatorError,
    StoreError,
    SynthesisError,
    TemporaryError,
    ValidationError,
)

__all__ = [
    "OperatorError",
    "ValidationError",
    "KeyGenerationError",
    "SynthesisError",
    "StoreError",
    "TemporaryError",
]
