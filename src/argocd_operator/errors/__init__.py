"""
Error handling module for the Argo CD operator.

Errors carry their retry behaviour so reconcilers can hand them to kopf.
"""

from .operator_errors import (
    AlreadyExistsError,
    ConflictError,
    CryptoError,
    HashError,
    KubernetesAPIError,
    NotFoundError,
    ObjectStoreError,
    OperatorError,
    ReconciliationError,
    TemporaryError,
    store_error_from_api_exception,
)

__all__ = [
    "OperatorError",
    "TemporaryError",
    "CryptoError",
    "HashError",
    "KubernetesAPIError",
    "ObjectStoreError",
    "NotFoundError",
    "AlreadyExistsError",
    "ConflictError",
    "ReconciliationError",
    "store_error_from_api_exception",
]
