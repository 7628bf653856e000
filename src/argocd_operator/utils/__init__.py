"""
Utility modules for the Argo CD operator.

This package contains helper functions and classes for:
- Kubernetes object access and secret encoding
- Credential and certificate generation
"""

from .credentials import CredentialFactory, leaf_dns_names
from .kubernetes import ObjectStore, get_kubernetes_client

__all__ = [
    "CredentialFactory",
    "ObjectStore",
    "get_kubernetes_client",
    "leaf_dns_names",
]
