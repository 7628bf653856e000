"""
Service layer for the Argo CD operator.

This package contains the reconcilers for ArgoCD credentials, certificates
and the restarts that follow their rotation.
"""

from .argocd_reconciler import ArgoCDReconciler
from .base_reconciler import BaseReconciler

__all__ = [
    "BaseReconciler",
    "ArgoCDReconciler",
]
