"""
Argo CD Operator - credential and certificate lifecycle reconciler.

This package provides the secret-management core of the Argo CD operator:
- Admin password, CA and leaf TLS provisioning
- Field-level reconciliation of the main Argo CD secret
- Cluster permission descriptors for namespace-scoped instances
- TLS drift detection with cascading workload restarts
"""

__version__ = "0.1.0"
