#!/usr/bin/env python3
"""
Argo CD Operator entry point.

Keeps the credentials and certificates of ArgoCD instances in place:
- Cluster admin password, self-signed CA and leaf TLS certificate
- The composite argocd-secret bundle and Grafana credentials
- The in-cluster permissions descriptor of namespace-scoped instances
- Restarts of dependent workloads when externally managed TLS rotates

Usage:
    argocd-operator
    # Or with kopf directly:
    kopf run -m argocd_operator.operator --all-namespaces

Configuration is read from the environment, see ``argocd_operator.settings``.
"""

import logging
import sys

import kopf

# Import handler modules to register them with kopf
from argocd_operator.handlers import argocd  # noqa: F401
from argocd_operator.observability.logging import setup_structured_logging
from argocd_operator.observability.metrics import MetricsServer
from argocd_operator.settings import settings as operator_settings
from argocd_operator.utils.kubernetes import load_kubernetes_config

logger = logging.getLogger(__name__)

_metrics_server: MetricsServer | None = None


@kopf.on.startup()
async def startup_handler(settings: kopf.OperatorSettings, **_) -> None:
    """Tune kopf, load the cluster configuration and serve metrics."""
    global _metrics_server

    settings.peering.name = "argocd-operator"
    settings.posting.level = logging.WARNING
    settings.watching.reconnect_backoff = 1.0

    namespaces = operator_settings.watched_namespaces
    logger.info(
        "Starting Argo CD Operator, watching %s",
        ", ".join(namespaces) if namespaces else "all namespaces",
    )
    logger.info(
        "Serving certificate annotations %s",
        "enabled" if operator_settings.route_api_available else "disabled",
    )
    logger.info(f"Loaded {load_kubernetes_config()} Kubernetes configuration")

    server = MetricsServer(
        port=operator_settings.metrics_port, host=operator_settings.metrics_host
    )
    try:
        await server.start()
    except OSError as e:
        # Metrics are not required for reconciliation
        logger.warning(f"Continuing without metrics server: {e}")
        return
    _metrics_server = server


@kopf.on.cleanup()
async def cleanup_handler(**_) -> None:
    global _metrics_server

    logger.info("Shutting down Argo CD Operator")
    if _metrics_server is not None:
        await _metrics_server.stop()
        _metrics_server = None


def main() -> None:
    """Configure logging and run kopf over the watched namespaces."""
    setup_structured_logging(
        log_level=operator_settings.log_level,
        enable_json_formatting=operator_settings.json_logs,
        correlation_id_enabled=operator_settings.correlation_ids,
    )

    namespaces = operator_settings.watched_namespaces
    try:
        if namespaces:
            kopf.run(namespaces=namespaces)
        else:
            kopf.run(clusterwide=True)
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
        sys.exit(0)


if __name__ == "__main__":
    main()
