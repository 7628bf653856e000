"""
Restart triggers for workloads that consume rotated credentials.

A restart is requested by stamping the pod template with an annotation
keyed by the reason for the restart. Changing the pod template makes the
workload controller replace its pods the same way ``kubectl rollout
restart`` does.
"""

import logging
import time
from collections.abc import Callable
from typing import Protocol

from kubernetes import client

from argocd_operator.constants import OPENSHIFT_SERVING_CERT_ANNOTATION
from argocd_operator.models.argocd import ClusterCapabilities
from argocd_operator.observability.metrics import metrics_collector
from argocd_operator.utils.kubernetes import ObjectStore

logger = logging.getLogger(__name__)


class RolloutTrigger(Protocol):
    """Operations used to cascade restarts through dependent workloads."""

    async def restart_deployment(self, name: str, namespace: str, reason: str) -> bool:
        """Restart a Deployment. Returns False if it does not exist."""
        ...

    async def restart_stateful_set(
        self, name: str, namespace: str, reason: str
    ) -> bool:
        """Restart a StatefulSet. Returns False if it does not exist."""
        ...

    async def delete_stateful_set(self, name: str, namespace: str) -> bool:
        """Delete a StatefulSet so all of its pods are replaced at once."""
        ...

    async def delete_config_map(self, name: str, namespace: str) -> bool:
        """Delete a ConfigMap so its owner regenerates it."""
        ...


def _stamp_pod_template(workload, reason: str, stamp: str) -> None:
    template = workload.spec.template
    if template.metadata is None:
        template.metadata = client.V1ObjectMeta()
    if template.metadata.annotations is None:
        template.metadata.annotations = {}
    template.metadata.annotations[reason] = stamp


class WorkloadRolloutTrigger:
    """RolloutTrigger backed by the object store."""

    def __init__(
        self, store: ObjectStore, clock: Callable[[], int] = time.time_ns
    ):
        """
        Initialize rollout trigger.

        Args:
            store: Object store used to read and update workloads
            clock: Source of the epoch nanosecond restart stamp
        """
        self.store = store
        self.clock = clock

    async def restart_deployment(self, name: str, namespace: str, reason: str) -> bool:
        deployment = await self.store.get_deployment(name, namespace)
        if deployment is None:
            logger.info(
                f"Deployment {namespace}/{name} not found, skipping restart",
                extra={"workload": name, "workload_kind": "Deployment"},
            )
            return False

        _stamp_pod_template(deployment, reason, str(self.clock()))
        try:
            await self.store.update_deployment(deployment)
        except Exception:
            metrics_collector.record_rollout_trigger("Deployment", namespace, False)
            raise

        metrics_collector.record_rollout_trigger("Deployment", namespace, True)
        logger.info(
            f"Triggered rollout of deployment {namespace}/{name} ({reason})",
            extra={"workload": name, "workload_kind": "Deployment"},
        )
        return True

    async def restart_stateful_set(
        self, name: str, namespace: str, reason: str
    ) -> bool:
        stateful_set = await self.store.get_stateful_set(name, namespace)
        if stateful_set is None:
            logger.info(
                f"StatefulSet {namespace}/{name} not found, skipping restart",
                extra={"workload": name, "workload_kind": "StatefulSet"},
            )
            return False

        _stamp_pod_template(stateful_set, reason, str(self.clock()))
        try:
            await self.store.update_stateful_set(stateful_set)
        except Exception:
            metrics_collector.record_rollout_trigger("StatefulSet", namespace, False)
            raise

        metrics_collector.record_rollout_trigger("StatefulSet", namespace, True)
        logger.info(
            f"Triggered rollout of stateful set {namespace}/{name} ({reason})",
            extra={"workload": name, "workload_kind": "StatefulSet"},
        )
        return True

    async def delete_stateful_set(self, name: str, namespace: str) -> bool:
        deleted = await self.store.delete_stateful_set(name, namespace)
        if not deleted:
            logger.info(f"StatefulSet {namespace}/{name} not found, nothing to delete")
        return deleted

    async def delete_config_map(self, name: str, namespace: str) -> bool:
        deleted = await self.store.delete_config_map(name, namespace)
        if not deleted:
            logger.info(f"ConfigMap {namespace}/{name} not found, nothing to delete")
        return deleted


def ensure_auto_tls_annotation(
    service: client.V1Service,
    secret_name: str,
    enabled: bool,
    capabilities: ClusterCapabilities,
) -> bool:
    """
    Toggle the serving certificate annotation on a Service.

    Automatic TLS is only supported where the OpenShift service CA is
    available. Elsewhere the service is never touched.

    Args:
        service: Service to modify in place
        secret_name: Secret the service CA should write the certificate to
        enabled: Whether automatic TLS should be requested
        capabilities: Cluster capabilities

    Returns:
        True if the service was modified and needs to be updated
    """
    if not capabilities.route_api_available:
        return False

    if service.metadata.annotations is None:
        service.metadata.annotations = {}
    annotations = service.metadata.annotations
    current = annotations.get(OPENSHIFT_SERVING_CERT_ANNOTATION)

    if enabled:
        if current != secret_name:
            logger.info(
                f"Requesting serving certificate {secret_name} for service "
                f"{service.metadata.name}"
            )
            annotations[OPENSHIFT_SERVING_CERT_ANNOTATION] = secret_name
            return True
        return False

    if OPENSHIFT_SERVING_CERT_ANNOTATION in annotations:
        del annotations[OPENSHIFT_SERVING_CERT_ANNOTATION]
        return True
    return False
