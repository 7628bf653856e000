"""
ArgoCD instance reconciler.

One pass runs the ordered secret table, requests serving certificates for
the repo-server and Redis services where the platform provides them, and
finally checks the externally managed TLS secrets for drift.
"""

from typing import Any

from kubernetes import client

from argocd_operator.constants import (
    REDIS_HA_PROXY_SUFFIX,
    REDIS_SERVER_TLS_SECRET_NAME,
    REDIS_SUFFIX,
    REPO_SERVER_SUFFIX,
    REPO_SERVER_TLS_SECRET_NAME,
)
from argocd_operator.models.argocd import ArgoCDInstance, ClusterCapabilities
from argocd_operator.settings import settings
from argocd_operator.utils.credentials import CredentialFactory
from argocd_operator.utils.kubernetes import ObjectStore

from .base_reconciler import BaseReconciler, StatusProtocol
from .cluster_secrets import build_secret_steps
from .orchestrator import PassResult, SecretOrchestrator
from .rollout import RolloutTrigger, WorkloadRolloutTrigger, ensure_auto_tls_annotation
from .tls_drift import TLSDriftDetector


class ArgoCDReconciler(BaseReconciler):
    """
    Reconciler for ArgoCD credentials and certificates.

    Collaborators are created lazily from the Kubernetes client unless
    supplied, which is how tests inject an in-memory store.
    """

    def __init__(
        self,
        k8s_client: client.ApiClient | None = None,
        store: ObjectStore | None = None,
        factory: CredentialFactory | None = None,
        rollout: RolloutTrigger | None = None,
        capabilities: ClusterCapabilities | None = None,
    ):
        """
        Initialize ArgoCD reconciler.

        Args:
            k8s_client: Kubernetes API client
            store: Object store, built from the client if omitted
            factory: Credential factory, configured from settings if omitted
            rollout: Rollout trigger, built over the store if omitted
            capabilities: Cluster capabilities, read from settings if omitted
        """
        super().__init__(k8s_client)
        self._store = store
        self._rollout = rollout
        self.factory = factory or CredentialFactory(
            hash_rounds=settings.password_hash_rounds
        )
        self.capabilities = capabilities or ClusterCapabilities(
            route_api_available=settings.route_api_available
        )

    @property
    def store(self) -> ObjectStore:
        if self._store is None:
            self._store = ObjectStore(self.kubernetes_client)
        return self._store

    @property
    def rollout(self) -> RolloutTrigger:
        if self._rollout is None:
            self._rollout = WorkloadRolloutTrigger(self.store)
        return self._rollout

    async def reconcile_secrets(self, instance: ArgoCDInstance) -> PassResult:
        orchestrator = SecretOrchestrator(
            self.store, build_secret_steps(self.store, self.factory, self.rollout)
        )
        return await orchestrator.run(instance)

    async def reconcile_auto_tls(self, instance: ArgoCDInstance) -> list[str]:
        """
        Request or withdraw platform serving certificates on component services.

        Returns:
            Names of the services that were updated
        """
        redis_service = REDIS_HA_PROXY_SUFFIX if instance.spec.ha.enabled else REDIS_SUFFIX
        targets = [
            (
                instance.name_with_suffix(REPO_SERVER_SUFFIX),
                REPO_SERVER_TLS_SECRET_NAME,
                instance.spec.repo.auto_tls_enabled,
            ),
            (
                instance.name_with_suffix(redis_service),
                REDIS_SERVER_TLS_SECRET_NAME,
                instance.spec.redis.auto_tls_enabled,
            ),
        ]

        updated = []
        for service_name, secret_name, enabled in targets:
            service = await self.store.get_service(service_name, instance.namespace)
            if service is None:
                continue
            if ensure_auto_tls_annotation(
                service, secret_name, enabled, self.capabilities
            ):
                await self.store.update_service(service)
                updated.append(service_name)
        return updated

    async def do_reconcile(
        self,
        spec: dict[str, Any],
        name: str,
        namespace: str,
        status: StatusProtocol,
        **kwargs,
    ) -> dict[str, Any]:
        body = kwargs.get("body") or {}
        instance = ArgoCDInstance.from_resource(
            name=name,
            namespace=namespace,
            spec=spec,
            meta=kwargs.get("meta"),
            status=body.get("status"),
        )

        pass_result = await self.reconcile_secrets(instance)
        services = await self.reconcile_auto_tls(instance)
        drifted = await TLSDriftDetector(self.store, self.rollout).reconcile(instance)

        result: dict[str, Any] = {
            "mutated": pass_result.mutated,
            "deferred": [r.step for r in pass_result.deferred],
            "auto_tls_services": services,
            "tls_drift": drifted,
        }
        if pass_result.deferred:
            result["degraded_reason"] = "Waiting for prerequisites: " + "; ".join(
                f"{r.step} ({r.reason})" for r in pass_result.deferred
            )
        return result
