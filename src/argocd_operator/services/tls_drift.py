"""
Drift detection for externally managed TLS secrets.

The repo-server and Redis TLS secrets are produced outside the operator
(by the OpenShift service CA, cert-manager or by hand). Their content is
fingerprinted on every pass and compared with the fingerprint recorded in
the instance status. On a change the new fingerprint is recorded first and
the workloads that load the certificate are restarted afterwards, so a
restart that fails is not retried forever but a status write that fails
never causes a restart.
"""

import hashlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from kubernetes import client

from argocd_operator.constants import (
    APPLICATION_CONTROLLER_SUFFIX,
    ARGOCD_KIND,
    INSTANCE_NAME_ANNOTATION,
    REDIS_HA_CONFIG_MAP_NAME,
    REDIS_HA_HEALTH_CONFIG_MAP_NAME,
    REDIS_HA_PROXY_SUFFIX,
    REDIS_HA_SERVER_SUFFIX,
    REDIS_SERVER_TLS_SECRET_NAME,
    REDIS_SUFFIX,
    REPO_SERVER_SUFFIX,
    REPO_SERVER_TLS_SECRET_NAME,
    ROLLOUT_REASON_REDIS_TLS,
    ROLLOUT_REASON_REPO_TLS,
    SECRET_TYPE_TLS,
    SERVER_SUFFIX,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
)
from argocd_operator.errors import ReconciliationError
from argocd_operator.models.argocd import ArgoCDInstance
from argocd_operator.observability.metrics import metrics_collector
from argocd_operator.utils.kubernetes import ObjectStore, secret_bytes

from .rollout import RolloutTrigger

logger = logging.getLogger(__name__)

RolloutAction = tuple[str, Callable[[], Awaitable[bool]]]


def compute_fingerprint(secret: client.V1Secret) -> str:
    """
    Hex SHA-256 over the certificate followed by the key.

    Returns an empty string when either field is missing.
    """
    cert = secret_bytes(secret, TLS_CERT_KEY)
    key = secret_bytes(secret, TLS_PRIVATE_KEY_KEY)
    if cert is None or key is None:
        return ""
    return hashlib.sha256(cert + key).hexdigest()


@dataclass(frozen=True)
class TrackedTLSBundle:
    """
    An externally managed TLS secret and the status field that tracks it.

    Attributes:
        name: Short bundle name used in logs and metrics
        secret_name: Name of the watched secret
        status_field: Status field (CRD name) holding the last fingerprint
        status_attribute: Matching attribute of ``ArgoCDStatus``
        reason: Annotation key stamped on restarted pod templates
    """

    name: str
    secret_name: str
    status_field: str
    status_attribute: str
    reason: str


REPO_SERVER_BUNDLE = TrackedTLSBundle(
    name="repo-server",
    secret_name=REPO_SERVER_TLS_SECRET_NAME,
    status_field="repoTLSChecksum",
    status_attribute="repo_tls_checksum",
    reason=ROLLOUT_REASON_REPO_TLS,
)

REDIS_BUNDLE = TrackedTLSBundle(
    name="redis",
    secret_name=REDIS_SERVER_TLS_SECRET_NAME,
    status_field="redisTLSChecksum",
    status_attribute="redis_tls_checksum",
    reason=ROLLOUT_REASON_REDIS_TLS,
)


class TLSDriftDetector:
    """Detects TLS secret changes and cascades restarts."""

    def __init__(self, store: ObjectStore, rollout: RolloutTrigger):
        self.store = store
        self.rollout = rollout

    def _argocd_workload_actions(
        self, instance: ArgoCDInstance, reason: str
    ) -> list[RolloutAction]:
        ns = instance.namespace
        server = instance.name_with_suffix(SERVER_SUFFIX)
        repo_server = instance.name_with_suffix(REPO_SERVER_SUFFIX)
        controller = instance.name_with_suffix(APPLICATION_CONTROLLER_SUFFIX)
        return [
            (
                f"restart deployment {server}",
                lambda: self.rollout.restart_deployment(server, ns, reason),
            ),
            (
                f"restart deployment {repo_server}",
                lambda: self.rollout.restart_deployment(repo_server, ns, reason),
            ),
            (
                f"restart stateful set {controller}",
                lambda: self.rollout.restart_stateful_set(controller, ns, reason),
            ),
        ]

    def _redis_actions(self, instance: ArgoCDInstance) -> list[RolloutAction]:
        ns = instance.namespace
        reason = REDIS_BUNDLE.reason

        if not instance.spec.ha.enabled:
            redis = instance.name_with_suffix(REDIS_SUFFIX)
            return [
                (
                    f"restart deployment {redis}",
                    lambda: self.rollout.restart_deployment(redis, ns, reason),
                )
            ]

        haproxy = instance.name_with_suffix(REDIS_HA_PROXY_SUFFIX)
        ha_server = instance.name_with_suffix(REDIS_HA_SERVER_SUFFIX)
        # Rolling the HA stateful set would leave TLS and plain-text peers
        # unable to agree on a master, so it is deleted instead.
        return [
            (
                f"delete config map {REDIS_HA_CONFIG_MAP_NAME}",
                lambda: self.rollout.delete_config_map(REDIS_HA_CONFIG_MAP_NAME, ns),
            ),
            (
                f"delete config map {REDIS_HA_HEALTH_CONFIG_MAP_NAME}",
                lambda: self.rollout.delete_config_map(
                    REDIS_HA_HEALTH_CONFIG_MAP_NAME, ns
                ),
            ),
            (
                f"restart deployment {haproxy}",
                lambda: self.rollout.restart_deployment(haproxy, ns, reason),
            ),
            (
                f"delete stateful set {ha_server}",
                lambda: self.rollout.delete_stateful_set(ha_server, ns),
            ),
        ]

    def rollout_actions(
        self, instance: ArgoCDInstance, bundle: TrackedTLSBundle
    ) -> list[RolloutAction]:
        """Ordered restart actions for a bundle."""
        actions: list[RolloutAction] = []
        if bundle.name == REDIS_BUNDLE.name:
            actions.extend(self._redis_actions(instance))
        actions.extend(self._argocd_workload_actions(instance, bundle.reason))
        return actions

    async def _run_actions(
        self, instance: ArgoCDInstance, bundle: TrackedTLSBundle
    ) -> None:
        failures: list[str] = []
        for description, action in self.rollout_actions(instance, bundle):
            try:
                await action()
            except Exception as e:
                logger.warning(
                    f"Failed to {description} after {bundle.name} TLS change: {e}",
                    extra={"bundle": bundle.name},
                )
                failures.append(f"{description}: {e}")

        if failures:
            raise ReconciliationError(
                f"{len(failures)} restart(s) failed after {bundle.name} TLS change: "
                + "; ".join(failures)
            )

    async def check_bundle(
        self, instance: ArgoCDInstance, bundle: TrackedTLSBundle
    ) -> bool:
        """
        Compare a bundle's fingerprint with the recorded one.

        Returns:
            True if drift was detected and restarts were triggered

        Raises:
            ObjectStoreError: If the status cannot be written; nothing restarted
            ReconciliationError: If any restart failed; all others were attempted
        """
        secret = await self.store.get_secret(bundle.secret_name, instance.namespace)
        if secret is None:
            logger.debug(f"TLS secret {bundle.secret_name} not present")
            return False
        if secret.type != SECRET_TYPE_TLS:
            logger.debug(f"Secret {bundle.secret_name} is not of type {SECRET_TYPE_TLS}")
            return False

        fingerprint = compute_fingerprint(secret)
        recorded = getattr(instance.status, bundle.status_attribute)
        if fingerprint == recorded:
            return False

        logger.info(
            f"TLS secret {bundle.secret_name} changed, restarting dependent workloads",
            extra={"bundle": bundle.name, "secret_name": bundle.secret_name},
        )
        metrics_collector.record_tls_drift(bundle.name, instance.namespace)

        await self.store.update_status(instance, {bundle.status_field: fingerprint})
        setattr(instance.status, bundle.status_attribute, fingerprint)

        if bundle.name == REDIS_BUNDLE.name and instance.spec.ha.enabled:
            use_tls = await self.redis_should_use_tls(instance)
            logger.info(
                f"Recreating Redis HA configuration (TLS {'enabled' if use_tls else 'disabled'})",
                extra={"bundle": bundle.name},
            )

        await self._run_actions(instance, bundle)
        return True

    async def reconcile(self, instance: ArgoCDInstance) -> list[str]:
        """
        Check every tracked bundle.

        Returns:
            Names of the bundles that drifted
        """
        drifted = []
        for bundle in (REPO_SERVER_BUNDLE, REDIS_BUNDLE):
            if await self.check_bundle(instance, bundle):
                drifted.append(bundle.name)
        return drifted

    async def redis_should_use_tls(self, instance: ArgoCDInstance) -> bool:
        """
        Whether Redis should be configured for TLS.

        The Redis TLS secret must be TLS typed and either be owned by a
        Service that this instance owns (as the service CA does it) or carry
        the instance name annotation when created by hand.
        """
        secret = await self.store.get_secret(
            REDIS_SERVER_TLS_SECRET_NAME, instance.namespace
        )
        if secret is None or secret.type != SECRET_TYPE_TLS:
            return False

        owner_refs = secret.metadata.owner_references or []
        if not owner_refs:
            annotations = secret.metadata.annotations or {}
            return annotations.get(INSTANCE_NAME_ANNOTATION) == instance.name

        for owner in owner_refs:
            if owner.kind != "Service" or owner.api_version != "v1":
                continue
            service = await self.store.get_service(owner.name, instance.namespace)
            if service is None:
                continue
            for service_owner in service.metadata.owner_references or []:
                if (
                    service_owner.kind == ARGOCD_KIND
                    and service_owner.name == instance.name
                ):
                    return True
        return False
