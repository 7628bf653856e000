"""
Per-instance secrets and the ordered table that reconciles them.

The cluster admin password and the self-signed CA have no prerequisites.
The leaf certificate needs the CA, the Grafana credentials need the admin
password and the composite bundle needs both the password and the leaf
certificate. Secrets that already exist are never regenerated here; only
the composite bundle and the Grafana credentials are kept in sync with
their sources.
"""

import logging

from argocd_operator.constants import (
    ADMIN_PASSWORD_KEY,
    CA_CERT_KEY,
    CA_SECRET_SUFFIX,
    CLUSTER_SECRET_SUFFIX,
    DEFAULT_GRAFANA_ADMIN_USERNAME,
    GRAFANA_ADMIN_PASSWORD_KEY,
    GRAFANA_ADMIN_USERNAME_KEY,
    GRAFANA_CONFIG_SUFFIX,
    GRAFANA_SECRET_KEY,
    GRAFANA_SECRET_SUFFIX,
    GRAFANA_SUFFIX,
    ROLLOUT_REASON_GRAFANA_PASSWORD,
    SECRET_TYPE_TLS,
    TLS_CERT_KEY,
    TLS_PRIVATE_KEY_KEY,
    TLS_SECRET_SUFFIX,
)
from argocd_operator.models.argocd import ArgoCDInstance
from argocd_operator.utils.credentials import CredentialFactory
from argocd_operator.utils.kubernetes import (
    ObjectStore,
    build_secret,
    secret_bytes,
    set_secret_bytes,
)

from .argocd_secret import ArgoCDSecretReconciler
from .cluster_permissions import ClusterPermissionsReconciler
from .orchestrator import SecretStep, StepResult
from .rollout import RolloutTrigger

logger = logging.getLogger(__name__)


class ClusterSecretReconciler:
    """Creates the instance's password, CA, leaf certificate and Grafana secrets."""

    def __init__(
        self,
        store: ObjectStore,
        factory: CredentialFactory,
        rollout: RolloutTrigger,
    ):
        self.store = store
        self.factory = factory
        self.rollout = rollout

    async def _create_owned(self, instance: ArgoCDInstance, secret) -> bool:
        self.store.set_owner(secret, instance)
        return await self.store.create_secret(secret)

    async def reconcile_cluster_secret(self, instance: ArgoCDInstance) -> bool:
        """Create the admin password secret if it does not exist."""
        name = instance.name_with_suffix(CLUSTER_SECRET_SUFFIX)
        if await self.store.get_secret(name, instance.namespace) is not None:
            return False

        secret = build_secret(
            name,
            instance.namespace,
            {ADMIN_PASSWORD_KEY: self.factory.generate_password()},
        )
        return await self._create_owned(instance, secret)

    async def reconcile_ca_secret(self, instance: ArgoCDInstance) -> bool:
        """Create the self-signed CA if it does not exist."""
        name = instance.name_with_suffix(CA_SECRET_SUFFIX)
        if await self.store.get_secret(name, instance.namespace) is not None:
            return False

        cert_pem, key_pem = self.factory.generate_self_signed_ca(instance.name)
        secret = build_secret(
            name,
            instance.namespace,
            {
                TLS_CERT_KEY: cert_pem,
                CA_CERT_KEY: cert_pem,
                TLS_PRIVATE_KEY_KEY: key_pem,
            },
            secret_type=SECRET_TYPE_TLS,
        )
        return await self._create_owned(instance, secret)

    async def reconcile_tls_secret(self, instance: ArgoCDInstance) -> bool | StepResult:
        """Create the leaf certificate signed by the instance CA if it does not exist."""
        name = instance.name_with_suffix(TLS_SECRET_SUFFIX)
        if await self.store.get_secret(name, instance.namespace) is not None:
            return False

        ca_secret = await self.store.get_secret(
            instance.name_with_suffix(CA_SECRET_SUFFIX), instance.namespace
        )
        if ca_secret is None:
            return StepResult.deferred("tls-secret", "CA secret disappeared")

        cert_pem, key_pem = self.factory.generate_signed_leaf(
            common_name=name,
            organization=instance.namespace,
            dns_names=self.factory.leaf_dns_names(instance),
            ca_cert_pem=secret_bytes(ca_secret, TLS_CERT_KEY) or b"",
            ca_key_pem=secret_bytes(ca_secret, TLS_PRIVATE_KEY_KEY) or b"",
        )
        secret = build_secret(
            name,
            instance.namespace,
            {TLS_CERT_KEY: cert_pem, TLS_PRIVATE_KEY_KEY: key_pem},
            secret_type=SECRET_TYPE_TLS,
        )
        return await self._create_owned(instance, secret)

    async def reconcile_grafana_secret(
        self, instance: ArgoCDInstance
    ) -> bool | StepResult:
        """
        Keep the Grafana admin credentials in line with the cluster password.

        When the password changes the generated Grafana configuration is
        deleted so it is rendered again, and Grafana is restarted.
        """
        cluster_secret = await self.store.get_secret(
            instance.name_with_suffix(CLUSTER_SECRET_SUFFIX), instance.namespace
        )
        if cluster_secret is None:
            return StepResult.deferred("grafana-secret", "cluster secret disappeared")
        password = secret_bytes(cluster_secret, ADMIN_PASSWORD_KEY) or b""

        name = instance.name_with_suffix(GRAFANA_SECRET_SUFFIX)
        secret = await self.store.get_secret(name, instance.namespace)
        if secret is None:
            secret = build_secret(
                name,
                instance.namespace,
                {
                    GRAFANA_ADMIN_USERNAME_KEY: DEFAULT_GRAFANA_ADMIN_USERNAME,
                    GRAFANA_ADMIN_PASSWORD_KEY: password,
                    GRAFANA_SECRET_KEY: self.factory.generate_secret_key(),
                },
            )
            return await self._create_owned(instance, secret)

        if secret_bytes(secret, GRAFANA_ADMIN_PASSWORD_KEY) == password:
            return False

        logger.info(
            "Cluster secret changed, updating and reloading Grafana",
            extra={"secret_name": name},
        )
        set_secret_bytes(secret, GRAFANA_ADMIN_PASSWORD_KEY, password)
        await self.store.update_secret(secret)

        config_map = instance.name_with_suffix(GRAFANA_CONFIG_SUFFIX)
        if not await self.rollout.delete_config_map(config_map, instance.namespace):
            logger.info(f"Unable to locate {config_map}, not restarting Grafana")
            return True

        await self.rollout.restart_deployment(
            instance.name_with_suffix(GRAFANA_SUFFIX),
            instance.namespace,
            ROLLOUT_REASON_GRAFANA_PASSWORD,
        )
        return True


def build_secret_steps(
    store: ObjectStore,
    factory: CredentialFactory,
    rollout: RolloutTrigger,
) -> list[SecretStep]:
    """Build the ordered secret reconciliation table."""
    secrets = ClusterSecretReconciler(store, factory, rollout)
    permissions = ClusterPermissionsReconciler(store)
    argocd_secret = ArgoCDSecretReconciler(store, factory)

    return [
        SecretStep("cluster-secret", secrets.reconcile_cluster_secret),
        SecretStep("ca-secret", secrets.reconcile_ca_secret),
        SecretStep(
            "tls-secret", secrets.reconcile_tls_secret, requires=(CA_SECRET_SUFFIX,)
        ),
        SecretStep("cluster-permissions", permissions.reconcile),
        SecretStep(
            "grafana-secret",
            secrets.reconcile_grafana_secret,
            requires=(CLUSTER_SECRET_SUFFIX,),
            enabled=lambda instance: instance.spec.grafana.enabled,
        ),
        SecretStep(
            "argocd-secret",
            argocd_secret.reconcile,
            requires=(CLUSTER_SECRET_SUFFIX, TLS_SECRET_SUFFIX),
        ),
    ]
