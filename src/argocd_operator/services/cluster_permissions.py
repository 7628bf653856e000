"""
Cluster permissions descriptor for namespace-scoped instances.

Argo CD reads cluster secrets (label ``argocd.argoproj.io/secret-type=cluster``)
to learn which clusters and namespaces it may manage. A namespace-scoped
instance gets an in-cluster descriptor listing its own namespace plus every
namespace labelled as managed by it. Instances in the cluster-config
allow-list manage the whole cluster, so their descriptor carries no
namespace list.
"""

import json
import logging

from kubernetes import client

from argocd_operator.constants import (
    CLUSTER_CONFIG_ALL_NAMESPACES,
    CLUSTER_PERMISSIONS_SECRET_SUFFIX,
    DEFAULT_CLUSTER_NAME,
    DEFAULT_CLUSTER_SERVER,
    NAMESPACE_MANAGED_BY_LABEL_KEY,
    SECRET_TYPE_CLUSTER,
    SECRET_TYPE_LABEL_KEY,
)
from argocd_operator.models.argocd import ArgoCDInstance
from argocd_operator.settings import cluster_config_namespaces
from argocd_operator.utils.kubernetes import (
    ObjectStore,
    build_secret,
    secret_bytes,
    set_secret_bytes,
)

logger = logging.getLogger(__name__)

NAMESPACES_KEY = "namespaces"
SERVER_KEY = "server"

CLUSTER_TLS_CONFIG = json.dumps({"tlsClientConfig": {"insecure": False}})


def allowed_namespace(namespace: str, allow_list: str | None) -> bool:
    """
    Check whether a namespace is in a comma-separated allow-list.

    ``*`` allows every namespace. Entries are compared after trimming.
    """
    if not allow_list:
        return False
    for entry in allow_list.split(","):
        entry = entry.strip()
        if entry == CLUSTER_CONFIG_ALL_NAMESPACES or entry == namespace:
            return True
    return False


def merge_namespaces(existing: str, required: list[str]) -> str:
    """
    Merge a comma-joined namespace list with the required namespaces.

    Returns the sorted, deduplicated union without empty entries.
    """
    merged = {ns.strip() for ns in existing.split(",")}
    merged.update(ns.strip() for ns in required)
    merged.discard("")
    return ",".join(sorted(merged))


class ClusterPermissionsReconciler:
    """Maintains the in-cluster descriptor of an instance."""

    def __init__(self, store: ObjectStore):
        self.store = store

    async def managed_namespaces(self, instance: ArgoCDInstance) -> list[str]:
        """Sorted namespaces managed by the instance, its own included."""
        names = await self.store.list_namespace_names(
            f"{NAMESPACE_MANAGED_BY_LABEL_KEY}={instance.namespace}"
        )
        if instance.namespace not in names:
            names.append(instance.namespace)
        return sorted(names)

    def _new_descriptor(
        self, instance: ArgoCDInstance, namespaces: list[str]
    ) -> client.V1Secret:
        secret = build_secret(
            name=instance.name_with_suffix(CLUSTER_PERMISSIONS_SECRET_SUFFIX),
            namespace=instance.namespace,
            data={
                "config": CLUSTER_TLS_CONFIG,
                "name": DEFAULT_CLUSTER_NAME,
                SERVER_KEY: DEFAULT_CLUSTER_SERVER,
                NAMESPACES_KEY: ",".join(namespaces),
            },
            labels={SECRET_TYPE_LABEL_KEY: SECRET_TYPE_CLUSTER},
        )
        self.store.set_owner(secret, instance)
        return secret

    async def reconcile(self, instance: ArgoCDInstance) -> bool:
        """
        Create or refresh the descriptor.

        Returns:
            True if a secret was created or updated
        """
        namespaces = await self.managed_namespaces(instance)
        cluster_config_instance = allowed_namespace(
            instance.namespace, cluster_config_namespaces()
        )

        existing = await self.store.list_secrets(
            instance.namespace, f"{SECRET_TYPE_LABEL_KEY}={SECRET_TYPE_CLUSTER}"
        )
        for secret in existing:
            server = secret_bytes(secret, SERVER_KEY)
            if server is None or server.decode() != DEFAULT_CLUSTER_SERVER:
                continue

            current = secret_bytes(secret, NAMESPACES_KEY)
            if cluster_config_instance:
                if current is None:
                    return False
                del secret.data[NAMESPACES_KEY]
            else:
                current_value = current.decode() if current is not None else ""
                merged = merge_namespaces(current_value, namespaces)
                if current is not None and merged == current_value:
                    return False
                set_secret_bytes(secret, NAMESPACES_KEY, merged)

            logger.info(
                f"Updating cluster permissions in secret "
                f"{instance.namespace}/{secret.metadata.name}",
                extra={"secret_name": secret.metadata.name},
            )
            await self.store.update_secret(secret)
            return True

        if cluster_config_instance:
            return False

        return await self.store.create_secret(
            self._new_descriptor(instance, namespaces)
        )
