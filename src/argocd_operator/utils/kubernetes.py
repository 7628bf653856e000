"""
Kubernetes utilities for the Argo CD operator.

This module provides the object store used by every reconciler along with
helpers for building and reading secrets.

Key functionality:
- Kubernetes client management and configuration
- Secret, config map, workload and status access through ``ObjectStore``
- Base64 secret data encoding and decoding
- Standard labels and controller owner references
"""

import base64
import logging
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from argocd_operator.constants import (
    APP_NAME_LABEL_KEY,
    ARGOCD_GROUP,
    ARGOCD_PLURAL,
    ARGOCD_VERSION,
    MANAGED_BY_LABEL_KEY,
    MANAGED_BY_LABEL_VALUE,
    PART_OF_LABEL_KEY,
    PART_OF_LABEL_VALUE,
    SECRET_TYPE_OPAQUE,
)
from argocd_operator.errors import store_error_from_api_exception
from argocd_operator.models.argocd import ArgoCDInstance

logger = logging.getLogger(__name__)


def load_kubernetes_config() -> str:
    """
    Load the in-cluster configuration, or the local kubeconfig outside a pod.

    Returns:
        Which configuration was loaded ("in-cluster" or "kubeconfig")
    """
    try:
        config.load_incluster_config()
        return "in-cluster"
    except config.ConfigException:
        pass
    try:
        config.load_kube_config()
    except config.ConfigException as e:
        logger.error(f"Failed to load Kubernetes configuration: {e}")
        raise
    return "kubeconfig"


def get_kubernetes_client() -> client.ApiClient:
    """Get an API client, loading the configuration first."""
    source = load_kubernetes_config()
    logger.debug(f"Using {source} Kubernetes configuration")
    return client.ApiClient()


def default_labels(name: str) -> dict[str, str]:
    """Labels carried by every object the operator creates."""
    return {
        APP_NAME_LABEL_KEY: name,
        PART_OF_LABEL_KEY: PART_OF_LABEL_VALUE,
        MANAGED_BY_LABEL_KEY: MANAGED_BY_LABEL_VALUE,
    }


def encode_value(value: bytes | str) -> str:
    if isinstance(value, str):
        value = value.encode()
    return base64.b64encode(value).decode()


def build_secret(
    name: str,
    namespace: str,
    data: dict[str, bytes | str],
    secret_type: str = SECRET_TYPE_OPAQUE,
    labels: dict[str, str] | None = None,
) -> client.V1Secret:
    """
    Build a secret object with the operator's standard labels.

    Args:
        name: Secret name
        namespace: Secret namespace
        data: Raw (unencoded) field values
        secret_type: Kubernetes secret type
        labels: Extra labels merged over the defaults

    Returns:
        Secret object ready to be created
    """
    all_labels = default_labels(name)
    if labels:
        all_labels.update(labels)

    return client.V1Secret(
        api_version="v1",
        kind="Secret",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=namespace,
            labels=all_labels,
        ),
        type=secret_type,
        data={key: encode_value(value) for key, value in data.items()},
    )


def secret_bytes(secret: client.V1Secret | None, key: str) -> bytes | None:
    """Return the decoded value of one secret field, or None if absent."""
    if secret is None or not secret.data:
        return None
    value = secret.data.get(key)
    if value is None:
        return None
    return base64.b64decode(value)


def set_secret_bytes(secret: client.V1Secret, key: str, value: bytes | str) -> None:
    if secret.data is None:
        secret.data = {}
    secret.data[key] = encode_value(value)


def set_owner_reference(
    resource: Any,
    owner_name: str,
    owner_uid: str,
    owner_kind: str,
    api_version: str,
) -> None:
    """
    Set owner reference for garbage collection.

    Args:
        resource: Kubernetes resource to set owner reference on
        owner_name: Name of the owner resource
        owner_uid: UID of the owner resource
        owner_kind: Kind of the owner resource
        api_version: API version of the owner resource
    """
    if (
        not hasattr(resource.metadata, "owner_references")
        or resource.metadata.owner_references is None
    ):
        resource.metadata.owner_references = []

    for existing in resource.metadata.owner_references:
        if existing.uid == owner_uid:
            return

    owner_ref = client.V1OwnerReference(
        api_version=api_version,
        kind=owner_kind,
        name=owner_name,
        uid=owner_uid,
        controller=True,
        block_owner_deletion=True,
    )

    resource.metadata.owner_references.append(owner_ref)


class ObjectStore:
    """
    Namespaced object access for the reconcilers.

    Reads return None when the object does not exist. Every other API
    failure is raised as an ``ObjectStoreError`` subclass.
    """

    def __init__(self, k8s_client: client.ApiClient | None = None):
        """
        Initialize object store.

        Args:
            k8s_client: Optional Kubernetes API client
        """
        self.k8s_client = k8s_client
        self._core: client.CoreV1Api | None = None
        self._apps: client.AppsV1Api | None = None
        self._custom: client.CustomObjectsApi | None = None

    @property
    def core(self) -> client.CoreV1Api:
        """Get CoreV1Api client."""
        if self._core is None:
            self._core = client.CoreV1Api(self.k8s_client)
        return self._core

    @property
    def apps(self) -> client.AppsV1Api:
        """Get AppsV1Api client."""
        if self._apps is None:
            self._apps = client.AppsV1Api(self.k8s_client)
        return self._apps

    @property
    def custom(self) -> client.CustomObjectsApi:
        """Get CustomObjectsApi client."""
        if self._custom is None:
            self._custom = client.CustomObjectsApi(self.k8s_client)
        return self._custom

    # Secrets

    async def get_secret(self, name: str, namespace: str) -> client.V1Secret | None:
        """
        Retrieve a secret.

        Raises:
            ObjectStoreError: If read fails for reasons other than 404
        """
        try:
            return self.core.read_namespaced_secret(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise store_error_from_api_exception(
                f"Failed to read secret {namespace}/{name}", e
            ) from e

    async def list_secrets(
        self, namespace: str, label_selector: str | None = None
    ) -> list[client.V1Secret]:
        try:
            result = self.core.list_namespaced_secret(
                namespace=namespace, label_selector=label_selector
            )
        except ApiException as e:
            raise store_error_from_api_exception(
                f"Failed to list secrets in {namespace}", e
            ) from e
        return list(result.items or [])

    async def create_secret(self, secret: client.V1Secret) -> bool:
        """
        Create a secret.

        Returns:
            True if the secret was created, False if it already existed
        """
        namespace = secret.metadata.namespace
        name = secret.metadata.name
        try:
            self.core.create_namespaced_secret(namespace=namespace, body=secret)
        except ApiException as e:
            if e.status == 409:
                logger.info(f"Secret {namespace}/{name} already exists")
                return False
            raise store_error_from_api_exception(
                f"Failed to create secret {namespace}/{name}", e
            ) from e
        logger.info(f"Created secret {namespace}/{name}")
        return True

    async def update_secret(self, secret: client.V1Secret) -> client.V1Secret:
        """
        Replace a secret.

        Raises:
            ConflictError: If the secret changed since it was read
        """
        namespace = secret.metadata.namespace
        name = secret.metadata.name
        try:
            updated = self.core.replace_namespaced_secret(
                name=name, namespace=namespace, body=secret
            )
        except ApiException as e:
            raise store_error_from_api_exception(
                f"Failed to update secret {namespace}/{name}", e
            ) from e
        logger.info(f"Updated secret {namespace}/{name}")
        return updated

    # Namespaces and services

    async def list_namespace_names(self, label_selector: str) -> list[str]:
        try:
            result = self.core.list_namespace(label_selector=label_selector)
        except ApiException as e:
            raise store_error_from_api_exception(
                f"Failed to list namespaces with selector {label_selector}", e
            ) from e
        return [ns.metadata.name for ns in result.items or []]

    async def get_service(self, name: str, namespace: str) -> client.V1Service | None:
        try:
            return self.core.read_namespaced_service(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise store_error_from_api_exception(
                f"Failed to read service {namespace}/{name}", e
            ) from e

    async def update_service(self, service: client.V1Service) -> client.V1Service:
        namespace = service.metadata.namespace
        name = service.metadata.name
        try:
            return self.core.replace_namespaced_service(
                name=name, namespace=namespace, body=service
            )
        except ApiException as e:
            raise store_error_from_api_exception(
                f"Failed to update service {namespace}/{name}", e
            ) from e

    async def get_service_account(
        self, name: str, namespace: str
    ) -> client.V1ServiceAccount | None:
        try:
            return self.core.read_namespaced_service_account(
                name=name, namespace=namespace
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise store_error_from_api_exception(
                f"Failed to read service account {namespace}/{name}", e
            ) from e

    # Config maps

    async def delete_config_map(self, name: str, namespace: str) -> bool:
        """
        Delete a config map.

        Returns:
            True if deleted, False if it did not exist
        """
        try:
            self.core.delete_namespaced_config_map(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise store_error_from_api_exception(
                f"Failed to delete config map {namespace}/{name}", e
            ) from e
        logger.info(f"Deleted config map {namespace}/{name}")
        return True

    # Workloads

    async def get_deployment(
        self, name: str, namespace: str
    ) -> client.V1Deployment | None:
        try:
            return self.apps.read_namespaced_deployment(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return None
            raise store_error_from_api_exception(
                f"Failed to read deployment {namespace}/{name}", e
            ) from e

    async def update_deployment(
        self, deployment: client.V1Deployment
    ) -> client.V1Deployment:
        namespace = deployment.metadata.namespace
        name = deployment.metadata.name
        try:
            return self.apps.replace_namespaced_deployment(
                name=name, namespace=namespace, body=deployment
            )
        except ApiException as e:
            raise store_error_from_api_exception(
                f"Failed to update deployment {namespace}/{name}", e
            ) from e

    async def get_stateful_set(
        self, name: str, namespace: str
    ) -> client.V1StatefulSet | None:
        try:
            return self.apps.read_namespaced_stateful_set(
                name=name, namespace=namespace
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise store_error_from_api_exception(
                f"Failed to read stateful set {namespace}/{name}", e
            ) from e

    async def update_stateful_set(
        self, stateful_set: client.V1StatefulSet
    ) -> client.V1StatefulSet:
        namespace = stateful_set.metadata.namespace
        name = stateful_set.metadata.name
        try:
            return self.apps.replace_namespaced_stateful_set(
                name=name, namespace=namespace, body=stateful_set
            )
        except ApiException as e:
            raise store_error_from_api_exception(
                f"Failed to update stateful set {namespace}/{name}", e
            ) from e

    async def delete_stateful_set(self, name: str, namespace: str) -> bool:
        try:
            self.apps.delete_namespaced_stateful_set(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                return False
            raise store_error_from_api_exception(
                f"Failed to delete stateful set {namespace}/{name}", e
            ) from e
        logger.info(f"Deleted stateful set {namespace}/{name}")
        return True

    # ArgoCD instances

    async def update_status(
        self, instance: ArgoCDInstance, fields: dict[str, Any]
    ) -> None:
        """
        Merge fields into the status sub-resource of an ArgoCD instance.

        Args:
            instance: Instance whose status is patched
            fields: Status fields keyed by their CRD (camelCase) names
        """
        try:
            self.custom.patch_namespaced_custom_object_status(
                group=ARGOCD_GROUP,
                version=ARGOCD_VERSION,
                namespace=instance.namespace,
                plural=ARGOCD_PLURAL,
                name=instance.name,
                body={"status": fields},
            )
        except ApiException as e:
            raise store_error_from_api_exception(
                f"Failed to update status of {instance.namespace}/{instance.name}", e
            ) from e

    def set_owner(self, child: Any, instance: ArgoCDInstance) -> None:
        """Make the instance the controlling owner of child."""
        set_owner_reference(
            child,
            owner_name=instance.name,
            owner_uid=instance.uid,
            owner_kind=instance.kind,
            api_version=instance.api_version,
        )
