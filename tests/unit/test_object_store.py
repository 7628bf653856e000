"""Unit tests for the Kubernetes object store and secret helpers."""

import base64
from unittest.mock import MagicMock, patch

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from argocd_operator.errors import (
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ObjectStoreError,
)
from argocd_operator.utils.kubernetes import (
    ObjectStore,
    build_secret,
    secret_bytes,
    set_owner_reference,
    set_secret_bytes,
)
from tests.fixtures.argocd_resources import make_instance


class TestObjectStoreInit:
    """Test ObjectStore initialization."""

    def test_init_with_client(self):
        """Should keep the provided client."""
        mock_client = MagicMock()
        store = ObjectStore(k8s_client=mock_client)
        assert store.k8s_client is mock_client

    def test_core_property_creates_client_once(self):
        """Should create CoreV1Api client on first access only."""
        store = ObjectStore()

        with patch("argocd_operator.utils.kubernetes.client.CoreV1Api") as mock_core:
            first = store.core
            second = store.core
            mock_core.assert_called_once()
            assert first is second


class TestSecrets:
    """Test secret access."""

    @pytest.mark.asyncio
    async def test_get_existing_secret(self):
        """Should return the secret read from the API."""
        expected = client.V1Secret(metadata=client.V1ObjectMeta(name="s", namespace="ns"))
        store = ObjectStore()
        store._core = MagicMock()
        store._core.read_namespaced_secret.return_value = expected

        assert await store.get_secret("s", "ns") is expected
        store._core.read_namespaced_secret.assert_called_once_with(
            name="s", namespace="ns"
        )

    @pytest.mark.asyncio
    async def test_get_missing_secret_returns_none(self):
        """Should return None for 404."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.read_namespaced_secret.side_effect = ApiException(status=404)

        assert await store.get_secret("missing", "ns") is None

    @pytest.mark.asyncio
    async def test_get_secret_server_error_is_retryable(self):
        """Should raise a retryable ObjectStoreError on 5xx."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.read_namespaced_secret.side_effect = ApiException(
            status=500, reason="Internal Server Error"
        )

        with pytest.raises(ObjectStoreError) as exc_info:
            await store.get_secret("s", "ns")
        assert exc_info.value.retryable is True

    @pytest.mark.asyncio
    async def test_get_secret_forbidden_is_permanent(self):
        """Should raise a non-retryable error when RBAC denies access."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.read_namespaced_secret.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        with pytest.raises(ObjectStoreError) as exc_info:
            await store.get_secret("s", "ns")
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_create_secret(self):
        """Should create the secret and report it."""
        store = ObjectStore()
        store._core = MagicMock()
        secret = build_secret("s", "ns", {"k": b"v"})

        assert await store.create_secret(secret) is True
        store._core.create_namespaced_secret.assert_called_once_with(
            namespace="ns", body=secret
        )

    @pytest.mark.asyncio
    async def test_create_existing_secret_is_not_an_error(self):
        """Should treat AlreadyExists as success without creating."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.create_namespaced_secret.side_effect = ApiException(
            status=409, reason="AlreadyExists"
        )

        assert await store.create_secret(build_secret("s", "ns", {})) is False

    @pytest.mark.asyncio
    async def test_update_conflict_raises_conflict_error(self):
        """Should map a stale resource version onto ConflictError."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.replace_namespaced_secret.side_effect = ApiException(
            status=409, reason="Conflict"
        )

        with pytest.raises(ConflictError):
            await store.update_secret(build_secret("s", "ns", {}))

    @pytest.mark.asyncio
    async def test_update_missing_raises_not_found(self):
        """Should map a vanished secret onto NotFoundError."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.replace_namespaced_secret.side_effect = ApiException(status=404)

        with pytest.raises(NotFoundError):
            await store.update_secret(build_secret("s", "ns", {}))

    @pytest.mark.asyncio
    async def test_list_secrets_passes_selector(self):
        """Should forward the label selector."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.list_namespaced_secret.return_value = client.V1SecretList(items=[])

        assert await store.list_secrets("ns", "a=b") == []
        store._core.list_namespaced_secret.assert_called_once_with(
            namespace="ns", label_selector="a=b"
        )


class TestWorkloadsAndConfigMaps:
    """Test workload and config map access."""

    @pytest.mark.asyncio
    async def test_delete_missing_config_map_returns_false(self):
        """Should report a missing config map instead of raising."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.delete_namespaced_config_map.side_effect = ApiException(status=404)

        assert await store.delete_config_map("cm", "ns") is False

    @pytest.mark.asyncio
    async def test_get_missing_deployment_returns_none(self):
        """Should return None for a missing deployment."""
        store = ObjectStore()
        store._apps = MagicMock()
        store._apps.read_namespaced_deployment.side_effect = ApiException(status=404)

        assert await store.get_deployment("d", "ns") is None

    @pytest.mark.asyncio
    async def test_delete_stateful_set(self):
        """Should delete the stateful set and report it."""
        store = ObjectStore()
        store._apps = MagicMock()

        assert await store.delete_stateful_set("sts", "ns") is True
        store._apps.delete_namespaced_stateful_set.assert_called_once_with(
            name="sts", namespace="ns"
        )

    @pytest.mark.asyncio
    async def test_list_namespace_names(self):
        """Should return only the namespace names."""
        store = ObjectStore()
        store._core = MagicMock()
        store._core.list_namespace.return_value = client.V1NamespaceList(
            items=[
                client.V1Namespace(metadata=client.V1ObjectMeta(name="a")),
                client.V1Namespace(metadata=client.V1ObjectMeta(name="b")),
            ]
        )

        assert await store.list_namespace_names("x=y") == ["a", "b"]


class TestUpdateStatus:
    """Test status sub-resource patching."""

    @pytest.mark.asyncio
    async def test_patches_status_subresource(self):
        """Should merge fields into the ArgoCD status."""
        store = ObjectStore()
        store._custom = MagicMock()

        await store.update_status(make_instance(), {"repoTLSChecksum": "abc"})

        store._custom.patch_namespaced_custom_object_status.assert_called_once_with(
            group="argoproj.io",
            version="v1beta1",
            namespace="gitops",
            plural="argocds",
            name="argocd",
            body={"status": {"repoTLSChecksum": "abc"}},
        )

    @pytest.mark.asyncio
    async def test_status_conflict(self):
        """Should surface conflicts on the status write."""
        store = ObjectStore()
        store._custom = MagicMock()
        store._custom.patch_namespaced_custom_object_status.side_effect = ApiException(
            status=409, reason="AlreadyExists"
        )

        with pytest.raises(AlreadyExistsError):
            await store.update_status(make_instance(), {})


class TestSecretHelpers:
    """Test secret building and decoding helpers."""

    def test_build_secret_encodes_and_labels(self):
        """Should base64 encode values and apply standard labels."""
        secret = build_secret("argocd-cluster", "ns", {"admin.password": b"pw"})

        assert secret.data["admin.password"] == base64.b64encode(b"pw").decode()
        assert secret.type == "Opaque"
        assert secret.metadata.labels["app.kubernetes.io/name"] == "argocd-cluster"
        assert secret.metadata.labels["app.kubernetes.io/part-of"] == "argocd"

    def test_build_secret_extra_labels(self):
        """Should merge extra labels over the defaults."""
        secret = build_secret("s", "ns", {}, labels={"extra": "yes"})
        assert secret.metadata.labels["extra"] == "yes"

    def test_secret_bytes(self):
        """Should decode a single field and return None when absent."""
        secret = build_secret("s", "ns", {"k": "value"})

        assert secret_bytes(secret, "k") == b"value"
        assert secret_bytes(secret, "missing") is None
        assert secret_bytes(None, "k") is None

    def test_set_secret_bytes_on_empty_secret(self):
        """Should create the data map when needed."""
        secret = client.V1Secret(metadata=client.V1ObjectMeta(name="s"))
        set_secret_bytes(secret, "k", b"v")
        assert secret_bytes(secret, "k") == b"v"
        assert list(secret.data) == ["k"]


class TestOwnerReference:
    """Test controller owner references."""

    def test_sets_controller_reference(self):
        """Should add a controlling, deletion-blocking owner reference."""
        secret = build_secret("s", "ns", {})
        set_owner_reference(secret, "argocd", "uid-1", "ArgoCD", "argoproj.io/v1beta1")

        (ref,) = secret.metadata.owner_references
        assert ref.kind == "ArgoCD"
        assert ref.name == "argocd"
        assert ref.controller is True
        assert ref.block_owner_deletion is True

    def test_does_not_duplicate_reference(self):
        """Should not add the same owner twice."""
        secret = build_secret("s", "ns", {})
        for _ in range(2):
            set_owner_reference(
                secret, "argocd", "uid-1", "ArgoCD", "argoproj.io/v1beta1"
            )
        assert len(secret.metadata.owner_references) == 1
