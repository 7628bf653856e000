"""Unit tests for the composite argocd-secret bundle."""

import pytest

from argocd_operator.errors import HashError
from argocd_operator.services.argocd_secret import (
    ArgoCDSecretReconciler,
    normalize_password,
)
from argocd_operator.services.orchestrator import StepOutcome, StepResult
from argocd_operator.utils.kubernetes import secret_bytes
from tests.fixtures.argocd_resources import make_instance
from tests.utils.fake_store import make_secret, make_service_account

NS = "gitops"
DEX_SPEC = {"sso": {"provider": "dex"}}


@pytest.fixture
def sources(store):
    """Cluster and TLS secrets the bundle is derived from."""
    store.add(
        "Secret", make_secret("argocd-cluster", NS, {"admin.password": b"password"})
    )
    store.add(
        "Secret",
        make_secret(
            "argocd-tls",
            NS,
            {"tls.crt": b"CERT", "tls.key": b"KEY"},
            secret_type="kubernetes.io/tls",
        ),
    )
    return store


def add_dex_token(store, token=b"dex-token"):
    store.add(
        "ServiceAccount",
        make_service_account(
            "argocd-argocd-dex-server",
            NS,
            ["argocd-argocd-dex-server-dockercfg", "argocd-argocd-dex-server-token-x1"],
        ),
    )
    store.add(
        "Secret",
        make_secret("argocd-argocd-dex-server-token-x1", NS, {"token": token}),
    )


class TestNormalizePassword:
    """Test password normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [(b"pw\n", b"pw"), (b"pw\n\n", b"pw"), (b"pw", b"pw"), (None, b"")],
    )
    def test_strips_trailing_newlines(self, raw, expected):
        """Trailing newlines are removed; other characters are kept."""
        assert normalize_password(raw) == expected


class TestCreate:
    """Test creation of the bundle."""

    @pytest.mark.asyncio
    async def test_deferred_without_sources(self, store, factory, instance):
        """Missing sources defer the step."""
        result = await ArgoCDSecretReconciler(store, factory).reconcile(instance)

        assert isinstance(result, StepResult)
        assert result.outcome == StepOutcome.DEFERRED
        assert store.mutations == []

    @pytest.mark.asyncio
    async def test_creates_bundle(self, sources, factory, instance):
        """The bundle is created from the sources."""
        assert await ArgoCDSecretReconciler(sources, factory).reconcile(instance)

        bundle = sources.get("Secret", "argocd-secret", NS)
        assert factory.verify_password(
            b"password", secret_bytes(bundle, "admin.password")
        )
        assert secret_bytes(bundle, "tls.crt") == b"CERT"
        assert secret_bytes(bundle, "tls.key") == b"KEY"
        assert "dex.openshift.clientSecret" not in bundle.data

    @pytest.mark.asyncio
    async def test_dex_client_secret_included(self, sources, factory):
        """With Dex the service account token is copied."""
        add_dex_token(sources)
        instance = make_instance(DEX_SPEC)

        await ArgoCDSecretReconciler(sources, factory).reconcile(instance)

        bundle = sources.get("Secret", "argocd-secret", NS)
        assert secret_bytes(bundle, "dex.openshift.clientSecret") == b"dex-token"

    @pytest.mark.asyncio
    async def test_dex_token_unavailable_defers(self, sources, factory):
        """Creation waits for the Dex service account token."""
        instance = make_instance(DEX_SPEC)

        result = await ArgoCDSecretReconciler(sources, factory).reconcile(instance)

        assert result.outcome == StepOutcome.DEFERRED
        assert sources.get("Secret", "argocd-secret", NS) is None


async def converge(store, factory):
    await ArgoCDSecretReconciler(store, factory).reconcile(make_instance())
    store.clear_mutations()
    return store


class TestUpdateExisting:
    """Test repair of an existing bundle."""

    @pytest.mark.asyncio
    async def test_converged_bundle_not_written(self, sources, factory, instance):
        """Nothing is written when every field matches."""
        converged = await converge(sources, factory)
        changed = await ArgoCDSecretReconciler(converged, factory).reconcile(instance)

        assert changed is False
        assert converged.mutations == []

    @pytest.mark.asyncio
    async def test_trailing_newline_in_password_is_not_a_change(
        self, sources, factory, instance
    ):
        """A newline appended to the password by hand does not force a rehash."""
        converged = await converge(sources, factory)
        converged.add(
            "Secret",
            make_secret("argocd-cluster", NS, {"admin.password": b"password\n"}),
        )

        assert not await ArgoCDSecretReconciler(converged, factory).reconcile(instance)

    @pytest.mark.asyncio
    async def test_missing_session_key_is_regenerated(
        self, sources, factory, instance
    ):
        """A deleted session key is generated again."""
        converged = await converge(sources, factory)
        bundle = converged.get("Secret", "argocd-secret", NS)
        del bundle.data["server.secretkey"]

        assert await ArgoCDSecretReconciler(converged, factory).reconcile(instance)

        bundle = converged.get("Secret", "argocd-secret", NS)
        assert len(secret_bytes(bundle, "server.secretkey")) == 20

    @pytest.mark.asyncio
    async def test_password_change_updates_hash_and_mtime(
        self, sources, factory, instance
    ):
        """A new password is rehashed and its modification time refreshed."""
        converged = await converge(sources, factory)
        before = converged.get("Secret", "argocd-secret", NS)
        converged.add(
            "Secret", make_secret("argocd-cluster", NS, {"admin.password": b"changed"})
        )

        assert await ArgoCDSecretReconciler(converged, factory).reconcile(instance)

        after = converged.get("Secret", "argocd-secret", NS)
        assert factory.verify_password(b"changed", secret_bytes(after, "admin.password"))
        assert secret_bytes(after, "server.secretkey") == secret_bytes(
            before, "server.secretkey"
        )
        assert converged.mutations == [("update", "Secret", "argocd-secret")]

    @pytest.mark.asyncio
    async def test_overlong_password_change_fails_the_pass(
        self, sources, factory, instance
    ):
        """A password bcrypt cannot hash whole is an error, not a silent no-op."""
        converged = await converge(sources, factory)
        converged.add(
            "Secret",
            make_secret("argocd-cluster", NS, {"admin.password": b"x" * 80 + b"changed"}),
        )

        with pytest.raises(HashError):
            await ArgoCDSecretReconciler(converged, factory).reconcile(instance)

        assert converged.mutations == []
        stored = converged.get("Secret", "argocd-secret", NS)
        assert factory.verify_password(b"password", secret_bytes(stored, "admin.password"))

    @pytest.mark.asyncio
    async def test_tls_change_replaces_both_fields(self, sources, factory, instance):
        """A changed key replaces the certificate and the key together."""
        converged = await converge(sources, factory)
        converged.add(
            "Secret",
            make_secret(
                "argocd-tls",
                NS,
                {"tls.crt": b"CERT", "tls.key": b"NEWKEY"},
                secret_type="kubernetes.io/tls",
            ),
        )

        assert await ArgoCDSecretReconciler(converged, factory).reconcile(instance)

        bundle = converged.get("Secret", "argocd-secret", NS)
        assert secret_bytes(bundle, "tls.crt") == b"CERT"
        assert secret_bytes(bundle, "tls.key") == b"NEWKEY"

    @pytest.mark.asyncio
    async def test_dex_enabled_later(self, sources, factory):
        """Enabling Dex on an existing bundle adds the client secret."""
        converged = await converge(sources, factory)
        add_dex_token(converged)
        instance = make_instance(DEX_SPEC)

        assert await ArgoCDSecretReconciler(converged, factory).reconcile(instance)

        bundle = converged.get("Secret", "argocd-secret", NS)
        assert secret_bytes(bundle, "dex.openshift.clientSecret") == b"dex-token"

    @pytest.mark.asyncio
    async def test_dex_unavailable_skips_only_sso_check(
        self, sources, factory
    ):
        """Without a Dex token the other fields are still repaired."""
        converged = await converge(sources, factory)
        converged.add(
            "Secret", make_secret("argocd-cluster", NS, {"admin.password": b"changed"})
        )
        instance = make_instance(DEX_SPEC)

        result = await ArgoCDSecretReconciler(converged, factory).reconcile(instance)

        assert result is True
        bundle = converged.get("Secret", "argocd-secret", NS)
        assert factory.verify_password(b"changed", secret_bytes(bundle, "admin.password"))
        assert "dex.openshift.clientSecret" not in bundle.data


class TestDexClientSecret:
    """Test lookup of the Dex OAuth client secret."""

    @pytest.mark.asyncio
    async def test_missing_service_account(self, store, factory):
        """Returns None without the service account."""
        reconciler = ArgoCDSecretReconciler(store, factory)
        assert await reconciler.get_dex_client_secret(make_instance(DEX_SPEC)) is None

    @pytest.mark.asyncio
    async def test_first_token_secret_is_used(self, store, factory):
        """The first referenced secret with 'token' in its name is read."""
        add_dex_token(store, b"abc")
        reconciler = ArgoCDSecretReconciler(store, factory)

        assert await reconciler.get_dex_client_secret(make_instance(DEX_SPEC)) == b"abc"

    @pytest.mark.asyncio
    async def test_no_token_reference(self, store, factory):
        """Returns None when no referenced secret looks like a token."""
        store.add(
            "ServiceAccount",
            make_service_account("argocd-argocd-dex-server", NS, ["dockercfg"]),
        )
        reconciler = ArgoCDSecretReconciler(store, factory)

        assert await reconciler.get_dex_client_secret(make_instance(DEX_SPEC)) is None
