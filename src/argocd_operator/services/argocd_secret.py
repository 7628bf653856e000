"""
The composite ``argocd-secret`` credential bundle.

The bundle is what the Argo CD server actually reads: the bcrypt hash of
the cluster admin password, the session signing key, a copy of the leaf TLS
pair and, with Dex SSO, the OAuth client secret of the Dex service account.
It is derived from the cluster and TLS secrets and is brought back in line
with them field by field.
"""

import logging
from datetime import UTC, datetime

from kubernetes import client

from argocd_operator.constants import (
    ADMIN_PASSWORD_KEY,
    ADMIN_PASSWORD_MTIME_KEY,
    ARGOCD_SECRET_NAME,
    CLUSTER_SECRET_SUFFIX,
    DEX_CLIENT_SECRET_KEY,
    DEX_SERVICE_ACCOUNT_SUFFIX,
    SERVER_SECRET_KEY,
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

from .orchestrator import StepResult

logger = logging.getLogger(__name__)

STEP_NAME = "argocd-secret"
DEX_TOKEN_KEY = "token"


def now_rfc3339() -> str:
    return datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def normalize_password(password: bytes | None) -> bytes:
    """Strip trailing newlines left behind by hand-edited secrets."""
    return (password or b"").rstrip(b"\n")


class ArgoCDSecretReconciler:
    """Creates and repairs the composite credential bundle."""

    def __init__(self, store: ObjectStore, factory: CredentialFactory):
        self.store = store
        self.factory = factory

    async def get_dex_client_secret(self, instance: ArgoCDInstance) -> bytes | None:
        """
        Read the OAuth client secret of the Dex service account.

        Returns:
            The token, or None if the service account or its token secret
            does not exist yet
        """
        sa_name = instance.name_with_suffix(DEX_SERVICE_ACCOUNT_SUFFIX)
        service_account = await self.store.get_service_account(
            sa_name, instance.namespace
        )
        if service_account is None:
            logger.info(f"Dex service account {instance.namespace}/{sa_name} not found")
            return None

        for ref in service_account.secrets or []:
            if ref.name and "token" in ref.name:
                token_secret = await self.store.get_secret(ref.name, instance.namespace)
                return secret_bytes(token_secret, DEX_TOKEN_KEY)

        logger.info(f"No token secret referenced by service account {sa_name}")
        return None

    async def reconcile(self, instance: ArgoCDInstance) -> bool | StepResult:
        """
        Ensure the bundle exists and matches its sources.

        Returns:
            Whether the bundle was written, or a deferral result
        """
        cluster_secret = await self.store.get_secret(
            instance.name_with_suffix(CLUSTER_SECRET_SUFFIX), instance.namespace
        )
        tls_secret = await self.store.get_secret(
            instance.name_with_suffix(TLS_SECRET_SUFFIX), instance.namespace
        )
        if cluster_secret is None or tls_secret is None:
            return StepResult.deferred(STEP_NAME, "cluster or TLS secret disappeared")

        existing = await self.store.get_secret(ARGOCD_SECRET_NAME, instance.namespace)
        if existing is not None:
            return await self.update_existing(
                instance, existing, cluster_secret, tls_secret
            )

        return await self.create(instance, cluster_secret, tls_secret)

    async def create(
        self,
        instance: ArgoCDInstance,
        cluster_secret: client.V1Secret,
        tls_secret: client.V1Secret,
    ) -> bool | StepResult:
        password = normalize_password(secret_bytes(cluster_secret, ADMIN_PASSWORD_KEY))
        data: dict[str, bytes | str] = {
            ADMIN_PASSWORD_KEY: self.factory.hash_password(password),
            ADMIN_PASSWORD_MTIME_KEY: now_rfc3339(),
            SERVER_SECRET_KEY: self.factory.generate_session_key(),
            TLS_CERT_KEY: secret_bytes(tls_secret, TLS_CERT_KEY) or b"",
            TLS_PRIVATE_KEY_KEY: secret_bytes(tls_secret, TLS_PRIVATE_KEY_KEY) or b"",
        }

        if instance.spec.dex_enabled:
            client_secret = await self.get_dex_client_secret(instance)
            if client_secret is None:
                return StepResult.deferred(
                    STEP_NAME, "Dex service account token not available"
                )
            data[DEX_CLIENT_SECRET_KEY] = client_secret

        secret = build_secret(ARGOCD_SECRET_NAME, instance.namespace, data)
        self.store.set_owner(secret, instance)
        return await self.store.create_secret(secret)

    async def update_existing(
        self,
        instance: ArgoCDInstance,
        secret: client.V1Secret,
        cluster_secret: client.V1Secret,
        tls_secret: client.V1Secret,
    ) -> bool:
        """
        Bring an existing bundle in line with its sources.

        Each field is checked independently and the secret is written once,
        only if at least one field changed.

        Returns:
            True if the secret was updated
        """
        changed = False

        if secret_bytes(secret, SERVER_SECRET_KEY) is None:
            set_secret_bytes(
                secret, SERVER_SECRET_KEY, self.factory.generate_session_key()
            )
            changed = True

        password = secret_bytes(cluster_secret, ADMIN_PASSWORD_KEY)
        if password is not None:
            password = normalize_password(password)
            if not self.factory.verify_password(
                password, secret_bytes(secret, ADMIN_PASSWORD_KEY)
            ):
                logger.info("Admin password has changed")
                set_secret_bytes(
                    secret, ADMIN_PASSWORD_KEY, self.factory.hash_password(password)
                )
                set_secret_bytes(secret, ADMIN_PASSWORD_MTIME_KEY, now_rfc3339())
                changed = True

        tls_keys = (TLS_CERT_KEY, TLS_PRIVATE_KEY_KEY)
        expected_tls = {key: secret_bytes(tls_secret, key) or b"" for key in tls_keys}
        if any((secret_bytes(secret, key) or b"") != expected_tls[key] for key in tls_keys):
            logger.info("TLS certificate has changed")
            for key, value in expected_tls.items():
                set_secret_bytes(secret, key, value)
            changed = True

        if instance.spec.dex_enabled:
            client_secret = await self.get_dex_client_secret(instance)
            if client_secret is None:
                logger.info("Dex client secret not available yet, skipping SSO check")
            elif secret_bytes(secret, DEX_CLIENT_SECRET_KEY) != client_secret:
                set_secret_bytes(secret, DEX_CLIENT_SECRET_KEY, client_secret)
                changed = True

        if changed:
            logger.info(
                f"Updating secret {instance.namespace}/{ARGOCD_SECRET_NAME}",
                extra={"secret_name": ARGOCD_SECRET_NAME},
            )
            await self.store.update_secret(secret)

        return changed
