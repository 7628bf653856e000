"""
Pydantic models for ArgoCD instance resources.

Only the parts of the ArgoCD custom resource that drive secret and
certificate reconciliation are modelled here. The CRD carries many more
fields owned by other reconcilers; those are ignored on validation.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from argocd_operator.constants import (
    ARGOCD_API_VERSION,
    ARGOCD_KIND,
    AUTO_TLS_OPENSHIFT,
    GRAFANA_SUFFIX,
    PHASE_PENDING,
    PROMETHEUS_SUFFIX,
    SSO_PROVIDER_DEX,
)


class ArgoCDSSOSpec(BaseModel):
    """Single sign-on configuration."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    provider: str = Field("", description="SSO provider (dex, keycloak)")

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, v):
        return (v or "").lower()


class ArgoCDGrafanaSpec(BaseModel):
    """Grafana component configuration."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    enabled: bool = Field(False, description="Deploy Grafana alongside Argo CD")
    host: str | None = Field(None, description="Hostname for the Grafana endpoint")


class ArgoCDPrometheusSpec(BaseModel):
    """Prometheus component configuration."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    enabled: bool = Field(False, description="Deploy a Prometheus instance")
    host: str | None = Field(None, description="Hostname for the Prometheus endpoint")


class ArgoCDHASpec(BaseModel):
    """High availability configuration for the Redis cache tier."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    enabled: bool = Field(False, description="Run Redis in HA mode")


class ArgoCDAutoTLSSpec(BaseModel):
    """Component that can request a serving certificate from the platform."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    autotls: str | None = Field(
        None, description="Automatic TLS provider; only 'openshift' is supported"
    )

    @property
    def auto_tls_enabled(self) -> bool:
        return (self.autotls or "").lower() == AUTO_TLS_OPENSHIFT


class ArgoCDSpec(BaseModel):
    """Subset of the ArgoCD specification consumed by secret reconciliation."""

    model_config = {"populate_by_name": True, "extra": "ignore"}

    sso: ArgoCDSSOSpec | None = Field(None, description="SSO configuration")
    grafana: ArgoCDGrafanaSpec = Field(default_factory=ArgoCDGrafanaSpec)
    prometheus: ArgoCDPrometheusSpec = Field(default_factory=ArgoCDPrometheusSpec)
    ha: ArgoCDHASpec = Field(default_factory=ArgoCDHASpec)
    repo: ArgoCDAutoTLSSpec = Field(default_factory=ArgoCDAutoTLSSpec)
    redis: ArgoCDAutoTLSSpec = Field(default_factory=ArgoCDAutoTLSSpec)

    @property
    def dex_enabled(self) -> bool:
        """Whether Dex is the configured SSO provider."""
        return self.sso is not None and self.sso.provider == SSO_PROVIDER_DEX


class ArgoCDStatus(BaseModel):
    """
    Status of an ArgoCD instance.

    The TLS checksums are the only memory of the drift detector: they hold
    the fingerprint of externally managed TLS secrets as last observed.
    """

    model_config = {"populate_by_name": True, "extra": "ignore"}

    phase: str = Field(PHASE_PENDING, description="Current phase")
    message: str | None = Field(None, description="Human-readable status message")
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    observed_generation: int | None = Field(None, alias="observedGeneration")
    repo_tls_checksum: str = Field(
        "",
        alias="repoTLSChecksum",
        description="SHA-256 of the repo-server TLS certificate and key",
    )
    redis_tls_checksum: str = Field(
        "",
        alias="redisTLSChecksum",
        description="SHA-256 of the Redis TLS certificate and key",
    )


class ClusterCapabilities(BaseModel):
    """Optional platform features available in the cluster.

    Supplied to reconcilers at construction instead of being probed and
    cached globally.
    """

    model_config = {"frozen": True}

    route_api_available: bool = Field(
        False, description="OpenShift route API and service serving certificates"
    )


class ArgoCDInstance(BaseModel):
    """An ArgoCD custom resource as seen by one reconciliation pass."""

    model_config = {"populate_by_name": True}

    api_version: str = Field(ARGOCD_API_VERSION, alias="apiVersion")
    kind: str = Field(ARGOCD_KIND)
    name: str
    namespace: str
    uid: str = ""
    spec: ArgoCDSpec = Field(default_factory=ArgoCDSpec)
    status: ArgoCDStatus = Field(default_factory=ArgoCDStatus)

    @classmethod
    def from_resource(
        cls,
        name: str,
        namespace: str,
        spec: dict[str, Any] | None,
        meta: dict[str, Any] | None = None,
        status: Any = None,
    ) -> "ArgoCDInstance":
        """Build an instance from kopf handler arguments."""
        meta = meta or {}
        status_data = dict(status) if status else {}
        return cls(
            name=name,
            namespace=namespace,
            uid=meta.get("uid", "") or "",
            spec=ArgoCDSpec.model_validate(spec or {}),
            status=ArgoCDStatus.model_validate(status_data),
        )

    def name_with_suffix(self, suffix: str) -> str:
        """Return ``<instance name>-<suffix>``."""
        return f"{self.name}-{suffix}"

    @property
    def grafana_host(self) -> str:
        return self.spec.grafana.host or self.name_with_suffix(GRAFANA_SUFFIX)

    @property
    def prometheus_host(self) -> str:
        return self.spec.prometheus.host or self.name_with_suffix(PROMETHEUS_SUFFIX)
