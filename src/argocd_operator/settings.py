"""Operator settings read from the environment with pydantic-settings."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from argocd_operator.constants import (
    DEFAULT_PASSWORD_HASH_ROUNDS,
    DEFAULT_RECONCILE_INTERVAL_SECONDS,
)


class Settings(BaseSettings):
    """Operator configuration; each field names its environment variable."""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )

    # Namespace watching
    namespaces: str = Field(
        default="",
        validation_alias="ARGOCD_OPERATOR_NAMESPACES",
        description="Comma-separated list of namespaces to watch (empty = all namespaces)",
    )

    # Metrics and observability
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port for Prometheus metrics endpoint",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Host address to bind metrics server",
    )

    # Reconciliation behavior
    reconcile_interval_seconds: float = Field(
        default=DEFAULT_RECONCILE_INTERVAL_SECONDS,
        validation_alias="RECONCILE_INTERVAL_SECONDS",
        description="Interval between periodic reconciliation passes per instance",
    )
    password_hash_rounds: int = Field(
        default=DEFAULT_PASSWORD_HASH_ROUNDS,
        validation_alias="PASSWORD_HASH_ROUNDS",
        description="bcrypt cost factor for the admin password hash",
        ge=4,
        le=31,
    )

    # Cluster capabilities
    route_api_available: bool = Field(
        default=False,
        validation_alias="ROUTE_API_AVAILABLE",
        description="Whether the OpenShift route API (and serving-cert annotation) is available",
    )

    # Cluster-scoped instances
    cluster_config_namespaces: str = Field(
        default="",
        validation_alias="ARGOCD_CLUSTER_CONFIG_NAMESPACES",
        description="Comma-separated namespaces allowed to host cluster-config instances ('*' = all)",
    )

    @property
    def watched_namespaces(self) -> list[str] | None:
        """Namespaces to watch, or None for cluster-wide mode."""
        if self.namespaces:
            return [ns.strip() for ns in self.namespaces.split(",") if ns.strip()]
        return None


def cluster_config_namespaces() -> str:
    """Read the cluster-config namespace allow-list from the current environment.

    Unlike the module-level ``settings`` this is evaluated on every call, so an
    updated environment is honoured by the next reconciliation pass.
    """
    return Settings().cluster_config_namespaces


settings = Settings()
