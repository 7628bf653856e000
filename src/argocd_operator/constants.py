"""
Constants used throughout the Argo CD operator.

This module defines all constant values used by the operator including:
- Custom resource coordinates
- Resource labels and annotations
- Secret names and data keys
- Credential generation parameters
"""

# ArgoCD custom resource coordinates
ARGOCD_GROUP = "argoproj.io"
ARGOCD_VERSION = "v1beta1"
ARGOCD_PLURAL = "argocds"
ARGOCD_KIND = "ArgoCD"
ARGOCD_API_VERSION = f"{ARGOCD_GROUP}/{ARGOCD_VERSION}"

# Label constants for resource identification and management
APP_NAME_LABEL_KEY = "app.kubernetes.io/name"
PART_OF_LABEL_KEY = "app.kubernetes.io/part-of"
PART_OF_LABEL_VALUE = "argocd"
MANAGED_BY_LABEL_KEY = "app.kubernetes.io/managed-by"
MANAGED_BY_LABEL_VALUE = "argocd-operator"

# Argo CD specific labels and annotations
SECRET_TYPE_LABEL_KEY = "argocd.argoproj.io/secret-type"
SECRET_TYPE_CLUSTER = "cluster"
NAMESPACE_MANAGED_BY_LABEL_KEY = "argocd.argoproj.io/managed-by"
INSTANCE_NAME_ANNOTATION = "argocds.argoproj.io/name"
OPENSHIFT_SERVING_CERT_ANNOTATION = "service.beta.openshift.io/serving-cert-secret-name"

# Secret types
SECRET_TYPE_OPAQUE = "Opaque"
SECRET_TYPE_TLS = "kubernetes.io/tls"

# Secret data keys
TLS_CERT_KEY = "tls.crt"
TLS_PRIVATE_KEY_KEY = "tls.key"
CA_CERT_KEY = "ca.crt"
ADMIN_PASSWORD_KEY = "admin.password"
ADMIN_PASSWORD_MTIME_KEY = "admin.passwordMtime"
SERVER_SECRET_KEY = "server.secretkey"
DEX_CLIENT_SECRET_KEY = "dex.openshift.clientSecret"
GRAFANA_ADMIN_USERNAME_KEY = "admin.username"
GRAFANA_ADMIN_PASSWORD_KEY = "admin.password"
GRAFANA_SECRET_KEY = "secret.key"

# Secret naming
ARGOCD_SECRET_NAME = "argocd-secret"
CLUSTER_SECRET_SUFFIX = "cluster"
CA_SECRET_SUFFIX = "ca"
TLS_SECRET_SUFFIX = "tls"
GRAFANA_SECRET_SUFFIX = "grafana"
CLUSTER_PERMISSIONS_SECRET_SUFFIX = "default-cluster-config"
REPO_SERVER_TLS_SECRET_NAME = "argocd-repo-server-tls"
REDIS_SERVER_TLS_SECRET_NAME = "argocd-operator-redis-tls"

# Workload naming (suffixes appended to the instance name)
SERVER_SUFFIX = "server"
REPO_SERVER_SUFFIX = "repo-server"
APPLICATION_CONTROLLER_SUFFIX = "application-controller"
REDIS_SUFFIX = "redis"
REDIS_HA_PROXY_SUFFIX = "redis-ha-haproxy"
REDIS_HA_SERVER_SUFFIX = "redis-ha-server"
GRAFANA_SUFFIX = "grafana"
GRAFANA_CONFIG_SUFFIX = "grafana-config"
PROMETHEUS_SUFFIX = "prometheus"
GRPC_SUFFIX = "grpc"
DEX_SERVICE_ACCOUNT_SUFFIX = "argocd-dex-server"
REDIS_HA_CONFIG_MAP_NAME = "argocd-redis-ha-configmap"
REDIS_HA_HEALTH_CONFIG_MAP_NAME = "argocd-redis-ha-health-configmap"

# Cluster permissions descriptor
DEFAULT_CLUSTER_SERVER = "https://kubernetes.default.svc"
DEFAULT_CLUSTER_NAME = "in-cluster"
CLUSTER_CONFIG_ALL_NAMESPACES = "*"

# SSO and automatic TLS providers
SSO_PROVIDER_DEX = "dex"
AUTO_TLS_OPENSHIFT = "openshift"

# Credential generation
DEFAULT_ADMIN_PASSWORD_LENGTH = 32
DEFAULT_SESSION_KEY_LENGTH = 20
DEFAULT_GRAFANA_SECRET_KEY_LENGTH = 20
DEFAULT_GRAFANA_ADMIN_USERNAME = "admin"
DEFAULT_PASSWORD_HASH_ROUNDS = 10
DEFAULT_RSA_KEY_SIZE = 2048
CA_VALIDITY_DAYS = 3650
LEAF_VALIDITY_DAYS = 365

# Rollout trigger reasons (used as pod template annotation keys)
ROLLOUT_REASON_REPO_TLS = "repo.tls.cert.changed"
ROLLOUT_REASON_REDIS_TLS = "redis.tls.cert.changed"
ROLLOUT_REASON_GRAFANA_PASSWORD = "admin.password.changed"

# Status phase constants
PHASE_PENDING = "Pending"
PHASE_RECONCILING = "Reconciling"
PHASE_READY = "Ready"
PHASE_FAILED = "Failed"
PHASE_DEGRADED = "Degraded"

# Status condition types and reasons
CONDITION_READY = "Ready"
CONDITION_PROGRESSING = "Progressing"
CONDITION_DEGRADED = "Degraded"
REASON_IN_PROGRESS = "ReconciliationInProgress"
REASON_SUCCEEDED = "ReconciliationSucceeded"
REASON_FAILED = "ReconciliationFailed"
REASON_PREREQUISITES_PENDING = "PrerequisitesPending"

# Default configuration values
DEFAULT_RECONCILE_INTERVAL_SECONDS = 180

# Error message templates
ERROR_PREREQUISITE_MISSING = "secret '{}' not found in namespace '{}'"
