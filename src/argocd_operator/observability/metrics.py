"""
Prometheus metrics for the Argo CD operator.

Everything is registered on a module-owned registry so the operator only
exposes its own series. Besides whole reconciliation passes the operator
counts individual secret steps, TLS drift detections and the workload
restarts those detections cascade into.
"""

import logging
import time
from contextlib import asynccontextmanager

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from argocd_operator.constants import (
    PHASE_DEGRADED,
    PHASE_FAILED,
    PHASE_READY,
    PHASE_RECONCILING,
)

logger = logging.getLogger(__name__)

REPORTED_PHASES = frozenset(
    {PHASE_RECONCILING, PHASE_READY, PHASE_DEGRADED, PHASE_FAILED}
)

REGISTRY = CollectorRegistry()

RECONCILIATION_TOTAL = Counter(
    "argocd_operator_reconciliation_total",
    "Reconciliation passes by result",
    ["resource_type", "namespace", "name", "result"],
    registry=REGISTRY,
)
RECONCILIATION_DURATION = Histogram(
    "argocd_operator_reconciliation_duration_seconds",
    "Duration of reconciliation passes",
    ["resource_type", "namespace", "operation"],
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0, 60.0),
    registry=REGISTRY,
)
RECONCILIATION_ERRORS = Counter(
    "argocd_operator_reconciliation_errors_total",
    "Failed reconciliation passes by underlying error",
    ["resource_type", "namespace", "error_type", "retryable"],
    registry=REGISTRY,
)
ACTIVE_RESOURCES = Gauge(
    "argocd_operator_active_resources",
    "ArgoCD instances by last reported phase",
    ["resource_type", "namespace", "phase"],
    registry=REGISTRY,
)
SECRET_STEP_TOTAL = Counter(
    "argocd_operator_secret_step_total",
    "Secret step outcomes",
    ["step", "namespace", "outcome", "mutated"],
    registry=REGISTRY,
)
TLS_DRIFT_DETECTED_TOTAL = Counter(
    "argocd_operator_tls_drift_detected_total",
    "Changes detected in externally managed TLS secrets",
    ["bundle", "namespace"],
    registry=REGISTRY,
)
ROLLOUT_TRIGGERS_TOTAL = Counter(
    "argocd_operator_rollout_triggers_total",
    "Workload restarts issued after credential or certificate changes",
    ["workload_kind", "namespace", "result"],
    registry=REGISTRY,
)


def get_metrics_registry() -> CollectorRegistry:
    """Return the registry holding the operator's metrics."""
    return REGISTRY


def _flag(value: bool) -> str:
    return "true" if value else "false"


class MetricsCollector:
    """Records operator metrics."""

    def __init__(self):
        self.registry = get_metrics_registry()

    @asynccontextmanager
    async def track_reconciliation(
        self,
        resource_type: str,
        namespace: str,
        name: str,
        operation: str = "reconcile",
    ):
        """
        Count and time one reconciliation pass.

        Reconcilers re-raise failures as kopf errors chained to the original
        exception; errors are labelled by that original exception.
        """
        started = time.perf_counter()
        result = "success"
        try:
            yield
        except Exception as e:
            result = "error"
            cause = e.__cause__ or e
            RECONCILIATION_ERRORS.labels(
                resource_type=resource_type,
                namespace=namespace,
                error_type=type(cause).__name__,
                retryable=_flag(getattr(cause, "retryable", False)),
            ).inc()
            raise
        finally:
            RECONCILIATION_TOTAL.labels(
                resource_type=resource_type,
                namespace=namespace,
                name=name,
                result=result,
            ).inc()
            RECONCILIATION_DURATION.labels(
                resource_type=resource_type, namespace=namespace, operation=operation
            ).observe(time.perf_counter() - started)

    def update_resource_status(
        self, resource_type: str, namespace: str, phase: str
    ) -> None:
        """Report ``phase`` as current and zero the other phases."""
        for known in REPORTED_PHASES | {phase}:
            ACTIVE_RESOURCES.labels(
                resource_type=resource_type, namespace=namespace, phase=known
            ).set(1 if known == phase else 0)

    def record_secret_step(
        self, step: str, namespace: str, outcome: str, mutated: bool
    ) -> None:
        SECRET_STEP_TOTAL.labels(
            step=step, namespace=namespace, outcome=outcome, mutated=_flag(mutated)
        ).inc()

    def record_tls_drift(self, bundle: str, namespace: str) -> None:
        TLS_DRIFT_DETECTED_TOTAL.labels(bundle=bundle, namespace=namespace).inc()

    def record_rollout_trigger(
        self, workload_kind: str, namespace: str, success: bool
    ) -> None:
        ROLLOUT_TRIGGERS_TOTAL.labels(
            workload_kind=workload_kind,
            namespace=namespace,
            result="success" if success else "failure",
        ).inc()


class MetricsServer:
    """Serves ``/metrics`` for Prometheus and ``/healthz`` for the liveness probe."""

    def __init__(self, port: int = 8081, host: str = "0.0.0.0"):
        self.port = port
        self.host = host
        self.app = web.Application()
        self.app.router.add_get("/metrics", self.metrics)
        self.app.router.add_get("/healthz", self.healthz)
        self.runner: web.AppRunner | None = None

    async def metrics(self, request: web.Request) -> web.Response:
        try:
            payload = generate_latest(REGISTRY)
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            return web.Response(
                text=f"Error generating metrics: {type(e).__name__}", status=500
            )
        return web.Response(body=payload, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def healthz(self, request: web.Request) -> web.Response:
        return web.Response(text="ok")

    async def start(self) -> None:
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        await web.TCPSite(self.runner, self.host, self.port).start()
        logger.info(f"Metrics server listening on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
            logger.info("Metrics server stopped")


metrics_collector = MetricsCollector()
