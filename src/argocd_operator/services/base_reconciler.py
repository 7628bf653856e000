"""
Base reconciler for ArgoCD resources.

A pass is wrapped with correlated logging and metrics, reported on the
resource status as a phase plus Ready/Progressing/Degraded conditions, and
any failure is handed back to kopf as a temporary or permanent error.
"""

import time
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, NamedTuple, Protocol

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..constants import (
    CONDITION_DEGRADED,
    CONDITION_PROGRESSING,
    CONDITION_READY,
    PHASE_DEGRADED,
    PHASE_FAILED,
    PHASE_READY,
    PHASE_RECONCILING,
    REASON_FAILED,
    REASON_IN_PROGRESS,
    REASON_PREREQUISITES_PENDING,
    REASON_SUCCEEDED,
)
from ..errors import OperatorError, TemporaryError, store_error_from_api_exception
from ..observability.logging import OperatorLogger
from ..observability.metrics import metrics_collector


class StatusProtocol(Protocol):
    """Protocol for kopf Status objects that allow dynamic attribute assignment."""

    def __setattr__(self, name: str, value: Any) -> None: ...
    def __getattr__(self, name: str) -> Any: ...


class PhaseConditions(NamedTuple):
    """Conditions written and cleared when a resource enters a phase."""

    set: tuple[tuple[str, str, str], ...]
    cleared: tuple[str, ...]


# (type, status, reason) per phase; Degraded messages get a prefix.
PHASE_CONDITIONS: dict[str, PhaseConditions] = {
    PHASE_RECONCILING: PhaseConditions(
        set=((CONDITION_PROGRESSING, "True", REASON_IN_PROGRESS),),
        cleared=(CONDITION_DEGRADED,),
    ),
    PHASE_READY: PhaseConditions(
        set=((CONDITION_READY, "True", REASON_SUCCEEDED),),
        cleared=(CONDITION_PROGRESSING, CONDITION_DEGRADED),
    ),
    PHASE_DEGRADED: PhaseConditions(
        set=(
            (CONDITION_READY, "False", REASON_PREREQUISITES_PENDING),
            (CONDITION_DEGRADED, "True", REASON_PREREQUISITES_PENDING),
        ),
        cleared=(CONDITION_PROGRESSING,),
    ),
    PHASE_FAILED: PhaseConditions(
        set=(
            (CONDITION_READY, "False", REASON_FAILED),
            (CONDITION_DEGRADED, "True", REASON_FAILED),
        ),
        cleared=(CONDITION_PROGRESSING,),
    ),
}


class BaseReconciler(ABC):
    """
    Base class for ArgoCD reconcilers.

    Subclasses implement ``do_reconcile`` and return a result dictionary.
    A non-empty ``degraded_reason`` in that result ends the pass Degraded
    rather than Ready.
    """

    resource_type = "argocd"

    def __init__(self, k8s_client: client.ApiClient | None = None):
        self.k8s_client = k8s_client
        self.logger = OperatorLogger(self.__class__.__name__)

    @property
    def kubernetes_client(self) -> client.ApiClient:
        """Get or create Kubernetes API client."""
        if self.k8s_client is None:
            from ..utils.kubernetes import get_kubernetes_client

            self.k8s_client = get_kubernetes_client()
        return self.k8s_client

    async def reconcile(
        self,
        spec: dict[str, Any],
        name: str,
        namespace: str,
        status: StatusProtocol,
        operation: str = "reconcile",
        **kwargs,
    ) -> dict[str, Any]:
        """
        Run one reconciliation pass and record its outcome on the status.

        Args:
            spec: Resource specification
            name: Resource name
            namespace: Resource namespace
            status: Resource status object
            operation: Label for the triggering event (create, update, timer)
            **kwargs: Additional handler arguments (meta, body)

        Returns:
            Result dictionary of the pass

        Raises:
            kopf.TemporaryError: For retryable failures
            kopf.PermanentError: For failures that need user action
        """
        generation = (kwargs.get("meta") or {}).get("generation", 0)
        started = time.time()
        self.logger.log_reconciliation_start(
            resource_type=self.resource_type, resource_name=name, namespace=namespace
        )

        async with metrics_collector.track_reconciliation(
            resource_type=self.resource_type,
            namespace=namespace,
            name=name,
            operation=operation,
        ):
            self.update_status_reconciling(status, "Reconciling secrets", generation)
            try:
                result = await self.do_reconcile(
                    spec, name, namespace, status, **kwargs
                )
            except Exception as e:
                error = self._as_operator_error(e)
                self.logger.log_reconciliation_error(
                    resource_type=self.resource_type,
                    resource_name=name,
                    namespace=namespace,
                    error=error,
                    duration=time.time() - started,
                )
                self.update_status_failed(status, str(error), generation)
                metrics_collector.update_resource_status(
                    self.resource_type, namespace, PHASE_FAILED
                )
                raise error.as_kopf_error() from e

            degraded_reason = result.get("degraded_reason")
            if degraded_reason:
                self.update_status_degraded(status, degraded_reason, generation)
            else:
                self.update_status_ready(
                    status, "Credentials and certificates are up to date", generation
                )
            metrics_collector.update_resource_status(
                self.resource_type, namespace, status.phase
            )
            self.logger.log_reconciliation_success(
                resource_type=self.resource_type,
                resource_name=name,
                namespace=namespace,
                duration=time.time() - started,
            )
            return result

    @staticmethod
    def _as_operator_error(e: Exception) -> OperatorError:
        if isinstance(e, OperatorError):
            return e
        if isinstance(e, ApiException):
            return store_error_from_api_exception(str(e), e)
        return TemporaryError(f"Unexpected error during reconciliation: {e}")

    @abstractmethod
    async def do_reconcile(
        self,
        spec: dict[str, Any],
        name: str,
        namespace: str,
        status: StatusProtocol,
        **kwargs,
    ) -> dict[str, Any]:
        """Perform the reconciliation pass and return its result dictionary."""
        raise NotImplementedError("Subclasses must implement do_reconcile method")

    def set_phase(
        self, status: StatusProtocol, phase: str, message: str, generation: int = 0
    ) -> None:
        """Move the status to ``phase`` and rewrite its conditions."""
        now = datetime.now(UTC).isoformat()
        status.phase = phase
        status.message = message
        status.lastUpdated = now
        status.observedGeneration = generation

        transitions = PHASE_CONDITIONS[phase]
        replaced = {c[0] for c in transitions.set} | set(transitions.cleared)
        conditions = [
            c
            for c in getattr(status, "conditions", None) or []
            if isinstance(c, dict) and c.get("type") not in replaced
        ]
        for condition_type, condition_status, reason in transitions.set:
            text = message
            if condition_type == CONDITION_DEGRADED:
                text = f"Resource degraded: {message}"
            elif condition_type == CONDITION_PROGRESSING:
                text = f"Resource is progressing: {message}"
            conditions.append(
                {
                    "type": condition_type,
                    "status": condition_status,
                    "reason": reason,
                    "message": text,
                    "lastTransitionTime": now,
                    "observedGeneration": generation,
                }
            )
        status.conditions = conditions

    def update_status_reconciling(
        self, status: StatusProtocol, message: str, generation: int = 0
    ) -> None:
        self.set_phase(status, PHASE_RECONCILING, message, generation)

    def update_status_ready(
        self,
        status: StatusProtocol,
        message: str = "Resource is ready",
        generation: int = 0,
    ) -> None:
        self.set_phase(status, PHASE_READY, message, generation)

    def update_status_failed(
        self, status: StatusProtocol, message: str, generation: int = 0
    ) -> None:
        self.set_phase(status, PHASE_FAILED, message, generation)

    def update_status_degraded(
        self, status: StatusProtocol, message: str, generation: int = 0
    ) -> None:
        """Mark a pass that completed with deferred steps."""
        self.set_phase(status, PHASE_DEGRADED, message, generation)

    def get_condition(
        self, status: StatusProtocol, condition_type: str
    ) -> dict[str, Any] | None:
        for condition in getattr(status, "conditions", None) or []:
            if condition.get("type") == condition_type:
                return condition
        return None

    def is_ready(self, status: StatusProtocol) -> bool:
        ready = self.get_condition(status, CONDITION_READY)
        return ready is not None and ready.get("status") == "True"
