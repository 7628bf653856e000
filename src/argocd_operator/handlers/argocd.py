"""
ArgoCD instance handlers - Manages instance credentials and certificates.

This module drives reconciliation passes for ArgoCD resources on:
- Creation and operator restart (resume)
- Specification changes
- A periodic timer, which picks up deferred steps and TLS secrets
  rotated outside the operator

Every pass is idempotent: a pass over an unchanged cluster writes nothing.
"""

from __future__ import annotations

import logging
from collections.abc import MutableMapping
from typing import Any, cast

import kopf

from argocd_operator.constants import ARGOCD_GROUP, ARGOCD_PLURAL, ARGOCD_VERSION
from argocd_operator.services import ArgoCDReconciler
from argocd_operator.services.base_reconciler import StatusProtocol
from argocd_operator.settings import settings


class StatusWrapper(MutableMapping[str, Any]):
    """
    View of kopf's ``patch.status`` with attribute access.

    Reconcilers assign ``status.phase`` and friends; every write lands in
    the patch kopf applies after the handler returns.
    """

    __slots__ = ("_target",)

    def __init__(self, target: Any):
        object.__setattr__(self, "_target", target)

    def __getitem__(self, key: str) -> Any:
        return self._target[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._target[key] = value

    def __delitem__(self, key: str) -> None:
        self._target.pop(key, None)

    def __iter__(self):
        return iter(self._target)

    def __len__(self) -> int:
        return len(self._target)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._target[name]
        except KeyError as e:
            raise AttributeError(name) from e

    def __setattr__(self, name: str, value: Any) -> None:
        self._target[name] = value


logger = logging.getLogger(__name__)


async def _run_pass(
    operation: str,
    spec: dict[str, Any],
    name: str,
    namespace: str,
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    # The observed status reaches the reconciler through body; writes go to patch
    kwargs.pop("status", None)
    await ArgoCDReconciler().reconcile(
        spec=spec,
        name=name,
        namespace=namespace,
        status=cast(StatusProtocol, StatusWrapper(patch.status)),
        operation=operation,
        **kwargs,
    )


@kopf.on.create(ARGOCD_PLURAL, group=ARGOCD_GROUP, version=ARGOCD_VERSION)
@kopf.on.resume(ARGOCD_PLURAL, group=ARGOCD_GROUP, version=ARGOCD_VERSION)
async def ensure_argocd_secrets(
    spec: dict[str, Any],
    name: str,
    namespace: str,
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """
    Ensure the credentials and certificates of an ArgoCD instance exist.

    Args:
        spec: ArgoCD resource specification
        name: Name of the ArgoCD resource
        namespace: Namespace where the resource exists
        patch: Kopf patch object for modifying the resource
    """
    logger.info(f"Ensuring secrets for ArgoCD {name} in namespace {namespace}")
    await _run_pass("create", spec, name, namespace, patch, **kwargs)
    # Returning a value would make kopf store it under status
    return None


@kopf.on.update(ARGOCD_PLURAL, group=ARGOCD_GROUP, version=ARGOCD_VERSION, field="spec")
async def update_argocd_secrets(
    spec: dict[str, Any],
    name: str,
    namespace: str,
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """
    Handle specification changes of an ArgoCD instance.

    Enabling Grafana or Dex and changing component hosts all change which
    secrets and fields the instance needs, so a full pass is run with the
    new specification.
    """
    logger.info(f"Updating secrets for ArgoCD {name} in namespace {namespace}")
    await _run_pass("update", spec, name, namespace, patch, **kwargs)
    return None


@kopf.timer(
    ARGOCD_PLURAL,
    group=ARGOCD_GROUP,
    version=ARGOCD_VERSION,
    interval=float(settings.reconcile_interval_seconds),
    initial_delay=float(settings.reconcile_interval_seconds),
)
async def periodic_argocd_secrets(
    spec: dict[str, Any],
    name: str,
    namespace: str,
    patch: kopf.Patch,
    **kwargs: Any,
) -> None:
    """
    Periodic reconciliation pass.

    Completes steps deferred for missing prerequisites and detects TLS
    secrets that were rotated without touching the ArgoCD resource.
    """
    await _run_pass("timer", spec, name, namespace, patch, **kwargs)
