"""
Operator error hierarchy.

Every error knows whether a retry can help and how long to wait, which is
what ``as_kopf_error`` hands to kopf. Object store failures are mapped from
``ApiException`` so reconcilers can tell a stale write from a missing object.
"""

import kopf
from kubernetes.client.rest import ApiException

# API failures that a retry cannot fix
NON_RETRYABLE_API_REASONS = frozenset({"Forbidden", "Unauthorized", "Invalid"})


class OperatorError(Exception):
    """
    Base error for the operator.

    Args:
        message: Human-readable error description
        category: Error category (crypto, store, reconciliation, temporary)
        retryable: Whether kopf should retry the pass
        delay: Suggested retry delay in seconds
        user_action: What the user can do to resolve the issue
        cause: Underlying exception
    """

    def __init__(
        self,
        message: str,
        category: str,
        retryable: bool = True,
        delay: int = 30,
        user_action: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.category = category
        self.retryable = retryable
        self.delay = delay
        self.user_action = user_action
        self.cause = cause

    def as_kopf_error(self) -> kopf.TemporaryError | kopf.PermanentError:
        if self.retryable:
            return kopf.TemporaryError(str(self), delay=self.delay)
        return kopf.PermanentError(str(self))

    def __str__(self) -> str:
        message = super().__str__()
        if self.user_action:
            message = f"{message}\nAction required: {self.user_action}"
        return message


class TemporaryError(OperatorError):
    """Unexpected failure that a later pass may not hit again."""

    def __init__(self, message: str, delay: int = 30):
        super().__init__(message, category="temporary", delay=delay)


class CryptoError(OperatorError):
    """Key or certificate generation failed, or CA material is malformed."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(
            message,
            category="crypto",
            user_action="Delete the affected CA or TLS secret to force regeneration",
            cause=cause,
        )


class HashError(OperatorError):
    """Password hashing failed."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message, category="crypto", cause=cause)


class ReconciliationError(OperatorError):
    """One or more actions of a pass failed after the rest were attempted."""

    def __init__(self, message: str, delay: int = 60):
        super().__init__(
            message,
            category="reconciliation",
            delay=delay,
            user_action="Inspect operator logs for the failed actions",
        )


class KubernetesAPIError(OperatorError):
    """Error talking to the Kubernetes API."""

    def __init__(
        self,
        message: str,
        reason: str | None = None,
        retryable: bool = True,
        delay: int = 60,
    ):
        if reason:
            message = f"{message} (reason: {reason})"
        super().__init__(
            f"Kubernetes API error: {message}",
            category="store",
            retryable=retryable and reason not in NON_RETRYABLE_API_REASONS,
            delay=delay,
            user_action="Check RBAC permissions and cluster connectivity",
        )
        self.reason = reason


class ObjectStoreError(KubernetesAPIError):
    """Generic failure of an object store read or write."""


class NotFoundError(ObjectStoreError):
    """Object disappeared between read and write."""

    def __init__(self, message: str, reason: str | None = "NotFound"):
        super().__init__(message, reason=reason, delay=10)


class AlreadyExistsError(ObjectStoreError):
    """Create raced with another writer."""

    def __init__(self, message: str, reason: str | None = "AlreadyExists"):
        super().__init__(message, reason=reason, delay=5)


class ConflictError(ObjectStoreError):
    """Stale resource version on update; recompute from fresh state and retry."""

    def __init__(self, message: str, reason: str | None = "Conflict"):
        super().__init__(message, reason=reason, delay=5)


def store_error_from_api_exception(message: str, e: ApiException) -> ObjectStoreError:
    """Map a kubernetes ApiException onto the object store error taxonomy."""
    status = getattr(e, "status", None)
    reason = getattr(e, "reason", None)
    if status == 404:
        return NotFoundError(message, reason=reason or "NotFound")
    if status == 409:
        if reason == "AlreadyExists":
            return AlreadyExistsError(message, reason=reason)
        return ConflictError(message, reason=reason or "Conflict")
    return ObjectStoreError(message, reason=reason, retryable=status is None or status >= 500)
