"""
Ordered execution of secret reconciliation steps.

Each step declares the secrets it needs. A step whose prerequisites are not
present yet is deferred rather than failed; a later pass picks it up once
the earlier steps (or an external producer) have created them. The first
failing step aborts the pass and nothing is rolled back.
"""

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from argocd_operator.constants import ERROR_PREREQUISITE_MISSING
from argocd_operator.models.argocd import ArgoCDInstance
from argocd_operator.observability.logging import OperatorLogger
from argocd_operator.observability.metrics import metrics_collector
from argocd_operator.utils.kubernetes import ObjectStore

logger = logging.getLogger(__name__)


class StepOutcome(str, Enum):
    APPLIED = "applied"
    DEFERRED = "deferred"
    FAILED = "failed"


@dataclass
class StepResult:
    """Outcome of one step in one pass."""

    step: str
    outcome: StepOutcome
    mutated: bool = False
    reason: str | None = None
    error: Exception | None = None

    @classmethod
    def applied(cls, step: str, mutated: bool = False) -> "StepResult":
        return cls(step=step, outcome=StepOutcome.APPLIED, mutated=mutated)

    @classmethod
    def deferred(cls, step: str, reason: str) -> "StepResult":
        return cls(step=step, outcome=StepOutcome.DEFERRED, reason=reason)

    @classmethod
    def failed(cls, step: str, error: Exception) -> "StepResult":
        return cls(
            step=step, outcome=StepOutcome.FAILED, reason=str(error), error=error
        )


# A step body reports whether it wrote anything, or returns a deferral
# result itself when it discovers a missing dependency on its own.
StepApply = Callable[[ArgoCDInstance], Awaitable["bool | StepResult"]]


@dataclass
class SecretStep:
    """
    One row of the secret reconciliation table.

    Attributes:
        name: Step name used in logs and metrics
        apply: Coroutine performing the step
        requires: Suffixes of secrets (``<instance>-<suffix>``) that must exist
        enabled: Predicate deciding whether the step runs for an instance
    """

    name: str
    apply: StepApply
    requires: tuple[str, ...] = ()
    enabled: Callable[[ArgoCDInstance], bool] | None = None

    def is_enabled(self, instance: ArgoCDInstance) -> bool:
        return self.enabled is None or self.enabled(instance)


@dataclass
class PassResult:
    """Results of all steps that ran in a pass."""

    results: list[StepResult] = field(default_factory=list)

    @property
    def mutated(self) -> bool:
        return any(r.mutated for r in self.results)

    @property
    def deferred(self) -> list[StepResult]:
        return [r for r in self.results if r.outcome == StepOutcome.DEFERRED]

    def get(self, step: str) -> StepResult | None:
        for result in self.results:
            if result.step == step:
                return result
        return None


class SecretOrchestrator:
    """Runs secret steps in table order."""

    def __init__(self, store: ObjectStore, steps: Sequence[SecretStep]):
        self.store = store
        self.steps = list(steps)
        self.logger = OperatorLogger(__name__)

    async def _missing_prerequisite(
        self, step: SecretStep, instance: ArgoCDInstance
    ) -> str | None:
        for suffix in step.requires:
            secret_name = instance.name_with_suffix(suffix)
            if await self.store.get_secret(secret_name, instance.namespace) is None:
                return ERROR_PREREQUISITE_MISSING.format(
                    secret_name, instance.namespace
                )
        return None

    async def run_step(self, step: SecretStep, instance: ArgoCDInstance) -> StepResult:
        """Run a single step, converting exceptions into a FAILED result."""
        if not step.is_enabled(instance):
            return StepResult.applied(step.name)

        try:
            missing = await self._missing_prerequisite(step, instance)
            if missing:
                return StepResult.deferred(step.name, missing)

            outcome = await step.apply(instance)
        except Exception as e:
            return StepResult.failed(step.name, e)

        if isinstance(outcome, StepResult):
            return outcome
        return StepResult.applied(step.name, mutated=bool(outcome))

    async def run(self, instance: ArgoCDInstance) -> PassResult:
        """
        Run every step in order.

        Returns:
            Results of the pass

        Raises:
            Exception: The error of the first failing step
        """
        pass_result = PassResult()

        for step in self.steps:
            result = await self.run_step(step, instance)
            pass_result.results.append(result)

            self.logger.log_step_outcome(
                step=result.step,
                namespace=instance.namespace,
                resource_name=instance.name,
                outcome=result.outcome.value,
                mutated=result.mutated,
                reason=result.reason,
            )
            metrics_collector.record_secret_step(
                step=result.step,
                namespace=instance.namespace,
                outcome=result.outcome.value,
                mutated=result.mutated,
            )

            if result.outcome == StepOutcome.FAILED and result.error is not None:
                raise result.error

        return pass_result
