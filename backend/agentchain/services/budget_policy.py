"""
Budget and retry policy.

Pure decision logic consulted by the engine before every attempt, plus the
success-criteria evaluation applied once every step has resolved.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from agentchain.models.chain_models import ChainDefinition
from agentchain.models.constants import PolicyAction, StepStatus
from agentchain.models.execution_models import StepExecutionRecord


@dataclass(frozen=True)
class PolicyDecision:
    action: PolicyAction
    delay_seconds: float = 0.0
    reason: str = ""


class RetryBudgetPolicy:
    """
    Decides whether the next attempt of a step may run.

    Budget is a whole-chain ceiling and is checked before anything else, so a
    step that would overshoot the limit never starts, not even as a retry.
    """

    def __init__(self, base_delay_seconds: float = 1.0, max_delay_seconds: float = 60.0):
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds

    def backoff_delay(self, attempt: int) -> float:
        """Exponential backoff after the given (1-based) failed attempt."""
        return min(self.base_delay_seconds * (2 ** max(attempt - 1, 0)), self.max_delay_seconds)

    def decide(
        self,
        max_retries: int,
        attempt: int,
        spent_so_far: float,
        budget_limit: Optional[float],
        estimated_cost: float,
        last_attempt_failed: bool = False,
    ) -> PolicyDecision:
        """
        Decide the next transition for a step.

        Args:
            max_retries: Retries allowed for this step (step override or chain default)
            attempt: Attempts already made for this step
            spent_so_far: Committed plus reserved chain spend
            budget_limit: Chain-level ceiling, None when unlimited
            estimated_cost: Expected cost of one more attempt
            last_attempt_failed: Whether the most recent attempt failed

        Returns:
            PolicyDecision with the action and, for RETRY, the backoff delay
        """
        if budget_limit is not None and spent_so_far + estimated_cost > budget_limit:
            return PolicyDecision(
                PolicyAction.ABORT_CHAIN,
                reason=f"spent {spent_so_far:.4f} + estimated {estimated_cost:.4f} exceeds limit {budget_limit:.4f}",
            )

        if attempt == 0:
            return PolicyDecision(PolicyAction.PROCEED)

        if last_attempt_failed and attempt <= max_retries:
            return PolicyDecision(
                PolicyAction.RETRY,
                delay_seconds=self.backoff_delay(attempt),
                reason=f"attempt {attempt} failed, {max_retries - attempt + 1} retries left",
            )

        return PolicyDecision(PolicyAction.ABORT_STEP, reason=f"retries exhausted after {attempt} attempts")


def evaluate_success_criteria(
    definition: ChainDefinition,
    steps: Sequence[StepExecutionRecord],
) -> Tuple[bool, List[str]]:
    """
    Decide whether a fully resolved execution succeeded.

    Checks minimum completed steps, required steps, minimum average quality
    and maximum error rate, in that order. With no criteria configured, an
    execution succeeds only if no step failed.

    Returns:
        (met, unmet_reasons)
    """
    criteria = definition.success_criteria
    completed = [s for s in steps if s.status == StepStatus.COMPLETED]
    failed = [s for s in steps if s.status == StepStatus.FAILED]
    unmet: List[str] = []

    if criteria.is_empty():
        if failed:
            unmet.append(f"{len(failed)} step(s) failed: {sorted(s.step_number for s in failed)}")
        return not unmet, unmet

    if criteria.min_steps_completed is not None and len(completed) < criteria.min_steps_completed:
        unmet.append(f"Only {len(completed)} steps completed, {criteria.min_steps_completed} required")

    completed_numbers = {s.step_number for s in completed}
    missing = [n for n in criteria.required_steps if n not in completed_numbers]
    if missing:
        unmet.append(f"Required steps did not complete: {missing}")

    if criteria.min_quality_score is not None:
        scores = [s.quality_score for s in completed if s.quality_score is not None]
        average = sum(scores) / len(scores) if scores else 0.0
        if average < criteria.min_quality_score:
            unmet.append(f"Average quality {average:.2f} below minimum {criteria.min_quality_score:.2f}")

    if criteria.max_error_rate is not None:
        attempted = len(completed) + len(failed)
        error_rate = len(failed) / attempted if attempted else 0.0
        if error_rate > criteria.max_error_rate:
            unmet.append(f"Error rate {error_rate:.2f} above maximum {criteria.max_error_rate:.2f}")

    return not unmet, unmet
