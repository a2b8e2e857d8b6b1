"""
Custom exceptions for chain orchestration.

Provides a consistent exception hierarchy for definition problems, agent
invocation failures, budget aborts and lookup/state errors.
"""

from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from agentchain.models.chain_models import ValidationResult


class ChainError(Exception):
    """
    Base exception for all chain orchestration errors.

    Provides common error attributes and recovery guidance.
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None, recoverable: bool = True):
        """
        Initialize chain error.

        Args:
            message: Human-readable error description
            context: Additional context data for debugging
            recoverable: Whether this error allows for graceful recovery
        """
        super().__init__(message)
        self.context = context or {}
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": str(self),
            "context": self.context,
            "recoverable": self.recoverable
        }


class ChainDefinitionError(ChainError):
    """
    Structural problem in a chain definition.

    Raised by create/validate paths only; never reaches the execution engine.
    """

    def __init__(self, message: str, validation: Optional["ValidationResult"] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=False)
        self.validation = validation

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        if self.validation is not None:
            result["errors"] = [issue.model_dump(mode="json") for issue in self.validation.errors]
        return result


class StepInvocationError(ChainError):
    """
    Agent capability failed for one attempt.

    Recoverable through the retry policy; surfaces only as the step's
    final ``error`` once attempts are exhausted.
    """

    def __init__(self, message: str, step_number: Optional[int] = None, agent_type: Optional[str] = None,
                 context: Optional[Dict[str, Any]] = None):
        super().__init__(message, context, recoverable=True)
        self.step_number = step_number
        self.agent_type = agent_type

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "step_number": self.step_number,
            "agent_type": self.agent_type
        })
        return result


class StepTimeoutError(StepInvocationError):
    """Agent invocation did not return within the step timeout."""

    def __init__(self, step_number: int, agent_type: str, timeout_seconds: float):
        super().__init__(
            f"Step {step_number} ({agent_type}) timed out after {timeout_seconds}s",
            step_number=step_number,
            agent_type=agent_type,
            context={"timeout_seconds": timeout_seconds}
        )
        self.timeout_seconds = timeout_seconds


class BudgetExceededError(ChainError):
    """
    Dispatching a step would push the chain past its budget.

    Always fatal to the execution and never retried.
    """

    def __init__(self, step_number: int, spent: float, estimated_cost: float, budget_limit: float):
        super().__init__(
            f"Budget exceeded before step {step_number}: spent {spent:.4f} + "
            f"estimated {estimated_cost:.4f} > limit {budget_limit:.4f}",
            recoverable=False
        )
        self.step_number = step_number
        self.spent = spent
        self.estimated_cost = estimated_cost
        self.budget_limit = budget_limit

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "step_number": self.step_number,
            "spent": self.spent,
            "estimated_cost": self.estimated_cost,
            "budget_limit": self.budget_limit
        })
        return result


class ChainNotFoundError(ChainError):
    """Requested chain does not exist."""

    def __init__(self, chain_id: str):
        super().__init__(f"Chain {chain_id} not found", context={"chain_id": chain_id}, recoverable=False)
        self.chain_id = chain_id


class ExecutionNotFoundError(ChainError):
    """Requested execution does not exist."""

    def __init__(self, execution_id: str):
        super().__init__(f"Execution {execution_id} not found", context={"execution_id": execution_id},
                         recoverable=False)
        self.execution_id = execution_id


class ExecutionStateError(ChainError):
    """Operation is not allowed in the execution's current status."""

    def __init__(self, message: str, execution_id: str, status: str):
        super().__init__(message, context={"execution_id": execution_id, "status": status}, recoverable=False)
        self.execution_id = execution_id
        self.status = status
