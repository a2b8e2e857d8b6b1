# Models package - minimal exports to avoid circular imports
from .chain_models import (
    BudgetPolicy,
    ChainDefinition,
    ChainExecutionContext,
    StepCondition,
    StepDefinition,
    SuccessCriteria,
    ValidationIssue,
    ValidationResult,
)
from .execution_models import (
    ChainExecutionRecord,
    HandoffRecord,
    StepExecutionRecord,
    replay_step_inputs,
)

__all__ = [
    "BudgetPolicy", "ChainDefinition", "ChainExecutionContext", "StepCondition",
    "StepDefinition", "SuccessCriteria", "ValidationIssue", "ValidationResult",
    "ChainExecutionRecord", "HandoffRecord", "StepExecutionRecord", "replay_step_inputs",
]
