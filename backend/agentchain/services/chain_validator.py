"""
Structural validation of chain definitions.

Validation is a pure function of the definition: it never touches storage
and returns every problem it finds rather than stopping at the first one.
Acyclicity follows from the ordering rule (a step may only depend on
lower-numbered steps), so no separate cycle search is needed.
"""

from collections import Counter
from typing import List, Optional

from agentchain.config.settings import Settings, get_settings
from agentchain.models.chain_models import ChainDefinition, ValidationIssue, ValidationResult
from agentchain.models.constants import ChainType, ExecutionMode
from agentchain.services.exceptions import ChainDefinitionError

# Error codes reported in ValidationIssue.code
NO_STEPS = "no_steps"
DUPLICATE_STEP = "duplicate_step"
NON_CONTIGUOUS_STEPS = "non_contiguous_steps"
UNKNOWN_DEPENDENCY = "unknown_dependency"
CIRCULAR_DEPENDENCY = "circular_dependency"
UNKNOWN_REQUIRED_STEP = "unknown_required_step"


def validate(definition: ChainDefinition, settings: Optional[Settings] = None) -> ValidationResult:
    """
    Validate a chain definition.

    Checks, in order: at least one step exists; step numbers form the range
    ``[0, n)``; every dependency names a declared, strictly lower step. Then
    adds warnings and suggestions that do not affect validity.

    Args:
        definition: Chain definition to check
        settings: Source of the advice thresholds (defaults to global settings)

    Returns:
        ValidationResult with is_valid set when no errors were found
    """
    settings = settings or get_settings()
    errors: List[ValidationIssue] = []
    warnings: List[str] = []
    suggestions: List[str] = []

    steps = definition.steps
    if not steps:
        errors.append(ValidationIssue(code=NO_STEPS, message="Chain must have at least one step"))
        return ValidationResult(is_valid=False, errors=errors)

    numbers = [step.step_number for step in steps]
    for number, count in sorted(Counter(numbers).items()):
        if count > 1:
            errors.append(ValidationIssue(
                code=DUPLICATE_STEP,
                message=f"Step number {number} is declared {count} times",
                step_number=number,
            ))

    declared = set(numbers)
    if declared != set(range(len(steps))):
        errors.append(ValidationIssue(
            code=NON_CONTIGUOUS_STEPS,
            message="Step numbering must be sequential starting from 0",
        ))

    for step in definition.ordered_steps:
        for dependency in sorted(step.depends_on):
            if dependency not in declared:
                errors.append(ValidationIssue(
                    code=UNKNOWN_DEPENDENCY,
                    message=f"Step {step.step_number} depends on non-existent step {dependency}",
                    step_number=step.step_number,
                ))
            if dependency >= step.step_number:
                errors.append(ValidationIssue(
                    code=CIRCULAR_DEPENDENCY,
                    message=f"Step {step.step_number} cannot depend on step {dependency} (circular dependency)",
                    step_number=step.step_number,
                ))

    criteria = definition.success_criteria
    for required in criteria.required_steps:
        if required not in declared:
            errors.append(ValidationIssue(
                code=UNKNOWN_REQUIRED_STEP,
                message=f"Success criteria require non-existent step {required}",
                step_number=required,
            ))
    if criteria.min_steps_completed is not None and criteria.min_steps_completed > len(steps):
        warnings.append(
            f"min_steps_completed ({criteria.min_steps_completed}) exceeds the number of steps ({len(steps)}); "
            "executions can never succeed"
        )

    if definition.chain_type != ChainType.CONDITIONAL and any(step.conditions for step in steps):
        warnings.append("Step conditions are evaluated even though the chain type is not CONDITIONAL")

    if definition.budget_limit is not None:
        declared_cost = sum(step.estimated_cost or 0.0 for step in steps)
        if declared_cost > definition.budget_limit:
            warnings.append(
                f"Declared step cost estimates ({declared_cost:.4f}) exceed the budget limit "
                f"({definition.budget_limit:.4f})"
            )

    if len(steps) > settings.split_suggestion_threshold:
        suggestions.append("Consider breaking down complex chains into smaller, reusable chains")
    if definition.execution_mode == ExecutionMode.SEQUENTIAL and len(steps) > settings.parallel_suggestion_threshold:
        suggestions.append("Consider parallel execution for better performance")

    return ValidationResult(
        is_valid=not errors,
        errors=errors,
        warnings=warnings,
        suggestions=suggestions,
    )


def ensure_valid(definition: ChainDefinition, settings: Optional[Settings] = None) -> ValidationResult:
    """
    Validate and raise on any structural error.

    Raises:
        ChainDefinitionError: If the definition is not valid
    """
    result = validate(definition, settings)
    if not result.is_valid:
        raise ChainDefinitionError(
            f"Invalid chain '{definition.name}': " + "; ".join(result.error_messages),
            validation=result,
        )
    return result
