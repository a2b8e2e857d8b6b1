"""
Step condition evaluation against the accumulated execution context.
"""

from typing import Any, Dict, Iterable, Mapping

from agentchain.models.chain_models import StepCondition
from agentchain.models.constants import ConditionOperator
from agentchain.utils.logger import get_module_logger

logger = get_module_logger(__name__)

_MISSING = object()


def resolve_path(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """
    Look up a dotted path such as ``step_0.metrics.score`` in nested mappings.

    Integer segments index into lists. Returns ``default`` when any segment
    is missing.
    """
    current: Any = data
    for segment in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(segment, _MISSING)
        elif isinstance(current, (list, tuple)) and segment.lstrip("-").isdigit():
            index = int(segment)
            current = current[index] if -len(current) <= index < len(current) else _MISSING
        else:
            current = _MISSING
        if current is _MISSING:
            return default
    return current


def evaluate_condition(condition: StepCondition, context: Mapping[str, Any]) -> bool:
    """Evaluate one condition; a missing field compares as None."""
    actual = resolve_path(context, condition.field)
    expected = condition.value
    operator = condition.operator

    if operator == ConditionOperator.EQUALS:
        return actual == expected
    if operator == ConditionOperator.NOT_EQUALS:
        return actual != expected
    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN):
        try:
            return actual > expected if operator == ConditionOperator.GREATER_THAN else actual < expected
        except TypeError:
            logger.debug(f"Condition on '{condition.field}' not comparable: {actual!r} vs {expected!r}")
            return False
    if operator == ConditionOperator.CONTAINS:
        if isinstance(actual, (str, list, tuple, set, dict)):
            try:
                return expected in actual
            except TypeError:
                return False
        return False

    raise ValueError(f"Unsupported condition operator: {operator}")


def evaluate_conditions(conditions: Iterable[StepCondition], context: Mapping[str, Any]) -> bool:
    """All conditions must hold; an empty list always holds."""
    return all(evaluate_condition(condition, context) for condition in conditions)


def build_condition_context(
    trigger_data: Dict[str, Any],
    config: Dict[str, Any],
    campaign_id: Any,
    environment: str,
    outputs: Dict[int, Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Accumulated context visible to step conditions.

    Step outputs appear under ``step_{n}``; trigger data and ad-hoc config
    under ``trigger`` and ``config``.
    """
    context: Dict[str, Any] = {
        "trigger": trigger_data,
        "config": config,
        "campaign_id": campaign_id,
        "environment": environment,
    }
    for step_number, output in outputs.items():
        context[f"step_{step_number}"] = output
    return context
