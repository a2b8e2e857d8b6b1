"""
Chain definition models.

A ChainDefinition is an immutable template of agent steps plus the success,
retry, timeout and budget policy that governs every execution of it.
Structural rules (contiguous numbering, dependency ordering) are checked by
the chain validator rather than here, so that a malformed definition can be
reported with every problem at once.
"""

from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer, model_validator

from agentchain.models.constants import (
    AgentType,
    ChainCategory,
    ChainType,
    ConditionOperator,
    ExecutionMode,
    TriggerType,
)


class StepCondition(BaseModel):
    """Predicate evaluated against the accumulated execution context."""

    model_config = ConfigDict(frozen=True)

    field: str = Field(..., min_length=1, description="Dotted path, e.g. 'step_0.score' or 'trigger.priority'")
    operator: ConditionOperator
    value: Any = None


class SuccessCriteria(BaseModel):
    """Rules deciding COMPLETED vs FAILED once every step has resolved."""

    model_config = ConfigDict(frozen=True)

    min_steps_completed: Optional[int] = Field(default=None, ge=0)
    required_steps: List[int] = Field(default_factory=list)
    min_quality_score: Optional[float] = Field(default=None, ge=0, le=1)
    max_error_rate: Optional[float] = Field(default=None, ge=0, le=1)

    def is_empty(self) -> bool:
        return (
            self.min_steps_completed is None
            and not self.required_steps
            and self.min_quality_score is None
            and self.max_error_rate is None
        )


class StepDefinition(BaseModel):
    """One node of a chain: a single agent invocation."""

    model_config = ConfigDict(frozen=True)

    step_number: int
    step_name: str = ""
    agent_type: AgentType
    agent_config: Dict[str, Any] = Field(default_factory=dict)
    depends_on: Set[int] = Field(default_factory=set)
    conditions: List[StepCondition] = Field(default_factory=list)
    retries: Optional[int] = Field(default=None, ge=0, le=10, description="Overrides the chain's max_retries")
    timeout_seconds: Optional[float] = Field(default=None, ge=1, description="Per-attempt timeout")
    input_mapping: Dict[str, str] = Field(default_factory=dict, description="agent input field -> envelope field")
    output_mapping: Dict[str, str] = Field(default_factory=dict, description="envelope field -> agent output field")
    estimated_cost: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def default_step_name(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("step_name") and "step_number" in data:
            data = {**data, "step_name": f"step_{data['step_number']}"}
        return data

    @field_serializer("depends_on")
    def serialize_depends_on(self, depends_on: Set[int]) -> List[int]:
        return sorted(depends_on)

    @property
    def output_key(self) -> str:
        """Key under which this step's output appears in the execution context."""
        return f"step_{self.step_number}"


class ChainDefinition(BaseModel):
    """Immutable chain template."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    chain_type: ChainType = ChainType.SEQUENTIAL
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    category: ChainCategory = ChainCategory.CUSTOM
    tags: List[str] = Field(default_factory=list)
    steps: List[StepDefinition] = Field(default_factory=list)
    success_criteria: SuccessCriteria = Field(default_factory=SuccessCriteria)
    max_retries: int = Field(default=3, ge=0, le=10)
    timeout_minutes: int = Field(default=60, ge=1, le=1440)
    budget_limit: Optional[float] = Field(default=None, gt=0)

    def get_step(self, step_number: int) -> Optional[StepDefinition]:
        for step in self.steps:
            if step.step_number == step_number:
                return step
        return None

    def max_retries_for(self, step: StepDefinition) -> int:
        """Step override wins over the chain default."""
        return step.retries if step.retries is not None else self.max_retries

    @property
    def ordered_steps(self) -> List[StepDefinition]:
        return sorted(self.steps, key=lambda s: s.step_number)


class ValidationIssue(BaseModel):
    """A single structural error found by the validator."""

    code: str
    message: str
    step_number: Optional[int] = None


class ValidationResult(BaseModel):
    """Outcome of validating a chain definition."""

    is_valid: bool
    errors: List[ValidationIssue] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)

    @property
    def error_messages(self) -> List[str]:
        return [issue.message for issue in self.errors]


class BudgetPolicy(BaseModel):
    """
    Budget settings carried by a single execution context.

    A context-level limit can only tighten the chain's own budget_limit.
    """

    model_config = ConfigDict(frozen=True)

    budget_limit: Optional[float] = Field(default=None, gt=0)
    default_step_cost: Optional[float] = Field(default=None, ge=0)

    def effective_limit(self, chain_limit: Optional[float]) -> Optional[float]:
        limits = [limit for limit in (self.budget_limit, chain_limit) if limit is not None]
        return min(limits) if limits else None


class ChainExecutionContext(BaseModel):
    """Trigger and environment an execution runs against."""

    trigger_type: TriggerType = TriggerType.MANUAL
    triggered_by: Optional[str] = None
    campaign_id: Optional[str] = None
    environment: str = "production"
    trigger_data: Dict[str, Any] = Field(default_factory=dict)
    config: Dict[str, Any] = Field(default_factory=dict)
    budget_policy: BudgetPolicy = Field(default_factory=BudgetPolicy)
