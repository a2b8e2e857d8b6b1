"""
Runtime execution records.

A ChainExecutionRecord is owned by the engine coroutine while the execution
runs and becomes immutable once it reaches a terminal status. The records
serialize losslessly with ``model_dump(mode="json")`` so that a stored
execution can be reloaded and its handoff log replayed.
"""

from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field

from agentchain.models.chain_models import ChainExecutionContext
from agentchain.models.constants import (
    AgentType,
    ExecutionStatus,
    HandoffType,
    SkipReason,
    StepStatus,
)


class StepExecutionRecord(BaseModel):
    """Attempt sequence of one step within an execution."""

    step_number: int
    step_name: str
    agent_type: AgentType
    status: StepStatus = StepStatus.PENDING
    attempt_count: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0)
    execution_time_ms: int = Field(default=0, ge=0)
    started_at_us: Optional[int] = None
    completed_at_us: Optional[int] = None
    input: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    confidence: Optional[float] = None
    quality_score: Optional[float] = None
    skip_reason: Optional[SkipReason] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()


class HandoffRecord(BaseModel):
    """Append-only log entry of a data transfer into a step."""

    sequence_number: int = Field(..., ge=0)
    from_step: Optional[int] = Field(default=None, description="None when the source is the initial context")
    to_step: int
    from_agent: Optional[AgentType] = None
    to_agent: AgentType
    payload: Dict[str, Any] = Field(default_factory=dict)
    handoff_type: HandoffType
    data_size: int = Field(default=0, ge=0, description="Size of the JSON-encoded payload in bytes")
    timestamp_us: int


class ChainExecutionRecord(BaseModel):
    """One run of a chain against a context."""

    execution_id: str
    chain_id: str
    chain_name: str
    execution_number: int = Field(default=1, ge=1)
    status: ExecutionStatus = ExecutionStatus.PENDING
    context: ChainExecutionContext = Field(default_factory=ChainExecutionContext)
    steps: List[StepExecutionRecord] = Field(default_factory=list)
    handoffs: List[HandoffRecord] = Field(default_factory=list)
    total_cost: float = 0.0
    success_rate: float = 0.0
    budget_limit: Optional[float] = None
    started_at_us: Optional[int] = None
    completed_at_us: Optional[int] = None
    error_details: Optional[Dict[str, Any]] = None
    final_result: Optional[Dict[str, Any]] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal()

    def get_step(self, step_number: int) -> Optional[StepExecutionRecord]:
        for step in self.steps:
            if step.step_number == step_number:
                return step
        return None

    @property
    def duration_ms(self) -> Optional[int]:
        if self.started_at_us is None or self.completed_at_us is None:
            return None
        return max(0, (self.completed_at_us - self.started_at_us) // 1000)


def merge_payloads(payloads: Iterable[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Combine handoff payloads into one step input.

    Payloads are applied in order; on key collisions the later payload wins.
    """
    merged: Dict[str, Any] = {}
    for payload in payloads:
        merged.update(payload)
    return merged


def replay_step_inputs(record: ChainExecutionRecord) -> Dict[int, Dict[str, Any]]:
    """
    Rebuild every dispatched step's input from the handoff log alone.

    Args:
        record: Execution record, typically reloaded from storage

    Returns:
        Mapping of step number to the input that step was invoked with
    """
    grouped: Dict[int, List[Dict[str, Any]]] = {}
    for handoff in sorted(record.handoffs, key=lambda h: h.sequence_number):
        grouped.setdefault(handoff.to_step, []).append(handoff.payload)
    return {step_number: merge_payloads(payloads) for step_number, payloads in grouped.items()}
