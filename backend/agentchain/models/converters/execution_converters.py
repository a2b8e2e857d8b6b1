"""
Execution conversion utilities.

Transforms runtime pydantic records into SQLModel rows for storage and back.
Enum values are stored as strings and restored on the way out.
"""

from typing import Iterable, Optional

from agentchain.models.api_models import ChainResponse, ChainSummary, ExecutionSummary
from agentchain.models.chain_models import ChainDefinition, ChainExecutionContext
from agentchain.models.constants import (
    AgentType,
    ExecutionStatus,
    HandoffType,
    SkipReason,
    StepStatus,
)
from agentchain.models.db_models import AgentChain, AgentHandoff, ChainExecution, StepExecution
from agentchain.models.execution_models import ChainExecutionRecord, HandoffRecord, StepExecutionRecord


def record_to_execution_row(record: ChainExecutionRecord, row: Optional[ChainExecution] = None) -> ChainExecution:
    """
    Copy the aggregate fields of a record onto an execution row.

    Args:
        record: Runtime execution record
        row: Existing row to update in place; a new row is built when None

    Returns:
        The populated ChainExecution row
    """
    if row is None:
        row = ChainExecution(
            execution_id=record.execution_id,
            chain_id=record.chain_id,
            chain_name=record.chain_name,
            execution_number=record.execution_number,
        )
    row.status = record.status.value
    row.context = record.context.model_dump(mode="json")
    row.total_cost = record.total_cost
    row.success_rate = record.success_rate
    row.budget_limit = record.budget_limit
    row.started_at_us = record.started_at_us
    row.completed_at_us = record.completed_at_us
    row.error_details = record.error_details
    row.final_result = record.final_result
    return row


def step_to_row(execution_id: str, step: StepExecutionRecord, row: Optional[StepExecution] = None) -> StepExecution:
    if row is None:
        row = StepExecution(
            execution_id=execution_id,
            step_number=step.step_number,
            step_name=step.step_name,
            agent_type=step.agent_type.value,
        )
    row.status = step.status.value
    row.attempt_count = step.attempt_count
    row.cost = step.cost
    row.execution_time_ms = step.execution_time_ms
    row.started_at_us = step.started_at_us
    row.completed_at_us = step.completed_at_us
    row.input_data = step.input
    row.output_data = step.output
    row.error = step.error
    row.confidence = step.confidence
    row.quality_score = step.quality_score
    row.skip_reason = step.skip_reason.value if step.skip_reason else None
    return row


def step_row_to_record(row: StepExecution) -> StepExecutionRecord:
    return StepExecutionRecord(
        step_number=row.step_number,
        step_name=row.step_name,
        agent_type=AgentType(row.agent_type),
        status=StepStatus(row.status),
        attempt_count=row.attempt_count,
        cost=row.cost,
        execution_time_ms=row.execution_time_ms,
        started_at_us=row.started_at_us,
        completed_at_us=row.completed_at_us,
        input=row.input_data,
        output=row.output_data,
        error=row.error,
        confidence=row.confidence,
        quality_score=row.quality_score,
        skip_reason=SkipReason(row.skip_reason) if row.skip_reason else None,
    )


def handoff_to_row(execution_id: str, handoff: HandoffRecord) -> AgentHandoff:
    return AgentHandoff(
        execution_id=execution_id,
        sequence_number=handoff.sequence_number,
        from_step=handoff.from_step,
        to_step=handoff.to_step,
        from_agent=handoff.from_agent.value if handoff.from_agent else None,
        to_agent=handoff.to_agent.value,
        handoff_type=handoff.handoff_type.value,
        payload=handoff.payload,
        data_size=handoff.data_size,
        timestamp_us=handoff.timestamp_us,
    )


def handoff_row_to_record(row: AgentHandoff) -> HandoffRecord:
    return HandoffRecord(
        sequence_number=row.sequence_number,
        from_step=row.from_step,
        to_step=row.to_step,
        from_agent=AgentType(row.from_agent) if row.from_agent else None,
        to_agent=AgentType(row.to_agent),
        handoff_type=HandoffType(row.handoff_type),
        payload=row.payload or {},
        data_size=row.data_size,
        timestamp_us=row.timestamp_us,
    )


def rows_to_execution_record(
    row: ChainExecution,
    step_rows: Iterable[StepExecution],
    handoff_rows: Iterable[AgentHandoff],
) -> ChainExecutionRecord:
    """
    Reassemble a full execution record from its rows.

    Steps are ordered by step number and handoffs by sequence number, which
    is the order the engine produced them in.
    """
    steps = sorted((step_row_to_record(s) for s in step_rows), key=lambda s: s.step_number)
    handoffs = sorted((handoff_row_to_record(h) for h in handoff_rows), key=lambda h: h.sequence_number)
    return ChainExecutionRecord(
        execution_id=row.execution_id,
        chain_id=row.chain_id,
        chain_name=row.chain_name,
        execution_number=row.execution_number,
        status=ExecutionStatus(row.status),
        context=ChainExecutionContext.model_validate(row.context or {}),
        steps=steps,
        handoffs=handoffs,
        total_cost=row.total_cost,
        success_rate=row.success_rate,
        budget_limit=row.budget_limit,
        started_at_us=row.started_at_us,
        completed_at_us=row.completed_at_us,
        error_details=row.error_details,
        final_result=row.final_result,
    )


def execution_row_to_summary(row: ChainExecution) -> ExecutionSummary:
    return ExecutionSummary(
        execution_id=row.execution_id,
        chain_id=row.chain_id,
        execution_number=row.execution_number,
        status=ExecutionStatus(row.status),
        total_cost=row.total_cost,
        success_rate=row.success_rate,
        started_at_us=row.started_at_us,
        completed_at_us=row.completed_at_us,
    )


def chain_row_to_response(row: AgentChain) -> ChainResponse:
    return ChainResponse(
        chain_id=row.chain_id,
        definition=ChainDefinition.model_validate(row.definition),
        created_by=row.created_by,
        created_at_us=row.created_at_us,
    )


def chain_response_to_summary(chain: ChainResponse) -> ChainSummary:
    return ChainSummary(
        chain_id=chain.chain_id,
        name=chain.definition.name,
        chain_type=chain.definition.chain_type,
        execution_mode=chain.definition.execution_mode,
        step_count=len(chain.definition.steps),
        created_at_us=chain.created_at_us,
    )
