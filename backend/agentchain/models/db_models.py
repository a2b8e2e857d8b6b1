"""
Database models for chain definitions and execution history.

Defines SQLModel table classes for stored chains, their executions, the
per-step execution rows and the append-only handoff log. Timestamps are Unix
microseconds (BIGINT) for consistency with the rest of the system.
"""

import uuid
from typing import Any, Optional

from sqlalchemy import JSON, Float, ForeignKey, String
from sqlalchemy.dialects.postgresql import BIGINT
from sqlmodel import Column, Field, Index, SQLModel

from agentchain.models.constants import ExecutionStatus, StepStatus
from agentchain.utils.timestamp import now_us


class AgentChain(SQLModel, table=True):
    """A stored, validated chain definition."""

    __tablename__ = "agent_chains"

    __table_args__ = (
        Index('ix_agent_chains_name', 'name'),
        Index('ix_agent_chains_created_at', 'created_at_us'),
    )

    chain_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        description="Unique identifier for the chain"
    )

    name: str = Field(description="Human-readable chain name")

    chain_type: str = Field(description="Structural chain type")

    execution_mode: str = Field(description="How ready steps are dispatched")

    definition: dict = Field(
        default_factory=dict,
        sa_column=Column[Any](JSON),
        description="Full ChainDefinition as JSON"
    )

    created_by: Optional[str] = Field(default=None, max_length=255)

    created_at_us: int = Field(
        default_factory=now_us,
        sa_column=Column[Any](BIGINT),
        description="Creation timestamp (microseconds since epoch UTC)"
    )


class ChainExecution(SQLModel, table=True):
    """
    One run of a chain.

    Holds the aggregate fields; per-step rows and handoffs live in their own
    tables keyed by execution_id.
    """

    __tablename__ = "chain_executions"

    __table_args__ = (
        Index('ix_chain_executions_chain_id', 'chain_id'),
        Index('ix_chain_executions_status', 'status'),
        # Most common analyzer query: one chain's executions in a time window
        Index('ix_chain_executions_chain_started', 'chain_id', 'started_at_us'),
        Index('ix_chain_executions_status_started', 'status', 'started_at_us'),
    )

    execution_id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True
    )

    chain_id: str = Field(
        sa_column=Column(String, ForeignKey("agent_chains.chain_id", ondelete="CASCADE"))
    )

    chain_name: str = Field(description="Chain name at the time of execution")

    execution_number: int = Field(default=1, description="1-based run counter per chain")

    status: str = Field(
        default=ExecutionStatus.PENDING.value,
        description=f"Execution status ({', '.join(ExecutionStatus.values())})"
    )

    context: dict = Field(
        default_factory=dict,
        sa_column=Column[Any](JSON),
        description="ChainExecutionContext as JSON"
    )

    total_cost: float = Field(default=0.0, sa_column=Column(Float, nullable=False, default=0.0))

    success_rate: float = Field(default=0.0, sa_column=Column(Float, nullable=False, default=0.0))

    budget_limit: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))

    created_at_us: int = Field(
        default_factory=now_us,
        sa_column=Column[Any](BIGINT)
    )

    started_at_us: Optional[int] = Field(
        default=None,
        sa_column=Column(BIGINT),
        description="When the execution entered RUNNING (microseconds since epoch UTC)"
    )

    completed_at_us: Optional[int] = Field(
        default=None,
        sa_column=Column(BIGINT)
    )

    error_details: Optional[dict] = Field(default=None, sa_column=Column[Any](JSON))

    final_result: Optional[dict] = Field(default=None, sa_column=Column[Any](JSON))


class StepExecution(SQLModel, table=True):
    """State of one step within an execution."""

    __tablename__ = "step_executions"

    __table_args__ = (
        Index('ix_step_executions_execution_step', 'execution_id', 'step_number', unique=True),
        Index('ix_step_executions_agent_type', 'agent_type'),
    )

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True
    )

    execution_id: str = Field(
        sa_column=Column(String, ForeignKey("chain_executions.execution_id", ondelete="CASCADE"))
    )

    step_number: int

    step_name: str

    agent_type: str

    status: str = Field(default=StepStatus.PENDING.value)

    attempt_count: int = Field(default=0)

    cost: float = Field(default=0.0, sa_column=Column(Float, nullable=False, default=0.0))

    execution_time_ms: int = Field(default=0)

    started_at_us: Optional[int] = Field(default=None, sa_column=Column(BIGINT))

    completed_at_us: Optional[int] = Field(default=None, sa_column=Column(BIGINT))

    input_data: Optional[dict] = Field(default=None, sa_column=Column[Any](JSON))

    output_data: Optional[dict] = Field(default=None, sa_column=Column[Any](JSON))

    error: Optional[str] = Field(default=None)

    confidence: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))

    quality_score: Optional[float] = Field(default=None, sa_column=Column(Float, nullable=True))

    skip_reason: Optional[str] = Field(default=None)


class AgentHandoff(SQLModel, table=True):
    """Append-only handoff log entry."""

    __tablename__ = "agent_handoffs"

    __table_args__ = (
        Index('ix_agent_handoffs_execution_sequence', 'execution_id', 'sequence_number', unique=True),
    )

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True
    )

    execution_id: str = Field(
        sa_column=Column(String, ForeignKey("chain_executions.execution_id", ondelete="CASCADE"))
    )

    sequence_number: int

    from_step: Optional[int] = Field(default=None)

    to_step: int

    from_agent: Optional[str] = Field(default=None)

    to_agent: str

    handoff_type: str

    payload: dict = Field(default_factory=dict, sa_column=Column[Any](JSON))

    data_size: int = Field(default=0)

    timestamp_us: int = Field(
        default_factory=now_us,
        sa_column=Column[Any](BIGINT)
    )
