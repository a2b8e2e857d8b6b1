"""
API Models for Request/Response Serialization

Defines Pydantic models for the orchestration API.
Uses Unix timestamps (microseconds since epoch) throughout.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from agentchain.models.chain_models import ChainDefinition, ChainExecutionContext
from agentchain.models.constants import ChainType, ExecutionMode, ExecutionStatus


class HealthCheckResponse(BaseModel):
    """Response for health check endpoints."""
    service: str = Field(description="Service name")
    status: str = Field(description="Service status ('healthy', 'degraded', 'unhealthy')")
    timestamp_us: int = Field(description="Health check timestamp (microseconds since epoch UTC)")
    details: Dict[str, Any] = Field(default_factory=dict, description="Additional health check details")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: str = Field(description="Error type or category")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error details")
    timestamp_us: int = Field(description="When the error occurred (microseconds since epoch UTC)")


class CreateChainRequest(BaseModel):
    definition: ChainDefinition
    created_by: Optional[str] = Field(default=None, max_length=255)


class ChainResponse(BaseModel):
    """A stored chain with its definition."""
    chain_id: str
    definition: ChainDefinition
    created_by: Optional[str] = None
    created_at_us: int


class ChainSummary(BaseModel):
    chain_id: str
    name: str
    chain_type: ChainType
    execution_mode: ExecutionMode
    step_count: int
    created_at_us: int


class ExecuteChainRequest(BaseModel):
    context: ChainExecutionContext = Field(default_factory=ChainExecutionContext)


class ExecuteChainResponse(BaseModel):
    execution_id: str
    chain_id: str
    status: ExecutionStatus


class CancelExecutionResponse(BaseModel):
    execution_id: str
    status: ExecutionStatus
    message: str


class ExecutionSummary(BaseModel):
    """Row of the execution list; the full record is available by id."""
    execution_id: str
    chain_id: str
    execution_number: int
    status: ExecutionStatus
    total_cost: float
    success_rate: float
    started_at_us: Optional[int] = None
    completed_at_us: Optional[int] = None


class ExecutionList(BaseModel):
    executions: List[ExecutionSummary] = Field(default_factory=list)
    total: int = 0
