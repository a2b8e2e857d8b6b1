"""
Performance analysis models.

Derived, read-only views computed from terminal execution records.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from agentchain.models.constants import (
    AgentType,
    BottleneckType,
    ExecutionStatus,
    HealthStatus,
    Severity,
    TrendDirection,
)


class TimeRange(BaseModel):
    """Inclusive window over execution start times (microseconds since epoch UTC)."""

    start_us: Optional[int] = None
    end_us: Optional[int] = None

    @model_validator(mode="after")
    def check_order(self) -> "TimeRange":
        if self.start_us is not None and self.end_us is not None and self.start_us > self.end_us:
            raise ValueError("start_us must not be after end_us")
        return self


class BottleneckThresholds(BaseModel):
    """Per-step limits above (or, for quality, below) which a step is flagged."""

    time_threshold_ms: int = Field(default=60000, gt=0)
    cost_threshold: float = Field(default=0.1, gt=0)
    quality_threshold: float = Field(default=0.7, ge=0, le=1)


class Bottleneck(BaseModel):
    step_number: int
    agent_type: AgentType
    type: BottleneckType
    severity: Severity
    value: float
    threshold: float
    impact: float = Field(..., ge=0, le=1, description="Share of chain time/cost, or quality deficit")
    description: str
    suggestion: str


class AgentPerformance(BaseModel):
    agent_type: AgentType
    step_count: int
    average_time_ms: float
    total_cost: float
    success_rate: float
    average_quality: Optional[float] = None


class CostBreakdownItem(BaseModel):
    step_number: int
    agent_type: AgentType
    cost: float
    percentage: float


class CostAnalysis(BaseModel):
    total_cost: float
    cost_per_second: float
    breakdown: List[CostBreakdownItem] = Field(default_factory=list)
    optimizations: List[str] = Field(default_factory=list)


class QualityAnalysis(BaseModel):
    average_quality: Optional[float] = None
    average_confidence: Optional[float] = None
    low_quality_steps: List[int] = Field(default_factory=list)


class StepWaitTime(BaseModel):
    step_number: int
    wait_ms: int


class TimelineAnalysis(BaseModel):
    critical_path: List[int] = Field(default_factory=list)
    critical_path_ms: int = 0
    wait_times: List[StepWaitTime] = Field(default_factory=list)
    parallelization_opportunities: List[str] = Field(default_factory=list)


class ExecutionMetrics(BaseModel):
    """Full analysis of one terminal execution."""

    execution_id: str
    chain_id: str
    status: ExecutionStatus
    step_count: int
    total_execution_time_ms: int
    total_cost: float
    success_rate: float
    average_step_time_ms: float
    agent_performance: List[AgentPerformance] = Field(default_factory=list)
    cost_analysis: CostAnalysis
    quality_analysis: QualityAnalysis
    timeline: TimelineAnalysis
    bottlenecks: List[Bottleneck] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class PerformanceTrend(BaseModel):
    metric: str
    direction: TrendDirection
    slope: float
    relative_slope: float
    sample_size: int


class ChainPerformanceSummary(BaseModel):
    chain_id: str
    execution_count: int
    completed_count: int
    success_rate: float
    average_execution_time_ms: float
    average_cost: float
    total_cost: float
    average_step_success_rate: float


class ChainPerformanceReport(BaseModel):
    chain_id: str
    time_range: TimeRange
    summary: ChainPerformanceSummary
    trends: List[PerformanceTrend] = Field(default_factory=list)


class TimeHeatmapCell(BaseModel):
    hour: int = Field(..., ge=0, le=23)
    average_time_ms: float
    step_count: int


class AgentHeatmapCell(BaseModel):
    agent_type: AgentType
    average_time_ms: float
    average_cost: float
    success_rate: float
    step_count: int
    intensity: float = Field(..., ge=0, le=1, description="Average time normalized against the slowest agent")


class CostHeatmapCell(BaseModel):
    step_number: int
    agent_type: AgentType
    average_cost: float
    step_count: int


class QualityHeatmapCell(BaseModel):
    step_number: int
    average_quality: Optional[float] = None
    average_confidence: Optional[float] = None
    sample_count: int


class PerformanceHeatmap(BaseModel):
    chain_ids: List[str]
    time_range: TimeRange
    execution_count: int
    time_heatmap: List[TimeHeatmapCell] = Field(default_factory=list)
    agent_heatmap: List[AgentHeatmapCell] = Field(default_factory=list)
    cost_heatmap: List[CostHeatmapCell] = Field(default_factory=list)
    quality_heatmap: List[QualityHeatmapCell] = Field(default_factory=list)


class AgentPairStat(BaseModel):
    from_agent: Optional[AgentType] = None
    to_agent: AgentType
    count: int
    average_data_size: float


class HandoffPatternAnalysis(BaseModel):
    chain_id: str
    total_handoffs: int
    by_type: Dict[str, int] = Field(default_factory=dict)
    average_data_size: float = 0.0
    direct_ratio: float = 0.0
    agent_pairs: List[AgentPairStat] = Field(default_factory=list)


class ChainHealth(BaseModel):
    chain_id: str
    status: HealthStatus
    health_score: int = Field(..., ge=0, le=100)
    issues: List[str] = Field(default_factory=list)
    success_rate: Optional[float] = None
    average_execution_time_ms: Optional[float] = None
    execution_count: int = 0
    stuck_executions: int = 0
