"""
Constants for the agentchain application.

This module defines the enumerations shared by chain definitions, the
execution engine, persistence and the performance analyzer.
"""

from enum import Enum
from typing import Dict, List


class ChainType(str, Enum):
    """Structural shape of a chain."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    CONDITIONAL = "conditional"
    LOOP = "loop"
    FEEDBACK = "feedback"
    HYBRID = "hybrid"


class ExecutionMode(str, Enum):
    """How ready steps are dispatched."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    ADAPTIVE = "adaptive"
    BATCH = "batch"

    @classmethod
    def concurrent_modes(cls) -> List['ExecutionMode']:
        """Modes that dispatch a whole wave at once."""
        return [cls.PARALLEL, cls.ADAPTIVE, cls.BATCH]


class AgentType(str, Enum):
    """Fixed set of agent capabilities a step can invoke."""

    CONTENT = "CONTENT"
    SEO = "SEO"
    EMAIL_MARKETING = "EMAIL_MARKETING"
    SOCIAL_POSTING = "SOCIAL_POSTING"
    CUSTOMER_SUPPORT = "CUSTOMER_SUPPORT"
    AD = "AD"
    OUTREACH = "OUTREACH"
    TREND = "TREND"
    INSIGHT = "INSIGHT"
    DESIGN = "DESIGN"
    BRAND_VOICE = "BRAND_VOICE"
    GOAL_PLANNER = "GOAL_PLANNER"
    PATTERN_MINER = "PATTERN_MINER"
    SEGMENT_ANALYZER = "SEGMENT_ANALYZER"


# Cost per 1K tokens; multiplied by a nominal token count to estimate a step
AGENT_COST_PER_1K_TOKENS: Dict[AgentType, float] = {
    AgentType.CONTENT: 0.04,
    AgentType.SEO: 0.03,
    AgentType.EMAIL_MARKETING: 0.05,
    AgentType.SOCIAL_POSTING: 0.03,
    AgentType.CUSTOMER_SUPPORT: 0.04,
    AgentType.AD: 0.06,
    AgentType.OUTREACH: 0.04,
    AgentType.TREND: 0.03,
    AgentType.INSIGHT: 0.05,
    AgentType.DESIGN: 0.07,
    AgentType.BRAND_VOICE: 0.04,
    AgentType.GOAL_PLANNER: 0.05,
    AgentType.PATTERN_MINER: 0.04,
    AgentType.SEGMENT_ANALYZER: 0.05,
}

NOMINAL_TOKENS_PER_STEP = 1000


class ExecutionStatus(str, Enum):
    """Lifecycle of a chain execution."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"

    @classmethod
    def get_terminal_statuses(cls) -> List['ExecutionStatus']:
        """Statuses after which the record is immutable."""
        return [cls.COMPLETED, cls.FAILED, cls.CANCELLED, cls.TIMEOUT]

    @classmethod
    def values(cls) -> List[str]:
        """All status values as strings."""
        return [status.value for status in cls]

    @classmethod
    def terminal_values(cls) -> List[str]:
        """Terminal status values as strings."""
        return [status.value for status in cls.get_terminal_statuses()]

    def is_terminal(self) -> bool:
        return self in self.get_terminal_statuses()


class StepStatus(str, Enum):
    """Lifecycle of a single step within an execution."""

    PENDING = "pending"
    RUNNING = "running"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @classmethod
    def get_terminal_statuses(cls) -> List['StepStatus']:
        return [cls.COMPLETED, cls.FAILED, cls.SKIPPED]

    def is_terminal(self) -> bool:
        return self in self.get_terminal_statuses()


class SkipReason(str, Enum):
    """Why a step ended SKIPPED."""

    CONDITION_FALSE = "condition_false"
    UNREACHABLE = "unreachable"
    CANCELLED = "cancelled"
    TIMEOUT = "timeout"
    BUDGET_EXCEEDED = "budget_exceeded"


class HandoffType(str, Enum):
    """Classification of a data transfer between two steps."""

    DIRECT = "direct"
    TRANSFORMED = "transformed"
    FILTERED = "filtered"
    AGGREGATED = "aggregated"


class TriggerType(str, Enum):
    """What started an execution."""

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    EVENT = "event"
    API = "api"
    WEBHOOK = "webhook"


class ConditionOperator(str, Enum):
    """Comparison operators usable in step conditions."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"


class PolicyAction(str, Enum):
    """Outcome of the budget and retry policy."""

    PROCEED = "proceed"
    RETRY = "retry"
    ABORT_STEP = "abort_step"
    ABORT_CHAIN = "abort_chain"


class BottleneckType(str, Enum):
    """Metric a bottleneck was detected on."""

    TIME = "time"
    COST = "cost"
    QUALITY = "quality"


class Severity(str, Enum):
    """How far past its threshold a bottleneck is."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TrendDirection(str, Enum):
    """Direction of a metric over a series of executions."""

    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class HealthStatus(str, Enum):
    """Overall health classification of a chain."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"


class ChainCategory(str, Enum):
    """Marketing area a chain belongs to, used by templates."""

    CONTENT_CREATION = "content_creation"
    LEAD_GENERATION = "lead_generation"
    SEO_OPTIMIZATION = "seo_optimization"
    SOCIAL_MEDIA = "social_media"
    EMAIL_MARKETING = "email_marketing"
    CUSTOMER_SUPPORT = "customer_support"
    CUSTOM = "custom"
