"""
Models for goal-based chain recommendation.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from agentchain.models.chain_models import ChainDefinition
from agentchain.models.constants import AgentType


class RecommendationPreferences(BaseModel):
    """Constraints the caller wants the recommended chain to respect."""

    max_cost: Optional[float] = Field(default=None, gt=0)
    max_steps: Optional[int] = Field(default=None, ge=1)
    prefer_parallel: bool = False
    required_agents: List[AgentType] = Field(default_factory=list)


class RecommendationRequest(BaseModel):
    goal: str = Field(..., min_length=3)
    context: Dict[str, Any] = Field(default_factory=dict)
    preferences: RecommendationPreferences = Field(default_factory=RecommendationPreferences)


class ChainTemplate(BaseModel):
    """Reusable chain blueprint offered by the recommender."""

    template_id: str
    definition: ChainDefinition
    keywords: List[str] = Field(default_factory=list)
    expected_cost: float = 0.0
    expected_duration_ms: int = 0
    success_rate: float = 0.9


class TemplateMatch(BaseModel):
    template_id: str
    score: float


class ChainRecommendation(BaseModel):
    chain_definition: ChainDefinition
    confidence: float = Field(..., ge=0, le=1)
    reasoning: List[str] = Field(default_factory=list)
    template_id: Optional[str] = None
    estimated_cost: float = 0.0
    estimated_duration_ms: int = 0
    complexity: str = "simple"
    alternatives: List[TemplateMatch] = Field(default_factory=list)
