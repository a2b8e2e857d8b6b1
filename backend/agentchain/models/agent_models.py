"""
Agent invocation contract models.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class AgentInvocationResult(BaseModel):
    """What an agent capability returns for one attempt."""

    success: bool
    output: Dict[str, Any] = Field(default_factory=dict)
    cost: float = Field(default=0.0, ge=0)
    error: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    quality_score: Optional[float] = Field(default=None, ge=0, le=1)
