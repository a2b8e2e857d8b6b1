"""
Analytics Controller

Chain-level performance reporting: trends, the agent/chain heatmap,
handoff patterns and health scoring.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from agentchain.controllers.dependencies import get_orchestrator, to_http_exception
from agentchain.models.api_models import ErrorResponse
from agentchain.models.performance_models import (
    ChainHealth,
    ChainPerformanceReport,
    HandoffPatternAnalysis,
    PerformanceHeatmap,
    TimeRange,
)
from agentchain.services.chain_orchestrator import ChainOrchestrator

router = APIRouter(prefix="/api/v1/analytics", tags=["analytics"])


def _time_range(start_date_us: Optional[int], end_date_us: Optional[int]) -> Optional[TimeRange]:
    if start_date_us is None and end_date_us is None:
        return None
    if start_date_us is not None and end_date_us is not None and start_date_us > end_date_us:
        raise HTTPException(status_code=400, detail="start_date_us must not be after end_date_us")
    return TimeRange(start_us=start_date_us, end_us=end_date_us)


@router.get(
    "/chains/{chain_id}/performance",
    response_model=ChainPerformanceReport,
    responses={404: {"model": ErrorResponse, "description": "Chain not found"}},
    summary="Chain Performance Report",
    description="Aggregates and trends over the chain's terminal executions.",
)
async def analyze_chain(
    *,
    chain_id: str = Path(..., description="Chain identifier"),
    start_date_us: Optional[int] = Query(None, description="Executions started at or after this timestamp"),
    end_date_us: Optional[int] = Query(None, description="Executions started at or before this timestamp"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ChainPerformanceReport:
    try:
        return orchestrator.analyze_chain(chain_id, _time_range(start_date_us, end_date_us))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "analyze chain") from e


@router.get(
    "/heatmap",
    response_model=PerformanceHeatmap,
    summary="Performance Heatmap",
    description="""
    Agent-type by chain grid of average step time, cost and success rate.

    Omit `chain_id` to include every chain.
    """
)
async def generate_heatmap(
    *,
    chain_id: Optional[List[str]] = Query(None, description="Chains to include (repeatable)"),
    start_date_us: Optional[int] = Query(None),
    end_date_us: Optional[int] = Query(None),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> PerformanceHeatmap:
    try:
        return orchestrator.generate_heatmap(chain_id, _time_range(start_date_us, end_date_us))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "generate heatmap") from e


@router.get(
    "/chains/{chain_id}/handoff-patterns",
    response_model=HandoffPatternAnalysis,
    responses={404: {"model": ErrorResponse, "description": "Chain not found"}},
    summary="Handoff Patterns",
)
async def analyze_handoff_patterns(
    *,
    chain_id: str = Path(..., description="Chain identifier"),
    start_date_us: Optional[int] = Query(None),
    end_date_us: Optional[int] = Query(None),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> HandoffPatternAnalysis:
    try:
        return orchestrator.analyze_handoff_patterns(chain_id, _time_range(start_date_us, end_date_us))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "analyze handoff patterns") from e


@router.get(
    "/chains/{chain_id}/health",
    response_model=ChainHealth,
    responses={404: {"model": ErrorResponse, "description": "Chain not found"}},
    summary="Chain Health",
)
async def get_chain_health(
    *,
    chain_id: str = Path(..., description="Chain identifier"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ChainHealth:
    try:
        return orchestrator.get_chain_health(chain_id)
    except Exception as e:
        raise to_http_exception(e, "compute chain health") from e
