"""
Execution Controller

FastAPI controller for chain executions: listing, full records, cancellation,
handoff history and per-execution performance analysis.
Uses Unix timestamps (microseconds since epoch) throughout.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from agentchain.controllers.dependencies import get_orchestrator, to_http_exception
from agentchain.models.api_models import CancelExecutionResponse, ErrorResponse, ExecutionList
from agentchain.models.constants import ExecutionStatus
from agentchain.models.execution_models import ChainExecutionRecord, HandoffRecord
from agentchain.models.performance_models import Bottleneck, ExecutionMetrics
from agentchain.services.chain_orchestrator import ChainOrchestrator
from agentchain.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/executions", tags=["executions"])


@router.get(
    "",
    response_model=ExecutionList,
    responses={400: {"model": ErrorResponse, "description": "Invalid filter parameters"}},
    summary="List Executions",
    description="""
    List executions, newest first.

    **Filtering Support:**
    - Multiple filters use AND logic
    - `status` may be repeated to match several statuses
    - Time range applies to `started_at_us` (microseconds since epoch UTC)
    """
)
async def list_executions(
    *,
    chain_id: Optional[str] = Query(None, description="Filter by chain"),
    status: Optional[List[ExecutionStatus]] = Query(None, description="Filter by status(es)"),
    start_date_us: Optional[int] = Query(None, description="Executions started at or after this timestamp"),
    end_date_us: Optional[int] = Query(None, description="Executions started at or before this timestamp"),
    limit: int = Query(100, ge=1, le=500, description="Maximum number of executions"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ExecutionList:
    try:
        if start_date_us is not None and end_date_us is not None and start_date_us > end_date_us:
            raise HTTPException(status_code=400, detail="start_date_us must not be after end_date_us")

        executions = orchestrator.list_executions(chain_id, status, start_date_us, end_date_us, limit)
        return ExecutionList(executions=executions, total=len(executions))
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "list executions") from e


@router.get(
    "/{execution_id}",
    response_model=ChainExecutionRecord,
    responses={404: {"model": ErrorResponse, "description": "Execution not found"}},
    summary="Get Execution",
)
async def get_execution(
    *,
    execution_id: str = Path(..., description="Execution identifier"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ChainExecutionRecord:
    try:
        return orchestrator.get_execution(execution_id)
    except Exception as e:
        raise to_http_exception(e, "retrieve execution") from e


@router.post(
    "/{execution_id}/cancel",
    response_model=CancelExecutionResponse,
    responses={
        404: {"model": ErrorResponse, "description": "Execution not found"},
        409: {"model": ErrorResponse, "description": "Execution already finished"},
    },
    summary="Cancel Execution",
)
async def cancel_execution(
    *,
    execution_id: str = Path(..., description="Execution identifier"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> CancelExecutionResponse:
    """
    Request cancellation; in-flight steps are interrupted and every unfinished
    step ends SKIPPED once the execution reaches CANCELLED.
    """
    try:
        return await orchestrator.cancel_execution(execution_id)
    except Exception as e:
        raise to_http_exception(e, "cancel execution") from e


@router.get(
    "/{execution_id}/handoffs",
    response_model=List[HandoffRecord],
    responses={404: {"model": ErrorResponse, "description": "Execution not found"}},
    summary="Get Handoff History",
    description="Every handoff of the execution in sequence order.",
)
async def get_handoff_history(
    *,
    execution_id: str = Path(..., description="Execution identifier"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> List[HandoffRecord]:
    try:
        return orchestrator.get_handoff_history(execution_id)
    except Exception as e:
        raise to_http_exception(e, "retrieve handoff history") from e


@router.get(
    "/{execution_id}/metrics",
    response_model=ExecutionMetrics,
    responses={
        404: {"model": ErrorResponse, "description": "Execution not found"},
        409: {"model": ErrorResponse, "description": "Execution still running"},
    },
    summary="Get Execution Performance Metrics",
)
async def get_performance_metrics(
    *,
    execution_id: str = Path(..., description="Execution identifier"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ExecutionMetrics:
    try:
        return orchestrator.get_performance_metrics(execution_id)
    except Exception as e:
        raise to_http_exception(e, "analyze execution") from e


@router.get(
    "/{execution_id}/bottlenecks",
    response_model=List[Bottleneck],
    responses={
        404: {"model": ErrorResponse, "description": "Execution not found"},
        409: {"model": ErrorResponse, "description": "Execution still running"},
    },
    summary="Detect Bottlenecks",
    description="Thresholds not given fall back to the configured defaults.",
)
async def detect_bottlenecks(
    *,
    execution_id: str = Path(..., description="Execution identifier"),
    time_threshold_ms: Optional[int] = Query(None, gt=0),
    cost_threshold: Optional[float] = Query(None, gt=0),
    quality_threshold: Optional[float] = Query(None, ge=0, le=1),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> List[Bottleneck]:
    try:
        overrides = {
            key: value
            for key, value in (
                ("time_threshold_ms", time_threshold_ms),
                ("cost_threshold", cost_threshold),
                ("quality_threshold", quality_threshold),
            )
            if value is not None
        }
        thresholds = orchestrator.analyzer.default_thresholds.model_copy(update=overrides)
        return orchestrator.detect_bottlenecks(execution_id, thresholds)
    except Exception as e:
        raise to_http_exception(e, "detect bottlenecks") from e


@router.get(
    "/{execution_id}/recommendations",
    response_model=List[str],
    responses={
        404: {"model": ErrorResponse, "description": "Execution not found"},
        409: {"model": ErrorResponse, "description": "Execution still running"},
    },
    summary="Get Optimization Recommendations",
)
async def get_recommendations(
    *,
    execution_id: str = Path(..., description="Execution identifier"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> List[str]:
    try:
        return orchestrator.get_recommendations(execution_id)
    except Exception as e:
        raise to_http_exception(e, "generate recommendations") from e
