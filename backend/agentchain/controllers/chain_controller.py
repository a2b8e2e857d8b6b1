"""
Chain Controller

FastAPI controller for chain definitions: create, list, validate, execute,
plus goal-based recommendation and the built-in templates.
"""

from typing import Annotated, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Path

from agentchain.controllers.dependencies import get_orchestrator, to_http_exception
from agentchain.models.api_models import (
    ChainResponse,
    ChainSummary,
    CreateChainRequest,
    ErrorResponse,
    ExecuteChainRequest,
    ExecuteChainResponse,
)
from agentchain.models.chain_models import ChainDefinition, ValidationResult
from agentchain.models.constants import ExecutionStatus
from agentchain.models.recommendation_models import ChainRecommendation, ChainTemplate, RecommendationRequest
from agentchain.services.chain_orchestrator import ChainOrchestrator
from agentchain.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/api/v1/chains", tags=["chains"])


@router.post(
    "",
    response_model=ChainResponse,
    status_code=201,
    responses={
        400: {"model": ErrorResponse, "description": "Structurally invalid chain definition"},
        503: {"model": ErrorResponse, "description": "Service unavailable"},
    },
    summary="Create Chain",
)
async def create_chain(
    *,
    request: CreateChainRequest,
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ChainResponse:
    """
    Validate and store a chain definition.

    Raises:
        HTTPException: 400 with the validation errors when the DAG is invalid
    """
    try:
        return orchestrator.create_chain(request.definition, request.created_by)
    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "create chain") from e


@router.get(
    "",
    response_model=List[ChainSummary],
    summary="List Chains",
)
async def list_chains(
    *,
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> List[ChainSummary]:
    try:
        return orchestrator.list_chains()
    except Exception as e:
        raise to_http_exception(e, "list chains") from e


@router.post(
    "/validate",
    response_model=ValidationResult,
    summary="Validate Chain Definition",
    description="Check a definition without storing it. Always answers 200; see `is_valid`.",
)
async def validate_chain(
    *,
    definition: ChainDefinition,
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ValidationResult:
    try:
        return orchestrator.validate_chain(definition)
    except Exception as e:
        raise to_http_exception(e, "validate chain") from e


@router.get(
    "/templates",
    response_model=List[ChainTemplate],
    summary="List Chain Templates",
)
async def get_templates(
    *,
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> List[ChainTemplate]:
    try:
        return orchestrator.get_templates()
    except Exception as e:
        raise to_http_exception(e, "list templates") from e


@router.post(
    "/recommend",
    response_model=ChainRecommendation,
    summary="Recommend Chain for a Goal",
)
async def recommend_chain(
    *,
    request: RecommendationRequest,
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ChainRecommendation:
    try:
        return orchestrator.recommend_chain(request.goal, request.context, request.preferences)
    except Exception as e:
        raise to_http_exception(e, "recommend chain") from e


@router.get(
    "/{chain_id}",
    response_model=ChainResponse,
    responses={404: {"model": ErrorResponse, "description": "Chain not found"}},
    summary="Get Chain",
)
async def get_chain(
    *,
    chain_id: str = Path(..., description="Chain identifier"),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ChainResponse:
    try:
        return orchestrator.get_chain(chain_id)
    except Exception as e:
        raise to_http_exception(e, "retrieve chain") from e


@router.post(
    "/{chain_id}/execute",
    response_model=ExecuteChainResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse, "description": "Chain not found"}},
    summary="Execute Chain",
    description="""
    Start an execution in the background and return its id immediately.

    Poll `GET /api/v1/executions/{execution_id}` for progress.
    """
)
async def execute_chain(
    *,
    chain_id: str = Path(..., description="Chain identifier"),
    request: Optional[ExecuteChainRequest] = Body(default=None),
    orchestrator: Annotated[ChainOrchestrator, Depends(get_orchestrator)]
) -> ExecuteChainResponse:
    try:
        context = request.context if request is not None else None
        execution_id = await orchestrator.execute_chain(chain_id, context)
        logger.info(f"Execution {execution_id} started for chain {chain_id}")
        return ExecuteChainResponse(execution_id=execution_id, chain_id=chain_id, status=ExecutionStatus.PENDING)
    except Exception as e:
        raise to_http_exception(e, "execute chain") from e
