"""
Chain orchestrator - the single entry point used by the API layer.

Owns the engine, the analyzer and the recommender, runs every execution as
its own background task bounded by ``max_concurrent_executions``, and keeps
track of those tasks so they can be cancelled individually or at shutdown.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from agentchain.config.settings import Settings, get_settings
from agentchain.models.api_models import CancelExecutionResponse, ChainResponse, ChainSummary, ExecutionSummary
from agentchain.models.chain_models import ChainDefinition, ChainExecutionContext, ValidationResult
from agentchain.models.constants import ExecutionStatus, SkipReason, StepStatus
from agentchain.models.converters import chain_response_to_summary
from agentchain.models.execution_models import ChainExecutionRecord, HandoffRecord
from agentchain.models.performance_models import (
    Bottleneck,
    BottleneckThresholds,
    ChainHealth,
    ChainPerformanceReport,
    ExecutionMetrics,
    HandoffPatternAnalysis,
    PerformanceHeatmap,
    TimeRange,
)
from agentchain.models.recommendation_models import (
    ChainRecommendation,
    ChainTemplate,
    RecommendationPreferences,
)
from agentchain.services import cancellation_tracker
from agentchain.services.agent_registry import AgentCapabilityRegistry
from agentchain.services.chain_execution_engine import ChainExecutionEngine, new_execution_record
from agentchain.services.chain_recommender import ChainRecommender
from agentchain.services.chain_validator import ensure_valid, validate
from agentchain.services.exceptions import ChainNotFoundError, ExecutionNotFoundError, ExecutionStateError
from agentchain.services.history_service import ChainHistoryService
from agentchain.services.performance_analyzer import PerformanceAnalyzer
from agentchain.utils.error_details import error_payload
from agentchain.utils.logger import get_module_logger
from agentchain.utils.timestamp import now_us

logger = get_module_logger(__name__)


class ChainOrchestrator:
    """Facade over chain storage, execution, analytics and recommendation."""

    def __init__(
        self,
        history_service: ChainHistoryService,
        registry: AgentCapabilityRegistry,
        settings: Optional[Settings] = None,
        engine: Optional[ChainExecutionEngine] = None,
        recommender: Optional[ChainRecommender] = None,
    ):
        self.settings = settings or get_settings()
        self.history_service = history_service
        self.registry = registry
        self.engine = engine or ChainExecutionEngine(registry, history_service, self.settings)
        self.analyzer = PerformanceAnalyzer(history_service, self.settings)
        self.recommender = recommender or ChainRecommender()

        self._execution_slots = asyncio.Semaphore(self.settings.max_concurrent_executions)
        self._active_tasks: Dict[str, asyncio.Task] = {}
        self._active_tasks_lock = asyncio.Lock()
        logger.info(f"Chain execution concurrency limit: {self.settings.max_concurrent_executions}")

    # Chains

    def create_chain(self, definition: ChainDefinition, created_by: Optional[str] = None) -> ChainResponse:
        """
        Validate and store a chain.

        Raises:
            ChainDefinitionError: If the definition is structurally invalid
        """
        result = ensure_valid(definition, self.settings)
        for warning in result.warnings:
            logger.warning(f"Chain '{definition.name}': {warning}")
        chain = self.history_service.create_chain(definition, created_by)
        logger.info(f"Created chain {chain.chain_id} '{definition.name}' with {len(definition.steps)} steps")
        return chain

    def validate_chain(self, definition: ChainDefinition) -> ValidationResult:
        return validate(definition, self.settings)

    def get_chain(self, chain_id: str) -> ChainResponse:
        chain = self.history_service.get_chain(chain_id)
        if chain is None:
            raise ChainNotFoundError(chain_id)
        return chain

    def list_chains(self) -> List[ChainSummary]:
        return [chain_response_to_summary(chain) for chain in self.history_service.list_chains()]

    def register_configured_chains(self, definitions: Sequence[ChainDefinition]) -> List[ChainResponse]:
        """Store chains loaded from configuration, skipping names that already exist."""
        registered: List[ChainResponse] = []
        for definition in definitions:
            existing = self.history_service.get_chain_by_name(definition.name)
            if existing is not None:
                logger.info(f"Configured chain '{definition.name}' already registered as {existing.chain_id}")
                registered.append(existing)
                continue
            registered.append(self.create_chain(definition, created_by="configuration"))
        return registered

    # Executions

    async def execute_chain(self, chain_id: str, context: Optional[ChainExecutionContext] = None) -> str:
        """
        Start a chain execution in the background.

        The PENDING record is stored before this returns, so the id can be
        queried immediately.

        Returns:
            The new execution id

        Raises:
            ChainNotFoundError: Unknown chain id
        """
        chain = self.get_chain(chain_id)
        record = new_execution_record(
            chain.definition,
            chain_id,
            context or ChainExecutionContext(),
            execution_number=self.history_service.next_execution_number(chain_id),
        )
        self.history_service.save_execution(record)

        task = asyncio.create_task(self._run_execution(chain.definition, record), name=f"execution-{record.execution_id}")
        async with self._active_tasks_lock:
            self._active_tasks[record.execution_id] = task
        logger.info(f"Queued execution {record.execution_id} (#{record.execution_number}) of chain {chain_id}")
        return record.execution_id

    async def _run_execution(self, definition: ChainDefinition, record: ChainExecutionRecord) -> ChainExecutionRecord:
        try:
            async with self._execution_slots:
                return await self.engine.run(definition, record)
        except asyncio.CancelledError:
            # Cancelled while still queued for a slot
            if not record.is_terminal:
                self._mark_cancelled(record, "Execution was cancelled before it started")
            raise
        finally:
            cancellation_tracker.clear(record.execution_id)
            async with self._active_tasks_lock:
                self._active_tasks.pop(record.execution_id, None)
            logger.debug(f"Removed execution {record.execution_id} from active tasks")

    def _mark_cancelled(self, record: ChainExecutionRecord, message: str) -> None:
        """Terminate a record that no engine is running."""
        timestamp = now_us()
        for step in record.steps:
            if not step.is_terminal:
                step.status = StepStatus.SKIPPED
                step.skip_reason = SkipReason.CANCELLED
                step.completed_at_us = timestamp
        record.status = ExecutionStatus.CANCELLED
        record.completed_at_us = timestamp
        record.total_cost = sum(step.cost for step in record.steps)
        record.error_details = error_payload("cancelled", message)
        self.history_service.save_execution(record)

    async def wait_for_execution(self, execution_id: str, timeout: Optional[float] = None) -> ChainExecutionRecord:
        """Wait until a running execution reaches a terminal status and return it."""
        task = self._active_tasks.get(execution_id)
        if task is not None:
            await asyncio.wait_for(asyncio.shield(task), timeout=timeout)
        return self.get_execution(execution_id)

    def get_execution(self, execution_id: str) -> ChainExecutionRecord:
        record = self.history_service.get_execution(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        return record

    def list_executions(
        self,
        chain_id: Optional[str] = None,
        statuses: Optional[Sequence[ExecutionStatus]] = None,
        start_us: Optional[int] = None,
        end_us: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[ExecutionSummary]:
        return self.history_service.list_execution_summaries(
            chain_ids=[chain_id] if chain_id else None,
            statuses=[status.value for status in statuses] if statuses else None,
            time_range=TimeRange(start_us=start_us, end_us=end_us),
            limit=limit,
        )

    async def cancel_execution(self, execution_id: str) -> CancelExecutionResponse:
        """
        Request cancellation of a non-terminal execution.

        Raises:
            ExecutionNotFoundError: Unknown execution id
            ExecutionStateError: Execution already finished
        """
        record = self.get_execution(execution_id)
        if record.is_terminal:
            raise ExecutionStateError(
                f"Execution {execution_id} already finished with status {record.status.value}",
                execution_id=execution_id,
                status=record.status.value,
            )

        async with self._active_tasks_lock:
            task = self._active_tasks.get(execution_id)
        if task is None:
            # No task in this process owns it (left over from a previous run)
            self._mark_cancelled(record, "Execution was cancelled on request")
            logger.info(f"Execution {execution_id} had no running task; marked cancelled")
            return CancelExecutionResponse(
                execution_id=execution_id,
                status=ExecutionStatus.CANCELLED,
                message="Execution cancelled",
            )

        self.engine.cancel(execution_id)
        logger.info(f"Cancellation requested for execution {execution_id}")
        return CancelExecutionResponse(
            execution_id=execution_id,
            status=record.status,
            message="Cancellation requested; in-flight steps are being stopped",
        )

    def get_handoff_history(self, execution_id: str) -> List[HandoffRecord]:
        self.get_execution(execution_id)
        return self.history_service.get_handoffs(execution_id)

    @property
    def active_execution_ids(self) -> List[str]:
        return list(self._active_tasks)

    async def shutdown(self) -> None:
        """Cancel every active execution and wait for the records to settle."""
        async with self._active_tasks_lock:
            tasks = dict(self._active_tasks)
        if not tasks:
            return

        logger.info(f"Cancelling {len(tasks)} active executions")
        for execution_id in tasks:
            self.engine.cancel(execution_id)
        _, pending = await asyncio.wait(tasks.values(), timeout=self.settings.cancellation_grace_seconds + 1)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending, timeout=self.settings.cancellation_grace_seconds)

    # Analytics

    def get_performance_metrics(self, execution_id: str) -> ExecutionMetrics:
        return self.analyzer.analyze_execution(execution_id)

    def detect_bottlenecks(self, execution_id: str,
                           thresholds: Optional[BottleneckThresholds] = None) -> List[Bottleneck]:
        return self.analyzer.detect_bottlenecks(execution_id, thresholds)

    def get_recommendations(self, execution_id: str) -> List[str]:
        return self.analyzer.generate_recommendations(execution_id)

    def analyze_chain(self, chain_id: str, time_range: Optional[TimeRange] = None) -> ChainPerformanceReport:
        return self.analyzer.analyze_chain(chain_id, time_range)

    def generate_heatmap(self, chain_ids: Optional[Sequence[str]] = None,
                         time_range: Optional[TimeRange] = None) -> PerformanceHeatmap:
        return self.analyzer.generate_heatmap(chain_ids, time_range)

    def analyze_handoff_patterns(self, chain_id: str,
                                 time_range: Optional[TimeRange] = None) -> HandoffPatternAnalysis:
        return self.analyzer.analyze_handoff_patterns(chain_id, time_range)

    def get_chain_health(self, chain_id: str) -> ChainHealth:
        return self.analyzer.get_chain_health(chain_id)

    # Recommendation

    def recommend_chain(
        self,
        goal: str,
        context: Optional[Dict[str, Any]] = None,
        preferences: Optional[RecommendationPreferences] = None,
    ) -> ChainRecommendation:
        return self.recommender.recommend(goal, context, preferences)

    def get_templates(self) -> List[ChainTemplate]:
        return self.recommender.get_templates()


_orchestrator: Optional[ChainOrchestrator] = None


def set_chain_orchestrator(orchestrator: Optional[ChainOrchestrator]) -> None:
    global _orchestrator
    _orchestrator = orchestrator


def get_chain_orchestrator() -> ChainOrchestrator:
    """
    FastAPI dependency returning the process-wide orchestrator.

    Raises:
        RuntimeError: If the application has not finished starting up
    """
    if _orchestrator is None:
        raise RuntimeError("Chain orchestrator not initialized")
    return _orchestrator
