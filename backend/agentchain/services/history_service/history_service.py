"""History Service - Main Facade."""

from typing import ContextManager, Dict, List, Optional, Sequence

from agentchain.config.settings import Settings
from agentchain.models.api_models import ChainResponse, ExecutionSummary
from agentchain.models.chain_models import ChainDefinition
from agentchain.models.execution_models import ChainExecutionRecord, HandoffRecord
from agentchain.models.performance_models import TimeRange
from agentchain.repositories.chain_repository import ChainRepository
from agentchain.services.history_service.base_infrastructure import BaseHistoryInfra
from agentchain.services.history_service.chain_operations import ChainOperations
from agentchain.services.history_service.execution_operations import ExecutionOperations


class ChainHistoryService:
    """Key-indexed store of chains and execution records via composed operations."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._infra: BaseHistoryInfra = BaseHistoryInfra(settings)
        self._chains: ChainOperations = ChainOperations(self._infra)
        self._executions: ExecutionOperations = ExecutionOperations(self._infra)

    # Infrastructure
    def initialize(self) -> bool:
        """Initialize database connection."""
        return self._infra.initialize()

    @property
    def is_healthy(self) -> bool:
        return self._infra.is_healthy

    def close(self) -> None:
        self._infra.close()

    def get_repository(self) -> ContextManager[ChainRepository]:
        """Get repository context manager (delegates to _infra)."""
        return self._infra.get_repository()

    # Chains
    def create_chain(self, definition: ChainDefinition, created_by: Optional[str] = None) -> ChainResponse:
        return self._chains.create_chain(definition, created_by)

    def get_chain(self, chain_id: str) -> Optional[ChainResponse]:
        return self._chains.get_chain(chain_id)

    def get_chain_by_name(self, name: str) -> Optional[ChainResponse]:
        return self._chains.get_chain_by_name(name)

    def list_chains(self) -> List[ChainResponse]:
        return self._chains.list_chains()

    # Executions
    def next_execution_number(self, chain_id: str) -> int:
        return self._executions.next_execution_number(chain_id)

    def save_execution(self, record: ChainExecutionRecord) -> None:
        self._executions.save_execution(record)

    def get_execution(self, execution_id: str) -> Optional[ChainExecutionRecord]:
        return self._executions.get_execution(execution_id)

    def list_executions(
        self,
        chain_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
        time_range: Optional[TimeRange] = None,
        limit: Optional[int] = None,
        oldest_first: bool = False,
    ) -> List[ChainExecutionRecord]:
        return self._executions.list_executions(chain_ids, statuses, time_range, limit, oldest_first)

    def list_execution_summaries(
        self,
        chain_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
        time_range: Optional[TimeRange] = None,
        limit: Optional[int] = None,
    ) -> List[ExecutionSummary]:
        return self._executions.list_execution_summaries(chain_ids, statuses, time_range, limit)

    def get_handoffs(self, execution_id: str) -> List[HandoffRecord]:
        return self._executions.get_handoffs(execution_id)

    def count_executions_by_status(self, chain_id: str) -> Dict[str, int]:
        return self._executions.count_by_status(chain_id)
