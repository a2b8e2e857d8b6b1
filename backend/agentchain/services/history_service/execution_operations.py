"""Execution record storage and history queries."""

import logging
from typing import Dict, List, Optional, Sequence

from agentchain.models.api_models import ExecutionSummary
from agentchain.models.converters import (
    execution_row_to_summary,
    handoff_row_to_record,
    rows_to_execution_record,
)
from agentchain.models.execution_models import ChainExecutionRecord, HandoffRecord
from agentchain.models.performance_models import TimeRange
from agentchain.services.history_service.base_infrastructure import BaseHistoryInfra

logger = logging.getLogger(__name__)


class ExecutionOperations:
    """Persist engine-owned records and read them back for analysis."""

    def __init__(self, infra: BaseHistoryInfra) -> None:
        self._infra: BaseHistoryInfra = infra

    def next_execution_number(self, chain_id: str) -> int:
        def _next_number_operation() -> int:
            with self._infra.get_repository() as repo:
                return repo.get_next_execution_number(chain_id)

        return self._infra._retry_database_operation("next_execution_number", _next_number_operation)

    def save_execution(self, record: ChainExecutionRecord) -> None:
        """
        Upsert a record by id.

        Raises:
            ExecutionStateError: If the stored record is already terminal
        """
        def _save_operation() -> None:
            with self._infra.get_repository() as repo:
                repo.save_execution_record(record)

        self._infra._retry_database_operation("save_execution", _save_operation)
        logger.debug(f"Saved execution {record.execution_id} ({record.status.value})")

    def get_execution(self, execution_id: str) -> Optional[ChainExecutionRecord]:
        def _get_operation() -> Optional[ChainExecutionRecord]:
            with self._infra.get_repository() as repo:
                row = repo.get_by_id(execution_id)
                if row is None:
                    return None
                return rows_to_execution_record(
                    row, repo.get_step_rows(execution_id), repo.get_handoff_rows(execution_id)
                )

        return self._infra._retry_database_operation("get_execution", _get_operation)

    def list_executions(
        self,
        chain_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
        time_range: Optional[TimeRange] = None,
        limit: Optional[int] = None,
        oldest_first: bool = False,
    ) -> List[ChainExecutionRecord]:
        """Full records (with steps and handoffs) matching the filters."""
        time_range = time_range or TimeRange()

        def _list_operation() -> List[ChainExecutionRecord]:
            with self._infra.get_repository() as repo:
                rows = repo.list_executions(
                    chain_ids=chain_ids,
                    statuses=statuses,
                    start_date_us=time_range.start_us,
                    end_date_us=time_range.end_us,
                    limit=limit,
                    oldest_first=oldest_first,
                )
                return [
                    rows_to_execution_record(
                        row,
                        repo.get_step_rows(row.execution_id),
                        repo.get_handoff_rows(row.execution_id),
                    )
                    for row in rows
                ]

        return self._infra._retry_database_operation("list_executions", _list_operation)

    def list_execution_summaries(
        self,
        chain_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
        time_range: Optional[TimeRange] = None,
        limit: Optional[int] = None,
    ) -> List[ExecutionSummary]:
        time_range = time_range or TimeRange()

        def _list_summaries_operation() -> List[ExecutionSummary]:
            with self._infra.get_repository() as repo:
                rows = repo.list_executions(
                    chain_ids=chain_ids,
                    statuses=statuses,
                    start_date_us=time_range.start_us,
                    end_date_us=time_range.end_us,
                    limit=limit,
                )
                return [execution_row_to_summary(row) for row in rows]

        return self._infra._retry_database_operation("list_execution_summaries", _list_summaries_operation)

    def get_handoffs(self, execution_id: str) -> List[HandoffRecord]:
        def _handoffs_operation() -> List[HandoffRecord]:
            with self._infra.get_repository() as repo:
                return [handoff_row_to_record(row) for row in repo.get_handoff_rows(execution_id)]

        return self._infra._retry_database_operation("get_handoffs", _handoffs_operation)

    def count_by_status(self, chain_id: str) -> Dict[str, int]:
        def _count_operation() -> Dict[str, int]:
            with self._infra.get_repository() as repo:
                return repo.count_executions_by_status(chain_id)

        return self._infra._retry_database_operation("count_by_status", _count_operation)
