"""
Chain repository for database operations.

Handles storage of chain definitions, execution rows, per-step rows and the
handoff log, plus the filtered history queries used by the analyzer.
"""

from typing import Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlmodel import Session, asc, desc, select

from agentchain.models.constants import ExecutionStatus
from agentchain.models.converters import handoff_to_row, record_to_execution_row, step_to_row
from agentchain.models.db_models import AgentChain, AgentHandoff, ChainExecution, StepExecution
from agentchain.models.execution_models import ChainExecutionRecord
from agentchain.repositories.base_repository import BaseRepository
from agentchain.services.exceptions import ExecutionStateError
from agentchain.utils.logger import get_logger

logger = get_logger(__name__)


class ChainRepository(BaseRepository[ChainExecution]):
    """
    Repository for chains and their execution history.

    The base class operations act on ChainExecution; chain, step and handoff
    tables are reached through dedicated methods.
    """

    def __init__(self, session: Session):
        super().__init__(session, ChainExecution)

    # Chains

    def create_chain(self, chain: AgentChain) -> AgentChain:
        self.session.add(chain)
        self.session.commit()
        self.session.refresh(chain)
        logger.debug(f"Created chain {chain.chain_id} ({chain.name})")
        return chain

    def get_chain(self, chain_id: str) -> Optional[AgentChain]:
        return self.session.get(AgentChain, chain_id)

    def get_chain_by_name(self, name: str) -> Optional[AgentChain]:
        statement = select(AgentChain).where(AgentChain.name == name).order_by(desc(AgentChain.created_at_us))
        return self.session.exec(statement).first()

    def list_chains(self) -> List[AgentChain]:
        statement = select(AgentChain).order_by(desc(AgentChain.created_at_us))
        return list(self.session.exec(statement).all())

    # Executions

    def get_next_execution_number(self, chain_id: str) -> int:
        """Execution numbers are 1-based and increase per chain."""
        statement = select(func.max(ChainExecution.execution_number)).where(ChainExecution.chain_id == chain_id)
        current = self.session.exec(statement).one()
        return (current or 0) + 1

    def save_execution_record(self, record: ChainExecutionRecord) -> ChainExecution:
        """
        Upsert an execution with its step rows and append unseen handoffs.

        Step rows are matched by step number and updated in place. Handoffs
        are only ever inserted, keyed by sequence number.

        Args:
            record: Runtime execution record owned by the engine

        Returns:
            The stored execution row

        Raises:
            ExecutionStateError: If the stored execution is already terminal
        """
        execution_id = record.execution_id
        existing = self.session.get(ChainExecution, execution_id)
        if existing is not None and existing.status in ExecutionStatus.terminal_values():
            raise ExecutionStateError(
                f"Execution {execution_id} is terminal ({existing.status}) and cannot be modified",
                execution_id=execution_id,
                status=existing.status,
            )

        try:
            row = record_to_execution_row(record, existing)
            self.session.add(row)

            stored_steps = {step_row.step_number: step_row for step_row in self.get_step_rows(execution_id)}
            for step in record.steps:
                self.session.add(step_to_row(execution_id, step, stored_steps.get(step.step_number)))

            stored_sequences = set(
                self.session.exec(
                    select(AgentHandoff.sequence_number).where(AgentHandoff.execution_id == execution_id)
                ).all()
            )
            for handoff in record.handoffs:
                if handoff.sequence_number not in stored_sequences:
                    self.session.add(handoff_to_row(execution_id, handoff))

            self.session.commit()
            self.session.refresh(row)
            return row
        except Exception as e:
            self.session.rollback()
            logger.error(f"Failed to save execution {execution_id}: {str(e)}")
            raise

    def get_step_rows(self, execution_id: str) -> List[StepExecution]:
        statement = (
            select(StepExecution)
            .where(StepExecution.execution_id == execution_id)
            .order_by(asc(StepExecution.step_number))
        )
        return list(self.session.exec(statement).all())

    def get_handoff_rows(self, execution_id: str) -> List[AgentHandoff]:
        statement = (
            select(AgentHandoff)
            .where(AgentHandoff.execution_id == execution_id)
            .order_by(asc(AgentHandoff.sequence_number))
        )
        return list(self.session.exec(statement).all())

    def list_executions(
        self,
        chain_ids: Optional[Sequence[str]] = None,
        statuses: Optional[Sequence[str]] = None,
        start_date_us: Optional[int] = None,
        end_date_us: Optional[int] = None,
        limit: Optional[int] = None,
        oldest_first: bool = False,
    ) -> List[ChainExecution]:
        """
        List executions filtered by chain, status and start-time window.

        Args:
            chain_ids: Only executions of these chains
            statuses: Only executions in these statuses
            start_date_us: Only executions started at or after this timestamp
            end_date_us: Only executions started at or before this timestamp
            limit: Maximum number of rows
            oldest_first: Order by start time ascending instead of descending

        Returns:
            Matching execution rows
        """
        statement = select(ChainExecution)
        if chain_ids:
            statement = statement.where(ChainExecution.chain_id.in_(list(chain_ids)))
        if statuses:
            statement = statement.where(ChainExecution.status.in_(list(statuses)))
        if start_date_us is not None:
            statement = statement.where(ChainExecution.started_at_us >= start_date_us)
        if end_date_us is not None:
            statement = statement.where(ChainExecution.started_at_us <= end_date_us)

        order = asc if oldest_first else desc
        statement = statement.order_by(order(ChainExecution.started_at_us), order(ChainExecution.created_at_us))
        if limit is not None:
            statement = statement.limit(limit)
        return list(self.session.exec(statement).all())

    def count_executions_by_status(self, chain_id: str) -> Dict[str, int]:
        statement = (
            select(ChainExecution.status, func.count())
            .where(ChainExecution.chain_id == chain_id)
            .group_by(ChainExecution.status)
        )
        return {status: count for status, count in self.session.exec(statement).all()}
