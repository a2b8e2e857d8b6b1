"""Chain definition storage operations."""

import logging
from typing import List, Optional

from agentchain.models.api_models import ChainResponse
from agentchain.models.chain_models import ChainDefinition
from agentchain.models.converters import chain_row_to_response
from agentchain.models.db_models import AgentChain
from agentchain.services.history_service.base_infrastructure import BaseHistoryInfra

logger = logging.getLogger(__name__)


class ChainOperations:
    """Create and look up stored chain definitions."""

    def __init__(self, infra: BaseHistoryInfra) -> None:
        self._infra: BaseHistoryInfra = infra

    def create_chain(self, definition: ChainDefinition, created_by: Optional[str] = None) -> ChainResponse:
        """Store an already validated definition and return it with its new id."""
        def _create_chain_operation() -> ChainResponse:
            with self._infra.get_repository() as repo:
                row = AgentChain(
                    name=definition.name,
                    chain_type=definition.chain_type.value,
                    execution_mode=definition.execution_mode.value,
                    definition=definition.model_dump(mode="json"),
                    created_by=created_by,
                )
                created = repo.create_chain(row)
                logger.info(f"Stored chain '{created.name}' as {created.chain_id}")
                return chain_row_to_response(created)

        return self._infra._retry_database_operation("create_chain", _create_chain_operation)

    def get_chain(self, chain_id: str) -> Optional[ChainResponse]:
        def _get_chain_operation() -> Optional[ChainResponse]:
            with self._infra.get_repository() as repo:
                row = repo.get_chain(chain_id)
                return chain_row_to_response(row) if row else None

        return self._infra._retry_database_operation("get_chain", _get_chain_operation)

    def get_chain_by_name(self, name: str) -> Optional[ChainResponse]:
        def _get_chain_by_name_operation() -> Optional[ChainResponse]:
            with self._infra.get_repository() as repo:
                row = repo.get_chain_by_name(name)
                return chain_row_to_response(row) if row else None

        return self._infra._retry_database_operation("get_chain_by_name", _get_chain_by_name_operation)

    def list_chains(self) -> List[ChainResponse]:
        def _list_chains_operation() -> List[ChainResponse]:
            with self._infra.get_repository() as repo:
                return [chain_row_to_response(row) for row in repo.list_chains()]

        return self._infra._retry_database_operation("list_chains", _list_chains_operation)
