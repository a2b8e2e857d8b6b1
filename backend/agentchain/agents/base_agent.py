"""
Agent capability contract.

The engine only depends on this interface; concrete capabilities are
registered per agent type in the AgentCapabilityRegistry.
"""

from typing import Any, Dict, Protocol, runtime_checkable

from agentchain.models.agent_models import AgentInvocationResult
from agentchain.models.constants import AgentType


@runtime_checkable
class AgentCapability(Protocol):
    """
    Something that can perform one agent step.

    Implementations must be safe to call again with the same input: the
    engine retries failed attempts and does not deduplicate side effects.
    Raising is treated the same as returning ``success=False``.
    """

    async def invoke(
        self,
        agent_type: AgentType,
        config: Dict[str, Any],
        input_data: Dict[str, Any],
    ) -> AgentInvocationResult:
        ...
