"""
Agent capability registry.

Maps every AgentType to the capability that performs it. Dispatch across
agent types is a dictionary lookup keyed by the enum; adding a capability
never requires touching the engine.
"""

from typing import Dict, Iterable, Optional

from agentchain.agents.base_agent import AgentCapability
from agentchain.agents.http_agent import HttpAgent
from agentchain.agents.simulated_agent import SimulatedAgent
from agentchain.config.settings import Settings
from agentchain.models.constants import AGENT_COST_PER_1K_TOKENS, NOMINAL_TOKENS_PER_STEP, AgentType
from agentchain.utils.logger import get_module_logger

logger = get_module_logger(__name__)


class AgentCapabilityRegistry:
    """
    Lookup table from agent type to capability.

    Cost estimates used for pre-dispatch budget checks come from the
    per-1K-token price table unless overridden per agent type.
    """

    def __init__(
        self,
        capabilities: Optional[Dict[AgentType, AgentCapability]] = None,
        cost_estimates: Optional[Dict[AgentType, float]] = None,
    ):
        self._capabilities: Dict[AgentType, AgentCapability] = dict(capabilities or {})
        self._cost_estimates: Dict[AgentType, float] = dict(cost_estimates or {})

    def register(self, agent_type: AgentType, capability: AgentCapability) -> None:
        if not isinstance(capability, AgentCapability):
            raise TypeError(f"{type(capability).__name__} does not implement invoke()")
        if agent_type in self._capabilities:
            logger.info(f"Replacing capability for {agent_type.value}")
        self._capabilities[agent_type] = capability

    def register_all(self, capability: AgentCapability, agent_types: Iterable[AgentType] = tuple(AgentType)) -> None:
        for agent_type in agent_types:
            self.register(agent_type, capability)

    def get(self, agent_type: AgentType) -> AgentCapability:
        """
        Get the capability for an agent type.

        Raises:
            KeyError: If no capability is registered for the type
        """
        try:
            return self._capabilities[agent_type]
        except KeyError:
            raise KeyError(f"No capability registered for agent type {agent_type.value}") from None

    def has(self, agent_type: AgentType) -> bool:
        return agent_type in self._capabilities

    @property
    def registered_types(self) -> list[AgentType]:
        return sorted(self._capabilities, key=lambda t: t.value)

    def estimate_cost(self, agent_type: AgentType) -> float:
        """Expected cost of one attempt by this agent type."""
        if agent_type in self._cost_estimates:
            return self._cost_estimates[agent_type]
        return AGENT_COST_PER_1K_TOKENS.get(agent_type, 0.0) * NOMINAL_TOKENS_PER_STEP / 1000

    async def close(self) -> None:
        """Release resources held by capabilities that expose ``close()``."""
        seen = set()
        for capability in self._capabilities.values():
            if id(capability) in seen:
                continue
            seen.add(id(capability))
            close = getattr(capability, "close", None)
            if close is not None:
                await close()


def build_default_registry(settings: Settings) -> AgentCapabilityRegistry:
    """
    Registry wired from settings: the remote agent service when configured,
    simulated agents otherwise.
    """
    registry = AgentCapabilityRegistry()
    if settings.agent_service_url:
        registry.register_all(HttpAgent(settings.agent_service_url, settings.agent_request_timeout_seconds))
        logger.info(f"Agent capabilities routed to {settings.agent_service_url}")
    else:
        registry.register_all(SimulatedAgent())
        logger.warning("No agent service configured - using simulated agents")
    return registry
