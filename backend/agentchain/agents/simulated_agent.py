"""
Deterministic stand-in agent for local development and demos.

Echoes its input back with a processing marker and reports a fixed cost
derived from the agent's token price, so chains can be exercised end to end
without a real agent service.
"""

import asyncio
from typing import Any, Dict

from agentchain.models.agent_models import AgentInvocationResult
from agentchain.models.constants import AGENT_COST_PER_1K_TOKENS, NOMINAL_TOKENS_PER_STEP, AgentType
from agentchain.utils.logger import get_module_logger
from agentchain.utils.timestamp import now_us

logger = get_module_logger(__name__)


class SimulatedAgent:
    """Capability that fakes agent work; honours ``simulate_delay_ms`` and ``simulate_failure`` in config."""

    def __init__(self, confidence: float = 0.85, quality_score: float = 0.9):
        self.confidence = confidence
        self.quality_score = quality_score

    async def invoke(
        self,
        agent_type: AgentType,
        config: Dict[str, Any],
        input_data: Dict[str, Any],
    ) -> AgentInvocationResult:
        delay_ms = config.get("simulate_delay_ms", 0)
        if delay_ms:
            await asyncio.sleep(delay_ms / 1000)

        cost = AGENT_COST_PER_1K_TOKENS[agent_type] * NOMINAL_TOKENS_PER_STEP / 1000

        if config.get("simulate_failure"):
            logger.debug(f"Simulated failure for {agent_type.value}")
            return AgentInvocationResult(
                success=False,
                cost=cost,
                error=f"Simulated failure in {agent_type.value}",
            )

        return AgentInvocationResult(
            success=True,
            output={
                "agent_type": agent_type.value,
                "result": f"Processed by {agent_type.value}",
                "data": input_data,
                "timestamp_us": now_us(),
            },
            cost=cost,
            confidence=self.confidence,
            quality_score=self.quality_score,
        )
