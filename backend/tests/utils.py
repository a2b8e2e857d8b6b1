"""
Test utilities for reducing redundancy and improving test maintainability.

FACTORY SYSTEM OVERVIEW
======================

1. ChainFactory - chain definitions (linear, diamond, fan-out, conditional)
2. ScriptedAgent - agent capability with scripted results, delays and failures
3. RecordFactory - terminal execution records for analyzer and API tests
4. MockFactory - common mocks (history service, orchestrator)

Usage:
    from tests.utils import ChainFactory, ScriptedAgent

    definition = ChainFactory.create_diamond_chain()
    agent = ScriptedAgent(results={1: [ScriptedAgent.failure("boom")]})

Override only the fields a test cares about; everything else gets a
sensible default.
"""

import asyncio
from typing import Any, Dict, List, Optional, Sequence
from unittest.mock import AsyncMock, Mock

from agentchain.models.agent_models import AgentInvocationResult
from agentchain.models.chain_models import ChainDefinition, StepDefinition, SuccessCriteria
from agentchain.models.constants import (
    AgentType,
    ChainType,
    ExecutionMode,
    ExecutionStatus,
    HandoffType,
    StepStatus,
)
from agentchain.models.execution_models import ChainExecutionRecord, HandoffRecord, StepExecutionRecord
from agentchain.services.agent_registry import AgentCapabilityRegistry

BASE_US = 1_700_000_000_000_000


class ChainFactory:
    """Factory for chain definitions."""

    @staticmethod
    def step(step_number: int, agent_type: AgentType = AgentType.CONTENT,
             depends_on: Sequence[int] = (), **overrides) -> StepDefinition:
        """Step whose agent_config carries its number, which is how ScriptedAgent keys its script."""
        overrides.setdefault("agent_config", {"step": step_number})
        return StepDefinition(
            step_number=step_number,
            agent_type=agent_type,
            depends_on=set(depends_on),
            **overrides,
        )

    @staticmethod
    def create_linear_chain(length: int = 3, **overrides) -> ChainDefinition:
        """0 -> 1 -> ... -> length-1, run sequentially."""
        agents = [AgentType.TREND, AgentType.CONTENT, AgentType.SOCIAL_POSTING, AgentType.EMAIL_MARKETING]
        steps = [
            ChainFactory.step(n, agents[n % len(agents)], depends_on=[n - 1] if n else [])
            for n in range(length)
        ]
        base = {"name": "linear-chain", "steps": steps}
        base.update(overrides)
        return ChainDefinition(**base)

    @staticmethod
    def create_diamond_chain(**overrides) -> ChainDefinition:
        """0 -> {1, 2} -> 3, run in parallel mode."""
        steps = [
            ChainFactory.step(0, AgentType.TREND),
            ChainFactory.step(1, AgentType.CONTENT, depends_on=[0]),
            ChainFactory.step(2, AgentType.SEO, depends_on=[0]),
            ChainFactory.step(3, AgentType.SOCIAL_POSTING, depends_on=[1, 2]),
        ]
        base = {
            "name": "diamond-chain",
            "chain_type": ChainType.PARALLEL,
            "execution_mode": ExecutionMode.PARALLEL,
            "steps": steps,
        }
        base.update(overrides)
        return ChainDefinition(**base)

    @staticmethod
    def create_fan_out_chain(width: int = 3, **overrides) -> ChainDefinition:
        """Independent root steps only."""
        steps = [ChainFactory.step(n, AgentType.CONTENT) for n in range(width)]
        base = {
            "name": "fan-out-chain",
            "chain_type": ChainType.PARALLEL,
            "execution_mode": ExecutionMode.PARALLEL,
            "steps": steps,
        }
        base.update(overrides)
        return ChainDefinition(**base)

    @staticmethod
    def create_conditional_chain(condition_value: Any = "go", **overrides) -> ChainDefinition:
        """Step 1 only runs when trigger.mode equals ``condition_value``; step 2 follows it."""
        steps = [
            ChainFactory.step(0, AgentType.TREND),
            ChainFactory.step(
                1, AgentType.CONTENT, depends_on=[0],
                conditions=[{"field": "trigger.mode", "operator": "equals", "value": condition_value}],
            ),
            ChainFactory.step(2, AgentType.SOCIAL_POSTING, depends_on=[1]),
        ]
        base = {
            "name": "conditional-chain",
            "chain_type": ChainType.CONDITIONAL,
            "steps": steps,
        }
        base.update(overrides)
        return ChainDefinition(**base)

    @staticmethod
    def create_chain_data(**overrides) -> Dict[str, Any]:
        """JSON body of a small valid chain for API tests."""
        data = {
            "name": "api-chain",
            "steps": [
                {"step_number": 0, "agent_type": "TREND"},
                {"step_number": 1, "agent_type": "CONTENT", "depends_on": [0]},
            ],
        }
        data.update(overrides)
        return data


class ScriptedAgent:
    """
    Agent capability whose results are scripted per step.

    ``results`` maps the ``step`` key of the agent config (falling back to
    the agent type value) to a list of results consumed one per attempt;
    once the list runs out the last entry repeats. Entries may be
    AgentInvocationResult instances or exceptions to raise. Without a script
    the agent echoes its input.
    """

    def __init__(
        self,
        results: Optional[Dict[Any, List[Any]]] = None,
        delays: Optional[Dict[Any, float]] = None,
        cost: float = 0.01,
        quality_score: float = 0.9,
        confidence: float = 0.8,
    ):
        self.results = {key: list(value) for key, value in (results or {}).items()}
        self.delays = delays or {}
        self.cost = cost
        self.quality_score = quality_score
        self.confidence = confidence
        self.calls: List[Dict[str, Any]] = []
        self.active = 0
        self.max_active = 0

    @staticmethod
    def success(output: Optional[Dict[str, Any]] = None, cost: float = 0.01,
                quality_score: Optional[float] = 0.9, confidence: Optional[float] = 0.8) -> AgentInvocationResult:
        return AgentInvocationResult(
            success=True, output=output or {}, cost=cost, quality_score=quality_score, confidence=confidence
        )

    @staticmethod
    def failure(error: str = "scripted failure", cost: float = 0.0) -> AgentInvocationResult:
        return AgentInvocationResult(success=False, error=error, cost=cost)

    @staticmethod
    def _key(agent_type: AgentType, config: Dict[str, Any]) -> Any:
        return config.get("step", agent_type.value)

    async def invoke(self, agent_type: AgentType, config: Dict[str, Any],
                     input_data: Dict[str, Any]) -> AgentInvocationResult:
        key = self._key(agent_type, config)
        self.calls.append({"key": key, "agent_type": agent_type, "config": config, "input": input_data})
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.get(key, 0)
            if delay:
                await asyncio.sleep(delay)

            script = self.results.get(key)
            if script:
                outcome = script.pop(0) if len(script) > 1 else script[0]
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome

            return AgentInvocationResult(
                success=True,
                output={"from": key, "received": input_data},
                cost=self.cost,
                quality_score=self.quality_score,
                confidence=self.confidence,
            )
        finally:
            self.active -= 1

    def calls_for(self, key: Any) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["key"] == key]

    @staticmethod
    def registry(agent: "ScriptedAgent") -> AgentCapabilityRegistry:
        """Registry routing every agent type to ``agent``."""
        registry = AgentCapabilityRegistry()
        registry.register_all(agent)
        return registry


class RecordFactory:
    """Factory for terminal execution records with controlled timings."""

    @staticmethod
    def step(step_number: int, agent_type: AgentType = AgentType.CONTENT,
             status: StepStatus = StepStatus.COMPLETED, start_ms: int = 0, duration_ms: int = 1000,
             cost: float = 0.01, quality_score: Optional[float] = 0.9,
             confidence: Optional[float] = 0.8, attempt_count: int = 1, **overrides) -> StepExecutionRecord:
        attempted = status != StepStatus.SKIPPED
        data = {
            "step_number": step_number,
            "step_name": f"step_{step_number}",
            "agent_type": agent_type,
            "status": status,
            "attempt_count": attempt_count if attempted else 0,
            "cost": cost if attempted else 0.0,
            "execution_time_ms": duration_ms if attempted else 0,
            "started_at_us": BASE_US + start_ms * 1000 if attempted else None,
            "completed_at_us": BASE_US + (start_ms + duration_ms) * 1000,
            "quality_score": quality_score if status == StepStatus.COMPLETED else None,
            "confidence": confidence if status == StepStatus.COMPLETED else None,
        }
        data.update(overrides)
        return StepExecutionRecord(**data)

    @staticmethod
    def handoff(sequence_number: int, to_step: int, from_step: Optional[int] = None,
                to_agent: AgentType = AgentType.CONTENT, from_agent: Optional[AgentType] = None,
                handoff_type: HandoffType = HandoffType.DIRECT, data_size: int = 10) -> HandoffRecord:
        return HandoffRecord(
            sequence_number=sequence_number,
            from_step=from_step,
            to_step=to_step,
            from_agent=from_agent,
            to_agent=to_agent,
            handoff_type=handoff_type,
            data_size=data_size,
            timestamp_us=BASE_US,
        )

    @staticmethod
    def execution(steps: List[StepExecutionRecord], handoffs: Optional[List[HandoffRecord]] = None,
                  status: ExecutionStatus = ExecutionStatus.COMPLETED, execution_id: str = "exec-1",
                  chain_id: str = "chain-1", duration_ms: Optional[int] = None,
                  start_offset_ms: int = 0, **overrides) -> ChainExecutionRecord:
        if duration_ms is None:
            ends = [s.completed_at_us for s in steps if s.completed_at_us is not None]
            duration_ms = (max(ends) - BASE_US) // 1000 if ends else 0
        completed = sum(1 for s in steps if s.status == StepStatus.COMPLETED)
        start_us = BASE_US + start_offset_ms * 1000
        data = {
            "execution_id": execution_id,
            "chain_id": chain_id,
            "chain_name": "test-chain",
            "status": status,
            "steps": steps,
            "handoffs": handoffs or [],
            "total_cost": sum(s.cost for s in steps),
            "success_rate": completed / len(steps) if steps else 0.0,
            "started_at_us": start_us,
            "completed_at_us": start_us + duration_ms * 1000,
        }
        data.update(overrides)
        return ChainExecutionRecord(**data)


class MockFactory:
    """Factory for common mock objects."""

    @staticmethod
    def create_mock_history_service(records: Optional[List[ChainExecutionRecord]] = None,
                                    chain_exists: bool = True) -> Mock:
        """History service mock serving a fixed set of records."""
        records = records or []
        by_id = {record.execution_id: record for record in records}
        service = Mock()
        service.get_execution.side_effect = lambda execution_id: by_id.get(execution_id)
        service.get_chain.return_value = Mock() if chain_exists else None

        def list_executions(chain_ids=None, statuses=None, time_range=None, limit=None, oldest_first=False):
            selected = [
                r for r in records
                if (not chain_ids or r.chain_id in chain_ids)
                and (not statuses or r.status.value in statuses)
            ]
            return sorted(selected, key=lambda r: r.started_at_us or 0, reverse=not oldest_first)

        service.list_executions.side_effect = list_executions
        return service

    @staticmethod
    def create_mock_orchestrator() -> Mock:
        """Orchestrator mock with async methods where the real one is async."""
        orchestrator = Mock()
        orchestrator.execute_chain = AsyncMock()
        orchestrator.cancel_execution = AsyncMock()
        orchestrator.shutdown = AsyncMock()
        return orchestrator
