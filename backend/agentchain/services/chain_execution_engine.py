"""
Chain execution engine.

Runs one chain execution end to end as a topological wave scheduler:
steps whose dependencies have completed are dispatched (one at a time in
SEQUENTIAL mode, all at once otherwise, bounded by a worker semaphore),
each attempt is gated by the budget and retry policy and bounded by the
step timeout, and the ready set is recomputed after every completion.

The ChainExecutionRecord is mutated only by the coroutines of the run that
owns it, and is persisted at RUNNING, after each step resolves and once at
its terminal status.
"""

import asyncio
import copy
import uuid
from typing import Any, Dict, List, Optional

from agentchain.config.settings import Settings, get_settings
from agentchain.models.agent_models import AgentInvocationResult
from agentchain.models.chain_models import ChainDefinition, ChainExecutionContext, StepDefinition
from agentchain.models.constants import (
    ChainType,
    ExecutionMode,
    ExecutionStatus,
    PolicyAction,
    SkipReason,
    StepStatus,
)
from agentchain.models.execution_models import (
    ChainExecutionRecord,
    StepExecutionRecord,
    merge_payloads,
)
from agentchain.services import cancellation_tracker
from agentchain.services.agent_registry import AgentCapabilityRegistry
from agentchain.services.budget_policy import RetryBudgetPolicy, evaluate_success_criteria
from agentchain.services.condition_evaluator import build_condition_context, evaluate_conditions
from agentchain.services.exceptions import BudgetExceededError, StepInvocationError, StepTimeoutError
from agentchain.services.handoff_protocol import HandoffLog, HandoffResult, handoff
from agentchain.services.history_service import ChainHistoryService
from agentchain.utils.error_details import describe_failure, error_payload, extract_error_details
from agentchain.utils.logger import get_module_logger
from agentchain.utils.timestamp import now_us

logger = get_module_logger(__name__)


def new_execution_record(
    definition: ChainDefinition,
    chain_id: str,
    context: ChainExecutionContext,
    execution_number: int = 1,
    execution_id: Optional[str] = None,
) -> ChainExecutionRecord:
    """Build a PENDING record with one PENDING step record per step."""
    return ChainExecutionRecord(
        execution_id=execution_id or str(uuid.uuid4()),
        chain_id=chain_id,
        chain_name=definition.name,
        execution_number=execution_number,
        status=ExecutionStatus.PENDING,
        context=context,
        budget_limit=context.budget_policy.effective_limit(definition.budget_limit),
        steps=[
            StepExecutionRecord(
                step_number=step.step_number,
                step_name=step.step_name,
                agent_type=step.agent_type,
            )
            for step in definition.ordered_steps
        ],
    )


class _BudgetLedger:
    """Committed spend plus estimates reserved by attempts in flight."""

    def __init__(self) -> None:
        self.committed = 0.0
        self.reserved = 0.0

    @property
    def spent(self) -> float:
        return self.committed + self.reserved

    def reserve(self, estimate: float) -> None:
        self.reserved += estimate

    def settle(self, estimate: float, actual: float) -> None:
        self.reserved = max(0.0, self.reserved - estimate)
        self.committed += actual


class ChainExecutionEngine:
    """
    Executes chain definitions against agent capabilities.

    The engine itself is stateless between runs; every call to ``run`` gets
    its own scheduling state, so one engine can drive many executions
    concurrently.
    """

    def __init__(
        self,
        registry: AgentCapabilityRegistry,
        history_service: Optional[ChainHistoryService] = None,
        settings: Optional[Settings] = None,
        policy: Optional[RetryBudgetPolicy] = None,
    ):
        self.registry = registry
        self.history_service = history_service
        self.settings = settings or get_settings()
        self.policy = policy or RetryBudgetPolicy(
            base_delay_seconds=self.settings.retry_base_delay_seconds,
            max_delay_seconds=self.settings.retry_max_delay_seconds,
        )
        self._cancel_events: Dict[str, asyncio.Event] = {}

    async def run(
        self,
        definition: ChainDefinition,
        record: ChainExecutionRecord,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ChainExecutionRecord:
        """
        Run a PENDING execution to a terminal status.

        Args:
            definition: Validated chain definition
            record: PENDING record created by ``new_execution_record``
            cancel_event: Set by the owner to request cooperative cancellation

        Returns:
            The same record, now terminal
        """
        event = cancel_event or asyncio.Event()
        self._cancel_events[record.execution_id] = event
        try:
            execution = _ExecutionRun(self, definition, record, event)
            return await execution.execute()
        finally:
            self._cancel_events.pop(record.execution_id, None)

    def cancel(self, execution_id: str) -> bool:
        """
        Request cancellation of a running execution.

        Returns:
            False if this engine is not running the execution
        """
        cancellation_tracker.mark_cancelled(execution_id)
        event = self._cancel_events.get(execution_id)
        if event is None:
            return False
        event.set()
        return True

    @property
    def active_execution_ids(self) -> List[str]:
        return list(self._cancel_events)

    def persist(self, record: ChainExecutionRecord) -> None:
        """Best-effort snapshot; a storage failure never aborts a running chain."""
        if self.history_service is None:
            return
        try:
            self.history_service.save_execution(record)
        except Exception as e:
            logger.error(
                f"Failed to persist execution {record.execution_id} ({record.status.value}): "
                f"{extract_error_details(e)}"
            )


class _ExecutionRun:
    """Scheduling state of a single execution."""

    def __init__(
        self,
        engine: ChainExecutionEngine,
        definition: ChainDefinition,
        record: ChainExecutionRecord,
        cancel_event: asyncio.Event,
    ):
        self.engine = engine
        self.settings = engine.settings
        self.definition = definition
        self.record = record
        self.cancel_event = cancel_event

        if not record.steps:
            record.steps = new_execution_record(definition, record.chain_id, record.context).steps
        self.step_defs: Dict[int, StepDefinition] = {s.step_number: s for s in definition.steps}
        self.step_records: Dict[int, StepExecutionRecord] = {s.step_number: s for s in record.steps}

        self.outputs: Dict[int, Dict[str, Any]] = {}
        self.handoff_log = HandoffLog(record.handoffs)
        self.ledger = _BudgetLedger()
        self.budget_limit = record.budget_limit
        self.in_flight: Dict[asyncio.Task, int] = {}
        self.worker_slots = asyncio.Semaphore(self.settings.max_parallel_steps)
        # Set once the run stops accepting writes from step workers
        self.closed = False

    @property
    def execution_id(self) -> str:
        return self.record.execution_id

    async def execute(self) -> ChainExecutionRecord:
        record = self.record
        record.status = ExecutionStatus.RUNNING
        record.started_at_us = now_us()
        self.engine.persist(record)
        logger.info(
            f"Execution {self.execution_id} of chain '{self.definition.name}' started "
            f"({len(self.step_defs)} steps, mode={self.definition.execution_mode.value})"
        )

        cancel_waiter = asyncio.ensure_future(self.cancel_event.wait())
        try:
            await self._schedule(cancel_waiter)
        except asyncio.CancelledError:
            # Owning task cancelled (e.g. shutdown) - leave a consistent terminal record behind
            await self._interrupt(ExecutionStatus.CANCELLED, SkipReason.CANCELLED,
                                  error_payload("cancelled", "Execution task was cancelled"))
            self._finalize()
            raise
        except Exception as e:
            logger.error(f"Execution {self.execution_id} failed unexpectedly: {e}", exc_info=True)
            await self._interrupt(ExecutionStatus.FAILED, SkipReason.UNREACHABLE,
                                  error_payload("engine_error", describe_failure(e),
                                                details=extract_error_details(e)))
        finally:
            cancel_waiter.cancel()

        self._finalize()
        return record

    # Scheduling

    async def _schedule(self, cancel_waiter: asyncio.Future) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.definition.timeout_minutes * 60

        while True:
            if self._cancel_requested():
                await self._cancel()
                return

            ready = self._resolve_ready_steps()
            if self.definition.execution_mode in ExecutionMode.concurrent_modes():
                to_dispatch = ready
            else:
                to_dispatch = ready[:1] if not self.in_flight else []
            for step_def in to_dispatch:
                self._dispatch(step_def)

            if not self.in_flight:
                if not ready:
                    break
                continue

            remaining = deadline - loop.time()
            if remaining <= 0:
                await self._time_out()
                return

            done, _ = await asyncio.wait(
                [*self.in_flight.keys(), cancel_waiter],
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
            if not done:
                await self._time_out()
                return

            for task in [t for t in done if t in self.in_flight]:
                budget_error = self._collect(task)
                if budget_error is not None:
                    await self._abort_for_budget(budget_error)
                    return

        met, unmet = evaluate_success_criteria(self.definition, self.record.steps)
        if met:
            self.record.status = ExecutionStatus.COMPLETED
        else:
            self.record.status = ExecutionStatus.FAILED
            self.record.error_details = error_payload(
                "success_criteria_unmet",
                "Success criteria not met: " + "; ".join(unmet),
                unmet_criteria=unmet,
            )

    def _cancel_requested(self) -> bool:
        return self.cancel_event.is_set() or cancellation_tracker.is_cancel_requested(self.execution_id)

    def _dependency_satisfied(self, step_number: int) -> Optional[bool]:
        """True when satisfied, False when it can never be, None while still pending."""
        dependency = self.step_records[step_number]
        if dependency.status == StepStatus.COMPLETED:
            return True
        if dependency.status == StepStatus.SKIPPED:
            # A branch not taken in a conditional chain does not block its dependents
            return (
                self.definition.chain_type == ChainType.CONDITIONAL
                and dependency.skip_reason == SkipReason.CONDITION_FALSE
            )
        if dependency.status == StepStatus.FAILED:
            return False
        return None

    def _resolve_ready_steps(self) -> List[StepDefinition]:
        """
        Skip steps that can no longer run and return those ready to dispatch.

        Skipping can unblock or doom further steps, so resolution repeats
        until nothing changes. In SEQUENTIAL mode a step's conditions are only
        evaluated on its turn: once nothing is in flight and it is the
        lowest-numbered runnable step.
        """
        sequential = self.definition.execution_mode not in ExecutionMode.concurrent_modes()
        if sequential and self.in_flight:
            return []

        dispatched = set(self.in_flight.values())
        changed = True
        ready: List[StepDefinition] = []
        while changed:
            changed = False
            ready = []
            for step_number in sorted(self.step_defs):
                step_record = self.step_records[step_number]
                if step_record.status != StepStatus.PENDING or step_number in dispatched:
                    continue
                step_def = self.step_defs[step_number]
                states = [self._dependency_satisfied(d) for d in step_def.depends_on]
                if any(state is False for state in states):
                    self._skip(step_record, SkipReason.UNREACHABLE, "A dependency did not complete")
                    changed = True
                elif all(state is True for state in states):
                    if sequential and ready:
                        continue
                    if step_def.conditions and not evaluate_conditions(step_def.conditions, self._condition_context()):
                        self._skip(step_record, SkipReason.CONDITION_FALSE, None)
                        changed = True
                    else:
                        ready.append(step_def)
        return ready

    def _condition_context(self) -> Dict[str, Any]:
        context = self.record.context
        return build_condition_context(
            context.trigger_data, context.config, context.campaign_id, context.environment, self.outputs
        )

    def _skip(self, step_record: StepExecutionRecord, reason: SkipReason, error: Optional[str]) -> None:
        step_record.status = StepStatus.SKIPPED
        step_record.skip_reason = reason
        step_record.completed_at_us = now_us()
        if error:
            step_record.error = error
        logger.debug(f"Execution {self.execution_id}: step {step_record.step_number} skipped ({reason.value})")

    # Dispatch

    def _build_input(self, step_def: StepDefinition) -> Dict[str, Any]:
        """Run the handoff protocol for every source of a step and log each transfer."""
        payloads: List[Dict[str, Any]] = []
        if not step_def.depends_on:
            result = handoff(self.record.context.trigger_data, None, step_def.input_mapping)
            self.handoff_log.record(step_def.step_number, step_def.agent_type, result)
            payloads.append(result.payload)
        else:
            fan_in = len(step_def.depends_on) > 1
            for dependency in sorted(step_def.depends_on):
                source_def = self.step_defs[dependency]
                result: HandoffResult = handoff(
                    self.outputs.get(dependency, {}),
                    source_def.output_mapping,
                    step_def.input_mapping,
                    fan_in=fan_in,
                )
                self.handoff_log.record(
                    step_def.step_number,
                    step_def.agent_type,
                    result,
                    from_step=dependency,
                    from_agent=source_def.agent_type,
                )
                payloads.append(result.payload)
        return merge_payloads(payloads)

    def _dispatch(self, step_def: StepDefinition) -> None:
        step_input = self._build_input(step_def)
        step_record = self.step_records[step_def.step_number]
        step_record.input = copy.deepcopy(step_input)
        task = asyncio.create_task(
            self._run_step(step_def, step_record, step_input),
            name=f"{self.execution_id}:step-{step_def.step_number}",
        )
        self.in_flight[task] = step_def.step_number
        logger.debug(
            f"Execution {self.execution_id}: dispatched step {step_def.step_number} ({step_def.agent_type.value})"
        )

    def _estimate_cost(self, step_def: StepDefinition) -> float:
        if step_def.estimated_cost is not None:
            return step_def.estimated_cost
        default_cost = self.record.context.budget_policy.default_step_cost
        if default_cost is not None:
            return default_cost
        return self.engine.registry.estimate_cost(step_def.agent_type)

    def _check_budget(self, step_def: StepDefinition, estimate: float) -> None:
        if self.budget_limit is not None and self.ledger.spent + estimate > self.budget_limit:
            raise BudgetExceededError(step_def.step_number, self.ledger.spent, estimate, self.budget_limit)

    async def _run_step(self, step_def: StepDefinition, step_record: StepExecutionRecord,
                        step_input: Dict[str, Any]) -> None:
        """
        Attempt loop for one step.

        Failures and timeouts are contained here and end as a FAILED step once
        the policy stops retrying.

        Raises:
            BudgetExceededError: When the next attempt would overshoot the budget
        """
        step_number = step_def.step_number
        agent_name = step_def.agent_type.value
        try:
            capability = self.engine.registry.get(step_def.agent_type)
        except KeyError as e:
            step_record.status = StepStatus.FAILED
            step_record.error = str(e.args[0]) if e.args else str(e)
            step_record.completed_at_us = now_us()
            logger.error(f"Execution {self.execution_id}: {step_record.error}")
            return

        max_retries = self.definition.max_retries_for(step_def)
        estimate = self._estimate_cost(step_def)
        timeout = step_def.timeout_seconds or self.settings.default_step_timeout_seconds
        last_failed = False

        while True:
            decision = self.engine.policy.decide(
                max_retries, step_record.attempt_count, self.ledger.spent, self.budget_limit, estimate, last_failed
            )
            if decision.action == PolicyAction.ABORT_CHAIN:
                raise BudgetExceededError(step_number, self.ledger.spent, estimate, self.budget_limit or 0.0)
            if decision.action == PolicyAction.ABORT_STEP:
                step_record.status = StepStatus.FAILED
                step_record.completed_at_us = now_us()
                logger.warning(
                    f"Execution {self.execution_id}: step {step_number} ({agent_name}) failed after "
                    f"{step_record.attempt_count} attempts: {step_record.error}"
                )
                return
            if decision.action == PolicyAction.RETRY:
                step_record.status = StepStatus.RETRYING
                logger.warning(
                    f"Execution {self.execution_id}: retrying step {step_number} ({agent_name}) "
                    f"in {decision.delay_seconds:.2f}s - {decision.reason}"
                )
                await asyncio.sleep(decision.delay_seconds)
                self._check_budget(step_def, estimate)

            result = await self._attempt(step_def, step_record, capability, step_input, estimate, timeout)
            if self.closed:
                return
            if result is not None and result.success:
                step_record.status = StepStatus.COMPLETED
                step_record.output = result.output
                step_record.confidence = result.confidence
                step_record.quality_score = result.quality_score
                step_record.error = None
                step_record.completed_at_us = now_us()
                return
            last_failed = True

    async def _attempt(self, step_def: StepDefinition, step_record: StepExecutionRecord, capability,
                       step_input: Dict[str, Any], estimate: float,
                       timeout: float) -> Optional[AgentInvocationResult]:
        """One invocation under the step timeout; returns None when the attempt raised."""
        loop = asyncio.get_running_loop()
        actual_cost = 0.0
        self.ledger.reserve(estimate)
        try:
            async with self.worker_slots:
                step_record.status = StepStatus.RUNNING
                step_record.attempt_count += 1
                if step_record.started_at_us is None:
                    step_record.started_at_us = now_us()
                started = loop.time()
                try:
                    result = await asyncio.wait_for(
                        capability.invoke(step_def.agent_type, dict(step_def.agent_config), copy.deepcopy(step_input)),
                        timeout=timeout,
                    )
                except asyncio.TimeoutError:
                    failure: StepInvocationError = StepTimeoutError(
                        step_def.step_number, step_def.agent_type.value, timeout
                    )
                    result = None
                except StepInvocationError as e:
                    failure = e
                    result = None
                except Exception as e:
                    failure = StepInvocationError(
                        describe_failure(e), step_number=step_def.step_number, agent_type=step_def.agent_type.value
                    )
                    result = None
                finally:
                    step_record.execution_time_ms += int((loop.time() - started) * 1000)

            if result is None:
                step_record.error = str(failure)
                logger.warning(f"Execution {self.execution_id}: step {step_def.step_number} attempt "
                               f"{step_record.attempt_count} raised: {failure}")
                return None

            actual_cost = result.cost
            step_record.cost += actual_cost
            if not result.success:
                step_record.error = result.error or "Agent reported failure without an error message"
                logger.warning(f"Execution {self.execution_id}: step {step_def.step_number} attempt "
                               f"{step_record.attempt_count} failed: {step_record.error}")
            return result
        finally:
            self.ledger.settle(estimate, actual_cost)

    def _collect(self, task: asyncio.Task) -> Optional[BudgetExceededError]:
        """Record the outcome of a finished step task."""
        step_number = self.in_flight.pop(task)
        step_record = self.step_records[step_number]

        if task.cancelled():
            self._skip(step_record, SkipReason.CANCELLED, "Step task was cancelled")
        else:
            error = task.exception()
            if isinstance(error, BudgetExceededError):
                return error
            if error is not None:
                logger.error(f"Execution {self.execution_id}: step {step_number} crashed: {error}",
                             exc_info=error)
                step_record.status = StepStatus.FAILED
                step_record.error = describe_failure(error)
                step_record.completed_at_us = now_us()

        if step_record.status == StepStatus.COMPLETED:
            self.outputs[step_number] = step_record.output or {}
        logger.debug(f"Execution {self.execution_id}: step {step_number} resolved as {step_record.status.value}")
        self.engine.persist(self.record)
        return None

    # Termination

    async def _interrupt(self, status: ExecutionStatus, skip_reason: SkipReason,
                         details: Dict[str, Any]) -> None:
        """
        Stop in-flight steps, skip every non-terminal step and set the terminal status.

        In-flight tasks are cancelled and given the grace period to unwind;
        steps that finish inside it keep their result.
        """
        tasks = list(self.in_flight.keys())
        for task in tasks:
            task.cancel()
        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.settings.cancellation_grace_seconds)
            if pending:
                logger.warning(
                    f"Execution {self.execution_id}: {len(pending)} step(s) did not stop within "
                    f"{self.settings.cancellation_grace_seconds}s; marking them skipped"
                )
        self.closed = True

        for task, step_number in list(self.in_flight.items()):
            step_record = self.step_records[step_number]
            if task.done() and not task.cancelled() and task.exception() is None \
                    and step_record.status == StepStatus.COMPLETED:
                self.outputs[step_number] = step_record.output or {}
        self.in_flight.clear()

        for step_record in self.record.steps:
            if not step_record.is_terminal:
                was_started = step_record.attempt_count > 0 or step_record.status != StepStatus.PENDING
                self._skip(step_record, skip_reason, f"Interrupted: {skip_reason.value}" if was_started else None)

        self.record.status = status
        self.record.error_details = details

    async def _cancel(self) -> None:
        logger.info(f"Execution {self.execution_id} cancelled")
        await self._interrupt(
            ExecutionStatus.CANCELLED,
            SkipReason.CANCELLED,
            error_payload("cancelled", "Execution was cancelled on request",
                          running_steps=sorted(self.in_flight.values()) or None),
        )

    async def _time_out(self) -> None:
        logger.warning(f"Execution {self.execution_id} exceeded {self.definition.timeout_minutes} minute timeout")
        await self._interrupt(
            ExecutionStatus.TIMEOUT,
            SkipReason.TIMEOUT,
            error_payload("timeout", f"Chain exceeded its {self.definition.timeout_minutes} minute timeout",
                          running_steps=sorted(self.in_flight.values()) or None),
        )

    async def _abort_for_budget(self, error: BudgetExceededError) -> None:
        logger.warning(f"Execution {self.execution_id} aborted: {error}")
        trigger = self.step_records[error.step_number]
        await self._interrupt(
            ExecutionStatus.FAILED,
            SkipReason.BUDGET_EXCEEDED,
            error_payload(
                "budget_exceeded",
                str(error),
                step_number=error.step_number,
                estimated_cost=error.estimated_cost,
                spent=error.spent,
                budget_limit=error.budget_limit,
            ),
        )
        trigger.error = str(error)

    def _finalize(self) -> None:
        record = self.record
        self.closed = True
        completed = [s for s in record.steps if s.status == StepStatus.COMPLETED]
        confidences = [s.confidence for s in completed if s.confidence is not None]

        record.total_cost = round(sum(s.cost for s in record.steps), 10)
        record.success_rate = len(completed) / len(record.steps) if record.steps else 0.0
        record.completed_at_us = now_us()
        record.final_result = {
            "summary": {
                "total_steps": len(record.steps),
                "successful_steps": len(completed),
                "failed_steps": sum(1 for s in record.steps if s.status == StepStatus.FAILED),
                "skipped_steps": sum(1 for s in record.steps if s.status == StepStatus.SKIPPED),
                "total_cost": record.total_cost,
                "average_confidence": sum(confidences) / len(confidences) if confidences else None,
            },
            "outputs": {f"step_{s.step_number}": s.output for s in completed},
        }

        self.engine.persist(record)
        logger.info(
            f"Execution {self.execution_id} finished {record.status.value}: "
            f"{len(completed)}/{len(record.steps)} steps completed, cost {record.total_cost:.4f}"
        )
