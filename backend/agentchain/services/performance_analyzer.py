"""
Performance analysis over terminal execution records.

Every figure here is derived from what the engine persisted; the analyzer
never reads a record that is still running, so repeated calls over the same
executions return the same answer.
"""

from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from agentchain.config.settings import Settings, get_settings
from agentchain.models.constants import (
    AgentType,
    BottleneckType,
    ExecutionStatus,
    HandoffType,
    HealthStatus,
    Severity,
    StepStatus,
    TrendDirection,
)
from agentchain.models.execution_models import ChainExecutionRecord, StepExecutionRecord
from agentchain.models.performance_models import (
    AgentHeatmapCell,
    AgentPairStat,
    AgentPerformance,
    Bottleneck,
    BottleneckThresholds,
    ChainHealth,
    ChainPerformanceReport,
    ChainPerformanceSummary,
    CostAnalysis,
    CostBreakdownItem,
    CostHeatmapCell,
    ExecutionMetrics,
    HandoffPatternAnalysis,
    PerformanceHeatmap,
    PerformanceTrend,
    QualityAnalysis,
    QualityHeatmapCell,
    StepWaitTime,
    TimeHeatmapCell,
    TimelineAnalysis,
    TimeRange,
)
from agentchain.services.exceptions import ChainNotFoundError, ExecutionNotFoundError, ExecutionStateError
from agentchain.services.history_service import ChainHistoryService
from agentchain.utils.logger import get_module_logger
from agentchain.utils.timestamp import elapsed_ms, now_us, us_to_datetime

logger = get_module_logger(__name__)

# Share of total cost above which a step gets an optimization hint
COST_HOTSPOT_SHARE = 0.25
# Waits shorter than this are scheduling noise
MIN_REPORTED_WAIT_MS = 1000
# Relative slope beyond which a trend is no longer stable
TREND_THRESHOLD = 0.05
# Quality deficit that maps to a severity ratio of 1.0
QUALITY_SEVERITY_SCALE = 0.3

HEALTH_SLOW_EXECUTION_MS = 300000
HEALTH_STUCK_AFTER_US = 3600 * 1000000


def calculate_severity(ratio: float) -> Severity:
    """Map how far past its threshold a metric is onto a severity."""
    if ratio < 1.5:
        return Severity.LOW
    if ratio < 2:
        return Severity.MEDIUM
    if ratio < 3:
        return Severity.HIGH
    return Severity.CRITICAL


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def _least_squares_slope(values: Sequence[float]) -> float:
    n = len(values)
    if n < 2:
        return 0.0
    mean_x = (n - 1) / 2
    mean_y = sum(values) / n
    numerator = sum((x - mean_x) * (y - mean_y) for x, y in enumerate(values))
    denominator = sum((x - mean_x) ** 2 for x in range(n))
    return numerator / denominator if denominator else 0.0


def _trend(metric: str, values: Sequence[float], higher_is_better: bool) -> PerformanceTrend:
    slope = _least_squares_slope(values)
    mean = _mean(values) or 0.0
    relative = slope / mean if mean else 0.0

    if abs(relative) <= TREND_THRESHOLD:
        direction = TrendDirection.STABLE
    elif (relative > 0) == higher_is_better:
        direction = TrendDirection.IMPROVING
    else:
        direction = TrendDirection.DECLINING

    return PerformanceTrend(
        metric=metric,
        direction=direction,
        slope=slope,
        relative_slope=relative,
        sample_size=len(values),
    )


def _dependency_map(record: ChainExecutionRecord) -> Dict[int, List[int]]:
    """Producer steps of every step, recovered from the handoff log."""
    dependencies: Dict[int, List[int]] = {step.step_number: [] for step in record.steps}
    for entry in record.handoffs:
        producers = dependencies.setdefault(entry.to_step, [])
        if entry.from_step is not None and entry.from_step not in producers:
            producers.append(entry.from_step)
    return dependencies


def _attempted(steps: Iterable[StepExecutionRecord]) -> List[StepExecutionRecord]:
    return [step for step in steps if step.attempt_count > 0]


class PerformanceAnalyzer:
    """
    Read-only analytics over persisted executions.

    All lookups go through the history service; the analyzer keeps no state
    of its own apart from the default thresholds.
    """

    def __init__(self, history_service: ChainHistoryService, settings: Optional[Settings] = None):
        self.history_service = history_service
        self.settings = settings or get_settings()
        self.default_thresholds = BottleneckThresholds(
            time_threshold_ms=self.settings.bottleneck_time_threshold_ms,
            cost_threshold=self.settings.bottleneck_cost_threshold,
            quality_threshold=self.settings.bottleneck_quality_threshold,
        )

    def _get_terminal_record(self, execution_id: str) -> ChainExecutionRecord:
        record = self.history_service.get_execution(execution_id)
        if record is None:
            raise ExecutionNotFoundError(execution_id)
        if not record.is_terminal:
            raise ExecutionStateError(
                f"Execution {execution_id} is still {record.status.value}; only finished executions can be analyzed",
                execution_id=execution_id,
                status=record.status.value,
            )
        return record

    def _require_chain(self, chain_id: str) -> None:
        if self.history_service.get_chain(chain_id) is None:
            raise ChainNotFoundError(chain_id)

    def _terminal_records(self, chain_ids: Optional[Sequence[str]], time_range: TimeRange) -> List[ChainExecutionRecord]:
        return self.history_service.list_executions(
            chain_ids=chain_ids,
            statuses=ExecutionStatus.terminal_values(),
            time_range=time_range,
            oldest_first=True,
        )

    # Single execution

    def analyze_execution(self, execution_id: str) -> ExecutionMetrics:
        """
        Full metrics for one finished execution.

        Raises:
            ExecutionNotFoundError: Unknown execution id
            ExecutionStateError: Execution has not reached a terminal status
        """
        record = self._get_terminal_record(execution_id)
        attempted = _attempted(record.steps)
        total_time_ms = record.duration_ms or 0

        cost_analysis = self._analyze_cost(record, total_time_ms)
        timeline = self._analyze_timeline(record)
        bottlenecks = self._detect(record, self.default_thresholds)

        return ExecutionMetrics(
            execution_id=record.execution_id,
            chain_id=record.chain_id,
            status=record.status,
            step_count=len(record.steps),
            total_execution_time_ms=total_time_ms,
            total_cost=record.total_cost,
            success_rate=record.success_rate,
            average_step_time_ms=_mean([s.execution_time_ms for s in attempted]) or 0.0,
            agent_performance=self._agent_performance(attempted),
            cost_analysis=cost_analysis,
            quality_analysis=self._analyze_quality(record),
            timeline=timeline,
            bottlenecks=bottlenecks,
            recommendations=self._recommendations(record, bottlenecks, cost_analysis, timeline),
        )

    def detect_bottlenecks(
        self,
        execution_id: str,
        thresholds: Optional[BottleneckThresholds] = None,
    ) -> List[Bottleneck]:
        """Steps past the time, cost or quality thresholds, highest impact first."""
        record = self._get_terminal_record(execution_id)
        return self._detect(record, thresholds or self.default_thresholds)

    def generate_recommendations(self, execution_id: str) -> List[str]:
        record = self._get_terminal_record(execution_id)
        cost_analysis = self._analyze_cost(record, record.duration_ms or 0)
        timeline = self._analyze_timeline(record)
        bottlenecks = self._detect(record, self.default_thresholds)
        return self._recommendations(record, bottlenecks, cost_analysis, timeline)

    def _agent_performance(self, steps: List[StepExecutionRecord]) -> List[AgentPerformance]:
        grouped: Dict[AgentType, List[StepExecutionRecord]] = defaultdict(list)
        for step in steps:
            grouped[step.agent_type].append(step)

        return [
            AgentPerformance(
                agent_type=agent_type,
                step_count=len(group),
                average_time_ms=_mean([s.execution_time_ms for s in group]) or 0.0,
                total_cost=sum(s.cost for s in group),
                success_rate=sum(1 for s in group if s.status == StepStatus.COMPLETED) / len(group),
                average_quality=_mean([s.quality_score for s in group if s.quality_score is not None]),
            )
            for agent_type, group in sorted(grouped.items(), key=lambda item: item[0].value)
        ]

    def _analyze_cost(self, record: ChainExecutionRecord, total_time_ms: int) -> CostAnalysis:
        total_cost = record.total_cost
        breakdown: List[CostBreakdownItem] = []
        optimizations: List[str] = []

        for step in record.steps:
            if step.cost <= 0:
                continue
            share = step.cost / total_cost if total_cost else 0.0
            breakdown.append(CostBreakdownItem(
                step_number=step.step_number,
                agent_type=step.agent_type,
                cost=step.cost,
                percentage=round(share * 100, 2),
            ))
            if share > COST_HOTSPOT_SHARE:
                optimizations.append(
                    f"Step {step.step_number} ({step.agent_type.value}) accounts for {share:.0%} of the cost; "
                    f"consider a cheaper agent configuration or reusing its output"
                )

        breakdown.sort(key=lambda item: item.cost, reverse=True)
        return CostAnalysis(
            total_cost=total_cost,
            cost_per_second=total_cost / (total_time_ms / 1000) if total_time_ms > 0 else 0.0,
            breakdown=breakdown,
            optimizations=optimizations,
        )

    def _analyze_quality(self, record: ChainExecutionRecord) -> QualityAnalysis:
        completed = [s for s in record.steps if s.status == StepStatus.COMPLETED]
        threshold = self.default_thresholds.quality_threshold
        return QualityAnalysis(
            average_quality=_mean([s.quality_score for s in completed if s.quality_score is not None]),
            average_confidence=_mean([s.confidence for s in completed if s.confidence is not None]),
            low_quality_steps=[
                s.step_number for s in completed if s.quality_score is not None and s.quality_score < threshold
            ],
        )

    def _analyze_timeline(self, record: ChainExecutionRecord) -> TimelineAnalysis:
        dependencies = _dependency_map(record)
        steps = {step.step_number: step for step in record.steps}

        # Longest dependency path weighted by execution time
        finish: Dict[int, int] = {}
        predecessor: Dict[int, Optional[int]] = {}
        for number in sorted(steps):
            best: Optional[int] = None
            for dependency in dependencies.get(number, []):
                if dependency not in finish:
                    continue
                if best is None or finish[dependency] > finish[best]:
                    best = dependency
            finish[number] = steps[number].execution_time_ms + (finish[best] if best is not None else 0)
            predecessor[number] = best

        critical_path: List[int] = []
        if finish:
            cursor: Optional[int] = max(finish, key=lambda n: (finish[n], -n))
            while cursor is not None:
                critical_path.append(cursor)
                cursor = predecessor[cursor]
            critical_path.reverse()

        wait_times: List[StepWaitTime] = []
        for number, step in sorted(steps.items()):
            if step.started_at_us is None or record.started_at_us is None:
                continue
            producer_finishes = [
                steps[d].completed_at_us for d in dependencies.get(number, [])
                if d in steps and steps[d].completed_at_us is not None
            ]
            ready_at = max(producer_finishes, default=record.started_at_us)
            wait_ms = elapsed_ms(ready_at, step.started_at_us)
            if wait_ms > MIN_REPORTED_WAIT_MS:
                wait_times.append(StepWaitTime(step_number=number, wait_ms=wait_ms))

        return TimelineAnalysis(
            critical_path=critical_path,
            critical_path_ms=max(finish.values(), default=0),
            wait_times=wait_times,
            parallelization_opportunities=self._parallelization_opportunities(steps, dependencies),
        )

    def _parallelization_opportunities(
        self,
        steps: Dict[int, StepExecutionRecord],
        dependencies: Dict[int, List[int]],
    ) -> List[str]:
        """Steps with identical producers that nevertheless ran one after another."""
        siblings: Dict[Tuple[int, ...], List[int]] = defaultdict(list)
        for number, step in steps.items():
            if step.started_at_us is not None and step.completed_at_us is not None:
                siblings[tuple(sorted(dependencies[number]))].append(number)

        opportunities: List[str] = []
        for group in siblings.values():
            if len(group) < 2:
                continue
            intervals = sorted((steps[n].started_at_us, steps[n].completed_at_us) for n in group)
            overlapped = any(intervals[i + 1][0] < intervals[i][1] for i in range(len(intervals) - 1))
            if not overlapped:
                opportunities.append(
                    f"Steps {sorted(group)} share the same inputs but ran one after another; "
                    f"they could run in parallel"
                )
        return opportunities

    def _detect(self, record: ChainExecutionRecord, thresholds: BottleneckThresholds) -> List[Bottleneck]:
        attempted = _attempted(record.steps)
        total_time = sum(s.execution_time_ms for s in attempted)
        total_cost = sum(s.cost for s in attempted)
        bottlenecks: List[Bottleneck] = []

        for step in attempted:
            agent = step.agent_type.value
            if step.execution_time_ms > thresholds.time_threshold_ms:
                ratio = step.execution_time_ms / thresholds.time_threshold_ms
                bottlenecks.append(Bottleneck(
                    step_number=step.step_number,
                    agent_type=step.agent_type,
                    type=BottleneckType.TIME,
                    severity=calculate_severity(ratio),
                    value=step.execution_time_ms,
                    threshold=thresholds.time_threshold_ms,
                    impact=min(1.0, step.execution_time_ms / total_time) if total_time else 0.0,
                    description=f"Step {step.step_number} ({agent}) took {step.execution_time_ms} ms",
                    suggestion=f"Split step {step.step_number} into smaller steps or run it alongside its siblings",
                ))
            if step.cost > thresholds.cost_threshold:
                ratio = step.cost / thresholds.cost_threshold
                bottlenecks.append(Bottleneck(
                    step_number=step.step_number,
                    agent_type=step.agent_type,
                    type=BottleneckType.COST,
                    severity=calculate_severity(ratio),
                    value=step.cost,
                    threshold=thresholds.cost_threshold,
                    impact=min(1.0, step.cost / total_cost) if total_cost else 0.0,
                    description=f"Step {step.step_number} ({agent}) cost {step.cost:.4f}",
                    suggestion=f"Use a cheaper agent configuration for step {step.step_number}",
                ))
            if step.quality_score is not None and step.quality_score < thresholds.quality_threshold:
                ratio = (thresholds.quality_threshold - step.quality_score) / QUALITY_SEVERITY_SCALE
                bottlenecks.append(Bottleneck(
                    step_number=step.step_number,
                    agent_type=step.agent_type,
                    type=BottleneckType.QUALITY,
                    severity=calculate_severity(ratio),
                    value=step.quality_score,
                    threshold=thresholds.quality_threshold,
                    impact=max(0.0, 1 - step.quality_score),
                    description=f"Step {step.step_number} ({agent}) scored quality {step.quality_score:.2f}",
                    suggestion=f"Review the configuration of step {step.step_number} ({agent}) to raise output quality",
                ))

        bottlenecks.sort(key=lambda b: b.impact, reverse=True)
        return bottlenecks

    def _recommendations(
        self,
        record: ChainExecutionRecord,
        bottlenecks: List[Bottleneck],
        cost_analysis: CostAnalysis,
        timeline: TimelineAnalysis,
    ) -> List[str]:
        recommendations: List[str] = []
        for bottleneck in bottlenecks:
            if bottleneck.suggestion not in recommendations:
                recommendations.append(bottleneck.suggestion)

        failed = [s.step_number for s in record.steps if s.status == StepStatus.FAILED]
        if failed:
            recommendations.append(f"Steps {failed} failed; review their agent configuration or allow more retries")

        retried = [s.step_number for s in record.steps if s.attempt_count > 1]
        if retried:
            recommendations.append(f"Steps {retried} needed retries; check agent reliability")

        if record.status == ExecutionStatus.TIMEOUT:
            recommendations.append("Execution timed out; raise timeout_minutes or shorten the critical path")
        elif record.status == ExecutionStatus.FAILED and (record.error_details or {}).get("reason") == "budget_exceeded":
            recommendations.append("Execution ran out of budget; raise budget_limit or trim expensive steps")

        recommendations.extend(cost_analysis.optimizations)
        recommendations.extend(timeline.parallelization_opportunities)

        if not recommendations:
            recommendations.append("Execution is performing within thresholds")
        return recommendations

    # Across executions

    def analyze_chain(self, chain_id: str, time_range: Optional[TimeRange] = None) -> ChainPerformanceReport:
        """
        Aggregate performance and trends of a chain's finished executions.

        Raises:
            ChainNotFoundError: Unknown chain id
        """
        self._require_chain(chain_id)
        time_range = time_range or TimeRange()
        records = self._terminal_records([chain_id], time_range)

        durations = [float(r.duration_ms or 0) for r in records]
        costs = [r.total_cost for r in records]
        step_success = [r.success_rate for r in records]
        completed_count = sum(1 for r in records if r.status == ExecutionStatus.COMPLETED)

        summary = ChainPerformanceSummary(
            chain_id=chain_id,
            execution_count=len(records),
            completed_count=completed_count,
            success_rate=completed_count / len(records) if records else 0.0,
            average_execution_time_ms=_mean(durations) or 0.0,
            average_cost=_mean(costs) or 0.0,
            total_cost=sum(costs),
            average_step_success_rate=_mean(step_success) or 0.0,
        )
        trends = [
            _trend("execution_time_ms", durations, higher_is_better=False),
            _trend("cost", costs, higher_is_better=False),
            _trend("success_rate", step_success, higher_is_better=True),
        ]
        logger.debug(f"Analyzed {len(records)} executions of chain {chain_id}")
        return ChainPerformanceReport(chain_id=chain_id, time_range=time_range, summary=summary, trends=trends)

    def generate_heatmap(
        self,
        chain_ids: Optional[Sequence[str]] = None,
        time_range: Optional[TimeRange] = None,
    ) -> PerformanceHeatmap:
        """Time, agent, cost and quality heatmaps over finished executions (all chains when none given)."""
        time_range = time_range or TimeRange()
        records = self._terminal_records(list(chain_ids) if chain_ids else None, time_range)
        steps = [step for record in records for step in _attempted(record.steps)]

        by_hour: Dict[int, List[int]] = defaultdict(list)
        by_agent: Dict[AgentType, List[StepExecutionRecord]] = defaultdict(list)
        by_position: Dict[Tuple[int, AgentType], List[float]] = defaultdict(list)
        by_step: Dict[int, List[StepExecutionRecord]] = defaultdict(list)
        for step in steps:
            if step.started_at_us is not None:
                by_hour[us_to_datetime(step.started_at_us).hour].append(step.execution_time_ms)
            by_agent[step.agent_type].append(step)
            by_position[(step.step_number, step.agent_type)].append(step.cost)
            if step.quality_score is not None or step.confidence is not None:
                by_step[step.step_number].append(step)

        agent_times = {agent: _mean([s.execution_time_ms for s in group]) or 0.0 for agent, group in by_agent.items()}
        slowest = max(agent_times.values(), default=0.0)

        return PerformanceHeatmap(
            chain_ids=list(chain_ids or []),
            time_range=time_range,
            execution_count=len(records),
            time_heatmap=[
                TimeHeatmapCell(hour=hour, average_time_ms=_mean(times) or 0.0, step_count=len(times))
                for hour, times in sorted(by_hour.items())
            ],
            agent_heatmap=[
                AgentHeatmapCell(
                    agent_type=agent,
                    average_time_ms=agent_times[agent],
                    average_cost=_mean([s.cost for s in group]) or 0.0,
                    success_rate=sum(1 for s in group if s.status == StepStatus.COMPLETED) / len(group),
                    step_count=len(group),
                    intensity=agent_times[agent] / slowest if slowest else 0.0,
                )
                for agent, group in sorted(by_agent.items(), key=lambda item: item[0].value)
            ],
            cost_heatmap=[
                CostHeatmapCell(
                    step_number=number, agent_type=agent, average_cost=_mean(costs) or 0.0, step_count=len(costs)
                )
                for (number, agent), costs in sorted(by_position.items(), key=lambda item: (item[0][0], item[0][1].value))
            ],
            quality_heatmap=[
                QualityHeatmapCell(
                    step_number=number,
                    average_quality=_mean([s.quality_score for s in group if s.quality_score is not None]),
                    average_confidence=_mean([s.confidence for s in group if s.confidence is not None]),
                    sample_count=len(group),
                )
                for number, group in sorted(by_step.items())
            ],
        )

    def analyze_handoff_patterns(self, chain_id: str, time_range: Optional[TimeRange] = None) -> HandoffPatternAnalysis:
        """Handoff counts by type and agent pair across a chain's finished executions."""
        self._require_chain(chain_id)
        records = self._terminal_records([chain_id], time_range or TimeRange())
        handoffs = [entry for record in records for entry in record.handoffs]
        if not handoffs:
            return HandoffPatternAnalysis(chain_id=chain_id, total_handoffs=0)

        by_type: Dict[str, int] = defaultdict(int)
        pairs: Dict[Tuple[Optional[AgentType], AgentType], List[int]] = defaultdict(list)
        for entry in handoffs:
            by_type[entry.handoff_type.value] += 1
            pairs[(entry.from_agent, entry.to_agent)].append(entry.data_size)

        agent_pairs = [
            AgentPairStat(from_agent=source, to_agent=target, count=len(sizes), average_data_size=_mean(sizes) or 0.0)
            for (source, target), sizes in pairs.items()
        ]
        agent_pairs.sort(key=lambda pair: (-pair.count, pair.from_agent.value if pair.from_agent else "",
                                           pair.to_agent.value))

        return HandoffPatternAnalysis(
            chain_id=chain_id,
            total_handoffs=len(handoffs),
            by_type=dict(by_type),
            average_data_size=_mean([entry.data_size for entry in handoffs]) or 0.0,
            direct_ratio=by_type.get(HandoffType.DIRECT.value, 0) / len(handoffs),
            agent_pairs=agent_pairs,
        )

    def get_chain_health(self, chain_id: str) -> ChainHealth:
        """
        Score a chain from 100 down based on recent behaviour.

        Raises:
            ChainNotFoundError: Unknown chain id
        """
        self._require_chain(chain_id)
        records = self.history_service.list_executions(chain_ids=[chain_id])
        finished = [r for r in records if r.is_terminal]

        score = 100
        issues: List[str] = []
        success_rate: Optional[float] = None
        average_time: Optional[float] = None

        if not records:
            score -= 15
            issues.append("No executions recorded")

        if finished:
            success_rate = sum(1 for r in finished if r.status == ExecutionStatus.COMPLETED) / len(finished)
            if success_rate < 0.8:
                score -= 30
                issues.append(f"Low success rate: {success_rate:.0%}")
            elif success_rate < 0.9:
                score -= 10
                issues.append(f"Success rate below 90%: {success_rate:.0%}")

            average_time = _mean([float(r.duration_ms or 0) for r in finished])
            if average_time is not None and average_time > HEALTH_SLOW_EXECUTION_MS:
                score -= 20
                issues.append(f"Slow executions: average {average_time / 1000:.0f}s")

        cutoff = now_us() - HEALTH_STUCK_AFTER_US
        stuck = [
            r for r in records
            if r.status == ExecutionStatus.RUNNING and r.started_at_us is not None and r.started_at_us < cutoff
        ]
        if stuck:
            score -= 25
            issues.append(f"{len(stuck)} execution(s) running for more than an hour")

        score = max(0, score)
        if score >= 80:
            status = HealthStatus.HEALTHY
        elif score >= 60:
            status = HealthStatus.WARNING
        else:
            status = HealthStatus.CRITICAL

        return ChainHealth(
            chain_id=chain_id,
            status=status,
            health_score=score,
            issues=issues,
            success_rate=success_rate,
            average_execution_time_ms=average_time,
            execution_count=len(records),
            stuck_executions=len(stuck),
        )
