"""
Unit tests for PerformanceAnalyzer.

Records are built with RecordFactory so every timing and cost is known
exactly; the history service is a mock serving those records.
"""

import pytest

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
from agentchain.models.performance_models import BottleneckThresholds
from agentchain.services.exceptions import ChainNotFoundError, ExecutionNotFoundError, ExecutionStateError
from agentchain.services.performance_analyzer import PerformanceAnalyzer, calculate_severity
from tests.utils import MockFactory, RecordFactory


def _linear_record(**overrides):
    """Three sequential steps: 0 (1s), 1 (2s), 2 (1s)."""
    steps = [
        RecordFactory.step(0, AgentType.TREND, start_ms=0, duration_ms=1000, cost=0.01),
        RecordFactory.step(1, AgentType.CONTENT, start_ms=1000, duration_ms=2000, cost=0.05),
        RecordFactory.step(2, AgentType.SOCIAL_POSTING, start_ms=3000, duration_ms=1000, cost=0.01),
    ]
    handoffs = [
        RecordFactory.handoff(0, to_step=0, to_agent=AgentType.TREND),
        RecordFactory.handoff(1, to_step=1, from_step=0, to_agent=AgentType.CONTENT, from_agent=AgentType.TREND),
        RecordFactory.handoff(2, to_step=2, from_step=1, to_agent=AgentType.SOCIAL_POSTING,
                              from_agent=AgentType.CONTENT),
    ]
    return RecordFactory.execution(steps, handoffs, **overrides)


def _diamond_record(sequential_middle=False, join_delay_ms=0):
    """0 -> {1, 2} -> 3 with controllable overlap of the middle steps."""
    second_start = 3000 if sequential_middle else 1000
    join_start = second_start + 2000 + join_delay_ms
    steps = [
        RecordFactory.step(0, AgentType.TREND, start_ms=0, duration_ms=1000),
        RecordFactory.step(1, AgentType.CONTENT, start_ms=1000, duration_ms=2000),
        RecordFactory.step(2, AgentType.SEO, start_ms=second_start, duration_ms=2000),
        RecordFactory.step(3, AgentType.SOCIAL_POSTING, start_ms=join_start, duration_ms=500),
    ]
    handoffs = [
        RecordFactory.handoff(0, to_step=0, to_agent=AgentType.TREND),
        RecordFactory.handoff(1, to_step=1, from_step=0, to_agent=AgentType.CONTENT, from_agent=AgentType.TREND),
        RecordFactory.handoff(2, to_step=2, from_step=0, to_agent=AgentType.SEO, from_agent=AgentType.TREND),
        RecordFactory.handoff(3, to_step=3, from_step=1, to_agent=AgentType.SOCIAL_POSTING,
                              from_agent=AgentType.CONTENT, handoff_type=HandoffType.AGGREGATED),
        RecordFactory.handoff(4, to_step=3, from_step=2, to_agent=AgentType.SOCIAL_POSTING,
                              from_agent=AgentType.SEO, handoff_type=HandoffType.AGGREGATED),
    ]
    return RecordFactory.execution(steps, handoffs)


def _analyzer(test_settings, records=None, chain_exists=True):
    service = MockFactory.create_mock_history_service(records, chain_exists=chain_exists)
    return PerformanceAnalyzer(service, test_settings)


@pytest.mark.unit
@pytest.mark.parametrize("ratio,expected", [
    (1.0, Severity.LOW),
    (1.49, Severity.LOW),
    (1.5, Severity.MEDIUM),
    (2.0, Severity.HIGH),
    (2.99, Severity.HIGH),
    (3.0, Severity.CRITICAL),
    (10.0, Severity.CRITICAL),
])
def test_calculate_severity(ratio, expected):
    assert calculate_severity(ratio) == expected


@pytest.mark.unit
class TestAnalyzeExecution:

    def test_unknown_execution_raises(self, test_settings):
        with pytest.raises(ExecutionNotFoundError):
            _analyzer(test_settings).analyze_execution("missing")

    def test_running_execution_is_rejected(self, test_settings):
        record = _linear_record(status=ExecutionStatus.RUNNING)

        with pytest.raises(ExecutionStateError):
            _analyzer(test_settings, [record]).analyze_execution("exec-1")

    def test_totals(self, test_settings):
        metrics = _analyzer(test_settings, [_linear_record()]).analyze_execution("exec-1")

        assert metrics.step_count == 3
        assert metrics.total_execution_time_ms == 4000
        assert metrics.total_cost == pytest.approx(0.07)
        assert metrics.average_step_time_ms == pytest.approx(4000 / 3)
        assert metrics.success_rate == 1.0
        assert metrics.status == ExecutionStatus.COMPLETED

    def test_agent_performance_grouped_by_type(self, test_settings):
        metrics = _analyzer(test_settings, [_linear_record()]).analyze_execution("exec-1")

        content = next(a for a in metrics.agent_performance if a.agent_type == AgentType.CONTENT)
        assert content.step_count == 1
        assert content.average_time_ms == 2000
        assert content.average_quality == 0.9

    def test_cost_breakdown_sorted_and_hotspot_flagged(self, test_settings):
        metrics = _analyzer(test_settings, [_linear_record()]).analyze_execution("exec-1")
        cost = metrics.cost_analysis

        assert [item.step_number for item in cost.breakdown][0] == 1
        assert cost.breakdown[0].percentage == pytest.approx(71.43, abs=0.01)
        assert cost.cost_per_second == pytest.approx(0.07 / 4)
        assert len(cost.optimizations) == 1
        assert "Step 1" in cost.optimizations[0]

    def test_critical_path_follows_handoffs(self, test_settings):
        metrics = _analyzer(test_settings, [_linear_record()]).analyze_execution("exec-1")

        assert metrics.timeline.critical_path == [0, 1, 2]
        assert metrics.timeline.critical_path_ms == 4000
        assert metrics.timeline.wait_times == []

    def test_critical_path_takes_slowest_branch(self, test_settings):
        record = _diamond_record()
        record.steps[2].execution_time_ms = 3000

        metrics = _analyzer(test_settings, [record]).analyze_execution("exec-1")

        assert metrics.timeline.critical_path == [0, 2, 3]
        assert metrics.timeline.critical_path_ms == 4500

    def test_wait_time_after_producers_finish(self, test_settings):
        record = _diamond_record(join_delay_ms=2500)

        metrics = _analyzer(test_settings, [record]).analyze_execution("exec-1")

        assert [(w.step_number, w.wait_ms) for w in metrics.timeline.wait_times] == [(3, 2500)]

    def test_sequential_siblings_are_a_parallelization_opportunity(self, test_settings):
        metrics = _analyzer(test_settings, [_diamond_record(sequential_middle=True)]).analyze_execution("exec-1")

        assert len(metrics.timeline.parallelization_opportunities) == 1
        assert "[1, 2]" in metrics.timeline.parallelization_opportunities[0]

    def test_overlapping_siblings_are_not_reported(self, test_settings):
        metrics = _analyzer(test_settings, [_diamond_record()]).analyze_execution("exec-1")

        assert metrics.timeline.parallelization_opportunities == []

    def test_quality_analysis(self, test_settings):
        steps = [
            RecordFactory.step(0, quality_score=0.9, confidence=0.6),
            RecordFactory.step(1, start_ms=1000, quality_score=0.5, confidence=1.0),
            RecordFactory.step(2, status=StepStatus.FAILED),
        ]
        record = RecordFactory.execution(steps)

        quality = _analyzer(test_settings, [record]).analyze_execution("exec-1").quality_analysis

        assert quality.average_quality == pytest.approx(0.7)
        assert quality.average_confidence == pytest.approx(0.8)
        assert quality.low_quality_steps == [1]


@pytest.mark.unit
class TestBottlenecks:

    def test_time_cost_and_quality_bottlenecks(self, test_settings):
        steps = [
            RecordFactory.step(0, duration_ms=120000, cost=0.35, quality_score=0.5),
            RecordFactory.step(1, start_ms=120000, duration_ms=1000, cost=0.01),
        ]
        record = RecordFactory.execution(steps)

        bottlenecks = _analyzer(test_settings, [record]).detect_bottlenecks("exec-1")

        by_type = {b.type: b for b in bottlenecks}
        assert set(by_type) == {BottleneckType.TIME, BottleneckType.COST, BottleneckType.QUALITY}
        assert by_type[BottleneckType.TIME].severity == Severity.HIGH
        assert by_type[BottleneckType.COST].severity == Severity.CRITICAL
        assert by_type[BottleneckType.QUALITY].severity == Severity.LOW
        assert all(b.step_number == 0 for b in bottlenecks)
        assert [b.impact for b in bottlenecks] == sorted((b.impact for b in bottlenecks), reverse=True)

    def test_custom_thresholds_override_defaults(self, test_settings):
        record = RecordFactory.execution([RecordFactory.step(0, duration_ms=120000, cost=0.01)])
        analyzer = _analyzer(test_settings, [record])

        assert analyzer.detect_bottlenecks("exec-1")
        assert analyzer.detect_bottlenecks("exec-1", BottleneckThresholds(time_threshold_ms=200000)) == []

    def test_skipped_steps_are_ignored(self, test_settings):
        steps = [
            RecordFactory.step(0),
            RecordFactory.step(1, status=StepStatus.SKIPPED, quality_score=0.1),
        ]
        record = RecordFactory.execution(steps)

        assert _analyzer(test_settings, [record]).detect_bottlenecks("exec-1") == []


@pytest.mark.unit
class TestRecommendations:

    def test_within_thresholds(self, test_settings):
        record = RecordFactory.execution([RecordFactory.step(0, cost=0.0)])

        assert _analyzer(test_settings, [record]).generate_recommendations("exec-1") == [
            "Execution is performing within thresholds"
        ]

    def test_failed_and_retried_steps(self, test_settings):
        steps = [
            RecordFactory.step(0, cost=0.0, attempt_count=3),
            RecordFactory.step(1, start_ms=1000, cost=0.0, status=StepStatus.FAILED),
        ]
        record = RecordFactory.execution(steps, status=ExecutionStatus.FAILED)

        recommendations = _analyzer(test_settings, [record]).generate_recommendations("exec-1")

        assert any("Steps [1] failed" in r for r in recommendations)
        assert any("Steps [0] needed retries" in r for r in recommendations)

    def test_timeout_and_budget_hints(self, test_settings):
        timed_out = RecordFactory.execution([RecordFactory.step(0, cost=0.0)], status=ExecutionStatus.TIMEOUT)
        over_budget = RecordFactory.execution(
            [RecordFactory.step(0, cost=0.0)],
            status=ExecutionStatus.FAILED,
            execution_id="exec-2",
            error_details={"reason": "budget_exceeded", "message": "out of money"},
        )
        analyzer = _analyzer(test_settings, [timed_out, over_budget])

        assert any("timed out" in r for r in analyzer.generate_recommendations("exec-1"))
        assert any("out of budget" in r for r in analyzer.generate_recommendations("exec-2"))


@pytest.mark.unit
class TestChainAnalysis:

    @pytest.fixture
    def history(self):
        return [
            RecordFactory.execution([RecordFactory.step(0)], execution_id=f"exec-{n}",
                                    duration_ms=1000 * (n + 1), start_offset_ms=60000 * n)
            for n in range(3)
        ]

    def test_unknown_chain_raises(self, test_settings):
        with pytest.raises(ChainNotFoundError):
            _analyzer(test_settings, chain_exists=False).analyze_chain("chain-1")

    def test_summary(self, test_settings, history):
        history[1].status = ExecutionStatus.FAILED

        report = _analyzer(test_settings, history).analyze_chain("chain-1")

        assert report.summary.execution_count == 3
        assert report.summary.completed_count == 2
        assert report.summary.success_rate == pytest.approx(2 / 3)
        assert report.summary.average_execution_time_ms == 2000
        assert report.summary.total_cost == pytest.approx(0.03)

    def test_trends(self, test_settings, history):
        report = _analyzer(test_settings, history).analyze_chain("chain-1")

        trends = {t.metric: t for t in report.trends}
        assert trends["execution_time_ms"].direction == TrendDirection.DECLINING
        assert trends["execution_time_ms"].slope == pytest.approx(1000)
        assert trends["cost"].direction == TrendDirection.STABLE
        assert trends["success_rate"].direction == TrendDirection.STABLE
        assert trends["cost"].sample_size == 3

    def test_faster_executions_are_improving(self, test_settings):
        history = [
            RecordFactory.execution([RecordFactory.step(0)], execution_id=f"exec-{n}",
                                    duration_ms=1000 * (3 - n), start_offset_ms=60000 * n)
            for n in range(3)
        ]

        report = _analyzer(test_settings, history).analyze_chain("chain-1")

        trends = {t.metric: t for t in report.trends}
        assert trends["execution_time_ms"].direction == TrendDirection.IMPROVING

    def test_no_executions(self, test_settings):
        report = _analyzer(test_settings).analyze_chain("chain-1")

        assert report.summary.execution_count == 0
        assert report.summary.success_rate == 0.0
        assert all(t.direction == TrendDirection.STABLE for t in report.trends)


@pytest.mark.unit
class TestHeatmap:

    def test_cells(self, test_settings):
        records = [_linear_record(), _linear_record(execution_id="exec-2", start_offset_ms=10000)]

        heatmap = _analyzer(test_settings, records).generate_heatmap(["chain-1"])

        assert heatmap.execution_count == 2
        assert sum(cell.step_count for cell in heatmap.time_heatmap) == 6
        content = next(c for c in heatmap.agent_heatmap if c.agent_type == AgentType.CONTENT)
        assert content.intensity == 1.0
        assert content.step_count == 2
        trend = next(c for c in heatmap.agent_heatmap if c.agent_type == AgentType.TREND)
        assert trend.intensity == 0.5
        assert [(c.step_number, c.step_count) for c in heatmap.cost_heatmap] == [(0, 2), (1, 2), (2, 2)]
        assert heatmap.quality_heatmap[0].average_quality == 0.9

    def test_empty(self, test_settings):
        heatmap = _analyzer(test_settings).generate_heatmap()

        assert heatmap.execution_count == 0
        assert heatmap.agent_heatmap == []
        assert heatmap.chain_ids == []


@pytest.mark.unit
class TestHandoffPatterns:

    def test_counts_and_pairs(self, test_settings):
        patterns = _analyzer(test_settings, [_diamond_record()]).analyze_handoff_patterns("chain-1")

        assert patterns.total_handoffs == 5
        assert patterns.by_type == {HandoffType.DIRECT.value: 3, HandoffType.AGGREGATED.value: 2}
        assert patterns.direct_ratio == pytest.approx(0.6)
        assert patterns.average_data_size == 10
        assert all(pair.count == 1 for pair in patterns.agent_pairs)
        assert len(patterns.agent_pairs) == 5

    def test_no_handoffs(self, test_settings):
        patterns = _analyzer(test_settings).analyze_handoff_patterns("chain-1")

        assert patterns.total_handoffs == 0
        assert patterns.agent_pairs == []

    def test_unknown_chain_raises(self, test_settings):
        with pytest.raises(ChainNotFoundError):
            _analyzer(test_settings, chain_exists=False).analyze_handoff_patterns("chain-1")


@pytest.mark.unit
class TestChainHealth:

    def _records(self, statuses):
        return [
            RecordFactory.execution([RecordFactory.step(0)], status=status, execution_id=f"exec-{n}")
            for n, status in enumerate(statuses)
        ]

    def test_no_executions(self, test_settings):
        health = _analyzer(test_settings).get_chain_health("chain-1")

        assert health.health_score == 85
        assert health.status == HealthStatus.HEALTHY
        assert health.issues == ["No executions recorded"]

    def test_all_successful(self, test_settings):
        records = self._records([ExecutionStatus.COMPLETED] * 3)

        health = _analyzer(test_settings, records).get_chain_health("chain-1")

        assert health.health_score == 100
        assert health.success_rate == 1.0
        assert health.issues == []

    def test_low_success_rate(self, test_settings):
        records = self._records([ExecutionStatus.COMPLETED, ExecutionStatus.FAILED])

        health = _analyzer(test_settings, records).get_chain_health("chain-1")

        assert health.health_score == 70
        assert health.status == HealthStatus.WARNING

    def test_stuck_executions(self, test_settings):
        records = self._records([ExecutionStatus.RUNNING, ExecutionStatus.COMPLETED, ExecutionStatus.FAILED])

        health = _analyzer(test_settings, records).get_chain_health("chain-1")

        assert health.stuck_executions == 1
        assert health.health_score == 45
        assert health.status == HealthStatus.CRITICAL
        assert health.execution_count == 3

    def test_slow_executions(self, test_settings):
        records = [
            RecordFactory.execution([RecordFactory.step(0)], duration_ms=600000, execution_id="slow"),
        ]

        health = _analyzer(test_settings, records).get_chain_health("chain-1")

        assert health.health_score == 80
        assert any("Slow executions" in issue for issue in health.issues)

    def test_unknown_chain_raises(self, test_settings):
        with pytest.raises(ChainNotFoundError):
            _analyzer(test_settings, chain_exists=False).get_chain_health("chain-1")
