"""
Tests for the batch scenario engine.

Covers:
    - Validation gate (no entry node)
    - Error rate bounds and threshold checks
    - The single-bottleneck example
    - Monotonicity under capacity loss
    - Reproducibility under a fixed seed
"""

import pytest

from trafficsim import run_batch
from trafficsim.config import Settings
from trafficsim.core import GraphData, ValidationError
from trafficsim.simulation import (
    BatchSimulator,
    DiagnosticEvent,
    Scenario,
    ScenarioMetrics,
    SimulationGraph,
    Thresholds,
    check_thresholds,
)


def _single(graph, scenario, **kwargs):
    return run_batch(graph, [scenario], **kwargs).scenarios[0]


class TestValidationGate:

    def test_no_entry_node_raises(self, no_entry_graph):
        with pytest.raises(ValidationError) as exc_info:
            run_batch(no_entry_graph)
        assert "no entry node" in str(exc_info.value)

    def test_dangling_edge_raises(self, web_graph_dict):
        web_graph_dict["connections"].append({"sourceId": "db", "targetId": "ghost"})
        with pytest.raises(ValidationError):
            run_batch(GraphData.from_dict(web_graph_dict))


class TestScenarioResults:

    def test_default_scenarios(self, web_graph):
        output = run_batch(web_graph)
        assert [s.scenario_name for s in output.scenarios] == ["Normal Load", "Peak Load"]

    def test_healthy_design_passes(self, web_graph):
        output = run_batch(web_graph)
        for result in output.scenarios:
            assert result.metrics.error_rate < 0.01
            assert result.metrics.bottlenecks == ()
            assert result.passed
        assert output.passed

    @pytest.mark.parametrize("load_factor", [0.0, 1.0, 5.0])
    def test_error_rate_is_bounded(self, bottleneck_graph, load_factor):
        result = _single(bottleneck_graph, Scenario("Load", load_factor=load_factor))
        assert 0.0 <= result.metrics.error_rate <= 1.0
        assert 0.0 <= result.score <= 100.0

    def test_latency_percentiles_are_ordered(self, web_graph):
        m = _single(web_graph, Scenario("Normal")).metrics
        assert 0 < m.p50_latency_ms <= m.p95_latency_ms <= m.p99_latency_ms

    def test_cost_matches_cost_model(self, web_graph):
        result = _single(web_graph, Scenario("Normal"))
        assert result.metrics.estimated_cost_monthly == pytest.approx(632.5)


class TestBottleneckExample:

    def test_overloaded_app_server(self, bottleneck_graph):
        result = _single(bottleneck_graph, Scenario("Spike", aggregate_rps=1000, wave_amplitude=0.0))
        assert result.metrics.bottlenecks == ("app",)
        assert result.metrics.error_rate > 0
        events = {(d.node_id, d.event) for d in result.diagnostics}
        assert ("app", DiagnosticEvent.OVERLOADED) in events

    def test_bottleneck_lowers_score(self, bottleneck_graph, web_graph):
        congested = _single(bottleneck_graph, Scenario("Spike", aggregate_rps=1000))
        healthy = _single(web_graph, Scenario("Normal"))
        assert congested.score < healthy.score

    def test_offline_node_drops_its_traffic(self, web_graph):
        result = _single(web_graph, Scenario("Outage", offline_nodes=("cache",)))
        assert result.metrics.error_rate == pytest.approx(1.0)


class TestThresholds:

    def test_exceeded_threshold_fails(self, web_graph):
        scenario = Scenario("Strict", thresholds=Thresholds(max_p99_latency_ms=0.001))
        result = _single(web_graph, scenario)
        assert not result.passed
        assert any("p99 latency" in f for f in result.feedback)

    def test_check_thresholds(self):
        metrics = ScenarioMetrics(
            rps=1000, throughput_rps=900, avg_latency_ms=20, p50_latency_ms=15,
            p95_latency_ms=40, p99_latency_ms=80, response_time_ms=120, ttfb_ms=12,
            error_rate=0.1, estimated_cost_monthly=500,
        )
        assert check_thresholds(metrics, None) == []
        assert check_thresholds(metrics, Thresholds(max_error_rate=0.2, max_cost_monthly=600)) == []
        violations = check_thresholds(metrics, Thresholds(
            max_error_rate=0.05, min_availability=0.99, max_cost_monthly=100, min_rps=950,
        ))
        assert len(violations) == 4

    def test_thresholds_from_dict(self):
        thresholds = Thresholds.from_dict({"maxP99LatencyMs": 200, "max_error_rate": 0.01})
        assert thresholds.max_p99_latency_ms == 200.0
        assert thresholds.max_error_rate == 0.01
        assert Thresholds.from_dict(None) is None


class TestMonotonicity:

    @pytest.mark.parametrize("node_id", ["lb", "app-1", "cache"])
    def test_removing_outgoing_edges_never_lowers_error_rate(self, web_graph, node_id):
        scenario = Scenario("Normal", wave_amplitude=0.0)
        baseline = _single(web_graph, scenario).metrics.error_rate
        cut = SimulationGraph(web_graph).without_outgoing(node_id)
        degraded = _single(cut, scenario).metrics.error_rate
        assert degraded >= baseline

    def test_unreachable_storage_is_total_failure(self, web_graph):
        cut = SimulationGraph(web_graph).without_outgoing("lb")
        result = _single(cut, Scenario("Normal"))
        assert result.metrics.error_rate == pytest.approx(1.0)
        assert any(d.event == DiagnosticEvent.DEAD_END for d in result.diagnostics)


class TestReproducibility:

    def test_same_seed_same_output(self, web_graph):
        first = run_batch(web_graph, seed=11).to_dict()
        second = run_batch(web_graph, seed=11).to_dict()
        assert first == second

    def test_settings_horizon(self, web_graph):
        simulator = BatchSimulator(web_graph, settings=Settings(tick_horizon=5))
        output = simulator.run()
        assert all(s.metrics.rps > 0 for s in output.scenarios)

    def test_scenario_round_trip(self):
        scenario = Scenario("Launch", aggregate_rps=5000, offline_nodes=("db",),
                            thresholds=Thresholds(max_error_rate=0.02))
        assert Scenario.from_dict(scenario.to_dict()) == scenario
