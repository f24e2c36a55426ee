"""
Tests for the live tick engine.

Covers:
    - Lifecycle (init, start, pause, step, reset)
    - Control clamping and node updates
    - Traced request injection and completion
    - Overload behaviour
    - Determinism of pause/resume
"""

import pytest

from trafficsim.core import ComponentNode, EngineStateError, GraphData, ValidationError
from trafficsim.simulation import EngineState, LiveTickEngine, TraceStatus
from trafficsim.simulation.models import PARTICLE_TRACED


def _run_until(engine, predicate, limit=2000):
    frame = None
    for _ in range(limit):
        frame = engine.step()
        if predicate(frame):
            return frame
    pytest.fail(f"condition not reached within {limit} ticks")


def _gateway_graph(rate_limit=50):
    """client (100 rps) -> api gateway (rate limited) -> app -> db"""
    return GraphData.from_dict({
        "nodes": [
            {"id": "client", "type": "client", "specificConfig": {"requestsPerSecond": 100}},
            {"id": "gw", "type": "api_gateway", "sharedConfig": {
                "trafficControl": {"rateLimiting": True, "rateLimit": rate_limit},
                "resilience": {"circuitBreaker": True},
            }},
            {"id": "app", "type": "app_server"},
            {"id": "db", "type": "database_sql"},
        ],
        "connections": [
            {"sourceId": "client", "targetId": "gw"},
            {"sourceId": "gw", "targetId": "app"},
            {"sourceId": "app", "targetId": "db", "protocol": "tcp"},
        ],
    })


class TestLifecycle:

    def test_init_starts_idle_and_empty(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph)
        assert engine.state == EngineState.IDLE
        assert engine.tick_count == 0

    def test_init_without_entry_raises(self, no_entry_graph):
        engine = LiveTickEngine()
        with pytest.raises(ValidationError):
            engine.init(no_entry_graph)

    def test_start_before_init_raises(self):
        with pytest.raises(EngineStateError):
            LiveTickEngine().start()

    def test_step_advances_exactly_one_tick(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph)
        assert engine.step().tick == 1
        assert engine.step().tick == 2
        assert engine.state == EngineState.PAUSED

    def test_step_while_running_raises(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph)
        engine.start()
        with pytest.raises(EngineStateError):
            engine.step()

    def test_tick_requires_running(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph)
        with pytest.raises(EngineStateError):
            engine.tick()
        engine.start()
        assert engine.tick().tick == 1

    def test_reset_discards_graph(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph)
        engine.start()
        engine.tick()
        engine.reset()
        assert engine.state == EngineState.IDLE
        assert engine.tick_count == 0
        with pytest.raises(EngineStateError):
            engine.start()

    def test_pause_then_resume_matches_continuous_run(self, chain_graph):
        continuous = LiveTickEngine(seed=5, engine_id="a")
        continuous.init(chain_graph, load_factor=3.0)
        continuous.start()
        for _ in range(60):
            expected = continuous.tick()

        paused = LiveTickEngine(seed=5, engine_id="b")
        paused.init(chain_graph, load_factor=3.0)
        paused.start()
        for _ in range(30):
            paused.tick()
        paused.pause()
        paused.start()
        for _ in range(30):
            actual = paused.tick()

        assert actual.tick == expected.tick
        assert [(p.id, p.t) for p in actual.particles] == [(p.id, p.t) for p in expected.particles]
        assert actual.metrics.total_requests == expected.metrics.total_requests


class TestControls:

    @pytest.mark.parametrize("value,expected", [(10.0, 4.0), (0.0, 0.25), (2.0, 2.0)])
    def test_speed_is_clamped(self, chain_graph, value, expected):
        engine = LiveTickEngine()
        engine.init(chain_graph)
        assert engine.set_speed(value) == expected

    @pytest.mark.parametrize("value,expected", [(-1.0, 0.0), (9.0, 5.0), (0.0, 0.0)])
    def test_load_factor_is_clamped(self, chain_graph, value, expected):
        engine = LiveTickEngine()
        engine.init(chain_graph)
        assert engine.set_load_factor(value) == expected

    def test_zero_load_generates_nothing(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph, load_factor=0.0)
        for _ in range(100):
            frame = engine.step()
        assert frame.particles == ()
        assert frame.metrics.total_requests == 0
        assert frame.metrics.error_rate == 0.0

    def test_update_nodes_keeps_particles_in_flight(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph)
        frame = _run_until(engine, lambda f: any(p.t < 0.5 for p in f.particles))
        young = {p.id for p in frame.particles if p.t < 0.5}

        engine.update_nodes([ComponentNode.from_dict({
            "id": "app",
            "type": "app_server",
            "name": "App",
            "sharedConfig": {"scaling": {"instances": 3, "perInstanceCapacityRps": 500}},
        })])
        after = engine.step()

        assert engine.sim_graph.node("app").scaling.instances == 3
        assert young <= {p.id for p in after.particles}

    def test_update_nodes_rejects_type_change(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph)
        with pytest.raises(ValidationError):
            engine.update_nodes([ComponentNode.from_dict({"id": "client", "type": "app_server"})])
        assert engine.sim_graph.entry_ids == ["client"]
        assert engine.inject_request()

    def test_disabling_rate_limit_and_breaker_stops_errors(self):
        engine = LiveTickEngine(seed=2)
        engine.init(_gateway_graph(rate_limit=50))
        engine.start()
        for _ in range(300):
            frame = engine.tick()
        assert frame.metrics.node_metrics["gw"].error_count > 0

        engine.update_nodes([ComponentNode.from_dict({
            "id": "gw",
            "type": "api_gateway",
            "sharedConfig": {
                "trafficControl": {"rateLimiting": False},
                "resilience": {"circuitBreaker": False},
            },
        })])
        frame = engine.tick()
        errors = frame.metrics.total_errors
        assert not frame.metrics.node_metrics["gw"].circuit_open

        for _ in range(1000):
            frame = engine.tick()
        assert frame.metrics.total_errors == errors
        assert frame.metrics.node_metrics["db"].total_requests > 0


class TestTracedRequests:

    def test_injection_emits_one_traced_particle(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph, load_factor=0.0)
        trace_id = engine.inject_request()
        frame = engine.step()
        assert len(frame.particles) == 1
        particle = frame.particles[0]
        assert particle.trace_id == trace_id
        assert particle.color == PARTICLE_TRACED
        assert particle.count == 1

    def test_injection_into_running_engine_at_zero_load(self, chain_graph):
        engine = LiveTickEngine(seed=1)
        engine.init(chain_graph, load_factor=0.0)
        engine.start()
        trace_id = engine.inject_request()
        frame = engine.tick()
        assert len(frame.particles) == 1
        assert frame.particles[0].trace_id == trace_id
        assert frame.metrics.total_requests == 1

    def test_injection_at_non_entry_raises(self, chain_graph):
        engine = LiveTickEngine()
        engine.init(chain_graph)
        with pytest.raises(ValidationError):
            engine.inject_request("db")

    def test_traced_request_completes_at_storage(self, chain_graph):
        traces = []
        engine = LiveTickEngine(seed=1, on_trace=traces.append)
        engine.init(chain_graph, load_factor=0.0)
        engine.inject_request(trace_id="t-1")
        _run_until(engine, lambda f: engine.completed_traces)

        trace = engine.completed_traces[0]
        assert traces == [trace]
        assert trace.id == "t-1"
        assert trace.status == TraceStatus.COMPLETED
        assert [h.component_id for h in trace.hops] == ["client", "app", "db"]
        arrivals = [h.arrival_ms for h in trace.hops]
        assert arrivals == sorted(arrivals)
        assert all(h.departure_ms >= h.arrival_ms for h in trace.hops)


class TestLoad:

    def test_overload_produces_errors(self, bottleneck_graph):
        engine = LiveTickEngine(seed=3)
        engine.init(bottleneck_graph, speed=4.0, load_factor=5.0)
        engine.start()
        for _ in range(300):
            frame = engine.tick()
        metrics = frame.metrics
        assert metrics.total_errors > 0
        assert 0.0 < metrics.error_rate <= 1.0

    def test_healthy_chain_has_no_errors(self, chain_graph):
        engine = LiveTickEngine(seed=3)
        engine.init(chain_graph, speed=4.0)
        engine.start()
        for _ in range(300):
            frame = engine.tick()
        assert frame.metrics.total_errors == 0
        assert frame.metrics.node_metrics["db"].total_requests > 0
        assert frame.metrics.avg_latency_ms > 0

    def test_frame_serializes(self, web_graph):
        engine = LiveTickEngine(seed=3, engine_id="engine-1")
        engine.init(web_graph)
        data = engine.step().to_dict()
        assert data["type"] == "tick"
        assert data["engineId"] == "engine-1"
        assert set(data["metrics"]["nodeMetrics"]) == {"client", "lb", "app-1", "app-2", "cache", "db"}
